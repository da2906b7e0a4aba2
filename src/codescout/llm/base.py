"""Base LLM provider interface."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

# HTTP statuses worth retrying: rate limits and server-side failures
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})

# In-band stop reasons that mean "the call failed" rather than "the model stopped"
ERROR_STOP_REASONS = frozenset({"error", "aborted"})


class ToolCall(BaseModel):
    """A tool call from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A message in the conversation."""

    role: str  # "user", "assistant", "tool"
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str = ""  # For tool result messages
    name: str = ""  # Tool name for tool results


class ToolDefinition(BaseModel):
    """Definition of a tool the LLM can call."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class UsageStats(BaseModel):
    """Token and cost accounting for one or more completion calls."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0
    cost: float = 0.0

    def add(self, other: UsageStats) -> None:
        self.input += other.input
        self.output += other.output
        self.cache_read += other.cache_read
        self.cache_write += other.cache_write
        self.cost += other.cost

    @classmethod
    def total(cls, usages: list[UsageStats]) -> UsageStats:
        result = cls()
        for usage in usages:
            result.add(usage)
        return result


class LLMResponse(BaseModel):
    """Response from the LLM."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: str = ""
    usage: UsageStats = Field(default_factory=UsageStats)
    error_message: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def is_error(self) -> bool:
        """True when the provider reported a failure in-band instead of raising."""
        return self.stop_reason in ERROR_STOP_REASONS


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        pricing: dict[str, float] | None = None,
    ) -> None:
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.pricing = pricing or {}

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        tool_choice: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Send a completion request to the LLM.

        Args:
            system_prompt: System instructions.
            messages: Conversation history.
            tools: Tool schemas the model may call.
            tool_choice: Name of a tool the model is forced to call, if any.
        """
        ...

    def cost_of(self, usage: UsageStats) -> float:
        """Price a usage record using per-million-token rates."""
        return (
            usage.input * self.pricing.get("input", 0.0)
            + usage.output * self.pricing.get("output", 0.0)
            + usage.cache_read * self.pricing.get("cache_read", 0.0)
            + usage.cache_write * self.pricing.get("cache_write", 0.0)
        ) / 1_000_000


def is_transient_error(exc: BaseException) -> bool:
    """Classify an exception raised by a provider as retryable or not.

    Rate limits, server errors, timeouts and dropped connections are
    transient; anything else (bad request, auth, our own bugs) is not.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status in TRANSIENT_STATUS_CODES

    name = type(exc).__name__.lower()
    if any(marker in name for marker in ("ratelimit", "timeout", "connection", "overloaded")):
        return True

    message = str(exc).lower()
    return any(
        marker in message
        for marker in ("rate limit", "rate_limit", "429", "500", "502", "503", "529", "overloaded")
    )
