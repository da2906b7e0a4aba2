"""LLM provider abstraction layer."""

from codescout.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    UsageStats,
    is_transient_error,
)
from codescout.llm.factory import create_provider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "UsageStats",
    "create_provider",
    "is_transient_error",
]
