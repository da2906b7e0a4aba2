"""Test doubles shared across the test modules."""

from __future__ import annotations

import shutil
from typing import Any

import pytest

from codescout.llm.base import LLMProvider, LLMResponse, Message, ToolCall, ToolDefinition, UsageStats
from codescout.scanner.relevance import SmartTree
from codescout.search.ripgrep import SearchOutcome, WordMatch

requires_rg = pytest.mark.skipif(shutil.which("rg") is None, reason="ripgrep (rg) not installed")


class FakeProvider(LLMProvider):
    """Replays a script of responses. Exceptions in the script are raised.

    Every call is recorded so tests can inspect the conversation the
    agent sent and the tool choice it forced.
    """

    def __init__(self, script: list[LLMResponse | BaseException]) -> None:
        super().__init__(model="fake-model")
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        tool_choice: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": [t.name for t in tools or []],
                "tool_choice": tool_choice,
            }
        )
        if not self.script:
            raise RuntimeError("script exhausted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def tool_response(*calls: tuple[str, dict], content: str = "") -> LLMResponse:
    """Response carrying the given (name, arguments) tool calls."""
    return LLMResponse(
        content=content,
        tool_calls=[
            ToolCall(id=f"call_{i}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ],
        stop_reason="tool_use",
        usage=UsageStats(input=100, output=20, cost=0.001),
    )


def finish_response(files: list[dict], summary: list[str] | None = None, **extra: Any) -> LLMResponse:
    args = {"summary": summary or ["Found it."], "files": files, **extra}
    return tool_response(("finish", args))


def text_response(content: str = "") -> LLMResponse:
    return LLMResponse(content=content, stop_reason="end_turn", usage=UsageStats(input=50, output=5))


def error_response(message: str = "overloaded") -> LLMResponse:
    return LLMResponse(stop_reason="error", error_message=message)


class RateLimitError(Exception):
    """Carries a 429 status like SDK rate-limit errors do."""

    status_code = 429


class FakeSearcher:
    """In-memory stand-in for RipgrepSearch."""

    def __init__(
        self,
        counts: dict[str, dict[str, int]] | None = None,
        words: dict[str, list[WordMatch]] | None = None,
    ) -> None:
        self.counts = counts or {}
        self.words = words or {}
        self.multi_calls: list[list[str]] = []

    def count_matches(self, pattern: str) -> dict[str, int]:
        return dict(self.counts.get(pattern, {}))

    def list_files(self, pattern: str) -> SearchOutcome:
        return SearchOutcome(files=sorted(self.counts.get(pattern, {})))

    def find_word(self, word: str) -> list[WordMatch]:
        return list(self.words.get(word, []))

    def search_multi(self, patterns: list[str]) -> str:
        self.multi_calls.append(list(patterns))
        sections = []
        for pattern in patterns:
            files = self.list_files(pattern).files
            sections.append(f"### {pattern}\n" + ("\n".join(files) if files else "No matches"))
        return "\n\n".join(sections)


class FakeScanner:
    """Returns a fixed seed tree and records what it was asked."""

    def __init__(self, tree: str = "api/\n  auth.py ★") -> None:
        self.tree = tree
        self.calls: list[tuple[str, list[str] | None]] = []

    def scan(self, query: str, hints: list[str] | None = None) -> SmartTree:
        self.calls.append((query, hints))
        return SmartTree(tree=self.tree, files=["api/auth.py"], patterns=list(hints or []))
