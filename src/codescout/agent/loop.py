"""Tool-using exploration loop for a single query.

Each QueryAgent:
1. Seeds the conversation with a relevance-scored file tree and a prefilled
   search turn
2. Lets the model call search/read/symbols/references until it calls finish
3. Retries transient model failures with backoff inside a wall-clock window
4. Forces a finish call once the iteration cap is reached

Every outcome, including failures, comes back as an AgentResult.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from codescout.agent.models import AgentResult, AgentState, AgentStatus, ToolExecution
from codescout.agent.prompts import (
    FORCE_FINISH,
    LAST_ITERATION_NUDGE,
    TOOL_NUDGE,
    WRAP_UP_NUDGE,
    get_system_prompt,
    get_user_message,
    symbols_unavailable_notice,
)
from codescout.config import AgentConfig, LLMConfig
from codescout.context.models import Query
from codescout.exceptions import ScoutCancelled
from codescout.intel.context import UNAVAILABLE_PREFIX, unavailable_message
from codescout.llm.base import LLMProvider, LLMResponse, Message, ToolCall, is_transient_error
from codescout.scanner.relevance import RelevanceScanner
from codescout.search.ripgrep import RipgrepSearch
from codescout.tools.coercion import coerce_array, coerce_object, coerce_summary, normalize_selection
from codescout.tools.definitions import FINISH_TOOL, SYMBOL_TOOLS, get_tool_definitions
from codescout.tools.registry import ToolRegistry

logger = logging.getLogger("codescout.agent")

T = TypeVar("T")

PREFILL_CALL_ID = "prefill_search"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def prefill_patterns(query: Query) -> list[str]:
    """Hint keywords, then query words of four or more alphanumeric characters."""
    patterns = query.hint_list()
    for word in query.query.split():
        cleaned = _NON_ALNUM.sub("", word.lower())
        if len(cleaned) >= 4 and cleaned not in patterns:
            patterns.append(cleaned)
    return patterns


@dataclass
class TransientRetry:
    """Backoff state for retryable model failures within one wall-clock window."""

    count: int = 0
    started: float = 0.0

    def next_delay(self, window_s: float, initial_s: float) -> float | None:
        """Seconds to wait before retrying, or None once the window is spent."""
        now = time.monotonic()
        if self.count == 0:
            self.started = now
        elapsed = now - self.started
        if elapsed >= window_s:
            return None
        self.count += 1
        return min(initial_s * 2 ** (self.count - 1), window_s - elapsed)

    def reset(self) -> None:
        self.count = 0


@dataclass
class EmptyResponseRetry:
    """Nudges spent on turns without any tool call."""

    count: int = 0

    def allow(self, limit: int) -> bool:
        if self.count >= limit:
            return False
        self.count += 1
        return True

    def reset(self) -> None:
        self.count = 0


@dataclass
class ForcedFinishRetry:
    """Retry state for the forced finish; the window starts when it is created."""

    count: int = 0
    started: float = field(default_factory=time.monotonic)

    def next_delay(self, window_s: float, initial_s: float) -> float | None:
        elapsed = time.monotonic() - self.started
        if elapsed >= window_s:
            return None
        self.count += 1
        return min(initial_s * 2 ** (self.count - 1), window_s - elapsed)


class QueryAgent:
    """Explores the repository for one query and returns file selections."""

    def __init__(
        self,
        provider: LLMProvider,
        tools: ToolRegistry,
        scanner: RelevanceScanner,
        searcher: RipgrepSearch,
        query: Query,
        config: AgentConfig | None = None,
        llm_config: LLMConfig | None = None,
        on_update: Callable[[AgentState], None] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.provider = provider
        self.tools = tools
        self.scanner = scanner
        self.searcher = searcher
        self.query = query
        self.config = config or AgentConfig()
        self.llm_config = llm_config or LLMConfig()
        self.on_update = on_update
        self.cancel = cancel

        self.state = AgentState(
            query=query.query,
            hints=query.hints,
            model=getattr(provider, "model", ""),
            max_iterations=self.config.max_iterations,
        )
        self.messages: list[Message] = []
        self.system_prompt = get_system_prompt()
        # Registered tools plus `finish`, which the loop handles itself
        self.definitions = [
            *tools.get_definitions(),
            *(d for d in get_tool_definitions() if d.name == FINISH_TOOL),
        ]

        self._transient = TransientRetry()
        self._empty = EmptyResponseRetry()
        self._symbols_unavailable: str | None = None
        self._symbols_notified = False

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> AgentResult:
        try:
            await self._prefill()
            result = await self._loop()
            if result is None:
                result = await self._force_finish()
            return result
        except ScoutCancelled:
            return self._fail("cancelled")
        except Exception as e:
            logger.exception("Agent for %r crashed", self.query.query)
            return self._fail(f"Agent error: {e}", str(e))

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def _prefill(self) -> None:
        patterns = prefill_patterns(self.query)
        tree = await self._race(asyncio.to_thread(self.scanner.scan, self.query.query, patterns))
        self.messages.append(
            Message(role="user", content=get_user_message(self.query.query, self.query.hints, tree.tree))
        )
        if not patterns:
            return

        searched = patterns[: self.config.prefill_patterns]
        args = {"patterns": searched}
        started = time.monotonic()
        try:
            result = await self._race(asyncio.to_thread(self.searcher.search_multi, searched))
        except ScoutCancelled:
            raise
        except Exception as e:
            logger.warning("Prefill search failed: %s", e)
            result = f"[prefill search error: {e}]"

        self.messages.append(
            Message(
                role="assistant",
                tool_calls=[ToolCall(id=PREFILL_CALL_ID, name="search", arguments=args)],
            )
        )
        self.messages.append(
            Message(role="tool", content=result, tool_call_id=PREFILL_CALL_ID, name="search")
        )
        self.state.tool_calls.append(
            ToolExecution(name="search", args=args, duration_ms=_ms_since(started))
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def _loop(self) -> AgentResult | None:
        """Run turns until finish, failure, or the iteration cap (returns None)."""
        max_iterations = self.config.max_iterations

        while self.state.iterations < max_iterations:
            self._check_cancelled()
            self.state.iterations += 1
            self._emit()

            try:
                response = await self._complete()
            except ScoutCancelled:
                raise
            except Exception as e:
                if is_transient_error(e) and await self._backoff():
                    self.state.iterations -= 1
                    continue
                logger.error("LLM call failed: %s", e)
                return self._fail(f"LLM error: {e}", str(e))

            if response.is_error:
                message = response.error_message or "Unknown API error"
                if await self._backoff():
                    self.state.iterations -= 1
                    continue
                return self._fail(f"API error: {message}", message)

            self._transient.reset()
            self.state.usage.add(response.usage)

            if not response.has_tool_calls:
                if self._empty.allow(self.config.max_empty_retries):
                    if response.content:
                        self.messages.append(Message(role="assistant", content=response.content))
                    self.messages.append(Message(role="user", content=TOOL_NUDGE))
                    continue
                return self._fail("No tool calls after retries")

            self._empty.reset()
            self.messages.append(
                Message(role="assistant", content=response.content, tool_calls=response.tool_calls)
            )

            finish = _find_finish(response)
            if finish is not None:
                return self._finish(finish)

            await self._execute_calls(response.tool_calls)
            self._govern()

        return None

    async def _execute_calls(self, calls: list[ToolCall]) -> None:
        """Run one turn's calls concurrently; record results in call order."""

        async def run_one(call: ToolCall) -> tuple[str, int]:
            started = time.monotonic()
            if call.name in SYMBOL_TOOLS and self._symbols_unavailable is not None:
                result = unavailable_message(self._symbols_unavailable)
            else:
                result = await self._race(self.tools.execute(call.name, call.arguments))
            return result, _ms_since(started)

        executed = await asyncio.gather(*(run_one(call) for call in calls))

        for call, (result, duration_ms) in zip(calls, executed):
            self.state.tool_calls.append(
                ToolExecution(name=call.name, args=call.arguments, duration_ms=duration_ms)
            )
            self.messages.append(
                Message(role="tool", content=result, tool_call_id=call.id, name=call.name)
            )
            if (
                call.name in SYMBOL_TOOLS
                and self._symbols_unavailable is None
                and result.startswith(UNAVAILABLE_PREFIX)
            ):
                reason = result[len(UNAVAILABLE_PREFIX):].split("]", 1)[0].strip()
                self._symbols_unavailable = reason or "initialization failed"
                logger.info("Symbol lookup unavailable for this run: %s", self._symbols_unavailable)

        self._emit()

    def _govern(self) -> None:
        """Append the one-time degradation notice and any wrap-up nudge."""
        if self._symbols_unavailable is not None and not self._symbols_notified:
            self._symbols_notified = True
            self.messages.append(
                Message(role="user", content=symbols_unavailable_notice(self._symbols_unavailable))
            )

        iterations = self.state.iterations
        max_iterations = self.config.max_iterations
        if self.config.wrap_up_after <= iterations < max_iterations - 1:
            self.messages.append(Message(role="user", content=WRAP_UP_NUDGE))
        if iterations == max_iterations - 1:
            self.messages.append(Message(role="user", content=LAST_ITERATION_NUDGE))

    async def _force_finish(self) -> AgentResult:
        self._emit()
        self.messages.append(Message(role="user", content=FORCE_FINISH))
        retry = ForcedFinishRetry()

        while True:
            self._check_cancelled()
            try:
                response = await self._complete(tool_choice=FINISH_TOOL)
            except ScoutCancelled:
                raise
            except Exception as e:
                delay = retry.next_delay(self.config.retry_wall_time_s, self.config.initial_backoff_s)
                if delay is not None:
                    await self._sleep(delay)
                    continue
                logger.error("Forced finish failed: %s", e)
                break

            if response.is_error:
                delay = retry.next_delay(self.config.retry_wall_time_s, self.config.initial_backoff_s)
                if delay is not None:
                    await self._sleep(delay)
                    continue
                break

            self.state.usage.add(response.usage)
            finish = _find_finish(response)
            if finish is not None:
                return self._finish(finish)

            if retry.count < self.config.max_finish_nudges:
                retry.count += 1
                continue
            break

        return self._fail("Failed to get finish call")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _complete(self, tool_choice: str | None = None) -> LLMResponse:
        call = self.provider.complete(
            system_prompt=self.system_prompt,
            messages=list(self.messages),
            tools=self.definitions,
            tool_choice=tool_choice,
            temperature=self.llm_config.temperature,
            max_tokens=self.llm_config.max_tokens,
        )
        return await self._race(asyncio.wait_for(call, self.llm_config.request_timeout_s))

    async def _backoff(self) -> bool:
        """Sleep before a transient retry. False once the retry window is spent."""
        delay = self._transient.next_delay(
            self.config.retry_wall_time_s, self.config.initial_backoff_s
        )
        if delay is None:
            return False
        logger.debug("Transient model failure, retrying in %.2fs", delay)
        await self._sleep(delay)
        return True

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise ScoutCancelled()

    async def _sleep(self, delay: float) -> None:
        if self.cancel is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(self.cancel.wait(), delay)
        except asyncio.TimeoutError:
            return
        raise ScoutCancelled()

    async def _race(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it if the cancel event fires first."""
        if self.cancel is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if not task.done():
            task.cancel()
            raise ScoutCancelled()
        if task.cancelled():
            raise ScoutCancelled()
        return task.result()

    def _emit(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state)

    def _finish(self, call: ToolCall) -> AgentResult:
        self.state.tool_calls.append(ToolExecution(name=call.name, args=call.arguments, duration_ms=0))
        payload = coerce_object(call.arguments)
        files = [normalize_selection(item) for item in coerce_array(payload.get("files"))]
        self.state.finalize(AgentStatus.DONE)
        self._emit()
        return AgentResult(
            summary=coerce_summary(payload.get("summary")),
            files=[f for f in files if f is not None],
            not_found=[n for n in coerce_array(payload.get("not_found")) if isinstance(n, str)],
            usage=self.state.usage,
            iterations=self.state.iterations,
            tool_calls=self.state.tool_calls,
        )

    def _fail(self, summary: str, error: str | None = None) -> AgentResult:
        error = error or summary
        self.state.finalize(AgentStatus.ERROR, error)
        self._emit()
        return AgentResult(
            summary=[summary],
            usage=self.state.usage,
            iterations=self.state.iterations,
            tool_calls=self.state.tool_calls,
            error=error,
        )


def _find_finish(response: LLMResponse) -> ToolCall | None:
    for call in response.tool_calls:
        if call.name == FINISH_TOOL:
            return call
    return None


def _ms_since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

