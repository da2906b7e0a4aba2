"""Tests for the per-query exploration loop."""

from __future__ import annotations

import asyncio

import pytest

from codescout.agent.loop import (
    PREFILL_CALL_ID,
    QueryAgent,
    TransientRetry,
    prefill_patterns,
)
from codescout.agent.models import AgentState, AgentStatus
from codescout.agent.prompts import (
    FORCE_FINISH,
    LAST_ITERATION_NUDGE,
    TOOL_NUDGE,
    WRAP_UP_NUDGE,
    symbols_unavailable_notice,
)
from codescout.config import AgentConfig
from codescout.context.models import LineRange, Query, SelectionConfidence
from codescout.intel.context import unavailable_message
from codescout.llm.base import LLMProvider, LLMResponse
from codescout.tools import ToolRegistry, get_tool_definitions

from helpers import (
    FakeProvider,
    FakeScanner,
    FakeSearcher,
    RateLimitError,
    error_response,
    finish_response,
    text_response,
    tool_response,
)

AUTH_SELECTION = {
    "file": "api/auth.py",
    "symbols": ["login"],
    "reason": "login entry point",
    "confidence": "high",
}


class RecordingTools:
    """Registry of trivial tools that remembers every call."""

    def __init__(self, symbols_result: str = "function login (line 12)") -> None:
        self.calls: list[tuple[str, dict]] = []
        self.symbols_result = symbols_result
        self.registry = ToolRegistry(timeout_s=5)
        defs = {d.name: d for d in get_tool_definitions()}

        def search(**kwargs):
            self.calls.append(("search", kwargs))
            return "### login\napi/auth.py"

        def read(**kwargs):
            self.calls.append(("read", kwargs))
            return "### api/auth.py\n```\n1: ...\n```"

        async def symbols(**kwargs):
            self.calls.append(("symbols", kwargs))
            return self.symbols_result

        async def references(**kwargs):
            self.calls.append(("references", kwargs))
            return "References (1 total):\napi/auth.py:12:5"

        for name, func in (
            ("search", search),
            ("read", read),
            ("symbols", symbols),
            ("references", references),
        ):
            self.registry.register(func, defs[name])


def make_agent(
    script,
    query: Query | None = None,
    config: AgentConfig | None = None,
    tools: RecordingTools | None = None,
    searcher=None,
    cancel: asyncio.Event | None = None,
    on_update=None,
    provider: LLMProvider | None = None,
):
    provider = provider or FakeProvider(script)
    agent = QueryAgent(
        provider=provider,
        tools=(tools or RecordingTools()).registry,
        scanner=FakeScanner(),
        searcher=searcher or FakeSearcher(counts={"login": {"api/auth.py": 3}}),
        query=query or Query(query="where is login handled", hints="login"),
        config=config or AgentConfig(initial_backoff_s=0.001, retry_wall_time_s=5.0),
        on_update=on_update,
        cancel=cancel,
    )
    return agent, provider


class HangingProvider(LLMProvider):
    """Never answers; used to check cancellation of in-flight calls."""

    def __init__(self) -> None:
        super().__init__(model="hanging")
        self.started = asyncio.Event()

    async def complete(self, system_prompt, messages, tools=None, tool_choice=None,
                       temperature=0.0, max_tokens=4096) -> LLMResponse:
        self.started.set()
        await asyncio.sleep(60)
        return LLMResponse()


class FailingProvider(LLMProvider):
    """Always raises a rate-limit error, counting attempts."""

    def __init__(self) -> None:
        super().__init__(model="failing")
        self.attempts = 0
        self.failed = asyncio.Event()

    async def complete(self, system_prompt, messages, tools=None, tool_choice=None,
                       temperature=0.0, max_tokens=4096) -> LLMResponse:
        self.attempts += 1
        self.failed.set()
        raise RateLimitError("slow down")


class TestPrefillPatterns:
    def test_hints_then_words(self):
        query = Query(query="Where's the Session-Token refresh?", hints="auth, jwt")
        assert prefill_patterns(query) == ["auth", "jwt", "wheres", "sessiontoken", "refresh"]

    def test_no_duplicates(self):
        assert prefill_patterns(Query(query="login login", hints="login")) == ["login"]


class TestTransientRetry:
    def test_exponential_delays(self):
        retry = TransientRetry()
        assert retry.next_delay(100.0, 1.0) == pytest.approx(1.0)
        assert retry.next_delay(100.0, 1.0) == pytest.approx(2.0)
        assert retry.next_delay(100.0, 1.0) == pytest.approx(4.0)
        retry.reset()
        assert retry.next_delay(100.0, 1.0) == pytest.approx(1.0)

    def test_window_spent(self):
        assert TransientRetry().next_delay(0.0, 1.0) is None


class TestFinish:
    @pytest.mark.asyncio
    async def test_search_then_finish(self):
        agent, provider = make_agent(
            [
                tool_response(("search", {"patterns": ["login"]})),
                finish_response([AUTH_SELECTION], not_found=["oauth flow"]),
            ]
        )
        result = await agent.run()

        assert result.error is None
        assert result.summary == ["Found it."]
        assert result.not_found == ["oauth flow"]
        assert len(result.files) == 1
        selection = result.files[0]
        assert selection.file == "api/auth.py"
        assert selection.symbols == ["login"]
        assert selection.confidence == SelectionConfidence.HIGH
        assert result.iterations == 2
        assert result.usage.input == 200
        assert [c.name for c in result.tool_calls] == ["search", "search", "finish"]
        assert agent.state.status == AgentStatus.DONE
        assert len(provider.calls) == 2
        assert provider.calls[0]["tool_choice"] is None
        assert provider.calls[0]["tools"] == ["search", "read", "symbols", "references", "finish"]

    @pytest.mark.asyncio
    async def test_stringified_payload(self):
        agent, _ = make_agent(
            [
                tool_response(
                    (
                        "finish",
                        {
                            "summary": "Login is in auth.",
                            "files": '[{"file": "a.py", "ranges": [{"start": 1, "end": 3}]}, {"nofile": 1}]',
                        },
                    )
                )
            ]
        )
        result = await agent.run()
        assert result.summary == ["Login is in auth."]
        assert [f.file for f in result.files] == ["a.py"]
        assert result.files[0].ranges == [LineRange(start=1, end=3)]

    @pytest.mark.asyncio
    async def test_finish_wins_over_sibling_calls(self):
        tools = RecordingTools()
        agent, _ = make_agent(
            [tool_response(("search", {"patterns": ["x"]}), ("finish", {"summary": ["done"], "files": []}))],
            tools=tools,
        )
        result = await agent.run()
        assert result.error is None
        assert result.files == []
        assert tools.calls == []

    @pytest.mark.asyncio
    async def test_progress_updates(self):
        snapshots: list[AgentStatus] = []

        def on_update(state: AgentState) -> None:
            snapshots.append(state.status)

        agent, _ = make_agent([finish_response([AUTH_SELECTION])], on_update=on_update)
        await agent.run()
        assert snapshots[0] == AgentStatus.RUNNING
        assert snapshots[-1] == AgentStatus.DONE


class TestPrefill:
    @pytest.mark.asyncio
    async def test_prefill_search_recorded_first(self):
        searcher = FakeSearcher(counts={"login": {"api/auth.py": 3}})
        agent, provider = make_agent([finish_response([AUTH_SELECTION])], searcher=searcher)
        result = await agent.run()

        assert searcher.multi_calls == [["login", "where", "handled"]]
        first = result.tool_calls[0]
        assert first.name == "search"
        assert first.args == {"patterns": ["login", "where", "handled"]}

        messages = provider.calls[0]["messages"]
        assert messages[0].role == "user"
        assert messages[0].content.startswith("Query: where is login handled\nHints: login\n\n<file_tree")
        assert "api/\n  auth.py ★" in messages[0].content
        assert messages[1].tool_calls[0].id == PREFILL_CALL_ID
        assert messages[2].role == "tool"
        assert messages[2].tool_call_id == PREFILL_CALL_ID
        assert messages[2].content.startswith("### login\napi/auth.py")

    @pytest.mark.asyncio
    async def test_no_patterns_skips_prefill(self):
        agent, provider = make_agent([finish_response([])], query=Query(query="how is it"))
        result = await agent.run()
        assert len(provider.calls[0]["messages"]) == 1
        assert [c.name for c in result.tool_calls] == ["finish"]

    @pytest.mark.asyncio
    async def test_prefill_failure_is_reported_to_model(self):
        class BrokenSearcher(FakeSearcher):
            def search_multi(self, patterns):
                raise RuntimeError("rg missing")

        agent, provider = make_agent([finish_response([])], searcher=BrokenSearcher())
        await agent.run()
        assert provider.calls[0]["messages"][2].content == "[prefill search error: rg missing]"


class TestEmptyResponses:
    @pytest.mark.asyncio
    async def test_nudged_then_recovers(self):
        agent, provider = make_agent([text_response("let me think"), finish_response([AUTH_SELECTION])])
        result = await agent.run()
        assert result.error is None
        messages = provider.calls[1]["messages"]
        assert messages[-2].role == "assistant"
        assert messages[-2].content == "let me think"
        assert messages[-1].content == TOOL_NUDGE

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        agent, provider = make_agent([text_response(), text_response(), text_response()])
        result = await agent.run()
        assert result.error == "No tool calls after retries"
        assert result.summary == ["No tool calls after retries"]
        assert result.iterations == 3
        assert len(provider.calls) == 3
        assert agent.state.status == AgentStatus.ERROR


class TestModelErrors:
    @pytest.mark.asyncio
    async def test_transient_error_retried(self):
        agent, provider = make_agent([RateLimitError("slow down"), finish_response([AUTH_SELECTION])])
        result = await agent.run()
        assert result.error is None
        assert result.iterations == 1
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_in_band_error_retried(self):
        agent, _ = make_agent([error_response("overloaded"), finish_response([AUTH_SELECTION])])
        result = await agent.run()
        assert result.error is None
        assert len(result.files) == 1

    @pytest.mark.asyncio
    async def test_non_transient_error_fails(self):
        agent, provider = make_agent([ValueError("invalid request")])
        result = await agent.run()
        assert result.summary == ["LLM error: invalid request"]
        assert result.error == "invalid request"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_retry_window_exhausted(self):
        config = AgentConfig(initial_backoff_s=0.001, retry_wall_time_s=0.0)
        agent, _ = make_agent([error_response("overloaded")], config=config)
        result = await agent.run()
        assert result.summary == ["API error: overloaded"]
        assert result.error == "overloaded"

    @pytest.mark.asyncio
    async def test_transient_window_exhausted(self):
        config = AgentConfig(initial_backoff_s=0.001, retry_wall_time_s=0.0)
        agent, _ = make_agent([RateLimitError("slow down")], config=config)
        result = await agent.run()
        assert result.summary == ["LLM error: slow down"]

    @pytest.mark.asyncio
    async def test_default_api_error_message(self):
        config = AgentConfig(retry_wall_time_s=0.0)
        agent, _ = make_agent([LLMResponse(stop_reason="aborted")], config=config)
        result = await agent.run()
        assert result.error == "Unknown API error"


class TestIterationLimits:
    @pytest.mark.asyncio
    async def test_wrap_up_nudge(self):
        config = AgentConfig(max_iterations=5, wrap_up_after=1, initial_backoff_s=0.001)
        agent, provider = make_agent(
            [tool_response(("search", {"patterns": ["x"]})), finish_response([AUTH_SELECTION])],
            config=config,
        )
        await agent.run()
        assert provider.calls[1]["messages"][-1].content == WRAP_UP_NUDGE

    @pytest.mark.asyncio
    async def test_forced_finish(self):
        config = AgentConfig(max_iterations=2, wrap_up_after=6, initial_backoff_s=0.001)
        agent, provider = make_agent(
            [
                tool_response(("search", {"patterns": ["x"]})),
                tool_response(("read", {"files": ["api/auth.py"]})),
                finish_response([AUTH_SELECTION]),
            ],
            config=config,
        )
        result = await agent.run()

        assert result.error is None
        assert result.iterations == 2
        assert provider.calls[1]["messages"][-1].content == LAST_ITERATION_NUDGE
        assert provider.calls[2]["tool_choice"] == "finish"
        assert provider.calls[2]["messages"][-1].content == FORCE_FINISH

    @pytest.mark.asyncio
    async def test_forced_finish_gives_up(self):
        config = AgentConfig(max_iterations=1, initial_backoff_s=0.001)
        agent, provider = make_agent(
            [
                tool_response(("search", {"patterns": ["x"]})),
                text_response(),
                text_response(),
                text_response(),
            ],
            config=config,
        )
        result = await agent.run()
        assert result.error == "Failed to get finish call"
        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_forced_finish_retries_errors(self):
        config = AgentConfig(max_iterations=1, initial_backoff_s=0.001, retry_wall_time_s=5.0)
        agent, _ = make_agent(
            [
                tool_response(("search", {"patterns": ["x"]})),
                RuntimeError("boom"),
                finish_response([AUTH_SELECTION]),
            ],
            config=config,
        )
        result = await agent.run()
        assert result.error is None


class TestSymbolDegradation:
    @pytest.mark.asyncio
    async def test_notice_once_and_short_circuit(self):
        reason = "initialization failed: no parser"
        tools = RecordingTools(symbols_result=unavailable_message(reason))
        agent, provider = make_agent(
            [
                tool_response(("symbols", {"files": ["api/auth.py"]})),
                tool_response(("references", {"file": "api/auth.py", "symbol": "login"})),
                finish_response([AUTH_SELECTION]),
            ],
            tools=tools,
        )
        result = await agent.run()

        assert result.error is None
        assert [name for name, _ in tools.calls] == ["symbols"]

        notice = symbols_unavailable_notice(reason)
        final_messages = provider.calls[2]["messages"]
        assert [m.content for m in final_messages].count(notice) == 1
        short_circuited = [m for m in final_messages if m.role == "tool" and m.name == "references"]
        assert short_circuited[0].content == unavailable_message(reason)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        agent, provider = make_agent([finish_response([AUTH_SELECTION])], cancel=cancel)
        result = await agent.run()
        assert result.error == "cancelled"
        assert agent.state.status == AgentStatus.ERROR
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_cancel_in_flight_call(self):
        cancel = asyncio.Event()
        provider = HangingProvider()
        agent, _ = make_agent([], cancel=cancel, provider=provider)

        task = asyncio.ensure_future(agent.run())
        await asyncio.wait_for(provider.started.wait(), 5)
        cancel.set()
        result = await asyncio.wait_for(task, 5)
        assert result.error == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self):
        cancel = asyncio.Event()
        provider = FailingProvider()
        config = AgentConfig(initial_backoff_s=20.0, retry_wall_time_s=60.0)
        agent, _ = make_agent([], cancel=cancel, provider=provider, config=config)

        loop = asyncio.get_running_loop()
        started = loop.time()
        task = asyncio.ensure_future(agent.run())
        await asyncio.wait_for(provider.failed.wait(), 5)
        cancel.set()
        result = await asyncio.wait_for(task, 5)

        assert result.error == "cancelled"
        assert provider.attempts == 1
        assert loop.time() - started < config.retry_wall_time_s
