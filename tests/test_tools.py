"""Tests for the exploration tools and the tool registry."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from codescout.intel.context import CodeIntelContext
from codescout.llm.base import ToolDefinition
from codescout.tools import (
    FINISH_TOOL,
    ScoutTools,
    ToolRegistry,
    format_tool_call,
    get_scout_tools,
    get_tool_definitions,
)
from codescout.ui.paths import minimal_paths, shorten_path

from helpers import FakeSearcher


@pytest.fixture
def tools(tmp_project: Path, fake_searcher: FakeSearcher) -> ScoutTools:
    return ScoutTools(tmp_project, fake_searcher, CodeIntelContext(tmp_project, searcher=fake_searcher))


class TestSearch:
    def test_search(self, tools: ScoutTools, fake_searcher: FakeSearcher):
        result = tools.search(patterns='["login"]')
        assert result == "### login\napi/auth.py\napi/routes.py"
        assert fake_searcher.multi_calls == [["login"]]

    def test_empty_request(self, tools: ScoutTools):
        assert tools.search(patterns=[]) == "[No valid patterns in request]"
        assert tools.search(patterns="login") == "[No valid patterns in request]"


class TestRead:
    def test_read_with_start_line(self, tools: ScoutTools):
        result = tools.read(files=[{"file": "utils.py", "start_line": "6"}])
        assert result.startswith("### utils.py:6\n```\n6: def helper_function(value):\n")
        assert result.endswith("```")

    def test_read_plain_paths(self, tools: ScoutTools):
        result = tools.read(files='["config.yaml"]')
        assert result == "### config.yaml\n```\n1: debug: true\n2: port: 8080\n```"

    def test_read_errors(self, tools: ScoutTools):
        result = tools.read(files=["../secret.txt", "missing.py"])
        assert "[Access denied: ../secret.txt is outside the project root]" in result
        assert "[File not found: missing.py]" in result

    def test_read_empty(self, tools: ScoutTools):
        assert tools.read(files=[]) == "[No valid file paths in request]"
        assert tools.read() == "[No valid file paths in request]"


class TestSymbolTools:
    @pytest.mark.asyncio
    async def test_symbols(self, tools: ScoutTools):
        result = await tools.symbols(files=["models.py"])
        assert result.startswith("### models.py\nclass User (line 4)")

    @pytest.mark.asyncio
    async def test_references(self, tools: ScoutTools):
        result = await tools.references(file="api/auth.py", symbol="login", limit="2")
        assert result.startswith("References (3 total):")
        assert result.endswith("[...1 more references]")

    @pytest.mark.asyncio
    async def test_references_requires_file(self, tools: ScoutTools):
        assert await tools.references(symbol="login") == "[references requires file]"


class TestToolRegistry:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        assert await ToolRegistry().execute("nope", {}) == "[Unknown tool: nope]"

    @pytest.mark.asyncio
    async def test_sync_and_raw_arguments(self):
        registry = ToolRegistry()
        registry.register(lambda text="": text.upper(), ToolDefinition(name="shout", description=""))
        assert await registry.execute("shout", {"text": "hi"}) == "HI"
        assert await registry.execute("shout", {"_raw": '{"text": "raw"'}) == "RAW"

    @pytest.mark.asyncio
    async def test_errors_become_text(self):
        def boom() -> str:
            raise RuntimeError("kaput")

        registry = ToolRegistry()
        registry.register(boom, ToolDefinition(name="boom", description=""))
        assert await registry.execute("boom", {}) == "[boom error: kaput]"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow() -> str:
            await asyncio.sleep(5)
            return "late"

        registry = ToolRegistry(timeout_s=0.05)
        registry.register(slow, ToolDefinition(name="slow", description=""))
        assert await registry.execute("slow", {}) == "[slow error: timed out after 0.05s]"

    def test_scout_registry(self, tmp_project: Path, fake_searcher: FakeSearcher):
        intel = CodeIntelContext(tmp_project, searcher=fake_searcher)
        registry = get_scout_tools(tmp_project, fake_searcher, intel)
        assert registry.list_tools() == ["search", "read", "symbols", "references"]
        assert FINISH_TOOL not in registry.list_tools()

    def test_registered_definitions(self, tmp_project: Path, fake_searcher: FakeSearcher):
        intel = CodeIntelContext(tmp_project, searcher=fake_searcher)
        registry = get_scout_tools(tmp_project, fake_searcher, intel)
        definitions = registry.get_definitions()
        assert [d.name for d in definitions] == registry.list_tools()
        assert all(d.description for d in definitions)

    def test_definitions(self):
        names = [d.name for d in get_tool_definitions()]
        assert names == ["search", "read", "symbols", "references", "finish"]


class TestFormatToolCall:
    def test_search(self):
        assert format_tool_call("search", {"patterns": ["login", "session"]}) == "search [2] login session"

    def test_search_truncated(self):
        text = format_tool_call(
            "search",
            {"patterns": ["authentication", "authorization", "sessionmanager", "middleware"]},
        )
        assert text == "search [4] authentication authorization sessionm…"

    def test_read(self):
        text = format_tool_call("read", {"files": [{"file": "api/auth.py"}, "models.py"]})
        assert text == "read [2] auth.py, models.py"

    def test_read_many(self):
        files = [f"src/module_{i}.py" for i in range(10)]
        text = format_tool_call("read", {"files": files})
        assert text.startswith("read [10] module_0.py")
        assert text.endswith("… +7")

    def test_references(self):
        assert format_tool_call("references", {"file": "a.py", "symbol": "login"}) == "refs a.py#login"
        assert format_tool_call("references", {"file": "a.py", "line": 3, "column": 4}) == "refs a.py:3:4"

    def test_finish(self):
        args = {
            "files": [
                {"file": "a.py", "ranges": [{"start": 1, "end": 2}, {"start": 5, "end": 9}]},
                {"file": "b.py", "symbols": ["login"]},
            ]
        }
        assert format_tool_call("finish", args) == "✓ 2 files, 3 ranges"

    def test_other(self):
        assert format_tool_call("custom", {"a": 1}) == 'custom {"a": 1}'


class TestPaths:
    def test_minimal_paths(self):
        assert minimal_paths(["src/a.py", "lib/b.py"]) == ["a.py", "b.py"]
        assert minimal_paths(["a/x/utils.py", "b/x/utils.py", "c/main.py"]) == [
            "a/x/utils.py",
            "b/x/utils.py",
            "main.py",
        ]
        assert minimal_paths(["a/utils.py", "b/utils.py"]) == ["a/utils.py", "b/utils.py"]
        assert minimal_paths([]) == []

    def test_shorten_path(self):
        home = str(Path.home())
        assert shorten_path(f"{home}/src/project") == "~/src/project"
        assert shorten_path("/opt/project") == "/opt/project"
