"""Tests for the shared code-intelligence context."""

from __future__ import annotations

from pathlib import Path

import pytest

from codescout.intel.context import (
    UNAVAILABLE_PREFIX,
    CodeIntelContext,
    SymbolStatus,
    get_intel_context,
    unavailable_message,
)

from helpers import FakeSearcher


@pytest.fixture
def intel(tmp_project: Path, fake_searcher: FakeSearcher) -> CodeIntelContext:
    return CodeIntelContext(tmp_project, searcher=fake_searcher)


class TestInitialisation:
    @pytest.mark.asyncio
    async def test_ready(self, intel: CodeIntelContext):
        assert await intel.wait_ready()
        assert intel.is_ready
        assert "python" in intel.languages
        assert intel.unavailable_reason is None

    @pytest.mark.asyncio
    async def test_missing_root_is_unavailable(self, tmp_path: Path):
        intel = CodeIntelContext(tmp_path / "missing", searcher=FakeSearcher())
        assert not await intel.wait_ready()
        assert "initialization failed" in intel.unavailable_reason

        text = await intel.get_symbols("a.py")
        assert text.startswith(UNAVAILABLE_PREFIX)
        refs = await intel.find_references("a.py", symbol="x")
        assert refs.startswith(UNAVAILABLE_PREFIX)

    def test_registry_shares_contexts(self, tmp_path: Path):
        assert get_intel_context(tmp_path) is get_intel_context(tmp_path / ".")

    def test_unavailable_message(self):
        assert unavailable_message("timed out") == "[symbols unavailable: timed out]"


class TestSymbols:
    @pytest.mark.asyncio
    async def test_outline(self, intel: CodeIntelContext):
        text = await intel.get_symbols("models.py")
        assert text == (
            "class User (line 4)\n"
            "  method __init__ (line 7)\n"
            "  method display_name (line 11)\n"
            "class Order (line 16)\n"
            "  method __init__ (line 19)\n"
            "  method get_total (line 23)"
        )

    @pytest.mark.asyncio
    async def test_constants_and_functions(self, intel: CodeIntelContext):
        text = await intel.get_symbols("utils.py")
        assert text.splitlines() == [
            "constant TAX_RATE (line 3)",
            "function helper_function (line 6)",
            "function calculate_total (line 11)",
        ]

    @pytest.mark.asyncio
    async def test_unsupported_falls_back_to_read(self, intel: CodeIntelContext):
        text = await intel.get_symbols("config.yaml")
        assert text == (
            "[symbols unsupported: no symbol parser for this file type]\n"
            "Fallback read (config.yaml, first 2 lines):\n"
            "1: debug: true\n"
            "2: port: 8080"
        )

    @pytest.mark.asyncio
    async def test_not_found(self, intel: CodeIntelContext):
        assert await intel.get_symbols("nope.py") == "[File not found: nope.py]"
        outcome = await intel.document_symbols("../escape.py")
        assert outcome.status == SymbolStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_multi(self, intel: CodeIntelContext):
        text = await intel.get_symbols_multi(["api/auth.py", "nope.py"])
        assert text.startswith("### api/auth.py\nconstant SESSION_TTL (line 5)")
        assert text.endswith("### nope.py\n[File not found: nope.py]")

    @pytest.mark.asyncio
    async def test_resolve_ranges(self, intel: CodeIntelContext):
        ranges = await intel.resolve_symbol_ranges("models.py", ["user", "get_total"])
        assert ranges == [(4, 13), (23, 26)]

    @pytest.mark.asyncio
    async def test_resolve_ranges_unsupported(self, intel: CodeIntelContext):
        assert await intel.resolve_symbol_ranges("config.yaml", ["debug"]) == []


class TestReferences:
    @pytest.mark.asyncio
    async def test_by_symbol(self, intel: CodeIntelContext):
        text = await intel.find_references("api/auth.py", symbol="login")
        assert text == (
            "References (3 total):\n"
            "api/auth.py:12:5\n"
            "api/routes.py:3:22\n"
            "api/routes.py:9:12"
        )

    @pytest.mark.asyncio
    async def test_exclude_declaration(self, intel: CodeIntelContext):
        text = await intel.find_references("api/auth.py", symbol="login", include_declaration=False)
        assert text.startswith("References (2 total):\napi/routes.py:3:22")

    @pytest.mark.asyncio
    async def test_by_position(self, intel: CodeIntelContext):
        text = await intel.find_references("api/routes.py", line=9, column=12)
        assert text.startswith("References (3 total):")

    @pytest.mark.asyncio
    async def test_limit(self, intel: CodeIntelContext):
        text = await intel.find_references("api/auth.py", symbol="login", limit=1)
        assert text == "References (3 total):\napi/auth.py:12:5\n[...2 more references]"

    @pytest.mark.asyncio
    async def test_errors(self, intel: CodeIntelContext):
        assert await intel.find_references("api/auth.py", symbol="nope") == (
            "[Symbol not found in api/auth.py: nope]"
        )
        assert await intel.find_references("api/routes.py", line=2, column=1) == (
            "[No identifier at api/routes.py:2:1]"
        )
        assert await intel.find_references("missing.py", symbol="x") == "[File not found: missing.py]"
        assert await intel.find_references("api/auth.py") == (
            "[references requires either file+symbol or file+line+column]"
        )

    @pytest.mark.asyncio
    async def test_no_references(self, intel: CodeIntelContext):
        assert await intel.find_references("api/auth.py", symbol="logout") == "[No references]"
