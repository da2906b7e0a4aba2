"""Built-in exploration tools: search, read, symbols, references, finish."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from codescout.config import ProjectConfig
from codescout.files import number_lines, read_lines, resolve_in_root
from codescout.intel.context import CodeIntelContext
from codescout.llm.base import ToolDefinition
from codescout.search.ripgrep import RipgrepSearch
from codescout.tools.coercion import (
    coerce_array,
    coerce_files_arg,
    coerce_integer,
    coerce_string,
)
from codescout.tools.registry import ToolRegistry
from codescout.ui.paths import minimal_paths

FINISH_TOOL = "finish"
SYMBOL_TOOLS = frozenset({"symbols", "references"})


class ScoutTools:
    """Tool implementations backing one agent.

    Arguments arrive straight from the model, so every parameter is coerced
    before use.
    """

    def __init__(
        self,
        root: Path,
        searcher: RipgrepSearch,
        intel: CodeIntelContext,
        config: ProjectConfig | None = None,
    ) -> None:
        self.root = root
        self.searcher = searcher
        self.intel = intel
        self.config = config or ProjectConfig()

    def search(self, patterns: Any = None, **_: Any) -> str:
        """Case-insensitive content search; lists matching files per pattern."""
        items = [str(p) for p in coerce_array(patterns) if str(p).strip()]
        if not items:
            return "[No valid patterns in request]"
        return self.searcher.search_multi(items)

    def read_file(self, file: str, start_line: int | None = None) -> str:
        path = resolve_in_root(self.root, file)
        if path is None:
            return f"[Access denied: {file} is outside the project root]"
        if not path.is_file():
            return f"[File not found: {file}]"
        try:
            lines = read_lines(path)
        except OSError as e:
            return f"[read error: {e}]"
        return number_lines(lines, start_line or 1, self.config.resolver.max_read_lines)

    def read(self, files: Any = None, **_: Any) -> str:
        """Read files with line numbers, optionally from a start line."""
        requests = []
        for item in coerce_files_arg(files):
            if isinstance(item, str) and item.strip():
                requests.append((item.strip(), None))
            elif isinstance(item, dict) and isinstance(item.get("file"), str):
                requests.append((item["file"].strip(), coerce_integer(item.get("start_line"))))
        if not requests:
            return "[No valid file paths in request]"

        results = []
        for file, start_line in requests:
            content = self.read_file(file, start_line)
            suffix = f":{start_line}" if start_line else ""
            results.append(f"### {file}{suffix}\n```\n{content}\n```")
        return "\n\n".join(results)

    async def symbols(self, files: Any = None, **_: Any) -> str:
        """Symbol outline for each file."""
        names = [str(f).strip() for f in coerce_array(files) if str(f).strip()]
        if not names:
            return "[No valid file paths in request]"
        return await self.intel.get_symbols_multi(names)

    async def references(
        self,
        file: Any = "",
        symbol: Any = "",
        line: Any = None,
        column: Any = None,
        include_declaration: Any = None,
        limit: Any = None,
        **_: Any,
    ) -> str:
        """Usages of a symbol, by name or by cursor position."""
        file = coerce_string(file).strip()
        if not file:
            return "[references requires file]"
        return await self.intel.find_references(
            file,
            symbol=coerce_string(symbol).strip(),
            line=coerce_integer(line),
            column=coerce_integer(column),
            include_declaration=include_declaration if isinstance(include_declaration, bool) else True,
            limit=coerce_integer(limit),
        )


# Tool definitions for the LLM

_TOOL_DEFINITIONS = [
    ToolDefinition(
        name="search",
        description="Search for patterns in the codebase (case-insensitive). Returns matching file paths per pattern.",
        parameters={
            "type": "object",
            "properties": {
                "patterns": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Search patterns",
                },
            },
            "required": ["patterns"],
        },
    ),
    ToolDefinition(
        name="read",
        description="Read files with line numbers (800 lines max per file).",
        parameters={
            "type": "object",
            "properties": {
                "files": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "file": {"type": "string"},
                            "start_line": {"type": "integer"},
                        },
                        "required": ["file"],
                    },
                },
            },
            "required": ["files"],
        },
    ),
    ToolDefinition(
        name="symbols",
        description="List the classes, functions and other symbols declared in files, with line numbers.",
        parameters={
            "type": "object",
            "properties": {
                "files": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["files"],
        },
    ),
    ToolDefinition(
        name="references",
        description="Find references to a symbol across the repository.",
        parameters={
            "type": "object",
            "properties": {
                "file": {"type": "string", "description": "File path for symbol lookup"},
                "symbol": {"type": "string", "description": "Symbol name in file (preferred)"},
                "line": {"type": "integer", "description": "1-based line if symbol omitted"},
                "column": {"type": "integer", "description": "1-based column if symbol omitted"},
                "include_declaration": {
                    "type": "boolean",
                    "description": "Include declaration in refs (default: true)",
                },
                "limit": {"type": "integer", "description": "Max refs to return (default: 80)"},
            },
            "required": ["file"],
        },
    ),
    ToolDefinition(
        name=FINISH_TOOL,
        description="Done. Provide summary and file selections.",
        parameters={
            "type": "object",
            "properties": {
                "summary": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "3-8 lines",
                },
                "files": {
                    "type": "array",
                    "description": (
                        "Minimum sufficient files with ranges or symbols "
                        "(often 3-12, up to 20 for broad architecture queries)"
                    ),
                    "items": {
                        "type": "object",
                        "properties": {
                            "file": {"type": "string"},
                            "ranges": {
                                "type": "array",
                                "description": "Line ranges within file",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "start": {"type": "integer"},
                                        "end": {"type": "integer"},
                                    },
                                    "required": ["start", "end"],
                                },
                            },
                            "symbols": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Symbol names to extract",
                            },
                            "reason": {"type": "string"},
                            "confidence": {
                                "type": "string",
                                "enum": ["high", "medium", "low"],
                                "description": "Confidence this file is needed in caller context",
                            },
                        },
                        "required": ["file", "reason"],
                    },
                },
                "not_found": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["summary", "files"],
        },
    ),
]


def get_tool_definitions() -> list[ToolDefinition]:
    """Get all built-in tool definitions."""
    return _TOOL_DEFINITIONS.copy()


def get_scout_tools(
    root: Path,
    searcher: RipgrepSearch,
    intel: CodeIntelContext,
    config: ProjectConfig | None = None,
) -> ToolRegistry:
    """Create a ToolRegistry populated with the exploration tools.

    `finish` has a definition but no implementation; the agent loop
    intercepts it.
    """
    config = config or ProjectConfig()
    tools = ScoutTools(root, searcher, intel, config)
    registry = ToolRegistry(timeout_s=config.agent.tool_timeout_s)

    impl_map = {
        "search": tools.search,
        "read": tools.read,
        "symbols": tools.symbols,
        "references": tools.references,
    }

    for defn in _TOOL_DEFINITIONS:
        func = impl_map.get(defn.name)
        if func:
            registry.register(func, defn)

    return registry


def _file_list(files: list[str], max_len: int = 50) -> str:
    """`[count] a.py, b.py… +N` using minimal unique names."""
    if not files:
        return "[]"
    preview = ""
    shown = 0
    for name in minimal_paths(files):
        addition = name if shown == 0 else f", {name}"
        if len(preview) + len(addition) > max_len - 10:
            break
        preview += addition
        shown += 1
    if len(files) > shown:
        preview += f"… +{len(files) - shown}"
    return f"[{len(files)}] {preview}"


def format_tool_call(name: str, args: dict[str, Any]) -> str:
    """One-line description of a tool call for progress display."""
    if name == "search":
        patterns = [str(p) for p in coerce_array(args.get("patterns"))]
        preview = " ".join(patterns[:4])
        if len(preview) > 40:
            preview = preview[:37] + "…"
        return f"search [{len(patterns)}] {preview}"
    if name == "read":
        files = [
            f if isinstance(f, str) else f.get("file")
            for f in coerce_array(args.get("files"))
            if isinstance(f, (str, dict))
        ]
        return "read " + _file_list([f for f in files if isinstance(f, str) and f])
    if name == "symbols":
        files = [str(f) for f in coerce_array(args.get("files")) if str(f)]
        return "symbols " + _file_list(files)
    if name == "references":
        file = args.get("file") or "?"
        if args.get("symbol"):
            target = f"#{args['symbol']}"
        elif args.get("line") and args.get("column"):
            target = f":{args['line']}:{args['column']}"
        else:
            target = ""
        return f"refs {file}{target}"
    if name == FINISH_TOOL:
        files = coerce_array(args.get("files"))
        ranges = sum(
            len(f.get("ranges") or []) + len(f.get("symbols") or [])
            for f in files
            if isinstance(f, dict)
        )
        return f"✓ {len(files)} files, {ranges} ranges"
    return f"{name} {json.dumps(args)[:40]}"
