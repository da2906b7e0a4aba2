"""Shared code-intelligence context: symbol outlines and reference lookup.

One context exists per project root and is shared by every agent of an
invocation (and kept warm across invocations in the same process). Its
initialisation is single-flight: the first caller starts it, everyone else
awaits the same task. A failed or timed-out initialisation turns every
symbol and reference request into an explicit "unavailable" answer.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from codescout.config import IntelConfig
from codescout.files import number_lines, read_lines, resolve_in_root
from codescout.parser import Symbol, parse_file
from codescout.parser.models import EXTENSION_LANGUAGE_MAP, detect_language
from codescout.search.ripgrep import RipgrepSearch

logger = logging.getLogger("codescout.intel")

# Tool results starting with this prefix tell the agent the capability is gone
UNAVAILABLE_PREFIX = "[symbols unavailable:"

_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


class SymbolStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNSUPPORTED = "unsupported"
    UNAVAILABLE = "unavailable"


@dataclass
class SymbolOutcome:
    """Symbols for one file, or why there are none.

    `UNAVAILABLE` means the service itself is down; `UNSUPPORTED` means no
    parser handles this file; `OK` with an empty list means the file simply
    declares nothing.
    """

    status: SymbolStatus
    symbols: list[Symbol] = field(default_factory=list)
    reason: str = ""


def unavailable_message(reason: str) -> str:
    return f"{UNAVAILABLE_PREFIX} {reason}]"


class CodeIntelContext:
    """Symbol and reference service for one project root."""

    def __init__(
        self,
        root: Path,
        config: IntelConfig | None = None,
        searcher: RipgrepSearch | None = None,
    ) -> None:
        self.root = root
        self.config = config or IntelConfig()
        self.searcher = searcher or RipgrepSearch(root)
        self.languages: set[str] = set()
        self._ready = False
        self._error: str | None = None
        self._init_task: asyncio.Task | None = None
        self._init_loop: asyncio.AbstractEventLoop | None = None
        self._cache: dict[str, tuple[int, list[Symbol]]] = {}

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _probe(self) -> set[str]:
        """Work out which languages have a working parser. Runs in a thread."""
        if not self.root.is_dir():
            raise FileNotFoundError(f"project root not found: {self.root}")

        from codescout.parser.tree_sitter_parser import is_available

        languages = {"python"}
        for language in set(EXTENSION_LANGUAGE_MAP.values()) - {"python"}:
            if is_available(language):
                languages.add(language)
        return languages

    async def _initialize(self) -> None:
        try:
            self.languages = await asyncio.wait_for(
                asyncio.to_thread(self._probe), self.config.init_timeout_s
            )
            self._ready = True
            logger.debug("Code intel ready for %s: %s", self.root, sorted(self.languages))
        except asyncio.TimeoutError:
            self._error = f"initialization timed out after {self.config.init_timeout_s:g}s"
            logger.warning("Code intel for %s: %s", self.root, self._error)
        except Exception as e:
            self._error = f"initialization failed: {e}"
            logger.warning("Code intel for %s: %s", self.root, self._error)

    def start(self) -> None:
        """Begin loading in the background on the running loop."""
        if self._ready or self._error:
            return
        loop = asyncio.get_running_loop()
        if self._init_task is None or self._init_loop is not loop:
            self._init_task = loop.create_task(self._initialize())
            self._init_loop = loop

    async def wait_ready(self) -> bool:
        """Await the shared initialisation. True when the service is usable."""
        self.start()
        if self._init_task is not None and not (self._ready or self._error):
            await asyncio.shield(self._init_task)
        return self.is_ready

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def unavailable_reason(self) -> str | None:
        return self._error

    # ------------------------------------------------------------------
    # Symbols
    # ------------------------------------------------------------------

    def _parse(self, rel: str, path: Path) -> list[Symbol]:
        mtime = path.stat().st_mtime_ns
        cached = self._cache.get(rel)
        if cached and cached[0] == mtime:
            return cached[1]
        source = path.read_text(encoding="utf-8", errors="replace")
        parsed = parse_file(rel, source)
        symbols = parsed.symbols if parsed else []
        self._cache[rel] = (mtime, symbols)
        return symbols

    async def document_symbols(self, file: str) -> SymbolOutcome:
        if not await self.wait_ready():
            return SymbolOutcome(SymbolStatus.UNAVAILABLE, reason=self.unavailable_reason or "not ready")

        path = resolve_in_root(self.root, file)
        if path is None or not path.is_file():
            return SymbolOutcome(SymbolStatus.NOT_FOUND, reason=f"File not found: {file}")

        language = detect_language(file)
        if language is None or language not in self.languages:
            return SymbolOutcome(SymbolStatus.UNSUPPORTED, reason="no symbol parser for this file type")
        if path.stat().st_size > self.config.max_file_size_kb * 1024:
            return SymbolOutcome(SymbolStatus.UNSUPPORTED, reason="file too large")

        try:
            symbols = await asyncio.wait_for(
                asyncio.to_thread(self._parse, file, path), self.config.request_timeout_s
            )
        except asyncio.TimeoutError:
            return SymbolOutcome(
                SymbolStatus.UNAVAILABLE,
                reason=f"symbol request timed out after {self.config.request_timeout_s:g}s",
            )
        except OSError as e:
            return SymbolOutcome(SymbolStatus.UNSUPPORTED, reason=f"read failed: {e}")
        return SymbolOutcome(SymbolStatus.OK, symbols=symbols)

    def _fallback_read(self, file: str, marker: str) -> str:
        path = resolve_in_root(self.root, file)
        try:
            lines = read_lines(path) if path else []
        except OSError as e:
            return f"{marker}\n[fallback read failed: {e}]"
        end = min(len(lines), self.config.fallback_read_lines)
        body = number_lines(lines, 1, self.config.fallback_read_lines)
        return f"{marker}\nFallback read ({file}, first {end} lines):\n{body}"

    async def get_symbols(self, file: str) -> str:
        """Indented outline for one file, formatted for the agent."""
        outcome = await self.document_symbols(file)
        if outcome.status == SymbolStatus.UNAVAILABLE:
            return unavailable_message(outcome.reason)
        if outcome.status == SymbolStatus.NOT_FOUND:
            return f"[{outcome.reason}]"
        if outcome.status == SymbolStatus.UNSUPPORTED:
            return self._fallback_read(file, f"[symbols unsupported: {outcome.reason}]")
        if not outcome.symbols:
            return self._fallback_read(file, "[no symbols found]")

        lines: list[str] = []

        def extract(symbols: list[Symbol], depth: int = 0) -> None:
            for symbol in symbols:
                lines.append(
                    f"{'  ' * depth}{symbol.kind.value} {symbol.name} (line {symbol.selection_line})"
                )
                extract(symbol.children, depth + 1)

        extract(outcome.symbols)
        return "\n".join(lines[: self.config.symbol_listing_limit])

    async def get_symbols_multi(self, files: list[str]) -> str:
        results = await asyncio.gather(*(self.get_symbols(f) for f in files))
        return "\n\n".join(f"### {file}\n{text}" for file, text in zip(files, results))

    async def resolve_symbol_ranges(self, file: str, names: list[str]) -> list[tuple[int, int]]:
        """Full definition ranges of every symbol whose name matches (case-insensitive)."""
        if not names:
            return []
        outcome = await self.document_symbols(file)
        if outcome.status != SymbolStatus.OK:
            return []

        wanted = {n.lower() for n in names}
        ranges: list[tuple[int, int]] = []
        for top in outcome.symbols:
            for symbol in top.walk():
                if symbol.name.lower() in wanted:
                    ranges.append((symbol.line_start, symbol.line_end))
        return ranges

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    async def find_references(
        self,
        file: str,
        symbol: str = "",
        line: int | None = None,
        column: int | None = None,
        include_declaration: bool = True,
        limit: int | None = None,
    ) -> str:
        """Whole-word usages of the identifier named by `symbol` or at `line:column`."""
        if not await self.wait_ready():
            return unavailable_message(self.unavailable_reason or "not ready")

        path = resolve_in_root(self.root, file)
        if path is None or not path.is_file():
            return f"[File not found: {file}]"

        name = ""
        declaration: tuple[int, int] | None = None

        if symbol and (line is None or column is None):
            outcome = await self.document_symbols(file)
            if outcome.status == SymbolStatus.UNAVAILABLE:
                return unavailable_message(outcome.reason)
            if outcome.status == SymbolStatus.OK:
                found = _find_symbol_bfs(outcome.symbols, symbol)
                if found is None:
                    return f"[Symbol not found in {file}: {symbol}]"
                name = found.name
                declaration = (found.selection_line, found.column_start + 1)
            else:
                # No parser for this file; search the bare identifier
                name = symbol
        elif line is not None and column is not None:
            try:
                lines = read_lines(path)
            except OSError as e:
                return f"[read error: {e}]"
            text = lines[line - 1] if 0 < line <= len(lines) else ""
            name = _identifier_at(text, column)
            if not name:
                return f"[No identifier at {file}:{line}:{column}]"
            declaration = None
        else:
            return "[references requires either file+symbol or file+line+column]"

        try:
            matches = await asyncio.wait_for(
                asyncio.to_thread(self.searcher.find_word, name), self.config.request_timeout_s
            )
        except asyncio.TimeoutError:
            return unavailable_message(
                f"reference request timed out after {self.config.request_timeout_s:g}s"
            )

        seen: set[tuple[str, int, int]] = set()
        locations: list[tuple[str, int, int]] = []
        for m in matches:
            key = (m.file, m.line, m.column)
            if key in seen:
                continue
            seen.add(key)
            if not include_declaration and declaration and (m.file, m.line, m.column) == (
                file, *declaration
            ):
                continue
            locations.append(key)

        if not locations:
            return "[No references]"

        locations.sort()
        cap = max(1, min(200, limit or self.config.references_limit))
        shown = locations[:cap]
        text = "\n".join(f"{f}:{ln}:{col}" for f, ln, col in shown)
        more = (
            f"\n[...{len(locations) - len(shown)} more references]"
            if len(locations) > len(shown)
            else ""
        )
        return f"References ({len(locations)} total):\n{text}{more}"


def _find_symbol_bfs(symbols: list[Symbol], target: str) -> Symbol | None:
    wanted = target.lower()
    queue = deque(symbols)
    while queue:
        item = queue.popleft()
        if item.name.lower() == wanted:
            return item
        queue.extend(item.children)
    return None


def _identifier_at(text: str, column: int) -> str:
    """Identifier covering the 1-based `column` of a line, if any."""
    idx = column - 1
    for match in _IDENTIFIER.finditer(text):
        if match.start() <= idx < match.end():
            return match.group(0)
    return ""


# ----------------------------------------------------------------------
# Process-wide registry
# ----------------------------------------------------------------------

_contexts: dict[Path, CodeIntelContext] = {}


def get_intel_context(
    root: Path,
    config: IntelConfig | None = None,
    searcher: RipgrepSearch | None = None,
) -> CodeIntelContext:
    """Return the context for `root`, creating it on first use."""
    key = root.resolve()
    context = _contexts.get(key)
    if context is None:
        context = CodeIntelContext(key, config, searcher)
        _contexts[key] = context
    return context
