"""Range resolution: turn merged selections into clamped spans and rendered chunks."""

from __future__ import annotations

import logging
from pathlib import Path

from codescout.config import ResolverConfig
from codescout.context.merger import dedupe_ranges
from codescout.context.models import LineRange, MergedSelection, ResolvedChunk
from codescout.context.tokens import estimate_tokens
from codescout.files import read_lines, resolve_in_root
from codescout.intel.context import CodeIntelContext

logger = logging.getLogger("codescout.context")

SPAN_SEPARATOR = "\n\n// ...\n\n"


def clamp_and_merge(
    ranges: list[LineRange],
    total_lines: int,
    config: ResolverConfig | None = None,
) -> list[LineRange]:
    """Clamp to the file, merge near-touching spans, then apply the line caps.

    Every returned range satisfies 1 <= start <= end <= total_lines.
    """
    config = config or ResolverConfig()
    if total_lines < 1:
        return []

    clamped = sorted(
        (
            (max(1, min(total_lines, r.start)), max(1, min(total_lines, r.end)))
            for r in ranges
        ),
        key=lambda r: r[0],
    )

    merged: list[list[int]] = []
    for start, end in clamped:
        if end < start:
            continue
        if merged and start <= merged[-1][1] + config.merge_gap:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    limited: list[LineRange] = []
    remaining = config.max_lines_per_file
    for start, end in merged:
        if remaining <= 0:
            break
        # Oversized spans keep their beginning
        end = min(end, start + config.max_lines_per_range - 1)
        take = min(end - start + 1, remaining)
        limited.append(LineRange(start=start, end=start + take - 1))
        remaining -= take
    return limited


def render_header(selection: MergedSelection) -> str:
    parts: list[str] = []
    if selection.reason:
        parts.append(selection.reason)
    if selection.confidence:
        parts.append(f"confidence:{selection.confidence.value}")
    if selection.query_count > 1:
        parts.append(f"shared:{selection.query_count}q")
    if not parts:
        return f"## {selection.file}"
    return f"## {selection.file} ({' | '.join(parts)})"


class RangeResolver:
    """Reads candidate files and produces one costed chunk per selection."""

    def __init__(
        self,
        root: Path,
        intel: CodeIntelContext | None = None,
        config: ResolverConfig | None = None,
    ) -> None:
        self.root = root
        self.intel = intel
        self.config = config or ResolverConfig()

    async def resolve(
        self, selections: list[MergedSelection]
    ) -> tuple[list[ResolvedChunk], list[MergedSelection]]:
        """Resolve every selection.

        Returns the chunks plus the selections that could not be read, so
        callers can still list them.
        """
        chunks: list[ResolvedChunk] = []
        unreadable: list[MergedSelection] = []
        for selection in selections:
            chunk = await self.resolve_one(selection)
            if chunk is None:
                unreadable.append(selection)
            else:
                chunks.append(chunk)
        return chunks, unreadable

    async def resolve_one(self, selection: MergedSelection) -> ResolvedChunk | None:
        path = resolve_in_root(self.root, selection.file)
        if path is None or not path.is_file():
            logger.debug("Skipping missing file %s", selection.file)
            return None
        try:
            lines = read_lines(path)
        except OSError as e:
            logger.warning("Could not read %s: %s", selection.file, e)
            return None

        total_lines = len(lines)
        ranges = list(selection.ranges)
        if selection.symbols and self.intel is not None:
            resolved = await self.intel.resolve_symbol_ranges(selection.file, selection.symbols)
            ranges += [LineRange(start=s, end=max(s, e)) for s, e in resolved if s >= 1]
        ranges = dedupe_ranges(ranges)

        fallback_used = False
        if not ranges and total_lines:
            fallback_used = True
            ranges = [LineRange(start=1, end=min(self.config.fallback_lines, total_lines))]

        spans = clamp_and_merge(ranges, total_lines, self.config)
        if not spans:
            return None

        rendered: list[str] = []
        raw_chunks: list[str] = []
        loc = 0
        for span in spans:
            raw = "\n".join(lines[span.start - 1 : span.end])
            loc += span.length
            raw_chunks.append(raw)
            rendered.append(f"// L{span.start}-{span.end}\n{raw}" if len(spans) > 1 else raw)

        content = f"{render_header(selection)}\n```\n{SPAN_SEPARATOR.join(rendered)}\n```"
        full_file = len(spans) == 1 and spans[0].start <= 1 and spans[0].end >= total_lines

        return ResolvedChunk(
            selection=selection,
            ranges=spans,
            content=content,
            loc=loc,
            estimated_tokens=estimate_tokens("\n".join(raw_chunks)),
            total_lines=total_lines,
            fallback_used=fallback_used,
            full_file=full_file,
        )
