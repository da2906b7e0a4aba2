"""Cross-query selection merging."""

from __future__ import annotations

from typing import Any

from codescout.context.models import (
    DEFAULT_REASON,
    FileSelection,
    LineRange,
    MergedSelection,
    Query,
    max_confidence,
)
from codescout.tools.coercion import normalize_selection


def dedupe_ranges(ranges: list[LineRange]) -> list[LineRange]:
    """Drop exact duplicates, keeping first-seen order."""
    seen: set[tuple[int, int]] = set()
    out: list[LineRange] = []
    for r in ranges:
        key = (r.start, r.end)
        if key in seen:
            continue
        seen.add(key)
        out.append(r)
    return out


def join_reasons(reasons: list[str]) -> str:
    """Sorted "; " join. The default reason only survives on its own."""
    specific = sorted({r for r in reasons if r and r != DEFAULT_REASON})
    if specific:
        return "; ".join(specific)
    return DEFAULT_REASON if reasons else ""


def merge_into(target: MergedSelection, incoming: FileSelection, query: str) -> None:
    """Fold one selection into the merged entry for the same file.

    Every field is kept in a canonical order, so the result does not depend
    on which selection arrived first, and folding the same selection twice
    changes nothing.
    """
    target.queries = sorted({*target.queries, query})
    target.query_count = len(target.queries)

    target.ranges = sorted(
        dedupe_ranges([*target.ranges, *incoming.ranges]), key=lambda r: (r.start, r.end)
    )
    target.symbols = sorted({*target.symbols, *incoming.symbols})

    target.confidence = max_confidence(target.confidence, incoming.confidence)

    if incoming.reason and incoming.reason not in target.reasons:
        target.reasons = sorted([*target.reasons, incoming.reason])
    target.reason = join_reasons(target.reasons)


def merge_selections(
    per_query: list[tuple[Query, list[FileSelection | dict[str, Any]]]],
) -> list[MergedSelection]:
    """Consolidate every agent's selections into one entry per file.

    Raw dict selections are normalized first and dropped when unusable.
    Entries come back in first-seen order.
    """
    merged: dict[str, MergedSelection] = {}

    for query, selections in per_query:
        for raw in selections:
            if isinstance(raw, FileSelection):
                raw = raw.model_dump(mode="json")
            sel = normalize_selection(raw)
            if sel is None:
                continue

            entry = merged.get(sel.file)
            if entry is None:
                entry = MergedSelection(file=sel.file, reason="", query_count=0)
                merged[sel.file] = entry
            merge_into(entry, sel, query.query)

    return list(merged.values())
