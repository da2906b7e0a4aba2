"""Greedy value-density packing of resolved chunks into a two-tier token budget."""

from __future__ import annotations

from dataclasses import dataclass, field

from codescout.config import BudgetConfig
from codescout.context.models import Budget, ResolvedChunk, SelectionConfidence

_CONFIDENCE_WEIGHT = {
    SelectionConfidence.HIGH: 2.2,
    SelectionConfidence.MEDIUM: 1.0,
    SelectionConfidence.LOW: -0.4,
}


@dataclass
class PackResult:
    included: list[ResolvedChunk] = field(default_factory=list)
    omitted: list[ResolvedChunk] = field(default_factory=list)
    used_tokens: int = 0
    used_loc: int = 0


def compute_budget(query_count: int, config: BudgetConfig | None = None) -> Budget:
    """Ceilings grow by `per_query` for each extra query, up to the global maxima."""
    config = config or BudgetConfig()
    scaled = config.base + config.per_query * max(0, query_count - 1)
    hard = min(config.hard_max, scaled)
    return Budget(soft=min(config.soft_max, hard), hard=hard)


def score(chunk: ResolvedChunk) -> float:
    """Value of surfacing a chunk, before dividing by its cost."""
    selection = chunk.selection
    value = 1.0

    # Model confidence is a hint, not the source of truth
    if selection.confidence is not None:
        value += _CONFIDENCE_WEIGHT[selection.confidence]

    if selection.query_count > 1:
        value += 1.3 + 0.4 * (selection.query_count - 1)
    if selection.symbols:
        value += 1.4
    if chunk.ranges:
        value += 0.6

    selected = chunk.loc
    if 0 < selected <= 120:
        value += 0.8
    elif selected <= 240:
        value += 0.4
    elif selected > 420:
        value -= 0.5

    if chunk.fallback_used:
        value -= 0.9
    if chunk.full_file and selected > 220:
        value -= 1.2
    return value


def is_strong(chunk: ResolvedChunk) -> bool:
    """Whether a chunk may push the total past the soft ceiling."""
    selection = chunk.selection
    return (
        selection.confidence == SelectionConfidence.HIGH
        or (selection.query_count > 1 and bool(selection.symbols))
        or (len(selection.symbols) >= 2 and not chunk.fallback_used)
    )


def pack(chunks: list[ResolvedChunk], budget: Budget) -> PackResult:
    """Choose chunks by value density.

    Chunks fill up to the soft ceiling; past it only strong chunks are
    accepted, and never beyond the hard ceiling. If nothing fits at all the
    densest chunk is included anyway.
    """
    ranked = []
    for chunk in chunks:
        value = score(chunk)
        tokens = max(1, chunk.estimated_tokens)
        ranked.append((value / tokens, value, tokens, chunk))
    ranked.sort(key=lambda item: (-item[0], -item[1], item[2]))

    result = PackResult()
    for _, _, tokens, chunk in ranked:
        next_total = result.used_tokens + tokens
        if next_total <= budget.soft or (next_total <= budget.hard and is_strong(chunk)):
            result.included.append(chunk)
            result.used_tokens = next_total
            result.used_loc += chunk.loc
        else:
            result.omitted.append(chunk)

    if not result.included and result.omitted:
        forced = result.omitted.pop(0)
        result.included.append(forced)
        result.used_tokens = max(1, forced.estimated_tokens)
        result.used_loc = forced.loc
    return result
