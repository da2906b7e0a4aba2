"""Tests for budget computation and value-density packing."""

from __future__ import annotations

import pytest

from codescout.config import BudgetConfig
from codescout.context.models import (
    Budget,
    LineRange,
    MergedSelection,
    ResolvedChunk,
    SelectionConfidence,
)
from codescout.context.packer import compute_budget, is_strong, pack, score


def make_chunk(
    file: str,
    tokens: int,
    loc: int = 10,
    confidence: SelectionConfidence | None = SelectionConfidence.MEDIUM,
    symbols: list[str] | None = None,
    query_count: int = 1,
    fallback_used: bool = False,
    full_file: bool = False,
) -> ResolvedChunk:
    selection = MergedSelection(
        file=file,
        symbols=symbols or [],
        confidence=confidence,
        query_count=query_count,
    )
    return ResolvedChunk(
        selection=selection,
        ranges=[LineRange(start=1, end=loc)],
        content=f"## {file}",
        loc=loc,
        estimated_tokens=tokens,
        total_lines=max(loc, 100),
        fallback_used=fallback_used,
        full_file=full_file,
    )


class TestComputeBudget:
    def test_single_query(self):
        assert compute_budget(1) == Budget(soft=18_000, hard=18_000)

    def test_scales_with_queries(self):
        assert compute_budget(3) == Budget(soft=36_000, hard=36_000)

    def test_soft_capped_first(self):
        assert compute_budget(5) == Budget(soft=45_000, hard=54_000)

    def test_hard_capped(self):
        assert compute_budget(10) == Budget(soft=45_000, hard=60_000)

    def test_custom_config(self):
        config = BudgetConfig(soft_max=1000, hard_max=2000, base=500, per_query=1000)
        assert compute_budget(2, config) == Budget(soft=1000, hard=1500)


class TestScore:
    def test_confidence_ordering(self):
        high = score(make_chunk("a", 10, confidence=SelectionConfidence.HIGH))
        medium = score(make_chunk("a", 10, confidence=SelectionConfidence.MEDIUM))
        low = score(make_chunk("a", 10, confidence=SelectionConfidence.LOW))
        unset = score(make_chunk("a", 10, confidence=None))
        assert high > medium > unset > low

    def test_shared_and_symbols(self):
        plain = score(make_chunk("a", 10))
        boosted = score(make_chunk("a", 10, symbols=["f"], query_count=2))
        assert boosted == pytest.approx(plain + 1.7 + 1.4)

    def test_penalties(self):
        base = score(make_chunk("a", 10, loc=300))
        assert score(make_chunk("a", 10, loc=300, fallback_used=True)) == pytest.approx(base - 0.9)
        assert score(make_chunk("a", 10, loc=300, full_file=True)) == pytest.approx(base - 1.2)

    def test_is_strong(self):
        assert is_strong(make_chunk("a", 10, confidence=SelectionConfidence.HIGH))
        assert is_strong(make_chunk("a", 10, symbols=["f"], query_count=2))
        assert is_strong(make_chunk("a", 10, symbols=["f", "g"]))
        assert not is_strong(make_chunk("a", 10, symbols=["f", "g"], fallback_used=True))
        assert not is_strong(make_chunk("a", 10))


class TestPack:
    def test_everything_fits(self):
        chunks = [make_chunk("big", 80), make_chunk("small", 20)]
        result = pack(chunks, Budget(soft=1000, hard=1000))
        assert [c.file for c in result.included] == ["small", "big"]
        assert result.omitted == []
        assert result.used_tokens == 100
        assert result.used_loc == 20

    def test_soft_ceiling_blocks_weak_chunks(self):
        chunks = [make_chunk("a", 80), make_chunk("b", 50)]
        result = pack(chunks, Budget(soft=100, hard=150))
        assert [c.file for c in result.included] == ["b"]
        assert [c.file for c in result.omitted] == ["a"]

    def test_strong_chunk_passes_soft_ceiling(self):
        chunks = [make_chunk("a", 80, confidence=SelectionConfidence.HIGH), make_chunk("b", 50)]
        result = pack(chunks, Budget(soft=100, hard=150))
        assert [c.file for c in result.included] == ["b", "a"]
        assert result.used_tokens == 130

    def test_hard_ceiling_is_absolute(self):
        chunks = [make_chunk("a", 120, confidence=SelectionConfidence.HIGH), make_chunk("b", 50)]
        result = pack(chunks, Budget(soft=100, hard=150))
        assert [c.file for c in result.included] == ["b"]
        assert result.used_tokens <= 150

    def test_forces_one_chunk_when_nothing_fits(self):
        chunks = [make_chunk("huge", 500), make_chunk("bigger", 900)]
        result = pack(chunks, Budget(soft=100, hard=150))
        assert [c.file for c in result.included] == ["huge"]
        assert [c.file for c in result.omitted] == ["bigger"]
        assert result.used_tokens == 500

    def test_empty(self):
        result = pack([], Budget(soft=100, hard=150))
        assert result.included == []
        assert result.used_tokens == 0
