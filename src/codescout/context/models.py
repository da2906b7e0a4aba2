"""Data models for selections, resolved chunks and token budgets."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_REASON = "Relevant to query"


class Query(BaseModel):
    """One natural-language retrieval request."""

    model_config = ConfigDict(frozen=True)

    query: str
    hints: str | None = None

    def hint_list(self) -> list[str]:
        """Comma-separated hints as trimmed, non-empty keywords."""
        if not self.hints:
            return []
        return [h.strip() for h in self.hints.split(",") if h.strip()]


class SelectionConfidence(str, Enum):
    """How sure an agent is about a selection. Ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    SelectionConfidence.LOW: 1,
    SelectionConfidence.MEDIUM: 2,
    SelectionConfidence.HIGH: 3,
}


def max_confidence(
    a: SelectionConfidence | None, b: SelectionConfidence | None
) -> SelectionConfidence | None:
    """Ordinal maximum; an unset value never raises the result."""
    if a is None:
        return b
    if b is None:
        return a
    return a if a.rank >= b.rank else b


class LineRange(BaseModel):
    """Inclusive, 1-based line span."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=1)
    end: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_order(self) -> "LineRange":
        if self.end < self.start:
            raise ValueError(f"range end {self.end} before start {self.start}")
        return self

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class FileSelection(BaseModel):
    """A normalized (file, ranges/symbols, reason, confidence) proposal from an agent."""

    file: str
    ranges: list[LineRange] = Field(default_factory=list)
    symbols: list[str] = Field(default_factory=list)
    reason: str = DEFAULT_REASON
    confidence: SelectionConfidence | None = None


class MergedSelection(FileSelection):
    """One selection per file after merging every query's proposals."""

    query_count: int = 1
    queries: list[str] = Field(default_factory=list)
    # Distinct contributing reasons; `reason` is their sorted join
    reasons: list[str] = Field(default_factory=list)

    @property
    def shared(self) -> bool:
        return self.query_count > 1


class FileSelectionMeta(BaseModel):
    """Per-file accounting reported in the result metadata."""

    file: str
    total_lines: int
    selected_lines: int = 0
    estimated_tokens: int = 0
    ranges: list[LineRange] = Field(default_factory=list)
    symbols: list[str] = Field(default_factory=list)
    reason: str = DEFAULT_REASON
    confidence: SelectionConfidence | None = None
    query_count: int = 1
    shared: bool = False
    fallback_used: bool = False
    full_file: bool = False


class ResolvedChunk(BaseModel):
    """A merged selection turned into concrete spans and rendered text."""

    selection: MergedSelection
    ranges: list[LineRange]
    content: str
    loc: int
    estimated_tokens: int
    total_lines: int
    fallback_used: bool = False
    full_file: bool = False

    @property
    def file(self) -> str:
        return self.selection.file

    def to_meta(self) -> FileSelectionMeta:
        return FileSelectionMeta(
            file=self.selection.file,
            total_lines=self.total_lines,
            selected_lines=self.loc,
            estimated_tokens=self.estimated_tokens,
            ranges=list(self.ranges),
            symbols=list(self.selection.symbols),
            reason=self.selection.reason,
            confidence=self.selection.confidence,
            query_count=self.selection.query_count,
            shared=self.selection.shared,
            fallback_used=self.fallback_used,
            full_file=self.full_file,
        )


class Budget(BaseModel):
    """Two-tier token ceilings for one invocation."""

    model_config = ConfigDict(frozen=True)

    soft: int
    hard: int

    @model_validator(mode="after")
    def _check_order(self) -> "Budget":
        if self.soft > self.hard:
            raise ValueError("soft budget must not exceed hard budget")
        return self
