"""Selection merging, range resolution, budget packing and output assembly."""

from codescout.context.models import (
    Budget,
    FileSelection,
    FileSelectionMeta,
    LineRange,
    MergedSelection,
    Query,
    ResolvedChunk,
    SelectionConfidence,
)
from codescout.context.tokens import estimate_tokens, format_tokens

__all__ = [
    "Budget",
    "FileSelection",
    "FileSelectionMeta",
    "LineRange",
    "MergedSelection",
    "Query",
    "ResolvedChunk",
    "SelectionConfidence",
    "estimate_tokens",
    "format_tokens",
]
