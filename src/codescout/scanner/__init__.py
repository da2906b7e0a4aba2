"""Relevance scanning: seed trees for exploration agents."""

from codescout.scanner.relevance import (
    RelevanceScanner,
    SmartTree,
    extract_patterns,
    stem,
)

__all__ = [
    "RelevanceScanner",
    "SmartTree",
    "extract_patterns",
    "stem",
]
