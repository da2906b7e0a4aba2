"""Content search backed by ripgrep."""

from codescout.search.ripgrep import RipgrepSearch, SearchOutcome, WordMatch

__all__ = [
    "RipgrepSearch",
    "SearchOutcome",
    "WordMatch",
]
