"""Code intelligence: symbol outlines and reference lookup."""

from codescout.intel.context import (
    UNAVAILABLE_PREFIX,
    CodeIntelContext,
    SymbolOutcome,
    SymbolStatus,
    get_intel_context,
)

__all__ = [
    "UNAVAILABLE_PREFIX",
    "CodeIntelContext",
    "SymbolOutcome",
    "SymbolStatus",
    "get_intel_context",
]
