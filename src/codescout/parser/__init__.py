"""Multi-language symbol extraction for codescout."""

from codescout.parser.core import parse_file
from codescout.parser.models import FileSymbols, Symbol, SymbolKind

__all__ = [
    "FileSymbols",
    "Symbol",
    "SymbolKind",
    "parse_file",
]
