"""Data models for parsed code symbols."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class SymbolKind(str, Enum):
    """Types of code symbols."""

    CLASS = "class"
    FUNCTION = "function"
    METHOD = "method"
    VARIABLE = "variable"
    CONSTANT = "constant"
    INTERFACE = "interface"
    ENUM = "enum"
    TYPE_ALIAS = "type_alias"


class Symbol(BaseModel):
    """A code symbol with its defining range and nested members."""

    name: str
    qualified_name: str = ""  # e.g., "MyClass.my_method"
    kind: SymbolKind
    file_path: str
    line_start: int  # 1-based, first line of the definition (decorators included)
    line_end: int
    selection_line: int = 0  # 1-based line holding the name
    column_start: int = 0  # 0-based column of the name on selection_line
    children: list[Symbol] = Field(default_factory=list)

    def model_post_init(self, __context: object) -> None:
        if not self.qualified_name:
            self.qualified_name = self.name
        if not self.selection_line:
            self.selection_line = self.line_start

    def walk(self):
        """Yield this symbol and all descendants, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


class FileSymbols(BaseModel):
    """Symbol hierarchy extracted from a single file."""

    file_path: str
    language: str
    symbols: list[Symbol] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def walk(self):
        for symbol in self.symbols:
            yield from symbol.walk()


# Language detection by file extension
EXTENSION_LANGUAGE_MAP: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
}


def detect_language(file_path: str) -> str | None:
    """Detect programming language from file extension."""
    ext = Path(file_path).suffix.lower()
    return EXTENSION_LANGUAGE_MAP.get(ext)
