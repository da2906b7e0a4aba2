"""Core parser orchestration - selects the best parser for each file."""

from __future__ import annotations

from codescout.parser.models import FileSymbols, detect_language


def parse_file(file_path: str, source: str) -> FileSymbols | None:
    """Parse a single file, auto-detecting language and selecting the best parser.

    Returns None if the file's language is not supported.

    - Python: uses stdlib ast (zero deps, high accuracy)
    - JS/TS, Go, Rust, Java: uses tree-sitter grammars
    """
    language = detect_language(file_path)
    if not language:
        return None

    if language == "python":
        from codescout.parser.python_parser import parse_python_file

        return parse_python_file(file_path, source)

    from codescout.parser.tree_sitter_parser import is_available, parse_tree_sitter_file

    if is_available(language):
        return parse_tree_sitter_file(file_path, language, source)

    # Language detected but no tree-sitter grammar installed
    return None
