"""Python-specific parser using the built-in ast module. Always available, no extra deps."""

from __future__ import annotations

import ast

from codescout.parser.models import FileSymbols, Symbol, SymbolKind


def parse_python_file(file_path: str, source: str) -> FileSymbols:
    """Parse a Python file and extract its symbol hierarchy."""
    result = FileSymbols(file_path=file_path, language="python")

    try:
        tree = ast.parse(source, filename=file_path)
    except SyntaxError as e:
        result.errors.append(f"SyntaxError: {e}")
        return result

    lines = source.splitlines()
    result.symbols = _extract_from_body(tree, file_path, lines)
    return result


def _definition_start(node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef) -> int:
    """First line of a definition, including its decorators."""
    if node.decorator_list:
        return min(d.lineno for d in node.decorator_list)
    return node.lineno


def _name_column(node: ast.AST, lines: list[str], name: str) -> int:
    line = lines[node.lineno - 1] if 0 < node.lineno <= len(lines) else ""
    idx = line.find(name, node.col_offset)
    return idx if idx >= 0 else node.col_offset


def _extract_from_body(
    tree: ast.AST,
    file_path: str,
    lines: list[str],
    parent_name: str = "",
) -> list[Symbol]:
    """Recursively extract symbols from a module/class body."""
    symbols: list[Symbol] = []

    for node in ast.iter_child_nodes(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            qualified = f"{parent_name}.{node.name}" if parent_name else node.name
            symbols.append(
                Symbol(
                    name=node.name,
                    qualified_name=qualified,
                    kind=SymbolKind.METHOD if parent_name else SymbolKind.FUNCTION,
                    file_path=file_path,
                    line_start=_definition_start(node),
                    line_end=node.end_lineno or node.lineno,
                    selection_line=node.lineno,
                    column_start=_name_column(node, lines, node.name),
                    children=_extract_from_body(node, file_path, lines, qualified),
                )
            )

        elif isinstance(node, ast.ClassDef):
            qualified = f"{parent_name}.{node.name}" if parent_name else node.name
            symbols.append(
                Symbol(
                    name=node.name,
                    qualified_name=qualified,
                    kind=SymbolKind.CLASS,
                    file_path=file_path,
                    line_start=_definition_start(node),
                    line_end=node.end_lineno or node.lineno,
                    selection_line=node.lineno,
                    column_start=_name_column(node, lines, node.name),
                    children=_extract_from_body(node, file_path, lines, qualified),
                )
            )

        elif isinstance(node, (ast.Assign, ast.AnnAssign)) and not isinstance(
            tree, (ast.FunctionDef, ast.AsyncFunctionDef)
        ):
            targets = node.targets if isinstance(node, ast.Assign) else [node.target]
            for target in targets:
                if not isinstance(target, ast.Name):
                    continue
                name = target.id
                qualified = f"{parent_name}.{name}" if parent_name else name
                symbols.append(
                    Symbol(
                        name=name,
                        qualified_name=qualified,
                        kind=SymbolKind.CONSTANT if name.isupper() else SymbolKind.VARIABLE,
                        file_path=file_path,
                        line_start=node.lineno,
                        line_end=node.end_lineno or node.lineno,
                        column_start=target.col_offset,
                    )
                )

    return symbols
