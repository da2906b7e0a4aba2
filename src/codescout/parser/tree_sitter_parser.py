"""Tree-sitter based parser for symbol outlines in non-Python languages."""

from __future__ import annotations

from codescout.parser.models import FileSymbols, Symbol, SymbolKind

# Tree-sitter language module mapping
# These grammars are required dependencies (installed with pip install codescout)
_TS_LANGUAGE_MODULES = {
    "javascript": "tree_sitter_javascript",
    "typescript": "tree_sitter_typescript",
    "tsx": "tree_sitter_typescript",
    "go": "tree_sitter_go",
    "rust": "tree_sitter_rust",
    "java": "tree_sitter_java",
}

# tree_sitter_typescript ships two grammars instead of a single language()
_LANGUAGE_FUNCTIONS = {
    "typescript": "language_typescript",
    "tsx": "language_tsx",
}

_TS_SYMBOLS = {
    "function_declaration": SymbolKind.FUNCTION,
    "generator_function_declaration": SymbolKind.FUNCTION,
    "class_declaration": SymbolKind.CLASS,
    "abstract_class_declaration": SymbolKind.CLASS,
    "method_definition": SymbolKind.METHOD,
    "interface_declaration": SymbolKind.INTERFACE,
    "type_alias_declaration": SymbolKind.TYPE_ALIAS,
    "enum_declaration": SymbolKind.ENUM,
    "variable_declarator": None,
}

# Node types that represent symbol definitions per language.
# None marks a declarator whose kind depends on its value.
_SYMBOL_NODE_TYPES = {
    "javascript": {
        "function_declaration": SymbolKind.FUNCTION,
        "generator_function_declaration": SymbolKind.FUNCTION,
        "class_declaration": SymbolKind.CLASS,
        "method_definition": SymbolKind.METHOD,
        "variable_declarator": None,
    },
    "typescript": _TS_SYMBOLS,
    "tsx": _TS_SYMBOLS,
    "go": {
        "function_declaration": SymbolKind.FUNCTION,
        "method_declaration": SymbolKind.METHOD,
        "type_spec": SymbolKind.CLASS,
    },
    "rust": {
        "function_item": SymbolKind.FUNCTION,
        "struct_item": SymbolKind.CLASS,
        "enum_item": SymbolKind.ENUM,
        "trait_item": SymbolKind.INTERFACE,
        "impl_item": SymbolKind.CLASS,
        "const_item": SymbolKind.CONSTANT,
    },
    "java": {
        "class_declaration": SymbolKind.CLASS,
        "interface_declaration": SymbolKind.INTERFACE,
        "method_declaration": SymbolKind.METHOD,
        "constructor_declaration": SymbolKind.METHOD,
        "enum_declaration": SymbolKind.ENUM,
    },
}

_FUNCTION_VALUES = ("arrow_function", "function_expression", "function")


def is_available(language: str | None = None) -> bool:
    """Check if tree-sitter and the required language grammar are available."""
    try:
        import tree_sitter  # noqa: F401
    except ImportError:
        return False

    if language is None:
        return True

    module_name = _TS_LANGUAGE_MODULES.get(language)
    if not module_name:
        return False

    try:
        __import__(module_name)
        return True
    except ImportError:
        return False


def _get_language(lang: str):
    """Get a tree-sitter Language object for the given language."""
    from tree_sitter import Language

    module_name = _TS_LANGUAGE_MODULES.get(lang)
    if not module_name:
        raise ValueError(f"No tree-sitter grammar for language: {lang}")

    module = __import__(module_name)
    factory = getattr(module, _LANGUAGE_FUNCTIONS.get(lang, "language"))
    return Language(factory())


def parse_tree_sitter_file(file_path: str, language: str, source: str) -> FileSymbols:
    """Parse a file using tree-sitter and extract its symbol hierarchy."""
    from tree_sitter import Parser

    result = FileSymbols(file_path=file_path, language=language)
    source_bytes = source.encode("utf-8")

    try:
        parser = Parser(_get_language(language))
        tree = parser.parse(source_bytes)
    except Exception as e:
        result.errors.append(f"tree-sitter parse error: {e}")
        return result

    result.symbols = _walk_tree(tree.root_node, file_path, language)
    return result


def _walk_tree(
    node,
    file_path: str,
    language: str,
    parent_name: str = "",
    inside_function: bool = False,
) -> list[Symbol]:
    """Recursively walk the tree-sitter AST and collect symbols."""
    symbol_types = _SYMBOL_NODE_TYPES.get(language, {})
    symbols: list[Symbol] = []

    for child in node.children:
        node_type = child.type

        if node_type not in symbol_types:
            symbols.extend(
                _walk_tree(child, file_path, language, parent_name, inside_function)
            )
            continue

        kind = symbol_types[node_type]
        if kind is None:
            kind = _declarator_kind(child, inside_function)
            if kind is None:
                continue

        name_node = _name_node(child)
        if name_node is None:
            continue
        name = name_node.text.decode("utf-8")

        qualified = f"{parent_name}.{name}" if parent_name else name
        if parent_name and kind == SymbolKind.FUNCTION and not inside_function:
            kind = SymbolKind.METHOD

        # Declarators span only "name = value"; report the whole statement
        outer = child.parent if node_type == "variable_declarator" and child.parent else child

        symbols.append(
            Symbol(
                name=name,
                qualified_name=qualified,
                kind=kind,
                file_path=file_path,
                line_start=outer.start_point[0] + 1,
                line_end=outer.end_point[0] + 1,
                selection_line=name_node.start_point[0] + 1,
                column_start=name_node.start_point[1],
                children=_walk_tree(
                    child,
                    file_path,
                    language,
                    qualified,
                    inside_function or kind in (SymbolKind.FUNCTION, SymbolKind.METHOD),
                ),
            )
        )

    return symbols


def _declarator_kind(node, inside_function: bool) -> SymbolKind | None:
    """Classify `const x = ...`; only top-level or function-valued declarators count."""
    value = node.child_by_field_name("value")
    if value is not None and value.type in _FUNCTION_VALUES:
        return SymbolKind.FUNCTION
    if inside_function:
        return None
    name = node.child_by_field_name("name")
    if name is None or name.type != "identifier":
        return None
    text = name.text.decode("utf-8")
    return SymbolKind.CONSTANT if text.isupper() else SymbolKind.VARIABLE


def _name_node(node):
    """Find the node holding a symbol's name."""
    name_child = node.child_by_field_name("name")
    if name_child is not None:
        return name_child
    if node.type == "impl_item":
        return node.child_by_field_name("type")
    for child in node.children:
        if child.type in ("identifier", "name", "type_identifier", "property_identifier"):
            return child
    return None
