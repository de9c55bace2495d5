# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Declaration, reference and chunk extraction for parsed TS/JS files.

Works on the tree-sitter trees held by a ProjectHandle, so no file is read
again once the project is cached.
"""

from typing import Iterator, NamedTuple, Optional, Tuple

from tree_sitter import Node

from semantic_index.models import CodeChunk, SymbolKind
from semantic_index.project import SourceFile

FUNCTION_DECLARATIONS = {"function_declaration", "generator_function_declaration"}
CLASS_DECLARATIONS = {"class_declaration", "abstract_class_declaration"}
FUNCTION_VALUES = {"arrow_function", "function_expression", "function", "generator_function"}
IDENTIFIER_NODES = {
    "identifier",
    "property_identifier",
    "type_identifier",
    "shorthand_property_identifier",
}

# Parents whose "name" field declares the identifier
NAMED_DECLARATIONS = FUNCTION_DECLARATIONS | CLASS_DECLARATIONS | {
    "interface_declaration",
    "type_alias_declaration",
    "variable_declarator",
    "method_definition",
    "public_field_definition",
    "field_definition",
}
PARAMETER_NODES = {"required_parameter", "optional_parameter"}

CHUNK_TYPES = {
    "function_declaration": "FunctionDeclaration",
    "generator_function_declaration": "FunctionDeclaration",
    "class_declaration": "ClassDeclaration",
    "abstract_class_declaration": "ClassDeclaration",
    "interface_declaration": "InterfaceDeclaration",
    "type_alias_declaration": "TypeAliasDeclaration",
    "enum_declaration": "EnumDeclaration",
    "lexical_declaration": "VariableStatement",
    "variable_declaration": "VariableStatement",
}

PREVIEW_LENGTH = 100


class DeclarationMatch(NamedTuple):
    node: Node
    name: str
    kind: str


class IdentifierReference(NamedTuple):
    node: Node
    is_definition: bool


def _name_of(source_file: SourceFile, node: Node) -> Optional[str]:
    name_node = node.child_by_field_name("name")
    if name_node is None:
        return None
    return source_file.node_text(name_node)


def match_declaration(
    source_file: SourceFile, node: Node, symbol_name: str, symbol_type: str = "all"
) -> Optional[Tuple[str, str]]:
    """Return (name, kind) if node declares a symbol whose name contains symbol_name.

    symbol_type is one of: all, function, class, interface, variable, type.
    """
    node_type = node.type

    def wanted(kind: str) -> bool:
        return symbol_type in ("all", kind)

    if node_type in FUNCTION_DECLARATIONS or node_type == "method_definition":
        if wanted(SymbolKind.FUNCTION):
            name = _name_of(source_file, node)
            if name and symbol_name in name:
                return name, SymbolKind.FUNCTION
        return None

    if node_type == "variable_declarator":
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            return None
        name = source_file.node_text(name_node)
        if symbol_name not in name:
            return None
        value = node.child_by_field_name("value")
        is_function = value is not None and value.type in FUNCTION_VALUES
        if is_function and wanted(SymbolKind.FUNCTION):
            return name, SymbolKind.FUNCTION
        if not is_function and wanted(SymbolKind.VARIABLE):
            return name, SymbolKind.VARIABLE
        return None

    if node_type in CLASS_DECLARATIONS:
        kind = SymbolKind.CLASS
    elif node_type == "interface_declaration":
        kind = SymbolKind.INTERFACE
    elif node_type == "type_alias_declaration":
        kind = SymbolKind.TYPE
    else:
        return None

    if not wanted(kind):
        return None
    name = _name_of(source_file, node)
    if name and symbol_name in name:
        return name, kind
    return None


def find_declarations(
    source_file: SourceFile, symbol_name: str, symbol_type: str = "all"
) -> Iterator[DeclarationMatch]:
    """Yield declarations in document order."""
    for node in source_file.walk():
        match = match_declaration(source_file, node, symbol_name, symbol_type)
        if match is not None:
            yield DeclarationMatch(node, match[0], match[1])


def is_symbol_definition(node: Node) -> bool:
    """Heuristic: the identifier is the declared name of its parent."""
    parent = node.parent
    if parent is None:
        return False
    if parent.type in NAMED_DECLARATIONS:
        return parent.child_by_field_name("name") == node
    if parent.type in PARAMETER_NODES:
        return parent.child_by_field_name("pattern") == node
    # Plain JavaScript parameters are bare identifiers
    return parent.type == "formal_parameters"


def find_identifier_references(
    source_file: SourceFile, symbol_name: str
) -> Iterator[IdentifierReference]:
    """Yield every identifier spelled exactly symbol_name."""
    for node in source_file.walk():
        if node.type in IDENTIFIER_NODES and source_file.node_text(node) == symbol_name:
            yield IdentifierReference(node, is_symbol_definition(node))


def reference_context(source_file: SourceFile, node: Node) -> str:
    """Text shown for a reference: the enclosing node, truncated."""
    if node.parent is not None:
        return source_file.node_text(node.parent)[:PREVIEW_LENGTH]
    return source_file.node_text(node)


def preview(source_file: SourceFile, node: Node) -> str:
    return source_file.node_text(node)[:PREVIEW_LENGTH]


def top_level_chunks(source_file: SourceFile) -> Iterator[CodeChunk]:
    """Yield one chunk per top-level declaration or variable statement."""
    for node in source_file.root_node.named_children:
        declaration = node
        if node.type == "export_statement":
            inner = node.child_by_field_name("declaration")
            if inner is None:
                continue
            declaration = inner

        chunk_type = CHUNK_TYPES.get(declaration.type)
        if chunk_type is None:
            continue

        name = None
        if chunk_type != "VariableStatement":
            name = _name_of(source_file, declaration)

        start_line, _ = source_file.position(node)
        yield CodeChunk(
            text=source_file.node_text(node),
            start_line=start_line,
            end_line=source_file.end_line(node),
            type=chunk_type,
            name=name,
        )
