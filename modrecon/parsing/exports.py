"""Export extraction in local-only and forwarding-aware modes."""

from __future__ import annotations

from typing import Iterator, Optional

from tree_sitter import Node

from ..models import ExportSet
from .tree_sitter import ParsedSource, has_keyword_child, node_text, parse, string_value

_VALUE_DECLARATIONS = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "enum_declaration",
    "function_signature",
}
_TYPE_DECLARATIONS = {"interface_declaration", "type_alias_declaration"}
_VARIABLE_DECLARATIONS = {"lexical_declaration", "variable_declaration"}
_MODULE_DECLARATIONS = {"internal_module", "module"}


def extract_exports(source: str, filename: str, *, include_forwarded: bool = False) -> ExportSet:
    """Return the names ``source`` exports.

    With ``include_forwarded`` the set also covers ``export { x } from`` and
    ``export * as X from``. ``export * from`` is never expanded because its
    names are unknown without following the module.
    """
    parsed = parse(source, filename)
    if not isinstance(parsed, ParsedSource):
        return ExportSet()
    return exports_from_tree(parsed, include_forwarded=include_forwarded)


def exports_from_tree(parsed: ParsedSource, *, include_forwarded: bool = False) -> ExportSet:
    exports = ExportSet()
    source_bytes = parsed.source_bytes
    for statement in parsed.root.named_children:
        if statement.type != "export_statement":
            continue
        _collect_export_statement(statement, source_bytes, exports, include_forwarded)
    return exports


def _collect_export_statement(
    node: Node, source_bytes: bytes, exports: ExportSet, include_forwarded: bool
) -> None:
    if has_keyword_child(node, "default") or has_keyword_child(node, "="):
        exports.has_default = True
        return

    declaration = node.child_by_field_name("declaration")
    if declaration is not None:
        _collect_declaration(declaration, source_bytes, exports)
        return

    forwarded = node.child_by_field_name("source") is not None
    if forwarded and not include_forwarded:
        return

    statement_is_type = has_keyword_child(node, "type")
    for child in node.named_children:
        if child.type == "export_clause":
            for specifier in child.named_children:
                if specifier.type != "export_specifier":
                    continue
                name = _exported_name(specifier, source_bytes)
                if name is None:
                    continue
                if name == "default":
                    exports.has_default = True
                elif statement_is_type or has_keyword_child(specifier, "type"):
                    exports.types.add(name)
                else:
                    exports.named.add(name)
        elif child.type == "namespace_export":
            # `export * as X from './y'`; a bare `export *` has no namespace_export child.
            name_node = next(iter(child.named_children), None)
            if name_node is not None:
                exports.named.add(_module_export_name(name_node, source_bytes))


def _exported_name(specifier: Node, source_bytes: bytes) -> Optional[str]:
    alias = specifier.child_by_field_name("alias")
    if alias is not None:
        return _module_export_name(alias, source_bytes)
    name = specifier.child_by_field_name("name")
    if name is None:
        return None
    return _module_export_name(name, source_bytes)


def _module_export_name(node: Node, source_bytes: bytes) -> str:
    value = string_value(node, source_bytes)
    return value if value is not None else node_text(node, source_bytes)


def _collect_declaration(node: Node, source_bytes: bytes, exports: ExportSet) -> None:
    kind = node.type
    if kind == "ambient_declaration":
        # `export declare const x: T;`
        for inner in node.named_children:
            _collect_declaration(inner, source_bytes, exports)
        return
    if kind == "expression_statement":
        # `export namespace Foo {}` parses as an expression statement in some grammar versions.
        for inner in node.named_children:
            _collect_declaration(inner, source_bytes, exports)
        return

    name_node = node.child_by_field_name("name")
    if kind in _VALUE_DECLARATIONS or kind in _MODULE_DECLARATIONS:
        if name_node is not None:
            exports.named.add(node_text(name_node, source_bytes))
    elif kind in _TYPE_DECLARATIONS:
        if name_node is not None:
            exports.types.add(node_text(name_node, source_bytes))
    elif kind in _VARIABLE_DECLARATIONS:
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            target = declarator.child_by_field_name("name")
            if target is not None:
                exports.named.update(pattern_names(target, source_bytes))


def pattern_names(node: Node, source_bytes: bytes) -> Iterator[str]:
    """Yield every binding name introduced by a declarator pattern."""
    kind = node.type
    if kind in {"identifier", "shorthand_property_identifier_pattern"}:
        yield node_text(node, source_bytes)
    elif kind == "object_pattern" or kind == "array_pattern":
        for child in node.named_children:
            yield from pattern_names(child, source_bytes)
    elif kind == "pair_pattern":
        value = node.child_by_field_name("value")
        if value is not None:
            yield from pattern_names(value, source_bytes)
    elif kind in {"object_assignment_pattern", "assignment_pattern"}:
        left = node.child_by_field_name("left")
        if left is not None:
            yield from pattern_names(left, source_bytes)
    elif kind == "rest_pattern":
        for child in node.named_children:
            yield from pattern_names(child, source_bytes)


__all__ = ["exports_from_tree", "extract_exports", "pattern_names"]
