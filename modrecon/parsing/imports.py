"""Import declaration extraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from tree_sitter import Node

from ..models import ImportDeclaration, NamedBinding
from .tree_sitter import ParsedSource, has_keyword_child, node_text, parse, string_value


@dataclass(frozen=True)
class ImportCategory:
    """Where an import specifier points."""

    is_relative: bool
    package_name: Optional[str]


def categorize_import(source: str) -> ImportCategory:
    """Classify ``source`` as relative or as a bare package import.

    >>> categorize_import("@scope/pkg/sub").package_name
    '@scope/pkg'
    """
    if source.startswith(".") or source.startswith("/"):
        return ImportCategory(is_relative=True, package_name=None)
    parts = source.split("/")
    if source.startswith("@") and len(parts) >= 2:
        return ImportCategory(is_relative=False, package_name="/".join(parts[:2]))
    return ImportCategory(is_relative=False, package_name=parts[0])


def extract_imports(source: str, filename: str) -> List[ImportDeclaration]:
    """Return every top-level import declaration in ``source``.

    Files that fail to parse yield an empty list.
    """
    parsed = parse(source, filename)
    if not isinstance(parsed, ParsedSource):
        return []
    return imports_from_tree(parsed)


def imports_from_tree(parsed: ParsedSource) -> List[ImportDeclaration]:
    declarations: List[ImportDeclaration] = []
    for statement in parsed.root.named_children:
        if statement.type != "import_statement":
            continue
        declaration = _read_import_statement(statement, parsed.source_bytes)
        if declaration is not None:
            declarations.append(declaration)
    return declarations


def _read_import_statement(node: Node, source_bytes: bytes) -> Optional[ImportDeclaration]:
    # `import x = require("y")` is not an ES import declaration.
    if any(child.type == "import_require_clause" for child in node.named_children):
        return None
    module = string_value(node.child_by_field_name("source"), source_bytes)
    if module is None:
        return None

    declaration = ImportDeclaration(
        source=module,
        is_type_only=has_keyword_child(node, "type"),
    )
    clause = next((child for child in node.named_children if child.type == "import_clause"), None)
    if clause is None:
        declaration.is_side_effect = True
        return declaration

    for part in clause.named_children:
        if part.type == "identifier":
            declaration.has_default_import = True
            declaration.default_local_name = node_text(part, source_bytes)
        elif part.type == "namespace_import":
            declaration.has_namespace_import = True
            local = next((c for c in part.named_children if c.type == "identifier"), None)
            if local is not None:
                declaration.namespace_local_name = node_text(local, source_bytes)
        elif part.type == "named_imports":
            for specifier in part.named_children:
                if specifier.type != "import_specifier":
                    continue
                binding = _read_import_specifier(specifier, source_bytes)
                if binding is None:
                    continue
                if binding.imported_name == "default":
                    # `import { default as X }` is a default import under another spelling.
                    declaration.has_default_import = True
                    declaration.default_local_name = binding.local_name
                    continue
                declaration.named_bindings.append(binding)
    return declaration


def _read_import_specifier(node: Node, source_bytes: bytes) -> Optional[NamedBinding]:
    name_node = node.child_by_field_name("name")
    if name_node is None:
        return None
    imported = _module_export_name(name_node, source_bytes)
    alias_node = node.child_by_field_name("alias")
    local = node_text(alias_node, source_bytes) if alias_node is not None else imported
    return NamedBinding(
        local_name=local,
        imported_name=imported,
        is_type_only=has_keyword_child(node, "type"),
    )


def _module_export_name(node: Node, source_bytes: bytes) -> str:
    value = string_value(node, source_bytes)
    if value is not None:
        return value
    return node_text(node, source_bytes)


__all__ = [
    "ImportCategory",
    "categorize_import",
    "extract_imports",
    "imports_from_tree",
]
