"""Classifies how imported bindings are used and aggregates usage across files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from tree_sitter import Node

from ..models import AggregatedUsage, ImportUsage, ImportUsageInfo
from ..parsing.imports import imports_from_tree
from ..parsing.tree_sitter import ParsedSource, iter_nodes, node_text, parse, string_value

_MEMBER_TYPES = {"member_expression", "subscript_expression"}
_JSX_ELEMENT_TYPES = {"jsx_opening_element", "jsx_self_closing_element", "jsx_closing_element"}
_JSX_NAME_CHAIN_TYPES = {"member_expression", "nested_identifier"}
_IDENTIFIER_TYPES = {"identifier", "jsx_identifier"}


@dataclass
class _BindingUsage:
    members: List[str] = field(default_factory=list)
    jsx_members: List[str] = field(default_factory=list)
    called: bool = False
    element: bool = False
    constructed: bool = False

    def add_member(self, name: str) -> None:
        if name not in self.members:
            self.members.append(name)

    def add_jsx_member(self, name: str) -> None:
        if name not in self.jsx_members:
            self.jsx_members.append(name)


@dataclass
class _SourceImports:
    source: str
    bindings: List[Tuple[str, str]] = field(default_factory=list)
    namespace_local_name: Optional[str] = None


def analyze_usage(source: str, filename: str) -> List[ImportUsageInfo]:
    """Return per-source usage of every binding ``filename`` imports.

    Only the first segment of a property-access chain is recorded:
    ``Icons.Sun.size`` contributes ``Sun``. Computed access with a non-literal
    key is dropped. A file that fails to parse yields an empty list.
    """
    parsed = parse(source, filename)
    if not isinstance(parsed, ParsedSource):
        return []

    by_source: Dict[str, _SourceImports] = {}
    tracked: Dict[str, _BindingUsage] = {}
    for declaration in imports_from_tree(parsed):
        entry = by_source.setdefault(declaration.source, _SourceImports(source=declaration.source))
        for binding in declaration.named_bindings:
            entry.bindings.append((binding.local_name, binding.imported_name))
            tracked.setdefault(binding.local_name, _BindingUsage())
        if declaration.default_local_name:
            entry.bindings.append((declaration.default_local_name, "default"))
            tracked.setdefault(declaration.default_local_name, _BindingUsage())
        if declaration.namespace_local_name:
            entry.namespace_local_name = declaration.namespace_local_name

    if tracked:
        _scan_usage(parsed, tracked)

    results: List[ImportUsageInfo] = []
    for entry in by_source.values():
        info = ImportUsageInfo(
            source=entry.source,
            importing_file=filename,
            namespace_local_name=entry.namespace_local_name,
        )
        for local_name, imported_name in entry.bindings:
            usage = tracked[local_name]
            info.bindings.append(
                ImportUsage(
                    local_name=local_name,
                    imported_name=imported_name,
                    member_accesses=list(usage.members),
                    jsx_member_accesses=list(usage.jsx_members),
                    called_directly=usage.called,
                    used_as_element=usage.element,
                    constructed=usage.constructed,
                )
            )
        results.append(info)
    return results


def _scan_usage(parsed: ParsedSource, tracked: Dict[str, _BindingUsage]) -> None:
    source_bytes = parsed.source_bytes
    for node, parent in iter_nodes(parsed.root):
        kind = node.type
        if kind in _MEMBER_TYPES:
            if _continues_chain(node, parent):
                continue
            if parent is not None and parent.type in _JSX_ELEMENT_TYPES:
                _record_jsx_member(node, source_bytes, tracked)
                continue
            base, first = _first_access(node, source_bytes)
            if base in tracked and first is not None:
                tracked[base].add_member(first)
        elif kind == "nested_identifier":
            if parent is not None and parent.type in _JSX_ELEMENT_TYPES:
                _record_jsx_member(node, source_bytes, tracked)
        elif kind in _JSX_ELEMENT_TYPES:
            name = node.child_by_field_name("name")
            if name is not None and name.type in _IDENTIFIER_TYPES:
                local = node_text(name, source_bytes)
                if local in tracked:
                    tracked[local].element = True
        elif kind == "call_expression":
            callee = node.child_by_field_name("function")
            arguments = node.child_by_field_name("arguments")
            # Tagged templates are call_expressions with a template argument.
            if arguments is None or arguments.type != "arguments":
                continue
            local = _bare_identifier(callee, source_bytes)
            if local in tracked:
                tracked[local].called = True
        elif kind == "new_expression":
            local = _bare_identifier(node.child_by_field_name("constructor"), source_bytes)
            if local in tracked:
                tracked[local].constructed = True


def _continues_chain(node: Node, parent: Optional[Node]) -> bool:
    """True when ``node`` is the object of an enclosing member access."""
    if parent is None or parent.type not in _MEMBER_TYPES:
        return False
    obj = parent.child_by_field_name("object")
    return obj is not None and obj.id == node.id


def _first_access(node: Node, source_bytes: bytes) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(base identifier, first accessed name)`` of an access chain."""
    innermost = node
    obj = innermost.child_by_field_name("object")
    while obj is not None and obj.type in _MEMBER_TYPES:
        innermost = obj
        obj = innermost.child_by_field_name("object")
    if obj is None or obj.type != "identifier":
        return None, None
    base = node_text(obj, source_bytes)
    if innermost.type == "member_expression":
        prop = innermost.child_by_field_name("property")
        if prop is None or prop.type != "property_identifier":
            return base, None
        return base, node_text(prop, source_bytes)
    index = innermost.child_by_field_name("index")
    return base, string_value(index, source_bytes)


def _record_jsx_member(node: Node, source_bytes: bytes, tracked: Dict[str, _BindingUsage]) -> None:
    innermost = node
    head = _jsx_chain_object(innermost)
    while head is not None and head.type in _JSX_NAME_CHAIN_TYPES:
        innermost = head
        head = _jsx_chain_object(innermost)
    if head is None or head.type not in _IDENTIFIER_TYPES:
        return
    base = node_text(head, source_bytes)
    if base not in tracked:
        return
    prop = innermost.child_by_field_name("property")
    if prop is None:
        named = innermost.named_children
        prop = named[-1] if len(named) > 1 else None
    if prop is not None:
        tracked[base].add_jsx_member(node_text(prop, source_bytes))


def _jsx_chain_object(node: Node) -> Optional[Node]:
    obj = node.child_by_field_name("object")
    if obj is not None:
        return obj
    named = node.named_children
    return named[0] if named else None


def _bare_identifier(node: Optional[Node], source_bytes: bytes) -> Optional[str]:
    if node is None or node.type != "identifier":
        return None
    return node_text(node, source_bytes)


def aggregate_usage(
    usage_infos: Iterable[ImportUsageInfo], target_source: str
) -> Dict[str, AggregatedUsage]:
    """Merge usage of names imported from ``target_source`` across files.

    Keys are the exported names consumers ask for, so ``import { Foo as Bar }``
    aggregates under ``Foo`` and a default import under ``"default"``.
    """
    aggregated: Dict[str, AggregatedUsage] = {}
    for info in usage_infos:
        if info.source != target_source:
            continue
        for binding in info.bindings:
            entry = aggregated.get(binding.imported_name)
            if entry is None:
                entry = AggregatedUsage(name=binding.imported_name)
                aggregated[binding.imported_name] = entry
            entry.member_accesses.update(binding.member_accesses)
            entry.jsx_member_accesses.update(binding.jsx_member_accesses)
            entry.called_directly = entry.called_directly or binding.called_directly
            entry.used_as_element = entry.used_as_element or binding.used_as_element
            entry.constructed = entry.constructed or binding.constructed
            if info.importing_file not in entry.used_in_files:
                entry.used_in_files.append(info.importing_file)
    return aggregated


def filter_usage_by_source(usage_infos: Iterable[ImportUsageInfo], source: str) -> List[ImportUsageInfo]:
    return [info for info in usage_infos if info.source == source]


def unique_import_sources(usage_infos: Iterable[ImportUsageInfo]) -> List[str]:
    return sorted({info.source for info in usage_infos})


__all__ = [
    "aggregate_usage",
    "analyze_usage",
    "filter_usage_by_source",
    "unique_import_sources",
]
