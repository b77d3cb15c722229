"""Core data models shared across modrecon components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Literal, Optional, Set, Union


@dataclass(frozen=True)
class SourceFile:
    """A recovered source file; ``path`` is POSIX-style and relative to the scanned root."""

    path: str
    content: str


@dataclass(frozen=True)
class AliasMapping:
    """Maps a bare "virtual package" import prefix to a directory under the root."""

    alias: str
    path: str

    @property
    def normalized_path(self) -> str:
        path = self.path.replace("\\", "/")
        while path.startswith("./"):
            path = path[2:]
        return path.rstrip("/") or "."

    def matches(self, source: str) -> bool:
        return source == self.alias or source.startswith(self.alias + "/")


@dataclass(frozen=True)
class NamedBinding:
    """One ``{ imported as local }`` specifier of an import declaration."""

    local_name: str
    imported_name: str
    is_type_only: bool = False


@dataclass
class ImportDeclaration:
    """A single import statement, flattened."""

    source: str
    named_bindings: List[NamedBinding] = field(default_factory=list)
    has_default_import: bool = False
    default_local_name: Optional[str] = None
    has_namespace_import: bool = False
    namespace_local_name: Optional[str] = None
    is_type_only: bool = False
    is_side_effect: bool = False

    def imported_names(self) -> Iterator[str]:
        """Yield the exported names this declaration expects from its source.

        ``"default"`` stands for the default import and ``"*"`` for a namespace
        import.
        """
        for binding in self.named_bindings:
            yield binding.imported_name
        if self.has_default_import:
            yield "default"
        if self.has_namespace_import:
            yield "*"

    def binding_is_type_only(self, binding: NamedBinding) -> bool:
        return self.is_type_only or binding.is_type_only


@dataclass
class ExportSet:
    """Names a single file exposes."""

    named: Set[str] = field(default_factory=set)
    types: Set[str] = field(default_factory=set)
    has_default: bool = False

    def all_names(self) -> Set[str]:
        names = set(self.named) | set(self.types)
        if self.has_default:
            names.add("default")
        return names

    def exports(self, name: str) -> bool:
        if name == "default":
            return self.has_default
        return name in self.named or name in self.types


@dataclass
class ImportUsage:
    """How one imported binding is used inside one file."""

    local_name: str
    imported_name: str
    member_accesses: List[str] = field(default_factory=list)
    jsx_member_accesses: List[str] = field(default_factory=list)
    called_directly: bool = False
    used_as_element: bool = False
    constructed: bool = False


@dataclass
class ImportUsageInfo:
    """Usage of every binding one file imports from one source."""

    source: str
    importing_file: str
    bindings: List[ImportUsage] = field(default_factory=list)
    namespace_local_name: Optional[str] = None

    @property
    def has_namespace_import(self) -> bool:
        return self.namespace_local_name is not None


@dataclass
class AggregatedUsage:
    """Usage of one exported name merged across every consuming file."""

    name: str
    member_accesses: Set[str] = field(default_factory=set)
    jsx_member_accesses: Set[str] = field(default_factory=set)
    called_directly: bool = False
    used_as_element: bool = False
    constructed: bool = False
    used_in_files: List[str] = field(default_factory=list)

    @property
    def is_used_as_namespace(self) -> bool:
        return bool(self.member_accesses or self.jsx_member_accesses)

    @property
    def accessed_properties(self) -> List[str]:
        return sorted(self.member_accesses | self.jsx_member_accesses)


@dataclass(frozen=True)
class NamespaceResolution:
    """Synthesize ``import * as X from source_path; export { X };``."""

    source_path: str
    export_name: str
    kind: Literal["namespace"] = "namespace"


@dataclass(frozen=True)
class ReexportResolution:
    """Forward the name from the one external dependency that provides it."""

    dependency_source: str
    export_name: str
    is_type_only: bool = False
    kind: Literal["reexport"] = "reexport"


@dataclass(frozen=True)
class StubResolution:
    """No source could be located; the reason is surfaced to the caller."""

    export_name: str
    reason: str
    kind: Literal["stub"] = "stub"


ExportResolution = Union[NamespaceResolution, ReexportResolution, StubResolution]

UsagePattern = Literal["namespace", "direct", "unknown"]


@dataclass
class MissingExportInfo:
    """Outcome of resolving one missing export name."""

    export_name: str
    usage_pattern: UsagePattern
    accessed_properties: List[str] = field(default_factory=list)
    imported_by: List[str] = field(default_factory=list)
    resolution: Optional[ExportResolution] = None


@dataclass
class ResolvedExport:
    """A missing index symbol located in a module file."""

    symbol_name: str
    relative_path: str
    absolute_path: Path
    is_type_only: bool = False
    is_default_as_named: bool = False


@dataclass
class ReconstructedIndex:
    """Regenerated index content for one directory."""

    module_path: str
    index_path: Path
    existing_exports: List[str]
    expected_exports: List[str]
    resolved_exports: List[ResolvedExport]
    unresolved_exports: List[str]
    existing_content: str
    generated_content: str
    importers: Dict[str, List[str]] = field(default_factory=dict)
    # Still missing, but already listed by an earlier run; not rendered again.
    listed_unresolved: List[str] = field(default_factory=list)

    @property
    def was_modified(self) -> bool:
        return bool(self.resolved_exports or self.unresolved_exports)


@dataclass
class ReconstructionResult:
    """Summary of an index reconstruction pass."""

    indexes: List[ReconstructedIndex] = field(default_factory=list)
    total_resolved: int = 0
    total_unresolved: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedFile:
    """A bundle file materialized by the cascade resolver."""

    url: str
    local_path: str
    content_type: str
    size: int
    source: Literal["fetched", "copied"]
    has_source_map: bool = False


@dataclass
class CascadeResult:
    """Summary of a dynamic import cascade run."""

    fetched_files: int = 0
    copied_files: int = 0
    failed_files: int = 0
    iterations: int = 0
    resolved_files: List[ResolvedFile] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
