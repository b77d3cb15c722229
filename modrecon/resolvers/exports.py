"""Resolution of export names that consumers import but a package no longer provides.

Each missing name ends up as exactly one of:

* a namespace re-export, when consumers access ``Name.member`` and exactly one
  file in the package defines every accessed member;
* a re-export from the single external dependency the package itself imports
  the name from;
* a stub, with the reason surfaced as a warning instead of guessed.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..analyzers.usage import aggregate_usage, analyze_usage
from ..models import (
    AggregatedUsage,
    ExportSet,
    ImportDeclaration,
    MissingExportInfo,
    NamespaceResolution,
    ReexportResolution,
    StubResolution,
    UsagePattern,
)
from ..observer import Observer
from ..parsing.exports import exports_from_tree
from ..parsing.imports import categorize_import, imports_from_tree
from ..parsing.tree_sitter import ParsedSource, parse
from ..scanner import MODULE_SUFFIXES, iter_source_paths

_EXTENSION_RE = re.compile(r"\.(tsx?|jsx?)$")
_MAX_LISTED_PROPERTIES = 5


@dataclass
class PackageFile:
    """Local exports and imports of one file inside the package being repaired."""

    relative_path: str
    exports: ExportSet = field(default_factory=ExportSet)
    imports: List[ImportDeclaration] = field(default_factory=list)


@dataclass
class ResolutionGroups:
    namespaces: List[MissingExportInfo] = field(default_factory=list)
    reexports: List[MissingExportInfo] = field(default_factory=list)
    stubs: List[MissingExportInfo] = field(default_factory=list)


def analyze_package(root: Path) -> List[PackageFile]:
    """Parse every searchable source under ``root`` once.

    ``node_modules``, dot-directories and ``.d.ts`` files are skipped.
    """
    files: List[PackageFile] = []
    for path in iter_source_paths(root, suffixes=MODULE_SUFFIXES, skip_hidden=True):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        relative = path.relative_to(root).as_posix()
        parsed = parse(content, path.name)
        if not isinstance(parsed, ParsedSource):
            files.append(PackageFile(relative_path=relative))
            continue
        files.append(
            PackageFile(
                relative_path=relative,
                exports=exports_from_tree(parsed),
                imports=imports_from_tree(parsed),
            )
        )
    return files


def collect_consumer_usage(
    consumer_files: Iterable[Path | str], import_source: str
) -> Dict[str, AggregatedUsage]:
    """Analyze every consumer file and aggregate usage of names from ``import_source``."""
    infos = []
    for consumer in consumer_files:
        path = Path(consumer)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        infos.extend(info for info in analyze_usage(content, str(path)) if info.source == import_source)
    return aggregate_usage(infos, import_source)


def classify_usage(usage: Optional[AggregatedUsage]) -> Tuple[UsagePattern, List[str]]:
    """Return the usage pattern and the sorted accessed properties."""
    if usage is None:
        return "unknown", []
    accessed = usage.accessed_properties
    if accessed:
        return "namespace", accessed
    if usage.called_directly or usage.used_as_element or usage.constructed:
        return "direct", []
    return "unknown", []


def find_namespace_source(
    files: Sequence[PackageFile], required: Sequence[str], observer: Observer
) -> Optional[str]:
    """Return the one file whose local exports cover ``required``, if unique."""
    if not required:
        return None
    needed = set(required)
    candidates = [
        item.relative_path
        for item in files
        if needed <= (item.exports.named | item.exports.types)
    ]
    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) > 1:
        listed = ", ".join(required[:3]) + ("..." if len(required) > 3 else "")
        observer.warning(
            f"Multiple files could provide namespace for [{listed}]: "
            f"{', '.join(candidates)} - skipping namespace resolution"
        )
    return None


def find_dependency_reexport(
    files: Sequence[PackageFile], export_name: str, observer: Observer
) -> Tuple[Optional[ReexportResolution], List[str]]:
    """Find the external dependency the package imports ``export_name`` from.

    Returns the resolution (or ``None``) and the distinct sources seen, so an
    ambiguous result can be reported as such.
    """
    sources: List[str] = []
    type_only_flags: List[bool] = []
    for item in files:
        for declaration in item.imports:
            if categorize_import(declaration.source).is_relative:
                continue
            for binding in declaration.named_bindings:
                if binding.imported_name != export_name:
                    continue
                if declaration.source not in sources:
                    sources.append(declaration.source)
                type_only_flags.append(declaration.binding_is_type_only(binding))

    if not sources:
        return None, []
    if len(sources) == 1:
        return (
            ReexportResolution(
                dependency_source=sources[0],
                export_name=export_name,
                is_type_only=all(type_only_flags),
            ),
            sources,
        )
    observer.warning(
        f'"{export_name}" imported from multiple dependencies: {", ".join(sources)} - skipping re-export'
    )
    return None, sources


def resolve_missing_exports(
    root: Path | str,
    missing_names: Iterable[str],
    consumer_files: Iterable[Path | str],
    import_source: str,
    *,
    observer: Optional[Observer] = None,
    package_files: Optional[Sequence[PackageFile]] = None,
) -> List[MissingExportInfo]:
    """Decide, for each missing export of the package at ``root``, how to provide it.

    Names are processed in sorted order and each is resolved exactly once.
    Namespace sources are tried before dependency re-exports.
    """
    observer = observer or Observer()
    names = sorted(set(missing_names))
    if not names:
        return []

    root_path = Path(root)
    observer.progress(f"Analyzing usage patterns for {len(names)} missing exports...")
    aggregated = collect_consumer_usage(consumer_files, import_source)
    files = list(package_files) if package_files is not None else analyze_package(root_path)

    results: List[MissingExportInfo] = []
    for name in names:
        usage = aggregated.get(name)
        pattern, accessed = classify_usage(usage)
        info = MissingExportInfo(
            export_name=name,
            usage_pattern=pattern,
            accessed_properties=accessed,
            imported_by=list(usage.used_in_files) if usage else [],
        )

        if pattern == "namespace" and accessed:
            observer.progress(f"Looking for namespace source for {name}...")
            source_path = find_namespace_source(files, accessed, observer)
            if source_path is not None:
                info.resolution = NamespaceResolution(source_path=source_path, export_name=name)
                results.append(info)
                continue

        observer.progress(f"Looking for dependency re-export for {name}...")
        reexport, sources = find_dependency_reexport(files, name, observer)
        if reexport is not None:
            info.resolution = reexport
            results.append(info)
            continue

        reason = _stub_reason(name, pattern, accessed, sources)
        info.resolution = StubResolution(export_name=name, reason=reason)
        observer.warning(f'Stubbing "{name}"{_imported_by_suffix(info.imported_by)} - {reason}')
        results.append(info)

    return results


def _stub_reason(name: str, pattern: UsagePattern, accessed: Sequence[str], sources: Sequence[str]) -> str:
    if len(sources) > 1:
        return f"Imported from multiple dependencies: {', '.join(sources)}"
    if pattern == "namespace":
        listed = ", ".join(accessed[:_MAX_LISTED_PROPERTIES])
        more = "..." if len(accessed) > _MAX_LISTED_PROPERTIES else ""
        return f"No source file exports all required properties: {listed}{more}"
    return f'Could not find source for "{name}" in package or dependencies'


def _imported_by_suffix(imported_by: Sequence[str]) -> str:
    if not imported_by:
        return ""
    names = ", ".join(os.path.basename(path) for path in imported_by[:2])
    more = "..." if len(imported_by) > 2 else ""
    return f" (imported by: {names}{more})"


def generate_export_statement(
    info: MissingExportInfo | NamespaceResolution | ReexportResolution | StubResolution,
    *,
    package_root: Optional[Path | str] = None,
    index_dir: Optional[Path | str] = None,
) -> str:
    """Return the index statement(s) providing a resolution; stubs yield ``""``.

    Namespace paths are made relative to ``index_dir`` when both it and
    ``package_root`` are known, otherwise they stay relative to the package root.
    """
    resolution = info.resolution if isinstance(info, MissingExportInfo) else info
    if resolution is None or isinstance(resolution, StubResolution):
        return ""
    if isinstance(resolution, ReexportResolution):
        keyword = "export type" if resolution.is_type_only else "export"
        return f"{keyword} {{ {resolution.export_name} }} from '{resolution.dependency_source}';"

    import_path = _EXTENSION_RE.sub("", resolution.source_path.replace("\\", "/"))
    if package_root is not None and index_dir is not None:
        absolute = os.path.join(os.fspath(package_root), import_path)
        import_path = os.path.relpath(absolute, os.fspath(index_dir))
    import_path = import_path.replace("\\", "/")
    if not import_path.startswith(".") and not import_path.startswith("/"):
        import_path = f"./{import_path}"
    name = resolution.export_name
    return f"import * as {name} from '{import_path}';\nexport {{ {name} }};"


def group_resolutions_by_type(infos: Iterable[MissingExportInfo]) -> ResolutionGroups:
    groups = ResolutionGroups()
    for info in infos:
        resolution = info.resolution
        if isinstance(resolution, NamespaceResolution):
            groups.namespaces.append(info)
        elif isinstance(resolution, ReexportResolution):
            groups.reexports.append(info)
        else:
            groups.stubs.append(info)
    return groups


def resolved_names(infos: Iterable[MissingExportInfo]) -> Set[str]:
    """Names that received a namespace or re-export resolution."""
    return {
        info.export_name
        for info in infos
        if isinstance(info.resolution, (NamespaceResolution, ReexportResolution))
    }


__all__ = [
    "PackageFile",
    "ResolutionGroups",
    "analyze_package",
    "classify_usage",
    "collect_consumer_usage",
    "find_dependency_reexport",
    "find_namespace_source",
    "generate_export_statement",
    "group_resolutions_by_type",
    "resolve_missing_exports",
    "resolved_names",
]
