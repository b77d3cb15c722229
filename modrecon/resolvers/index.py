"""Index file reconstruction.

Consumers of a directory (``import { a } from './utils'`` or an aliased
``'@app/utils'``) tell us which names the directory's index must expose. For
every directory whose index falls short, the missing names are looked up in the
directory's own module files and in nearby directories, and the index is
regenerated: the existing content is kept verbatim and a generated block of
re-exports is appended. Names that cannot be located are listed in a visible
comment so a later compile step fails on a specific, attributable name.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..models import (
    AliasMapping,
    ExportSet,
    ReconstructedIndex,
    ReconstructionResult,
    ResolvedExport,
    SourceFile,
)
from ..observer import Observer, WarningRecorder
from ..parsing.exports import extract_exports
from ..parsing.imports import extract_imports
from ..scanner import MODULE_SUFFIXES, is_source_file

INDEX_FILENAMES = ("index.ts", "index.tsx", "index.js", "index.jsx")
NAMESPACE_SYMBOL = "*"

REEXPORT_MARKER = "// --- Re-exports added by index reconstruction ---"
USAGE_MARKER = "// --- Exports resolved from consumer usage ---"
UNRESOLVED_HEADER = "// WARNING: The following exports are expected by consumers but could not be found:"
GENERATED_HEADER = (
    "// Auto-generated index file",
    "// Generated by index reconstruction based on consumer imports",
)

_EXTENSION_RE = re.compile(r"\.(tsx?|jsx?|mjs|cjs)$")
_IMPORT_EXTENSION_RE = re.compile(r"\.(tsx?|jsx?)$")
_ALIAS_MODULE_RE = re.compile(r"^([a-zA-Z][\w-]*)\.(?:ts|tsx|js|jsx)$")

_JSX_RE = re.compile(r"<[A-Z][a-zA-Z0-9]*[\s/>]")
_RENDER_RES = (
    re.compile(r"createRoot\s*\("),
    re.compile(r"ReactDOM\.render\s*\("),
    re.compile(r"\.render\s*\(\s*<"),
)
_MOUNT_RE = re.compile(r"document\.getElementById\s*\(")
_MAX_INDEX_CODE_LINES = 10

_SKIPPED_SEARCH_DIRS = {"node_modules"}


@dataclass
class ExpectedImport:
    """A name consumers import from a directory."""

    symbol_name: str
    imported_by: List[str] = field(default_factory=list)
    is_type_only: bool = True


def find_index_file(directory: Path) -> Optional[Path]:
    for name in INDEX_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def is_entry_point_content(content: str) -> bool:
    """True when ``content`` looks like an application entry point, not a library index."""
    if not _JSX_RE.search(content):
        return False
    if any(pattern.search(content) for pattern in _RENDER_RES) or _MOUNT_RE.search(content):
        return True

    code_lines = 0
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(("import ", "export ", "//", "/*", "*")):
            continue
        code_lines += 1
    return code_lines > _MAX_INDEX_CODE_LINES


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _resolve_alias_target(source: str, aliases: Sequence[AliasMapping], root: Path) -> Optional[Path]:
    for mapping in sorted(aliases, key=lambda item: len(item.alias), reverse=True):
        if not mapping.matches(source):
            continue
        target = root / mapping.normalized_path
        remainder = source[len(mapping.alias) :].lstrip("/")
        if remainder:
            target = target / remainder
        return Path(os.path.normpath(target))
    return None


def _resolve_relative_target(source: str, importing_file: Path, root: Path) -> Optional[Path]:
    if not source.startswith("."):
        return None
    target = Path(os.path.normpath(importing_file.parent / source))
    if not _is_within(target, root):
        return None
    return target


def collect_expected_imports(
    root: Path,
    source_files: Iterable[SourceFile],
    aliases: Sequence[AliasMapping] = (),
) -> Dict[Path, Dict[str, ExpectedImport]]:
    """Map each imported directory to the names consumers expect from it.

    Imports that resolve to files rather than directories are ignored. Namespace
    imports are recorded under ``"*"`` but never resolved.
    """
    expected: Dict[Path, Dict[str, ExpectedImport]] = {}
    for source_file in source_files:
        file_path = root / source_file.path
        for declaration in extract_imports(source_file.content, file_path.name):
            target = _resolve_relative_target(declaration.source, file_path, root)
            if target is None and aliases:
                target = _resolve_alias_target(declaration.source, aliases, root)
            if target is None or not target.is_dir():
                continue

            symbols = expected.setdefault(target, {})
            consumer = str(file_path)
            for binding in declaration.named_bindings:
                _record(symbols, binding.imported_name, consumer, declaration.binding_is_type_only(binding))
            if declaration.has_default_import:
                _record(symbols, "default", consumer, declaration.is_type_only)
            if declaration.has_namespace_import:
                _record(symbols, NAMESPACE_SYMBOL, consumer, declaration.is_type_only)
    return expected


def _record(symbols: Dict[str, ExpectedImport], name: str, consumer: str, type_only: bool) -> None:
    entry = symbols.get(name)
    if entry is None:
        entry = ExpectedImport(symbol_name=name)
        symbols[name] = entry
    if consumer not in entry.imported_by:
        entry.imported_by.append(consumer)
    # One value import is enough to make the re-export a value re-export.
    if not type_only:
        entry.is_type_only = False


def previously_unresolved(content: str) -> Set[str]:
    """Names listed in unresolved-warning blocks of an earlier run."""
    names: Set[str] = set()
    in_block = False
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == UNRESOLVED_HEADER:
            in_block = True
            continue
        if in_block:
            if stripped.startswith("// - "):
                names.add(stripped[len("// - ") :].strip())
                continue
            in_block = False
    return names


class _ExportCache:
    """Forwarding-aware export sets of module files, parsed at most once per run."""

    def __init__(self) -> None:
        self._exports: Dict[Path, ExportSet] = {}

    def get(self, path: Path) -> ExportSet:
        cached = self._exports.get(path)
        if cached is not None:
            return cached
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            exports = ExportSet()
        else:
            exports = extract_exports(content, path.name, include_forwarded=True)
        self._exports[path] = exports
        return exports


def _module_files(directory: Path) -> List[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda item: item.name)
    except OSError:
        return []
    files = []
    for entry in entries:
        if not entry.is_file() or not is_source_file(entry.name, MODULE_SUFFIXES):
            continue
        if entry.name in INDEX_FILENAMES:
            continue
        files.append(entry)
    return files


def _child_dirs(directory: Path) -> List[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda item: item.name)
    except OSError:
        return []
    return [
        entry
        for entry in entries
        if entry.is_dir() and entry.name not in _SKIPPED_SEARCH_DIRS and not entry.name.startswith(".")
    ]


def search_directories(module_dir: Path, root: Path) -> List[Path]:
    """Directories searched for a missing symbol, in priority order.

    The directory itself and its ``src``, then siblings and their ``src``, then
    the grandparent's other children and their ``src``. Nothing outside
    ``root`` is searched.
    """
    ordered: List[Path] = [module_dir, module_dir / "src"]

    parent = module_dir.parent
    if parent != module_dir and _is_within(parent, root):
        for sibling in _child_dirs(parent):
            if sibling == module_dir:
                continue
            ordered.extend([sibling, sibling / "src"])

        grandparent = parent.parent
        if grandparent != parent and _is_within(grandparent, root):
            for child in _child_dirs(grandparent):
                if child == parent:
                    continue
                ordered.extend([child, child / "src"])

    seen: Set[Path] = set()
    unique: List[Path] = []
    for directory in ordered:
        if directory in seen or not directory.is_dir():
            continue
        seen.add(directory)
        unique.append(directory)
    return unique


def _relative_posix(target: Path, start: Path) -> str:
    return os.path.relpath(target, start).replace("\\", "/")


def find_export_source(
    symbol_name: str,
    module_dir: Path,
    root: Path,
    reporter: Observer,
    cache: Optional[_ExportCache] = None,
) -> Optional[ResolvedExport]:
    """Locate the module file providing ``symbol_name`` for ``module_dir``'s index."""
    cache = cache or _ExportCache()
    direct: List[ResolvedExport] = []
    default_as_named: List[ResolvedExport] = []
    wanted = symbol_name.lower()

    for directory in search_directories(module_dir, root):
        for file_path in _module_files(directory):
            exports = cache.get(file_path)
            relative_path = _relative_posix(file_path, module_dir)
            if exports.exports(symbol_name):
                direct.append(
                    ResolvedExport(
                        symbol_name=symbol_name,
                        relative_path=relative_path,
                        absolute_path=file_path,
                    )
                )
                continue
            if exports.has_default and _EXTENSION_RE.sub("", file_path.name).lower() == wanted:
                default_as_named.append(
                    ResolvedExport(
                        symbol_name=symbol_name,
                        relative_path=relative_path,
                        absolute_path=file_path,
                        is_default_as_named=True,
                    )
                )

    if direct:
        if len(direct) > 1:
            paths = ", ".join(item.relative_path for item in direct)
            reporter.warning(f'"{symbol_name}" found in multiple locations: {paths} - using first match')
        return direct[0]

    if default_as_named:
        if len(default_as_named) > 1:
            paths = ", ".join(item.relative_path for item in default_as_named)
            reporter.warning(
                f'"{symbol_name}" found in multiple locations (as default): {paths} - using first match'
            )
        return default_as_named[0]
    return None


def _import_specifier(relative_path: str) -> str:
    path = _IMPORT_EXTENSION_RE.sub("", relative_path)
    return path if path.startswith(".") else f"./{path}"


def render_index_content(
    existing_content: str,
    resolved: Sequence[ResolvedExport],
    unresolved: Iterable[str],
    extra_statements: Sequence[str] = (),
) -> str:
    """Build the full text of a regenerated index file."""
    lines: List[str] = []
    if existing_content.strip():
        lines.extend([existing_content.rstrip(), "", REEXPORT_MARKER])
    else:
        lines.extend(GENERATED_HEADER)
    if resolved:
        lines.append("")

    by_source: Dict[str, List[ResolvedExport]] = {}
    for export in resolved:
        by_source.setdefault(export.relative_path, []).append(export)

    for relative_path in sorted(by_source):
        exports = by_source[relative_path]
        specifier = _import_specifier(relative_path)
        named = sorted(e.symbol_name for e in exports if not e.is_type_only and not e.is_default_as_named)
        defaults = sorted(e.symbol_name for e in exports if not e.is_type_only and e.is_default_as_named)
        types = sorted(e.symbol_name for e in exports if e.is_type_only and not e.is_default_as_named)
        type_defaults = sorted(e.symbol_name for e in exports if e.is_type_only and e.is_default_as_named)

        if named:
            lines.append(f"export {{ {', '.join(named)} }} from '{specifier}';")
        for name in defaults:
            lines.append(f"export {{ default as {name} }} from '{specifier}';")
        if types:
            lines.append(f"export type {{ {', '.join(types)} }} from '{specifier}';")
        for name in type_defaults:
            lines.append(f"export type {{ default as {name} }} from '{specifier}';")

    if extra_statements:
        lines.extend(["", USAGE_MARKER])
        lines.extend(extra_statements)

    missing = sorted(set(unresolved))
    if missing:
        lines.extend(["", UNRESOLVED_HEADER])
        lines.extend(f"// - {name}" for name in missing)

    lines.append("")
    return "\n".join(lines)


def reconstruct_module_index(
    module_dir: Path,
    expected: Dict[str, ExpectedImport],
    root: Path,
    reporter: Observer,
    cache: Optional[_ExportCache] = None,
) -> Optional[ReconstructedIndex]:
    """Compute the regenerated index for one directory, or ``None`` when nothing is missing.

    Names already listed in an earlier unresolved block are returned in
    ``listed_unresolved`` only; when they are all that is missing the index is
    returned with ``was_modified`` false and must not be rewritten.
    """
    if not module_dir.is_dir():
        return None
    cache = cache or _ExportCache()
    relative_dir = _relative_posix(module_dir, root)
    reporter.progress(f"Reconstructing index for {relative_dir}...")

    index_path = find_index_file(module_dir)
    existing_content = ""
    existing = ExportSet()
    if index_path is not None:
        try:
            existing_content = index_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            reporter.warning(f"Unable to read {index_path}: {exc} - skipping {relative_dir}")
            return None
        existing = extract_exports(existing_content, index_path.name, include_forwarded=True)

    if existing_content and is_entry_point_content(existing_content):
        reporter.progress(f"  Skipping {relative_dir} - appears to be an entry point, not an index file")
        return None

    expected_symbols = sorted(name for name in expected if name != NAMESPACE_SYMBOL)
    missing = [name for name in expected_symbols if not existing.exports(name)]
    if not missing:
        return None
    reporter.progress(f"  Found {len(missing)} missing exports")

    already_listed = previously_unresolved(existing_content)
    resolved: List[ResolvedExport] = []
    unresolved: List[str] = []
    listed: List[str] = []
    for name in missing:
        source = find_export_source(name, module_dir, root, reporter, cache)
        if source is None:
            (listed if name in already_listed else unresolved).append(name)
            continue
        source.is_type_only = expected[name].is_type_only
        resolved.append(source)

    if not resolved and not unresolved and not listed:
        return None
    reporter.progress(f"  Resolved {len(resolved)}/{len(missing)} exports")

    return ReconstructedIndex(
        module_path=relative_dir,
        index_path=index_path or module_dir / "index.ts",
        existing_exports=sorted(existing.all_names()),
        expected_exports=expected_symbols,
        resolved_exports=resolved,
        unresolved_exports=unresolved,
        existing_content=existing_content,
        generated_content=render_index_content(existing_content, resolved, unresolved),
        importers={name: list(expected[name].imported_by) for name in expected_symbols},
        listed_unresolved=listed,
    )


def write_index(index: ReconstructedIndex) -> None:
    index.index_path.write_text(index.generated_content, encoding="utf-8")


def reconstruct_all_indexes(
    root: Path | str,
    source_files: Iterable[SourceFile],
    aliases: Optional[Sequence[AliasMapping]] = None,
    *,
    observer: Optional[Observer] = None,
    write: bool = True,
) -> ReconstructionResult:
    """Regenerate the index of every directory whose consumers expect missing names.

    With ``write=False`` nothing is written; callers can amend and persist the
    returned indexes themselves with :func:`write_index`.
    """
    root_path = Path(root).expanduser().resolve()
    reporter = WarningRecorder(observer)
    files = list(source_files)
    reporter.progress(f"Scanning {len(files)} files for internal imports...")
    expected = collect_expected_imports(root_path, files, aliases or ())
    reporter.progress(f"Found imports from {len(expected)} internal modules")

    result = ReconstructionResult()
    cache = _ExportCache()
    for module_dir in sorted(expected):
        index = reconstruct_module_index(module_dir, expected[module_dir], root_path, reporter, cache)
        if index is None:
            continue
        result.total_unresolved += len(index.listed_unresolved)
        if not index.was_modified:
            continue
        result.indexes.append(index)
        result.total_resolved += len(index.resolved_exports)
        result.total_unresolved += len(index.unresolved_exports)
        if write:
            try:
                write_index(index)
            except OSError as exc:
                reporter.warning(f"Failed to write {index.index_path}: {exc}")
                continue
            reporter.progress(f"  Wrote {_relative_posix(index.index_path, root_path)}")

    reporter.progress(
        f"Reconstruction complete: {len(result.indexes)} index files updated, "
        f"{result.total_resolved} exports resolved, {result.total_unresolved} unresolved"
    )
    result.warnings = reporter.warnings
    return result


def generate_alias_target_indexes(
    root: Path | str,
    aliases: Iterable[AliasMapping],
    *,
    observer: Optional[Observer] = None,
) -> List[str]:
    """Give alias target directories without an index a plain ``export *`` index.

    Returns the created paths as ``<alias path>/index.ts``.
    """
    reporter = observer or Observer()
    root_path = Path(root).expanduser().resolve()
    generated: List[str] = []
    processed: Set[Path] = set()

    for mapping in aliases:
        normalized = mapping.normalized_path
        directory = Path(os.path.normpath(root_path / normalized))
        if directory in processed:
            continue
        processed.add(directory)
        if not directory.is_dir() or find_index_file(directory) is not None:
            continue

        try:
            names = sorted(entry.name for entry in directory.iterdir() if entry.is_file())
        except OSError as exc:
            reporter.warning(f"Unable to list alias target {normalized}: {exc}")
            continue
        modules = []
        for name in names:
            match = _ALIAS_MODULE_RE.match(name)
            if match and match.group(1) != "index" and match.group(1) not in modules:
                modules.append(match.group(1))
        if not modules:
            continue

        lines = [
            "// Auto-generated index file for package alias resolution",
            f"// This file was created because the directory is used as an alias target ({mapping.alias})",
            "// and did not have an index file for bare imports.",
            "",
        ]
        lines.extend(f"export * from './{module}';" for module in sorted(modules))
        lines.append("")
        try:
            (directory / "index.ts").write_text("\n".join(lines), encoding="utf-8")
        except OSError as exc:
            reporter.warning(f"Failed to write index for alias target {normalized}: {exc}")
            continue
        generated.append(f"{normalized}/index.ts")
        reporter.progress(f"Generated index.ts for {mapping.alias} with {len(modules)} module(s)")
    return generated


__all__ = [
    "ExpectedImport",
    "GENERATED_HEADER",
    "INDEX_FILENAMES",
    "REEXPORT_MARKER",
    "UNRESOLVED_HEADER",
    "USAGE_MARKER",
    "collect_expected_imports",
    "find_export_source",
    "find_index_file",
    "generate_alias_target_indexes",
    "is_entry_point_content",
    "previously_unresolved",
    "reconstruct_all_indexes",
    "reconstruct_module_index",
    "render_index_content",
    "search_directories",
    "write_index",
]
