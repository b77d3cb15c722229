"""Dynamic import cascade: materialize bundle files that other bundle files reference.

Lazily loaded chunks reference files that were never captured. Each iteration
scans every JS/CSS file under the bundles directory, resolves the relative
references it finds and fills each gap by copying from the static directory or
fetching from the original origin. Files materialized in one iteration are
scanned in the next, until an iteration adds nothing or the cap is reached.
"""

from __future__ import annotations

import json
import posixpath
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Set

from ..http import Fetcher, HttpFetcher
from ..models import CascadeResult, ResolvedFile
from ..observer import Observer, WarningRecorder
from ..parsing.tree_sitter import ParsedSource, iter_nodes, parse, string_value

DEFAULT_MAX_ITERATIONS = 10
BUNDLE_SUFFIXES = (".js", ".css")

_CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\s*\(\s*)?['"]?([^'");\s]+)['"]?\s*\)?""", re.IGNORECASE)
_SOURCE_STATEMENTS = {"import_statement", "export_statement"}


def _is_relative_reference(path: str) -> bool:
    return path.startswith("./") or path.startswith("../")


def extract_import_paths(source: str, filename: str = "file.js") -> List[str]:
    """Relative static, re-export and ``import("...")`` references in a JS file.

    Template-literal and computed ``import()`` arguments are skipped.
    """
    parsed = parse(source, filename)
    if not isinstance(parsed, ParsedSource):
        return []

    paths: List[str] = []
    for node, _parent in iter_nodes(parsed.root):
        value: Optional[str] = None
        if node.type in _SOURCE_STATEMENTS:
            value = string_value(node.child_by_field_name("source"), parsed.source_bytes)
        elif node.type == "call_expression":
            callee = node.child_by_field_name("function")
            arguments = node.child_by_field_name("arguments")
            if callee is None or callee.type != "import" or arguments is None:
                continue
            first = next(iter(arguments.named_children), None)
            value = string_value(first, parsed.source_bytes)
        if value and _is_relative_reference(value) and value not in paths:
            paths.append(value)
    return paths


def extract_css_import_urls(css: str) -> List[str]:
    paths: List[str] = []
    for match in _CSS_IMPORT_RE.finditer(css):
        path = match.group(1)
        if path and _is_relative_reference(path) and path not in paths:
            paths.append(path)
    return paths


def resolve_relative_path(from_file: str, relative_path: str) -> str:
    """Resolve ``relative_path`` against ``from_file``'s directory, POSIX style.

    >>> resolve_relative_path("_app/entry/app.js", "../nodes/6.js")
    '_app/nodes/6.js'
    """
    from_dir = posixpath.dirname(from_file.replace("\\", "/"))
    resolved = posixpath.normpath(posixpath.join(from_dir, relative_path.replace("\\", "/")))
    while resolved.startswith("./"):
        resolved = resolved[2:]
    return resolved


def _bundle_files(bundles_dir: Path) -> List[Path]:
    if not bundles_dir.is_dir():
        return []
    return sorted(
        path for path in bundles_dir.rglob("*") if path.is_file() and path.name.endswith(BUNDLE_SUFFIXES)
    )


def _references(path: Path, relative: str) -> List[str]:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    if relative.endswith(".css"):
        return extract_css_import_urls(content)
    return extract_import_paths(content, path.name)


def _content_type_for(path: str) -> str:
    return "text/css" if path.endswith(".css") else "application/javascript"


class CascadeResolver:
    """One cascade run; the processed-path set belongs to this instance only."""

    def __init__(
        self,
        bundles_dir: Path,
        static_dir: Optional[Path],
        base_url: Optional[str],
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        fetcher: Optional[Fetcher] = None,
        observer: Optional[Observer] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.bundles_dir = Path(bundles_dir)
        self.static_dir = Path(static_dir) if static_dir is not None else None
        self.base_url = base_url.rstrip("/") if base_url else None
        self.max_iterations = max_iterations
        self.fetcher: Fetcher = fetcher or HttpFetcher()
        self.reporter = WarningRecorder(observer)
        self.processed: Set[str] = set()
        self.result = CascadeResult()

    def run(self) -> CascadeResult:
        for iteration in range(1, self.max_iterations + 1):
            files = _bundle_files(self.bundles_dir)
            if not files:
                self.reporter.progress("No bundle files found")
                break
            self.result.iterations = iteration
            self.reporter.progress(
                f"Dynamic import scan iteration {iteration}: scanning {len(files)} files"
            )

            candidates = self._collect_candidates(files)
            if not candidates:
                self.reporter.progress("No new references found")
                break

            materialized = 0
            for candidate in candidates:
                if self._materialize(candidate):
                    materialized += 1
            if materialized == 0:
                self.reporter.progress("Fixpoint reached: no new files materialized")
                break

        self.result.warnings = self.reporter.warnings
        return self.result

    def _collect_candidates(self, files: Iterable[Path]) -> List[str]:
        candidates: List[str] = []
        for path in files:
            relative = path.relative_to(self.bundles_dir).as_posix()
            for reference in _references(path, relative):
                resolved = resolve_relative_path(relative, reference)
                if resolved in self.processed:
                    continue
                # Marked before any attempt so each path is tried at most once per run.
                self.processed.add(resolved)
                if resolved == ".." or resolved.startswith("../"):
                    self.reporter.warning(
                        f"Reference {reference} in {relative} points outside the bundles directory"
                    )
                    continue
                candidates.append(resolved)
        return candidates

    def _materialize(self, relative: str) -> bool:
        target = self.bundles_dir / relative
        if target.exists():
            return False

        if self.static_dir is not None:
            static_path = self.static_dir / relative
            if static_path.is_file():
                return self._copy(relative, static_path, target)

        if not self.base_url:
            self.reporter.warning(f"No base URL configured; cannot fetch {relative}")
            self.result.failed_files += 1
            return False
        return self._fetch(relative, target)

    def _copy(self, relative: str, static_path: Path, target: Path) -> bool:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(static_path, target)
        except OSError as exc:
            self.reporter.warning(f"Failed to copy {relative}: {exc}")
            self.result.failed_files += 1
            return False

        has_source_map = False
        map_source = static_path.with_name(static_path.name + ".map")
        if map_source.is_file():
            try:
                shutil.copyfile(map_source, target.with_name(target.name + ".map"))
                has_source_map = True
            except OSError as exc:
                self.reporter.warning(f"Failed to copy source map for {relative}: {exc}")

        self.result.copied_files += 1
        self.result.resolved_files.append(
            ResolvedFile(
                url=f"{self.base_url}/{relative}" if self.base_url else relative,
                local_path=relative,
                content_type=_content_type_for(relative),
                size=target.stat().st_size,
                source="copied",
                has_source_map=has_source_map,
            )
        )
        self.reporter.progress(f"Copied {relative} from static assets")
        return True

    def _fetch(self, relative: str, target: Path) -> bool:
        url = f"{self.base_url}/{relative}"
        fetched = self.fetcher(url)
        if fetched is None:
            self.reporter.warning(f"404 or error: {url}")
            self.result.failed_files += 1
            return False

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(fetched.content)
        except OSError as exc:
            self.reporter.warning(f"Failed to save {relative}: {exc}")
            self.result.failed_files += 1
            return False

        has_source_map = False
        if relative.endswith(".js"):
            source_map = self.fetcher(f"{url}.map")
            if source_map is not None:
                try:
                    target.with_name(target.name + ".map").write_bytes(source_map.content)
                    has_source_map = True
                except OSError as exc:
                    self.reporter.warning(f"Failed to save source map for {relative}: {exc}")

        self.result.fetched_files += 1
        self.result.resolved_files.append(
            ResolvedFile(
                url=url,
                local_path=relative,
                content_type=fetched.content_type,
                size=len(fetched.content),
                source="fetched",
                has_source_map=has_source_map,
            )
        )
        self.reporter.progress(f"Fetched {relative}")
        return True


def resolve_missing_dynamic_imports(
    bundles_dir: Path | str,
    static_dir: Optional[Path | str],
    base_url: Optional[str],
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    fetcher: Optional[Fetcher] = None,
    observer: Optional[Observer] = None,
) -> CascadeResult:
    """Materialize referenced-but-missing bundle files until a fixpoint is reached."""
    resolver = CascadeResolver(
        Path(bundles_dir),
        Path(static_dir) if static_dir is not None else None,
        base_url,
        max_iterations=max_iterations,
        fetcher=fetcher,
        observer=observer,
    )
    return resolver.run()


def update_manifest_with_resolved_files(
    manifest_path: Path | str,
    resolved_files: List[ResolvedFile],
    *,
    observer: Optional[Observer] = None,
) -> bool:
    """Record cascade results in a JSON capture manifest.

    Returns ``False`` (after a warning) when the manifest cannot be updated.
    """
    reporter = observer or Observer()
    path = Path(manifest_path)
    if not resolved_files:
        return True
    try:
        manifest = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        reporter.warning(f"Failed to update manifest with resolved files: {exc}")
        return False
    if not isinstance(manifest, dict):
        reporter.warning("Failed to update manifest with resolved files: manifest is not an object")
        return False

    manifest["resolvedDynamicImports"] = {
        "count": len(resolved_files),
        "resolvedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "files": [
            {
                "url": item.url,
                "localPath": item.local_path,
                "contentType": item.content_type,
                "size": item.size,
                "source": item.source,
                "hasSourceMap": item.has_source_map,
            }
            for item in resolved_files
        ],
    }
    static = manifest.get("static")
    if isinstance(static, dict) and isinstance(static.get("assetCount"), int):
        static["assetCount"] += len(resolved_files)

    try:
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    except OSError as exc:
        reporter.warning(f"Failed to update manifest with resolved files: {exc}")
        return False
    return True


__all__ = [
    "BUNDLE_SUFFIXES",
    "CascadeResolver",
    "DEFAULT_MAX_ITERATIONS",
    "extract_css_import_urls",
    "extract_import_paths",
    "resolve_missing_dynamic_imports",
    "resolve_relative_path",
    "update_manifest_with_resolved_files",
]
