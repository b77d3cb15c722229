"""Tests for modrecon.resolvers.cascade."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from modrecon.http import FetchedContent
from modrecon.models import ResolvedFile
from modrecon.observer import Observer
from modrecon.resolvers.cascade import (
    extract_css_import_urls,
    extract_import_paths,
    resolve_missing_dynamic_imports,
    resolve_relative_path,
    update_manifest_with_resolved_files,
)


class FakeFetcher:
    """Serves canned bodies by URL and records every request."""

    def __init__(self, responses: Dict[str, bytes]) -> None:
        self.responses = responses
        self.calls: List[str] = []

    def __call__(self, url: str) -> Optional[FetchedContent]:
        self.calls.append(url)
        body = self.responses.get(url)
        if body is None:
            return None
        return FetchedContent(content=body, content_type="application/javascript")


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _refusing_fetcher(url: str) -> Optional[FetchedContent]:
    raise AssertionError(f"unexpected fetch of {url}")


def test_extract_import_paths_returns_relative_references_only() -> None:
    source = (
        "import { a } from './a.js';\n"
        "import 'react';\n"
        "export { b } from '../shared/b.js';\n"
        "const lazy = () => import('./pages/6.js');\n"
        "const computed = () => import(`./pages/${id}.js`);\n"
        "const again = () => import('./a.js');\n"
    )

    assert extract_import_paths(source, "app.js") == ["./a.js", "../shared/b.js", "./pages/6.js"]


def test_extract_import_paths_ignores_unparseable_bundles() -> None:
    assert extract_import_paths("import( './x.js'", "broken.js") == []


def test_extract_css_import_urls_handles_both_syntaxes() -> None:
    css = (
        '@import url("./theme.css");\n'
        "@IMPORT './reset.css';\n"
        "@import url(https://fonts.example.com/inter.css);\n"
        "body { color: red; }\n"
    )

    assert extract_css_import_urls(css) == ["./theme.css", "./reset.css"]


def test_resolve_relative_path_normalizes_posix_style() -> None:
    assert resolve_relative_path("_app/entry/app.js", "../nodes/6.js") == "_app/nodes/6.js"
    assert resolve_relative_path("app.js", "./chunk.js") == "chunk.js"
    assert resolve_relative_path("a\\b\\c.js", "./d.js") == "a/b/d.js"
    assert resolve_relative_path("app.js", "../outside.js") == "../outside.js"


def test_missing_chunk_is_copied_from_static_dir(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    static = tmp_path / "static"
    _write(bundles / "entry" / "app.js", "export const page = () => import('../chunks/b.js');\n")
    _write(static / "chunks" / "b.js", "export const b = 1;\n")
    _write(static / "chunks" / "b.js.map", "{}")

    result = resolve_missing_dynamic_imports(bundles, static, None, fetcher=_refusing_fetcher)

    assert result.copied_files == 1
    assert result.fetched_files == 0
    assert result.failed_files == 0
    assert (bundles / "chunks" / "b.js").read_text(encoding="utf-8") == "export const b = 1;\n"
    assert (bundles / "chunks" / "b.js.map").exists()
    assert result.resolved_files == [
        ResolvedFile(
            url="chunks/b.js",
            local_path="chunks/b.js",
            content_type="application/javascript",
            size=len("export const b = 1;\n"),
            source="copied",
            has_source_map=True,
        )
    ]


def test_source_map_copy_failure_keeps_the_copied_chunk(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    static = tmp_path / "static"
    _write(bundles / "app.js", "export const page = () => import('./c.js');\n")
    _write(static / "c.js", "export const c = 1;\n")
    _write(static / "c.js.map", "{}")
    (bundles / "c.js.map").mkdir()
    warnings: List[str] = []

    result = resolve_missing_dynamic_imports(
        bundles,
        static,
        None,
        fetcher=_refusing_fetcher,
        observer=Observer(on_warning=warnings.append),
    )

    assert result.copied_files == 1
    assert result.failed_files == 0
    assert (bundles / "c.js").read_text(encoding="utf-8") == "export const c = 1;\n"
    assert [item.local_path for item in result.resolved_files] == ["c.js"]
    assert not result.resolved_files[0].has_source_map
    assert len(warnings) == 1
    assert warnings[0].startswith("Failed to copy source map for c.js")


def test_mutual_references_reach_fixpoint_in_one_iteration(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    _write(bundles / "a.js", "import { b } from './b.js';\nexport const a = b;\n")
    _write(bundles / "b.js", "export const b = () => import('./a.js');\n")

    result = resolve_missing_dynamic_imports(bundles, None, "https://example.com", fetcher=_refusing_fetcher)

    assert result.iterations == 1
    assert result.resolved_files == []
    assert sorted(path.name for path in bundles.iterdir()) == ["a.js", "b.js"]


def test_fetched_files_are_scanned_in_next_iteration(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    _write(bundles / "app.js", "export const load = () => import('./lazy.js');\n")
    fetcher = FakeFetcher(
        {
            "https://example.com/assets/lazy.js": b"export const next = () => import('./deeper.js');\n",
            "https://example.com/assets/lazy.js.map": b"{}",
        }
    )
    warnings: List[str] = []

    result = resolve_missing_dynamic_imports(
        bundles,
        None,
        "https://example.com/assets/",
        fetcher=fetcher,
        observer=Observer(on_warning=warnings.append),
    )

    assert result.fetched_files == 1
    assert result.failed_files == 1
    assert result.iterations == 2
    assert (bundles / "lazy.js").exists()
    assert (bundles / "lazy.js.map").read_bytes() == b"{}"
    assert result.resolved_files[0].has_source_map
    assert result.resolved_files[0].source == "fetched"
    assert warnings == ["404 or error: https://example.com/assets/deeper.js"]
    assert result.warnings == warnings
    assert len(fetcher.calls) == len(set(fetcher.calls))
    assert fetcher.calls == [
        "https://example.com/assets/lazy.js",
        "https://example.com/assets/lazy.js.map",
        "https://example.com/assets/deeper.js",
    ]


def test_reference_chain_stops_at_iteration_cap(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    _write(bundles / "app.js", "export const next = () => import('./1.js');\n")
    fetcher = FakeFetcher(
        {
            f"https://example.com/{n}.js": f"export const next = () => import('./{n + 1}.js');\n".encode()
            for n in range(1, 5)
        }
    )

    result = resolve_missing_dynamic_imports(
        bundles, None, "https://example.com", max_iterations=3, fetcher=fetcher
    )

    assert result.iterations == 3
    assert result.fetched_files == 3
    assert result.failed_files == 0
    assert [item.local_path for item in result.resolved_files] == ["1.js", "2.js", "3.js"]
    assert "https://example.com/4.js" not in fetcher.calls
    assert not (bundles / "4.js").exists()


def test_each_path_is_attempted_at_most_once(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    _write(bundles / "one.js", "export const x = () => import('./missing.js');\n")
    _write(bundles / "two.js", "export const y = () => import('./missing.js');\n")
    fetcher = FakeFetcher({})

    result = resolve_missing_dynamic_imports(bundles, None, "https://example.com", fetcher=fetcher)

    assert fetcher.calls == ["https://example.com/missing.js"]
    assert result.failed_files == 1


def test_css_imports_are_materialized(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    static = tmp_path / "static"
    _write(bundles / "styles" / "main.css", '@import url("./theme.css");\nbody { margin: 0; }\n')
    _write(static / "styles" / "theme.css", ":root { --accent: teal; }\n")

    result = resolve_missing_dynamic_imports(bundles, static, "https://example.com")

    assert result.copied_files == 1
    assert result.resolved_files[0].content_type == "text/css"
    assert result.resolved_files[0].url == "https://example.com/styles/theme.css"


def test_references_escaping_bundles_dir_are_warned(tmp_path: Path) -> None:
    bundles = tmp_path / "bundles"
    _write(bundles / "app.js", "export const x = () => import('../secrets.js');\n")
    warnings: List[str] = []

    result = resolve_missing_dynamic_imports(
        bundles,
        None,
        "https://example.com",
        fetcher=_refusing_fetcher,
        observer=Observer(on_warning=warnings.append),
    )

    assert result.resolved_files == []
    assert warnings == ["Reference ../secrets.js in app.js points outside the bundles directory"]


def test_missing_bundles_dir_yields_empty_result(tmp_path: Path) -> None:
    result = resolve_missing_dynamic_imports(tmp_path / "nope", None, None)

    assert result.iterations == 0
    assert result.resolved_files == []


def test_max_iterations_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        resolve_missing_dynamic_imports(tmp_path, None, None, max_iterations=0)


def test_update_manifest_records_resolved_files(tmp_path: Path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"static": {"assetCount": 3}}), encoding="utf-8")
    files = [
        ResolvedFile(
            url="https://example.com/a.js",
            local_path="a.js",
            content_type="application/javascript",
            size=10,
            source="fetched",
            has_source_map=True,
        )
    ]

    assert update_manifest_with_resolved_files(manifest, files)

    data = json.loads(manifest.read_text(encoding="utf-8"))
    assert data["static"]["assetCount"] == 4
    section = data["resolvedDynamicImports"]
    assert section["count"] == 1
    assert section["resolvedAt"].endswith("Z")
    assert section["files"] == [
        {
            "url": "https://example.com/a.js",
            "localPath": "a.js",
            "contentType": "application/javascript",
            "size": 10,
            "source": "fetched",
            "hasSourceMap": True,
        }
    ]


def test_update_manifest_failure_is_a_warning(tmp_path: Path) -> None:
    warnings: List[str] = []
    files = [ResolvedFile(url="u", local_path="a.js", content_type="x", size=1, source="copied")]

    ok = update_manifest_with_resolved_files(
        tmp_path / "missing.json", files, observer=Observer(on_warning=warnings.append)
    )

    assert not ok
    assert len(warnings) == 1
    assert warnings[0].startswith("Failed to update manifest with resolved files")
