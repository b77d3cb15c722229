"""Tests for modrecon.resolvers.index."""

from __future__ import annotations

from typing import List

from modrecon.models import AliasMapping
from modrecon.observer import Observer
from modrecon.resolvers.index import (
    GENERATED_HEADER,
    REEXPORT_MARKER,
    UNRESOLVED_HEADER,
    generate_alias_target_indexes,
    is_entry_point_content,
    previously_unresolved,
    reconstruct_all_indexes,
    search_directories,
)
from tests._fixtures.source_tree import SourceTreeBuilder


def _write_utils(source_tree: SourceTreeBuilder, consumer: str) -> None:
    source_tree.write(
        {
            "src/utils/index.ts": "export { clamp } from './math';\n",
            "src/utils/math.ts": "export const clamp = (v: number) => v;\n",
            "src/utils/timing.ts": "export function debounce() {}\n",
            "src/app.ts": consumer,
        }
    )


def test_missing_export_is_appended_and_existing_lines_kept(source_tree: SourceTreeBuilder) -> None:
    _write_utils(source_tree, "import { clamp, debounce } from './utils';\nclamp(debounce());\n")

    result = reconstruct_all_indexes(source_tree.path(), source_tree.scan())

    assert result.total_resolved == 1
    assert result.total_unresolved == 0
    assert source_tree.read("src/utils/index.ts") == (
        "export { clamp } from './math';\n"
        "\n"
        f"{REEXPORT_MARKER}\n"
        "\n"
        "export { debounce } from './timing';\n"
    )
    index = result.indexes[0]
    assert index.module_path == "src/utils"
    assert index.was_modified
    assert index.importers["debounce"] == [str(source_tree.path().resolve() / "src/app.ts")]


def test_second_run_is_a_no_op(source_tree: SourceTreeBuilder) -> None:
    _write_utils(source_tree, "import { clamp, debounce, ghost } from './utils';\nclamp(debounce(ghost));\n")
    root = source_tree.path()

    first = reconstruct_all_indexes(root, source_tree.scan())
    after_first = source_tree.read("src/utils/index.ts")
    second = reconstruct_all_indexes(root, source_tree.scan())

    assert first.total_unresolved == 1
    assert f"{UNRESOLVED_HEADER}\n// - ghost\n" in after_first
    assert previously_unresolved(after_first) == {"ghost"}
    assert second.indexes == []
    assert second.total_unresolved == 1
    assert after_first.count(UNRESOLVED_HEADER) == 1
    assert source_tree.read("src/utils/index.ts") == after_first


def test_write_false_leaves_files_untouched(source_tree: SourceTreeBuilder) -> None:
    _write_utils(source_tree, "import { debounce } from './utils';\ndebounce();\n")

    result = reconstruct_all_indexes(source_tree.path(), source_tree.scan(), write=False)

    assert result.indexes[0].generated_content.endswith("export { debounce } from './timing';\n")
    assert source_tree.read("src/utils/index.ts") == "export { clamp } from './math';\n"


def test_directory_without_index_gets_generated_one(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "src/components/Button.tsx": "export default function Button() { return <button />; }\n",
            "src/components/types.ts": "export interface ButtonProps { label: string }\n",
            "src/page.tsx": (
                "import { Button } from './components';\n"
                "import type { ButtonProps } from './components';\n"
                "export const Page = (props: ButtonProps) => <Button />;\n"
            ),
        }
    )

    reconstruct_all_indexes(source_tree.path(), source_tree.scan())

    content = source_tree.read("src/components/index.ts")
    assert content.startswith("\n".join(GENERATED_HEADER))
    assert "export { default as Button } from './Button';" in content
    assert "export type { ButtonProps } from './types';" in content


def test_alias_imports_resolve_through_mapping(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "packages/shared/format.ts": "export const formatPrice = (n: number) => `$${n}`;\n",
            "packages/shared/index.ts": "export const VERSION = '1';\n",
            "apps/web/cart.ts": "import { formatPrice } from '@shop/shared';\nformatPrice(1);\n",
        }
    )
    aliases = [AliasMapping(alias="@shop/shared", path="./packages/shared/")]

    result = reconstruct_all_indexes(source_tree.path(), source_tree.scan(), aliases)

    assert [index.module_path for index in result.indexes] == ["packages/shared"]
    assert "export { formatPrice } from './format';" in source_tree.read("packages/shared/index.ts")


def test_entry_point_index_is_never_rewritten(source_tree: SourceTreeBuilder) -> None:
    entry = (
        "import { createRoot } from 'react-dom/client';\n"
        "import { App } from './App';\n"
        "createRoot(document.getElementById('root')!).render(<App />);\n"
    )
    source_tree.write(
        {
            "src/index.tsx": entry,
            "src/App.tsx": "export const App = () => <main />;\n",
            "main.ts": "import { App } from './src';\nApp();\n",
        }
    )

    result = reconstruct_all_indexes(source_tree.path(), source_tree.scan())

    assert is_entry_point_content(entry)
    assert result.indexes == []
    assert source_tree.read("src/index.tsx") == entry


def test_markup_heavy_index_without_render_call_is_an_entry_point() -> None:
    body = "\n".join(f"  const label{n} = 'item {n}';" for n in range(9))
    content = (
        "import { Layout } from './Layout';\n"
        "\n"
        "const Shell = () => {\n"
        f"{body}\n"
        "  return <Layout title={label0} />;\n"
        "};\n"
    )
    short = (
        "import { Layout } from './Layout';\n"
        "const Shell = () => <Layout title='home' />;\n"
    )

    assert is_entry_point_content(content)
    assert not is_entry_point_content(short)
    assert not is_entry_point_content("export { Layout } from './Layout';\nexport * from './Shell';\n")


def test_ambiguous_locations_warn_and_use_first_match(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "features/search/index.ts": "export const search = 1;\n",
            "features/auth/helper.ts": "export const normalize = 1;\n",
            "features/cart/helper.ts": "export const normalize = 2;\n",
            "app.ts": "import { normalize } from './features/search';\nnormalize;\n",
        }
    )
    warnings: List[str] = []

    result = reconstruct_all_indexes(
        source_tree.path(), source_tree.scan(), observer=Observer(on_warning=warnings.append)
    )

    resolved = result.indexes[0].resolved_exports[0]
    assert resolved.relative_path == "../auth/helper.ts"
    assert result.warnings == warnings
    assert warnings == [
        '"normalize" found in multiple locations: ../auth/helper.ts, ../cart/helper.ts - using first match'
    ]


def test_search_directories_stay_inside_root(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "pkg/a/x.ts": "export const x = 1;\n",
            "pkg/a/src/y.ts": "export const y = 1;\n",
            "pkg/b/z.ts": "export const z = 1;\n",
            "other/w.ts": "export const w = 1;\n",
            "pkg/node_modules/dep/index.js": "export const d = 1;\n",
        }
    )
    root = source_tree.path()

    directories = search_directories(root / "pkg" / "a", root)

    assert directories == [
        root / "pkg" / "a",
        root / "pkg" / "a" / "src",
        root / "pkg" / "b",
        root / "other",
    ]
    assert search_directories(root, root) == [root]


def test_generate_alias_target_indexes_creates_export_star_index(source_tree: SourceTreeBuilder) -> None:
    source_tree.write(
        {
            "packages/ui/Button.tsx": "export const Button = () => <button />;\n",
            "packages/ui/Card.tsx": "export const Card = () => <div />;\n",
            "packages/ui/notes.md": "# notes\n",
            "packages/core/index.ts": "export const core = 1;\n",
        }
    )
    aliases = [
        AliasMapping(alias="@app/ui", path="packages/ui"),
        AliasMapping(alias="@app/core", path="packages/core"),
    ]

    generated = generate_alias_target_indexes(source_tree.path(), aliases)

    assert generated == ["packages/ui/index.ts"]
    content = source_tree.read("packages/ui/index.ts")
    assert content.startswith("// Auto-generated index file for package alias resolution")
    assert content.endswith("export * from './Button';\nexport * from './Card';\n")
    assert source_tree.read("packages/core/index.ts") == "export const core = 1;\n"
