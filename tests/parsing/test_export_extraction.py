"""Tests for modrecon.parsing.exports."""

from __future__ import annotations

from modrecon.parsing.exports import extract_exports

_LOCAL_DECLARATIONS = """\
export function clamp(value: number, min: number, max: number) {
  return Math.min(Math.max(value, min), max);
}
export class Timer {}
export enum Mode { Light, Dark }
export const debounce = () => undefined, throttle = () => undefined;
export const { width, height: screenHeight, ...rest } = getScreen();
export const [first, , third = 3] = list;
export interface Props { size: number }
export type Size = 'sm' | 'lg';
const hidden = 1;
"""


def test_extract_exports_collects_local_declarations() -> None:
    exports = extract_exports(_LOCAL_DECLARATIONS, "utils.ts")

    assert exports.named == {
        "clamp",
        "Timer",
        "Mode",
        "debounce",
        "throttle",
        "width",
        "screenHeight",
        "rest",
        "first",
        "third",
    }
    assert exports.types == {"Props", "Size"}
    assert not exports.has_default
    assert "hidden" not in exports.all_names()


def test_extract_exports_tracks_default_forms() -> None:
    assert extract_exports("export default function App() {}\n", "App.tsx").has_default
    assert extract_exports("const x = 1;\nexport { x as default };\n", "x.ts").has_default
    assert extract_exports("declare const y: number;\nexport = y;\n", "legacy.ts").has_default


def test_local_clause_exports_are_included_and_type_only_split() -> None:
    source = (
        "const a = 1;\n"
        "interface B {}\n"
        "type C = string;\n"
        "export { a as alpha };\n"
        "export type { B };\n"
        "export { type C };\n"
    )

    exports = extract_exports(source, "mixed.ts")

    assert exports.named == {"alpha"}
    assert exports.types == {"B", "C"}


def test_forwarded_exports_only_in_forwarding_mode() -> None:
    source = (
        "export { clamp } from './math';\n"
        "export type { Theme } from './theme';\n"
        "export * as Icons from './icons';\n"
        "export * from './everything';\n"
    )

    local = extract_exports(source, "index.ts")
    forwarding = extract_exports(source, "index.ts", include_forwarded=True)

    assert local.all_names() == set()
    assert forwarding.named == {"clamp", "Icons"}
    assert forwarding.types == {"Theme"}
    assert forwarding.exports("clamp")
    assert not forwarding.exports("default")


def test_ambient_declarations_are_exported() -> None:
    exports = extract_exports("export declare const version: string;\n", "env.d.ts")

    assert exports.named == {"version"}


def test_unparseable_file_exports_nothing() -> None:
    exports = extract_exports("export const = ;\n", "broken.ts")

    assert exports.all_names() == set()
