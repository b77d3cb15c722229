"""Source discovery for recovered source trees."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .logging import get_logger
from .models import SourceFile

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    ".idea",
    ".vscode",
    ".cache",
    ".next",
    ".turbo",
    "__pycache__",
}

SOURCE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
MODULE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")

_logger = get_logger("scanner")


@dataclass
class IgnoreRule:
    """A gitignore-style rule from ``.gitignore`` or ``exclude_paths``."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_ignore_lines(lines: Iterable[str]) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def load_ignore_rules(root: Path, exclude_paths: Sequence[str] = ()) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    gitignore = root / ".gitignore"
    if gitignore.is_file():
        try:
            rules.extend(parse_ignore_lines(gitignore.read_text(encoding="utf-8").splitlines()))
        except (OSError, UnicodeDecodeError) as exc:
            _logger.debug("Unable to read %s: %s", gitignore, exc)
    rules.extend(parse_ignore_lines(exclude_paths))
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    # Last matching rule wins, as in git.
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def is_source_file(name: str, suffixes: Sequence[str] = SOURCE_SUFFIXES) -> bool:
    lower = name.lower()
    return lower.endswith(tuple(suffixes)) and not lower.endswith(".d.ts")


def iter_source_paths(
    root: Path,
    rules: Sequence[IgnoreRule] = (),
    suffixes: Sequence[str] = SOURCE_SUFFIXES,
    skip_hidden: bool = False,
) -> Iterator[Path]:
    """Yield source files under ``root`` in a stable, sorted order."""
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        kept = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS or (skip_hidden and name.startswith(".")):
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if should_ignore(rel_path, True, rules):
                continue
            kept.append(name)
        dirnames[:] = kept

        for filename in sorted(filenames):
            if not is_source_file(filename, suffixes):
                continue
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if should_ignore(rel_path, False, rules):
                continue
            yield current_dir / filename


def scan_source_files(root: str | Path, *, exclude_paths: Sequence[str] = ()) -> List[SourceFile]:
    """Read every JS/TS source under ``root`` into :class:`SourceFile` records."""
    root_path = Path(root).expanduser().resolve()
    if not root_path.exists():
        raise FileNotFoundError(f"Source tree not found: {root}")
    if not root_path.is_dir():
        raise NotADirectoryError(f"Source tree path is not a directory: {root}")

    rules = load_ignore_rules(root_path, exclude_paths)
    files: List[SourceFile] = []
    for path in iter_source_paths(root_path, rules):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _logger.debug("Skipping unreadable source %s: %s", path, exc)
            continue
        files.append(SourceFile(path=path.relative_to(root_path).as_posix(), content=content))
    _logger.debug("Discovered %d source files under %s", len(files), root_path)
    return files


__all__ = [
    "IgnoreRule",
    "MODULE_SUFFIXES",
    "SOURCE_SUFFIXES",
    "build_ignore_rule",
    "is_source_file",
    "iter_source_paths",
    "load_ignore_rules",
    "parse_ignore_lines",
    "scan_source_files",
    "should_ignore",
]
