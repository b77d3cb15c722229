"""Tree-sitter parsing and traversal for recovered JavaScript/TypeScript sources."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple, Union

import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser, Tree

_TYPESCRIPT_SUFFIXES = {".ts", ".mts", ".cts"}
_STRING_NODE_TYPES = {"string"}

Visitor = Callable[[Node, Optional[Node]], None]


@dataclass(frozen=True)
class ParseFailure:
    """A file that could not be parsed; it contributes nothing to any pass."""

    filename: str
    reason: str


@dataclass(frozen=True)
class ParsedSource:
    """A successfully parsed file together with the bytes its nodes index into."""

    filename: str
    tree: Tree
    source_bytes: bytes

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return node_text(node, self.source_bytes)


ParseResult = Union[ParsedSource, ParseFailure]


def grammar_for(filename: str) -> str:
    """Return the grammar key used for ``filename``.

    Plain TypeScript suffixes get the ``typescript`` grammar, where ``<T>x``
    is a type assertion. Everything else gets ``tsx``, which also accepts
    plain JavaScript and JSX.
    """
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    if suffix in _TYPESCRIPT_SUFFIXES:
        return "typescript"
    return "tsx"


class SourceParser:
    """Parses sources with one cached tree-sitter parser per grammar."""

    def __init__(self) -> None:
        self._parsers: Dict[str, Parser] = {}

    def parse(self, source: str, filename: str) -> ParseResult:
        grammar = grammar_for(filename)
        parser = self._get_parser(grammar)
        source_bytes = source.encode("utf-8", errors="replace")
        tree = parser.parse(source_bytes)
        if tree.root_node.has_error:
            return ParseFailure(filename=filename, reason=f"syntax error in {filename}")
        return ParsedSource(filename=filename, tree=tree, source_bytes=source_bytes)

    def _get_parser(self, grammar: str) -> Parser:
        parser = self._parsers.get(grammar)
        if parser is not None:
            return parser
        if grammar == "typescript":
            language = Language(tsts.language_typescript())
        else:
            language = Language(tsts.language_tsx())
        parser = Parser(language)
        self._parsers[grammar] = parser
        return parser


@lru_cache(maxsize=1)
def _default_parser() -> SourceParser:
    return SourceParser()


def parse(source: str, filename: str) -> ParseResult:
    """Parse ``source``; never raises, a failure is returned as :class:`ParseFailure`."""
    return _default_parser().parse(source, filename)


def iter_nodes(root: Node) -> Iterator[Tuple[Node, Optional[Node]]]:
    """Yield ``(node, parent)`` pairs in pre-order, each node at most once."""
    visited: Set[int] = set()
    stack: List[Tuple[Node, Optional[Node]]] = [(root, None)]
    while stack:
        node, parent = stack.pop()
        if node.id in visited:
            continue
        visited.add(node.id)
        yield node, parent
        # Reversed so the leftmost child is visited first.
        for child in reversed(node.children):
            stack.append((child, node))


def walk(tree: Union[ParsedSource, Tree, Node], visitor: Visitor) -> None:
    """Call ``visitor(node, parent)`` for every node reachable from ``tree``."""
    if isinstance(tree, ParsedSource):
        root = tree.root
    elif isinstance(tree, Tree):
        root = tree.root_node
    else:
        root = tree
    for node, parent in iter_nodes(root):
        visitor(node, parent)


def node_text(node: Node, source_bytes: bytes) -> str:
    return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def string_value(node: Optional[Node], source_bytes: bytes) -> Optional[str]:
    """Return the unquoted value of a string literal node.

    Template strings and every other expression yield ``None``.
    """
    if node is None or node.type not in _STRING_NODE_TYPES:
        return None
    raw = node_text(node, source_bytes)
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in {"'", '"'}:
        return raw[1:-1]
    return None


def has_keyword_child(node: Node, keyword: str) -> bool:
    """True when ``node`` has an anonymous token child spelled ``keyword``."""
    return any(not child.is_named and child.type == keyword for child in node.children)


__all__ = [
    "ParseFailure",
    "ParseResult",
    "ParsedSource",
    "SourceParser",
    "Visitor",
    "grammar_for",
    "has_keyword_child",
    "iter_nodes",
    "node_text",
    "parse",
    "string_value",
    "walk",
]
