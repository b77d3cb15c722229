"""Tree-sitter parsing and import/export extraction for JS/TS sources."""

from .exports import extract_exports
from .imports import categorize_import, extract_imports
from .tree_sitter import ParseFailure, ParsedSource, SourceParser, node_text, parse, string_value, walk

__all__ = [
    "ParseFailure",
    "ParsedSource",
    "SourceParser",
    "categorize_import",
    "extract_exports",
    "extract_imports",
    "node_text",
    "parse",
    "string_value",
    "walk",
]
