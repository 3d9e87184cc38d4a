"""Source parsing helpers built on tree-sitter."""

from .parser import detect_language, extract_identifiers, lower_module_syntax

__all__ = [
    "detect_language",
    "extract_identifiers",
    "lower_module_syntax",
]
