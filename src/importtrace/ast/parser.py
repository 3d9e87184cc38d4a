"""Dependency identifier extraction using tree-sitter.

Two passes are offered over JavaScript/TypeScript source:

* :func:`lower_module_syntax` rewrites ES module ``import`` and
  ``export ... from`` statements into CommonJS ``require`` calls.
* :func:`extract_identifiers` lists the string literals passed to
  ``require(...)`` in source order.
"""

from __future__ import annotations

import itertools
import re
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from tree_sitter import Language, Node, Parser
from tree_sitter_javascript import language as javascript_language
from tree_sitter_typescript import language_tsx as tsx_language
from tree_sitter_typescript import language_typescript as typescript_language

from ..errors import ConfigurationError

_GRAMMARS = {
    "javascript": javascript_language,
    "typescript": typescript_language,
    "tsx": tsx_language,
}

LANGUAGE_EXTENSIONS = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

# tree-sitter parsers are not safe to share between threads
_LOCAL = threading.local()

_ESCAPE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])")

_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def detect_language(path: str | Path) -> Optional[str]:
    """Detect the grammar to use from a module's file extension."""
    return LANGUAGE_EXTENSIONS.get(Path(path).suffix.lower())


def get_parser(language: str) -> Parser:
    """Return the calling thread's cached parser for ``language``."""
    parsers: Dict[str, Parser] = getattr(_LOCAL, "parsers", None) or {}
    _LOCAL.parsers = parsers
    parser = parsers.get(language)
    if parser is None:
        grammar = _GRAMMARS.get(language)
        if grammar is None:
            raise ConfigurationError(f"No grammar available for language '{language}'")
        parser = Parser(Language(grammar()))
        parsers[language] = parser
    return parser


def _walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and its descendants in source order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _unescape(match: re.Match) -> str:
    sequence = match.group(1)
    if sequence in ("\n", "\r", "\r\n", "\u2028", "\u2029"):
        return ""
    if len(sequence) > 1 and sequence[0] == "u":
        return chr(int(sequence[1:].strip("{}"), 16))
    if len(sequence) > 1 and sequence[0] == "x":
        return chr(int(sequence[1:], 16))
    return _SIMPLE_ESCAPES.get(sequence, sequence)


def _string_value(node: Node, source: bytes) -> Optional[str]:
    """Return the literal value of a string or substitution-free template."""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
    elif node.type != "string":
        return None
    raw = source[node.start_byte + 1:node.end_byte - 1].decode("utf-8", errors="replace")
    try:
        return _ESCAPE.sub(_unescape, raw)
    except (ValueError, OverflowError):
        # code point out of range
        return None


def _require_target(node: Node, source: bytes) -> Optional[str]:
    function = node.child_by_field_name("function")
    if function is None or function.type != "identifier" or _text(function, source) != "require":
        return None
    arguments = node.child_by_field_name("arguments")
    if arguments is None:
        return None
    values = [child for child in arguments.named_children if child.type != "comment"]
    if len(values) != 1:
        return None
    return _string_value(values[0], source)


def extract_identifiers(text: str, language: str = "javascript") -> List[str]:
    """Return the identifiers passed to ``require`` in ``text``.

    Only calls with a single literal argument count; duplicates are kept so
    callers see the identifiers exactly in source order.
    """

    source = text.encode("utf-8")
    tree = get_parser(language).parse(source)
    identifiers = []
    for node in _walk(tree.root_node):
        if node.type == "call_expression":
            identifier = _require_target(node, source)
            if identifier is not None:
                identifiers.append(identifier)
    return identifiers


def _is_type_only(node: Node) -> bool:
    # TypeScript `import type ...` / `export type ... from`
    return any(child.type == "type" for child in node.children)


def _import_bindings(clause: Node, source: bytes) -> Tuple[Optional[str], Optional[str], List[Tuple[str, str]]]:
    default = namespace = None
    named: List[Tuple[str, str]] = []
    for child in clause.named_children:
        if child.type == "identifier":
            default = _text(child, source)
        elif child.type == "namespace_import":
            idents = [c for c in child.named_children if c.type == "identifier"]
            if idents:
                namespace = _text(idents[-1], source)
        elif child.type == "named_imports":
            for spec in child.named_children:
                if spec.type != "import_specifier" or _is_type_only(spec):
                    continue
                name = spec.child_by_field_name("name")
                alias = spec.child_by_field_name("alias")
                if name is None:
                    continue
                imported = _string_value(name, source) or _text(name, source)
                local = _text(alias, source) if alias is not None else imported
                named.append((imported, local))
    return default, namespace, named


def _lower_import(node: Node, source: bytes, temp: str) -> str:
    if _is_type_only(node):
        return ""

    for child in node.named_children:
        if child.type == "import_require_clause":
            target = child.child_by_field_name("source")
            local = next((c for c in child.named_children if c.type == "identifier"), None)
            if target is None or local is None:
                return _text(node, source)
            return f"var {_text(local, source)} = require({_text(target, source)});"

    target = node.child_by_field_name("source")
    if target is None:
        return _text(node, source)
    call = f"require({_text(target, source)})"

    clause = next((c for c in node.named_children if c.type == "import_clause"), None)
    if clause is None:
        return f"{call};"

    default, namespace, named = _import_bindings(clause, source)
    forms = sum(1 for present in (default, namespace, named) if present)
    if forms == 0:
        return f"{call};"
    if forms == 1 and namespace:
        return f"var {namespace} = {call};"
    if forms == 1 and default:
        return f"var {default} = {call}.default;"

    statements = [f"var {temp} = {call};"]
    if default:
        statements.append(f"var {default} = {temp}.default;")
    if namespace:
        statements.append(f"var {namespace} = {temp};")
    if named:
        pairs = ", ".join(f"{imported}: {local}" if imported != local else local for imported, local in named)
        statements.append(f"var {{ {pairs} }} = {temp};")
    return " ".join(statements)


def _lower_reexport(node: Node, source: bytes, temp: str) -> Optional[str]:
    target = node.child_by_field_name("source")
    if target is None:
        return None
    if _is_type_only(node):
        return ""
    call = f"require({_text(target, source)})"

    for child in node.named_children:
        if child.type == "namespace_export":
            names = [c for c in child.named_children if c.type in ("identifier", "string")]
            if names:
                exported = _string_value(names[-1], source) or _text(names[-1], source)
                return f"exports[{exported!r}] = {call};"
        elif child.type == "export_clause":
            statements = [f"var {temp} = {call};"]
            for spec in child.named_children:
                if spec.type != "export_specifier" or _is_type_only(spec):
                    continue
                name = spec.child_by_field_name("name")
                alias = spec.child_by_field_name("alias")
                if name is None:
                    continue
                imported = _string_value(name, source) or _text(name, source)
                exported = imported
                if alias is not None:
                    exported = _string_value(alias, source) or _text(alias, source)
                statements.append(f"exports[{exported!r}] = {temp}[{imported!r}];")
            return " ".join(statements)

    return f"Object.assign(exports, {call});"


def lower_module_syntax(text: str, language: str = "javascript") -> str:
    """Rewrite ES module dependency statements into ``require`` calls.

    Only top-level statements that name a module source are rewritten;
    everything else, including local ``export`` declarations, is left as is.
    Each rewrite starts on the line of the statement it replaces and the
    total line count is unchanged.
    """

    source = text.encode("utf-8")
    tree = get_parser(language).parse(source)
    counter = itertools.count()
    edits: List[Tuple[int, int, str]] = []

    for node in tree.root_node.named_children:
        replacement: Optional[str] = None
        if node.type == "import_statement":
            replacement = _lower_import(node, source, f"_imported{next(counter)}")
        elif node.type == "export_statement":
            replacement = _lower_reexport(node, source, f"_reexported{next(counter)}")
        if replacement is not None:
            # preserve the line count
            replacement += "\n" * source.count(b"\n", node.start_byte, node.end_byte)
            edits.append((node.start_byte, node.end_byte, replacement))

    if not edits:
        return text

    output = bytearray(source)
    for start, end, replacement in reversed(edits):
        output[start:end] = replacement.encode("utf-8")
    return output.decode("utf-8")
