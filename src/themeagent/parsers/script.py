"""Function-level chunking for JavaScript assets."""

from __future__ import annotations

import re
from typing import List, Optional

from tree_sitter import Node

from . import grammars
from .chunks import Chunk, ChunkMetadata, ChunkType
from .scanning import blank_comments, find_unquoted, line_at, match_brace

FUNCTION_NODES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "arrow_function",
        "method_definition",
        "class_declaration",
    }
)
DECLARATION_NODES = frozenset({"lexical_declaration", "variable_declaration"})
FUNCTION_VALUES = frozenset({"arrow_function", "function_expression", "function", "generator_function"})

_DEFINITION_PATTERN = re.compile(
    r"\bfunction\s*\*?\s*(?P<function>[\w$]+)\s*\("
    r"|\b(?:const|let|var)\s+(?P<binding>[\w$]+)\s*=\s*(?:async\s+)?"
    r"(?:function\b|\([^)]*\)\s*=>|[\w$]+\s*=>)"
    r"|\bclass\s+(?P<klass>[\w$]+)"
)


def chunk_with_grammar(content: str, path: str) -> List[Chunk]:
    """Functions, classes and function-valued bindings; bodies are not descended."""
    source = content.encode("utf-8")
    tree = grammars.parse("javascript", source)
    if tree is None or tree.root_node.has_error:
        return []
    chunks: List[Chunk] = []
    _collect(tree.root_node, source, path, chunks)
    return chunks


def chunk_with_regex(content: str, path: str) -> List[Chunk]:
    """Approximate function boundaries by keyword matching plus brace pairing."""
    scrubbed = blank_comments(content, line_comments=True)
    chunks: List[Chunk] = []
    consumed = 0
    for match in _DEFINITION_PATTERN.finditer(scrubbed):
        if match.start() < consumed:
            continue
        name = match.group("function") or match.group("binding") or match.group("klass")
        node_type = "class_declaration" if match.group("klass") else "function_declaration"
        end = _definition_end(scrubbed, match.end(), match.group(0).rstrip().endswith("=>"))
        consumed = end
        chunks.append(
            _function_chunk(
                content[match.start() : end],
                path,
                line_at(content, match.start()),
                line_at(content, end - 1),
                name,
                node_type,
            )
        )
    return chunks


def _collect(node: Node, source: bytes, path: str, chunks: List[Chunk]) -> None:
    for child in node.children:
        if child.type in FUNCTION_NODES:
            start, end = grammars.node_lines(child)
            chunks.append(
                _function_chunk(
                    grammars.node_text(child, source),
                    path,
                    start,
                    end,
                    _field_text(child, "name", source),
                    child.type,
                )
            )
            continue
        if child.type in DECLARATION_NODES:
            name = _function_binding(child, source)
            if name is not None:
                start, end = grammars.node_lines(child)
                chunks.append(
                    _function_chunk(grammars.node_text(child, source), path, start, end, name, child.type)
                )
                continue
        _collect(child, source, path, chunks)


def _function_binding(declaration: Node, source: bytes) -> Optional[str]:
    for declarator in declaration.children:
        if declarator.type != "variable_declarator":
            continue
        value = declarator.child_by_field_name("value")
        if value is not None and value.type in FUNCTION_VALUES:
            return _field_text(declarator, "name", source)
    return None


def _field_text(node: Node, field: str, source: bytes) -> Optional[str]:
    child = node.child_by_field_name(field)
    if child is None:
        return None
    return grammars.node_text(child, source)


def _definition_end(text: str, position: int, arrow: bool) -> int:
    newline = text.find("\n", position)
    line_end = len(text) if newline < 0 else newline
    if arrow and not text[position:line_end].lstrip().startswith("{"):
        # Expression-bodied arrow: the definition ends with its line.
        return line_end
    brace = find_unquoted(text, "{", position)
    if brace < 0:
        return line_end
    return match_brace(text, brace)


def _function_chunk(
    text: str,
    path: str,
    start: int,
    end: int,
    name: Optional[str],
    node_type: str,
) -> Chunk:
    return Chunk(
        type=ChunkType.JS_FUNCTION,
        content=text,
        file=path,
        line_start=start,
        line_end=end,
        metadata=ChunkMetadata(function_name=name or None, node_type=node_type),
    )


__all__ = ["chunk_with_grammar", "chunk_with_regex"]
