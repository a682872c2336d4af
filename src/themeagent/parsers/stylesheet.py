"""Rule-level chunking for stylesheets."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from . import grammars
from .chunks import Chunk, ChunkMetadata, ChunkType
from .scanning import blank_comments, line_at, match_brace

TOP_LEVEL_NODES = frozenset(
    {"rule_set", "media_statement", "at_rule", "keyframes_statement", "supports_statement"}
)

_RULE_START = re.compile(r"^([^{@\n}][^{}]*)\{", re.MULTILINE)
_CLASS_PATTERN = re.compile(r"\.([a-zA-Z_][\w-]*)")


def chunk_with_grammar(content: str, path: str) -> List[Chunk]:
    """Top-level rules from the tree-sitter CSS grammar; empty on parse errors."""
    source = content.encode("utf-8")
    tree = grammars.parse("css", source)
    if tree is None or tree.root_node.has_error:
        return []
    chunks: List[Chunk] = []
    for node in tree.root_node.children:
        if node.type not in TOP_LEVEL_NODES:
            continue
        selector: Optional[str] = None
        for child in node.children:
            if child.type == "selectors":
                selector = " ".join(grammars.node_text(child, source).split())
                break
        start, end = grammars.node_lines(node)
        chunks.append(_rule_chunk(grammars.node_text(node, source), path, start, end, selector, node.type))
    return chunks


def chunk_with_regex(content: str, path: str) -> List[Chunk]:
    """Approximate top-level rules by matching a selector then its braces."""
    scrubbed = blank_comments(content)
    chunks: List[Chunk] = []
    consumed = 0
    for match in _RULE_START.finditer(scrubbed):
        if match.start() < consumed:
            continue
        selector = " ".join(match.group(1).split())
        if not selector or selector.startswith("{%"):
            continue
        start = match.start() + len(match.group(1)) - len(match.group(1).lstrip())
        end = match_brace(scrubbed, match.end() - 1)
        consumed = end
        chunks.append(
            _rule_chunk(
                content[start:end],
                path,
                line_at(content, start),
                line_at(content, end - 1),
                selector,
                "rule_set",
            )
        )
    return chunks


def selector_classes(selector: Optional[str]) -> Tuple[str, ...]:
    if not selector:
        return ()
    return tuple(dict.fromkeys(_CLASS_PATTERN.findall(selector)))


def _rule_chunk(
    text: str,
    path: str,
    start: int,
    end: int,
    selector: Optional[str],
    node_type: str,
) -> Chunk:
    return Chunk(
        type=ChunkType.CSS_RULE,
        content=text,
        file=path,
        line_start=start,
        line_end=end,
        metadata=ChunkMetadata(
            selector=selector,
            node_type=node_type,
            references=selector_classes(selector),
        ),
    )


__all__ = ["chunk_with_grammar", "chunk_with_regex", "selector_classes"]
