"""tree-sitter grammars backing the grammar-aware chunking passes."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Dict, Optional

import tree_sitter_css
import tree_sitter_javascript
from tree_sitter import Language, Node, Parser, Tree

LOGGER = logging.getLogger(__name__)

_GRAMMAR_FACTORIES: Dict[str, Callable[[], object]] = {
    "css": tree_sitter_css.language,
    "javascript": tree_sitter_javascript.language,
}


@lru_cache(maxsize=None)
def load_language(name: str) -> Optional[Language]:
    """Return the compiled grammar for ``name`` or ``None`` when it cannot load."""
    factory = _GRAMMAR_FACTORIES.get(name)
    if factory is None:
        return None
    try:
        return Language(factory())
    except (TypeError, ValueError) as err:
        LOGGER.warning("tree-sitter grammar %s unavailable: %s", name, err)
        return None


def parse(name: str, source: bytes) -> Optional[Tree]:
    """Parse ``source`` with a fresh parser; parsers are not shared across threads."""
    language = load_language(name)
    if language is None:
        return None
    return Parser(language).parse(source)


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def node_lines(node: Node) -> tuple[int, int]:
    """Return the 1-based inclusive line span of ``node``."""
    return node.start_point[0] + 1, node.end_point[0] + 1


__all__ = ["load_language", "node_lines", "node_text", "parse"]
