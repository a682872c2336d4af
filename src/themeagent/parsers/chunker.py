"""Route a file to its structural pass and cache the result by content hash."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..memory.files import file_type_for_path
from ..memory.registry import LRURegistry
from ..memory.schema import FileType
from ..utils.hashing import content_hash
from . import config_json, liquid, script, stylesheet
from .chunks import Chunk, ChunkMetadata, ChunkType

LOGGER = logging.getLogger(__name__)

ChunkStrategy = Callable[[str, str], List[Chunk]]

DEFAULT_CACHE_CAPACITY = 4096

# Tried in order; the first strategy returning chunks wins.
STRATEGIES: Dict[FileType, Tuple[ChunkStrategy, ...]] = {
    FileType.TEMPLATE: (liquid.chunk_template,),
    FileType.STYLE: (stylesheet.chunk_with_grammar, stylesheet.chunk_with_regex),
    FileType.SCRIPT: (script.chunk_with_grammar, script.chunk_with_regex),
    FileType.CONFIG: (config_json.chunk_with_json, config_json.chunk_with_scanner),
}


class ChunkCache:
    """Bounded cache of chunk lists keyed by ``(path, content hash)``."""

    def __init__(self, capacity: int = DEFAULT_CACHE_CAPACITY) -> None:
        self._registry: LRURegistry[Tuple[str, str], Tuple[Chunk, ...]] = LRURegistry(
            capacity, name="chunk-cache"
        )
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._registry)

    def get(self, path: str, digest: str) -> Optional[Tuple[Chunk, ...]]:
        cached = self._registry.get((path, digest))
        if cached is None:
            self.misses += 1
        else:
            self.hits += 1
        return cached

    def put(self, path: str, digest: str, chunks: Sequence[Chunk]) -> None:
        self._registry.put((path, digest), tuple(chunks))


def run_strategies(strategies: Sequence[ChunkStrategy], content: str, path: str) -> List[Chunk]:
    """Return the output of the first strategy that succeeds with a non-empty list."""
    for strategy in strategies:
        try:
            chunks = strategy(content, path)
        except Exception as err:  # noqa: BLE001  # next pass takes over
            LOGGER.warning("Chunking pass %s failed for %s: %s", strategy.__qualname__, path, err)
            continue
        if chunks:
            return list(chunks)
        LOGGER.debug("Chunking pass %s produced nothing for %s", strategy.__qualname__, path)
    return []


def chunk_file(content: str, path: str, *, cache: Optional[ChunkCache] = None) -> List[Chunk]:
    """Split ``content`` into structural chunks; identical content is parsed once."""
    if not content.strip():
        return []
    digest = content_hash(content)
    if cache is not None:
        cached = cache.get(path, digest)
        if cached is not None:
            return list(cached)

    strategies = STRATEGIES.get(file_type_for_path(path))
    if strategies is None:
        chunks = [whole_file_chunk(content, path)]
    else:
        chunks = run_strategies(strategies, content, path)

    if cache is not None:
        cache.put(path, digest, chunks)
    return chunks


def whole_file_chunk(content: str, path: str) -> Chunk:
    return Chunk(
        type=ChunkType.CODE_BLOCK,
        content=content,
        file=path,
        line_start=1,
        line_end=content.count("\n") + 1,
        metadata=ChunkMetadata(node_type="file"),
    )


__all__ = ["ChunkCache", "ChunkStrategy", "STRATEGIES", "chunk_file", "run_strategies", "whole_file_chunk"]
