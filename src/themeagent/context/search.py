"""Keyword search, vector search and their reciprocal rank fusion."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..memory.files import is_stub_content
from ..memory.schema import FileRecord
from ..utils.config import as_bool, config_section, positive_float, positive_int
from ..utils.hashing import content_hash
from .embeddings import EmbeddingsIndex, Encoder

LOGGER = logging.getLogger(__name__)

RRF_K = 60
VECTOR_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
SIMILARITY_THRESHOLD = 0.3
CONTENT_HIT_WEIGHT = 2
NAME_HIT_WEIGHT = 5
CANDIDATE_FACTOR = 3

_SEARCH_TOKEN = re.compile(r"[a-z0-9_][a-z0-9_-]*")


class SearchSource(str, Enum):
    KEYWORD = "keyword"
    VECTOR = "vector"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class SearchResult:
    file_id: str
    path: str
    score: float
    source: SearchSource


@dataclass(frozen=True)
class SearchConfig:
    vector_enabled: bool = True
    similarity_threshold: float = SIMILARITY_THRESHOLD
    rrf_k: int = RRF_K
    vector_weight: float = VECTOR_WEIGHT
    keyword_weight: float = KEYWORD_WEIGHT

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SearchConfig":
        section = config_section(config, "search")
        return cls(
            vector_enabled=as_bool(section.get("vector_enabled"), True),
            similarity_threshold=positive_float(section.get("similarity_threshold"), SIMILARITY_THRESHOLD),
            rrf_k=positive_int(section.get("rrf_k"), RRF_K),
            vector_weight=positive_float(section.get("vector_weight"), VECTOR_WEIGHT),
            keyword_weight=positive_float(section.get("keyword_weight"), KEYWORD_WEIGHT),
        )


def search_tokens(query: str) -> List[str]:
    return list(dict.fromkeys(token for token in _SEARCH_TOKEN.findall(query.lower()) if len(token) > 1))


def keyword_search(query: str, files: Sequence[FileRecord], limit: int = 10) -> List[SearchResult]:
    """Score = 2 x content token hits + 5 x name token hits, scaled to ``[0, 1]``."""
    tokens = search_tokens(query)
    if not tokens or limit <= 0:
        return []
    ceiling = float((CONTENT_HIT_WEIGHT + NAME_HIT_WEIGHT) * len(tokens))
    results: List[SearchResult] = []
    for file in files:
        content = file.content.lower()
        name = file.name.lower()
        content_hits = sum(1 for token in tokens if token in content)
        name_hits = sum(1 for token in tokens if token in name)
        raw = CONTENT_HIT_WEIGHT * content_hits + NAME_HIT_WEIGHT * name_hits
        if raw > 0:
            results.append(SearchResult(file.id, file.path, raw / ceiling, SearchSource.KEYWORD))
    results.sort(key=lambda result: (-result.score, result.path))
    return results[:limit]


class VectorSearch:
    """Embedding similarity over the live file set, re-encoding only changed files."""

    def __init__(self, encoder: Optional[Encoder] = None, *, enabled: bool = True) -> None:
        self._index = EmbeddingsIndex(encoder)
        self.enabled = enabled

    @property
    def available(self) -> bool:
        return self.enabled

    def sync(self, files: Sequence[FileRecord]) -> None:
        live: List[str] = []
        for file in files:
            if not file.content or is_stub_content(file.content):
                continue
            self._index.index_document(file.id, f"{file.path}\n{file.content}", content_hash(file.content))
            live.append(file.id)
        self._index.retain(live)

    def search(
        self,
        query: str,
        files: Sequence[FileRecord],
        limit: int = 10,
        threshold: float = SIMILARITY_THRESHOLD,
    ) -> List[SearchResult]:
        self.sync(files)
        paths = {file.id: file.path for file in files}
        return [
            SearchResult(key, paths.get(key, key), score, SearchSource.VECTOR)
            for key, score in self._index.search(query, limit=limit, threshold=threshold)
        ]


def rrf_fuse(ranked: Sequence[Tuple[Sequence[SearchResult], float]], k: int = RRF_K) -> List[SearchResult]:
    """Reciprocal rank fusion: each list adds ``weight / (k + rank)``, rank from 1."""
    scores: Dict[str, float] = {}
    sources: Dict[str, SearchSource] = {}
    paths: Dict[str, str] = {}
    for results, weight in ranked:
        for rank, result in enumerate(results, start=1):
            scores[result.file_id] = scores.get(result.file_id, 0.0) + weight / (k + rank)
            paths.setdefault(result.file_id, result.path)
            previous = sources.get(result.file_id)
            sources[result.file_id] = result.source if previous in (None, result.source) else SearchSource.HYBRID
    fused = [SearchResult(file_id, paths[file_id], score, sources[file_id]) for file_id, score in scores.items()]
    fused.sort(key=lambda result: (-result.score, result.path))
    return fused


def hybrid_search(
    query: str,
    files: Sequence[FileRecord],
    limit: int = 10,
    *,
    vector: Optional[VectorSearch] = None,
    config: SearchConfig = SearchConfig(),
) -> List[SearchResult]:
    """Fuse keyword and vector rankings; keyword results alone when vectors are unavailable."""
    candidates = keyword_search(query, files, limit * CANDIDATE_FACTOR)
    if vector is None or not config.vector_enabled or not vector.available:
        return candidates[:limit]
    try:
        similar = vector.search(query, files, limit * CANDIDATE_FACTOR, config.similarity_threshold)
    except Exception as err:  # noqa: BLE001
        LOGGER.warning("Vector search failed, using keyword results only: %s", err)
        return candidates[:limit]
    if not similar:
        return candidates[:limit]
    fused = rrf_fuse([(similar, config.vector_weight), (candidates, config.keyword_weight)], config.rrf_k)
    return fused[:limit]


__all__ = [
    "SearchConfig",
    "SearchResult",
    "SearchSource",
    "VectorSearch",
    "hybrid_search",
    "keyword_search",
    "rrf_fuse",
    "search_tokens",
]
