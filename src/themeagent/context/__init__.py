"""File selection under a token budget, with hybrid search."""

from .engine import ContextEngine, ContextResult, EngineRegistry, FileMetadata
from .search import SearchConfig, SearchResult, SearchSource, VectorSearch, hybrid_search, keyword_search, rrf_fuse

__all__ = [
    "ContextEngine",
    "ContextResult",
    "EngineRegistry",
    "FileMetadata",
    "SearchConfig",
    "SearchResult",
    "SearchSource",
    "VectorSearch",
    "hybrid_search",
    "keyword_search",
    "rrf_fuse",
]
