"""Persisted structural index of a theme: build, update, look up."""

from .enrichment import ModelSummarizer, clean_orphan_summaries, enrich_theme_map
from .graph import ThemeDependencyGraph
from .indexer import index_theme, infer_purpose, is_minified_or_generated, reindex_file
from .lookup import LookupResult, format_lookup_result, lookup_theme_map
from .repair import EditKind, LineEdit, repair_feature_lines
from .scheduler import ReindexScheduler
from .service import ThemeMapService
from .store import ThemeMapCache, ThemeMapStore

__all__ = [
    "EditKind",
    "LineEdit",
    "LookupResult",
    "ModelSummarizer",
    "ReindexScheduler",
    "ThemeDependencyGraph",
    "ThemeMapCache",
    "ThemeMapService",
    "ThemeMapStore",
    "clean_orphan_summaries",
    "enrich_theme_map",
    "format_lookup_result",
    "index_theme",
    "infer_purpose",
    "is_minified_or_generated",
    "lookup_theme_map",
    "reindex_file",
    "repair_feature_lines",
]
