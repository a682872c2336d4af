"""Project-scoped owner of theme-map state."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..memory.schema import FileRecord, ThemeMap, ThemeMapStatus
from ..parsers.chunker import ChunkCache
from ..utils.config import config_section, positive_float, positive_int
from .enrichment import BATCH_SIZE, Summarizer, clean_orphan_summaries, enrich_theme_map
from .graph import ThemeDependencyGraph
from .indexer import index_theme, reindex_file
from .lookup import CONFIDENT_SCORE, DEFAULT_MAX_TARGETS, LookupResult, lookup_theme_map
from .repair import LineEdit, repair_feature_lines
from .scheduler import DEFAULT_DEBOUNCE_SECONDS, ReindexScheduler, TimerFactory
from .store import DEFAULT_CACHE_CAPACITY, ThemeMapCache, ThemeMapStore

LOGGER = logging.getLogger(__name__)


class ThemeMapService:
    """Owns the map cache, store, per-project graphs, chunk cache and reindex scheduler."""

    def __init__(
        self,
        store: Optional[ThemeMapStore] = None,
        *,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        chunk_cache: Optional[ChunkCache] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
        summary_batch_size: int = BATCH_SIZE,
        max_targets: int = DEFAULT_MAX_TARGETS,
        confident_threshold: float = CONFIDENT_SCORE,
    ) -> None:
        self._cache = ThemeMapCache(store, capacity=cache_capacity)
        self._chunk_cache = chunk_cache or ChunkCache()
        self._graphs: Dict[str, ThemeDependencyGraph] = {}
        self._lock = threading.RLock()
        scheduler_options: Dict[str, Any] = {"debounce_seconds": debounce_seconds}
        if timer_factory is not None:
            scheduler_options["timer_factory"] = timer_factory
        self._scheduler = ReindexScheduler(self._apply_flush, **scheduler_options)
        self._summary_batch_size = summary_batch_size
        self._max_targets = max_targets
        self._confident_threshold = confident_threshold
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        store: Optional[ThemeMapStore] = None,
        timer_factory: Optional[TimerFactory] = None,
    ) -> "ThemeMapService":
        section = config_section(config, "theme_map")
        return cls(
            store,
            cache_capacity=positive_int(section.get("cache_size"), DEFAULT_CACHE_CAPACITY),
            debounce_seconds=positive_float(section.get("debounce_seconds"), DEFAULT_DEBOUNCE_SECONDS),
            timer_factory=timer_factory,
            summary_batch_size=positive_int(section.get("summary_batch_size"), BATCH_SIZE),
            max_targets=positive_int(section.get("max_targets"), DEFAULT_MAX_TARGETS),
            confident_threshold=positive_float(section.get("confident_threshold"), CONFIDENT_SCORE),
        )

    @property
    def chunk_cache(self) -> ChunkCache:
        return self._chunk_cache

    @property
    def scheduler(self) -> ReindexScheduler:
        return self._scheduler

    def get(self, project_id: str) -> Optional[ThemeMap]:
        return self._cache.get(project_id)

    def build(self, project_id: str, files: Sequence[FileRecord]) -> ThemeMap:
        """Full rebuild; summaries of unchanged files are carried over."""
        with self._lock:
            previous = self._cache.get(project_id)
            graph = ThemeDependencyGraph()
            theme_map = index_theme(
                project_id,
                files,
                previous=previous,
                graph=graph,
                chunk_cache=self._chunk_cache,
            )
            self._graphs[project_id] = graph
            self._cache.put(theme_map)
            return theme_map

    def ensure(self, project_id: str, files: Sequence[FileRecord]) -> ThemeMap:
        """Return the cached map, building it on a cold start."""
        existing = self.get(project_id)
        if existing is not None and existing.files:
            return existing
        return self.build(project_id, files)

    def lookup(self, project_id: str, query: str, *, active_file: Optional[str] = None) -> Optional[LookupResult]:
        theme_map = self.get(project_id)
        if theme_map is None:
            return None
        return lookup_theme_map(
            theme_map,
            query,
            active_file=active_file,
            max_targets=self._max_targets,
            confident_threshold=self._confident_threshold,
        )

    def reindex(self, project_id: str, file: FileRecord) -> Optional[ThemeMap]:
        with self._lock:
            theme_map = self.get(project_id)
            if theme_map is None:
                return None
            updated = reindex_file(
                theme_map,
                file,
                graph=self._graphs.get(project_id),
                chunk_cache=self._chunk_cache,
            )
            if updated is not theme_map:
                self._cache.put(updated)
            return updated

    def record_edit(self, project_id: str, path: str, edit: LineEdit) -> Optional[ThemeMap]:
        """Shift feature lines after an in-place edit, ahead of the debounced reindex."""
        with self._lock:
            theme_map = self.get(project_id)
            if theme_map is None:
                return None
            updated = repair_feature_lines(theme_map, path, edit)
            if updated is not theme_map:
                self._cache.put(updated)
            return updated

    def schedule(self, project_id: str, file: FileRecord) -> None:
        self._scheduler.mark_dirty(project_id, file)

    def flush(self, project_id: str) -> List[str]:
        return self._scheduler.flush(project_id)

    def enrich(self, project_id: str, files: Iterable[FileRecord], summarizer: Summarizer) -> Optional[ThemeMap]:
        """Attach summaries synchronously and drop entries for vanished files."""
        records = list(files)
        with self._lock:
            theme_map = self.get(project_id)
            if theme_map is None:
                return None
            self._cache.put(theme_map.model_copy(update={"status": ThemeMapStatus.ENRICHING}))
        try:
            enriched = enrich_theme_map(theme_map, records, summarizer, batch_size=self._summary_batch_size)
        except Exception:
            with self._lock:
                current = self.get(project_id)
                if current is not None and current.status is ThemeMapStatus.ENRICHING:
                    self._cache.put(current.model_copy(update={"status": ThemeMapStatus.READY}))
            raise
        with self._lock:
            # Structural updates that landed meanwhile win; only summaries are merged in.
            current = self.get(project_id) or enriched
            merged = _merge_summaries(current, enriched)
            merged = clean_orphan_summaries(merged, (record.path for record in records))
            merged = merged.model_copy(update={"status": ThemeMapStatus.READY})
            self._cache.put(merged)
            return merged

    def enrich_in_background(
        self,
        project_id: str,
        files: Iterable[FileRecord],
        summarizer: Summarizer,
    ) -> "Future[Optional[ThemeMap]]":
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="theme-map-enrich")
        return self._executor.submit(self.enrich, project_id, list(files), summarizer)

    def close(self) -> None:
        self._scheduler.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _apply_flush(self, project_id: str, files: List[FileRecord]) -> None:
        for file in files:
            self.reindex(project_id, file)


def _merge_summaries(current: ThemeMap, enriched: ThemeMap) -> ThemeMap:
    entries = dict(current.files)
    changed = False
    for path, entry in enriched.files.items():
        target = entries.get(path)
        if target is None or not entry.summary:
            continue
        if target.summary == entry.summary and target.summary_hash == entry.summary_hash:
            continue
        if target.content_hash != entry.content_hash:
            continue
        entries[path] = target.model_copy(update={"summary": entry.summary, "summary_hash": entry.summary_hash})
        changed = True
    return current.bumped(files=entries) if changed else current


__all__ = ["ThemeMapService"]
