"""Token-budgeted selection of theme files for a model request.

The engine indexes the live file set (metadata plus outgoing references),
scores files against a message with a cheap fuzzy heuristic, closes a
selection over its references, and packs the result into a token budget.
Packing is strictly in order: once a file does not fit, nothing after it
is included either.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from ..memory.files import is_stub_content
from ..memory.registry import LRURegistry
from ..memory.schema import FileRecord, FileType
from ..parsers.references import ASSET_TAG, RENDER_TAG, detect_references
from ..utils.config import config_section, positive_int
from ..utils.tokens import estimate_tokens
from .search import SearchConfig, SearchResult, VectorSearch, hybrid_search
from .topics import THEME_TOPIC_MAP, ThemeTopic, match_glob_pattern, match_theme_topics, topic_boost

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 16_000
MAX_CACHED_ENGINES = 8

EXACT_NAME_SCORE = 10
TERM_MAPPING_SCORE = 6
SEGMENT_SCORE = 5
FILENAME_SCORE = 3
TYPE_HINT_SCORE = 3
RECENCY_SCORE = 1

CURRENT_MESSAGE_MATCHES = 10
RECENT_MESSAGE_MATCHES = 5
TOPIC_FILE_LIMIT = 6
SEARCH_RESULT_LIMIT = 5

CSS_HINTS = frozenset({"style", "styles", "css", "stylesheet", "color", "font", "layout", "theme"})
JS_HINTS = frozenset({"script", "scripts", "js", "javascript", "function", "event", "click", "interactive"})
STOP_WORDS = frozenset(
    {"the", "and", "for", "with", "this", "that", "to", "of", "in", "on", "it", "is", "my", "can", "you", "please"}
)

_SEGMENT_SPLIT = re.compile(r"[/\\\-_.]+")
_WORD_SPLIT = re.compile(r"[^a-z0-9_.\-/]+")
_PATH_MENTION = re.compile(r"\b(?:sections|snippets|assets|templates|layout|config|blocks|locales)/[\w./-]+")
_FILENAME_MENTION = re.compile(r"\b[\w-]+(?:\.[\w-]+)*\.(?:liquid|css|scss|js|json)\b")


@dataclass(frozen=True)
class FileMetadata:
    id: str
    name: str
    path: str
    type: FileType
    size_bytes: int
    token_estimate: int
    updated_at: Optional[datetime]
    references: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FuzzyMatch:
    file_id: str
    path: str
    score: int


@dataclass(frozen=True)
class ContextBudget:
    max_tokens: int
    used_tokens: int

    @property
    def remaining(self) -> int:
        return self.max_tokens - self.used_tokens


@dataclass(frozen=True)
class ContextResult:
    files: Tuple[FileRecord, ...]
    budget: ContextBudget
    excluded: Tuple[str, ...] = ()
    missing: Tuple[str, ...] = ()
    search_results: Tuple[SearchResult, ...] = field(default=())

    @property
    def file_ids(self) -> List[str]:
        return [file.id for file in self.files]


class ContentLoader(Protocol):
    def load_content(self, ids: Sequence[str]) -> List[FileRecord]:
        ...


def to_segments(path: str) -> List[str]:
    return [segment for segment in _SEGMENT_SPLIT.split(path.lower()) if segment]


def query_words(query: str) -> List[str]:
    words = [word.strip(".-/") for word in _WORD_SPLIT.split(query.lower())]
    return [word for word in dict.fromkeys(words) if len(word) >= 2 and word not in STOP_WORDS]


class ContextEngine:
    """Index of the live file set with fuzzy scoring and budgeted assembly."""

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        *,
        loader: Optional[ContentLoader] = None,
        vector: Optional[VectorSearch] = None,
        search_config: Optional[SearchConfig] = None,
        topics: Sequence[ThemeTopic] = THEME_TOPIC_MAP,
    ) -> None:
        self._max_tokens = max_tokens
        self._loader = loader
        self._search_config = search_config or SearchConfig()
        self._vector = vector if vector is not None else VectorSearch(enabled=self._search_config.vector_enabled)
        self._topics = tuple(topics)
        self._files: Dict[str, FileRecord] = {}
        self._metadata: Dict[str, FileMetadata] = {}
        self._path_index: Dict[str, str] = {}
        self._term_mappings: Dict[str, Tuple[str, ...]] = {}
        self._dependency_cache: Dict[str, Tuple[str, ...]] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, loader: Optional[ContentLoader] = None) -> "ContextEngine":
        section = config_section(config, "context")
        return cls(
            max_tokens=positive_int(section.get("token_budget"), DEFAULT_MAX_TOKENS),
            loader=loader,
            search_config=SearchConfig.from_config(config),
        )

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def files(self) -> List[FileRecord]:
        return list(self._files.values())

    def index_files(self, files: Iterable[FileRecord]) -> None:
        """Replace the indexed file set and drop cached dependency closures."""
        records = {record.id: record for record in files}
        with self._lock:
            self._files = records
            self._metadata = {record.id: self._describe(record) for record in records.values()}
            self._path_index = {record.path: record.id for record in records.values()}
            self._dependency_cache.clear()
        LOGGER.debug("Context engine indexed %d file(s)", len(records))

    def metadata(self, file_id: str) -> Optional[FileMetadata]:
        return self._metadata.get(file_id)

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        return self._files.get(file_id)

    def find_by_path(self, path: str) -> Optional[FileRecord]:
        normalized = path.strip().lstrip("./")
        file_id = self._path_index.get(normalized)
        if file_id is not None:
            return self._files[file_id]
        for candidate, candidate_id in sorted(self._path_index.items()):
            if candidate.endswith("/" + normalized):
                return self._files[candidate_id]
        return None

    def load_term_mappings(self, mappings: Mapping[str, Sequence[str]]) -> None:
        """Install learned ``term -> paths`` associations (replaces previous ones)."""
        cleaned = {
            term.strip().lower(): tuple(paths)
            for term, paths in mappings.items()
            if term and term.strip() and paths
        }
        with self._lock:
            self._term_mappings = cleaned

    def fuzzy_match(self, query: str, top_n: int = 10) -> List[FuzzyMatch]:
        query_lower = query.strip().lower()
        if not query_lower:
            return []
        words = query_words(query_lower)
        topics = match_theme_topics(query_lower, self._topics)
        mapped_paths = self._mapped_paths(query_lower)
        wants_style = any(word in CSS_HINTS for word in words)
        wants_script = any(word in JS_HINTS for word in words)
        newest = self._newest_timestamp()

        matches: List[FuzzyMatch] = []
        for meta in self._metadata.values():
            name = meta.name.lower()
            path = meta.path.lower()
            score = 0
            if name == query_lower or path == query_lower:
                score += EXACT_NAME_SCORE
            score += topic_boost(meta.path, topics)
            if meta.path in mapped_paths:
                score += TERM_MAPPING_SCORE
            segments = set(to_segments(path))
            for word in words:
                if word in segments:
                    score += SEGMENT_SCORE
                if word in name:
                    score += FILENAME_SCORE
            if (wants_style and meta.type is FileType.STYLE) or (wants_script and meta.type is FileType.SCRIPT):
                score += TYPE_HINT_SCORE
            if score > 0 and newest is not None and meta.updated_at == newest:
                score += RECENCY_SCORE
            if score > 0:
                matches.append(FuzzyMatch(meta.id, meta.path, score))
        matches.sort(key=lambda match: (-match.score, match.path))
        return matches[:top_n]

    def resolve_with_dependencies(self, ids: Sequence[str]) -> List[str]:
        """Seeds followed by their transitive references, breadth first."""
        seeds = [file_id for file_id in dict.fromkeys(ids) if file_id in self._metadata]
        key = "\0".join(sorted(seeds))
        cached = self._dependency_cache.get(key)
        if cached is not None:
            return list(cached)
        visited: Dict[str, None] = dict.fromkeys(seeds)
        queue: Deque[str] = deque(seeds)
        while queue:
            current = queue.popleft()
            for target_path in self._metadata[current].references:
                target = self._path_index.get(target_path)
                if target is not None and target not in visited:
                    visited[target] = None
                    queue.append(target)
        closure = tuple(visited)
        with self._lock:
            self._dependency_cache[key] = closure
        return list(closure)

    def build_context(
        self,
        requested: Sequence[str],
        priority: Sequence[str] = (),
        max_tokens: Optional[int] = None,
    ) -> ContextResult:
        """Pack priority, then requested, then dependency files into the budget."""
        budget = self._max_tokens if max_tokens is None else max_tokens
        ordered: Dict[str, None] = dict.fromkeys(priority)
        ordered.update(dict.fromkeys(requested))
        ordered.update(dict.fromkeys(self.resolve_with_dependencies(list(ordered))))

        missing = tuple(file_id for file_id in ordered if file_id not in self._files)
        candidates = [file_id for file_id in ordered if file_id in self._files]
        self._hydrate([file_id for file_id in candidates if is_stub_content(self._files[file_id].content)])

        included: List[FileRecord] = []
        excluded: List[str] = []
        used = 0
        overflowed = False
        for file_id in candidates:
            record = self._files[file_id]
            cost = self._metadata[file_id].token_estimate
            if overflowed or used + cost > budget:
                overflowed = True
                excluded.append(file_id)
                continue
            included.append(record)
            used += cost
        if excluded:
            LOGGER.debug("Context budget %d reached; excluded %d file(s)", budget, len(excluded))
        return ContextResult(
            files=tuple(included),
            budget=ContextBudget(max_tokens=budget, used_tokens=used),
            excluded=tuple(excluded),
            missing=missing,
        )

    def extract_file_references(self, message: str) -> List[str]:
        """Ids of files the message names by path, file name, render tag or asset tag."""
        mentions: List[str] = list(_PATH_MENTION.findall(message))
        mentions.extend(f"snippets/{name}.liquid" for name in RENDER_TAG.findall(message))
        mentions.extend(f"assets/{name}" for name in ASSET_TAG.findall(message))
        mentions.extend(_FILENAME_MENTION.findall(message))
        found: Dict[str, None] = {}
        for mention in mentions:
            record = self.find_by_path(mention.rstrip(".,;:"))
            if record is not None:
                found.setdefault(record.id, None)
        return list(found)

    def topic_files(self, message: str, limit: int = TOPIC_FILE_LIMIT) -> List[str]:
        topics = match_theme_topics(message, self._topics)
        if not topics:
            return []
        matched = [
            meta
            for meta in self._metadata.values()
            if any(match_glob_pattern(meta.path, pattern) for topic in topics for pattern in topic.patterns)
        ]
        matched.sort(key=lambda meta: (-topic_boost(meta.path, topics), meta.path))
        return [meta.id for meta in matched[:limit]]

    def select_relevant_files(
        self,
        message: str,
        *,
        active_file_id: Optional[str] = None,
        explicit_ids: Sequence[str] = (),
        recent_messages: Sequence[str] = (),
        max_tokens: Optional[int] = None,
    ) -> ContextResult:
        priority, requested = self._selection(message, active_file_id, explicit_ids, recent_messages)
        return self.build_context(requested, priority, max_tokens)

    def select_relevant_files_with_search(
        self,
        message: str,
        *,
        active_file_id: Optional[str] = None,
        explicit_ids: Sequence[str] = (),
        recent_messages: Sequence[str] = (),
        max_tokens: Optional[int] = None,
        search_limit: int = SEARCH_RESULT_LIMIT,
    ) -> ContextResult:
        """Fuzzy selection followed by hybrid search hits at the lowest priority."""
        priority, requested = self._selection(message, active_file_id, explicit_ids, recent_messages)
        hits = hybrid_search(
            message,
            self.files,
            search_limit,
            vector=self._vector,
            config=self._search_config,
        )
        requested.extend(hit.file_id for hit in hits if hit.file_id in self._files)
        result = self.build_context(requested, priority, max_tokens)
        return ContextResult(
            files=result.files,
            budget=result.budget,
            excluded=result.excluded,
            missing=result.missing,
            search_results=tuple(hits),
        )

    def _selection(
        self,
        message: str,
        active_file_id: Optional[str],
        explicit_ids: Sequence[str],
        recent_messages: Sequence[str],
    ) -> Tuple[List[str], List[str]]:
        priority: Dict[str, None] = {}
        if active_file_id and active_file_id in self._files:
            priority[active_file_id] = None
        priority.update(dict.fromkeys(file_id for file_id in explicit_ids if file_id in self._files))
        priority.update(dict.fromkeys(self.extract_file_references(message)))
        priority.update(dict.fromkeys(self.topic_files(message)))

        requested: Dict[str, None] = {}
        for match in self.fuzzy_match(message, CURRENT_MESSAGE_MATCHES):
            requested.setdefault(match.file_id, None)
        for previous in recent_messages:
            for match in self.fuzzy_match(previous, RECENT_MESSAGE_MATCHES):
                requested.setdefault(match.file_id, None)
        return list(priority), [file_id for file_id in requested if file_id not in priority]

    def _describe(self, record: FileRecord) -> FileMetadata:
        return FileMetadata(
            id=record.id,
            name=record.name,
            path=record.path,
            type=record.type,
            size_bytes=len(record.content.encode("utf-8")),
            token_estimate=estimate_tokens(record.content),
            updated_at=record.updated_at,
            references=tuple(detect_references(record.path, record.content)),
        )

    def _hydrate(self, stub_ids: List[str]) -> None:
        if not stub_ids or self._loader is None:
            return
        try:
            loaded = list(self._loader.load_content(stub_ids))
        except Exception as err:  # noqa: BLE001
            LOGGER.warning("Could not hydrate %d stub file(s): %s", len(stub_ids), err, exc_info=True)
            return
        wanted = set(stub_ids)
        with self._lock:
            for record in loaded:
                if record.id in wanted and not is_stub_content(record.content):
                    self._files[record.id] = record
                    self._metadata[record.id] = self._describe(record)
            # Hydrated files may reveal references the stubs hid.
            self._dependency_cache.clear()

    def _mapped_paths(self, query_lower: str) -> Set[str]:
        paths: Set[str] = set()
        for term, mapped in self._term_mappings.items():
            if re.search(r"\b" + re.escape(term) + r"\b", query_lower):
                paths.update(mapped)
        return paths

    def _newest_timestamp(self) -> Optional[datetime]:
        stamps = {meta.updated_at for meta in self._metadata.values() if meta.updated_at is not None}
        if len(stamps) < 2:
            return None
        return max(stamps)


class EngineRegistry:
    """Bounded LRU of context engines, one per project."""

    def __init__(self, capacity: int = MAX_CACHED_ENGINES) -> None:
        self._engines: LRURegistry[str, ContextEngine] = LRURegistry(capacity, name="context-engines")

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, project_id: object) -> bool:
        return project_id in self._engines

    def get(self, project_id: str) -> Optional[ContextEngine]:
        return self._engines.get(project_id)

    def engine_for(
        self,
        project_id: str,
        files: Optional[Iterable[FileRecord]] = None,
        factory: Callable[[], ContextEngine] = ContextEngine,
    ) -> ContextEngine:
        """Return the project's engine, creating it on first use and reindexing when ``files`` is given."""
        engine = self._engines.get_or_create(project_id, factory)
        if files is not None:
            engine.index_files(files)
        return engine

    def evict(self, project_id: str) -> None:
        self._engines.pop(project_id)


__all__ = [
    "ContentLoader",
    "ContextBudget",
    "ContextEngine",
    "ContextResult",
    "DEFAULT_MAX_TOKENS",
    "EngineRegistry",
    "FileMetadata",
    "FuzzyMatch",
    "query_words",
    "to_segments",
]
