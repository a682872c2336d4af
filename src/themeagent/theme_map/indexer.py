"""Build and incrementally update the theme map.

The full build is synchronous and purely structural: every eligible file is
chunked, its chunks become keyed features, and cross-file information
(dependency edges, shared conventions, entry points, framework family) is
derived from the whole file set. No model call happens here; natural
language summaries are attached later by :mod:`themeagent.theme_map.enrichment`.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..memory.files import is_stub_content
from ..memory.schema import FileRecord, ThemeMap, ThemeMapFile, ThemeMapStatus, utc_now
from ..parsers import liquid
from ..parsers.chunker import ChunkCache, chunk_file
from ..parsers.chunks import Chunk
from ..utils.hashing import content_hash
from .conventions import (
    class_prefixes,
    compute_global_patterns,
    detect_framework,
    entry_points,
    extract_patterns,
    prefix_names,
)
from .features import build_features
from .graph import ThemeDependencyGraph

LOGGER = logging.getLogger(__name__)

GENERATED_MARKERS = (".min.", ".bundle.")
LARGE_FILE_CHARS = 100_000
LONG_FIRST_LINE_CHARS = 500
DENSE_FILE_CHARS = 10_000
DENSE_FILE_MAX_LINES = 3

_DIRECTORY_PURPOSES = {
    "templates": "template",
    "sections": "section",
    "snippets": "snippet",
    "blocks": "block",
    "config": "configuration",
    "locales": "translations",
}
_SCHEMA_SUFFIXES = {"sections": "section", "snippets": "snippet", "blocks": "block"}


def is_minified_or_generated(path: str, content: str) -> bool:
    """Return True for bundles and minified output, which are never indexed."""
    lowered = path.lower()
    if any(marker in lowered for marker in GENERATED_MARKERS):
        return True
    if len(content) > LARGE_FILE_CHARS:
        first_newline = content.find("\n")
        if first_newline < 0 or first_newline > LONG_FIRST_LINE_CHARS:
            return True
    if len(content) > DENSE_FILE_CHARS and content.count("\n") + 1 <= DENSE_FILE_MAX_LINES:
        return True
    return False


def is_indexable(file: FileRecord) -> bool:
    return not is_stub_content(file.content) and not is_minified_or_generated(file.path, file.content)


def infer_purpose(path: str, content: str) -> str:
    """Prefer the schema name; otherwise describe the file from its location."""
    posix = PurePosixPath(path)
    directory = posix.parts[0] if len(posix.parts) > 1 else ""
    name = posix.name.split(".")[0]
    label = name.replace("-", " ").replace("_", " ").strip() or posix.name

    declared = liquid.schema_name(content) if path.endswith(".liquid") else None
    if declared:
        return f"{declared} {_SCHEMA_SUFFIXES.get(directory, 'file')}"

    if directory == "layout":
        return f"{label} layout"
    if directory in _DIRECTORY_PURPOSES:
        return f"{label} {_DIRECTORY_PURPOSES[directory]}"
    if directory == "assets":
        lowered = posix.name.lower()
        if lowered.endswith((".css", ".scss", ".css.liquid", ".scss.liquid")):
            return f"{label} stylesheet"
        if lowered.endswith((".js", ".js.liquid", ".mjs")):
            return f"{label} script"
        return f"{label} asset"
    return f"{label} file"


def build_file_entry(
    file: FileRecord,
    *,
    graph: Optional[ThemeDependencyGraph] = None,
    chunk_cache: Optional[ChunkCache] = None,
    previous: Optional[ThemeMapFile] = None,
) -> ThemeMapFile:
    """Index a single file into a fresh ``ThemeMapFile``."""
    return _entry_from_chunks(file, chunk_file(file.content, file.path, cache=chunk_cache), graph, previous)


def _entry_from_chunks(
    file: FileRecord,
    chunks: Sequence[Chunk],
    graph: Optional[ThemeDependencyGraph],
    previous: Optional[ThemeMapFile],
) -> ThemeMapFile:
    if graph is not None:
        depends_on = graph.dependencies(file.path)
        rendered_by = graph.dependents(file.path)
    else:
        depends_on = list(previous.depends_on) if previous else []
        rendered_by = list(previous.rendered_by) if previous else []
    return ThemeMapFile(
        path=file.path,
        purpose=infer_purpose(file.path, file.content),
        features=build_features(chunks),
        depends_on=depends_on,
        rendered_by=rendered_by,
        patterns=extract_patterns(file.path, file.content, chunks),
        summary=previous.summary if previous else None,
        summary_hash=previous.summary_hash if previous else None,
        content_hash=content_hash(file.content),
    )


def index_theme(
    project_id: str,
    files: Iterable[FileRecord],
    *,
    previous: Optional[ThemeMap] = None,
    graph: Optional[ThemeDependencyGraph] = None,
    chunk_cache: Optional[ChunkCache] = None,
) -> ThemeMap:
    """Full structural build; summaries of unchanged files survive from ``previous``."""
    eligible: List[FileRecord] = []
    skipped = 0
    for file in files:
        if is_indexable(file):
            eligible.append(file)
        else:
            skipped += 1

    graph = graph if graph is not None else ThemeDependencyGraph()
    for file in eligible:
        graph.index_file(file.path, file.content)

    entries: Dict[str, ThemeMapFile] = {}
    prefixes_by_file: Dict[str, Set[str]] = {}
    for file in sorted(eligible, key=lambda record: record.path):
        prior = previous.files.get(file.path) if previous else None
        chunks = chunk_file(file.content, file.path, cache=chunk_cache)
        entries[file.path] = _entry_from_chunks(file, chunks, graph, prior)
        prefixes_by_file[file.path] = prefix_names(class_prefixes(chunks))

    global_patterns = compute_global_patterns(prefixes_by_file)
    framework, signals = detect_framework(list(entries), global_patterns)
    LOGGER.info(
        "Indexed theme %s: %d file(s), %d skipped, framework=%s",
        project_id,
        len(entries),
        skipped,
        framework or "unknown",
    )
    return ThemeMap(
        project_id=project_id,
        version=(previous.version if previous else 0) + 1,
        files=entries,
        global_patterns=global_patterns,
        entry_points=entry_points(entries),
        framework=framework,
        framework_signals=signals,
        status=ThemeMapStatus.READY,
        generated_at=utc_now(),
    )


def reindex_file(
    theme_map: ThemeMap,
    file: FileRecord,
    *,
    graph: Optional[ThemeDependencyGraph] = None,
    chunk_cache: Optional[ChunkCache] = None,
) -> ThemeMap:
    """Replace one file's entry; unchanged content returns ``theme_map`` untouched."""
    if not is_indexable(file):
        LOGGER.debug("Skipping reindex of non-indexable file %s", file.path)
        return theme_map
    existing = theme_map.files.get(file.path)
    if existing is not None and existing.content_hash == content_hash(file.content):
        return theme_map

    files = dict(theme_map.files)
    affected: Set[str] = set()
    if graph is not None:
        affected.update(graph.dependencies(file.path))
        graph.index_file(file.path, file.content)
        affected.update(graph.dependencies(file.path))
    files[file.path] = build_file_entry(file, graph=graph, chunk_cache=chunk_cache, previous=existing)

    if graph is not None:
        for neighbour in affected:
            entry = files.get(neighbour)
            if entry is not None and neighbour != file.path:
                files[neighbour] = entry.model_copy(update={"rendered_by": graph.dependents(neighbour)})

    return theme_map.bumped(files=files, entry_points=entry_points(files))


def remove_file(theme_map: ThemeMap, path: str, *, graph: Optional[ThemeDependencyGraph] = None) -> ThemeMap:
    if path not in theme_map.files:
        return theme_map
    files = dict(theme_map.files)
    removed = files.pop(path)
    if graph is not None:
        graph.remove(path)
        for target in removed.depends_on:
            entry = files.get(target)
            if entry is not None:
                files[target] = entry.model_copy(update={"rendered_by": graph.dependents(target)})
    return theme_map.bumped(files=files, entry_points=entry_points(files))


__all__ = [
    "build_file_entry",
    "index_theme",
    "infer_purpose",
    "is_indexable",
    "is_minified_or_generated",
    "reindex_file",
    "remove_file",
]
