"""Whole-project reference graph (renders, includes, sections, assets)."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Tuple

from ..parsers.references import detect_references


@dataclass(frozen=True)
class GraphRecord:
    """Single indexed file with the paths it references."""

    path: str
    references: Tuple[str, ...]


class ThemeDependencyGraph:
    """Reference graph keyed by theme path.

    Edges to paths that are not indexed are kept, so a file added later
    picks up its dependents without rescanning them, but queries only
    report edges between known files.
    """

    def __init__(self) -> None:
        self._records: Dict[str, GraphRecord] = {}
        self._reverse: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_files(cls, files: Iterable[Tuple[str, str]]) -> "ThemeDependencyGraph":
        graph = cls()
        for path, content in files:
            graph.index_file(path, content)
        return graph

    def __contains__(self, path: object) -> bool:
        return path in self._records

    def __len__(self) -> int:
        return len(self._records)

    def index_file(self, path: str, content: str) -> None:
        record = GraphRecord(path=path, references=tuple(detect_references(path, content)))
        with self._lock:
            self._drop_edges(path)
            self._records[path] = record
            for target in record.references:
                self._reverse.setdefault(target, set()).add(path)

    def remove(self, path: str) -> None:
        with self._lock:
            self._drop_edges(path)
            self._records.pop(path, None)

    def dependencies(self, path: str) -> List[str]:
        record = self._records.get(path)
        if record is None:
            return []
        return [target for target in record.references if target in self._records]

    def dependents(self, path: str) -> List[str]:
        return sorted(source for source in self._reverse.get(path, ()) if source in self._records)

    def paths(self) -> List[str]:
        return sorted(self._records)

    def _drop_edges(self, path: str) -> None:
        previous = self._records.get(path)
        if previous is None:
            return
        for target in previous.references:
            sources = self._reverse.get(target)
            if sources is None:
                continue
            sources.discard(path)
            if not sources:
                del self._reverse[target]


__all__ = ["GraphRecord", "ThemeDependencyGraph"]
