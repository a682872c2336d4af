"""Sinks recording what the coordination loop exchanged with the model."""

from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol

from ..memory.schema import utc_now
from ..utils.slug import slugify

__all__ = [
    "ExecutionLogEntry",
    "ExecutionLogSink",
    "JsonlExecutionLog",
    "MemoryExecutionLog",
    "load_execution_log",
]


@dataclass(slots=True)
class ExecutionLogEntry:
    """One instruction, result, question or terminal outcome of an execution."""

    kind: str
    content: str
    iteration: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExecutionLogEntry":
        metadata = payload.get("metadata")
        return cls(
            kind=str(payload.get("kind") or ""),
            content=str(payload.get("content") or ""),
            iteration=int(payload.get("iteration") or 0),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
            timestamp=str(payload.get("timestamp") or ""),
        )


class ExecutionLogSink(Protocol):
    def append_message(self, execution_id: str, entry: ExecutionLogEntry) -> None:
        ...


class MemoryExecutionLog:
    def __init__(self) -> None:
        self._entries: Dict[str, List[ExecutionLogEntry]] = {}
        self._lock = threading.Lock()

    def append_message(self, execution_id: str, entry: ExecutionLogEntry) -> None:
        with self._lock:
            self._entries.setdefault(execution_id, []).append(entry)

    def entries(self, execution_id: str) -> List[ExecutionLogEntry]:
        with self._lock:
            return list(self._entries.get(execution_id, ()))


class JsonlExecutionLog:
    """Append-only JSON-lines file per execution under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, execution_id: str) -> Path:
        return self._root / f"{slugify(execution_id, fallback='execution')}.jsonl"

    def append_message(self, execution_id: str, entry: ExecutionLogEntry) -> None:
        line = json.dumps(entry.to_dict(), sort_keys=True)
        with self._lock, self.path_for(execution_id).open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


def load_execution_log(path: Path | str) -> List[ExecutionLogEntry]:
    """Load a stored execution log; blank lines are ignored."""
    log_path = Path(path).resolve()
    entries: List[ExecutionLogEntry] = []
    with log_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            if line.strip():
                entries.append(ExecutionLogEntry.from_dict(json.loads(line)))
    return entries
