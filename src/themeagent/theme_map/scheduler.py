"""Debounced, per-project batching of incremental reindexes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from ..memory.schema import FileRecord
from ..utils.hashing import content_hash

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0

FlushCallback = Callable[[str, List[FileRecord]], None]


class TimerHandle(Protocol):
    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


@dataclass
class _ProjectQueue:
    pending: Dict[str, FileRecord] = field(default_factory=dict)
    timer: Optional[TimerHandle] = None
    flushing: bool = False
    flushed_hashes: Dict[str, str] = field(default_factory=dict)


class ReindexScheduler:
    """Coalesce edits per project into one flush per quiet period.

    ``mark_dirty`` records the latest content of a file and restarts the
    project's debounce timer. ``flush`` takes the whole pending set, so edits
    that arrive while a flush runs land in the next window. Files whose
    content hash equals the one flushed last time are skipped.
    """

    def __init__(
        self,
        on_flush: FlushCallback,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = _thread_timer,
    ) -> None:
        self._on_flush = on_flush
        self._debounce = debounce_seconds
        self._timer_factory = timer_factory
        self._projects: Dict[str, _ProjectQueue] = {}
        self._lock = threading.Lock()

    def mark_dirty(self, project_id: str, file: FileRecord) -> None:
        with self._lock:
            queue = self._projects.setdefault(project_id, _ProjectQueue())
            queue.pending[file.path] = file
            if queue.timer is not None:
                queue.timer.cancel()
            queue.timer = self._timer_factory(self._debounce, lambda: self._on_timer(project_id))
            timer = queue.timer
        timer.start()

    def pending(self, project_id: str) -> List[str]:
        with self._lock:
            queue = self._projects.get(project_id)
            return sorted(queue.pending) if queue else []

    def is_flushing(self, project_id: str) -> bool:
        with self._lock:
            queue = self._projects.get(project_id)
            return bool(queue and queue.flushing)

    def flush(self, project_id: str) -> List[str]:
        """Flush pending files now; returns the paths handed to the callback."""
        batch, queue = self._take_batch(project_id)
        if queue is None:
            return []
        changed: List[FileRecord] = []
        digests: List[Tuple[str, str]] = []
        for file in batch:
            digest = content_hash(file.content)
            if queue.flushed_hashes.get(file.path) == digest:
                continue
            changed.append(file)
            digests.append((file.path, digest))
        try:
            if changed:
                self._on_flush(project_id, changed)
                LOGGER.info("Flushed %d file(s) for %s", len(changed), project_id)
        except Exception:
            with self._lock:
                for file in changed:
                    queue.pending.setdefault(file.path, file)
            raise
        finally:
            self._finish_flush(project_id, queue)
        with self._lock:
            queue.flushed_hashes.update(digests)
        return [file.path for file in changed]

    def cancel(self, project_id: Optional[str] = None) -> None:
        """Stop pending timers without flushing (for shutdown)."""
        with self._lock:
            targets = [project_id] if project_id else list(self._projects)
            for target in targets:
                queue = self._projects.get(target)
                if queue is not None and queue.timer is not None:
                    queue.timer.cancel()
                    queue.timer = None

    def _take_batch(self, project_id: str) -> Tuple[List[FileRecord], Optional[_ProjectQueue]]:
        with self._lock:
            queue = self._projects.get(project_id)
            if queue is None or queue.flushing:
                return [], None
            if queue.timer is not None:
                queue.timer.cancel()
                queue.timer = None
            batch = list(queue.pending.values())
            queue.pending = {}
            queue.flushing = True
            return batch, queue

    def _finish_flush(self, project_id: str, queue: _ProjectQueue) -> None:
        # Edits that arrived mid-flush get a fresh quiet period of their own.
        timer: Optional[TimerHandle] = None
        with self._lock:
            queue.flushing = False
            if queue.pending:
                if queue.timer is not None:
                    queue.timer.cancel()
                queue.timer = self._timer_factory(self._debounce, lambda: self._on_timer(project_id))
                timer = queue.timer
        if timer is not None:
            timer.start()

    def _on_timer(self, project_id: str) -> None:
        try:
            self.flush(project_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Debounced reindex failed for %s", project_id)


__all__ = ["DEFAULT_DEBOUNCE_SECONDS", "ReindexScheduler", "TimerFactory"]
