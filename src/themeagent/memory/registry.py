"""Bounded least-recently-used registry for per-project singletons."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar

LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRURegistry(Generic[K, V]):
    """Thread-safe mapping with a fixed capacity and LRU eviction.

    Readers from concurrent executions share entries; writes are
    last-writer-wins. ``on_evict`` is invoked outside the lock for every
    entry pushed out by capacity pressure.
    """

    def __init__(
        self,
        capacity: int,
        *,
        name: str = "registry",
        on_evict: Optional[Callable[[K, V], None]] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("Registry capacity must be positive.")
        self._capacity = capacity
        self._name = name
        self._on_evict = on_evict
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[K]:
        with self._lock:
            return iter(list(self._entries))

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
            return value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            evicted = self._evict_overflow()
        self._notify(evicted)

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        existing = self.get(key)
        if existing is not None:
            return existing
        value = factory()
        with self._lock:
            current = self._entries.get(key)
            if current is not None:
                self._entries.move_to_end(key)
                return current
            self._entries[key] = value
            evicted = self._evict_overflow()
        self._notify(evicted)
        return value

    def pop(self, key: K) -> Optional[V]:
        with self._lock:
            return self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._entries)

    def _evict_overflow(self) -> List[Tuple[K, V]]:
        evicted: List[Tuple[K, V]] = []
        while len(self._entries) > self._capacity:
            evicted.append(self._entries.popitem(last=False))
        return evicted

    def _notify(self, evicted: List[Tuple[K, V]]) -> None:
        for key, value in evicted:
            LOGGER.debug("Evicted %s from %s", key, self._name)
            if self._on_evict is not None:
                self._on_evict(key, value)
