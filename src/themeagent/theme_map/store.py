"""JSON persistence and the in-memory cache of theme maps."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..memory.registry import LRURegistry
from ..memory.schema import ThemeMap
from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_CAPACITY = 32


class ThemeMapStore:
    """One JSON document per project under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, project_id: str) -> Path:
        return self._root / f"{slugify(project_id, fallback='project')}.json"

    def load(self, project_id: str) -> Optional[ThemeMap]:
        path = self.path_for(project_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return ThemeMap.model_validate(payload)
        except (OSError, ValueError, ValidationError) as err:
            LOGGER.warning("Ignoring unreadable theme map %s: %s", path, err)
            return None

    def save(self, theme_map: ThemeMap) -> Path:
        path = self.path_for(theme_map.project_id)
        payload = json.dumps(theme_map.model_dump(mode="json"), indent=2, sort_keys=True)
        handle, temp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload)
            os.replace(temp_name, path)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise
        return path

    def delete(self, project_id: str) -> None:
        self.path_for(project_id).unlink(missing_ok=True)

    def project_ids(self) -> List[str]:
        ids: List[str] = []
        for candidate in sorted(self._root.glob("*.json")):
            loaded = self.load(candidate.stem)
            if loaded is not None:
                ids.append(loaded.project_id)
        return ids


class ThemeMapCache:
    """Bounded memory cache in front of an optional store.

    Reads fall through to the store on a cold start; every write updates
    both, last writer wins.
    """

    def __init__(self, store: Optional[ThemeMapStore] = None, *, capacity: int = DEFAULT_CACHE_CAPACITY) -> None:
        self._store = store
        self._registry: LRURegistry[str, ThemeMap] = LRURegistry(capacity, name="theme-map-cache")

    @property
    def store(self) -> Optional[ThemeMapStore]:
        return self._store

    def get(self, project_id: str) -> Optional[ThemeMap]:
        cached = self._registry.get(project_id)
        if cached is not None:
            return cached
        if self._store is None:
            return None
        loaded = self._store.load(project_id)
        if loaded is not None:
            self._registry.put(project_id, loaded)
        return loaded

    def put(self, theme_map: ThemeMap) -> None:
        self._registry.put(theme_map.project_id, theme_map)
        if self._store is not None:
            self._store.save(theme_map)

    def invalidate(self, project_id: str) -> None:
        self._registry.pop(project_id)


__all__ = ["ThemeMapCache", "ThemeMapStore"]
