"""Typed records and bounded registries shared across the agent."""

from .registry import LRURegistry
from .schema import (
    Feature,
    FileRecord,
    FileType,
    ThemeMap,
    ThemeMapFile,
    ThemeMapStatus,
    utc_now,
)

__all__ = [
    "Feature",
    "FileRecord",
    "FileType",
    "LRURegistry",
    "ThemeMap",
    "ThemeMapFile",
    "ThemeMapStatus",
    "utc_now",
]
