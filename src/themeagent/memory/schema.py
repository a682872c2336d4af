"""Typed records for theme files and the persisted theme map."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

STALE_LINES: Tuple[int, int] = (0, 0)


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class FileType(str, Enum):
    """Coarse classification of a theme file."""

    TEMPLATE = "template"
    STYLE = "style"
    SCRIPT = "script"
    CONFIG = "config"
    OTHER = "other"


class ThemeMapStatus(str, Enum):
    """Lifecycle states of a project's theme map."""

    PENDING = "pending"
    INDEXING = "indexing"
    READY = "ready"
    ENRICHING = "enriching"
    STALE = "stale"


class FileRecord(RecordModel):
    """Live file handed to the core by the caller; never persisted here."""

    id: str
    name: str
    path: str
    type: FileType = FileType.OTHER
    content: str = ""
    updated_at: Optional[datetime] = None


class Feature(RecordModel):
    """Named, line-ranged region of a file used for edit targeting.

    ``lines == (0, 0)`` marks a location invalidated by an edit; such a
    feature must not be used for targeting until the file is reindexed.
    """

    lines: Tuple[int, int]
    description: str
    keywords: List[str] = Field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return tuple(self.lines) == STALE_LINES


class ThemeMapFile(RecordModel):
    """Structural summary of a single indexed file."""

    path: str
    purpose: str
    features: Dict[str, Feature] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)
    rendered_by: List[str] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    summary_hash: Optional[str] = None
    content_hash: Optional[str] = None


class ThemeMap(RecordModel):
    """Whole-project structural index persisted as one document per project."""

    project_id: str
    version: int = 0
    files: Dict[str, ThemeMapFile] = Field(default_factory=dict)
    global_patterns: List[str] = Field(default_factory=list)
    entry_points: List[str] = Field(default_factory=list)
    framework: Optional[str] = None
    framework_signals: List[str] = Field(default_factory=list)
    status: ThemeMapStatus = ThemeMapStatus.PENDING
    generated_at: datetime = Field(default_factory=utc_now)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def bumped(self, **changes: object) -> "ThemeMap":
        """Return a copy with ``changes`` applied and the version incremented."""
        update = dict(changes)
        update["version"] = self.version + 1
        return self.model_copy(update=update)
