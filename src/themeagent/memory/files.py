"""Helpers for turning a theme directory into ``FileRecord`` objects."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Sequence

from .schema import FileRecord, FileType

LOGGER = logging.getLogger(__name__)

THEME_DIRECTORIES: Sequence[str] = (
    "assets",
    "blocks",
    "config",
    "layout",
    "locales",
    "sections",
    "snippets",
    "templates",
)

_EXTENSION_TYPES = {
    ".liquid": FileType.TEMPLATE,
    ".css": FileType.STYLE,
    ".scss": FileType.STYLE,
    ".js": FileType.SCRIPT,
    ".mjs": FileType.SCRIPT,
    ".ts": FileType.SCRIPT,
    ".json": FileType.CONFIG,
}

_STUB_PATTERN = re.compile(r"^\[\d+\s+chars")


def file_type_for_path(path: str) -> FileType:
    """Classify ``path`` by extension; ``.css.liquid`` style files count as styles."""
    name = PurePosixPath(path).name.lower()
    if name.endswith((".css.liquid", ".scss.liquid")):
        return FileType.STYLE
    if name.endswith(".js.liquid"):
        return FileType.SCRIPT
    return _EXTENSION_TYPES.get(PurePosixPath(name).suffix, FileType.OTHER)


def is_stub_content(content: str) -> bool:
    """Return True when ``content`` is a size placeholder instead of the real text."""
    return bool(_STUB_PATTERN.match(content))


def make_file_record(path: str, content: str, *, updated_at: datetime | None = None) -> FileRecord:
    posix = PurePosixPath(path).as_posix()
    return FileRecord(
        id=posix,
        name=PurePosixPath(posix).name,
        path=posix,
        type=file_type_for_path(posix),
        content=content,
        updated_at=updated_at,
    )


def collect_theme_files(root: Path, directories: Iterable[str] = THEME_DIRECTORIES) -> List[FileRecord]:
    """Read every text file under the known theme directories of ``root``."""
    records: List[FileRecord] = []
    for directory in directories:
        base = root / directory
        if not base.is_dir():
            continue
        for candidate in sorted(base.rglob("*")):
            relative = candidate.relative_to(root)
            if not candidate.is_file() or any(part.startswith(".") for part in relative.parts):
                continue
            try:
                content = candidate.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as err:
                LOGGER.debug("Skipping unreadable theme file %s: %s", candidate, err)
                continue
            modified = datetime.fromtimestamp(candidate.stat().st_mtime, tz=timezone.utc)
            records.append(make_file_record(relative.as_posix(), content, updated_at=modified))
    return records


__all__ = [
    "THEME_DIRECTORIES",
    "collect_theme_files",
    "file_type_for_path",
    "is_stub_content",
    "make_file_record",
]
