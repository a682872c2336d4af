"""Approximate feature line ranges after an in-place edit.

This keeps targeting usable between full reindexes; it does not re-derive
features. Ranges swallowed by a replacement become stale ``(0, 0)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from ..memory.schema import STALE_LINES, Feature, ThemeMap


class EditKind(str, Enum):
    REPLACE = "replace"
    INSERT_BEFORE = "insert_before"
    INSERT_AFTER = "insert_after"


@dataclass(frozen=True)
class LineEdit:
    """An edit at known 1-based line bounds.

    For ``REPLACE`` the span ``start..end`` is replaced by ``new_line_count``
    lines. For inserts, ``start`` is the anchor line and ``end`` is ignored.
    """

    kind: EditKind
    start: int
    end: int
    new_line_count: int

    @property
    def delta(self) -> int:
        if self.kind is EditKind.REPLACE:
            return self.new_line_count - (self.end - self.start + 1)
        return self.new_line_count


def shift_range(lines: Tuple[int, int], edit: LineEdit) -> Tuple[int, int]:
    start, end = lines
    if (start, end) == STALE_LINES:
        return STALE_LINES
    delta = edit.delta

    if edit.kind is EditKind.REPLACE:
        if end < edit.start:
            return start, end
        if start > edit.end:
            return start + delta, end + delta
        if start >= edit.start and end <= edit.end:
            return STALE_LINES
        new_start = min(start, edit.start)
        new_end = max(end, edit.end) + delta
        return new_start, max(new_end, new_start)

    # Inserted lines occupy the position just before (or after) the anchor.
    boundary = edit.start if edit.kind is EditKind.INSERT_BEFORE else edit.start + 1
    if end < boundary:
        return start, end
    if start >= boundary:
        return start + delta, end + delta
    return start, end + delta


def repair_feature_lines(theme_map: ThemeMap, path: str, edit: LineEdit) -> ThemeMap:
    """Shift every feature of ``path``; unknown paths or no-op edits return the map unchanged."""
    entry = theme_map.files.get(path)
    if entry is None or not entry.features:
        return theme_map
    features: Dict[str, Feature] = {}
    changed = False
    for slug, feature in entry.features.items():
        current = (feature.lines[0], feature.lines[1])
        shifted = shift_range(current, edit)
        if shifted != current:
            changed = True
            feature = feature.model_copy(update={"lines": shifted})
        features[slug] = feature
    if not changed:
        return theme_map
    files = dict(theme_map.files)
    files[path] = entry.model_copy(update={"features": features})
    return theme_map.bumped(files=files)


__all__ = ["EditKind", "LineEdit", "repair_feature_lines", "shift_range"]
