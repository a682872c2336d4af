"""Heuristic detector for repeating, non-productive tool sequences."""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Mapping, Optional

from ..tools.execution import ToolResult
from ..utils.hashing import short_hash

LOGGER = logging.getLogger(__name__)

HISTORY_LIMIT = 50
SAME_OBSERVATION_REPEATS = 4
SAME_ERROR_REPEATS = 3
MONOLOGUE_REPEATS = 3
ALTERNATING_WINDOW = 6
COMPACTION_LIMIT = 10
INPUT_VALUE_LIMIT = 100


class StuckPatternKind(str, Enum):
    SAME_ACTION_OBSERVATION = "same_action_observation"
    SAME_ACTION_ERROR = "same_action_error"
    MONOLOGUE = "monologue"
    ALTERNATING = "alternating"
    COMPACTION_LOOP = "compaction_loop"


@dataclass(frozen=True)
class StuckPattern:
    kind: StuckPatternKind
    description: str
    repeats: int


@dataclass(frozen=True)
class _ToolEvent:
    action: str
    observation: str
    is_error: bool


def action_signature(name: str, arguments: Mapping[str, Any]) -> str:
    """Stable signature of a tool call; long argument values are truncated."""
    trimmed = {}
    for key in sorted(arguments):
        value = arguments[key]
        rendered = value if isinstance(value, str) else json.dumps(value, sort_keys=True, default=str)
        trimmed[key] = rendered[:INPUT_VALUE_LIMIT]
    return f"{name}:{short_hash(json.dumps(trimmed, sort_keys=True))}"


class StuckDetector:
    """Watches tool calls and assistant turns of one execution.

    Five patterns are recognised: the same call returning the same output,
    the same call failing repeatedly, identical assistant messages, two calls
    alternating, and repeated history compaction without any edit.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self._events: Deque[_ToolEvent] = deque(maxlen=history_limit)
        self._messages: Deque[str] = deque(maxlen=history_limit)
        self._compactions_without_edit = 0

    def record_tool_call(self, name: str, arguments: Mapping[str, Any], result: ToolResult) -> None:
        self._events.append(
            _ToolEvent(
                action=action_signature(name, arguments),
                observation=short_hash(result.content),
                is_error=result.is_error,
            )
        )

    def record_assistant_message(self, text: str) -> None:
        normalised = " ".join(text.split())
        if normalised:
            self._messages.append(normalised)

    def record_compaction(self) -> None:
        self._compactions_without_edit += 1

    def record_edit(self) -> None:
        self._compactions_without_edit = 0

    def reset(self) -> None:
        """Forget recent calls and messages; the compaction count survives until an edit."""
        self._events.clear()
        self._messages.clear()

    def detect(self) -> Optional[StuckPattern]:
        for check in (
            self._same_observation,
            self._same_error,
            self._monologue,
            self._alternating,
            self._compaction_loop,
        ):
            pattern = check()
            if pattern is not None:
                LOGGER.warning("Stuck pattern detected: %s", pattern.description)
                return pattern
        return None

    def _tail(self, count: int) -> Optional[list]:
        if len(self._events) < count:
            return None
        return list(self._events)[-count:]

    def _same_observation(self) -> Optional[StuckPattern]:
        tail = self._tail(SAME_OBSERVATION_REPEATS)
        if not tail or any(event.is_error for event in tail):
            return None
        if len({(event.action, event.observation) for event in tail}) == 1:
            return StuckPattern(
                StuckPatternKind.SAME_ACTION_OBSERVATION,
                f"the same tool call returned the same result {SAME_OBSERVATION_REPEATS} times",
                SAME_OBSERVATION_REPEATS,
            )
        return None

    def _same_error(self) -> Optional[StuckPattern]:
        tail = self._tail(SAME_ERROR_REPEATS)
        if not tail or not all(event.is_error for event in tail):
            return None
        if len({event.action for event in tail}) == 1:
            return StuckPattern(
                StuckPatternKind.SAME_ACTION_ERROR,
                f"the same tool call failed {SAME_ERROR_REPEATS} times in a row",
                SAME_ERROR_REPEATS,
            )
        return None

    def _monologue(self) -> Optional[StuckPattern]:
        if len(self._messages) < MONOLOGUE_REPEATS:
            return None
        tail = list(self._messages)[-MONOLOGUE_REPEATS:]
        if len(set(tail)) == 1:
            return StuckPattern(
                StuckPatternKind.MONOLOGUE,
                f"the assistant repeated the same message {MONOLOGUE_REPEATS} times",
                MONOLOGUE_REPEATS,
            )
        return None

    def _alternating(self) -> Optional[StuckPattern]:
        tail = self._tail(ALTERNATING_WINDOW)
        if not tail:
            return None
        keys = [(event.action, event.observation) for event in tail]
        first, second = keys[0], keys[1]
        if first == second:
            return None
        if all(key == (first if index % 2 == 0 else second) for index, key in enumerate(keys)):
            return StuckPattern(
                StuckPatternKind.ALTERNATING,
                "two tool calls kept alternating without progress",
                ALTERNATING_WINDOW // 2,
            )
        return None

    def _compaction_loop(self) -> Optional[StuckPattern]:
        if self._compactions_without_edit >= COMPACTION_LIMIT:
            return StuckPattern(
                StuckPatternKind.COMPACTION_LOOP,
                f"history was compacted {self._compactions_without_edit} times without an edit",
                self._compactions_without_edit,
            )
        return None


__all__ = ["StuckDetector", "StuckPattern", "StuckPatternKind", "action_signature"]
