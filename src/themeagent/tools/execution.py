"""Normalisation layer between model tool calls and the tool executor."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from ..models.provider import ToolCall

LOGGER = logging.getLogger(__name__)

__all__ = [
    "DELETE_TOOL_NAMES",
    "LOOKUP_TOOL_NAMES",
    "MUTATING_TOOL_NAMES",
    "MutationFailure",
    "MutationFailureReason",
    "PUBLISH_TOOL_NAMES",
    "READ_TOOL_NAMES",
    "ToolExecutor",
    "ToolResult",
    "classify_mutation_failure",
    "execute_tool_call",
    "is_read_only",
    "normalize_tool_result",
    "parse_tool_input",
    "tool_target",
]

MUTATING_TOOL_NAMES = frozenset(
    {
        "edit_file",
        "search_replace",
        "write_file",
        "create_file",
        "delete_file",
        "insert_lines",
        "replace_lines",
        "propose_code_edit",
    }
)
READ_TOOL_NAMES = frozenset({"read_file", "read_lines", "read_chunk", "get_file_outline", "list_files"})
LOOKUP_TOOL_NAMES = frozenset(
    {"grep_content", "search_files", "semantic_search", "glob_files", "theme_map_lookup", "find_references"}
)
PUBLISH_TOOL_NAMES = frozenset({"push_to_shopify", "publish_theme", "deploy_theme"})
DELETE_TOOL_NAMES = frozenset({"delete_file"})

TARGET_KEYS = ("filePath", "file_path", "path", "fileId", "file_id", "fileName")


@dataclass(frozen=True)
class ToolResult:
    content: str
    is_error: bool = False


class ToolExecutor(Protocol):
    def execute(self, name: str, arguments: Mapping[str, Any]) -> ToolResult:
        ...


class MutationFailureReason(str, Enum):
    OLD_TEXT_NOT_FOUND = "old_text_not_found"
    FILE_NOT_FOUND = "file_not_found"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MutationFailure:
    """Most recent failed edit, surfaced in nudges and the completion summary."""

    tool_name: str
    file_path: Optional[str]
    reason: MutationFailureReason
    attempt_count: int = 1
    message: str = ""

    def describe(self) -> str:
        target = self.file_path or "an unknown file"
        return f"{self.tool_name} on {target} failed ({self.reason.value}, attempt {self.attempt_count})"


def is_read_only(name: str) -> bool:
    return name in READ_TOOL_NAMES or name in LOOKUP_TOOL_NAMES


def tool_target(arguments: Mapping[str, Any]) -> Optional[str]:
    for key in TARGET_KEYS:
        value = arguments.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_tool_input(call: ToolCall) -> Tuple[Dict[str, Any], Optional[ToolResult]]:
    """Decode the call input; malformed JSON yields a diagnostic error result."""
    raw = call.input
    if isinstance(raw, Mapping):
        return dict(raw), None
    if isinstance(raw, str):
        if not raw.strip():
            return {}, None
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as err:
            return {}, ToolResult(
                f"Invalid JSON input for tool {call.name}: {err.msg} at position {err.pos}. "
                "Resend the call with a valid JSON object.",
                is_error=True,
            )
        if isinstance(decoded, dict):
            return decoded, None
    return {}, ToolResult(f"Input for tool {call.name} must be a JSON object.", is_error=True)


def normalize_tool_result(name: str, raw: Any) -> ToolResult:
    """Coerce whatever the executor returned into a well-formed ``ToolResult``."""
    if isinstance(raw, ToolResult):
        content, is_error = raw.content, raw.is_error
    elif isinstance(raw, Mapping):
        content, is_error = raw.get("content"), bool(raw.get("is_error", False))
    else:
        content, is_error = None, True
    if not isinstance(content, str):
        return ToolResult(f"Tool {name} returned no usable result.", is_error=True)
    if name in MUTATING_TOOL_NAMES and not is_error and not content.strip():
        return ToolResult(f"Tool {name} returned an empty result; treat the change as not applied.", is_error=True)
    return ToolResult(content, is_error)


def execute_tool_call(executor: ToolExecutor, call: ToolCall) -> Tuple[Dict[str, Any], ToolResult]:
    """Run ``call`` through ``executor``; never raises."""
    arguments, problem = parse_tool_input(call)
    if problem is not None:
        return arguments, problem
    try:
        raw = executor.execute(call.name, arguments)
    except Exception as err:  # noqa: BLE001
        LOGGER.warning("Tool %s raised: %s", call.name, err)
        return arguments, ToolResult(f"Tool {call.name} failed: {err}", is_error=True)
    return arguments, normalize_tool_result(call.name, raw)


def classify_mutation_failure(content: str) -> MutationFailureReason:
    lowered = content.lower()
    if "old_text" in lowered or "old text" in lowered or "not found in file" in lowered:
        return MutationFailureReason.OLD_TEXT_NOT_FOUND
    if "file not found" in lowered or "no such file" in lowered or "does not exist" in lowered:
        return MutationFailureReason.FILE_NOT_FOUND
    return MutationFailureReason.REJECTED
