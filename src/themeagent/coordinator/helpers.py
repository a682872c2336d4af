"""Text builders and bookkeeping shared by the policies and the loop."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Any, List, Mapping, Optional, Sequence, Set

from ..memory.files import file_type_for_path
from ..memory.schema import FileRecord, FileType
from ..parsers.chunker import chunk_file
from ..theme_map.features import feature_description
from ..tools.execution import MutationFailure
from .state import CoordinatorContext, LoopState
from .stuck import action_signature

PATH_MENTION = re.compile(r"[\w./-]+\.(?:liquid|css|scss|js|json)\b", re.IGNORECASE)
MAX_LISTED_FILES = 10
MAX_RECENT_ACTIONS = 5
MAX_OUTLINE_ENTRIES = 30
MIN_BASENAME_LENGTH = 4


def file_category(path: str) -> Optional[str]:
    file_type = file_type_for_path(path)
    return None if file_type is FileType.OTHER else file_type.value


def mentioned_files(request: str, files: Sequence[FileRecord]) -> List[str]:
    """Paths the request names explicitly, by path or by distinctive basename."""
    lowered = request.lower()
    explicit = {match.group(0).lower().lstrip("./") for match in PATH_MENTION.finditer(request)}
    found: List[str] = []
    for record in files:
        path = record.path.lower()
        name = PurePosixPath(path).name
        stem = name.split(".", 1)[0]
        if path in explicit or name in explicit or any(path.endswith("/" + item) for item in explicit):
            found.append(record.path)
        elif len(stem) >= MIN_BASENAME_LENGTH and re.search(rf"\b{re.escape(stem)}\b", lowered):
            found.append(record.path)
    for mention in sorted(explicit):
        if not any(item.lower().endswith(mention) for item in found):
            found.append(mention)
    return found


def expected_categories(ctx: CoordinatorContext) -> Set[str]:
    categories = {file_category(path) for path in mentioned_files(ctx.user_request, ctx.files)}
    categories.discard(None)
    return categories  # type: ignore[return-value]


def edited_categories(state: LoopState) -> Set[str]:
    categories = {file_category(change.file_path) for change in state.accumulated_changes}
    categories.discard(None)
    return categories  # type: ignore[return-value]


def track_file_read(state: LoopState, path: Optional[str]) -> None:
    if path:
        state.file_read_log[path] = state.file_read_log.get(path, 0) + 1


def track_file_edit(state: LoopState, path: Optional[str]) -> None:
    if path:
        state.file_edit_log[path] = state.file_edit_log.get(path, 0) + 1


def lookup_signature(name: str, arguments: Mapping[str, Any]) -> str:
    return action_signature(name, arguments)


def build_file_outline(path: str, content: str) -> str:
    """One line per structural chunk so the model can jump to a region."""
    chunks = chunk_file(content, path)
    if not chunks:
        return f"{path}: no structural regions found."
    lines = [f"Outline of {path}:"]
    for chunk in chunks[:MAX_OUTLINE_ENTRIES]:
        lines.append(f"- {feature_description(chunk)} [lines {chunk.line_start}-{chunk.line_end}]")
    if len(chunks) > MAX_OUTLINE_ENTRIES:
        lines.append(f"- ... {len(chunks) - MAX_OUTLINE_ENTRIES} more")
    return "\n".join(lines)


def _listed(paths: Sequence[str]) -> str:
    shown = list(paths)[:MAX_LISTED_FILES]
    extra = len(paths) - len(shown)
    text = ", ".join(shown) if shown else "none"
    return f"{text} (+{extra} more)" if extra > 0 else text


def build_memory_anchor(state: LoopState, ctx: CoordinatorContext) -> str:
    """Compact recap injected when older history is dropped."""
    lines = [
        "MEMORY ANCHOR (older messages were removed):",
        f"Goal: {ctx.user_request.strip()}",
        f"Files read: {_listed(sorted(state.file_read_log))}",
        f"Files edited: {_listed(sorted(state.file_edit_log))}",
        f"Tool calls so far: {state.total_tool_calls}; changes made: {state.change_count}",
    ]
    if ctx.primary_target:
        lines.append(f"Primary target: {ctx.primary_target}")
    recent = state.tool_summary_log[-MAX_RECENT_ACTIONS:]
    if recent:
        lines.append("Last actions: " + "; ".join(recent))
    if state.last_mutation_failure is not None:
        lines.append(f"Last failed edit: {state.last_mutation_failure.describe()}")
    return "\n".join(lines)


def _failure_line(failure: Optional[MutationFailure], reason: Optional[str]) -> str:
    if failure is not None:
        return f"- {failure.describe()}: {failure.message}" if failure.message else f"- {failure.describe()}"
    if reason:
        return f"- Stopped: {reason}"
    return "- No edit was produced."


def build_completion_summary(state: LoopState, ctx: CoordinatorContext, reason: Optional[str] = None) -> str:
    """Explain a code-mode execution that ended without changes."""
    target = ctx.primary_target or "the file you want changed"
    iterations = min(state.iteration + 1, ctx.limits.max_iterations)
    return "\n".join(
        [
            "**What I tried**",
            f"- Read: {_listed(sorted(state.file_read_log))}",
            f"- {state.total_tool_calls} tool call(s) across {iterations} iteration(s)",
            "**What went wrong**",
            _failure_line(state.last_mutation_failure, reason),
            "**How to proceed**",
            f"- Confirm the file to change (for example {target}) or paste the exact before/after text.",
        ]
    )


__all__ = [
    "build_completion_summary",
    "build_file_outline",
    "build_memory_anchor",
    "edited_categories",
    "expected_categories",
    "file_category",
    "lookup_signature",
    "mentioned_files",
    "track_file_edit",
    "track_file_read",
]
