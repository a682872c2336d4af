"""Coordination policies.

Each policy is a pure function of the loop state and the execution context
(plus, for some, a snapshot of the current iteration) returning a
``PolicyAction``. Policies never mutate their inputs; the loop applies the
``updates`` carried by the returned action.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from ..models.provider import Message, StopReason, ToolCall
from ..tools.execution import DELETE_TOOL_NAMES, PUBLISH_TOOL_NAMES
from .actions import CONTINUE, BlockLookup, Break, Clarify, ClarifyOption, Continue, Nudge, PolicyAction
from .helpers import build_memory_anchor, edited_categories, expected_categories
from .state import CoordinatorContext, IntentMode, LoopState

FORCE_READ_REASON = "force_read_first_iteration"


@dataclass(frozen=True)
class IterationSnapshot:
    """What the tool dispatch of one iteration achieved."""

    added_changes: int
    had_execution: bool


def _target_label(ctx: CoordinatorContext) -> str:
    return ctx.primary_target or "the most relevant file"


def _budget_remains(state: LoopState, ctx: CoordinatorContext) -> bool:
    limits = ctx.limits
    return state.iteration < limits.max_iterations - limits.iteration_reserve


def _target_options(ctx: CoordinatorContext, alternative: ClarifyOption) -> tuple:
    return (
        ClarifyOption("confirm-target", f"Edit {_target_label(ctx)}", recommended=True, action="edit_target"),
        alternative,
    )


def check_edit_sla(state: LoopState, ctx: CoordinatorContext) -> PolicyAction:
    """Code requests must reach a first edit within a bounded number of tool calls."""
    limits = ctx.limits
    if ctx.intent is not IntentMode.CODE or state.has_attempted_edit:
        return CONTINUE
    if state.total_tool_calls < limits.edit_sla_tool_calls:
        return CONTINUE
    if state.first_edit_sla_nudges == 0:
        return Nudge(
            f"You have used {state.total_tool_calls} tool calls without editing anything. "
            f"Stop exploring and edit {_target_label(ctx)} now. Further lookups are disabled until you edit.",
            updates={"first_edit_sla_nudges": 1, "force_no_lookup_until_edit": True},
        )
    if state.total_tool_calls >= limits.edit_sla_abort_tool_calls and not state.needs_clarification:
        return Clarify(
            f"I used {state.total_tool_calls} tool calls without finding a safe edit. "
            f"Should I change {_target_label(ctx)}, or can you describe the exact change?",
            options=_target_options(
                ctx, ClarifyOption("describe-change", "Describe the exact before/after change", action="describe")
            ),
            updates={"needs_clarification": True, "has_structured_clarification": True},
        )
    return CONTINUE


def _truncated_history(state: LoopState, ctx: CoordinatorContext) -> List[Message]:
    preamble = state.messages[: state.preamble_length]
    tail = state.messages[state.preamble_length :][-ctx.limits.history_tail_messages :]
    while tail and tail[0].role == "tool":
        tail = tail[1:]
    anchor = Message("user", build_memory_anchor(state, ctx))
    return [*preamble, anchor, *tail]


def check_stuck_detection(state: LoopState, ctx: CoordinatorContext) -> PolicyAction:
    """Recover from a repeating pattern by compacting history, a bounded number of times."""
    if ctx.stuck_detector is None or state.iteration <= 0:
        return CONTINUE
    pattern = ctx.stuck_detector.detect()
    if pattern is None:
        return CONTINUE
    description = getattr(pattern, "description", str(pattern))
    limits = ctx.limits
    if state.stuck_recovery_count >= limits.max_stuck_recoveries:
        return Break(
            reason="stuck",
            message=(
                f"Stopped because {description}, even after {state.stuck_recovery_count} recovery attempt(s). "
                "Point me at the exact file and lines to change, or rephrase the request."
            ),
        )
    return Nudge(
        f"You appear to be stuck: {description}. Older history was trimmed; use the memory anchor above. "
        "Try a different approach: edit the target directly instead of repeating the same call.",
        updates={
            "messages": _truncated_history(state, ctx),
            "stuck_recovery_count": state.stuck_recovery_count + 1,
            "failed_mutation_count": 0,
            "debug_fix_attempt_count": 0,
            "pre_edit_lookup_blocked_count": 0,
        },
    )


def check_zero_tool_forced(state: LoopState, ctx: CoordinatorContext) -> PolicyAction:
    """A code response without tool calls gets the target read for it, then a question."""
    if ctx.intent is not IntentMode.CODE or state.zero_tool_streak == 0:
        return CONTINUE
    if state.zero_tool_streak > ctx.limits.zero_tool_streak_limit:
        return Clarify(
            "I could not start the edit without more detail. Which file should I change, and how?",
            options=_target_options(
                ctx, ClarifyOption("describe-change", "Describe the exact before/after change", action="describe")
            ),
            updates={"needs_clarification": True, "has_structured_clarification": True},
        )
    if state.iteration == 0 and state.total_tool_calls == 0 and ctx.primary_target:
        return BlockLookup(reason=FORCE_READ_REASON)
    return CONTINUE


def check_completion_validator(state: LoopState, ctx: CoordinatorContext) -> PolicyAction:
    """Ask to continue when explicitly mentioned file categories were not touched."""
    limits = ctx.limits
    if ctx.intent is not IntentMode.CODE or not state.accumulated_changes:
        return CONTINUE
    if state.completion_nudges >= limits.max_completion_nudges or not _budget_remains(state, ctx):
        return CONTINUE
    missing = sorted(expected_categories(ctx) - edited_categories(state))
    if not missing:
        return CONTINUE
    edited = ", ".join(sorted(edited_categories(state))) or "nothing"
    return Nudge(
        f"You changed {edited} files, but the request also mentions {', '.join(missing)} files. "
        "Continue with the remaining files before finishing.",
        updates={"completion_nudges": state.completion_nudges + 1},
    )


def check_confirmation_gate(state: LoopState, ctx: CoordinatorContext, pending: Sequence[ToolCall]) -> PolicyAction:
    """Publishing and bulk deletion always wait for the user."""
    if not pending or state.needs_clarification:
        return CONTINUE
    publishes = [call for call in pending if call.name in PUBLISH_TOOL_NAMES]
    deletes = [call for call in pending if call.name in DELETE_TOOL_NAMES]
    if publishes:
        names = ", ".join(sorted({call.name for call in publishes}))
        message = f"The next step publishes the theme ({names}). Do you want me to go ahead?"
    elif len(deletes) >= ctx.limits.bulk_delete_threshold:
        message = f"The next step deletes {len(deletes)} files. Do you want me to go ahead?"
    else:
        return CONTINUE
    return Clarify(
        message,
        options=(
            ClarifyOption("confirm", "Yes, proceed", action="apply_anyway"),
            ClarifyOption("cancel", "No, cancel", recommended=True, action="cancel"),
        ),
        updates={"needs_clarification": True, "has_structured_clarification": True},
    )


def check_premature_stop(state: LoopState, ctx: CoordinatorContext, stop_reason: StopReason) -> PolicyAction:
    limits = ctx.limits
    if ctx.intent is not IntentMode.CODE or state.accumulated_changes or state.needs_clarification:
        return CONTINUE
    if stop_reason is StopReason.MAX_TOKENS or state.premature_stop_nudges >= limits.max_premature_stop_nudges:
        return CONTINUE
    if not _budget_remains(state, ctx):
        return CONTINUE
    loaded = ", ".join(record.path for record in ctx.preloaded[:5]) or "none"
    return Nudge(
        "ACT NOW: make the edit with a tool call. Do not explain the plan and do not ask for permission. "
        f"Files already loaded: {loaded}.",
        updates={"premature_stop_nudges": state.premature_stop_nudges + 1},
    )


def check_read_only_stagnation(state: LoopState, ctx: CoordinatorContext, only_read: bool) -> PolicyAction:
    if not only_read or ctx.intent not in (IntentMode.CODE, IntentMode.DEBUG):
        return Continue(updates={"read_only_iterations": 0})
    count = state.read_only_iterations + 1
    if count < ctx.limits.read_only_iteration_limit:
        return Continue(updates={"read_only_iterations": count})
    return Nudge(
        f"You have spent {count} iteration(s) only reading. Edit {_target_label(ctx)} now or delegate the change. "
        "Do not read more files.",
        updates={"read_only_iterations": 0, "force_no_lookup_until_edit": True},
    )


def check_post_edit_stagnation(
    state: LoopState, ctx: CoordinatorContext, snapshot: IterationSnapshot
) -> PolicyAction:
    """Bounded rethink cycles once edits stop producing new changes."""
    if ctx.intent is not IntentMode.CODE or not state.has_attempted_edit:
        return CONTINUE
    if snapshot.added_changes > 0:
        return Continue(updates={"post_edit_no_change_iterations": 0})
    if not snapshot.had_execution:
        return CONTINUE
    limits = ctx.limits
    count = state.post_edit_no_change_iterations + 1
    if count < limits.post_edit_stagnation_threshold:
        return Continue(updates={"post_edit_no_change_iterations": count})
    failure = state.last_mutation_failure
    failure_text = failure.describe() if failure is not None else "no new change was recorded"
    if state.rethink_count < limits.max_rethinks:
        return Nudge(
            "RETHINK. The last iterations produced no new change.\n"
            f"1. What failed: {failure_text}.\n"
            "2. Why: re-read the exact current text of the target region before editing.\n"
            "3. Next: make one precise edit, or finish if the request is already satisfied.",
            updates={"rethink_count": state.rethink_count + 1, "post_edit_no_change_iterations": 0},
        )
    return Break(
        reason="post_edit_stagnation",
        message=(
            f"Stopped after {state.rethink_count} rethink cycle(s) without new changes ({failure_text}). "
            "Check the current file contents and tell me the exact text to change."
        ),
    )


def check_finalization_nudge(state: LoopState, ctx: CoordinatorContext) -> PolicyAction:
    limits = ctx.limits
    if ctx.intent is not IntentMode.CODE or not state.accumulated_changes:
        return CONTINUE
    if state.total_tool_calls < limits.finalization_soft_cap:
        return CONTINUE
    if not state.finalization_nudge_sent:
        return Nudge(
            f"You have made {state.change_count} change(s) using {state.total_tool_calls} tool calls. "
            "Finalize now: verify the edits and summarise them.",
            updates={"finalization_nudge_sent": True},
        )
    return Break(
        reason="tool_budget_exceeded",
        message=f"Stopped after {state.total_tool_calls} tool calls; the {state.change_count} change(s) made so far are kept.",
    )


__all__ = [
    "FORCE_READ_REASON",
    "IterationSnapshot",
    "check_completion_validator",
    "check_confirmation_gate",
    "check_edit_sla",
    "check_finalization_nudge",
    "check_post_edit_stagnation",
    "check_premature_stop",
    "check_read_only_stagnation",
    "check_stuck_detection",
    "check_zero_tool_forced",
]
