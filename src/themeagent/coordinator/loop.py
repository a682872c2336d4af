"""Driving loop: model turns, tool dispatch and policy check points."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.provider import (
    CompletionOptions,
    CompletionResult,
    Message,
    ModelProvider,
    ProviderError,
    StopReason,
    ToolCall,
    ToolDefinition,
    call_with_retries,
)
from ..tools.execution import (
    LOOKUP_TOOL_NAMES,
    MUTATING_TOOL_NAMES,
    READ_TOOL_NAMES,
    MutationFailure,
    ToolExecutor,
    ToolResult,
    classify_mutation_failure,
    execute_tool_call,
    is_read_only,
    parse_tool_input,
    tool_target,
)
from ..tools.execution_log import ExecutionLogEntry, ExecutionLogSink
from .actions import BlockLookup, Break, Clarify, ClarifyOption, Continue, Nudge, PolicyAction
from .helpers import (
    build_completion_summary,
    build_file_outline,
    lookup_signature,
    track_file_edit,
    track_file_read,
)
from .policies import (
    IterationSnapshot,
    check_completion_validator,
    check_confirmation_gate,
    check_edit_sla,
    check_finalization_nudge,
    check_post_edit_stagnation,
    check_premature_stop,
    check_read_only_stagnation,
    check_stuck_detection,
    check_zero_tool_forced,
)
from .state import CodeChange, CoordinatorContext, IntentMode, LoopState
from .stuck import StuckDetector

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You edit e-commerce storefront themes. Use the tools to read the relevant files, "
    "then make precise edits. Keep explanations short."
)

Check = Tuple[str, Callable[[], PolicyAction]]


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    CLARIFICATION = "clarification"
    STOPPED = "stopped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExecutionOutcome:
    status: OutcomeStatus
    message: str
    changes: Tuple[CodeChange, ...] = ()
    reason: Optional[str] = None
    options: Tuple[ClarifyOption, ...] = ()
    iterations: int = 0
    tool_calls: int = 0


class CoordinationLoop:
    """Runs one execution against a model provider and a tool executor.

    Policies are consulted at fixed check points; the first action other than
    ``Continue`` at a check point decides what happens next.
    """

    def __init__(
        self,
        provider: ModelProvider,
        executor: ToolExecutor,
        *,
        tools: Sequence[ToolDefinition] = (),
        log_sink: Optional[ExecutionLogSink] = None,
        options: Optional[CompletionOptions] = None,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._provider = provider
        self._executor = executor
        self._tools = tuple(tools)
        self._log_sink = log_sink
        self._options = options or CompletionOptions()
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep

    def run(self, ctx: CoordinatorContext, *, cancel_event: Optional[threading.Event] = None) -> ExecutionOutcome:
        cancel = cancel_event or threading.Event()
        state = LoopState(messages=self._initial_messages(ctx))
        state.preamble_length = 2 if ctx.context_message else 1
        limits = ctx.limits
        self._log(ctx, state, "instruction", ctx.user_request)

        while state.iteration < limits.max_iterations:
            if cancel.is_set():
                return self._cancelled(ctx, state)

            outcome = self._run_checks(
                ctx,
                state,
                [
                    ("edit_sla", lambda: check_edit_sla(state, ctx)),
                    ("stuck_detection", lambda: check_stuck_detection(state, ctx)),
                ],
            )
            if outcome is not None:
                return outcome

            try:
                result = self._complete(state, cancel)
            except ProviderError as error:
                LOGGER.error("Execution %s aborted by provider failure: %s", ctx.execution_id, error)
                return self._finish(
                    ctx,
                    state,
                    OutcomeStatus.STOPPED,
                    f"The model request failed ({error}). Try again in a moment.",
                    reason="provider_error",
                )
            if result.stop_reason is StopReason.CANCELLED or cancel.is_set():
                return self._cancelled(ctx, state)

            if result.content:
                state.full_text = result.content
                self._log(ctx, state, "assistant", result.content)
            state.messages.append(Message("assistant", result.content, tool_calls=tuple(result.tool_calls)))

            if not result.tool_calls:
                outcome = self._after_text_response(ctx, state, result)
                if outcome is not None:
                    return outcome
            else:
                outcome = self._after_tool_response(ctx, state, result.tool_calls, cancel)
                if outcome is not None:
                    return outcome
            state.iteration += 1

        return self._finish(
            ctx,
            state,
            OutcomeStatus.STOPPED,
            f"Reached the iteration limit ({limits.max_iterations}).",
            reason="max_iterations",
        )

    def _initial_messages(self, ctx: CoordinatorContext) -> List[Message]:
        messages = [Message("system", ctx.system_prompt or DEFAULT_SYSTEM_PROMPT)]
        if ctx.context_message:
            messages.append(Message("user", ctx.context_message))
        messages.append(Message("user", ctx.user_request))
        return messages

    def _complete(self, state: LoopState, cancel: threading.Event) -> CompletionResult:
        options = dataclasses.replace(self._options, cancel_event=cancel)
        return call_with_retries(
            lambda: self._provider.complete_with_tools(tuple(state.messages), self._tools, options),
            max_attempts=self._max_attempts,
            retry_delay=self._retry_delay,
            sleep=self._sleep,
        )

    def _after_text_response(
        self, ctx: CoordinatorContext, state: LoopState, result: CompletionResult
    ) -> Optional[ExecutionOutcome]:
        state.zero_tool_streak += 1
        detector = ctx.stuck_detector
        if isinstance(detector, StuckDetector):
            detector.record_assistant_message(result.content)
        checks: List[Check] = [("zero_tool_forced", lambda: check_zero_tool_forced(state, ctx))]
        if state.accumulated_changes:
            checks.append(("completion_validator", lambda: check_completion_validator(state, ctx)))
        else:
            checks.append(("premature_stop", lambda: check_premature_stop(state, ctx, result.stop_reason)))
        decided = self._first_action(state, checks)
        if decided is None:
            return self._finish(ctx, state, OutcomeStatus.COMPLETED, result.content)
        return self._handle(ctx, state, *decided)

    def _after_tool_response(
        self,
        ctx: CoordinatorContext,
        state: LoopState,
        calls: Sequence[ToolCall],
        cancel: threading.Event,
    ) -> Optional[ExecutionOutcome]:
        state.zero_tool_streak = 0
        outcome = self._run_checks(ctx, state, [("confirmation_gate", lambda: check_confirmation_gate(state, ctx, calls))])
        if outcome is not None:
            return outcome
        if state.needs_clarification:
            return self._finish(
                ctx,
                state,
                OutcomeStatus.CLARIFICATION,
                "Waiting for your answer before running further tools.",
                reason="awaiting_clarification",
            )

        snapshot = self._dispatch(ctx, state, calls, cancel)
        if cancel.is_set():
            return self._cancelled(ctx, state)
        only_read = all(is_read_only(call.name) for call in calls)
        return self._run_checks(
            ctx,
            state,
            [
                ("read_only_stagnation", lambda: check_read_only_stagnation(state, ctx, only_read)),
                ("post_edit_stagnation", lambda: check_post_edit_stagnation(state, ctx, snapshot)),
                ("finalization", lambda: check_finalization_nudge(state, ctx)),
            ],
        )

    def _dispatch(
        self,
        ctx: CoordinatorContext,
        state: LoopState,
        calls: Sequence[ToolCall],
        cancel: threading.Event,
    ) -> IterationSnapshot:
        added = 0
        executed = False
        for call in calls:
            if cancel.is_set():
                break
            arguments, result = self._execute(state, call)
            executed = True
            target = tool_target(arguments)
            state.messages.append(Message("tool", result.content, tool_call_id=call.id, name=call.name))
            state.tool_summary_log.append(f"{call.name}({target or ''}) -> {'error' if result.is_error else 'ok'}")
            self._log(ctx, state, "tool_result", result.content, tool=call.name, is_error=result.is_error)
            detector = ctx.stuck_detector
            if isinstance(detector, StuckDetector):
                detector.record_tool_call(call.name, arguments, result)

            if call.name in READ_TOOL_NAMES:
                track_file_read(state, target)
            if call.name not in MUTATING_TOOL_NAMES:
                continue
            state.has_attempted_edit = True
            if ctx.intent is IntentMode.DEBUG:
                state.debug_fix_attempt_count += 1
            if result.is_error:
                state.failed_mutation_count += 1
                previous = state.last_mutation_failure
                attempts = previous.attempt_count + 1 if previous and previous.file_path == target else 1
                state.last_mutation_failure = MutationFailure(
                    tool_name=call.name,
                    file_path=target,
                    reason=classify_mutation_failure(result.content),
                    attempt_count=attempts,
                    message=result.content[:200],
                )
                continue
            state.accumulated_changes.append(CodeChange(target or "", call.name, state.iteration))
            track_file_edit(state, target)
            state.force_no_lookup_until_edit = False
            if isinstance(detector, StuckDetector):
                detector.record_edit()
            added += 1
        return IterationSnapshot(added_changes=added, had_execution=executed)

    def _execute(self, state: LoopState, call: ToolCall) -> Tuple[dict, ToolResult]:
        state.total_tool_calls += 1
        state.tool_sequence_log.append(call.name)
        if call.name not in LOOKUP_TOOL_NAMES:
            return execute_tool_call(self._executor, call)
        arguments, problem = parse_tool_input(call)
        if problem is not None:
            return arguments, problem
        if state.force_no_lookup_until_edit and not state.has_attempted_edit:
            state.pre_edit_lookup_blocked_count += 1
            return arguments, ToolResult(
                "Lookup blocked: you already have enough context. Edit the target file now.", is_error=True
            )
        signature = lookup_signature(call.name, arguments)
        if signature in state.lookup_signatures:
            return arguments, ToolResult(
                f"Duplicate {call.name} call skipped; use the earlier result.", is_error=True
            )
        state.lookup_signatures.add(signature)
        return execute_tool_call(self._executor, call)

    def _run_checks(
        self, ctx: CoordinatorContext, state: LoopState, checks: Sequence[Check]
    ) -> Optional[ExecutionOutcome]:
        """Handle the first decisive action among ``checks``; None means keep going."""
        decided = self._first_action(state, checks)
        return None if decided is None else self._handle(ctx, state, *decided)

    @staticmethod
    def _first_action(state: LoopState, checks: Sequence[Check]) -> Optional[Tuple[str, PolicyAction]]:
        for name, check in checks:
            action = check()
            state.apply(action.updates)
            if isinstance(action, Continue):
                continue
            LOGGER.debug("Policy %s returned %s", name, type(action).__name__)
            return name, action
        return None

    def _handle(
        self, ctx: CoordinatorContext, state: LoopState, name: str, action: PolicyAction
    ) -> Optional[ExecutionOutcome]:
        if isinstance(action, Nudge):
            if name == "stuck_detection" and isinstance(ctx.stuck_detector, StuckDetector):
                ctx.stuck_detector.reset()
                ctx.stuck_detector.record_compaction()
            state.messages.append(Message("user", action.message))
            self._log(ctx, state, "nudge", action.message, policy=name)
            return None
        if isinstance(action, BlockLookup):
            self._force_read(ctx, state, action.reason)
            return None
        if isinstance(action, Clarify):
            self._log(ctx, state, "question", action.message, policy=name)
            return self._finish(
                ctx,
                state,
                OutcomeStatus.CLARIFICATION,
                action.message,
                reason=name,
                options=action.options,
            )
        if isinstance(action, Break):
            LOGGER.warning("Execution %s stopped by %s: %s", ctx.execution_id, name, action.reason)
            return self._finish(ctx, state, OutcomeStatus.STOPPED, action.message, reason=action.reason)
        raise TypeError(f"Unhandled policy action: {action!r}")

    def _force_read(self, ctx: CoordinatorContext, state: LoopState, reason: str) -> None:
        target = ctx.primary_target
        if target is None:
            state.messages.append(Message("user", "Read the file you need to change, then edit it."))
            return
        call = ToolCall(id=f"forced-read-{state.iteration}", name="read_file", input={"filePath": target})
        state.total_tool_calls += 1
        state.tool_sequence_log.append(call.name)
        _, result = execute_tool_call(self._executor, call)
        track_file_read(state, target)
        self._log(ctx, state, "tool_result", result.content, tool=call.name, reason=reason)
        outline = build_file_outline(target, ctx.preloaded[0].content)
        state.messages.append(
            Message(
                "user",
                f"Here is {target} (read for you):\n{result.content}\n\n{outline}\n\nMake the edit now with a tool call.",
            )
        )

    def _cancelled(self, ctx: CoordinatorContext, state: LoopState) -> ExecutionOutcome:
        return self._finish(ctx, state, OutcomeStatus.CANCELLED, "Execution cancelled.", reason="cancelled")

    def _finish(
        self,
        ctx: CoordinatorContext,
        state: LoopState,
        status: OutcomeStatus,
        message: str,
        *,
        reason: Optional[str] = None,
        options: Tuple[ClarifyOption, ...] = (),
    ) -> ExecutionOutcome:
        text = message.strip()
        wants_summary = (
            ctx.intent is IntentMode.CODE
            and not state.accumulated_changes
            and status in (OutcomeStatus.COMPLETED, OutcomeStatus.STOPPED)
        )
        if wants_summary:
            summary = build_completion_summary(state, ctx, reason)
            text = f"{text}\n\n{summary}" if text else summary
        if not text:
            text = f"Done. {state.change_count} change(s) made." if state.accumulated_changes else "Done."
        iterations = min(state.iteration + 1, ctx.limits.max_iterations)
        self._log(ctx, state, "outcome", text, status=status.value, reason=reason)
        LOGGER.info(
            "Execution %s finished: %s after %d iteration(s), %d tool call(s)",
            ctx.execution_id,
            status.value,
            iterations,
            state.total_tool_calls,
        )
        return ExecutionOutcome(
            status=status,
            message=text,
            changes=tuple(state.accumulated_changes),
            reason=reason,
            options=tuple(options),
            iterations=iterations,
            tool_calls=state.total_tool_calls,
        )

    def _log(self, ctx: CoordinatorContext, state: LoopState, kind: str, content: str, **metadata: object) -> None:
        if self._log_sink is None:
            return
        self._log_sink.append_message(
            ctx.execution_id,
            ExecutionLogEntry(kind=kind, content=content, iteration=state.iteration, metadata=dict(metadata)),
        )


__all__ = ["CoordinationLoop", "DEFAULT_SYSTEM_PROMPT", "ExecutionOutcome", "OutcomeStatus"]
