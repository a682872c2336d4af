"""Coordination policy engine and the loop that drives it."""

from .actions import BlockLookup, Break, Clarify, ClarifyOption, Continue, Nudge, PolicyAction
from .loop import CoordinationLoop, ExecutionOutcome, OutcomeStatus
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
from .stuck import StuckDetector, StuckPattern, StuckPatternKind
from .thresholds import PolicyConfig, PolicyThresholds, StrategyTier

__all__ = [
    "BlockLookup",
    "Break",
    "Clarify",
    "ClarifyOption",
    "CodeChange",
    "Continue",
    "CoordinationLoop",
    "CoordinatorContext",
    "ExecutionOutcome",
    "IntentMode",
    "IterationSnapshot",
    "LoopState",
    "Nudge",
    "OutcomeStatus",
    "PolicyAction",
    "PolicyConfig",
    "PolicyThresholds",
    "StrategyTier",
    "StuckDetector",
    "StuckPattern",
    "StuckPatternKind",
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
