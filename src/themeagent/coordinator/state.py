"""Per-execution loop state and the read-only execution context."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set, Tuple

from ..memory.schema import FileRecord
from ..models.provider import Message
from ..tools.execution import MutationFailure
from .thresholds import PolicyConfig, PolicyThresholds, StrategyTier


class IntentMode(str, Enum):
    ASK = "ask"
    CODE = "code"
    PLAN = "plan"
    DEBUG = "debug"


@dataclass(frozen=True)
class CodeChange:
    file_path: str
    tool_name: str
    iteration: int


class StuckSignal(Protocol):
    """Handle to the stuck-pattern detector consulted by the policies."""

    def detect(self) -> Optional[Any]:
        ...


@dataclass
class LoopState:
    """Mutable record of one execution.

    Only the driving loop mutates it, either directly while dispatching tools
    or by applying the ``updates`` carried by policy actions.
    """

    iteration: int = 0
    total_tool_calls: int = 0
    has_attempted_edit: bool = False
    accumulated_changes: List[CodeChange] = field(default_factory=list)
    file_read_log: Dict[str, int] = field(default_factory=dict)
    file_edit_log: Dict[str, int] = field(default_factory=dict)
    tool_sequence_log: List[str] = field(default_factory=list)
    tool_summary_log: List[str] = field(default_factory=list)
    lookup_signatures: Set[str] = field(default_factory=set)
    zero_tool_streak: int = 0
    read_only_iterations: int = 0
    post_edit_no_change_iterations: int = 0
    stuck_recovery_count: int = 0
    rethink_count: int = 0
    premature_stop_nudges: int = 0
    completion_nudges: int = 0
    first_edit_sla_nudges: int = 0
    finalization_nudge_sent: bool = False
    force_no_lookup_until_edit: bool = False
    failed_mutation_count: int = 0
    debug_fix_attempt_count: int = 0
    pre_edit_lookup_blocked_count: int = 0
    last_mutation_failure: Optional[MutationFailure] = None
    needs_clarification: bool = False
    has_structured_clarification: bool = False
    messages: List[Message] = field(default_factory=list)
    preamble_length: int = 1
    full_text: str = ""

    @property
    def change_count(self) -> int:
        return len(self.accumulated_changes)

    def apply(self, updates: Mapping[str, Any]) -> None:
        """Apply a partial update, rejecting names that are not state fields."""
        names = {item.name for item in dataclasses.fields(self)}
        unknown = sorted(set(updates) - names)
        if unknown:
            raise AttributeError(f"Unknown loop state field(s): {', '.join(unknown)}")
        for key, value in updates.items():
            setattr(self, key, value)


@dataclass(frozen=True)
class CoordinatorContext:
    """Snapshot of everything an execution knows up front."""

    intent: IntentMode
    user_request: str
    files: Tuple[FileRecord, ...] = ()
    preloaded: Tuple[FileRecord, ...] = ()
    strategy: StrategyTier = StrategyTier.DEFAULT
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    stuck_detector: Optional[StuckSignal] = None
    execution_id: str = "execution"
    system_prompt: str = ""
    context_message: Optional[str] = None

    @property
    def limits(self) -> PolicyThresholds:
        return self.policy.for_tier(self.strategy)

    @property
    def primary_target(self) -> Optional[str]:
        return self.preloaded[0].path if self.preloaded else None


__all__ = ["CodeChange", "CoordinatorContext", "IntentMode", "LoopState", "StuckSignal"]
