"""Named, tunable thresholds for the coordination policies."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

from ..utils.config import config_section, positive_int

LOGGER = logging.getLogger(__name__)


class StrategyTier(str, Enum):
    """Aggressiveness level of an execution."""

    DEFAULT = "default"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class PolicyThresholds:
    edit_sla_tool_calls: int = 8
    edit_sla_abort_tool_calls: int = 16
    max_stuck_recoveries: int = 2
    history_tail_messages: int = 6
    zero_tool_streak_limit: int = 2
    read_only_iteration_limit: int = 3
    post_edit_stagnation_threshold: int = 2
    max_rethinks: int = 1
    finalization_soft_cap: int = 24
    max_premature_stop_nudges: int = 2
    max_completion_nudges: int = 2
    iteration_reserve: int = 2
    max_iterations: int = 12
    bulk_delete_threshold: int = 3

    def with_overrides(self, overrides: Mapping[str, Any]) -> "PolicyThresholds":
        known = {item.name: getattr(self, item.name) for item in dataclasses.fields(self)}
        changes: Dict[str, int] = {}
        for key, value in overrides.items():
            if key not in known:
                LOGGER.warning("Ignoring unknown policy threshold %r", key)
                continue
            changes[key] = positive_int(value, known[key])
        return dataclasses.replace(self, **changes)


AGGRESSIVE_OVERRIDES: Mapping[str, int] = {
    "read_only_iteration_limit": 1,
    "post_edit_stagnation_threshold": 1,
    "max_rethinks": 2,
    "edit_sla_tool_calls": 12,
    "edit_sla_abort_tool_calls": 24,
    "finalization_soft_cap": 40,
    "max_iterations": 20,
}


def _default_tiers() -> Dict[StrategyTier, Mapping[str, Any]]:
    return {StrategyTier.AGGRESSIVE: dict(AGGRESSIVE_OVERRIDES)}


@dataclass(frozen=True)
class PolicyConfig:
    """Base thresholds plus per-tier overrides."""

    base: PolicyThresholds = field(default_factory=PolicyThresholds)
    tiers: Mapping[StrategyTier, Mapping[str, Any]] = field(default_factory=_default_tiers)

    def for_tier(self, tier: StrategyTier) -> PolicyThresholds:
        overrides = self.tiers.get(tier)
        return self.base.with_overrides(overrides) if overrides else self.base

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PolicyConfig":
        section = config_section(config, "policy")
        base = PolicyThresholds().with_overrides({key: value for key, value in section.items() if key != "tiers"})
        tiers = _default_tiers()
        configured = section.get("tiers")
        if isinstance(configured, Mapping):
            for name, overrides in configured.items():
                try:
                    tier = StrategyTier(str(name))
                except ValueError:
                    LOGGER.warning("Ignoring unknown strategy tier %r", name)
                    continue
                if isinstance(overrides, Mapping):
                    merged = dict(tiers.get(tier, {}))
                    merged.update(overrides)
                    tiers[tier] = merged
        return cls(base=base, tiers=tiers)


__all__ = ["AGGRESSIVE_OVERRIDES", "PolicyConfig", "PolicyThresholds", "StrategyTier"]
