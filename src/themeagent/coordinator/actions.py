"""Decisions returned by the coordination policies.

``PolicyAction`` is a closed union; the driving loop handles every variant.
Each variant may carry partial ``LoopState`` updates that the loop applies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class ClarifyOption:
    id: str
    label: str
    recommended: bool = False
    action: Optional[str] = None


@dataclass(frozen=True)
class Continue:
    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Break:
    reason: str
    message: str
    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Nudge:
    message: str
    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Clarify:
    message: str
    options: Tuple[ClarifyOption, ...] = ()
    updates: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BlockLookup:
    reason: str
    updates: Mapping[str, Any] = field(default_factory=dict)


PolicyAction = Union[Continue, Break, Nudge, Clarify, BlockLookup]

CONTINUE = Continue()

__all__ = ["BlockLookup", "Break", "CONTINUE", "Clarify", "ClarifyOption", "Continue", "Nudge", "PolicyAction"]
