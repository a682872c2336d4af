"""Tolerant readers for sections of the YAML runtime configuration."""

from __future__ import annotations

from typing import Any, Mapping


def config_section(config: Any, name: str) -> Mapping[str, Any]:
    """Return ``config[name]`` when it is a mapping, else an empty mapping."""
    if not isinstance(config, Mapping):
        return {}
    section = config.get(name)
    return section if isinstance(section, Mapping) else {}


def positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def positive_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default
