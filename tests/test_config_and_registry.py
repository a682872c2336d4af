from __future__ import annotations

from typing import List, Tuple

import pytest

from themeagent.coordinator.state import CoordinatorContext, IntentMode
from themeagent.coordinator.thresholds import PolicyConfig, PolicyThresholds, StrategyTier
from themeagent.memory.registry import LRURegistry
from themeagent.utils.config import as_bool, config_section, positive_float, positive_int
from themeagent.utils.slug import abbreviate_slug, identifier_fragment, slugify
from themeagent.utils.tokens import estimate_tokens


def test_aggressive_tier_overrides_defaults() -> None:
    config = PolicyConfig()

    default = config.for_tier(StrategyTier.DEFAULT)
    aggressive = config.for_tier(StrategyTier.AGGRESSIVE)

    assert default == PolicyThresholds()
    assert aggressive.read_only_iteration_limit == 1
    assert aggressive.max_iterations == 20
    assert aggressive.max_stuck_recoveries == default.max_stuck_recoveries


def test_policy_config_merges_yaml_sections(caplog: pytest.LogCaptureFixture) -> None:
    config = PolicyConfig.from_config(
        {
            "policy": {
                "edit_sla_tool_calls": 5,
                "max_iterations": "-1",
                "bogus": 3,
                "tiers": {"aggressive": {"max_iterations": 30}, "reckless": {"max_iterations": 99}},
            }
        }
    )

    base = config.for_tier(StrategyTier.DEFAULT)
    aggressive = config.for_tier(StrategyTier.AGGRESSIVE)

    assert base.edit_sla_tool_calls == 5
    assert base.max_iterations == 12
    assert aggressive.max_iterations == 30
    assert aggressive.read_only_iteration_limit == 1
    assert aggressive.edit_sla_tool_calls == 12
    assert "bogus" in caplog.text
    assert "reckless" in caplog.text


def test_context_limits_follow_strategy() -> None:
    ctx = CoordinatorContext(intent=IntentMode.CODE, user_request="x", strategy=StrategyTier.AGGRESSIVE)

    assert ctx.limits.finalization_soft_cap == 40
    assert ctx.primary_target is None


def test_tolerant_config_readers() -> None:
    assert config_section({"a": {"b": 1}}, "a") == {"b": 1}
    assert config_section({"a": [1]}, "a") == {}
    assert config_section(None, "a") == {}
    assert positive_int("7", 1) == 7
    assert positive_int(True, 3) == 3
    assert positive_int(0, 3) == 3
    assert positive_float("0.5", 1.0) == 0.5
    assert positive_float("nope", 1.0) == 1.0
    assert as_bool("off", True) is False
    assert as_bool("maybe", True) is True


def test_registry_evicts_least_recently_used() -> None:
    evicted: List[Tuple[str, int]] = []
    registry: LRURegistry[str, int] = LRURegistry(2, on_evict=lambda key, value: evicted.append((key, value)))

    registry.put("a", 1)
    registry.put("b", 2)
    registry.get("a")
    registry.put("c", 3)

    assert evicted == [("b", 2)]
    assert registry.keys() == ["a", "c"]
    assert registry.get_or_create("a", lambda: 99) == 1
    assert registry.get_or_create("d", lambda: 4) == 4
    assert "c" not in registry
    assert registry.pop("missing") is None
    with pytest.raises(ValueError):
        LRURegistry(0)


def test_slug_and_token_helpers() -> None:
    assert slugify("My Shop / Dawn") == "my-shop-dawn"
    assert slugify("", fallback="theme") == "theme"
    long_slug = abbreviate_slug("x" * 120, max_length=20)
    assert len(long_slug) <= 20
    assert long_slug != abbreviate_slug("x" * 121, max_length=20)
    assert identifier_fragment(".card > .title") == "_card____title"
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcde") == 2
