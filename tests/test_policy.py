"""Tests for matching policy validation."""

import pytest

from nutrition_matcher.domain.constraints import DietMatch, Tier
from nutrition_matcher.domain.errors import ConfigurationError
from nutrition_matcher.policy import (
    CONSUMER_POLICY,
    DEFAULT_TIER_ORDER,
    ENTERPRISE_POLICY,
    build_policy,
    load_policy,
)


def _policy(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "name": "test",
        "version": "test-v1",
        "tiers": {
            "strict": {"weights": {"recency": 1.0}},
            "balanced": {"weights": {"recency": 1.0}},
            "popularity_fallback": {"weights": {"popularity": 1.0}},
        },
    }
    data.update(overrides)
    return data


def test_builtin_policies_are_versioned() -> None:
    assert CONSUMER_POLICY.version == "consumer-v1"
    assert ENTERPRISE_POLICY.version == "enterprise-v1"
    assert ENTERPRISE_POLICY.diet_match is DietMatch.ALL
    assert CONSUMER_POLICY.tier_order == DEFAULT_TIER_ORDER
    assert "vegan" in CONSUMER_POLICY.strict_diets


def test_zero_weights_are_rejected() -> None:
    data = _policy()
    data["tiers"]["strict"] = {"weights": {}}  # type: ignore[index]

    with pytest.raises(ConfigurationError):
        build_policy(data)


def test_unknown_cap_names_are_rejected() -> None:
    data = _policy()
    data["tiers"]["strict"] = {  # type: ignore[index]
        "weights": {"recency": 1.0},
        "condition_caps": {"diabetes": {"max_sugar": 10}},
    }

    with pytest.raises(ConfigurationError):
        build_policy(data)


def test_missing_tier_policy_is_rejected() -> None:
    data = _policy()
    del data["tiers"]["balanced"]  # type: ignore[attr-defined]

    with pytest.raises(ConfigurationError):
        build_policy(data)


def test_custom_tier_order_may_skip_tiers() -> None:
    policy = build_policy(_policy(tier_order=["balanced", "popularity_fallback"]))

    assert policy.tier_order == (Tier.BALANCED, Tier.POPULARITY_FALLBACK)


def test_tier_order_must_relax_monotonically() -> None:
    with pytest.raises(ConfigurationError):
        build_policy(_policy(tier_order=["balanced", "strict"]))


def test_diet_gating_has_a_single_switch() -> None:
    with pytest.raises(ConfigurationError):
        build_policy(_policy(diet_match="all", all_diets_required=False))

    assert build_policy(_policy(diet_match="all")).diet_match is DietMatch.ALL


def test_condition_names_are_normalized() -> None:
    data = _policy()
    data["tiers"]["strict"] = {  # type: ignore[index]
        "weights": {"recency": 1.0},
        "condition_caps": {" Diabetes ": {"max_sugar_g": 10}},
    }

    policy = build_policy(data)

    assert policy.tier(Tier.STRICT).condition_caps == {"diabetes": {"max_sugar_g": 10}}


def test_load_policy_from_json(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(CONSUMER_POLICY.model_dump_json(), encoding="utf-8")

    assert load_policy(path) == CONSUMER_POLICY


def test_load_policy_reports_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_policy(tmp_path / "missing.json")


def test_load_policy_reports_invalid_json(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text('{"name": "broken"}', encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_policy(path)
