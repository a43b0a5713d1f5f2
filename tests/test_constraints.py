"""Tests for constraint derivation."""

from datetime import timedelta

from nutrition_matcher.domain.constraints import (
    ConstraintSet,
    DietMatch,
    NutritionCaps,
    Tier,
)
from nutrition_matcher.domain.profiles import MacroTargets, Profile
from nutrition_matcher.policy import CONSUMER_POLICY, ENTERPRISE_POLICY
from nutrition_matcher.services.constraints import (
    ConstraintDeriver,
    normalize_tags,
    resolve_caps,
)
from tests.conftest import AS_OF


def _derive(
    deriver: ConstraintDeriver, profile: Profile | None, tier: Tier
) -> ConstraintSet:
    return deriver.derive(
        profile, tier, tenant_id="US", subject_id="user-1", as_of=AS_OF
    )


def test_missing_profile_yields_widest_net() -> None:
    deriver = ConstraintDeriver(CONSUMER_POLICY)

    constraints = _derive(deriver, None, Tier.STRICT)

    assert constraints.hard.excluded_allergens == frozenset()
    assert constraints.hard.required_diets == frozenset()
    assert constraints.hard.disliked_ingredients == frozenset()
    assert constraints.soft.caps == NutritionCaps()
    assert constraints.enforce_caps is True
    assert constraints.exclude_recent_hours == 48


def test_consumer_only_strict_diets_become_hard() -> None:
    deriver = ConstraintDeriver(CONSUMER_POLICY)
    profile = Profile(
        subject_id="user-1",
        diets=(" Vegan ", "keto"),
        allergens=("Peanut", "peanut", ""),
        disliked_ingredients=("Cilantro",),
    )

    constraints = _derive(deriver, profile, Tier.BALANCED)

    assert constraints.hard.required_diets == frozenset({"vegan"})
    assert constraints.hard.diet_match is DietMatch.ANY
    assert constraints.hard.excluded_allergens == frozenset({"peanut"})
    assert constraints.hard.disliked_ingredients == frozenset({"cilantro"})
    assert constraints.soft.preferred_diets == frozenset({"vegan", "keto"})
    assert constraints.gate_preferred_diets is False


def test_enterprise_requires_every_diet() -> None:
    deriver = ConstraintDeriver(ENTERPRISE_POLICY)
    profile = Profile(subject_id="c-1", diets=("keto", "gluten-free"))

    constraints = _derive(deriver, profile, Tier.POPULARITY_FALLBACK)

    assert constraints.hard.required_diets == frozenset({"keto", "gluten-free"})
    assert constraints.hard.diet_match is DietMatch.ALL


def test_caps_follow_tier_tables() -> None:
    deriver = ConstraintDeriver(CONSUMER_POLICY)
    profile = Profile(subject_id="user-1", conditions=("Diabetes", "hypertension"))

    strict = _derive(deriver, profile, Tier.STRICT)
    balanced = _derive(deriver, profile, Tier.BALANCED)
    fallback = _derive(deriver, profile, Tier.POPULARITY_FALLBACK)

    assert strict.soft.caps == NutritionCaps(max_sugar_g=10, max_sodium_mg=600)
    assert balanced.soft.caps == NutritionCaps(max_sugar_g=15, max_sodium_mg=800)
    assert fallback.soft.caps == NutritionCaps()


def test_overlapping_conditions_keep_tightest_cap() -> None:
    table = ENTERPRISE_POLICY.tier(Tier.STRICT).condition_caps

    caps = resolve_caps(
        table,
        frozenset({"diabetes", "weight_loss", "hypertension", "heart_disease"}),
    )

    assert caps == NutritionCaps(
        max_sugar_g=15, max_sodium_mg=300, min_fiber_g=5, min_protein_g=15
    )


def test_unknown_conditions_add_no_caps() -> None:
    caps = resolve_caps({"diabetes": {"max_sugar_g": 10}}, frozenset({"migraine"}))

    assert caps.active() == {}


def test_profile_details_are_carried_into_preferences() -> None:
    deriver = ConstraintDeriver(CONSUMER_POLICY)
    shown_at = AS_OF - timedelta(hours=3)
    profile = Profile(
        subject_id="user-1",
        preferred_categories=("Italian",),
        macro_targets=MacroTargets(calories=500),
        recently_shown={"r-1": shown_at},
    )

    constraints = _derive(deriver, profile, Tier.STRICT)

    assert constraints.soft.preferred_categories == frozenset({"italian"})
    assert constraints.soft.macro_targets == MacroTargets(calories=500)
    assert constraints.soft.recently_shown == {"r-1": shown_at}
    assert constraints.tenant_id == "US"
    assert constraints.as_of == AS_OF


def test_normalize_tags_ignores_blank_values() -> None:
    assert normalize_tags(None) == frozenset()
    assert normalize_tags(["  ", "Soy", "soy "]) == frozenset({"soy"})
