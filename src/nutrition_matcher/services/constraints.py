"""Derive canonical constraint sets from raw subject profiles."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from nutrition_matcher.domain.constraints import (
    ConstraintSet,
    DietMatch,
    HardConstraints,
    NutritionCaps,
    SoftPreferences,
    Tier,
)
from nutrition_matcher.domain.profiles import Profile
from nutrition_matcher.policy import MatchingPolicy


@dataclass
class ConstraintDeriver:
    """Turns a possibly partial profile into a per-tier ConstraintSet."""

    policy: MatchingPolicy

    def derive(
        self,
        profile: Profile | None,
        tier: Tier,
        *,
        tenant_id: str,
        subject_id: str,
        as_of: datetime,
    ) -> ConstraintSet:
        """Return the constraint set for a subject at the given tier.

        A missing profile yields the widest net: no exclusions, no
        preferences. Absent fields never become implicit exclusions.
        """
        tier_policy = self.policy.tier(tier)
        if profile is None:
            return ConstraintSet(
                tenant_id=tenant_id,
                subject_id=subject_id,
                tier=tier,
                as_of=as_of,
                hard=HardConstraints(diet_match=self.policy.diet_match),
                gate_preferred_diets=tier_policy.gate_preferred_diets,
                enforce_caps=tier_policy.enforce_caps,
                exclude_recent_hours=tier_policy.exclude_recent_hours,
            )

        diets = normalize_tags(profile.diets)
        if self.policy.diet_match is DietMatch.ALL:
            required = diets
        else:
            required = diets & self.policy.strict_diets
        conditions = normalize_tags(profile.conditions)

        hard = HardConstraints(
            excluded_allergens=normalize_tags(profile.allergens),
            disliked_ingredients=normalize_tags(profile.disliked_ingredients),
            required_diets=required,
            excluded_diet_tags=normalize_tags(profile.excluded_diets),
            diet_match=self.policy.diet_match,
        )
        soft = SoftPreferences(
            preferred_diets=diets,
            preferred_categories=normalize_tags(profile.preferred_categories),
            conditions=conditions,
            macro_targets=profile.macro_targets,
            caps=resolve_caps(tier_policy.condition_caps, conditions),
            recently_shown=dict(profile.recently_shown),
        )
        return ConstraintSet(
            tenant_id=tenant_id,
            subject_id=subject_id,
            tier=tier,
            as_of=as_of,
            hard=hard,
            soft=soft,
            gate_preferred_diets=tier_policy.gate_preferred_diets,
            enforce_caps=tier_policy.enforce_caps,
            exclude_recent_hours=tier_policy.exclude_recent_hours,
        )


def normalize_tags(values: Iterable[str] | None) -> frozenset[str]:
    """Lower-case, strip and deduplicate tag values."""
    if not values:
        return frozenset()
    return frozenset(
        value.strip().lower()
        for value in values
        if isinstance(value, str) and value.strip()
    )


def resolve_caps(
    table: dict[str, dict[str, float]], conditions: frozenset[str]
) -> NutritionCaps:
    """Merge the cap table entries for the subject's conditions.

    When several conditions set the same cap the tightest threshold wins.
    """
    merged: dict[str, float] = {}
    for condition in sorted(conditions):
        for cap_name, threshold in table.get(condition, {}).items():
            current = merged.get(cap_name)
            if current is None:
                merged[cap_name] = threshold
            elif cap_name.startswith("max_"):
                merged[cap_name] = min(current, threshold)
            else:
                merged[cap_name] = max(current, threshold)
    return NutritionCaps(**merged)
