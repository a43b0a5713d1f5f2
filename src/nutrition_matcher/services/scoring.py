"""Deterministic weighted scoring shared by every catalog and tier."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from nutrition_matcher.domain.catalog import CandidateItem, NutritionFacts
from nutrition_matcher.domain.constraints import ConstraintSet, NutritionCaps
from nutrition_matcher.domain.profiles import MacroTargets
from nutrition_matcher.domain.results import ItemRef, ScoredResult
from nutrition_matcher.policy import MatchingPolicy, TierWeights
from nutrition_matcher.services.safety import (
    SafetyVerdict,
    caps_satisfied,
    evaluate,
    is_eligible,
)

SCALE = 100.0
RECENCY_DECAY_DAYS = 30.0
EXPOSURE_DECAY_HOURS = 24.0
MACRO_FIT_REASON_THRESHOLD = 0.8
HIGH_PROTEIN_G = 20.0
HIGH_FIBER_G = 5.0
LOW_CALORIES = 400.0

# Ordered: reasons for satisfied caps are emitted in this order.
_CAP_REASONS = {
    "max_sugar_g": "Within your sugar limit",
    "max_sodium_mg": "Lower sodium option",
    "max_saturated_fat_g": "Lower saturated fat",
    "min_fiber_g": "Meets your fiber goal",
    "min_protein_g": "Meets your protein goal",
}


@dataclass
class Scorer:
    """Scores one candidate against one constraint tier."""

    policy: MatchingPolicy

    def score(
        self,
        item: CandidateItem,
        constraints: ConstraintSet,
        weights: TierWeights,
    ) -> ScoredResult | None:
        """Return the scored result, or None when the item is not eligible.

        Hard constraints are re-checked here even when the candidate source
        already filtered on them.
        """
        verdict = evaluate(item, constraints)
        if not is_eligible(verdict, constraints):
            return None

        subs = self.sub_scores(item, constraints)
        positive = sum(getattr(weights, name) * value for name, value in subs.items())
        penalty = weights.exposure_penalty * exposure_penalty(
            constraints.soft.recently_shown.get(item.id),
            constraints.as_of,
            self.policy.exposure_window_hours,
        )
        total = weights.total()
        bounded = min(max(positive - penalty, 0.0), total)
        return ScoredResult(
            item=ItemRef(id=item.id, title=item.title, updated_at=item.updated_at),
            score=round(SCALE * bounded / total, 4),
            reasons=tuple(self.reasons(item, constraints, verdict, subs["macro_fit"])),
            allergen_safe=verdict.allergen_safe,
            diet_compliant=verdict.diet_compliant,
            tier=constraints.tier,
        )

    def rank(
        self,
        items: Iterable[CandidateItem],
        constraints: ConstraintSet,
        weights: TierWeights,
    ) -> list[ScoredResult]:
        """Score eligible items and sort them by the total ordering."""
        scored = [self.score(item, constraints, weights) for item in items]
        return sorted(
            (result for result in scored if result is not None),
            key=ScoredResult.sort_key,
        )

    def sub_scores(
        self, item: CandidateItem, constraints: ConstraintSet
    ) -> dict[str, float]:
        """Return every bounded sub-score keyed by weight name."""
        soft = constraints.soft
        return {
            "diet": overlap_fraction(item.diet_tags, soft.preferred_diets),
            "category": 1.0 if item.categories & soft.preferred_categories else 0.0,
            "macro_fit": macro_fit(item.nutrition, soft.macro_targets),
            "recency": recency(item.updated_at, constraints.as_of),
            "popularity": popularity(
                item.popularity, self.policy.popularity_saturation
            ),
            "health": health_nudge(item),
            "quality": quality(item.quality),
            "conditions": condition_fit(item.nutrition, soft.caps),
        }

    def reasons(
        self,
        item: CandidateItem,
        constraints: ConstraintSet,
        verdict: SafetyVerdict,
        macro_fit_score: float,
    ) -> list[str]:
        """Build reasons with safety first and popularity last."""
        hard = constraints.hard
        soft = constraints.soft
        reasons: list[str] = []

        if hard.excluded_allergens and verdict.allergen_safe:
            reasons.append("Avoids your allergens")
        if hard.disliked_ingredients and verdict.dislike_free:
            reasons.append("Free of ingredients you dislike")
        if soft.preferred_diets and verdict.diet_compliant:
            reasons.append("Matches your diet")

        if item.categories & soft.preferred_categories:
            reasons.append(f"One of your favorite {self.policy.category_label}")

        satisfied = set(caps_satisfied(item.nutrition, soft.caps))
        reasons.extend(
            label for cap_name, label in _CAP_REASONS.items() if cap_name in satisfied
        )
        if macro_fit_score >= MACRO_FIT_REASON_THRESHOLD:
            reasons.append("Close to your macro targets")
        if "heart-healthy" in item.health_claims:
            reasons.append("Heart-healthy certified")
        nutrition = item.nutrition
        if nutrition.protein_g is not None and nutrition.protein_g > HIGH_PROTEIN_G:
            reasons.append("High protein")
        if nutrition.fiber_g is not None and nutrition.fiber_g > HIGH_FIBER_G:
            reasons.append("High fiber")
        if nutrition.calories is not None and nutrition.calories < LOW_CALORIES:
            reasons.append("Lower calorie option")

        if item.popularity >= self.policy.popular_threshold:
            reasons.append("Popular this month")
        return reasons


def overlap_fraction(tags: frozenset[str], wanted: frozenset[str]) -> float:
    """Fraction of wanted tags present on the item."""
    if not wanted:
        return 0.0
    return len(tags & wanted) / len(wanted)


def macro_fit(nutrition: NutritionFacts, targets: MacroTargets | None) -> float:
    """Mean closeness to macro targets with a symmetric over/under penalty."""
    if targets is None:
        return 0.0
    pairs = (
        (nutrition.calories, targets.calories),
        (nutrition.protein_g, targets.protein_g),
        (nutrition.carbs_g, targets.carbs_g),
        (nutrition.fat_g, targets.fat_g),
    )
    fits = [
        max(0.0, 1.0 - abs(actual - target) / target)
        for actual, target in pairs
        if actual is not None and target is not None and target > 0
    ]
    if not fits:
        return 0.0
    return sum(fits) / len(fits)


def recency(updated_at: datetime, as_of: datetime) -> float:
    """Exponential decay with item age."""
    age_days = max(0.0, (as_of - updated_at).total_seconds() / 86400)
    return math.exp(-age_days / RECENCY_DECAY_DAYS)


def popularity(count: int, saturation: int) -> float:
    """Log-scaled popularity, saturating at 1.0."""
    if count <= 0:
        return 0.0
    return min(1.0, math.log1p(count) / math.log1p(saturation))


def health_nudge(item: CandidateItem) -> float:
    """Small bonus for generally healthy items."""
    nutrition = item.nutrition
    if "heart-healthy" in item.health_claims:
        return 1.0
    if nutrition.fiber_g is not None and nutrition.fiber_g > HIGH_FIBER_G:
        return 1.0
    if nutrition.protein_g is not None and nutrition.protein_g > HIGH_PROTEIN_G:
        return 2 / 3
    if nutrition.calories is not None and nutrition.calories < LOW_CALORIES:
        return 1 / 3
    return 0.0


def quality(value: float | None) -> float:
    """Normalize a 0-100 base quality score."""
    if value is None:
        return 0.0
    return min(1.0, max(0.0, value / SCALE))


def condition_fit(nutrition: NutritionFacts, caps: NutritionCaps) -> float:
    """Fraction of active caps met; 1.0 when no caps apply."""
    active = caps.active()
    if not active:
        return 1.0
    return len(caps_satisfied(nutrition, caps)) / len(active)


def exposure_penalty(
    shown_at: datetime | None, as_of: datetime, window_hours: float
) -> float:
    """Time-decayed penalty for items recently shown to the subject."""
    if shown_at is None:
        return 0.0
    hours = max(0.0, (as_of - shown_at).total_seconds() / 3600)
    if hours >= window_hours:
        return 0.0
    return math.exp(-hours / EXPOSURE_DECAY_HOURS)
