"""Hard-constraint and cap checks shared by every tier."""

from dataclasses import dataclass
from datetime import timedelta

from nutrition_matcher.domain.catalog import CandidateItem, NutritionFacts
from nutrition_matcher.domain.constraints import (
    ConstraintSet,
    DietMatch,
    HardConstraints,
    NutritionCaps,
)

_CAP_FIELDS = {
    "max_sugar_g": "sugar_g",
    "max_sodium_mg": "sodium_mg",
    "max_saturated_fat_g": "saturated_fat_g",
    "min_fiber_g": "fiber_g",
    "min_protein_g": "protein_g",
}


@dataclass(frozen=True)
class SafetyVerdict:
    """Outcome of checking one item against one constraint set."""

    allergen_safe: bool
    dislike_free: bool
    diet_allowed: bool
    preferred_diets_met: bool
    caps_met: bool
    recently_shown: bool
    malformed: bool

    @property
    def hard_ok(self) -> bool:
        """True when the item may appear in any tier."""
        return (
            self.allergen_safe
            and self.dislike_free
            and self.diet_allowed
            and not self.malformed
        )

    @property
    def diet_compliant(self) -> bool:
        """True when the item honours every diet in the profile."""
        return self.diet_allowed and self.preferred_diets_met


def evaluate(item: CandidateItem, constraints: ConstraintSet) -> SafetyVerdict:
    """Check an item against hard gates and tier-specific gates."""
    preferred_extra = constraints.soft.preferred_diets - constraints.hard.required_diets
    recently_shown = False
    if constraints.exclude_recent_hours is not None:
        shown_at = constraints.soft.recently_shown.get(item.id)
        window = timedelta(hours=constraints.exclude_recent_hours)
        recently_shown = shown_at is not None and constraints.as_of - shown_at < window
    return SafetyVerdict(
        allergen_safe=allergen_safe(item, constraints.hard),
        dislike_free=dislike_free(item, constraints.hard),
        diet_allowed=diet_allowed(item, constraints.hard),
        preferred_diets_met=preferred_extra <= item.diet_tags,
        caps_met=not cap_violations(item.nutrition, constraints.soft.caps),
        recently_shown=recently_shown,
        malformed=bool(item.malformed_fields),
    )


def is_eligible(verdict: SafetyVerdict, constraints: ConstraintSet) -> bool:
    """Apply the tier's gating switches on top of the hard gates."""
    if not verdict.hard_ok:
        return False
    if constraints.gate_preferred_diets and not verdict.preferred_diets_met:
        return False
    if constraints.enforce_caps and not verdict.caps_met:
        return False
    return not verdict.recently_shown


def passes_hard_constraints(item: CandidateItem, hard: HardConstraints) -> bool:
    """Return True when an item satisfies every never-relaxed constraint."""
    return (
        not item.malformed_fields
        and allergen_safe(item, hard)
        and dislike_free(item, hard)
        and diet_allowed(item, hard)
    )


def allergen_safe(item: CandidateItem, hard: HardConstraints) -> bool:
    """Fail closed when the allergen field could not be read."""
    if "allergens" in item.malformed_fields:
        return False
    return not (item.allergens & hard.excluded_allergens)


def dislike_free(item: CandidateItem, hard: HardConstraints) -> bool:
    """Reject items whose ingredients contain a disliked substring."""
    if "ingredients" in item.malformed_fields:
        return False
    if not hard.disliked_ingredients:
        return True
    names = [ingredient.lower() for ingredient in item.ingredients]
    return not any(
        disliked in name for disliked in hard.disliked_ingredients for name in names
    )


def diet_allowed(item: CandidateItem, hard: HardConstraints) -> bool:
    """Check required and excluded diet tags."""
    if "diet_tags" in item.malformed_fields:
        return False
    if item.diet_tags & hard.excluded_diet_tags:
        return False
    if not hard.required_diets:
        return True
    if hard.diet_match is DietMatch.ALL:
        return hard.required_diets <= item.diet_tags
    return bool(hard.required_diets & item.diet_tags)


def cap_violations(nutrition: NutritionFacts, caps: NutritionCaps) -> list[str]:
    """Return names of caps the nutrition facts break.

    Unknown nutrient values do not count as violations.
    """
    violations = []
    for cap_name, threshold in caps.active().items():
        value = getattr(nutrition, _CAP_FIELDS[cap_name])
        if value is None:
            continue
        if cap_name.startswith("max_") and value > threshold:
            violations.append(cap_name)
        elif cap_name.startswith("min_") and value < threshold:
            violations.append(cap_name)
    return violations


def caps_satisfied(nutrition: NutritionFacts, caps: NutritionCaps) -> list[str]:
    """Return names of caps with a known value that is within limits."""
    satisfied = []
    for cap_name, threshold in caps.active().items():
        value = getattr(nutrition, _CAP_FIELDS[cap_name])
        if value is None:
            continue
        if cap_name.startswith("max_") and value <= threshold:
            satisfied.append(cap_name)
        elif cap_name.startswith("min_") and value >= threshold:
            satisfied.append(cap_name)
    return satisfied
