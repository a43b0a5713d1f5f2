"""Canonical constraint set produced by the constraint deriver."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from nutrition_matcher.domain.profiles import MacroTargets


class Tier(StrEnum):
    """Cascade tiers, ordered from strictest to most relaxed."""

    STRICT = "strict"
    BALANCED = "balanced"
    POPULARITY_FALLBACK = "popularity_fallback"


class DietMatch(StrEnum):
    """How required diets are matched against item diet tags."""

    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class NutritionCaps:
    """Resolved condition-driven nutrition limits for one tier."""

    max_sugar_g: float | None = None
    max_sodium_mg: float | None = None
    max_saturated_fat_g: float | None = None
    min_fiber_g: float | None = None
    min_protein_g: float | None = None

    def active(self) -> dict[str, float]:
        """Return the caps that are set, keyed by cap name."""
        return {
            name: value
            for name, value in (
                ("max_sugar_g", self.max_sugar_g),
                ("max_sodium_mg", self.max_sodium_mg),
                ("max_saturated_fat_g", self.max_saturated_fat_g),
                ("min_fiber_g", self.min_fiber_g),
                ("min_protein_g", self.min_protein_g),
            )
            if value is not None
        }


@dataclass(frozen=True)
class HardConstraints:
    """Eligibility conditions that hold in every tier."""

    excluded_allergens: frozenset[str] = frozenset()
    disliked_ingredients: frozenset[str] = frozenset()
    required_diets: frozenset[str] = frozenset()
    excluded_diet_tags: frozenset[str] = frozenset()
    diet_match: DietMatch = DietMatch.ANY


@dataclass(frozen=True)
class SoftPreferences:
    """Scoring inputs; some become gates in the strict tier."""

    preferred_diets: frozenset[str] = frozenset()
    preferred_categories: frozenset[str] = frozenset()
    conditions: frozenset[str] = frozenset()
    macro_targets: MacroTargets | None = None
    caps: NutritionCaps = NutritionCaps()
    recently_shown: dict[str, datetime] = field(default_factory=dict)


@dataclass(frozen=True)
class ConstraintSet:
    """Constraints for one subject evaluated at one cascade tier."""

    tenant_id: str
    subject_id: str
    tier: Tier
    as_of: datetime
    hard: HardConstraints = HardConstraints()
    soft: SoftPreferences = SoftPreferences()
    gate_preferred_diets: bool = False
    enforce_caps: bool = False
    exclude_recent_hours: float | None = None
