"""Domain models for catalog candidates."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class NutritionFacts:
    """Per-serving nutrition facts; unknown values are None."""

    calories: float | None = None
    protein_g: float | None = None
    carbs_g: float | None = None
    fat_g: float | None = None
    fiber_g: float | None = None
    sugar_g: float | None = None
    sodium_mg: float | None = None
    saturated_fat_g: float | None = None


@dataclass(frozen=True)
class CandidateItem:
    """Read-only snapshot of a recipe or product taken at query time."""

    id: str
    title: str
    updated_at: datetime
    diet_tags: frozenset[str] = frozenset()
    allergens: frozenset[str] = frozenset()
    categories: frozenset[str] = frozenset()
    ingredients: tuple[str, ...] = ()
    nutrition: NutritionFacts = NutritionFacts()
    popularity: int = 0
    quality: float | None = None
    health_claims: frozenset[str] = frozenset()
    malformed_fields: tuple[str, ...] = ()
