"""Domain models for subject profiles."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class MacroTargets:
    """Per-serving macro targets for a subject."""

    calories: float | None = None
    protein_g: float | None = None
    carbs_g: float | None = None
    fat_g: float | None = None


@dataclass(frozen=True)
class Profile:
    """Safety and preference profile read from the profile store."""

    subject_id: str
    diets: tuple[str, ...] = ()
    excluded_diets: tuple[str, ...] = ()
    allergens: tuple[str, ...] = ()
    disliked_ingredients: tuple[str, ...] = ()
    conditions: tuple[str, ...] = ()
    preferred_categories: tuple[str, ...] = ()
    macro_targets: MacroTargets | None = None
    recently_shown: dict[str, datetime] = field(default_factory=dict)
