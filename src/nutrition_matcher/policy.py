"""Versioned scoring weights and condition cap tables."""

from pathlib import Path

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from nutrition_matcher.domain.constraints import DietMatch, Tier
from nutrition_matcher.domain.errors import ConfigurationError

CAP_NAMES = frozenset(
    {
        "max_sugar_g",
        "max_sodium_mg",
        "max_saturated_fat_g",
        "min_fiber_g",
        "min_protein_g",
    }
)

DEFAULT_TIER_ORDER = (Tier.STRICT, Tier.BALANCED, Tier.POPULARITY_FALLBACK)


class TierWeights(BaseModel):
    """Weights applied to the bounded sub-scores of one tier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    diet: float = Field(default=0.0, ge=0.0)
    category: float = Field(default=0.0, ge=0.0)
    macro_fit: float = Field(default=0.0, ge=0.0)
    recency: float = Field(default=0.0, ge=0.0)
    popularity: float = Field(default=0.0, ge=0.0)
    health: float = Field(default=0.0, ge=0.0)
    quality: float = Field(default=0.0, ge=0.0)
    conditions: float = Field(default=0.0, ge=0.0)
    exposure_penalty: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _require_positive_total(self) -> "TierWeights":
        if self.total() <= 0:
            raise ValueError("at least one positive sub-score weight is required")
        return self

    def total(self) -> float:
        """Sum of positive sub-score weights, used to normalize scores."""
        return (
            self.diet
            + self.category
            + self.macro_fit
            + self.recency
            + self.popularity
            + self.health
            + self.quality
            + self.conditions
        )


class TierPolicy(BaseModel):
    """Gating switches, weights and cap table for one cascade tier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    weights: TierWeights
    gate_preferred_diets: bool = False
    enforce_caps: bool = False
    exclude_recent_hours: float | None = Field(default=None, gt=0)
    condition_caps: dict[str, dict[str, float]] = Field(default_factory=dict)

    @field_validator("condition_caps")
    @classmethod
    def _validate_caps(
        cls, value: dict[str, dict[str, float]]
    ) -> dict[str, dict[str, float]]:
        normalized: dict[str, dict[str, float]] = {}
        for condition, caps in value.items():
            unknown = set(caps) - CAP_NAMES
            if unknown:
                raise ValueError(
                    f"unknown cap names for {condition}: {sorted(unknown)}"
                )
            if any(threshold < 0 for threshold in caps.values()):
                raise ValueError(f"negative threshold for {condition}")
            normalized[condition.strip().lower()] = dict(caps)
        return normalized


class MatchingPolicy(BaseModel):
    """Complete, named and versioned policy for one call path."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    version: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    strict_diets: frozenset[str] = frozenset()
    # any: profile diets listed in strict_diets gate, one match suffices.
    # all: every profile diet gates and all must match.
    diet_match: DietMatch = DietMatch.ANY
    popularity_saturation: int = Field(default=100, gt=0)
    popular_threshold: int = Field(default=5, ge=1)
    exposure_window_hours: float = Field(default=168.0, gt=0)
    category_label: str = "categories"
    tiers: dict[Tier, TierPolicy]
    tier_order: tuple[Tier, ...] = DEFAULT_TIER_ORDER

    @field_validator("strict_diets")
    @classmethod
    def _lower_diets(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(diet.strip().lower() for diet in value if diet.strip())

    @model_validator(mode="after")
    def _check_tiers(self) -> "MatchingPolicy":
        if not self.tier_order:
            raise ValueError("tier_order must not be empty")
        if len(set(self.tier_order)) != len(self.tier_order):
            raise ValueError("tier_order must not repeat tiers")
        if list(self.tier_order) != sorted(self.tier_order, key=list(Tier).index):
            raise ValueError("tier_order must run from strict to relaxed")
        missing = [tier.value for tier in self.tier_order if tier not in self.tiers]
        if missing:
            raise ValueError(f"missing tier policies: {missing}")
        return self

    def tier(self, tier: Tier) -> TierPolicy:
        """Return the policy for a tier."""
        return self.tiers[tier]


def build_policy(data: dict[str, object]) -> MatchingPolicy:
    """Validate a policy mapping, raising ConfigurationError on failure."""
    try:
        return MatchingPolicy.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid matching policy: {exc}") from exc


def load_policy(path: str | Path) -> MatchingPolicy:
    """Load and validate a JSON policy file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read matching policy {path}: {exc}") from exc
    try:
        return MatchingPolicy.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid matching policy {path}: {exc}") from exc


_STRICT_DIETS = [
    "vegetarian",
    "vegan",
    "pescatarian",
    "lacto-vegetarian",
    "ovo-vegetarian",
    "lacto_ovo_vegetarian",
    "lacto vegetarian",
    "ovo vegetarian",
]

# Consumer feed thresholds: sugar 10 g / sodium 600 mg / sat fat 8 g gate the
# strict tier; the balanced tier scores against looser limits.
CONSUMER_POLICY = build_policy(
    {
        "name": "consumer-feed",
        "version": "consumer-v1",
        "strict_diets": _STRICT_DIETS,
        "diet_match": "any",
        "category_label": "cuisines",
        "tiers": {
            "strict": {
                "weights": {
                    "category": 0.25,
                    "macro_fit": 0.20,
                    "recency": 0.20,
                    "popularity": 0.20,
                    "health": 0.15,
                    "exposure_penalty": 0.30,
                },
                "gate_preferred_diets": True,
                "enforce_caps": True,
                "exclude_recent_hours": 48,
                "condition_caps": {
                    "diabetes": {"max_sugar_g": 10},
                    "hypertension": {"max_sodium_mg": 600},
                    "high_cholesterol": {"max_saturated_fat_g": 8},
                    "hyperlipidemia": {"max_saturated_fat_g": 8},
                },
            },
            "balanced": {
                "weights": {
                    "diet": 0.20,
                    "category": 0.25,
                    "macro_fit": 0.15,
                    "recency": 0.20,
                    "popularity": 0.20,
                    "conditions": 0.10,
                    "exposure_penalty": 0.30,
                },
                "condition_caps": {
                    "diabetes": {"max_sugar_g": 15},
                    "hypertension": {"max_sodium_mg": 800},
                    "high_cholesterol": {"max_saturated_fat_g": 10},
                    "hyperlipidemia": {"max_saturated_fat_g": 10},
                },
            },
            "popularity_fallback": {
                "weights": {"popularity": 0.8, "recency": 0.2},
            },
        },
    }
)

# Enterprise health matching: every dietary restriction is a hard gate and
# condition limits follow the product matching tables.
ENTERPRISE_POLICY = build_policy(
    {
        "name": "enterprise-health-matching",
        "version": "enterprise-v1",
        "diet_match": "all",
        "tiers": {
            "strict": {
                "weights": {
                    "quality": 0.45,
                    "conditions": 0.20,
                    "macro_fit": 0.15,
                    "health": 0.10,
                    "category": 0.05,
                    "recency": 0.05,
                },
                "gate_preferred_diets": True,
                "enforce_caps": True,
                "condition_caps": {
                    "diabetes": {"max_sugar_g": 15, "min_fiber_g": 3},
                    "hypertension": {"max_sodium_mg": 400},
                    "heart_disease": {"max_sodium_mg": 300, "min_fiber_g": 4},
                    "weight_loss": {"min_protein_g": 15, "min_fiber_g": 5},
                },
            },
            "balanced": {
                "weights": {
                    "quality": 0.40,
                    "conditions": 0.25,
                    "macro_fit": 0.15,
                    "health": 0.10,
                    "popularity": 0.05,
                    "recency": 0.05,
                },
                "condition_caps": {
                    "diabetes": {"max_sugar_g": 15},
                    "hypertension": {"max_sodium_mg": 600},
                    "heart_disease": {"max_sodium_mg": 600},
                    "weight_loss": {"min_protein_g": 15},
                },
            },
            "popularity_fallback": {
                "weights": {"popularity": 0.6, "quality": 0.2, "recency": 0.2},
            },
        },
    }
)
