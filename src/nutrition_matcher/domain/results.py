"""Domain models for ranked output."""

from dataclasses import dataclass
from datetime import datetime

from nutrition_matcher.domain.constraints import Tier

_TIER_RANK = {tier: rank for rank, tier in enumerate(Tier)}


@dataclass(frozen=True)
class ItemRef:
    """Reference to the catalog item a result was built from."""

    id: str
    title: str
    updated_at: datetime


@dataclass(frozen=True)
class ScoredResult:
    """Scored candidate with ordered reasons and audit flags."""

    item: ItemRef
    score: float
    reasons: tuple[str, ...]
    allergen_safe: bool
    diet_compliant: bool
    tier: Tier

    def sort_key(self) -> tuple[int, float, float, str]:
        """Key for tier order, then score desc, recency desc, id asc."""
        return (
            _TIER_RANK[self.tier],
            -self.score,
            -self.item.updated_at.timestamp(),
            self.item.id,
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a JSON-compatible dict."""
        return {
            "item": {
                "id": self.item.id,
                "title": self.item.title,
                "updated_at": self.item.updated_at.isoformat(),
            },
            "score": self.score,
            "reasons": list(self.reasons),
            "allergen_safe": self.allergen_safe,
            "diet_compliant": self.diet_compliant,
            "tier": self.tier.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ScoredResult":
        """Rebuild a result from its serialized form."""
        item = data["item"]
        return cls(
            item=ItemRef(
                id=str(item["id"]),
                title=str(item["title"]),
                updated_at=datetime.fromisoformat(str(item["updated_at"])),
            ),
            score=float(data["score"]),
            reasons=tuple(str(reason) for reason in data["reasons"]),
            allergen_safe=bool(data["allergen_safe"]),
            diet_compliant=bool(data["diet_compliant"]),
            tier=Tier(data["tier"]),
        )


@dataclass(frozen=True)
class RankedPage:
    """One page of ranked results."""

    results: list[ScoredResult]
    cache_hit: bool
    tiers: tuple[Tier, ...] = ()
