"""Supabase candidate source for the consumer recipe catalog."""

import logging
from dataclasses import dataclass

from supabase import Client

from nutrition_matcher.adapters.row_parsing import (
    collect_ingredients,
    collect_tags,
    parse_float,
    parse_int,
    parse_timestamp,
)
from nutrition_matcher.adapters.supabase_filters import (
    SUPABASE_ERRORS,
    apply_hard_filters,
)
from nutrition_matcher.domain.catalog import CandidateItem, NutritionFacts
from nutrition_matcher.domain.constraints import ConstraintSet, Tier
from nutrition_matcher.domain.errors import CandidateSourceError
from nutrition_matcher.services.cascade import CandidateSource

_logger = logging.getLogger(__name__)

_RECIPE_COLUMNS = (
    "id, title, updated_at, cuisines, diet_tags, allergens, ingredients, "
    "calories, protein_g, carbs_g, fat_g, fiber_g, sugar_g, sodium_mg, "
    "saturated_fat_g"
)


@dataclass
class SupabaseRecipeSource(CandidateSource):
    """Published recipes for one market, pre-filtered on hard constraints."""

    client: Client

    def fetch(
        self,
        constraints: ConstraintSet,
        limit: int,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[CandidateItem]:
        """Return recipes for the market named by the tenant id.

        The popularity fallback tier reads the most cooked recipes first and
        tops up with the newest ones; other tiers read newest first.
        """
        try:
            rows: list[dict[str, object]] = []
            popularity: dict[str, int] = {}
            if constraints.tier is Tier.POPULARITY_FALLBACK:
                rows, popularity = self._most_cooked(constraints, limit, exclude_ids)
            if len(rows) < limit:
                skip = exclude_ids | {str(row["id"]) for row in rows}
                response = (
                    self._query(constraints, skip)
                    .order("updated_at", desc=True)
                    .order("id")
                    .limit(limit - len(rows))
                    .execute()
                )
                newest = response.data or []
                popularity.update(self._popularity([str(row["id"]) for row in newest]))
                rows = rows + newest
        except SUPABASE_ERRORS as exc:
            raise CandidateSourceError(f"Recipe fetch failed: {exc}") from exc
        return [_parse_recipe(row, popularity.get(str(row["id"]), 0)) for row in rows]

    def _query(  # type: ignore[no-untyped-def]
        self, constraints: ConstraintSet, exclude_ids: frozenset[str]
    ):
        query = (
            self.client.table("recipes")
            .select(_RECIPE_COLUMNS)
            .eq("status", "published")
            .eq("market_country", constraints.tenant_id)
        )
        return apply_hard_filters(
            query,
            constraints.hard,
            allergen_column="allergens",
            diet_column="diet_tags",
            exclude_ids=exclude_ids,
        )

    def _most_cooked(
        self, constraints: ConstraintSet, limit: int, exclude_ids: frozenset[str]
    ) -> tuple[list[dict[str, object]], dict[str, int]]:
        ranking = self.client.table("mv_recipe_popularity_30d").select(
            "recipe_id, cooked_30d"
        )
        if exclude_ids:
            ranking = ranking.not_.in_("recipe_id", sorted(exclude_ids))
        response = (
            ranking.order("cooked_30d", desc=True)
            .order("recipe_id")
            .limit(limit)
            .execute()
        )
        popularity = {
            str(row["recipe_id"]): parse_int(row.get("cooked_30d"))
            for row in response.data or []
        }
        if not popularity:
            return [], {}
        response = (
            self._query(constraints, exclude_ids).in_("id", list(popularity)).execute()
        )
        rows = response.data or []
        position = {recipe_id: index for index, recipe_id in enumerate(popularity)}
        rows.sort(key=lambda row: position.get(str(row["id"]), len(position)))
        return rows, popularity

    def _popularity(self, recipe_ids: list[str]) -> dict[str, int]:
        if not recipe_ids:
            return {}
        response = (
            self.client.table("mv_recipe_popularity_30d")
            .select("recipe_id, cooked_30d")
            .in_("recipe_id", recipe_ids)
            .execute()
        )
        return {
            str(row["recipe_id"]): parse_int(row.get("cooked_30d"))
            for row in response.data or []
        }


def _parse_recipe(row: dict[str, object], popularity: int) -> CandidateItem:
    """Parse a recipe row; unreadable safety fields mark the item malformed."""
    malformed: list[str] = []
    item = CandidateItem(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        updated_at=parse_timestamp(row.get("updated_at")),
        diet_tags=collect_tags(row, "diet_tags", "diet_tags", malformed),
        allergens=collect_tags(row, "allergens", "allergens", malformed),
        categories=collect_tags(row, "cuisines", "categories", malformed),
        ingredients=collect_ingredients(row, "ingredients", malformed),
        nutrition=NutritionFacts(
            calories=parse_float(row.get("calories")),
            protein_g=parse_float(row.get("protein_g")),
            carbs_g=parse_float(row.get("carbs_g")),
            fat_g=parse_float(row.get("fat_g")),
            fiber_g=parse_float(row.get("fiber_g")),
            sugar_g=parse_float(row.get("sugar_g")),
            sodium_mg=parse_float(row.get("sodium_mg")),
            saturated_fat_g=parse_float(row.get("saturated_fat_g")),
        ),
        popularity=popularity,
        malformed_fields=tuple(malformed),
    )
    if malformed:
        _logger.warning("Recipe %s has unreadable fields: %s", item.id, malformed)
    return item
