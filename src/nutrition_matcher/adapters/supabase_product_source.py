"""Supabase candidate source for vendor product catalogs."""

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
from nutrition_matcher.domain.constraints import ConstraintSet
from nutrition_matcher.domain.errors import CandidateSourceError
from nutrition_matcher.services.cascade import CandidateSource

_logger = logging.getLogger(__name__)

_PRODUCT_COLUMNS = (
    "id, name, updated_at, category_id, subcategory_id, dietary_tags, "
    "allergens, ingredients, health_score, health_claims, orders_30d, "
    "calories, protein_g, carbs_g, fat_g, fiber_g, sugar_g, sodium_mg, "
    "saturated_fat_g"
)


@dataclass
class SupabaseProductSource(CandidateSource):
    """Active products of one vendor; the tenant id is the vendor id."""

    client: Client

    def fetch(
        self,
        constraints: ConstraintSet,
        limit: int,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[CandidateItem]:
        """Return vendor products, best health score first."""
        try:
            query = (
                self.client.table("products")
                .select(_PRODUCT_COLUMNS)
                .eq("vendor_id", constraints.tenant_id)
                .eq("status", "active")
            )
            query = apply_hard_filters(
                query,
                constraints.hard,
                allergen_column="allergens",
                diet_column="dietary_tags",
                exclude_ids=exclude_ids,
            )
            response = (
                query.order("health_score", desc=True, nullsfirst=False)
                .order("updated_at", desc=True)
                .order("id")
                .limit(limit)
                .execute()
            )
        except SUPABASE_ERRORS as exc:
            raise CandidateSourceError(f"Product fetch failed: {exc}") from exc
        return [_parse_product(row) for row in response.data or []]


def _category_ids(row: dict[str, object]) -> frozenset[str]:
    return frozenset(
        str(row[column]).lower()
        for column in ("category_id", "subcategory_id")
        if row.get(column) is not None
    )


def _parse_product(row: dict[str, object]) -> CandidateItem:
    malformed: list[str] = []
    item = CandidateItem(
        id=str(row["id"]),
        title=str(row.get("name") or ""),
        updated_at=parse_timestamp(row.get("updated_at")),
        diet_tags=collect_tags(row, "dietary_tags", "diet_tags", malformed),
        allergens=collect_tags(row, "allergens", "allergens", malformed),
        categories=_category_ids(row),
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
        popularity=parse_int(row.get("orders_30d")),
        quality=parse_float(row.get("health_score")),
        health_claims=collect_tags(row, "health_claims", "health_claims", []),
        malformed_fields=tuple(malformed),
    )
    if malformed:
        _logger.warning("Product %s has unreadable fields: %s", item.id, malformed)
    return item
