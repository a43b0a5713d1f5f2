"""Supabase profile stores for consumers and vendor customers."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from supabase import Client

from nutrition_matcher.adapters.row_parsing import (
    parse_float,
    parse_tags,
    parse_timestamp,
)
from nutrition_matcher.adapters.supabase_filters import SUPABASE_ERRORS
from nutrition_matcher.domain.errors import (
    MalformedCandidateData,
    ProfileStoreError,
    SubjectNotFound,
)
from nutrition_matcher.domain.profiles import MacroTargets, Profile
from nutrition_matcher.services.matching import ProfileStore


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SupabaseProfileRepository(ProfileStore):
    """Consumer profiles: user_profiles, health_profiles and view history."""

    client: Client
    history_window: timedelta = timedelta(days=7)
    history_limit: int = 500
    clock: Callable[[], datetime] = _utcnow

    def get_profile(self, tenant_id: str, subject_id: str) -> Profile | None:
        """Return the profile of a consumer; the market does not scope users."""
        try:
            base = self._first_row("user_profiles", "user_id", subject_id)
            if base is None:
                return None
            health = self._first_row("health_profiles", "user_id", subject_id) or {}
            recently_shown = self._recent_views(subject_id)
        except SUPABASE_ERRORS as exc:
            raise ProfileStoreError(f"Profile lookup failed: {exc}") from exc
        try:
            return Profile(
                subject_id=subject_id,
                diets=_tags(base, "profile_diets"),
                allergens=_tags(base, "profile_allergens"),
                preferred_categories=_tags(base, "preferred_cuisines"),
                disliked_ingredients=_tags(health, "disliked_ingredients"),
                conditions=_tags(health, "major_conditions"),
                macro_targets=_macro_targets(base),
                recently_shown=recently_shown,
            )
        except MalformedCandidateData as exc:
            raise ProfileStoreError(
                f"Profile {subject_id} is unreadable: {exc}"
            ) from exc

    def _first_row(
        self, table: str, column: str, value: str
    ) -> dict[str, object] | None:
        response = (
            self.client.table(table).select("*").eq(column, value).limit(1).execute()
        )
        if not response.data:
            return None
        return response.data[0]

    def _recent_views(self, subject_id: str) -> dict[str, datetime]:
        cutoff = self.clock() - self.history_window
        response = (
            self.client.table("recipe_history")
            .select("recipe_id, at")
            .eq("user_id", subject_id)
            .eq("event", "viewed")
            .gte("at", cutoff.isoformat())
            .order("at", desc=True)
            .limit(self.history_limit)
            .execute()
        )
        views: dict[str, datetime] = {}
        for row in response.data or []:
            recipe_id = str(row["recipe_id"])
            # Rows arrive newest first.
            views.setdefault(recipe_id, parse_timestamp(row.get("at")))
        return views


@dataclass
class SupabaseCustomerProfileRepository(ProfileStore):
    """Vendor customer profiles scoped by vendor id."""

    client: Client

    def get_profile(self, tenant_id: str, subject_id: str) -> Profile:
        """Return the health profile of an active customer the vendor owns.

        Raises SubjectNotFound for unknown or inactive customers.
        """
        try:
            customer = (
                self.client.table("customers")
                .select("id")
                .eq("id", subject_id)
                .eq("vendor_id", tenant_id)
                .eq("status", "active")
                .limit(1)
                .execute()
            )
            if not customer.data:
                raise SubjectNotFound(
                    f"No active customer {subject_id} for vendor {tenant_id}"
                )
            response = (
                self.client.table("customer_health_profiles")
                .select("*")
                .eq("customer_id", subject_id)
                .limit(1)
                .execute()
            )
        except SUPABASE_ERRORS as exc:
            raise ProfileStoreError(f"Customer lookup failed: {exc}") from exc
        if not response.data:
            return Profile(subject_id=subject_id)
        row = response.data[0]
        try:
            allergens = _tags(row, "allergies") + _tags(row, "avoid_allergens")
            return Profile(
                subject_id=subject_id,
                diets=_tags(row, "dietary_restrictions"),
                allergens=tuple(dict.fromkeys(allergens)),
                disliked_ingredients=_tags(row, "disliked_ingredients"),
                conditions=_tags(row, "conditions") + _tags(row, "diet_goals"),
                preferred_categories=_tags(row, "preferred_categories"),
                macro_targets=_macro_targets(row),
            )
        except MalformedCandidateData as exc:
            raise ProfileStoreError(
                f"Customer {subject_id} is unreadable: {exc}"
            ) from exc


def _tags(row: dict[str, object], column: str) -> tuple[str, ...]:
    return tuple(sorted(parse_tags(row, column)))


def _macro_targets(row: dict[str, object]) -> MacroTargets | None:
    targets = MacroTargets(
        calories=parse_float(row.get("target_calories")),
        protein_g=parse_float(row.get("target_protein_g")),
        carbs_g=parse_float(row.get("target_carbs_g")),
        fat_g=parse_float(row.get("target_fat_g")),
    )
    if targets == MacroTargets():
        return None
    return targets
