"""PostgREST filter helpers shared by the Supabase candidate sources.

Every constraint value travels as a bound filter argument; nothing is
interpolated into query text.
"""

import httpx
from postgrest.exceptions import APIError

from nutrition_matcher.domain.constraints import DietMatch, HardConstraints

SUPABASE_ERRORS = (APIError, httpx.HTTPError)


def apply_hard_filters(  # type: ignore[no-untyped-def]
    query,
    hard: HardConstraints,
    *,
    allergen_column: str,
    diet_column: str,
    exclude_ids: frozenset[str],
):
    """Push hard constraints down to the store where it can evaluate them."""
    if hard.excluded_allergens:
        query = query.not_.overlaps(allergen_column, sorted(hard.excluded_allergens))
    if hard.excluded_diet_tags:
        query = query.not_.overlaps(diet_column, sorted(hard.excluded_diet_tags))
    if hard.required_diets:
        required = sorted(hard.required_diets)
        if hard.diet_match is DietMatch.ALL:
            query = query.contains(diet_column, required)
        else:
            query = query.overlaps(diet_column, required)
    if exclude_ids:
        query = query.not_.in_("id", sorted(exclude_ids))
    return query
