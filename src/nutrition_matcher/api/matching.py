"""Ranked-results endpoints, mounted once per matching engine."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from nutrition_matcher.api.admin import require_admin
from nutrition_matcher.domain.errors import MatchError
from nutrition_matcher.services.matching import MatchingService

if TYPE_CHECKING:
    from nutrition_matcher.containers import AppContainer


class BatchMatchRequest(BaseModel):
    """Body of a batch ranking request."""

    subject_ids: list[str] = Field(min_length=1)
    quota: int = 20


def build_matching_router(prefix: str, service_name: str) -> APIRouter:
    """Create routes bound to one MatchingService on the container."""
    router = APIRouter(prefix=prefix, tags=[prefix.strip("/")])

    def _service(request: Request) -> MatchingService:
        container: AppContainer = request.app.state.container
        return getattr(container, service_name)

    @router.get("/tenants/{tenant_id}/subjects/{subject_id}/matches")
    async def ranked_results(
        tenant_id: str,
        subject_id: str,
        quota: int = 20,
        offset: int = 0,
        service: MatchingService = Depends(_service),
    ) -> dict[str, object]:
        """Return one page of ranked results for a subject."""
        page = await service.get_ranked_results(tenant_id, subject_id, quota, offset)
        return {
            "results": [result.to_dict() for result in page.results],
            "cache_hit": page.cache_hit,
            "tiers": [tier.value for tier in page.tiers],
            "policy_version": service.policy.version,
        }

    @router.post("/tenants/{tenant_id}/matches/batch")
    async def batch_ranked_results(
        tenant_id: str,
        body: BatchMatchRequest,
        service: MatchingService = Depends(_service),
    ) -> dict[str, object]:
        """Rank several subjects; failures are reported per subject."""
        outcome = await service.batch_get_ranked_results(
            tenant_id, body.subject_ids, body.quota
        )
        results: dict[str, object] = {}
        errors: dict[str, object] = {}
        for subject_id, value in outcome.items():
            if isinstance(value, MatchError):
                errors[subject_id] = {
                    "error_type": value.error_type,
                    "message": value.message,
                }
            else:
                results[subject_id] = [result.to_dict() for result in value]
        return {"results": results, "errors": errors}

    @router.delete(
        "/tenants/{tenant_id}/subjects/{subject_id}/cache",
        dependencies=[Depends(require_admin)],
    )
    async def invalidate_cache(
        tenant_id: str,
        subject_id: str,
        service: MatchingService = Depends(_service),
    ) -> dict[str, int]:
        """Drop cached pages after a profile or catalog change."""
        removed = await service.invalidate(tenant_id, subject_id)
        return {"removed": removed}

    return router
