"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from nutrition_matcher.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/policies", dependencies=[Depends(require_admin)])
async def active_policies(request: Request) -> dict[str, object]:
    """Return the policy versions each engine is ranking with."""
    container: AppContainer = request.app.state.container
    return {
        "feed": container.feed_matching.policy.model_dump(mode="json"),
        "b2b": container.product_matching.policy.model_dump(mode="json"),
    }
