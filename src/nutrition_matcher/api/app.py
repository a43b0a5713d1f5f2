"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from nutrition_matcher.api.admin import router as admin_router
from nutrition_matcher.api.matching import build_matching_router
from nutrition_matcher.app_logging import configure_logging
from nutrition_matcher.containers import AppContainer
from nutrition_matcher.domain.errors import (
    InvalidInput,
    ProfileStoreError,
    SubjectNotFound,
)


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Serving policies %s and %s",
            container.feed_matching.policy.version,
            container.product_matching.policy.version,
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)
    app.include_router(build_matching_router("/feed", "feed_matching"))
    app.include_router(build_matching_router("/b2b", "product_matching"))

    @app.exception_handler(InvalidInput)
    async def invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(SubjectNotFound)
    async def subject_not_found(
        request: Request, exc: SubjectNotFound
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ProfileStoreError)
    async def profile_store_error(
        request: Request, exc: ProfileStoreError
    ) -> JSONResponse:
        logger.warning("Profile store failed for %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Profile store unavailable"},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
