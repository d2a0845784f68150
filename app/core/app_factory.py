"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build fresh instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import health_router, rate_limit_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import (
    RateLimitCleanupTask,
    get_http_rate_limiter,
    get_rate_limiter,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the background cleanup of the process-wide rate limiters."""

    cleanup_task = RateLimitCleanupTask(
        get_rate_limiter,
        get_http_rate_limiter,
        interval_seconds=settings.app.rate_limit_cleanup_interval_seconds,
    )
    app.state.rate_limit_cleanup = cleanup_task
    await cleanup_task.start()
    logger.info("app.startup", extra={"app_env": settings.app_env})
    try:
        yield
    finally:
        await cleanup_task.stop()
        logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Scheduling Rate Limiter API",
        description=(
            "Sliding-window rate limiting for the scheduling platform: "
            "per-category quotas with optional temporary blocking, "
            "non-consuming quota inspection and usage statistics."
        ),
        version="0.1.0",
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
