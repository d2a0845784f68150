from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service
    health. Also reports whether the background rate limit cleanup is alive.

    Returns:
        dict: ``status`` ("ok") and ``rate_limit_cleanup`` ("running" or
            "stopped").
    """

    cleanup = getattr(request.app.state, "rate_limit_cleanup", None)
    running = cleanup is not None and cleanup.running
    return {"status": "ok", "rate_limit_cleanup": "running" if running else "stopped"}
