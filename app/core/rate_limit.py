"""Rate limiting wiring for the application.

This module connects the rate limiting adapter to the rest of the app:
- a process-wide limiter instance built from settings
- a separate limiter guarding the HTTP surface itself
- ``with_rate_limit`` for wrapping async work in a quota check
- a FastAPI dependency enforcing limits on HTTP routes
- the background task that periodically evicts idle keys

HTTP rate limiting strategy:
- Guard traffic is counted on its own limiter, so reading a key over HTTP
  never spends that key's quota.
- Category comes from the matched route template (see
  ``resolve_endpoint_category``), so path parameters cannot pick the bucket.
- Caller is identified by the configured identifier header, falling back to
  "anonymous" when it is missing.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
from typing import Awaitable, Callable, TypeVar

from fastapi import Depends, HTTPException, Request, status

from app.adapters.rate_limit.base import (
    ANONYMOUS_IDENTIFIER,
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
)
from app.adapters.rate_limit.categories import resolve_endpoint_category
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.core.config import CategoryLimitSettings, settings
from app.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_limiter: AbstractRateLimiter | None = None
_limiter_config: dict[str, CategoryLimitSettings] | None = None
_http_limiter: AbstractRateLimiter | None = None
_http_limiter_config: dict[str, CategoryLimitSettings] | None = None


def _configs_from_settings(
    categories: dict[str, CategoryLimitSettings],
) -> dict[str, RateLimitConfig]:
    return {
        name: RateLimitConfig(
            max_requests=category.max_requests,
            window_ms=category.window_ms,
            block_duration_ms=category.block_duration_ms,
        )
        for name, category in categories.items()
    }


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The instance is cached in-module to preserve state across requests.
    If the category overrides change (primarily in tests), the limiter is
    rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    categories = settings.app.rate_limit_categories

    if _limiter is None or _limiter_config != categories:
        _limiter = InMemorySlidingWindowRateLimiter(
            configs=_configs_from_settings(categories),
        )
        _limiter_config = dict(categories)

    return _limiter


def get_http_rate_limiter() -> AbstractRateLimiter:
    """Return the limiter that throttles callers of the HTTP API.

    Kept apart from ``get_rate_limiter`` so that guarding a route never
    writes into the buckets the routes themselves report on. Uses the same
    category policies and is rebuilt under the same conditions.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _http_limiter, _http_limiter_config

    categories = settings.app.rate_limit_categories

    if _http_limiter is None or _http_limiter_config != categories:
        _http_limiter = InMemorySlidingWindowRateLimiter(
            configs=_configs_from_settings(categories),
        )
        _http_limiter_config = dict(categories)

    return _http_limiter


def retry_after_seconds(retry_after_ms: int | None) -> int:
    """Convert a millisecond wait into whole seconds for ``Retry-After``."""

    if not retry_after_ms:
        return 0
    return max(0, math.ceil(retry_after_ms / 1000))


async def with_rate_limit(
    identifier: str,
    category: str,
    operation: Callable[[], Awaitable[T]],
    *,
    limiter: AbstractRateLimiter | None = None,
) -> T:
    """Run ``operation`` only if ``identifier`` still has quota in ``category``.

    The quota is consumed before the operation starts; a failing operation
    does not give it back.

    Args:
        identifier: Caller key (e.g., user id).
        category: Rate limit category name.
        operation: Zero-argument callable returning an awaitable.
        limiter: Limiter to use; defaults to the process-wide instance.

    Returns:
        Whatever the operation returns.

    Raises:
        RateLimitAppError: When the quota is exhausted or the key is blocked.
    """

    active = limiter or get_rate_limiter()
    result = active.check_limit(identifier, category)

    if not result.allowed:
        raise RateLimitAppError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded",
            details={
                "category": category,
                "retry_after_ms": result.retry_after or 0,
                "reset_time": result.reset_time,
            },
            retry_after=result.retry_after,
            reset_time=result.reset_time,
        )

    return await operation()


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the standard throttling headers for a rejected request."""

    return {
        "Retry-After": str(retry_after_seconds(result.retry_after)),
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time // 1000),
    }


def _hash_identifier(identifier: str) -> str:
    """Hash the caller identifier for logging without exposing user ids."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


def _route_template(request: Request) -> str:
    """Return the matched route pattern, e.g. ``/v1/rate-limits/{category}``."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def enforce_rate_limit(
    request: Request,
    limiter: AbstractRateLimiter = Depends(get_http_rate_limiter),
) -> None:
    """FastAPI dependency enforcing rate limits.

    When enabled, consumes 1 unit from the caller's budget in the category
    derived from the matched route template. If the caller is over quota,
    raises HTTP 429. The budget lives on the HTTP guard limiter, never on
    the limiter the routes manage.

    Args:
        request: FastAPI request.
        limiter: Limiter injected by FastAPI (overridable in tests).

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return

    identifier = (
        request.headers.get(settings.app.rate_limit_identifier_header)
        or ANONYMOUS_IDENTIFIER
    )
    category = resolve_endpoint_category(_route_template(request))

    result = limiter.check_limit(identifier, category)
    log_fields = {
        "category": category,
        "identifier_hash": _hash_identifier(identifier),
        "limit": result.limit,
        "remaining": result.remaining,
    }

    if result.allowed:
        logger.info("rate_limit.allowed", extra=log_fields)
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={**log_fields, "retry_after_ms": result.retry_after},
    )

    headers = (
        build_rate_limit_headers(result) if settings.app.rate_limit_include_headers else None
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers,
    )


class RateLimitCleanupTask:
    """Background task calling ``cleanup()`` on a fixed interval.

    Limiters are looked up through their getters on every run, so an
    instance rebuilt after a settings change is the one that gets cleaned.
    Started and stopped by the application lifespan so no work leaks past
    shutdown (or between tests).
    """

    def __init__(
        self,
        *limiter_getters: Callable[[], AbstractRateLimiter],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if not limiter_getters:
            raise ValueError("at least one limiter getter is required")

        self._limiter_getters = limiter_getters
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-cleanup")
        logger.info("rate_limit.cleanup_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("rate_limit.cleanup_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.run_once()

    def run_once(self) -> int:
        """Clean every limiter once; returns the total number of evicted keys."""

        evicted = 0
        for get_limiter in self._limiter_getters:
            try:
                evicted += get_limiter().cleanup()
            except Exception:
                logger.exception("rate_limit.cleanup_failed")
        return evicted
