"""Built-in rate limit categories and endpoint classification."""

from __future__ import annotations

from app.adapters.rate_limit.base import RateLimitConfig

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

DEFAULT_CATEGORY_CONFIGS: dict[str, RateLimitConfig] = {
    "default": RateLimitConfig(max_requests=100, window_ms=HOUR_MS),
    "auth": RateLimitConfig(
        max_requests=10,
        window_ms=MINUTE_MS,
        block_duration_ms=5 * MINUTE_MS,
    ),
    "export": RateLimitConfig(max_requests=5, window_ms=HOUR_MS),
    "import": RateLimitConfig(max_requests=10, window_ms=HOUR_MS),
    "dashboard": RateLimitConfig(max_requests=60, window_ms=HOUR_MS),
    "api": RateLimitConfig(max_requests=100, window_ms=HOUR_MS),
}

# First match wins, so more specific fragments must come first.
_ENDPOINT_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("/auth/",), "auth"),
    (("/ics/export",), "export"),
    (("/ics/import", "/ics/"), "import"),
    (("/dashboard",), "dashboard"),
)


def resolve_endpoint_category(endpoint: str) -> str:
    """Map a request URL or path to its rate limit category.

    Examples:
        >>> resolve_endpoint_category("/auth/login")
        'auth'
        >>> resolve_endpoint_category("/ics/export/calendar.ics")
        'export'
        >>> resolve_endpoint_category("/events")
        'api'
    """

    for fragments, category in _ENDPOINT_RULES:
        if any(fragment in endpoint for fragment in fragments):
            return category
    return "api"
