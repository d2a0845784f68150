"""Tests for endpoint categorisation and ``can_make_api_request``."""

import logging

import pytest

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.rate_limit.categories import resolve_endpoint_category
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter


@pytest.mark.parametrize(
    ("endpoint", "expected"),
    [
        ("/auth/login", "auth"),
        ("https://api.example.com/auth/token?refresh=1", "auth"),
        ("/ics/export/x", "export"),
        ("/ics/export", "export"),
        ("/ics/import", "import"),
        ("/ics/feeds/abc", "import"),
        ("/dashboard", "dashboard"),
        ("/v1/dashboard/summary", "dashboard"),
        ("/other", "api"),
        ("/events/123", "api"),
        ("", "api"),
    ],
)
def test_resolve_endpoint_category(endpoint: str, expected: str) -> None:
    assert resolve_endpoint_category(endpoint) == expected


def test_first_matching_rule_wins() -> None:
    assert resolve_endpoint_category("/auth/ics/export") == "auth"
    assert resolve_endpoint_category("/ics/export/dashboard") == "export"


def test_can_make_api_request_uses_auth_category(clock) -> None:
    limiter = InMemorySlidingWindowRateLimiter(clock=clock)

    for _ in range(10):
        assert limiter.can_make_api_request("/auth/login", "u1") is True
    assert limiter.can_make_api_request("/auth/login", "u1") is False

    assert limiter.get_info("u1", "auth").remaining == 0
    assert limiter.get_info("u1", "api").remaining == 100


def test_can_make_api_request_uses_export_category(clock) -> None:
    limiter = InMemorySlidingWindowRateLimiter(clock=clock)

    assert limiter.can_make_api_request("/ics/export/x", "u1") is True

    assert limiter.get_info("u1", "export").remaining == 4


def test_can_make_api_request_falls_back_to_api_category(clock) -> None:
    limiter = InMemorySlidingWindowRateLimiter(
        configs={"api": RateLimitConfig(max_requests=1, window_ms=1000)},
        clock=clock,
    )

    assert limiter.can_make_api_request("/other", "u1") is True
    assert limiter.can_make_api_request("/other", "u1") is False
    assert limiter.get_info("u1", "default").remaining == 100


@pytest.mark.parametrize("user_id", [None, ""])
def test_missing_user_counts_as_anonymous(clock, user_id) -> None:
    limiter = InMemorySlidingWindowRateLimiter(clock=clock)

    limiter.can_make_api_request("/events", user_id)

    assert limiter.get_info("anonymous", "api").remaining == 99


def test_rejection_logs_warning(clock, caplog: pytest.LogCaptureFixture) -> None:
    limiter = InMemorySlidingWindowRateLimiter(clock=clock)
    for _ in range(10):
        limiter.can_make_api_request("/auth/login", "doc-7")

    with caplog.at_level(logging.WARNING, logger="app.adapters.rate_limit.in_memory"):
        assert limiter.can_make_api_request("/auth/login", "doc-7") is False

    records = [r for r in caplog.records if r.getMessage() == "rate_limit.exceeded"]
    assert len(records) == 1
    assert records[0].category == "auth"
    assert records[0].identifier == "doc-7"
    assert records[0].retry_after_ms == 5 * 60 * 1000
