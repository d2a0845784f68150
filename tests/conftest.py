"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment before any module reads settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from app.core import rate_limit as rate_limit_module  # noqa: E402


class FakeClock:
    """Deterministic millisecond clock for limiter tests."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.current = start

    def __call__(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms

    def set(self, ms: int) -> None:
        self.current = ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def fresh_process_limiter(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test its own process-wide limiters."""
    monkeypatch.setattr(rate_limit_module, "_limiter", None)
    monkeypatch.setattr(rate_limit_module, "_limiter_config", None)
    monkeypatch.setattr(rate_limit_module, "_http_limiter", None)
    monkeypatch.setattr(rate_limit_module, "_http_limiter_config", None)
