"""Tests for global exception handlers.

Validates that domain errors map to consistent JSON responses with proper
HTTP status codes, and that unexpected errors never leak details.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.core.errors import AppError, RateLimitAppError, ValidationAppError
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers
from app.core.rate_limit import with_rate_limit


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(code="invalid_rate_limit_config", message="bad quota")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_rate_limit_config"
        assert data["error"]["message"] == "bad quota"
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation-details")
        async def endpoint():
            raise ValidationAppError(
                code="invalid_rate_limit_config",
                message="max_requests must be >= 1",
                details={"category": "export", "field": "max_requests"},
            )

        data = client.get("/test-validation-details").json()

        assert data["error"]["details"] == {"category": "export", "field": "max_requests"}

    def test_rate_limit_error_returns_429(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-rate-limit")
        async def endpoint():
            raise RateLimitAppError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded",
                retry_after=4_500,
                reset_time=1_700_000_000_000,
            )

        response = client.get("/test-rate-limit")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"]["code"] == "rate_limit_exceeded"

    def test_with_rate_limit_rejection_surfaces_as_429(
        self, client: TestClient, app_with_handlers: FastAPI, clock
    ):
        limiter = InMemorySlidingWindowRateLimiter(
            configs={"export": RateLimitConfig(max_requests=1, window_ms=60_000, block_duration_ms=90_000)},
            clock=clock,
        )

        @app_with_handlers.get("/export")
        async def export_calendar():
            async def build() -> dict:
                return {"events": 12}

            return await with_rate_limit("doc-1", "export", build, limiter=limiter)

        assert client.get("/export").json() == {"events": 12}

        response = client.get("/export")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "90"
        details = response.json()["error"]["details"]
        assert details["retry_after_ms"] == 90_000
        assert details["reset_time"] == clock.current

    def test_plain_app_error_defaults_to_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-base")
        async def endpoint():
            raise AppError(code="generic", message="generic failure")

        assert client.get("/test-base").status_code == 400


class TestGeneralExceptionHandler:
    """Fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("limiter store corrupted")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "corrupted" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        body = bytes(response.body).decode()
        data = json.loads(body)
        assert response.status_code == 500
        assert "request_id" in data["error"]
        assert "Traceback" not in body
        assert "ValueError" not in body
        assert "Test error" not in body


def test_setup_exception_handlers_is_idempotent():
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers
