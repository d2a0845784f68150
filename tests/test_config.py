"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from app.core.config import AppSettings, LogSettings


def test_rate_limit_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_RATE_LIMIT_CATEGORIES", raising=False)

    app_settings = AppSettings()

    assert app_settings.rate_limit_enabled is True
    assert app_settings.rate_limit_cleanup_interval_seconds == 300
    assert app_settings.rate_limit_identifier_header == "X-User-ID"
    assert app_settings.rate_limit_categories == {}


def test_category_overrides_parsed_from_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(
        "APP_RATE_LIMIT_CATEGORIES",
        '{"export": {"max_requests": 2, "window_ms": 60000},'
        ' "sync": {"max_requests": 5, "window_ms": 1000, "block_duration_ms": 30000}}',
    )

    categories = AppSettings().rate_limit_categories

    assert categories["export"].max_requests == 2
    assert categories["export"].block_duration_ms is None
    assert categories["sync"].block_duration_ms == 30000


def test_invalid_category_override_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(
        "APP_RATE_LIMIT_CATEGORIES",
        '{"export": {"max_requests": 0, "window_ms": 60000}}',
    )

    with pytest.raises(ValidationError):
        AppSettings()


def test_cleanup_interval_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_RATE_LIMIT_CLEANUP_INTERVAL_SECONDS", "0")

    with pytest.raises(ValidationError):
        AppSettings()


def test_log_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "plain")
    monkeypatch.setenv("LOG_REQUEST_ID_HEADER", "X-Correlation-ID")

    log_settings = LogSettings()

    assert log_settings.format == "plain"
    assert log_settings.request_id_header == "X-Correlation-ID"
