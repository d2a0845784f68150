"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Static type checkers treat fields as required constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class CategoryLimitSettings(BaseModel):
    """Quota override for a single rate limit category."""

    max_requests: int = Field(..., ge=1, description="Requests allowed per window")
    window_ms: int = Field(..., ge=1, description="Sliding window length in milliseconds")
    block_duration_ms: int | None = Field(
        None,
        ge=1,
        description="Hard block applied after the limit is exceeded (optional)",
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enforce rate limits on HTTP routes guarded by the dependency",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_identifier_header: str = Field(
        "X-User-ID",
        description="Header identifying the caller; requests without it count as 'anonymous'",
    )
    rate_limit_cleanup_interval_seconds: int = Field(
        300,
        description="Interval between background cleanups of idle rate limit keys",
        ge=1,
    )
    rate_limit_categories: dict[str, CategoryLimitSettings] = Field(
        default_factory=dict,
        description=(
            "JSON mapping of category name to quota, overriding or extending "
            'the built-in table (e.g. {"export": {"max_requests": 2, "window_ms": 60000}})'
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file' (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
