"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what applies to it.
    """

    code: str
    message: str
    hint: str
    category: str
    field: str
    retry_after_ms: int
    reset_time: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when a rate-limited operation is rejected.

    Attributes:
        retry_after: Milliseconds the caller should wait before retrying.
        reset_time: Epoch milliseconds when quota is expected back.
    """

    retry_after: int | None = None
    reset_time: int | None = None
