"""Rate limiter interfaces.

Routes and services depend on this abstraction (not the concrete
implementation) so the storage backend can be swapped later with minimal
changes. All timestamps and durations are expressed in milliseconds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_CATEGORY = "default"
ANONYMOUS_IDENTIFIER = "anonymous"


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota policy for a single category.

    Attributes:
        max_requests: Maximum number of requests allowed per window.
        window_ms: Sliding window length in milliseconds.
        block_duration_ms: Optional hard block applied once the limit is
            exceeded. When None, callers only wait for the window to slide.
    """

    max_requests: int
    window_ms: int
    block_duration_ms: int | None = None

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.block_duration_ms is not None and self.block_duration_ms < 1:
            raise ValueError("block_duration_ms must be >= 1 when set")


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a check/consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window for the resolved category.
        remaining: Remaining requests in the current window (0 when rejected).
        reset_time: Epoch milliseconds when the caller may expect quota back.
        retry_after: Suggested wait in milliseconds when rejected.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: int | None = None


@dataclass(frozen=True)
class RateLimitInfo:
    """Read-only quota snapshot for a key."""

    remaining: int
    reset_time: int
    total: int


@dataclass(frozen=True)
class CategoryUsage:
    """Aggregated usage for one category across all stored identifiers."""

    total_requests: int
    active_users: int
    blocked_users: int


class AbstractRateLimiter(ABC):
    """Interface for category-aware rate limiters."""

    @abstractmethod
    def set_config(self, category: str, config: RateLimitConfig) -> None:
        """Add or overwrite the policy for a category."""
        raise NotImplementedError

    @abstractmethod
    def get_configs(self) -> dict[str, RateLimitConfig]:
        """Return a snapshot of the registered category policies."""
        raise NotImplementedError

    @abstractmethod
    def check_limit(self, identifier: str, category: str = DEFAULT_CATEGORY) -> RateLimitResult:
        """Check and consume one unit of quota for ``category:identifier``.

        Args:
            identifier: Caller key (e.g., user id or "anonymous").
            category: Policy name; unknown names fall back to "default".

        Returns:
            RateLimitResult describing whether the request was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def get_info(self, identifier: str, category: str = DEFAULT_CATEGORY) -> RateLimitInfo:
        """Describe the current quota without consuming it."""
        raise NotImplementedError

    @abstractmethod
    def clear_limit(self, identifier: str, category: str = DEFAULT_CATEGORY) -> None:
        """Forget history and any block for a single key."""
        raise NotImplementedError

    @abstractmethod
    def clear_all(self) -> None:
        """Forget every key. Category policies are preserved."""
        raise NotImplementedError

    @abstractmethod
    def cleanup(self) -> int:
        """Prune expired state and evict idle keys.

        Returns:
            Number of evicted keys.
        """
        raise NotImplementedError

    @abstractmethod
    def get_usage_stats(self) -> dict[str, CategoryUsage]:
        """Aggregate stored usage per category."""
        raise NotImplementedError

    @abstractmethod
    def can_make_api_request(self, endpoint: str, user_id: str | None = None) -> bool:
        """Check quota for an endpoint URL, categorised by path.

        Args:
            endpoint: Request URL or path.
            user_id: Caller id; "anonymous" when missing.

        Returns:
            True when the request may proceed.
        """
        raise NotImplementedError
