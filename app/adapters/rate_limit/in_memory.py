"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, since FastAPI executes sync
  dependencies in a threadpool.
- Check and consume are a single step; ``get_info`` is the only read that
  does not spend quota.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from app.adapters.rate_limit.base import (
    ANONYMOUS_IDENTIFIER,
    DEFAULT_CATEGORY,
    AbstractRateLimiter,
    CategoryUsage,
    RateLimitConfig,
    RateLimitInfo,
    RateLimitResult,
)
from app.adapters.rate_limit.categories import (
    DEFAULT_CATEGORY_CONFIGS,
    resolve_endpoint_category,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Entry:
    category: str
    requests: list[int] = field(default_factory=list)
    blocked_until: int | None = None

    def prune(self, window_start: int) -> None:
        # Filter rather than trim the head: a wall clock stepping backwards can
        # leave an older timestamp behind a newer one.
        self.requests = [ts for ts in self.requests if ts > window_start]

    def is_blocked(self, now: int) -> bool:
        return self.blocked_until is not None and now < self.blocked_until


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping a sliding window of timestamps per key.

    Each key is ``category:identifier``. A category maps to a
    RateLimitConfig; categories that were never registered use the
    "default" policy.

    Important:
        State lives in process memory and is lost on restart. Call
        ``cleanup`` periodically so one-shot identifiers do not accumulate.
    """

    def __init__(
        self,
        *,
        configs: Mapping[str, RateLimitConfig] | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            configs: Category policies applied on top of the built-in table.
            clock: Time source returning UNIX time in milliseconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._configs: dict[str, RateLimitConfig] = dict(DEFAULT_CATEGORY_CONFIGS)
        self._entries: dict[str, _Entry] = {}

        for category, config in (configs or {}).items():
            self.set_config(category, config)

    def set_config(self, category: str, config: RateLimitConfig) -> None:
        if not category:
            raise ValueError("category must be a non-empty string")

        with self._lock:
            self._configs[category] = config

        logger.info(
            "rate_limit.config_updated",
            extra={
                "category": category,
                "max_requests": config.max_requests,
                "window_ms": config.window_ms,
                "block_duration_ms": config.block_duration_ms,
            },
        )

    def get_configs(self) -> dict[str, RateLimitConfig]:
        with self._lock:
            return dict(self._configs)

    def _resolve_config(self, category: str) -> RateLimitConfig:
        return self._configs.get(category) or self._configs[DEFAULT_CATEGORY]

    @staticmethod
    def _build_key(identifier: str, category: str) -> str:
        return f"{category}:{identifier}"

    def check_limit(self, identifier: str, category: str = DEFAULT_CATEGORY) -> RateLimitResult:
        with self._lock:
            # Read the clock under the lock so stored timestamps stay ordered.
            now = self._clock()
            config = self._resolve_config(category)
            key = self._build_key(identifier, category)
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry(category=category)
                self._entries[key] = entry

            if entry.blocked_until is not None:
                if now < entry.blocked_until:
                    return RateLimitResult(
                        allowed=False,
                        limit=config.max_requests,
                        remaining=0,
                        reset_time=entry.blocked_until,
                        retry_after=entry.blocked_until - now,
                    )
                entry.blocked_until = None

            window_start = now - config.window_ms
            entry.prune(window_start)

            remaining = config.max_requests - len(entry.requests)
            reset_time = window_start + config.window_ms

            if remaining <= 0:
                if config.block_duration_ms:
                    entry.blocked_until = now + config.block_duration_ms
                    retry_after = config.block_duration_ms
                else:
                    retry_after = reset_time - now
                return RateLimitResult(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_time=reset_time,
                    retry_after=retry_after,
                )

            entry.requests.append(now)
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=remaining - 1,
                reset_time=reset_time,
            )

    def can_make_api_request(self, endpoint: str, user_id: str | None = None) -> bool:
        identifier = user_id or ANONYMOUS_IDENTIFIER
        category = resolve_endpoint_category(endpoint)

        result = self.check_limit(identifier, category)
        if not result.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "category": category,
                    "identifier": identifier,
                    "retry_after_ms": result.retry_after,
                },
            )
        return result.allowed

    def get_info(self, identifier: str, category: str = DEFAULT_CATEGORY) -> RateLimitInfo:
        now = self._clock()

        with self._lock:
            config = self._resolve_config(category)
            entry = self._entries.get(self._build_key(identifier, category))

            if entry is None:
                return RateLimitInfo(
                    remaining=config.max_requests,
                    reset_time=now + config.window_ms,
                    total=config.max_requests,
                )

            if entry.is_blocked(now):
                return RateLimitInfo(
                    remaining=0,
                    reset_time=entry.blocked_until,
                    total=config.max_requests,
                )

            window_start = now - config.window_ms
            live = sum(1 for ts in entry.requests if ts > window_start)
            return RateLimitInfo(
                remaining=max(0, config.max_requests - live),
                reset_time=window_start + config.window_ms,
                total=config.max_requests,
            )

    def clear_limit(self, identifier: str, category: str = DEFAULT_CATEGORY) -> None:
        with self._lock:
            self._entries.pop(self._build_key(identifier, category), None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        now = self._clock()
        evicted = 0

        with self._lock:
            for key, entry in list(self._entries.items()):
                config = self._resolve_config(entry.category)
                entry.prune(now - config.window_ms)

                if entry.blocked_until is not None and now >= entry.blocked_until:
                    entry.blocked_until = None

                if not entry.requests and entry.blocked_until is None:
                    del self._entries[key]
                    evicted += 1

            remaining_keys = len(self._entries)

        logger.debug(
            "rate_limit.cleanup",
            extra={"evicted": evicted, "remaining_keys": remaining_keys},
        )
        return evicted

    def get_usage_stats(self) -> dict[str, CategoryUsage]:
        now = self._clock()
        totals: dict[str, list[int]] = {}

        with self._lock:
            for entry in self._entries.values():
                bucket = totals.setdefault(entry.category, [0, 0, 0])
                bucket[0] += len(entry.requests)
                bucket[1] += 1
                if entry.is_blocked(now):
                    bucket[2] += 1

        return {
            category: CategoryUsage(
                total_requests=total_requests,
                active_users=active_users,
                blocked_users=blocked_users,
            )
            for category, (total_requests, active_users, blocked_users) in totals.items()
        }
