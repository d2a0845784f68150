"""Pydantic schemas for rate limit introspection and administration."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field

from app.adapters.rate_limit.base import (
    CategoryUsage,
    RateLimitConfig,
    RateLimitInfo,
    RateLimitResult,
)


class RateLimitConfigSchema(BaseModel):
    """Quota policy for a category."""

    max_requests: int = Field(..., ge=1, description="Maximum requests allowed per window.")
    window_ms: int = Field(..., ge=1, description="Sliding window length in milliseconds.")
    block_duration_ms: int | None = Field(
        default=None,
        ge=1,
        description="Hard block applied once the limit is exceeded (omit for none).",
    )

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimitConfigSchema":
        return cls(
            max_requests=config.max_requests,
            window_ms=config.window_ms,
            block_duration_ms=config.block_duration_ms,
        )

    def to_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests=self.max_requests,
            window_ms=self.window_ms,
            block_duration_ms=self.block_duration_ms,
        )


class RateLimitCheckResponse(BaseModel):
    """Outcome of a consuming quota check."""

    allowed: bool = Field(..., description="Whether the request was allowed (and counted).")
    limit: int = Field(..., description="Maximum requests per window for the category.")
    remaining: int = Field(..., description="Requests left in the current window.")
    reset_time: int = Field(..., description="Epoch milliseconds when quota is expected back.")
    retry_after: int | None = Field(
        default=None,
        description="Milliseconds to wait before retrying (only when rejected).",
    )

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateLimitCheckResponse":
        return cls(
            allowed=result.allowed,
            limit=result.limit,
            remaining=result.remaining,
            reset_time=result.reset_time,
            retry_after=result.retry_after,
        )


class RateLimitInfoResponse(BaseModel):
    """Non-consuming quota snapshot."""

    category: str
    identifier: str
    remaining: int
    reset_time: int = Field(..., description="Epoch milliseconds.")
    total: int

    @classmethod
    def from_info(
        cls, category: str, identifier: str, info: RateLimitInfo
    ) -> "RateLimitInfoResponse":
        return cls(
            category=category,
            identifier=identifier,
            remaining=info.remaining,
            reset_time=info.reset_time,
            total=info.total,
        )


class CategoryUsageSchema(BaseModel):
    total_requests: int
    active_users: int
    blocked_users: int

    @classmethod
    def from_usage(cls, usage: CategoryUsage) -> "CategoryUsageSchema":
        return cls(
            total_requests=usage.total_requests,
            active_users=usage.active_users,
            blocked_users=usage.blocked_users,
        )


class UsageStatsResponse(BaseModel):
    """Usage aggregated per category."""

    categories: Dict[str, CategoryUsageSchema] = Field(default_factory=dict)
