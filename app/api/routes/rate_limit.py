from __future__ import annotations

import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response, status

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.core.errors import ValidationAppError
from app.core.rate_limit import enforce_rate_limit, get_rate_limiter
from app.schemas.rate_limit import (
    CategoryUsageSchema,
    RateLimitCheckResponse,
    RateLimitConfigSchema,
    RateLimitInfoResponse,
    UsageStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rate-limits", tags=["Rate Limits"])


@router.get(
    "/configs",
    response_model=Dict[str, RateLimitConfigSchema],
    dependencies=[Depends(enforce_rate_limit)],
)
def list_configs(
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> Dict[str, RateLimitConfigSchema]:
    """List every registered rate limit category and its quota."""

    return {
        category: RateLimitConfigSchema.from_config(config)
        for category, config in limiter.get_configs().items()
    }


@router.put("/configs/{category}", response_model=RateLimitConfigSchema)
def put_config(
    category: str,
    payload: RateLimitConfigSchema,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> RateLimitConfigSchema:
    """Add a category or overwrite an existing one.

    Existing history for the category is kept and evaluated against the new
    quota on the next check.

    Raises:
        ValidationAppError: If the quota values are rejected by the limiter.
    """

    try:
        limiter.set_config(category, payload.to_config())
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_rate_limit_config",
            message=str(exc),
            details={"category": category},
        ) from exc
    return payload


@router.get(
    "/stats",
    response_model=UsageStatsResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def usage_stats(
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> UsageStatsResponse:
    """Aggregate stored usage per category (requests, keys, blocked keys)."""

    return UsageStatsResponse(
        categories={
            category: CategoryUsageSchema.from_usage(usage)
            for category, usage in limiter.get_usage_stats().items()
        }
    )


@router.get(
    "/{category}/{identifier}",
    response_model=RateLimitInfoResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def get_limit_info(
    category: str,
    identifier: str,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> RateLimitInfoResponse:
    """Report remaining quota for a key without consuming any."""

    info = limiter.get_info(identifier, category)
    return RateLimitInfoResponse.from_info(category, identifier, info)


@router.post("/{category}/{identifier}/check", response_model=RateLimitCheckResponse)
def check_limit(
    category: str,
    identifier: str,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> RateLimitCheckResponse:
    """Consume one unit of quota for a key.

    A rejection is a normal outcome reported in the body (``allowed=false``),
    not an HTTP error.
    """

    result = limiter.check_limit(identifier, category)
    if not result.allowed:
        logger.info(
            "rate_limit.check_rejected",
            extra={"category": category, "retry_after_ms": result.retry_after},
        )
    return RateLimitCheckResponse.from_result(result)


@router.delete("/{category}/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
def clear_limit(
    category: str,
    identifier: str,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> Response:
    """Forget history and any block for a single key."""

    limiter.clear_limit(identifier, category)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_all(
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> Response:
    """Forget every key. Category quotas are preserved."""

    limiter.clear_all()
    logger.info("rate_limit.cleared_all")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
