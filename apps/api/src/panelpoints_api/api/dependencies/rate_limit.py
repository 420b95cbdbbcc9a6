"""Per-caller request budgets applied as route dependencies."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Request, status
from loguru import logger
from redis.exceptions import RedisError

from panelpoints_api.core.settings import settings
from panelpoints_api.observability.points import get_points_store
from panelpoints_api.services.ratelimit import RateLimitBucket, RateLimiter, get_rate_limiter


def rate_limit(bucket: RateLimitBucket) -> Callable[..., Awaitable[None]]:
    """Dependency factory charging one request to ``bucket`` for the calling identity."""

    async def _dependency(
        request: Request,
        session_user: str | None = Header(None, alias="X-Session-User"),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        if not settings.rate_limit_enabled:
            return

        identifier = session_user or (request.client.host if request.client else "anonymous")
        try:
            decision = await limiter.hit(bucket, identifier)
        except RedisError as exc:
            logger.warning("Rate limiter unavailable; admitting request", bucket=bucket.value, error=str(exc))
            return

        if not decision.allowed:
            get_points_store().record_rate_limited(bucket.value)
            logger.info("Rate limit exceeded", bucket=bucket.value, identifier=identifier)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "rate_limited",
                    "message": "Too many requests",
                    "retryAfter": decision.retry_after_seconds,
                },
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

    return _dependency
