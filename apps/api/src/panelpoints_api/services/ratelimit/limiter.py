"""Fixed-window request budgets kept in Redis counters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from redis.asyncio import Redis

from panelpoints_api.core.settings import settings


class RateLimitBucket(str, Enum):
    SURVEY_COMPLETION = "survey_completion"
    REDEMPTION = "redemption"
    ADMIN = "admin"


@dataclass
class RateLimitDecision:
    """Outcome of charging one request against a budget."""

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None


class RateLimiter:
    """Counts requests per caller and bucket; the first hit in a window sets its expiry."""

    def __init__(self, redis_client: Redis | None = None, *, key_prefix: str | None = None) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._prefix = key_prefix or settings.rate_limit_key_prefix

    def _key(self, bucket: RateLimitBucket, identifier: str) -> str:
        return f"{self._prefix}:{bucket.value}:{identifier}"

    @staticmethod
    def budget(bucket: RateLimitBucket) -> tuple[int, int]:
        """Configured (requests, window_seconds) for a bucket."""

        if bucket is RateLimitBucket.SURVEY_COMPLETION:
            return (
                settings.rate_limit_survey_completion_requests,
                settings.rate_limit_survey_completion_window_seconds,
            )
        if bucket is RateLimitBucket.REDEMPTION:
            return settings.rate_limit_redemption_requests, settings.rate_limit_redemption_window_seconds
        return settings.rate_limit_admin_requests, settings.rate_limit_admin_window_seconds

    async def hit(
        self,
        bucket: RateLimitBucket,
        identifier: str,
        *,
        limit: int | None = None,
        window_seconds: int | None = None,
    ) -> RateLimitDecision:
        default_limit, default_window = self.budget(bucket)
        if limit is None:
            limit = default_limit
        if window_seconds is None:
            window_seconds = default_window
        if limit < 0 or window_seconds <= 0:
            raise ValueError("Rate limit budget must be non-negative with a positive window")

        key = self._key(bucket, identifier)
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, window_seconds)

        if count > limit:
            ttl = await self._redis.ttl(key)
            if ttl is None or ttl < 0:
                # Counter lost its expiry; restart the window.
                await self._redis.expire(key, window_seconds)
                ttl = window_seconds
            return RateLimitDecision(allowed=False, limit=limit, remaining=0, retry_after_seconds=max(int(ttl), 1))

        return RateLimitDecision(allowed=True, limit=limit, remaining=max(limit - count, 0), retry_after_seconds=None)

    async def reset(self, bucket: RateLimitBucket, identifier: str) -> None:
        await self._redis.delete(self._key(bucket, identifier))


_LIMITER: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _LIMITER
    if _LIMITER is None:
        _LIMITER = RateLimiter()
    return _LIMITER
