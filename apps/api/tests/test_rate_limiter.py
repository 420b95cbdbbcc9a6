from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from panelpoints_api.core.settings import settings
from panelpoints_api.observability.points import get_points_store
from panelpoints_api.services.ratelimit import RateLimitBucket, RateLimiter, get_rate_limiter


class FakeRedis:
    """Just enough of the Redis counter API for fixed-window budgets."""

    def __init__(self) -> None:
        self.counters: dict[str, int] = {}
        self.expiries: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.expiries[key] = seconds
        return True

    async def ttl(self, key: str) -> int:
        return self.expiries.get(key, -1)

    async def delete(self, key: str) -> int:
        self.expiries.pop(key, None)
        return 1 if self.counters.pop(key, None) is not None else 0


class BrokenRedis(FakeRedis):
    async def incr(self, key: str) -> int:
        raise RedisConnectionError("redis unavailable")


@pytest.mark.asyncio
async def test_limiter_counts_within_window() -> None:
    redis = FakeRedis()
    limiter = RateLimiter(redis, key_prefix="test")

    decisions = [await limiter.hit(RateLimitBucket.REDEMPTION, "caller", limit=2, window_seconds=30) for _ in range(3)]

    assert [decision.allowed for decision in decisions] == [True, True, False]
    assert [decision.remaining for decision in decisions] == [1, 0, 0]
    assert decisions[-1].retry_after_seconds == 30
    assert redis.expiries == {"test:redemption:caller": 30}

    await limiter.reset(RateLimitBucket.REDEMPTION, "caller")
    assert (await limiter.hit(RateLimitBucket.REDEMPTION, "caller", limit=2, window_seconds=30)).allowed


@pytest.mark.asyncio
async def test_limiter_keys_budgets_per_bucket_and_caller() -> None:
    limiter = RateLimiter(FakeRedis(), key_prefix="test")

    for _ in range(settings.rate_limit_redemption_requests):
        assert (await limiter.hit(RateLimitBucket.REDEMPTION, "alice")).allowed

    assert not (await limiter.hit(RateLimitBucket.REDEMPTION, "alice")).allowed
    assert (await limiter.hit(RateLimitBucket.REDEMPTION, "bob")).allowed
    assert (await limiter.hit(RateLimitBucket.SURVEY_COMPLETION, "alice")).allowed


@pytest.mark.asyncio
async def test_explicit_zero_budget_is_not_replaced_by_default() -> None:
    limiter = RateLimiter(FakeRedis(), key_prefix="test")

    decision = await limiter.hit(RateLimitBucket.ADMIN, "frozen", limit=0)

    assert not decision.allowed
    assert decision.limit == 0
    assert decision.retry_after_seconds == settings.rate_limit_admin_window_seconds

    with pytest.raises(ValueError):
        await limiter.hit(RateLimitBucket.ADMIN, "frozen", window_seconds=0)


@pytest.mark.asyncio
async def test_redemption_route_returns_429_when_budget_spent(app_with_db, seeder, monkeypatch) -> None:
    app, session_factory = app_with_db
    limiter = RateLimiter(FakeRedis(), key_prefix="test")
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "rate_limit_redemption_requests", 2)

    async with session_factory() as session:
        seed = seeder(session)
        user = await seed.user()
        offer = await seed.offer(points_required=10)
        await session.commit()

    headers = {"X-Session-User": str(user.id)}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for _ in range(2):
            response = await client.post("/api/v1/redemptions", json={"offerId": str(offer.id)}, headers=headers)
            assert response.status_code == 400

        limited = await client.post("/api/v1/redemptions", json={"offerId": str(offer.id)}, headers=headers)

    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == str(settings.rate_limit_redemption_window_seconds)
    assert limited.json()["detail"]["error"] == "rate_limited"
    assert get_points_store().snapshot().as_dict()["rate_limited"] == {"redemption": 1}


@pytest.mark.asyncio
async def test_rate_limit_fails_open_when_redis_is_down(app_with_db, seeder, monkeypatch) -> None:
    app, session_factory = app_with_db
    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(BrokenRedis(), key_prefix="test")
    monkeypatch.setattr(settings, "rate_limit_enabled", True)

    async with session_factory() as session:
        seed = seeder(session)
        user = await seed.user()
        survey = await seed.survey()
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            f"/api/v1/surveys/{survey.id}/complete",
            json={},
            headers={"X-Session-User": str(user.id)},
        )

    # Admitted past the limiter, then refused for lack of qualification.
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "not_qualified"
