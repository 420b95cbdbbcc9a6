from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


async def _check_redis() -> ComponentStatus:
    if not settings.rate_limit_enabled:
        return ComponentStatus(status="disabled", detail="rate limiting is disabled")

    client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except RedisError as exc:
        logger.warning("Redis readiness probe failed", error=str(exc))
        return ComponentStatus(status="error", detail=str(exc))
    finally:
        await client.aclose()
    return ComponentStatus(status="ready")


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database readiness probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail=str(exc))
    else:
        components["database"] = ComponentStatus(status="ready")

    components["rate_limiter"] = await _check_redis()

    overall: Literal["ready", "degraded", "error"] = "ready"
    if components["database"].status == "error":
        overall = "error"
    elif components["rate_limiter"].status == "error":
        overall = "degraded"

    return ReadinessPayload(status=overall, components=components)
