"""Redemption endpoints for panelists."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.rate_limit import rate_limit
from panelpoints_api.api.dependencies.session import require_panelist_profile, require_permission
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.offer import RedemptionStatus
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.schemas.points import (
    RedemptionCreateRequest,
    RedemptionListResponse,
    RedemptionRecordResponse,
    RedemptionResponse,
)
from panelpoints_api.services.points import PointsServiceError, RedemptionService
from panelpoints_api.services.ratelimit import RateLimitBucket


router = APIRouter(prefix="/redemptions", tags=["redemptions"])


@router.post(
    "",
    response_model=RedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_permission("redeem_points")),
        Depends(rate_limit(RateLimitBucket.REDEMPTION)),
    ],
)
async def create_redemption(
    payload: RedemptionCreateRequest,
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    try:
        result = await RedemptionService(db).redeem(profile.id, payload.offer_id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return RedemptionResponse(
        redemption_id=result.redemption_id,
        points_spent=result.points_spent,
        new_balance=result.new_balance,
        total_redeemed=result.total_redeemed,
    )


@router.get("", response_model=RedemptionListResponse)
async def list_redemptions(
    limit: int = Query(25, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: str | None = Query(None, alias="status"),
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> RedemptionListResponse:
    redemption_status: RedemptionStatus | None = None
    if status_filter:
        try:
            redemption_status = RedemptionStatus(status_filter)
        except ValueError as exc:
            raise HTTPException(
                status_code=400,
                detail={"error": "invalid_input", "message": f"Unsupported redemption status: {status_filter}"},
            ) from exc

    rows, total = await RedemptionService(db).list_redemptions(
        profile.id,
        limit=limit,
        offset=offset,
        status=redemption_status,
    )
    return RedemptionListResponse(
        redemptions=[RedemptionRecordResponse.model_validate(row) for row in rows],
        total=total,
    )
