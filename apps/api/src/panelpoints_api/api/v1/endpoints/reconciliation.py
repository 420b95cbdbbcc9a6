"""Explicit repair of interrupted award and settlement flows."""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.rate_limit import rate_limit
from panelpoints_api.api.dependencies.session import require_permission
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.user import User
from panelpoints_api.schemas.points import (
    RedemptionReconciliationRequest,
    RedemptionReconciliationResponse,
    SurveyCompletionResponse,
    UnawardedCompletionResponse,
)
from panelpoints_api.services.points import PointsServiceError, RedemptionService, SurveyCompletionService
from panelpoints_api.services.ratelimit import RateLimitBucket


router = APIRouter(
    prefix="/admin/reconciliation",
    tags=["admin", "reconciliation"],
    dependencies=[Depends(rate_limit(RateLimitBucket.ADMIN))],
)

_reconcile = require_permission("reconcile_points")


@router.get(
    "/completions",
    response_model=list[UnawardedCompletionResponse],
    dependencies=[Depends(_reconcile)],
)
async def list_unawarded_completions(
    limit: int = Query(100, ge=1, le=500),
    older_than_seconds: int | None = Query(None, alias="olderThanSeconds", ge=0),
    db: AsyncSession = Depends(get_session),
) -> list[UnawardedCompletionResponse]:
    older_than = timedelta(seconds=older_than_seconds) if older_than_seconds is not None else None
    completions = await SurveyCompletionService(db).find_unawarded_completions(limit=limit, older_than=older_than)
    return [UnawardedCompletionResponse.model_validate(item) for item in completions]


@router.post("/completions/{completion_id}/repair", response_model=SurveyCompletionResponse)
async def repair_completion(
    completion_id: UUID,
    admin: User = Depends(_reconcile),
    db: AsyncSession = Depends(get_session),
) -> SurveyCompletionResponse:
    try:
        result = await SurveyCompletionService(db).repair_completion_award(completion_id, repaired_by=admin.id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return SurveyCompletionResponse(
        points_earned=result.points_earned,
        completion_id=result.completion_id,
        new_balance=result.new_balance,
        total_earned=result.total_earned,
    )


@router.post(
    "/redemptions",
    response_model=RedemptionReconciliationResponse,
    dependencies=[Depends(_reconcile)],
)
async def reconcile_redemptions(
    payload: RedemptionReconciliationRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> RedemptionReconciliationResponse:
    older_than = None
    if payload is not None and payload.older_than_seconds is not None:
        older_than = timedelta(seconds=payload.older_than_seconds)

    outcome = await RedemptionService(db).reconcile_pending(older_than=older_than)
    return RedemptionReconciliationResponse(completed=outcome.completed, failed=outcome.failed)
