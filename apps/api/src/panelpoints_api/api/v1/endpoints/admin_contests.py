"""Contest administration endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.rate_limit import rate_limit
from panelpoints_api.api.dependencies.session import require_permission
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.user import User
from panelpoints_api.schemas.contests import (
    AwardPrizeRequest,
    AwardPrizeResponse,
    ContestCreateRequest,
    ContestInviteRequest,
    ContestInviteResponse,
    ContestResponse,
    LeaderboardEntryResponse,
)
from panelpoints_api.services.contests import ContestPrizeService, ContestService, LeaderboardService
from panelpoints_api.services.points import PointsServiceError
from panelpoints_api.services.ratelimit import RateLimitBucket


router = APIRouter(
    prefix="/admin/contests",
    tags=["admin", "contests"],
    dependencies=[Depends(rate_limit(RateLimitBucket.ADMIN))],
)

_manage_contests = require_permission("manage_contests")


@router.post("", response_model=ContestResponse, status_code=status.HTTP_201_CREATED)
async def create_contest(
    payload: ContestCreateRequest,
    admin: User = Depends(_manage_contests),
    db: AsyncSession = Depends(get_session),
) -> ContestResponse:
    try:
        contest = await ContestService(db).create_contest(
            title=payload.title,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            prize_points=payload.prize_points,
            invite_type=payload.invite_type,
            created_by=admin.id,
        )
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    return ContestResponse.model_validate(contest)


@router.post("/{contest_id}/start", response_model=ContestResponse, dependencies=[Depends(_manage_contests)])
async def start_contest(contest_id: UUID, db: AsyncSession = Depends(get_session)) -> ContestResponse:
    try:
        contest = await ContestService(db).start_contest(contest_id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    return ContestResponse.model_validate(contest)


@router.post("/{contest_id}/end", response_model=ContestResponse, dependencies=[Depends(_manage_contests)])
async def end_contest(contest_id: UUID, db: AsyncSession = Depends(get_session)) -> ContestResponse:
    try:
        contest = await ContestService(db).end_contest(contest_id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    return ContestResponse.model_validate(contest)


@router.post("/{contest_id}/invite", response_model=ContestInviteResponse)
async def invite_panelists(
    contest_id: UUID,
    payload: ContestInviteRequest,
    admin: User = Depends(_manage_contests),
    db: AsyncSession = Depends(get_session),
) -> ContestInviteResponse:
    try:
        invited = await ContestService(db).invite_panelists(contest_id, payload.panelist_ids, invited_by=admin.id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    return ContestInviteResponse(invited=invited)


@router.post(
    "/{contest_id}/update-leaderboard",
    response_model=list[LeaderboardEntryResponse],
    dependencies=[Depends(_manage_contests)],
)
async def update_leaderboard(contest_id: UUID, db: AsyncSession = Depends(get_session)) -> list[LeaderboardEntryResponse]:
    try:
        await ContestService(db).get_contest(contest_id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    entries = await LeaderboardService(db).recalculate(contest_id)
    return [LeaderboardEntryResponse.model_validate(entry) for entry in entries]


@router.post("/{contest_id}/award-prize", response_model=AwardPrizeResponse)
async def award_prize(
    contest_id: UUID,
    payload: AwardPrizeRequest,
    admin: User = Depends(_manage_contests),
    db: AsyncSession = Depends(get_session),
) -> AwardPrizeResponse:
    try:
        result = await ContestPrizeService(db).award_prize(contest_id, payload.panelist_id, awarded_by=admin.id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    return AwardPrizeResponse(
        entry_id=result.entry_id,
        points_awarded=result.points_awarded,
        new_balance=result.new_balance,
    )
