"""Panelist-facing contest endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.session import (
    is_admin,
    require_member_session,
    require_panelist_profile,
)
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.models.user import User
from panelpoints_api.schemas.contests import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ParticipantResponse,
)
from panelpoints_api.services.contests import ContestService, LeaderboardService
from panelpoints_api.services.points import PointLedgerService, PointsServiceError


router = APIRouter(prefix="/contests", tags=["contests"])


@router.post(
    "/{contest_id}/join",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_contest(
    contest_id: UUID,
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> ParticipantResponse:
    try:
        participant = await ContestService(db).join_contest(contest_id, profile.id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc
    await db.refresh(participant)
    return ParticipantResponse.model_validate(participant)


@router.get("/{contest_id}/leaderboard", response_model=LeaderboardResponse)
async def get_contest_leaderboard(
    contest_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Ranked participants; running contests are re-ranked on every read."""

    profile = await PointLedgerService(db).get_profile_for_user(user.id)
    try:
        view = await LeaderboardService(db).leaderboard(
            contest_id,
            viewer_panelist_id=profile.id if profile else None,
            limit=limit,
            is_admin=is_admin(user),
        )
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return LeaderboardResponse(
        leaderboard=[LeaderboardEntryResponse.model_validate(entry) for entry in view.entries],
        total_participants=view.total_participants,
        user_rank=view.user_rank,
        user_points=view.user_points,
        contest_status=view.contest_status,
    )
