"""Contest leaderboard ranking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.models.contest import (
    Contest,
    ContestInvitation,
    ContestInviteType,
    ContestParticipant,
    ContestStatus,
)
from panelpoints_api.services.points.errors import EntityNotFoundError, PermissionDeniedError


@dataclass
class LeaderboardEntry:
    rank: int | None
    points_earned: int
    joined_at: datetime
    panelist_id: UUID


@dataclass
class LeaderboardView:
    entries: list[LeaderboardEntry]
    total_participants: int
    user_rank: int | None
    user_points: int | None
    contest_status: ContestStatus


def _ranking_order():
    # Ties on points go to the earliest joiner; participant id keeps the order total.
    return (
        ContestParticipant.points_earned.desc(),
        ContestParticipant.joined_at.asc(),
        ContestParticipant.id.asc(),
    )


class LeaderboardService:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def recalculate(self, contest_id: UUID, *, commit: bool = True) -> list[LeaderboardEntry]:
        """Rewrite participant ranks 1..N from their stored point totals."""

        stmt = (
            select(ContestParticipant)
            .where(ContestParticipant.contest_id == contest_id)
            .order_by(*_ranking_order())
            .execution_options(populate_existing=True)
        )
        participants = list((await self._db.execute(stmt)).scalars().all())

        entries: list[LeaderboardEntry] = []
        changed = 0
        for position, participant in enumerate(participants, start=1):
            if participant.rank != position:
                participant.rank = position
                changed += 1
            entries.append(
                LeaderboardEntry(
                    rank=position,
                    points_earned=participant.points_earned,
                    joined_at=participant.joined_at,
                    panelist_id=participant.panelist_id,
                )
            )

        await self._db.flush()
        if commit:
            await self._db.commit()
        logger.debug(
            "Recalculated contest leaderboard",
            contest_id=str(contest_id),
            participants=len(participants),
            ranks_changed=changed,
        )
        return entries

    async def leaderboard(
        self,
        contest_id: UUID,
        *,
        viewer_panelist_id: UUID | None = None,
        limit: int | None = None,
        is_admin: bool = False,
    ) -> LeaderboardView:
        """Ranked participants for display; running contests are re-ranked before reading."""

        contest = await self._db.get(Contest, contest_id)
        if contest is None:
            raise EntityNotFoundError("Contest not found", code="contest_not_found")

        if contest.invite_type == ContestInviteType.SELECTED_PANELISTS and not is_admin:
            invited = None
            if viewer_panelist_id is not None:
                invited = await self._db.scalar(
                    select(ContestInvitation.id).where(
                        ContestInvitation.contest_id == contest_id,
                        ContestInvitation.panelist_id == viewer_panelist_id,
                    )
                )
            if invited is None:
                raise PermissionDeniedError("Not invited to this contest", code="not_invited")

        if contest.status == ContestStatus.ACTIVE:
            await self.recalculate(contest_id)

        bounded_limit = max(1, min(limit or settings.leaderboard_default_limit, settings.leaderboard_max_limit))
        stmt = (
            select(ContestParticipant)
            .where(ContestParticipant.contest_id == contest_id)
            .order_by(
                ContestParticipant.rank.is_(None),
                ContestParticipant.rank.asc(),
                *_ranking_order(),
            )
            .limit(bounded_limit)
            .execution_options(populate_existing=True)
        )
        rows = list((await self._db.execute(stmt)).scalars().all())
        total = int(
            await self._db.scalar(
                select(func.count()).select_from(ContestParticipant).where(ContestParticipant.contest_id == contest_id)
            )
            or 0
        )

        user_rank: int | None = None
        user_points: int | None = None
        if viewer_panelist_id is not None:
            viewer = (
                await self._db.execute(
                    select(ContestParticipant.rank, ContestParticipant.points_earned).where(
                        ContestParticipant.contest_id == contest_id,
                        ContestParticipant.panelist_id == viewer_panelist_id,
                    )
                )
            ).one_or_none()
            if viewer is not None:
                user_rank, user_points = viewer.rank, viewer.points_earned

        return LeaderboardView(
            entries=[
                LeaderboardEntry(
                    rank=row.rank,
                    points_earned=row.points_earned,
                    joined_at=row.joined_at,
                    panelist_id=row.panelist_id,
                )
                for row in rows
            ],
            total_participants=total,
            user_rank=user_rank,
            user_points=user_points,
            contest_status=contest.status,
        )


__all__ = ["LeaderboardEntry", "LeaderboardService", "LeaderboardView"]
