"""Contest lifecycle: create, start, end, invite and join."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.models.contest import (
    Contest,
    ContestInvitation,
    ContestInviteType,
    ContestParticipant,
    ContestStatus,
)
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.services.points.errors import (
    ConflictError,
    EntityNotFoundError,
    InvalidStateError,
    LedgerValidationError,
    PermissionDeniedError,
)

from .leaderboard import LeaderboardService


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ContestService:
    def __init__(self, session: AsyncSession) -> None:
        self._db = session
        self._leaderboard = LeaderboardService(session)

    async def get_contest(self, contest_id: UUID) -> Contest:
        stmt = select(Contest).where(Contest.id == contest_id).execution_options(populate_existing=True)
        contest = (await self._db.execute(stmt)).scalar_one_or_none()
        if contest is None:
            raise EntityNotFoundError("Contest not found", code="contest_not_found")
        return contest

    async def create_contest(
        self,
        *,
        title: str,
        start_date: datetime,
        end_date: datetime,
        prize_points: int,
        description: str | None = None,
        invite_type: ContestInviteType = ContestInviteType.ALL_PANELISTS,
        created_by: UUID | None = None,
    ) -> Contest:
        if not title or not title.strip():
            raise LedgerValidationError("Contest title is required")
        if _as_utc(end_date) <= _as_utc(start_date):
            raise LedgerValidationError("Contest end date must be after its start date")
        if prize_points <= 0:
            raise LedgerValidationError("Prize points must be positive")

        contest = Contest(
            title=title.strip(),
            description=description,
            start_date=_as_utc(start_date),
            end_date=_as_utc(end_date),
            prize_points=prize_points,
            invite_type=invite_type,
            status=ContestStatus.DRAFT,
            created_by=created_by,
        )
        self._db.add(contest)
        await self._db.flush()
        await self._db.commit()
        logger.info("Created contest", contest_id=str(contest.id), invite_type=invite_type.value)
        return contest

    async def _move(self, contest_id: UUID, source: ContestStatus, target: ContestStatus, code: str) -> None:
        result = await self._db.execute(
            update(Contest)
            .where(Contest.id == contest_id, Contest.status == source)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._db.rollback()
            raise InvalidStateError(f"Contest is not {source.value}", code=code)

    async def start_contest(self, contest_id: UUID) -> Contest:
        contest = await self.get_contest(contest_id)
        if contest.status != ContestStatus.DRAFT:
            raise InvalidStateError("Only draft contests can be started", code="contest_not_draft")

        earliest = datetime.now(timezone.utc) - timedelta(seconds=settings.contest_start_grace_seconds)
        if _as_utc(contest.start_date) < earliest:
            raise InvalidStateError(
                "Start date must be in the future or very recent",
                code="contest_start_in_past",
            )

        await self._move(contest_id, ContestStatus.DRAFT, ContestStatus.ACTIVE, "contest_not_draft")
        await self._db.commit()
        logger.info("Started contest", contest_id=str(contest_id))
        return await self.get_contest(contest_id)

    async def end_contest(self, contest_id: UUID) -> Contest:
        contest = await self.get_contest(contest_id)
        if contest.status != ContestStatus.ACTIVE:
            raise InvalidStateError("Only active contests can be ended", code="contest_not_active")

        await self._move(contest_id, ContestStatus.ACTIVE, ContestStatus.ENDED, "contest_not_active")
        await self._db.commit()
        await self._leaderboard.recalculate(contest_id)
        logger.info("Ended contest", contest_id=str(contest_id))
        return await self.get_contest(contest_id)

    async def invite_panelists(
        self,
        contest_id: UUID,
        panelist_ids: Sequence[UUID],
        *,
        invited_by: UUID | None = None,
    ) -> list[UUID]:
        """Invite panelists; returns only the ids that were newly invited."""

        await self.get_contest(contest_id)
        wanted = list(dict.fromkeys(panelist_ids))
        if not wanted:
            return []

        known = set(
            (await self._db.execute(select(PanelistProfile.id).where(PanelistProfile.id.in_(wanted)))).scalars()
        )
        missing = [str(pid) for pid in wanted if pid not in known]
        if missing:
            raise EntityNotFoundError(
                "Panelist profile not found",
                code="panelist_not_found",
                payload={"panelistIds": missing},
            )

        already = set(
            (
                await self._db.execute(
                    select(ContestInvitation.panelist_id).where(
                        ContestInvitation.contest_id == contest_id,
                        ContestInvitation.panelist_id.in_(wanted),
                    )
                )
            ).scalars()
        )
        invited: list[UUID] = []
        for panelist_id in wanted:
            if panelist_id in already:
                continue
            self._db.add(
                ContestInvitation(contest_id=contest_id, panelist_id=panelist_id, invited_by=invited_by)
            )
            invited.append(panelist_id)

        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when inviting panelists", contest_id=str(contest_id))
            return await self.invite_panelists(contest_id, wanted, invited_by=invited_by)

        logger.info("Invited panelists to contest", contest_id=str(contest_id), invited=len(invited))
        return invited

    async def join_contest(self, contest_id: UUID, panelist_id: UUID) -> ContestParticipant:
        contest = await self.get_contest(contest_id)
        if contest.status != ContestStatus.ACTIVE:
            raise InvalidStateError("Contest is not active", code="contest_not_active")

        if contest.invite_type == ContestInviteType.SELECTED_PANELISTS:
            invited = await self._db.scalar(
                select(ContestInvitation.id).where(
                    ContestInvitation.contest_id == contest_id,
                    ContestInvitation.panelist_id == panelist_id,
                )
            )
            if invited is None:
                raise PermissionDeniedError("Not invited to this contest", code="not_invited")

        participant = ContestParticipant(
            contest_id=contest_id,
            panelist_id=panelist_id,
            points_earned=0,
            joined_at=datetime.now(timezone.utc),
        )
        self._db.add(participant)
        try:
            await self._db.flush()
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ConflictError("Already joined this contest", code="already_joined") from exc

        logger.info("Panelist joined contest", contest_id=str(contest_id), panelist_id=str(panelist_id))
        await self._leaderboard.recalculate(contest_id)
        return participant

    async def list_participants(self, contest_id: UUID) -> list[ContestParticipant]:
        stmt = (
            select(ContestParticipant)
            .where(ContestParticipant.contest_id == contest_id)
            .order_by(ContestParticipant.rank.is_(None), ContestParticipant.rank.asc())
            .execution_options(populate_existing=True)
        )
        return list((await self._db.execute(stmt)).scalars().all())


__all__ = ["ContestService"]
