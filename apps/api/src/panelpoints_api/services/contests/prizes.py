"""One-shot contest prize awards."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.models.contest import (
    Contest,
    ContestParticipant,
    ContestPrizeAward,
    ContestStatus,
)
from panelpoints_api.models.point_ledger import PointTransactionType
from panelpoints_api.observability.points import get_points_store
from panelpoints_api.services.points.errors import (
    ConflictError,
    ContestNotEndedError,
    EntityNotFoundError,
    LedgerInternalError,
    PointsServiceError,
)
from panelpoints_api.services.points.ledger import PointLedgerService

from .leaderboard import LeaderboardService


@dataclass
class PrizeAwardResult:
    entry_id: UUID
    points_awarded: int
    new_balance: int


class ContestPrizeService:
    """Awards a contest prize at most once per participant.

    Claiming the participant flag, the ledger credit and the award record commit together.
    """

    def __init__(self, session: AsyncSession, ledger: PointLedgerService | None = None) -> None:
        self._db = session
        self._ledger = ledger or PointLedgerService(session)

    async def award_prize(
        self,
        contest_id: UUID,
        panelist_id: UUID,
        *,
        awarded_by: UUID | None = None,
    ) -> PrizeAwardResult:
        store = get_points_store()
        contest = await self._db.get(Contest, contest_id)
        if contest is None:
            raise EntityNotFoundError("Contest not found", code="contest_not_found")
        if contest.status != ContestStatus.ENDED:
            raise ContestNotEndedError("Prizes can only be awarded after the contest has ended")

        participant = (
            await self._db.execute(
                select(ContestParticipant).where(
                    ContestParticipant.contest_id == contest_id,
                    ContestParticipant.panelist_id == panelist_id,
                )
            )
        ).scalar_one_or_none()
        if participant is None:
            raise EntityNotFoundError("Participant not found", code="participant_not_found")
        if participant.prize_awarded:
            store.record_conflict("prize_already_awarded")
            raise ConflictError("Prize already awarded", code="already_awarded")

        participant_id = participant.id
        prize_points = contest.prize_points
        contest_title = contest.title

        try:
            claim = await self._db.execute(
                update(ContestParticipant)
                .where(
                    ContestParticipant.id == participant_id,
                    ContestParticipant.prize_awarded.is_(False),
                )
                .values(
                    prize_awarded=True,
                    prize_awarded_at=datetime.now(timezone.utc),
                    prize_awarded_by=awarded_by,
                )
                .execution_options(synchronize_session=False)
            )
            if claim.rowcount == 0:
                raise ConflictError("Prize already awarded", code="already_awarded")

            issued = await self._ledger.issue_transaction(
                panelist_id,
                points=prize_points,
                transaction_type=PointTransactionType.AWARD,
                title=f"Contest prize: {contest_title}",
                metadata={"contest_id": str(contest_id), "participant_id": str(participant_id)},
                awarded_by=awarded_by,
                commit=False,
            )
            self._db.add(
                ContestPrizeAward(
                    contest_id=contest_id,
                    panelist_id=panelist_id,
                    points_awarded=prize_points,
                    awarded_by=awarded_by,
                    ledger_entry_id=issued.entry_id,
                )
            )
            await self._db.flush()
            await self._db.commit()
        except ConflictError:
            await self._db.rollback()
            store.record_conflict("prize_already_awarded")
            raise
        except IntegrityError as exc:
            await self._db.rollback()
            store.record_conflict("prize_already_awarded")
            raise ConflictError("Prize already awarded", code="already_awarded") from exc
        except PointsServiceError:
            await self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Prize award failed", contest_id=str(contest_id), panelist_id=str(panelist_id), error=str(exc))
            raise LedgerInternalError("Failed to award contest prize") from exc

        logger.info(
            "Awarded contest prize",
            contest_id=str(contest_id),
            panelist_id=str(panelist_id),
            points=prize_points,
            entry_id=str(issued.entry_id),
        )
        await LeaderboardService(self._db).recalculate(contest_id)
        return PrizeAwardResult(
            entry_id=issued.entry_id,
            points_awarded=prize_points,
            new_balance=issued.new_balance,
        )


__all__ = ["ContestPrizeService", "PrizeAwardResult"]
