"""Survey completion awards and repair of interrupted awards."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.models.point_ledger import PointTransactionType
from panelpoints_api.models.survey import (
    Survey,
    SurveyCompletion,
    SurveyQualification,
    SurveyResponse,
    SurveyStatus,
)
from panelpoints_api.observability.points import get_points_store

from .errors import (
    ConflictError,
    EntityNotFoundError,
    InvalidStateError,
    LedgerInternalError,
    NotQualifiedError,
    PointsServiceError,
    SurveyInactiveError,
)
from .ledger import IssuedTransaction, PointLedgerService


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class SurveyAnswer:
    question_id: str
    response_value: str
    response_metadata: dict[str, Any] | None = None


@dataclass
class SurveyCompletionResult:
    points_earned: int
    completion_id: UUID
    new_balance: int
    total_earned: int


class SurveyCompletionService:
    """Awards points once per panelist and survey.

    The completion row is committed before the award; a failed award deletes it again.
    """

    def __init__(self, session: AsyncSession, ledger: PointLedgerService | None = None) -> None:
        self._db = session
        self._ledger = ledger or PointLedgerService(session)

    async def complete_survey(
        self,
        panelist_id: UUID,
        survey_id: UUID,
        responses: Sequence[SurveyAnswer] = (),
    ) -> SurveyCompletionResult:
        store = get_points_store()
        survey = await self._db.get(Survey, survey_id)
        if survey is None:
            raise EntityNotFoundError("Survey not found", code="survey_not_found")
        if survey.status != SurveyStatus.ACTIVE:
            raise SurveyInactiveError("Survey is not active")

        qualified = await self._db.scalar(
            select(SurveyQualification.is_qualified).where(
                SurveyQualification.survey_id == survey_id,
                SurveyQualification.panelist_id == panelist_id,
            )
        )
        if not qualified:
            store.record_rejection("not_qualified")
            raise NotQualifiedError("Panelist does not qualify for this survey")

        points_reward = survey.points_reward
        survey_title = survey.title
        completion = SurveyCompletion(
            survey_id=survey_id,
            panelist_id=panelist_id,
            points_earned=points_reward,
            response_data={
                answer.question_id: answer.response_value for answer in responses
            },
            completed_at=datetime.now(timezone.utc),
        )
        self._db.add(completion)
        try:
            await self._db.flush()
            completion_id = completion.id
            for answer in responses:
                self._db.add(
                    SurveyResponse(
                        completion_id=completion.id,
                        survey_id=survey_id,
                        panelist_id=panelist_id,
                        question_id=answer.question_id,
                        response_value=answer.response_value,
                        response_metadata=answer.response_metadata,
                    )
                )
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            store.record_conflict("already_completed")
            logger.info(
                "Duplicate survey completion rejected",
                survey_id=str(survey_id),
                panelist_id=str(panelist_id),
            )
            raise ConflictError("Survey already completed", code="already_completed") from exc

        try:
            issued = await self._claim_and_award(
                completion_id,
                panelist_id,
                points=points_reward,
                title=f"Survey completed: {survey_title}",
                metadata={"survey_id": str(survey_id), "completion_id": str(completion_id)},
            )
        except ConflictError:
            # A repair already credited this completion; the row stays.
            await self._db.rollback()
            store.record_conflict("already_awarded")
            raise
        except PointsServiceError:
            await self._compensate(completion_id)
            raise
        except Exception as exc:
            await self._compensate(completion_id)
            raise LedgerInternalError("Failed to award survey points") from exc

        logger.info(
            "Awarded survey completion",
            survey_id=str(survey_id),
            panelist_id=str(panelist_id),
            completion_id=str(completion_id),
            points=points_reward,
        )
        return SurveyCompletionResult(
            points_earned=points_reward,
            completion_id=completion_id,
            new_balance=issued.new_balance,
            total_earned=issued.total_earned,
        )

    async def _claim_and_award(
        self,
        completion_id: UUID,
        panelist_id: UUID,
        *,
        points: int,
        title: str,
        metadata: dict[str, Any],
        awarded_by: UUID | None = None,
    ) -> IssuedTransaction:
        """Flag the completion as awarded and credit the panelist in one commit.

        The conditional UPDATE only matches an unclaimed row, so a second caller
        blocks on the row and then sees zero rows. The caller rolls back on error.
        """

        claim = await self._db.execute(
            update(SurveyCompletion)
            .where(SurveyCompletion.id == completion_id, SurveyCompletion.awarded_at.is_(None))
            .values(awarded_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            raise ConflictError("Completion already has an award", code="already_awarded")

        issued = await self._ledger.issue_transaction(
            panelist_id,
            points=points,
            transaction_type=PointTransactionType.SURVEY_COMPLETION,
            title=title,
            metadata=metadata,
            awarded_by=awarded_by,
            commit=False,
        )
        await self._db.execute(
            update(SurveyCompletion)
            .where(SurveyCompletion.id == completion_id)
            .values(award_entry_id=issued.entry_id)
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()
        return issued

    async def _compensate(self, completion_id: UUID) -> None:
        await self._db.rollback()
        await self._db.execute(delete(SurveyResponse).where(SurveyResponse.completion_id == completion_id))
        await self._db.execute(delete(SurveyCompletion).where(SurveyCompletion.id == completion_id))
        await self._db.commit()
        get_points_store().record_compensation("survey_completion")
        logger.warning("Deleted survey completion after failed award", completion_id=str(completion_id))

    @staticmethod
    def _repair_cutoff(older_than: timedelta | None) -> datetime:
        floor = timedelta(seconds=settings.reconciliation_min_age_seconds)
        age = older_than if older_than is not None else timedelta(
            seconds=settings.reconciliation_unawarded_completion_age_seconds
        )
        return datetime.now(timezone.utc) - max(age, floor)

    async def find_unawarded_completions(
        self,
        *,
        limit: int = 200,
        older_than: timedelta | None = None,
    ) -> list[SurveyCompletion]:
        """Unclaimed completions old enough that their own award attempt has finished."""

        stmt = (
            select(SurveyCompletion)
            .where(
                SurveyCompletion.awarded_at.is_(None),
                SurveyCompletion.completed_at <= self._repair_cutoff(older_than),
            )
            .order_by(SurveyCompletion.completed_at.asc(), SurveyCompletion.id.asc())
            .limit(max(1, limit))
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def repair_completion_award(
        self,
        completion_id: UUID,
        *,
        repaired_by: UUID | None = None,
    ) -> SurveyCompletionResult:
        """Issue the award a completion is missing; refuses when the award already exists."""

        store = get_points_store()
        completion = await self._db.get(SurveyCompletion, completion_id, populate_existing=True)
        if completion is None:
            raise EntityNotFoundError("Survey completion not found", code="completion_not_found")
        if completion.awarded_at is not None:
            store.record_conflict("already_awarded")
            raise ConflictError("Completion already has an award", code="already_awarded")
        if _as_utc(completion.completed_at) > self._repair_cutoff(timedelta(0)):
            raise InvalidStateError("Completion is too recent to repair", code="completion_in_progress")

        panelist_id = completion.panelist_id
        survey_id = completion.survey_id
        points = completion.points_earned
        survey = await self._db.get(Survey, survey_id)
        title = survey.title if survey else str(survey_id)

        try:
            issued = await self._claim_and_award(
                completion_id,
                panelist_id,
                points=points,
                title=f"Survey completed: {title}",
                metadata={"survey_id": str(survey_id), "completion_id": str(completion_id), "repaired": True},
                awarded_by=repaired_by,
            )
        except ConflictError:
            await self._db.rollback()
            store.record_conflict("already_awarded")
            raise
        except PointsServiceError:
            await self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Completion repair failed", completion_id=str(completion_id), error=str(exc))
            raise LedgerInternalError("Failed to repair survey award") from exc

        store.record_reconciliation("completion_repaired")
        logger.info(
            "Repaired survey completion award",
            completion_id=str(completion_id),
            panelist_id=str(panelist_id),
            points=points,
        )
        return SurveyCompletionResult(
            points_earned=points,
            completion_id=completion_id,
            new_balance=issued.new_balance,
            total_earned=issued.total_earned,
        )


__all__ = ["SurveyAnswer", "SurveyCompletionResult", "SurveyCompletionService"]
