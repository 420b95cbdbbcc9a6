"""Redemption settlement against merchant offers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.models.offer import MerchantOffer, Redemption, RedemptionStatus
from panelpoints_api.models.point_ledger import PointLedgerEntry, PointTransactionType
from panelpoints_api.observability.points import get_points_store

from .errors import (
    ConflictError,
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    LedgerInternalError,
    OfferInactiveError,
    PointsServiceError,
)
from .ledger import PointLedgerService


@dataclass
class RedemptionResult:
    redemption_id: UUID
    points_spent: int
    new_balance: int
    total_redeemed: int


@dataclass
class RedemptionReconciliation:
    """Pending rows settled by a reconciliation pass."""

    completed: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "completed": [str(item) for item in self.completed],
            "failed": [str(item) for item in self.failed],
        }


class RedemptionService:
    """Debits points for offers and tracks each redemption from pending to a terminal state."""

    _ALLOWED_TRANSITIONS: dict[RedemptionStatus, set[RedemptionStatus]] = {
        RedemptionStatus.PENDING: {RedemptionStatus.COMPLETED, RedemptionStatus.FAILED},
        RedemptionStatus.COMPLETED: set(),
        RedemptionStatus.FAILED: set(),
    }

    def __init__(self, session: AsyncSession, ledger: PointLedgerService | None = None) -> None:
        self._db = session
        self._ledger = ledger or PointLedgerService(session)

    async def redeem(self, panelist_id: UUID, offer_id: UUID) -> RedemptionResult:
        store = get_points_store()
        offer = await self._db.get(MerchantOffer, offer_id)
        if offer is None:
            raise EntityNotFoundError("Offer not found", code="offer_not_found")
        if not offer.is_active:
            raise OfferInactiveError("Offer is not active")

        cost = offer.points_required
        offer_title = offer.title
        balance = await self._ledger.get_balance(panelist_id)
        if balance.points_balance < cost:
            store.record_rejection("insufficient_points")
            raise InsufficientBalanceError(required=cost, available=balance.points_balance)

        redemption = Redemption(
            panelist_id=panelist_id,
            offer_id=offer_id,
            points_spent=cost,
            status=RedemptionStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        self._db.add(redemption)
        await self._db.flush()
        redemption_id = redemption.id
        await self._db.commit()

        try:
            issued = await self._ledger.issue_transaction(
                panelist_id,
                points=-cost,
                transaction_type=PointTransactionType.REDEMPTION,
                title=f"Redeemed: {offer_title}",
                metadata={"offer_id": str(offer_id), "redemption_id": str(redemption_id)},
                commit=False,
            )
            await self._transition(
                redemption_id,
                RedemptionStatus.COMPLETED,
                ledger_entry_id=issued.entry_id,
                redemption_date=datetime.now(timezone.utc),
            )
            await self._db.commit()
        except InvalidStateError as exc:
            # Settled by reconciliation in the meantime; the debit rolls back with the transition.
            await self._db.rollback()
            store.record_conflict("redemption_already_settled")
            logger.warning("Redemption settled before debit committed", redemption_id=str(redemption_id))
            raise ConflictError(
                "Redemption was settled before the debit completed", code="redemption_already_settled"
            ) from exc
        except PointsServiceError:
            await self._discard_pending(redemption_id)
            raise
        except Exception as exc:
            await self._discard_pending(redemption_id)
            raise LedgerInternalError("Failed to settle redemption") from exc

        logger.info(
            "Completed redemption",
            redemption_id=str(redemption_id),
            panelist_id=str(panelist_id),
            offer_id=str(offer_id),
            points=cost,
        )
        return RedemptionResult(
            redemption_id=redemption_id,
            points_spent=cost,
            new_balance=issued.new_balance,
            total_redeemed=issued.total_redeemed,
        )

    async def _discard_pending(self, redemption_id: UUID) -> None:
        await self._db.rollback()
        await self._db.execute(
            delete(Redemption).where(
                Redemption.id == redemption_id,
                Redemption.status == RedemptionStatus.PENDING,
            )
        )
        await self._db.commit()
        get_points_store().record_compensation("redemption")
        logger.warning("Deleted pending redemption after failed debit", redemption_id=str(redemption_id))

    async def _transition(self, redemption_id: UUID, target: RedemptionStatus, **values: Any) -> None:
        """Move a redemption to ``target``; the UPDATE only matches rows still in an allowed source state."""

        sources = [status for status, targets in self._ALLOWED_TRANSITIONS.items() if target in targets]
        stmt = (
            update(Redemption)
            .where(Redemption.id == redemption_id, Redemption.status.in_(sources))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount == 0:
            current = await self._db.scalar(select(Redemption.status).where(Redemption.id == redemption_id))
            if current is None:
                raise EntityNotFoundError("Redemption not found", code="redemption_not_found")
            raise InvalidStateError(
                f"Cannot transition redemption from {RedemptionStatus(current).value} to {target.value}",
                code="invalid_transition",
            )

    async def fail_redemption(self, redemption_id: UUID, *, reason: str) -> None:
        await self._transition(redemption_id, RedemptionStatus.FAILED, failure_reason=reason)
        await self._db.commit()
        logger.warning("Redemption failed", redemption_id=str(redemption_id), reason=reason)

    async def list_redemptions(
        self,
        panelist_id: UUID,
        *,
        limit: int = 25,
        offset: int = 0,
        status: RedemptionStatus | None = None,
    ) -> tuple[list[Redemption], int]:
        bounded_limit = max(1, min(limit, settings.ledger_page_max_limit))
        filters = [Redemption.panelist_id == panelist_id]
        if status is not None:
            filters.append(Redemption.status == status)

        total = int(await self._db.scalar(select(func.count()).select_from(Redemption).where(*filters)) or 0)
        stmt = (
            select(Redemption)
            .where(*filters)
            .order_by(Redemption.created_at.desc(), Redemption.id.desc())
            .offset(max(0, offset))
            .limit(bounded_limit)
        )
        rows = list((await self._db.execute(stmt)).scalars().all())
        return rows, total

    async def reconcile_pending(
        self,
        *,
        older_than: timedelta | None = None,
        limit: int | None = None,
    ) -> RedemptionReconciliation:
        """Settle pending rows left behind by an interrupted redemption."""

        age = older_than if older_than is not None else timedelta(
            seconds=settings.reconciliation_pending_redemption_age_seconds
        )
        floor = timedelta(seconds=settings.reconciliation_min_age_seconds)
        if age < floor:
            logger.info("Raised reconciliation age to the in-flight floor", requested=str(age), floor=str(floor))
            age = floor
        cutoff = datetime.now(timezone.utc) - age
        stmt = (
            select(Redemption.id)
            .where(Redemption.status == RedemptionStatus.PENDING, Redemption.created_at <= cutoff)
            .order_by(Redemption.created_at.asc())
            .limit(limit or settings.reconciliation_batch_limit)
        )
        pending_ids = list((await self._db.execute(stmt)).scalars().all())

        outcome = RedemptionReconciliation()
        redemption_ref = PointLedgerEntry.metadata_json["redemption_id"].as_string()
        for redemption_id in pending_ids:
            entry = (
                await self._db.execute(
                    select(PointLedgerEntry).where(
                        PointLedgerEntry.transaction_type == PointTransactionType.REDEMPTION,
                        redemption_ref == str(redemption_id),
                    )
                )
            ).scalar_one_or_none()
            try:
                if entry is not None:
                    await self._transition(
                        redemption_id,
                        RedemptionStatus.COMPLETED,
                        ledger_entry_id=entry.id,
                        redemption_date=entry.created_at,
                    )
                    outcome.completed.append(redemption_id)
                else:
                    await self._transition(
                        redemption_id,
                        RedemptionStatus.FAILED,
                        failure_reason="No ledger debit recorded for pending redemption",
                    )
                    outcome.failed.append(redemption_id)
            except InvalidStateError:
                # Left pending when scanned, settled by its own request since.
                logger.debug("Skipped redemption settled during reconciliation", redemption_id=str(redemption_id))
        await self._db.commit()

        store = get_points_store()
        store.record_reconciliation("redemption_completed", len(outcome.completed))
        store.record_reconciliation("redemption_failed", len(outcome.failed))
        logger.info(
            "Reconciled pending redemptions",
            completed=len(outcome.completed),
            failed=len(outcome.failed),
            cutoff=cutoff.isoformat(),
        )
        return outcome


__all__ = ["RedemptionReconciliation", "RedemptionResult", "RedemptionService"]
