"""Ledger journal and the atomic transaction issuer."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Sequence, Tuple
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.settings import settings
from panelpoints_api.models.contest import Contest, ContestParticipant, ContestStatus
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.models.point_ledger import PointLedgerEntry, PointTransactionType
from panelpoints_api.observability.points import get_points_store

from .errors import (
    EntityNotFoundError,
    InsufficientBalanceError,
    LedgerInternalError,
    LedgerValidationError,
)


@dataclass
class IssuedTransaction:
    """Outcome of a successful issuance."""

    entry_id: UUID
    new_balance: int
    total_earned: int
    total_redeemed: int
    entry: PointLedgerEntry


@dataclass
class PanelistBalance:
    panelist_id: UUID
    points_balance: int
    total_points_earned: int
    total_points_redeemed: int


@dataclass
class ProjectionAudit:
    """Comparison of the cached projection against the journal."""

    panelist_id: UUID
    points_balance: int
    ledger_balance: int
    total_points_earned: int
    ledger_earned: int
    total_points_redeemed: int
    ledger_redeemed: int
    entry_count: int
    drift: dict[str, int] = field(default_factory=dict)

    @property
    def is_consistent(self) -> bool:
        return not self.drift


class PointLedgerService:
    """Records point movements and keeps the panelist balance projection in step."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def ensure_profile(self, user_id: UUID) -> PanelistProfile:
        """Fetch or create the panelist profile for a user."""

        stmt = select(PanelistProfile).where(PanelistProfile.user_id == user_id)
        profile = (await self._db.execute(stmt)).scalar_one_or_none()
        if profile:
            return profile

        profile = PanelistProfile(user_id=user_id, profile_data={})
        self._db.add(profile)
        try:
            await self._db.flush()
            logger.info("Created panelist profile", user_id=str(user_id), panelist_id=str(profile.id))
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when creating panelist profile", user_id=str(user_id))
            return await self.ensure_profile(user_id)

        await self._db.commit()
        return profile

    async def get_profile_for_user(self, user_id: UUID) -> PanelistProfile | None:
        stmt = (
            select(PanelistProfile)
            .where(PanelistProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def issue_transaction(
        self,
        panelist_id: UUID,
        *,
        points: int,
        transaction_type: PointTransactionType | str,
        title: str,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        effective_date: date | None = None,
        awarded_by: UUID | None = None,
        commit: bool = True,
    ) -> IssuedTransaction:
        """Append one ledger entry and move the cached balance in a single transaction.

        The balance check and write happen in one conditional UPDATE so concurrent
        issuances for the same panelist serialize on the profile row. With
        ``commit=False`` the caller owns the transaction and must commit or roll back.
        """

        store = get_points_store()
        if isinstance(points, bool) or not isinstance(points, int) or points == 0:
            store.record_rejection("invalid_input")
            raise LedgerValidationError("Points must be a non-zero integer")
        if not title or not title.strip():
            store.record_rejection("invalid_input")
            raise LedgerValidationError("Transaction title is required")
        try:
            transaction_type = PointTransactionType(transaction_type)
        except ValueError as exc:
            store.record_rejection("invalid_input")
            raise LedgerValidationError(f"Unknown transaction type: {transaction_type}") from exc
        if metadata is not None and not isinstance(metadata, dict):
            store.record_rejection("invalid_input")
            raise LedgerValidationError("Transaction metadata must be an object")

        effective = effective_date or datetime.now(timezone.utc).date()
        earned = points if points > 0 else 0
        redeemed = -points if points < 0 else 0

        stmt = (
            update(PanelistProfile)
            .where(
                PanelistProfile.id == panelist_id,
                PanelistProfile.points_balance + points >= 0,
            )
            .values(
                points_balance=PanelistProfile.points_balance + points,
                total_points_earned=PanelistProfile.total_points_earned + earned,
                total_points_redeemed=PanelistProfile.total_points_redeemed + redeemed,
                ledger_sequence=PanelistProfile.ledger_sequence + 1,
            )
            .returning(
                PanelistProfile.points_balance,
                PanelistProfile.total_points_earned,
                PanelistProfile.total_points_redeemed,
                PanelistProfile.ledger_sequence,
            )
            .execution_options(synchronize_session=False)
        )

        try:
            row = (await self._db.execute(stmt)).one_or_none()
            if row is None:
                available = await self._db.scalar(
                    select(PanelistProfile.points_balance).where(PanelistProfile.id == panelist_id)
                )
                if available is None:
                    store.record_rejection("panelist_not_found")
                    raise EntityNotFoundError("Panelist profile not found", code="panelist_not_found")
                store.record_rejection("insufficient_points")
                logger.info(
                    "Rejected ledger debit",
                    panelist_id=str(panelist_id),
                    required=-points,
                    available=available,
                )
                raise InsufficientBalanceError(required=-points, available=available)

            entry = PointLedgerEntry(
                panelist_id=panelist_id,
                sequence=row.ledger_sequence,
                points=points,
                balance_after=row.points_balance,
                transaction_type=transaction_type,
                title=title.strip(),
                description=description,
                metadata_json=dict(metadata or {}),
                awarded_by=awarded_by,
                created_at=datetime.now(timezone.utc),
                effective_date=effective,
            )
            self._db.add(entry)
            await self._db.flush()
            accrued = await self._accrue_contest_points(panelist_id, points, transaction_type, effective)
            if commit:
                await self._db.commit()
        except (EntityNotFoundError, InsufficientBalanceError):
            if commit:
                await self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._db.rollback()
            store.record_rejection("internal_error")
            logger.error(
                "Ledger write failed",
                panelist_id=str(panelist_id),
                transaction_type=transaction_type.value,
                error=str(exc),
            )
            raise LedgerInternalError("Failed to record ledger entry") from exc

        store.record_issuance(transaction_type.value, points)
        logger.info(
            "Recorded point ledger entry",
            panelist_id=str(panelist_id),
            entry_id=str(entry.id),
            points=points,
            transaction_type=transaction_type.value,
            balance_after=row.points_balance,
            sequence=row.ledger_sequence,
            contests_accrued=accrued,
        )
        return IssuedTransaction(
            entry_id=entry.id,
            new_balance=row.points_balance,
            total_earned=row.total_points_earned,
            total_redeemed=row.total_points_redeemed,
            entry=entry,
        )

    async def _accrue_contest_points(
        self,
        panelist_id: UUID,
        points: int,
        transaction_type: PointTransactionType,
        effective: date,
    ) -> int:
        """Credit earning entries to the panelist's participations in running contests."""

        if points <= 0 or transaction_type.value in settings.contest_accrual_excluded_types:
            return 0

        window_start = datetime.combine(effective, time.min, tzinfo=timezone.utc)
        window_end = window_start + timedelta(days=1)
        running_contests = select(Contest.id).where(
            Contest.status == ContestStatus.ACTIVE,
            Contest.start_date < window_end,
            Contest.end_date >= window_start,
        )
        stmt = (
            update(ContestParticipant)
            .where(
                ContestParticipant.panelist_id == panelist_id,
                ContestParticipant.contest_id.in_(running_contests),
            )
            .values(points_earned=ContestParticipant.points_earned + points)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount or 0

    async def get_balance(self, panelist_id: UUID) -> PanelistBalance:
        stmt = (
            select(PanelistProfile)
            .where(PanelistProfile.id == panelist_id)
            .execution_options(populate_existing=True)
        )
        profile = (await self._db.execute(stmt)).scalar_one_or_none()
        if profile is None:
            raise EntityNotFoundError("Panelist profile not found", code="panelist_not_found")
        return PanelistBalance(
            panelist_id=profile.id,
            points_balance=profile.points_balance,
            total_points_earned=profile.total_points_earned,
            total_points_redeemed=profile.total_points_redeemed,
        )

    async def list_entries(
        self,
        panelist_id: UUID,
        *,
        limit: int = 25,
        cursor: Tuple[int, UUID] | None = None,
        transaction_types: Sequence[PointTransactionType] | None = None,
    ) -> tuple[list[PointLedgerEntry], Tuple[int, UUID] | None]:
        """Return a page of a panelist's entries, newest first."""

        bounded_limit = max(1, min(limit, settings.ledger_page_max_limit))
        stmt = (
            select(PointLedgerEntry)
            .where(PointLedgerEntry.panelist_id == panelist_id)
            .order_by(PointLedgerEntry.sequence.desc())
        )
        if transaction_types:
            stmt = stmt.where(PointLedgerEntry.transaction_type.in_(list(transaction_types)))
        if cursor:
            cursor_sequence, _ = cursor
            stmt = stmt.where(PointLedgerEntry.sequence < cursor_sequence)

        stmt = stmt.limit(bounded_limit + 1)
        rows = list((await self._db.execute(stmt)).scalars().all())
        has_more = len(rows) > bounded_limit
        entries = rows[:bounded_limit]
        next_cursor: Tuple[int, UUID] | None = None
        if has_more and entries:
            tail = entries[-1]
            next_cursor = (tail.sequence, tail.id)
        return entries, next_cursor

    async def search_entries(
        self,
        *,
        page: int = 1,
        limit: int = 50,
        search: str | None = None,
        transaction_type: PointTransactionType | None = None,
        panelist_id: UUID | None = None,
    ) -> tuple[list[PointLedgerEntry], int]:
        """Admin search across all panelists, returning the page and the total match count."""

        bounded_limit = max(1, min(limit, settings.ledger_page_max_limit))
        bounded_page = max(1, page)

        filters = []
        if panelist_id is not None:
            filters.append(PointLedgerEntry.panelist_id == panelist_id)
        if transaction_type is not None:
            filters.append(PointLedgerEntry.transaction_type == transaction_type)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    PointLedgerEntry.title.ilike(pattern),
                    PointLedgerEntry.description.ilike(pattern),
                )
            )

        count_stmt = select(func.count()).select_from(PointLedgerEntry).where(*filters)
        total = int(await self._db.scalar(count_stmt) or 0)

        stmt = (
            select(PointLedgerEntry)
            .where(*filters)
            .order_by(PointLedgerEntry.created_at.desc(), PointLedgerEntry.sequence.desc())
            .offset((bounded_page - 1) * bounded_limit)
            .limit(bounded_limit)
        )
        entries = list((await self._db.execute(stmt)).scalars().all())
        return entries, total

    async def audit_projection(self, panelist_id: UUID) -> ProjectionAudit:
        """Recompute the balance projection from the journal and report any drift."""

        balance = await self.get_balance(panelist_id)

        sums_stmt = select(
            func.coalesce(func.sum(case((PointLedgerEntry.points > 0, PointLedgerEntry.points), else_=0)), 0),
            func.coalesce(func.sum(case((PointLedgerEntry.points < 0, -PointLedgerEntry.points), else_=0)), 0),
            func.count(PointLedgerEntry.id),
        ).where(PointLedgerEntry.panelist_id == panelist_id)
        earned, redeemed, count = (await self._db.execute(sums_stmt)).one()

        latest_stmt = (
            select(PointLedgerEntry.balance_after)
            .where(PointLedgerEntry.panelist_id == panelist_id)
            .order_by(PointLedgerEntry.sequence.desc())
            .limit(1)
        )
        ledger_balance = await self._db.scalar(latest_stmt) or 0

        audit = ProjectionAudit(
            panelist_id=panelist_id,
            points_balance=balance.points_balance,
            ledger_balance=int(ledger_balance),
            total_points_earned=balance.total_points_earned,
            ledger_earned=int(earned),
            total_points_redeemed=balance.total_points_redeemed,
            ledger_redeemed=int(redeemed),
            entry_count=int(count),
        )
        if audit.points_balance != audit.ledger_balance:
            audit.drift["points_balance"] = audit.points_balance - audit.ledger_balance
        if audit.total_points_earned != audit.ledger_earned:
            audit.drift["total_points_earned"] = audit.total_points_earned - audit.ledger_earned
        if audit.total_points_redeemed != audit.ledger_redeemed:
            audit.drift["total_points_redeemed"] = audit.total_points_redeemed - audit.ledger_redeemed

        if not audit.is_consistent:
            logger.warning("Balance projection drift detected", panelist_id=str(panelist_id), drift=audit.drift)
        return audit


def encode_ledger_cursor(sequence: int, identifier: UUID) -> str:
    """Encode pagination cursor for ledger queries."""

    payload = f"{sequence}|{identifier}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("utf-8")


def decode_ledger_cursor(cursor: str) -> Tuple[int, UUID]:
    """Decode pagination cursor into sequence and UUID parts."""

    raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
    sequence_str, identifier_str = raw.split("|", 1)
    return int(sequence_str), UUID(identifier_str)
