import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from panelpoints_api.core.settings import settings
from panelpoints_api.models.offer import Redemption, RedemptionStatus
from panelpoints_api.models.point_ledger import PointLedgerEntry, PointTransactionType
from panelpoints_api.services.points import (
    ConflictError,
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    OfferInactiveError,
    PointLedgerService,
    RedemptionResult,
    RedemptionService,
    SurveyCompletionService,
)


@pytest.mark.asyncio
async def test_survey_earnings_fund_redemption_after_rejection(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        first_survey = await seed.survey(points_reward=50, qualified=[profile])
        second_survey = await seed.survey(points_reward=40, qualified=[profile])
        offer = await seed.offer(points_required=80)
        await session.commit()
        profile_id, offer_id = profile.id, offer.id
        first_id, second_id = first_survey.id, second_survey.id

        surveys = SurveyCompletionService(session)
        redemptions = RedemptionService(session)
        ledger = PointLedgerService(session)

        completed = await surveys.complete_survey(profile_id, first_id)
        assert completed.new_balance == 50

        with pytest.raises(InsufficientBalanceError) as excinfo:
            await redemptions.redeem(profile_id, offer_id)
        assert excinfo.value.payload == {"required": 80, "available": 50}
        assert (await ledger.get_balance(profile_id)).points_balance == 50

        completed = await surveys.complete_survey(profile_id, second_id)
        assert completed.new_balance == 90

        result = await redemptions.redeem(profile_id, offer_id)
        assert result.points_spent == 80
        assert result.new_balance == 10
        assert result.total_redeemed == 80

        balance = await ledger.get_balance(profile_id)
        assert balance.points_balance == 10
        assert balance.total_points_earned == 90
        assert balance.total_points_redeemed == 80

        rows, total = await redemptions.list_redemptions(profile_id)
        assert total == 1
        assert rows[0].status == RedemptionStatus.COMPLETED
        assert rows[0].ledger_entry_id is not None
        assert rows[0].redemption_date is not None


@pytest.mark.asyncio
async def test_redeem_with_exact_balance_reaches_zero(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=80)
        await session.commit()
        profile_id = profile.id

        await PointLedgerService(session).issue_transaction(
            profile_id,
            points=80,
            transaction_type=PointTransactionType.BONUS,
            title="Seed",
        )
        result = await RedemptionService(session).redeem(profile_id, offer.id)

        assert result.new_balance == 0


@pytest.mark.asyncio
async def test_redeem_rejects_missing_and_inactive_offers(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        retired = await seed.offer(points_required=10, is_active=False)
        await session.commit()

        service = RedemptionService(session)
        with pytest.raises(OfferInactiveError):
            await service.redeem(profile.id, retired.id)

        with pytest.raises(EntityNotFoundError) as excinfo:
            await service.redeem(profile.id, uuid4())
        assert excinfo.value.code == "offer_not_found"

        assert await session.scalar(select(func.count()).select_from(Redemption)) == 0


@pytest.mark.asyncio
async def test_terminal_redemptions_cannot_transition(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=5)
        await session.commit()
        profile_id = profile.id

        await PointLedgerService(session).issue_transaction(profile_id, points=5, transaction_type="bonus", title="Seed")
        service = RedemptionService(session)
        result = await service.redeem(profile_id, offer.id)

        with pytest.raises(InvalidStateError) as excinfo:
            await service.fail_redemption(result.redemption_id, reason="late failure")
        assert excinfo.value.code == "invalid_transition"

        with pytest.raises(EntityNotFoundError):
            await service.fail_redemption(uuid4(), reason="missing")


@pytest.mark.asyncio
async def test_reconcile_pending_settles_stale_rows(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=20)
        await session.commit()
        profile_id, offer_id = profile.id, offer.id

        stale = datetime.now(timezone.utc) - timedelta(hours=1)
        debited = Redemption(
            panelist_id=profile_id,
            offer_id=offer_id,
            points_spent=20,
            status=RedemptionStatus.PENDING,
            created_at=stale,
        )
        abandoned = Redemption(
            panelist_id=profile_id,
            offer_id=offer_id,
            points_spent=20,
            status=RedemptionStatus.PENDING,
            created_at=stale,
        )
        fresh = Redemption(
            panelist_id=profile_id,
            offer_id=offer_id,
            points_spent=20,
            status=RedemptionStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        session.add_all([debited, abandoned, fresh])
        await session.commit()
        debited_id, abandoned_id, fresh_id = debited.id, abandoned.id, fresh.id

        ledger = PointLedgerService(session)
        await ledger.issue_transaction(profile_id, points=20, transaction_type="bonus", title="Seed")
        debit = await ledger.issue_transaction(
            profile_id,
            points=-20,
            transaction_type=PointTransactionType.REDEMPTION,
            title="Redeemed",
            metadata={"offer_id": str(offer_id), "redemption_id": str(debited_id)},
        )

        outcome = await RedemptionService(session).reconcile_pending(older_than=timedelta(minutes=15))

        assert outcome.completed == [debited_id]
        assert outcome.failed == [abandoned_id]

        statuses = dict(
            (await session.execute(select(Redemption.id, Redemption.status))).all()
        )
        assert statuses[debited_id] == RedemptionStatus.COMPLETED
        assert statuses[abandoned_id] == RedemptionStatus.FAILED
        assert statuses[fresh_id] == RedemptionStatus.PENDING

        ledger_entry_id = await session.scalar(select(Redemption.ledger_entry_id).where(Redemption.id == debited_id))
        assert ledger_entry_id == debit.entry_id


@pytest.mark.asyncio
async def test_concurrent_redemptions_spend_balance_once(file_session_factory, seeder) -> None:
    async with file_session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=80)
        await session.commit()
        profile_id, offer_id = profile.id, offer.id
        await PointLedgerService(session).issue_transaction(profile_id, points=100, transaction_type="bonus", title="Seed")

    async def attempt():
        async with file_session_factory() as session:
            return await RedemptionService(session).redeem(profile_id, offer_id)

    outcomes = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert len([outcome for outcome in outcomes if isinstance(outcome, RedemptionResult)]) == 1
    rejected = [outcome for outcome in outcomes if isinstance(outcome, InsufficientBalanceError)]
    assert len(rejected) == 1
    assert rejected[0].payload == {"required": 80, "available": 20}

    async with file_session_factory() as session:
        assert (await PointLedgerService(session).get_balance(profile_id)).points_balance == 20
        rows = (await session.execute(select(Redemption.status))).scalars().all()
        assert rows == [RedemptionStatus.COMPLETED]


@pytest.mark.asyncio
async def test_redemption_settled_mid_debit_rolls_the_debit_back(file_session_factory, seeder, monkeypatch) -> None:
    monkeypatch.setattr(settings, "reconciliation_min_age_seconds", 0)

    async with file_session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=80)
        await session.commit()
        profile_id, offer_id = profile.id, offer.id
        await PointLedgerService(session).issue_transaction(profile_id, points=100, transaction_type="bonus", title="Seed")

    class SweptLedger(PointLedgerService):
        """A reconciliation sweep fails the pending row just before the debit is written."""

        async def issue_transaction(self, panelist_id, **kwargs):  # type: ignore[override]
            async with file_session_factory() as other:
                swept = await RedemptionService(other).reconcile_pending(older_than=timedelta(0))
            assert len(swept.failed) == 1
            return await super().issue_transaction(panelist_id, **kwargs)

    async with file_session_factory() as session:
        with pytest.raises(ConflictError) as excinfo:
            await RedemptionService(session, ledger=SweptLedger(session)).redeem(profile_id, offer_id)
        assert excinfo.value.code == "redemption_already_settled"

        balance = await PointLedgerService(session).get_balance(profile_id)
        assert balance.points_balance == 100
        assert balance.total_points_redeemed == 0

        debits = await session.scalar(
            select(func.count())
            .select_from(PointLedgerEntry)
            .where(PointLedgerEntry.transaction_type == PointTransactionType.REDEMPTION)
        )
        assert debits == 0

        rows = (await session.execute(select(Redemption.status, Redemption.ledger_entry_id))).all()
        assert [tuple(row) for row in rows] == [(RedemptionStatus.FAILED, None)]


@pytest.mark.asyncio
async def test_reconcile_leaves_in_flight_redemptions_alone(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        offer = await seed.offer(points_required=20)
        session.add(
            Redemption(
                panelist_id=profile.id,
                offer_id=offer.id,
                points_spent=20,
                status=RedemptionStatus.PENDING,
                created_at=datetime.now(timezone.utc) - timedelta(seconds=30),
            )
        )
        await session.commit()

        outcome = await RedemptionService(session).reconcile_pending(older_than=timedelta(0))

        assert outcome.as_dict() == {"completed": [], "failed": []}
        status = await session.scalar(select(Redemption.status))
        assert status == RedemptionStatus.PENDING
