from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from panelpoints_api.models.contest import ContestInviteType, ContestParticipant, ContestStatus
from panelpoints_api.services.contests import LeaderboardService
from panelpoints_api.services.points import PermissionDeniedError


@pytest.mark.asyncio
async def test_recalculate_breaks_ties_by_earliest_join(session_factory, seeder) -> None:
    t1 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
    t2 = t1 + timedelta(minutes=5)
    t3 = t1 + timedelta(minutes=10)

    async with session_factory() as session:
        seed = seeder(session)
        contest = await seed.contest(status=ContestStatus.ENDED)
        first, second, third = await seed.panelist(), await seed.panelist(), await seed.panelist()
        await seed.participant(contest, first, points_earned=30, joined_at=t1)
        await seed.participant(contest, second, points_earned=10, joined_at=t2)
        await seed.participant(contest, third, points_earned=30, joined_at=t3)
        await session.commit()

        entries = await LeaderboardService(session).recalculate(contest.id)

    assert [(entry.rank, entry.panelist_id, entry.points_earned) for entry in entries] == [
        (1, first.id, 30),
        (2, third.id, 30),
        (3, second.id, 10),
    ]


@pytest.mark.asyncio
async def test_active_leaderboard_is_recomputed_on_read(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        contest = await seed.contest()
        leader, chaser = await seed.panelist(), await seed.panelist()
        await seed.participant(contest, leader, points_earned=20)
        await seed.participant(contest, chaser, points_earned=5)
        await session.commit()
        contest_id, leader_id, chaser_id = contest.id, leader.id, chaser.id

        service = LeaderboardService(session)
        await service.recalculate(contest_id)

        await session.execute(
            update(ContestParticipant)
            .where(ContestParticipant.panelist_id == chaser_id)
            .values(points_earned=50)
        )
        await session.commit()

        view = await service.leaderboard(contest_id, viewer_panelist_id=chaser_id)

    assert [entry.panelist_id for entry in view.entries] == [chaser_id, leader_id]
    assert [entry.rank for entry in view.entries] == [1, 2]
    assert view.total_participants == 2
    assert view.user_rank == 1
    assert view.user_points == 50
    assert view.contest_status == ContestStatus.ACTIVE


@pytest.mark.asyncio
async def test_ended_leaderboard_reads_stored_ranks(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        contest = await seed.contest(status=ContestStatus.ENDED)
        winner, runner_up = await seed.panelist(), await seed.panelist()
        await seed.participant(contest, winner, points_earned=40)
        await seed.participant(contest, runner_up, points_earned=15)
        await session.commit()
        contest_id, winner_id = contest.id, winner.id

        service = LeaderboardService(session)
        await service.recalculate(contest_id)
        await session.execute(
            update(ContestParticipant)
            .where(ContestParticipant.panelist_id == runner_up.id)
            .values(points_earned=99)
        )
        await session.commit()

        view = await service.leaderboard(contest_id, limit=1)

    assert [entry.panelist_id for entry in view.entries] == [winner_id]
    assert view.total_participants == 2
    assert view.user_rank is None


@pytest.mark.asyncio
async def test_selected_leaderboard_hidden_from_uninvited_viewers(session_factory, seeder) -> None:
    async with session_factory() as session:
        seed = seeder(session)
        contest = await seed.contest(invite_type=ContestInviteType.SELECTED_PANELISTS)
        outsider = await seed.panelist()
        await session.commit()

        service = LeaderboardService(session)
        with pytest.raises(PermissionDeniedError) as excinfo:
            await service.leaderboard(contest.id, viewer_panelist_id=outsider.id)
        assert excinfo.value.code == "not_invited"

        view = await service.leaderboard(contest.id, is_admin=True)
        assert view.entries == []
