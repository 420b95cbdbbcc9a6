import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from panelpoints_api.app import create_app  # noqa: E402
from panelpoints_api.db.base import Base  # noqa: E402
from panelpoints_api.db.session import get_session  # noqa: E402
from panelpoints_api.models.contest import (  # noqa: E402
    Contest,
    ContestInviteType,
    ContestParticipant,
    ContestStatus,
)
from panelpoints_api.models.offer import MerchantOffer  # noqa: E402
from panelpoints_api.models.panelist import PanelistProfile  # noqa: E402
from panelpoints_api.models.survey import Survey, SurveyQualification, SurveyStatus  # noqa: E402
from panelpoints_api.models.user import User, UserRoleEnum  # noqa: E402
from panelpoints_api.observability.points import get_points_store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_points_store():
    get_points_store().reset()
    yield
    get_points_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so separate connections contend for the same rows."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'points.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


class Seeder:
    """Inserts fixture rows directly, bypassing the services under test."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def user(self, role: UserRoleEnum = UserRoleEnum.PANELIST) -> User:
        user = User(email=f"{role.value}-{uuid4().hex[:8]}@example.com", role=role.value)
        self.session.add(user)
        await self.session.flush()
        return user

    async def panelist(self) -> PanelistProfile:
        user = await self.user()
        profile = PanelistProfile(user_id=user.id, profile_data={})
        self.session.add(profile)
        await self.session.flush()
        return profile

    async def survey(
        self,
        *,
        points_reward: int = 50,
        status: SurveyStatus = SurveyStatus.ACTIVE,
        qualified: list[PanelistProfile] | None = None,
    ) -> Survey:
        survey = Survey(title=f"Survey {uuid4().hex[:6]}", points_reward=points_reward, status=status)
        self.session.add(survey)
        await self.session.flush()
        for profile in qualified or []:
            self.session.add(SurveyQualification(survey_id=survey.id, panelist_id=profile.id, is_qualified=True))
        await self.session.flush()
        return survey

    async def offer(self, *, points_required: int = 80, is_active: bool = True) -> MerchantOffer:
        offer = MerchantOffer(
            title=f"Voucher {points_required}",
            merchant_name="Corner Coffee",
            points_required=points_required,
            offer_details={},
            is_active=is_active,
        )
        self.session.add(offer)
        await self.session.flush()
        return offer

    async def contest(
        self,
        *,
        status: ContestStatus = ContestStatus.ACTIVE,
        prize_points: int = 500,
        invite_type: ContestInviteType = ContestInviteType.ALL_PANELISTS,
        start_offset: timedelta = timedelta(days=-1),
        duration: timedelta = timedelta(days=7),
    ) -> Contest:
        start = datetime.now(timezone.utc) + start_offset
        contest = Contest(
            title=f"Contest {uuid4().hex[:6]}",
            start_date=start,
            end_date=start + duration,
            prize_points=prize_points,
            status=status,
            invite_type=invite_type,
        )
        self.session.add(contest)
        await self.session.flush()
        return contest

    async def participant(
        self,
        contest: Contest,
        profile: PanelistProfile,
        *,
        points_earned: int = 0,
        joined_at: datetime | None = None,
    ) -> ContestParticipant:
        participant = ContestParticipant(
            contest_id=contest.id,
            panelist_id=profile.id,
            points_earned=points_earned,
            joined_at=joined_at or datetime.now(timezone.utc),
        )
        self.session.add(participant)
        await self.session.flush()
        return participant


@pytest.fixture
def seeder():
    return Seeder
