"""Seed development users, panelists, a survey and an offer into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from panelpoints_api.core.settings import settings
from panelpoints_api.models.offer import MerchantOffer
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.models.survey import Survey, SurveyQualification, SurveyStatus
from panelpoints_api.models.user import User


class SeedUser(TypedDict):
    email: str
    role: str


DEV_USERS: list[SeedUser] = [
    {"email": os.getenv("DEV_PANELIST_EMAIL", "panelist@panelpoints.dev").lower(), "role": "panelist"},
    {"email": os.getenv("DEV_SURVEY_ADMIN_EMAIL", "surveys@panelpoints.dev").lower(), "role": "survey_admin"},
    {"email": os.getenv("DEV_SYSTEM_ADMIN_EMAIL", "admin@panelpoints.dev").lower(), "role": "system_admin"},
]

DEV_SURVEY_TITLE = "Household shopping habits"
DEV_OFFER_TITLE = "$5 coffee voucher"


async def seed_users(session: AsyncSession) -> list[User]:
    users: list[User] = []
    for seed in DEV_USERS:
        with session.no_autoflush:
            existing = await session.execute(select(User).where(User.email == seed["email"]))
        record = existing.scalar_one_or_none()
        if record:
            record.role = seed["role"]
        else:
            record = User(email=seed["email"], role=seed["role"])
            session.add(record)
        users.append(record)
    await session.flush()

    for user in users:
        if user.role != "panelist":
            continue
        profile = await session.scalar(select(PanelistProfile).where(PanelistProfile.user_id == user.id))
        if profile is None:
            session.add(PanelistProfile(user_id=user.id, profile_data={}))
    await session.commit()
    return users


async def seed_rewards(session: AsyncSession) -> None:
    survey = await session.scalar(select(Survey).where(Survey.title == DEV_SURVEY_TITLE))
    if survey is None:
        survey = Survey(title=DEV_SURVEY_TITLE, points_reward=50, status=SurveyStatus.ACTIVE)
        session.add(survey)
        await session.flush()

    profiles = (await session.execute(select(PanelistProfile))).scalars().all()
    for profile in profiles:
        verdict = await session.scalar(
            select(SurveyQualification).where(
                SurveyQualification.survey_id == survey.id,
                SurveyQualification.panelist_id == profile.id,
            )
        )
        if verdict is None:
            session.add(SurveyQualification(survey_id=survey.id, panelist_id=profile.id, is_qualified=True))

    offer = await session.scalar(select(MerchantOffer).where(MerchantOffer.title == DEV_OFFER_TITLE))
    if offer is None:
        session.add(
            MerchantOffer(
                title=DEV_OFFER_TITLE,
                merchant_name="Corner Coffee",
                points_required=80,
                offer_details={"currency": "USD", "value": 5},
            )
        )
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_users(session)
            await seed_rewards(session)
        print("Development panelists, survey and offer ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
