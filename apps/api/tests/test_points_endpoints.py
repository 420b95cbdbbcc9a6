from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from panelpoints_api.models.offer import Redemption, RedemptionStatus
from panelpoints_api.models.survey import SurveyCompletion
from panelpoints_api.models.user import UserRoleEnum


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(user_id) -> dict[str, str]:
    return {"X-Session-User": str(user_id)}


@pytest.mark.asyncio
async def test_survey_completion_endpoint_awards_once(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        profile = await seed.panelist()
        survey = await seed.survey(points_reward=50, qualified=[profile])
        await session.commit()

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/surveys/{survey.id}/complete",
            json={"responses": [{"questionId": "q1", "responseValue": "yes"}]},
            headers=_as(profile.user_id),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["pointsEarned"] == 50
        assert body["newBalance"] == 50

        duplicate = await client.post(f"/api/v1/surveys/{survey.id}/complete", json={}, headers=_as(profile.user_id))
        assert duplicate.status_code == 409
        assert duplicate.json()["detail"]["error"] == "already_completed"

        balance = await client.get("/api/v1/points/balance", headers=_as(profile.user_id))
        assert balance.status_code == 200
        assert balance.json()["pointsBalance"] == 50
        assert balance.json()["totalPointsEarned"] == 50


@pytest.mark.asyncio
async def test_redemption_endpoint_reports_shortfall(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        user = await seed.user()
        offer = await seed.offer(points_required=80)
        await session.commit()

    async with _client(app) as client:
        response = await client.post("/api/v1/redemptions", json={"offerId": str(offer.id)}, headers=_as(user.id))
        assert response.status_code == 400
        assert response.json()["detail"] == {
            "error": "insufficient_points",
            "message": "Insufficient points: 80 required, 0 available",
            "required": 80,
            "available": 0,
        }

        history = await client.get("/api/v1/redemptions", headers=_as(user.id))
        assert history.status_code == 200
        assert history.json() == {"redemptions": [], "total": 0}


@pytest.mark.asyncio
async def test_session_and_permission_checks(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        panelist_user = await seed.user()
        survey_admin = await seed.user(UserRoleEnum.SURVEY_ADMIN)
        survey = await seed.survey()
        await session.commit()

    payload = {"panelistId": "00000000-0000-0000-0000-000000000000", "points": 10, "title": "Goodwill"}
    async with _client(app) as client:
        anonymous = await client.get("/api/v1/points/balance")
        assert anonymous.status_code == 401
        assert anonymous.json()["detail"]["error"] == "authentication_required"

        malformed = await client.get("/api/v1/points/balance", headers={"X-Session-User": "not-a-uuid"})
        assert malformed.status_code == 400

        forbidden = await client.post("/api/v1/admin/point-ledger", json=payload, headers=_as(panelist_user.id))
        assert forbidden.status_code == 403
        assert forbidden.json()["detail"]["error"] == "insufficient_permissions"

        admin_completion = await client.post(
            f"/api/v1/surveys/{survey.id}/complete",
            json={},
            headers=_as(survey_admin.id),
        )
        assert admin_completion.status_code == 403

        reconcile = await client.get("/api/v1/admin/reconciliation/completions", headers=_as(survey_admin.id))
        assert reconcile.status_code == 403

        missing_panelist = await client.post("/api/v1/admin/point-ledger", json=payload, headers=_as(survey_admin.id))
        assert missing_panelist.status_code == 404
        assert missing_panelist.json()["detail"]["error"] == "panelist_not_found"


@pytest.mark.asyncio
async def test_admin_ledger_issue_search_and_panelist_history(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        admin = await seed.user(UserRoleEnum.SYSTEM_ADMIN)
        profile = await seed.panelist()
        await session.commit()

    async with _client(app) as client:
        for index in range(3):
            created = await client.post(
                "/api/v1/admin/point-ledger",
                json={
                    "panelistId": str(profile.id),
                    "points": 10,
                    "transactionType": "bonus",
                    "title": f"Streak bonus {index}",
                    "metadata": {"streak": index},
                },
                headers=_as(admin.id),
            )
            assert created.status_code == 201
        assert created.json()["newBalance"] == 30

        overdraw = await client.post(
            "/api/v1/admin/point-ledger",
            json={"panelistId": str(profile.id), "points": -31, "transactionType": "system_adjustment", "title": "Fix"},
            headers=_as(admin.id),
        )
        assert overdraw.status_code == 400
        assert overdraw.json()["detail"]["available"] == 30

        search = await client.get(
            "/api/v1/admin/point-ledger",
            params={"search": "streak", "panelistId": str(profile.id), "limit": 2},
            headers=_as(admin.id),
        )
        assert search.status_code == 200
        assert search.json()["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

        first = await client.get("/api/v1/points/ledger", params={"limit": 2}, headers=_as(profile.user_id))
        assert first.status_code == 200
        window = first.json()
        assert [entry["sequence"] for entry in window["entries"]] == [3, 2]
        assert window["entries"][0]["metadata"] == {"streak": 2}
        assert window["entries"][0]["awardedBy"] == str(admin.id)

        rest = await client.get(
            "/api/v1/points/ledger",
            params={"limit": 2, "cursor": window["nextCursor"]},
            headers=_as(profile.user_id),
        )
        assert [entry["sequence"] for entry in rest.json()["entries"]] == [1]
        assert rest.json()["nextCursor"] is None

        bad_cursor = await client.get("/api/v1/points/ledger", params={"cursor": "%%%"}, headers=_as(profile.user_id))
        assert bad_cursor.status_code == 400

        audit = await client.get(f"/api/v1/admin/panelists/{profile.id}/audit", headers=_as(admin.id))
        assert audit.status_code == 200
        assert audit.json()["consistent"] is True
        assert audit.json()["ledgerBalance"] == 30


@pytest.mark.asyncio
async def test_contest_endpoints_run_to_prize(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        admin = await seed.user(UserRoleEnum.SURVEY_ADMIN)
        profile = await seed.panelist()
        await session.commit()

    start = datetime.now(timezone.utc) + timedelta(minutes=1)
    async with _client(app) as client:
        created = await client.post(
            "/api/v1/admin/contests",
            json={
                "title": "Weekend blitz",
                "startDate": start.isoformat(),
                "endDate": (start + timedelta(days=2)).isoformat(),
                "prizePoints": 150,
            },
            headers=_as(admin.id),
        )
        assert created.status_code == 201
        contest_id = created.json()["id"]
        assert created.json()["status"] == "draft"

        forbidden = await client.post(f"/api/v1/admin/contests/{contest_id}/start", headers=_as(profile.user_id))
        assert forbidden.status_code == 403

        started = await client.post(f"/api/v1/admin/contests/{contest_id}/start", headers=_as(admin.id))
        assert started.status_code == 200
        assert started.json()["status"] == "active"

        joined = await client.post(f"/api/v1/contests/{contest_id}/join", headers=_as(profile.user_id))
        assert joined.status_code == 201
        assert joined.json()["rank"] == 1

        again = await client.post(f"/api/v1/contests/{contest_id}/join", headers=_as(profile.user_id))
        assert again.status_code == 409

        board = await client.get(f"/api/v1/contests/{contest_id}/leaderboard", headers=_as(profile.user_id))
        assert board.status_code == 200
        assert board.json()["totalParticipants"] == 1
        assert board.json()["userRank"] == 1
        assert board.json()["contestStatus"] == "active"

        early = await client.post(
            f"/api/v1/admin/contests/{contest_id}/award-prize",
            json={"panelistId": str(profile.id)},
            headers=_as(admin.id),
        )
        assert early.status_code == 400
        assert early.json()["detail"]["error"] == "contest_not_ended"

        ended = await client.post(f"/api/v1/admin/contests/{contest_id}/end", headers=_as(admin.id))
        assert ended.json()["status"] == "ended"

        awarded = await client.post(
            f"/api/v1/admin/contests/{contest_id}/award-prize",
            json={"panelistId": str(profile.id)},
            headers=_as(admin.id),
        )
        assert awarded.status_code == 200
        assert awarded.json()["pointsAwarded"] == 150
        assert awarded.json()["newBalance"] == 150

        repeat = await client.post(
            f"/api/v1/admin/contests/{contest_id}/award-prize",
            json={"panelistId": str(profile.id)},
            headers=_as(admin.id),
        )
        assert repeat.status_code == 409
        assert repeat.json()["detail"]["error"] == "already_awarded"


@pytest.mark.asyncio
async def test_reconciliation_endpoints_repair_and_settle(app_with_db, seeder) -> None:
    app, session_factory = app_with_db

    async with session_factory() as session:
        seed = seeder(session)
        operator = await seed.user(UserRoleEnum.SYSTEM_ADMIN)
        profile = await seed.panelist()
        survey = await seed.survey(points_reward=35, qualified=[profile])
        offer = await seed.offer(points_required=20)
        orphan = SurveyCompletion(
            survey_id=survey.id,
            panelist_id=profile.id,
            points_earned=35,
            response_data={},
            completed_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        stuck = Redemption(
            panelist_id=profile.id,
            offer_id=offer.id,
            points_spent=20,
            status=RedemptionStatus.PENDING,
            created_at=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        session.add_all([orphan, stuck])
        await session.commit()

    async with _client(app) as client:
        listed = await client.get("/api/v1/admin/reconciliation/completions", headers=_as(operator.id))
        assert listed.status_code == 200
        assert [item["id"] for item in listed.json()] == [str(orphan.id)]

        repaired = await client.post(
            f"/api/v1/admin/reconciliation/completions/{orphan.id}/repair",
            headers=_as(operator.id),
        )
        assert repaired.status_code == 200
        assert repaired.json()["newBalance"] == 35

        twice = await client.post(
            f"/api/v1/admin/reconciliation/completions/{orphan.id}/repair",
            headers=_as(operator.id),
        )
        assert twice.status_code == 409

        settled = await client.post(
            "/api/v1/admin/reconciliation/redemptions",
            json={"olderThanSeconds": 600},
            headers=_as(operator.id),
        )
        assert settled.status_code == 200
        assert settled.json() == {"completed": [], "failed": [str(stuck.id)]}
