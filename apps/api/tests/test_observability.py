from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from panelpoints_api.app import create_app
from panelpoints_api.core.settings import settings
from panelpoints_api.observability.points import PointsObservabilityStore, get_points_store


def test_store_aggregates_counters() -> None:
    store = PointsObservabilityStore()
    store.record_issuance("survey_completion", 50)
    store.record_issuance("redemption", -80)
    store.record_issuance("survey_completion", 40)
    store.record_rejection("insufficient_points")
    store.record_reconciliation("redemption_failed", 0)
    store.record_reconciliation("redemption_completed", 2)

    snapshot = store.snapshot().as_dict()

    assert snapshot["issuances"] == {"survey_completion": 2, "redemption": 1}
    assert snapshot["points"] == {"credited": 90, "debited": 80}
    assert snapshot["rejections"] == {"insufficient_points": 1}
    assert snapshot["reconciliations"] == {"redemption_completed": 2}

    store.reset()
    assert store.snapshot().as_dict()["issuances"] == {}


@pytest.mark.asyncio
async def test_points_snapshot_requires_key() -> None:
    app = create_app()

    previous_key = settings.internal_api_key
    settings.internal_api_key = "snapshot-key"

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/observability/points")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_api_key"
    finally:
        settings.internal_api_key = previous_key


@pytest.mark.asyncio
async def test_points_snapshot_and_prometheus_output() -> None:
    app = create_app()
    store = get_points_store()
    store.record_issuance("award", 500)
    store.record_conflict("prize_already_awarded")

    previous_key = settings.internal_api_key
    settings.internal_api_key = "prom-key"

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            snapshot = await client.get("/api/v1/observability/points", headers={"X-API-Key": "prom-key"})
            metrics = await client.get("/api/v1/observability/prometheus", headers={"X-API-Key": "prom-key"})
    finally:
        settings.internal_api_key = previous_key

    assert snapshot.status_code == 200
    body = snapshot.json()
    assert body["issuances"] == {"award": 1}
    assert body["conflicts"] == {"prize_already_awarded": 1}

    assert metrics.status_code == 200
    text = metrics.text
    assert 'panelpoints_ledger_issuances_total{transaction_type="award"} 1' in text
    assert 'panelpoints_ledger_points_total{direction="credited"} 500' in text
    assert 'panelpoints_conflicts_total{kind="prize_already_awarded"} 1' in text
