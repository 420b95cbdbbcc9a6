"""Observability endpoints for ledger counters and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from panelpoints_api.api.dependencies.security import require_internal_api_key
from panelpoints_api.observability.points import get_points_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/points",
    dependencies=[Depends(require_internal_api_key)],
    summary="Point ledger observability snapshot",
)
async def get_points_snapshot() -> dict[str, object]:
    return get_points_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


_LABELLED_SERIES = (
    ("issuances", "panelpoints_ledger_issuances_total", "Ledger entries written by transaction type", "transaction_type"),
    ("points", "panelpoints_ledger_points_total", "Points moved by direction", "direction"),
    ("rejections", "panelpoints_ledger_rejections_total", "Issuances rejected by reason", "reason"),
    ("conflicts", "panelpoints_conflicts_total", "Duplicate awards and completions refused", "kind"),
    ("compensations", "panelpoints_compensations_total", "Compensating deletes after failed awards", "flow"),
    ("reconciliations", "panelpoints_reconciliations_total", "Rows settled by reconciliation", "outcome"),
    ("rate_limited", "panelpoints_rate_limited_total", "Requests refused by rate limiting", "bucket"),
)


@router.get(
    "/prometheus",
    dependencies=[Depends(require_internal_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_points_store().snapshot().as_dict()

    lines: list[str] = []
    for key, metric, description, label in _LABELLED_SERIES:
        series: dict[str, int] = snapshot.get(key, {})  # type: ignore[assignment]
        for label_value, value in sorted(series.items()):
            lines.extend(_format_metric(metric, description, value, labels={label: label_value}))

    return PlainTextResponse("\n".join(lines) + "\n")
