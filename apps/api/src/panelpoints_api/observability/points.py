from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class PointsSnapshot:
    issuances: Dict[str, int]
    points: Dict[str, int]
    rejections: Dict[str, int]
    conflicts: Dict[str, int]
    compensations: Dict[str, int]
    reconciliations: Dict[str, int]
    rate_limited: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "issuances": dict(self.issuances),
            "points": dict(self.points),
            "rejections": dict(self.rejections),
            "conflicts": dict(self.conflicts),
            "compensations": dict(self.compensations),
            "reconciliations": dict(self.reconciliations),
            "rate_limited": dict(self.rate_limited),
        }


class PointsObservabilityStore:
    """Collect ledger and settlement counters for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._issuances: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._conflicts: Dict[str, int] = defaultdict(int)
        self._compensations: Dict[str, int] = defaultdict(int)
        self._reconciliations: Dict[str, int] = defaultdict(int)
        self._rate_limited: Dict[str, int] = defaultdict(int)

    def record_issuance(self, transaction_type: str, points: int) -> None:
        with self._lock:
            self._issuances[transaction_type] += 1
            direction = "credited" if points > 0 else "debited"
            self._points[direction] += abs(points)

    def record_rejection(self, reason: str) -> None:
        with self._lock:
            self._rejections[reason] += 1

    def record_conflict(self, kind: str) -> None:
        with self._lock:
            self._conflicts[kind] += 1

    def record_compensation(self, flow: str) -> None:
        with self._lock:
            self._compensations[flow] += 1

    def record_reconciliation(self, outcome: str, count: int = 1) -> None:
        if count <= 0:
            return
        with self._lock:
            self._reconciliations[outcome] += count

    def record_rate_limited(self, bucket: str) -> None:
        with self._lock:
            self._rate_limited[bucket] += 1

    def snapshot(self) -> PointsSnapshot:
        with self._lock:
            return PointsSnapshot(
                issuances=dict(self._issuances),
                points=dict(self._points),
                rejections=dict(self._rejections),
                conflicts=dict(self._conflicts),
                compensations=dict(self._compensations),
                reconciliations=dict(self._reconciliations),
                rate_limited=dict(self._rate_limited),
            )

    def reset(self) -> None:
        with self._lock:
            self._issuances.clear()
            self._points.clear()
            self._rejections.clear()
            self._conflicts.clear()
            self._compensations.clear()
            self._reconciliations.clear()
            self._rate_limited.clear()


_STORE = PointsObservabilityStore()


def get_points_store() -> PointsObservabilityStore:
    return _STORE


__all__ = ["get_points_store", "PointsObservabilityStore", "PointsSnapshot"]
