"""Domain errors raised by the points services."""

from __future__ import annotations

from typing import Any


class PointsServiceError(RuntimeError):
    """Base exception carrying a stable error code and HTTP status."""

    code = "points_error"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.payload = dict(payload or {})

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.code, "message": self.message}
        detail.update(self.payload)
        return detail


class LedgerValidationError(PointsServiceError):
    code = "invalid_input"
    status_code = 400


class PermissionDeniedError(PointsServiceError):
    code = "insufficient_permissions"
    status_code = 403


class NotQualifiedError(PointsServiceError):
    code = "not_qualified"
    status_code = 403


class EntityNotFoundError(PointsServiceError):
    code = "not_found"
    status_code = 404


class ConflictError(PointsServiceError):
    code = "conflict"
    status_code = 409


class InsufficientBalanceError(PointsServiceError):
    """Raised when a debit would take the balance below zero."""

    code = "insufficient_points"
    status_code = 400

    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient points: {required} required, {available} available",
            payload={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class InvalidStateError(PointsServiceError):
    code = "invalid_state"
    status_code = 400


class SurveyInactiveError(InvalidStateError):
    code = "survey_inactive"


class OfferInactiveError(InvalidStateError):
    code = "offer_inactive"


class ContestNotEndedError(InvalidStateError):
    code = "contest_not_ended"


class LedgerInternalError(PointsServiceError):
    code = "internal_error"
    status_code = 500


__all__ = [
    "ConflictError",
    "ContestNotEndedError",
    "EntityNotFoundError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "LedgerInternalError",
    "LedgerValidationError",
    "NotQualifiedError",
    "OfferInactiveError",
    "PermissionDeniedError",
    "PointsServiceError",
    "SurveyInactiveError",
]
