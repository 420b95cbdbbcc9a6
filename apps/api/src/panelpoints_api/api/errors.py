"""Translate service errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from panelpoints_api.services.points.errors import PointsServiceError


def as_http_exception(error: PointsServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())
