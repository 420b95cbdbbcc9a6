"""Panelist balance and ledger history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.session import require_panelist_profile
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.models.point_ledger import PointTransactionType
from panelpoints_api.schemas.points import BalanceResponse, LedgerEntryResponse, LedgerWindowResponse
from panelpoints_api.services.points import (
    PointLedgerService,
    PointsServiceError,
    decode_ledger_cursor,
    encode_ledger_cursor,
)


router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=BalanceResponse)
async def get_points_balance(
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> BalanceResponse:
    try:
        balance = await PointLedgerService(db).get_balance(profile.id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return BalanceResponse(
        panelist_id=balance.panelist_id,
        points_balance=balance.points_balance,
        total_points_earned=balance.total_points_earned,
        total_points_redeemed=balance.total_points_redeemed,
    )


@router.get("/ledger", response_model=LedgerWindowResponse)
async def list_points_ledger(
    limit: int = Query(25, ge=1, le=100),
    cursor: str | None = Query(None, description="Opaque cursor for pagination"),
    types: list[str] | None = Query(None, description="Filter by transaction types"),
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> LedgerWindowResponse:
    """Return the caller's ledger entries, newest first."""

    transaction_types: list[PointTransactionType] | None = None
    if types:
        transaction_types = []
        for value in types:
            try:
                transaction_types.append(PointTransactionType(value))
            except ValueError as exc:
                raise HTTPException(
                    status_code=400,
                    detail={"error": "invalid_input", "message": f"Unsupported transaction type: {value}"},
                ) from exc

    decoded_cursor = None
    if cursor:
        try:
            decoded_cursor = decode_ledger_cursor(cursor)
        except ValueError as exc:
            raise HTTPException(
                status_code=400,
                detail={"error": "invalid_input", "message": "Invalid ledger cursor"},
            ) from exc

    entries, next_cursor = await PointLedgerService(db).list_entries(
        profile.id,
        limit=limit,
        cursor=decoded_cursor,
        transaction_types=transaction_types,
    )
    return LedgerWindowResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        next_cursor=encode_ledger_cursor(*next_cursor) if next_cursor else None,
    )
