"""Administrative point ledger endpoints."""

from __future__ import annotations

import math
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.rate_limit import rate_limit
from panelpoints_api.api.dependencies.session import require_permission
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.point_ledger import PointTransactionType
from panelpoints_api.models.user import User
from panelpoints_api.schemas.points import (
    IssuedTransactionResponse,
    LedgerEntryResponse,
    LedgerSearchResponse,
    ManualTransactionRequest,
    PaginationInfo,
    ProjectionAuditResponse,
)
from panelpoints_api.services.points import PointLedgerService, PointsServiceError
from panelpoints_api.services.ratelimit import RateLimitBucket


router = APIRouter(
    prefix="/admin",
    tags=["admin", "points"],
    dependencies=[Depends(rate_limit(RateLimitBucket.ADMIN))],
)

_manage_ledger = require_permission("manage_point_ledger")


@router.post("/point-ledger", response_model=IssuedTransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_ledger_entry(
    payload: ManualTransactionRequest,
    admin: User = Depends(_manage_ledger),
    db: AsyncSession = Depends(get_session),
) -> IssuedTransactionResponse:
    """Manual award or adjustment issued by an operator."""

    try:
        issued = await PointLedgerService(db).issue_transaction(
            payload.panelist_id,
            points=payload.points,
            transaction_type=payload.transaction_type,
            title=payload.title,
            description=payload.description,
            metadata=payload.metadata,
            effective_date=payload.effective_date,
            awarded_by=admin.id,
        )
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return IssuedTransactionResponse(
        entry_id=issued.entry_id,
        new_balance=issued.new_balance,
        total_earned=issued.total_earned,
        total_redeemed=issued.total_redeemed,
    )


@router.get("/point-ledger", response_model=LedgerSearchResponse, dependencies=[Depends(_manage_ledger)])
async def search_ledger_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None),
    transaction_type: str | None = Query(None, alias="transactionType"),
    panelist_id: UUID | None = Query(None, alias="panelistId"),
    db: AsyncSession = Depends(get_session),
) -> LedgerSearchResponse:
    resolved_type: PointTransactionType | None = None
    if transaction_type:
        try:
            resolved_type = PointTransactionType(transaction_type)
        except ValueError as exc:
            raise HTTPException(
                status_code=400,
                detail={"error": "invalid_input", "message": f"Unsupported transaction type: {transaction_type}"},
            ) from exc

    entries, total = await PointLedgerService(db).search_entries(
        page=page,
        limit=limit,
        search=search,
        transaction_type=resolved_type,
        panelist_id=panelist_id,
    )
    return LedgerSearchResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        pagination=PaginationInfo(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get(
    "/panelists/{panelist_id}/audit",
    response_model=ProjectionAuditResponse,
    dependencies=[Depends(_manage_ledger)],
)
async def audit_panelist_projection(
    panelist_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ProjectionAuditResponse:
    try:
        audit = await PointLedgerService(db).audit_projection(panelist_id)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return ProjectionAuditResponse(
        panelist_id=audit.panelist_id,
        consistent=audit.is_consistent,
        points_balance=audit.points_balance,
        ledger_balance=audit.ledger_balance,
        total_points_earned=audit.total_points_earned,
        ledger_earned=audit.ledger_earned,
        total_points_redeemed=audit.total_points_redeemed,
        ledger_redeemed=audit.ledger_redeemed,
        entry_count=audit.entry_count,
        drift=audit.drift,
    )
