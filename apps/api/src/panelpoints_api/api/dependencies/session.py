"""Session-aware dependencies resolving the forwarded caller identity."""

from __future__ import annotations

from typing import Awaitable, Callable
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.core.logging import bind_caller
from panelpoints_api.db.session import get_session
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.models.user import User, UserRoleEnum
from panelpoints_api.services.points import PointLedgerService


_ALL_ROLES = frozenset(UserRoleEnum)
_ADMIN_ROLES = frozenset({UserRoleEnum.SURVEY_ADMIN, UserRoleEnum.SYSTEM_ADMIN})

PERMISSIONS: dict[str, frozenset[UserRoleEnum]] = {
    "view_own_profile": _ALL_ROLES,
    "view_own_activity": _ALL_ROLES,
    "complete_surveys": frozenset({UserRoleEnum.PANELIST}),
    "redeem_points": frozenset({UserRoleEnum.PANELIST}),
    "manage_contests": _ADMIN_ROLES,
    "manage_panelists": _ADMIN_ROLES,
    "manage_point_ledger": _ADMIN_ROLES,
    "reconcile_points": frozenset({UserRoleEnum.SYSTEM_ADMIN}),
}


def has_permission(role: str | UserRoleEnum, permission: str) -> bool:
    try:
        resolved = UserRoleEnum(role)
    except ValueError:
        return False
    return resolved in PERMISSIONS.get(permission, frozenset())


def is_admin(user: User) -> bool:
    return has_permission(user.role, "manage_panelists")


async def require_member_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the authenticated user from forwarded session headers."""

    if not session_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "authentication_required", "message": "Missing session user context"},
        )

    try:
        user_id = UUID(session_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_input", "message": "Invalid session user identifier"},
        ) from error

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "authentication_required", "message": "Session user not found"},
        )

    bind_caller(user.id, UserRoleEnum(user.role).value)
    return user


def require_permission(permission: str) -> Callable[..., Awaitable[User]]:
    """Dependency factory applying the role capability matrix."""

    async def _dependency(user: User = Depends(require_member_session)) -> User:
        if not has_permission(user.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "insufficient_permissions", "message": "Insufficient permissions"},
            )
        return user

    return _dependency


async def require_panelist_profile(
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> PanelistProfile:
    """Panelist profile of the caller, created on first use for panelist accounts."""

    service = PointLedgerService(db)
    if user.role == UserRoleEnum.PANELIST.value:
        return await service.ensure_profile(user.id)

    profile = await service.get_profile_for_user(user.id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "panelist_not_found", "message": "Panelist profile not found"},
        )
    return profile
