from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from panelpoints_api.db.base import Base


class UserRoleEnum(str, Enum):
    PANELIST = "panelist"
    SURVEY_ADMIN = "survey_admin"
    SYSTEM_ADMIN = "system_admin"


class User(Base):
    """Identity mirror of the external auth provider's user record."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('panelist','survey_admin','system_admin')", name="ck_users_role_valid"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    role = Column(
        String(length=16),
        nullable=False,
        default=UserRoleEnum.PANELIST.value,
        server_default=UserRoleEnum.PANELIST.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
