"""Panelist profile holding the cached balance projection."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from panelpoints_api.db.base import Base


class PanelistProfile(Base):
    """Panelist account; balance columns are written only by the ledger issuer."""

    __tablename__ = "panelist_profiles"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="ck_panelist_profiles_balance_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    total_points_earned = Column(Integer, nullable=False, default=0, server_default="0")
    total_points_redeemed = Column(Integer, nullable=False, default=0, server_default="0")
    ledger_sequence = Column(Integer, nullable=False, default=0, server_default="0")
    profile_data = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
    ledger_entries = relationship("PointLedgerEntry", back_populates="panelist", passive_deletes="all")
