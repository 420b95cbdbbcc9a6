"""Append-only point ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from panelpoints_api.db.base import Base


class PointTransactionType(str, Enum):
    """Tags describing why points moved."""

    AWARD = "award"
    REDEMPTION = "redemption"
    BONUS = "bonus"
    SURVEY_COMPLETION = "survey_completion"
    MANUAL_AWARD = "manual_award"
    SYSTEM_ADJUSTMENT = "system_adjustment"
    REFERRAL_BONUS = "referral_bonus"
    WEEKLY_BONUS = "weekly_bonus"
    SIGNUP_BONUS = "signup_bonus"
    APP_DOWNLOAD_BONUS = "app_download_bonus"
    SCAN_BONUS = "scan_bonus"
    REVIEW_BONUS = "review_bonus"


class PointLedgerEntry(Base):
    """Immutable record of one point movement for one panelist."""

    __tablename__ = "point_ledger"
    __table_args__ = (
        CheckConstraint("points <> 0", name="ck_point_ledger_points_non_zero"),
        CheckConstraint("balance_after >= 0", name="ck_point_ledger_balance_after_non_negative"),
        UniqueConstraint("panelist_id", "sequence", name="uq_point_ledger_panelist_sequence"),
        Index("ix_point_ledger_panelist_created_at", "panelist_id", "created_at"),
        Index("ix_point_ledger_transaction_type", "transaction_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    panelist_id = Column(
        UUID(as_uuid=True),
        ForeignKey("panelist_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    sequence = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    transaction_type = Column(
        SqlEnum(
            PointTransactionType,
            name="point_transaction_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    awarded_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    effective_date = Column(Date, nullable=False)

    panelist = relationship("PanelistProfile", back_populates="ledger_entries")
