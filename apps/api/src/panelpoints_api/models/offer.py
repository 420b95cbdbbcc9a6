"""Merchant offers and the redemptions that settle against them."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from panelpoints_api.db.base import Base


class MerchantOffer(Base):
    __tablename__ = "merchant_offers"
    __table_args__ = (
        CheckConstraint("points_required > 0", name="ck_merchant_offers_points_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    merchant_name = Column(String, nullable=False)
    points_required = Column(Integer, nullable=False)
    offer_details = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RedemptionStatus(str, Enum):
    """Settlement lifecycle; completed and failed are terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Redemption(Base):
    __tablename__ = "redemptions"
    __table_args__ = (Index("ix_redemptions_status_created_at", "status", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="RESTRICT"), nullable=False
    )
    offer_id = Column(UUID(as_uuid=True), ForeignKey("merchant_offers.id"), nullable=False)
    points_spent = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(RedemptionStatus, name="redemption_status", values_callable=lambda enum: [m.value for m in enum]),
        nullable=False,
        default=RedemptionStatus.PENDING,
        server_default=RedemptionStatus.PENDING.value,
    )
    ledger_entry_id = Column(
        UUID(as_uuid=True), ForeignKey("point_ledger.id", ondelete="SET NULL"), nullable=True
    )
    failure_reason = Column(String, nullable=True)
    redemption_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    offer = relationship("MerchantOffer")
