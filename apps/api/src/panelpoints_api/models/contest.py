"""Contest, invitation, participation and prize award models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
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
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from panelpoints_api.db.base import Base


class ContestStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ENDED = "ended"


class ContestInviteType(str, Enum):
    ALL_PANELISTS = "all_panelists"
    SELECTED_PANELISTS = "selected_panelists"


class Contest(Base):
    __tablename__ = "contests"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_contests_date_window"),
        CheckConstraint("prize_points > 0", name="ck_contests_prize_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    prize_points = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(ContestStatus, name="contest_status", values_callable=lambda enum: [m.value for m in enum]),
        nullable=False,
        default=ContestStatus.DRAFT,
        server_default=ContestStatus.DRAFT.value,
    )
    invite_type = Column(
        SqlEnum(
            ContestInviteType,
            name="contest_invite_type",
            values_callable=lambda enum: [m.value for m in enum],
        ),
        nullable=False,
        default=ContestInviteType.ALL_PANELISTS,
        server_default=ContestInviteType.ALL_PANELISTS.value,
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    participants = relationship(
        "ContestParticipant",
        back_populates="contest",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ContestInvitation(Base):
    __tablename__ = "contest_invitations"
    __table_args__ = (
        UniqueConstraint("contest_id", "panelist_id", name="uq_contest_invitations_contest_panelist"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False
    )
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invited_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ContestParticipant(Base):
    """A panelist's standing in a contest; rank is rewritten by leaderboard recalculation."""

    __tablename__ = "contest_participants"
    __table_args__ = (
        UniqueConstraint("contest_id", "panelist_id", name="uq_contest_participants_contest_panelist"),
        Index("ix_contest_participants_contest_rank", "contest_id", "rank"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False
    )
    points_earned = Column(Integer, nullable=False, default=0, server_default="0")
    rank = Column(Integer, nullable=True)
    prize_awarded = Column(Boolean, nullable=False, default=False, server_default="false")
    prize_awarded_at = Column(DateTime(timezone=True), nullable=True)
    prize_awarded_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contest = relationship("Contest", back_populates="participants")


class ContestPrizeAward(Base):
    __tablename__ = "contest_prize_awards"
    __table_args__ = (
        UniqueConstraint("contest_id", "panelist_id", name="uq_contest_prize_awards_contest_panelist"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    contest_id = Column(UUID(as_uuid=True), ForeignKey("contests.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="RESTRICT"), nullable=False
    )
    points_awarded = Column(Integer, nullable=False)
    awarded_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ledger_entry_id = Column(UUID(as_uuid=True), ForeignKey("point_ledger.id"), nullable=False)
    awarded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
