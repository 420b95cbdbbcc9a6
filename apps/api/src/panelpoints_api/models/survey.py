"""Survey, qualification verdict and completion models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
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
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from panelpoints_api.db.base import Base


class SurveyStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    points_reward = Column(Integer, nullable=False)
    estimated_completion_time = Column(Integer, nullable=True)
    status = Column(
        SqlEnum(SurveyStatus, name="survey_status", values_callable=lambda enum: [m.value for m in enum]),
        nullable=False,
        default=SurveyStatus.DRAFT,
        server_default=SurveyStatus.DRAFT.value,
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class SurveyQualification(Base):
    """Eligibility verdict written by the external audience evaluator."""

    __tablename__ = "survey_qualifications"
    __table_args__ = (
        UniqueConstraint("survey_id", "panelist_id", name="uq_survey_qualifications_survey_panelist"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    survey_id = Column(UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False
    )
    is_qualified = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SurveyCompletion(Base):
    """One row per (panelist, survey); the unique constraint guards duplicate awards."""

    __tablename__ = "survey_completions"
    __table_args__ = (
        UniqueConstraint("survey_id", "panelist_id", name="uq_survey_completions_survey_panelist"),
        Index("ix_survey_completions_unawarded", "completed_at", postgresql_where=text("awarded_at IS NULL")),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    survey_id = Column(UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False
    )
    points_earned = Column(Integer, nullable=False)
    response_data = Column(JSON, nullable=False, default=dict)
    completed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # Claimed in the same transaction as the ledger credit; NULL means no award yet.
    awarded_at = Column(DateTime(timezone=True), nullable=True)
    award_entry_id = Column(
        UUID(as_uuid=True), ForeignKey("point_ledger.id", ondelete="SET NULL"), nullable=True
    )

    survey = relationship("Survey")
    responses = relationship(
        "SurveyResponse",
        back_populates="completion",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class SurveyResponse(Base):
    __tablename__ = "survey_responses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    completion_id = Column(
        UUID(as_uuid=True), ForeignKey("survey_completions.id", ondelete="CASCADE"), nullable=False
    )
    survey_id = Column(UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False)
    panelist_id = Column(
        UUID(as_uuid=True), ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False
    )
    question_id = Column(String, nullable=False)
    response_value = Column(Text, nullable=False)
    response_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    completion = relationship("SurveyCompletion", back_populates="responses")
