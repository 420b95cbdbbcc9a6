"""Points ledger, surveys, redemptions and contests.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = sa.dialects.postgresql.UUID(as_uuid=True)

TRANSACTION_TYPES = (
    "award",
    "redemption",
    "bonus",
    "survey_completion",
    "manual_award",
    "system_adjustment",
    "referral_bonus",
    "weekly_bonus",
    "signup_bonus",
    "app_download_bonus",
    "scan_bonus",
    "review_bonus",
)

_ENUMS = (
    sa.Enum(*TRANSACTION_TYPES, name="point_transaction_type"),
    sa.Enum("draft", "active", "inactive", name="survey_status"),
    sa.Enum("pending", "completed", "failed", name="redemption_status"),
    sa.Enum("draft", "active", "ended", name="contest_status"),
    sa.Enum("all_panelists", "selected_panelists", name="contest_invite_type"),
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    transaction_type, survey_status, redemption_status, contest_status, invite_type = _ENUMS

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="panelist"),
        *_timestamps(),
        sa.CheckConstraint("role IN ('panelist','survey_admin','system_admin')", name="ck_users_role_valid"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "panelist_profiles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_points_redeemed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ledger_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("profile_data", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("points_balance >= 0", name="ck_panelist_profiles_balance_non_negative"),
    )

    op.create_table(
        "point_ledger",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "panelist_id",
            UUID,
            sa.ForeignKey("panelist_profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("transaction_type", transaction_type, nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("awarded_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.CheckConstraint("points <> 0", name="ck_point_ledger_points_non_zero"),
        sa.CheckConstraint("balance_after >= 0", name="ck_point_ledger_balance_after_non_negative"),
        sa.UniqueConstraint("panelist_id", "sequence", name="uq_point_ledger_panelist_sequence"),
    )
    op.create_index("ix_point_ledger_panelist_created_at", "point_ledger", ["panelist_id", "created_at"])
    op.create_index("ix_point_ledger_transaction_type", "point_ledger", ["transaction_type"])

    op.create_table(
        "surveys",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_reward", sa.Integer(), nullable=False),
        sa.Column("estimated_completion_time", sa.Integer(), nullable=True),
        sa.Column("status", survey_status, nullable=False, server_default="draft"),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "survey_qualifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("survey_id", UUID, sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("panelist_id", UUID, sa.ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_qualified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("survey_id", "panelist_id", name="uq_survey_qualifications_survey_panelist"),
    )

    op.create_table(
        "survey_completions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("survey_id", UUID, sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("panelist_id", UUID, sa.ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False),
        sa.Column("response_data", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("award_entry_id", UUID, sa.ForeignKey("point_ledger.id", ondelete="SET NULL"), nullable=True),
        sa.UniqueConstraint("survey_id", "panelist_id", name="uq_survey_completions_survey_panelist"),
    )
    op.create_index(
        "ix_survey_completions_unawarded",
        "survey_completions",
        ["completed_at"],
        postgresql_where=sa.text("awarded_at IS NULL"),
    )

    op.create_table(
        "survey_responses",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "completion_id",
            UUID,
            sa.ForeignKey("survey_completions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("survey_id", UUID, sa.ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("panelist_id", UUID, sa.ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_id", sa.String(), nullable=False),
        sa.Column("response_value", sa.Text(), nullable=False),
        sa.Column("response_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "merchant_offers",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("merchant_name", sa.String(), nullable=False),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("offer_details", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("points_required > 0", name="ck_merchant_offers_points_positive"),
    )

    op.create_table(
        "redemptions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "panelist_id",
            UUID,
            sa.ForeignKey("panelist_profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("offer_id", UUID, sa.ForeignKey("merchant_offers.id"), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("status", redemption_status, nullable=False, server_default="pending"),
        sa.Column("ledger_entry_id", UUID, sa.ForeignKey("point_ledger.id", ondelete="SET NULL"), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("redemption_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_redemptions_status_created_at", "redemptions", ["status", "created_at"])

    op.create_table(
        "contests",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("prize_points", sa.Integer(), nullable=False),
        sa.Column("status", contest_status, nullable=False, server_default="draft"),
        sa.Column("invite_type", invite_type, nullable=False, server_default="all_panelists"),
        sa.Column("created_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date > start_date", name="ck_contests_date_window"),
        sa.CheckConstraint("prize_points > 0", name="ck_contests_prize_positive"),
    )

    op.create_table(
        "contest_invitations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("panelist_id", UUID, sa.ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invited_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("invited_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("contest_id", "panelist_id", name="uq_contest_invitations_contest_panelist"),
    )

    op.create_table(
        "contest_participants",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("panelist_id", UUID, sa.ForeignKey("panelist_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("prize_awarded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("prize_awarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("prize_awarded_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("contest_id", "panelist_id", name="uq_contest_participants_contest_panelist"),
    )
    op.create_index("ix_contest_participants_contest_rank", "contest_participants", ["contest_id", "rank"])

    op.create_table(
        "contest_prize_awards",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("contest_id", UUID, sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "panelist_id",
            UUID,
            sa.ForeignKey("panelist_profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        sa.Column("awarded_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("ledger_entry_id", UUID, sa.ForeignKey("point_ledger.id"), nullable=False),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("contest_id", "panelist_id", name="uq_contest_prize_awards_contest_panelist"),
    )


def downgrade() -> None:
    op.drop_table("contest_prize_awards")
    op.drop_index("ix_contest_participants_contest_rank", table_name="contest_participants")
    op.drop_table("contest_participants")
    op.drop_table("contest_invitations")
    op.drop_table("contests")
    op.drop_index("ix_redemptions_status_created_at", table_name="redemptions")
    op.drop_table("redemptions")
    op.drop_table("merchant_offers")
    op.drop_table("survey_responses")
    op.drop_index("ix_survey_completions_unawarded", table_name="survey_completions")
    op.drop_table("survey_completions")
    op.drop_table("survey_qualifications")
    op.drop_table("surveys")
    op.drop_index("ix_point_ledger_transaction_type", table_name="point_ledger")
    op.drop_index("ix_point_ledger_panelist_created_at", table_name="point_ledger")
    op.drop_table("point_ledger")
    op.drop_table("panelist_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in _ENUMS:
        enum.drop(bind, checkfirst=True)
