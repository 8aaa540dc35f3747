"""create profiles, loan applications, approval workflow, notifications and reports

Revision ID: 20261012_loan_workflow_initial
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261012_loan_workflow_initial"
down_revision = None
branch_labels = None
depends_on = None


STAGES = ("field_officer", "manager", "director", "chairperson", "ceo")
STATUSES = (
    "pending_field_officer",
    "pending_manager",
    "pending_director",
    "pending_chairperson",
    "pending_ceo",
    "approved",
    "rejected",
    "rejected_final",
)


def _in_list(values) -> str:
    return ", ".join(f"'{value}'" for value in values)


def _stage_columns(stage: str) -> list[sa.Column]:
    return [
        sa.Column(f"{stage}_approved", sa.Boolean(), nullable=True),
        sa.Column(f"{stage}_notes", sa.Text(), nullable=True),
        sa.Column(f"{stage}_name", sa.String(length=255), nullable=True),
        sa.Column(f"{stage}_decided_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(f"{stage}_decided_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
    )
    op.create_index("ix_profiles_role", "profiles", ["role"], unique=False)

    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("loan_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("loan_type", sa.String(length=50), nullable=False),
        sa.Column("purpose_of_loan", sa.Text(), nullable=False),
        sa.Column("monthly_income", sa.Numeric(18, 2), nullable=False),
        sa.Column("employment_status", sa.String(length=50), nullable=False),
        sa.Column("phone_number", sa.String(length=50), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("id_number", sa.LargeBinary(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("current_approver", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending_field_officer"),
        sa.Column("risk_assessment", sa.String(length=10), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("downsizing_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["current_approver"], ["profiles.id"], ondelete="SET NULL"),
        sa.CheckConstraint("loan_amount > 0", name="ck_loan_applications_loan_amount_positive"),
        sa.CheckConstraint("monthly_income >= 0", name="ck_loan_applications_monthly_income_nonneg"),
        sa.CheckConstraint(f"status IN ({_in_list(STATUSES)})", name="ck_loan_applications_status"),
        sa.CheckConstraint(
            "risk_assessment IS NULL OR risk_assessment IN ('low', 'medium', 'high')",
            name="ck_loan_applications_risk_assessment",
        ),
    )
    op.create_index("ix_loan_applications_created_by", "loan_applications", ["created_by"], unique=False)
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"], unique=False)
    op.create_index("ix_loan_applications_created_at", "loan_applications", ["created_at"], unique=False)

    stage_columns = [column for stage in STAGES for column in _stage_columns(stage)]
    op.create_table(
        "loan_application_workflows",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("current_stage", sa.String(length=30), nullable=False, server_default="field_officer"),
        sa.Column("workflow_version", sa.Integer(), nullable=False, server_default="1"),
        *stage_columns,
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["loan_application_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("loan_application_id", name="uq_loan_application_workflows_loan_application_id"),
        sa.CheckConstraint(
            f"current_stage IN ({_in_list(STAGES)})",
            name="ck_loan_application_workflows_current_stage",
        ),
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_to", sa.String(length=50), nullable=False, server_default="loan_application"),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"], unique=False)

    op.create_table(
        "loan_workflow_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("performed_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=True),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["loan_application_id"], ["loan_applications.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_loan_workflow_log_application_performed",
        "loan_workflow_log",
        ["loan_application_id", "performed_at"],
        unique=False,
    )

    op.create_table(
        "weekly_reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("total_applications", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approved_applications", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejected_applications", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_applications", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_loan_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("approved_loan_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("approval_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("week_start", "role", name="uq_weekly_reports_week_role"),
    )
    op.create_index("ix_weekly_reports_role", "weekly_reports", ["role"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_weekly_reports_role", table_name="weekly_reports")
    op.drop_table("weekly_reports")
    op.drop_index("ix_loan_workflow_log_application_performed", table_name="loan_workflow_log")
    op.drop_table("loan_workflow_log")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("loan_application_workflows")
    op.drop_index("ix_loan_applications_created_at", table_name="loan_applications")
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_created_by", table_name="loan_applications")
    op.drop_table("loan_applications")
    op.drop_index("ix_profiles_role", table_name="profiles")
    op.drop_table("profiles")
