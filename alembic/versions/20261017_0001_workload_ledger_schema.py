"""workload ledger schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role = postgresql.ENUM(
    "admin", "program_manager", "rd_manager", "manager", "employee", name="user_role", create_type=False
)
project_status = postgresql.ENUM(
    "pending", "active", "completed", "on-hold", "cancelled", name="project_status", create_type=False
)
initiative_status = postgresql.ENUM(
    "pending", "active", "completed", name="initiative_status", create_type=False
)
notification_type = postgresql.ENUM(
    "deadline", "workload", "assignment", "budget", "status", name="notification_type", create_type=False
)
notification_priority = postgresql.ENUM(
    "low", "medium", "high", "critical", name="notification_priority", create_type=False
)


def upgrade() -> None:
    user_role.create(op.get_bind(), checkfirst=True)
    project_status.create(op.get_bind(), checkfirst=True)
    initiative_status.create(op.get_bind(), checkfirst=True)
    notification_type.create(op.get_bind(), checkfirst=True)
    notification_priority.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("workload_cap", sa.Numeric(5, 2), nullable=False, server_default=sa.text("100.00")),
        sa.Column("over_beyond_cap", sa.Numeric(5, 2), nullable=False, server_default=sa.text("20.00")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("workload_cap >= 0 AND workload_cap <= 100", name="ck_users_workload_cap_range"),
        sa.CheckConstraint(
            "over_beyond_cap >= 0 AND over_beyond_cap <= 100", name="ck_users_over_beyond_cap_range"
        ),
    )

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=4000), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("manager_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("budget_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("budget_currency", sa.String(length=3), nullable=True),
        sa.Column("estimated_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("actual_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("version >= 1", name="ck_projects_version_positive"),
    )
    op.create_index("ix_projects_manager_id", "projects", ["manager_id"])
    op.create_index("ix_projects_status", "projects", ["status"])

    op.create_table(
        "project_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("involvement_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "involvement_percentage >= 0 AND involvement_percentage <= 100",
            name="ck_project_assignments_involvement_range",
        ),
        sa.UniqueConstraint("project_id", "employee_id", name="uq_project_assignments_project_employee"),
    )
    op.create_index("ix_project_assignments_project_id", "project_assignments", ["project_id"])
    op.create_index("ix_project_assignments_employee_id", "project_assignments", ["employee_id"])

    op.create_table(
        "milestones",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sequence_no", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_milestones_project_id", "milestones", ["project_id"])

    op.create_table(
        "initiatives",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=4000), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", initiative_status, nullable=False),
        sa.Column("workload_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("estimated_hours", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("actual_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "workload_percentage >= 0 AND workload_percentage <= 100",
            name="ck_initiatives_workload_range",
        ),
        sa.CheckConstraint("estimated_hours >= 0", name="ck_initiatives_estimated_hours_non_negative"),
    )
    op.create_index("ix_initiatives_assigned_to_status", "initiatives", ["assigned_to", "status"])
    op.create_index("ix_initiatives_created_by", "initiatives", ["created_by"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("rule", sa.String(length=64), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("priority", notification_priority, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.String(length=2000), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("recipient_id", "key", name="uq_notifications_recipient_key"),
    )
    op.create_index("ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at"])

    op.create_table(
        "admin_notices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.String(length=2000), nullable=False),
        sa.Column("subject_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admin_notices_created_at", "admin_notices", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_admin_notices_created_at", table_name="admin_notices")
    op.drop_table("admin_notices")

    op.drop_index("ix_notifications_recipient_created", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_initiatives_created_by", table_name="initiatives")
    op.drop_index("ix_initiatives_assigned_to_status", table_name="initiatives")
    op.drop_table("initiatives")

    op.drop_index("ix_milestones_project_id", table_name="milestones")
    op.drop_table("milestones")

    op.drop_index("ix_project_assignments_employee_id", table_name="project_assignments")
    op.drop_index("ix_project_assignments_project_id", table_name="project_assignments")
    op.drop_table("project_assignments")

    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_index("ix_projects_manager_id", table_name="projects")
    op.drop_table("projects")

    op.drop_table("users")

    notification_priority.drop(op.get_bind(), checkfirst=True)
    notification_type.drop(op.get_bind(), checkfirst=True)
    initiative_status.drop(op.get_bind(), checkfirst=True)
    project_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
