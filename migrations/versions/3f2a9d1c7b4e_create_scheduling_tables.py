"""create scheduling tables

Revision ID: 3f2a9d1c7b4e
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f2a9d1c7b4e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "departments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("color", sa.String(length=7), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("buffer_before_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_after_minutes", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "slug", name="uq_departments_organization_slug"),
    )
    op.create_index(op.f("ix_departments_id"), "departments", ["id"], unique=False)
    op.create_index(op.f("ix_departments_organization_id"), "departments", ["organization_id"], unique=False)

    op.create_table(
        "department_members",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_lead", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("department_id", "user_id", name="uq_department_members_department_user"),
    )
    op.create_index(op.f("ix_department_members_id"), "department_members", ["id"], unique=False)
    op.create_index(
        op.f("ix_department_members_department_id"), "department_members", ["department_id"], unique=False
    )
    op.create_index(op.f("ix_department_members_user_id"), "department_members", ["user_id"], unique=False)

    op.create_table(
        "calendar_schedules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("target_type", sa.String(length=20), nullable=False),
        sa.Column("target_id", sa.String(length=36), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("weekly_hours", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("target_type", "target_id", name="uq_calendar_schedules_target"),
    )
    op.create_index(op.f("ix_calendar_schedules_id"), "calendar_schedules", ["id"], unique=False)
    op.create_index(
        op.f("ix_calendar_schedules_organization_id"), "calendar_schedules", ["organization_id"], unique=False
    )

    op.create_table(
        "calendar_exceptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("target_type", sa.String(length=20), nullable=False),
        sa.Column("target_id", sa.String(length=36), nullable=False),
        sa.Column("exception_date", sa.Date(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("custom_hours", sa.JSON(), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "target_type", "target_id", "exception_date", name="uq_calendar_exceptions_target_date"
        ),
    )
    op.create_index(op.f("ix_calendar_exceptions_id"), "calendar_exceptions", ["id"], unique=False)
    op.create_index(
        op.f("ix_calendar_exceptions_organization_id"), "calendar_exceptions", ["organization_id"], unique=False
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("assigned_by_user_id", sa.String(length=36), nullable=True),
        sa.Column("contact_id", sa.String(length=36), nullable=True),
        sa.Column("client_name", sa.String(length=200), nullable=False),
        sa.Column("client_phone", sa.String(length=30), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("callback_preferred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("assignment_mode", sa.String(length=10), nullable=False),
        sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scope_key", sa.String(length=50), nullable=True),
        sa.Column("blocked_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("blocked_end_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_id"), "appointments", ["id"], unique=False)
    op.create_index(op.f("ix_appointments_organization_id"), "appointments", ["organization_id"], unique=False)
    op.create_index(op.f("ix_appointments_department_id"), "appointments", ["department_id"], unique=False)
    op.create_index(op.f("ix_appointments_user_id"), "appointments", ["user_id"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)
    op.create_index(
        "ix_appointments_scope_blocked",
        "appointments",
        ["scope_key", "blocked_start_at", "blocked_end_at"],
        unique=False,
    )
    op.create_index(
        "ix_appointments_organization_start", "appointments", ["organization_id", "start_at"], unique=False
    )

    # Live reservations of one operator or department never overlap
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_scope_no_overlap "
        "EXCLUDE USING gist ("
        "scope_key WITH =, "
        "tstzrange(blocked_start_at, blocked_end_at, '[)') WITH &&"
        ") WHERE (status IN ('PENDING', 'CONFIRMED') AND blocked_start_at IS NOT NULL)"
    )


def downgrade() -> None:
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_scope_no_overlap")
    op.drop_index("ix_appointments_organization_start", table_name="appointments")
    op.drop_index("ix_appointments_scope_blocked", table_name="appointments")
    op.drop_index(op.f("ix_appointments_status"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_user_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_department_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_organization_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_id"), table_name="appointments")
    op.drop_table("appointments")

    op.drop_index(op.f("ix_calendar_exceptions_organization_id"), table_name="calendar_exceptions")
    op.drop_index(op.f("ix_calendar_exceptions_id"), table_name="calendar_exceptions")
    op.drop_table("calendar_exceptions")

    op.drop_index(op.f("ix_calendar_schedules_organization_id"), table_name="calendar_schedules")
    op.drop_index(op.f("ix_calendar_schedules_id"), table_name="calendar_schedules")
    op.drop_table("calendar_schedules")

    op.drop_index(op.f("ix_department_members_user_id"), table_name="department_members")
    op.drop_index(op.f("ix_department_members_department_id"), table_name="department_members")
    op.drop_index(op.f("ix_department_members_id"), table_name="department_members")
    op.drop_table("department_members")

    op.drop_index(op.f("ix_departments_organization_id"), table_name="departments")
    op.drop_index(op.f("ix_departments_id"), table_name="departments")
    op.drop_table("departments")
