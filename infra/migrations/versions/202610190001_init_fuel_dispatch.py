"""init fuel dispatch tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None

execution_status = sa.Enum(
    "PENDING",
    "IN_PROGRESS",
    "COMPLETED",
    "FAILED",
    "ISSUE",
    name="executionstatus",
)
admin_status = sa.Enum(
    "CREATION",
    "FINISHED_BY_DRIVER",
    "APPROVED",
    "RETURNED",
    "REPORTED",
    "CANCELED",
    name="adminstatus",
)


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("correlation_id", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_events_event_type", "events", ["event_type"])
    op.create_index("ix_events_ts", "events", ["ts"])
    op.create_index("ix_events_actor_id", "events", ["actor_id"])
    op.create_index("ix_events_correlation_id", "events", ["correlation_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_role", "audit_logs", ["role"])
    op.create_index("ix_audit_logs_ts", "audit_logs", ["ts"])

    op.create_table(
        "dispatchers",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dispatchers_username", "dispatchers", ["username"], unique=True)
    op.create_index("ix_dispatchers_created_at", "dispatchers", ["created_at"])

    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("password_sha256", sa.String(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_drivers_name", "drivers", ["name"])
    op.create_index("ix_drivers_phone", "drivers", ["phone"])
    op.create_index("ix_drivers_created_at", "drivers", ["created_at"])

    op.create_table(
        "sites",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("site_name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_site_name", "sites", ["site_name"])
    op.create_index("ix_sites_created_at", "sites", ["created_at"])

    op.create_table(
        "driver_tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("mission_id", sa.String(), nullable=True),
        sa.Column("site_id", sa.String(), nullable=True),
        sa.Column("site_name", sa.String(), nullable=True),
        sa.Column("driver_name", sa.String(), nullable=True),
        sa.Column("driver_phone", sa.String(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", execution_status, nullable=False),
        sa.Column("admin_status", admin_status, nullable=True),
        sa.Column("required_liters", sa.Float(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("site_latitude", sa.Float(), nullable=True),
        sa.Column("site_longitude", sa.Float(), nullable=True),
        sa.Column("counter_before_url", sa.String(), nullable=True),
        sa.Column("tank_before_url", sa.String(), nullable=True),
        sa.Column("counter_after_url", sa.String(), nullable=True),
        sa.Column("tank_after_url", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("legacy", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in (
        "mission_id",
        "site_id",
        "site_name",
        "driver_name",
        "driver_phone",
        "scheduled_at",
        "status",
        "admin_status",
        "completed_at",
        "created_at",
        "updated_at",
    ):
        op.create_index(f"ix_driver_tasks_{column}", "driver_tasks", [column])

    op.create_table(
        "driver_task_entries",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("liters", sa.Float(), nullable=False),
        sa.Column("actual_liters_in_tank", sa.Float(), nullable=True),
        sa.Column("rate", sa.Float(), nullable=True),
        sa.Column("station", sa.String(), nullable=True),
        sa.Column("receipt_number", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("odometer", sa.Integer(), nullable=True),
        sa.Column("counter_before_url", sa.String(), nullable=True),
        sa.Column("tank_before_url", sa.String(), nullable=True),
        sa.Column("counter_after_url", sa.String(), nullable=True),
        sa.Column("tank_after_url", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("submitted_by", sa.String(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_driver_task_entries_task_id", "driver_task_entries", ["task_id"])
    op.create_index("ix_driver_task_entries_submitted_by", "driver_task_entries", ["submitted_by"])
    op.create_index("ix_driver_task_entries_submitted_at", "driver_task_entries", ["submitted_at"])

    op.create_table(
        "driver_push_tokens",
        sa.Column("token", sa.String(), nullable=False),
        sa.Column("driver_name", sa.String(), nullable=True),
        sa.Column("driver_phone", sa.String(), nullable=True),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("ix_driver_push_tokens_driver_name", "driver_push_tokens", ["driver_name"])
    op.create_index("ix_driver_push_tokens_driver_phone", "driver_push_tokens", ["driver_phone"])
    op.create_index("ix_driver_push_tokens_updated_at", "driver_push_tokens", ["updated_at"])

    op.create_table(
        "driver_notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("driver_name", sa.String(), nullable=True),
        sa.Column("sent_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_driver_notifications_driver_name", "driver_notifications", ["driver_name"])
    op.create_index("ix_driver_notifications_created_at", "driver_notifications", ["created_at"])

    op.create_table(
        "driver_notification_reads",
        sa.Column("notification_id", sa.Integer(), nullable=False),
        sa.Column("driver_name", sa.String(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("notification_id", "driver_name"),
    )


def downgrade() -> None:
    op.drop_table("driver_notification_reads")
    op.drop_index("ix_driver_notifications_created_at", table_name="driver_notifications")
    op.drop_index("ix_driver_notifications_driver_name", table_name="driver_notifications")
    op.drop_table("driver_notifications")
    op.drop_index("ix_driver_push_tokens_updated_at", table_name="driver_push_tokens")
    op.drop_index("ix_driver_push_tokens_driver_phone", table_name="driver_push_tokens")
    op.drop_index("ix_driver_push_tokens_driver_name", table_name="driver_push_tokens")
    op.drop_table("driver_push_tokens")
    op.drop_index("ix_driver_task_entries_submitted_at", table_name="driver_task_entries")
    op.drop_index("ix_driver_task_entries_submitted_by", table_name="driver_task_entries")
    op.drop_index("ix_driver_task_entries_task_id", table_name="driver_task_entries")
    op.drop_table("driver_task_entries")
    for column in (
        "updated_at",
        "created_at",
        "completed_at",
        "admin_status",
        "status",
        "scheduled_at",
        "driver_phone",
        "driver_name",
        "site_name",
        "site_id",
        "mission_id",
    ):
        op.drop_index(f"ix_driver_tasks_{column}", table_name="driver_tasks")
    op.drop_table("driver_tasks")
    execution_status.drop(op.get_bind(), checkfirst=True)
    admin_status.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_sites_created_at", table_name="sites")
    op.drop_index("ix_sites_site_name", table_name="sites")
    op.drop_table("sites")
    op.drop_index("ix_drivers_created_at", table_name="drivers")
    op.drop_index("ix_drivers_phone", table_name="drivers")
    op.drop_index("ix_drivers_name", table_name="drivers")
    op.drop_table("drivers")
    op.drop_index("ix_dispatchers_created_at", table_name="dispatchers")
    op.drop_index("ix_dispatchers_username", table_name="dispatchers")
    op.drop_table("dispatchers")
    op.drop_index("ix_audit_logs_ts", table_name="audit_logs")
    op.drop_index("ix_audit_logs_role", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_events_correlation_id", table_name="events")
    op.drop_index("ix_events_actor_id", table_name="events")
    op.drop_index("ix_events_ts", table_name="events")
    op.drop_index("ix_events_event_type", table_name="events")
    op.drop_table("events")
