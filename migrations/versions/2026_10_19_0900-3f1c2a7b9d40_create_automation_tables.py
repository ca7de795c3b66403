"""create_automation_tables

Revision ID: 3f1c2a7b9d40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f1c2a7b9d40"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(length=500), nullable=True),
        sa.Column("venue", sa.String(length=255), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("uuid"),
    )

    op.create_table(
        "seating_tables",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.uuid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_seating_tables_event_id", "seating_tables", ["event_id"])

    op.create_table(
        "guests",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("party_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rsvp_status", sa.String(length=64), nullable=False, server_default="PENDING"),
        sa.Column("rsvp_token", sa.String(length=64), nullable=False),
        sa.Column("table_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.uuid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["table_id"], ["seating_tables.uuid"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_guests_event_id", "guests", ["event_id"])
    op.create_index("ix_guests_rsvp_token", "guests", ["rsvp_token"], unique=True)

    op.create_table(
        "automation_flows",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("delay_hours", sa.Integer(), nullable=True),
        sa.Column("custom_message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="DRAFT"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.uuid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_automation_flows_event_id", "automation_flows", ["event_id"])
    op.create_index("ix_automation_flows_status", "automation_flows", ["status"])

    op.create_table(
        "automation_executions",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("flow_id", sa.UUID(), nullable=False),
        sa.Column("guest_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="PENDING"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["flow_id"], ["automation_flows.uuid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["guest_id"], ["guests.uuid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("uuid"),
        sa.UniqueConstraint("flow_id", "guest_id", name="uq_automation_executions_flow_guest"),
    )
    op.create_index("ix_automation_executions_flow_id", "automation_executions", ["flow_id"])
    op.create_index("ix_automation_executions_guest_id", "automation_executions", ["guest_id"])
    op.create_index("ix_automation_executions_status", "automation_executions", ["status"])
    op.create_index(
        "ix_automation_executions_scheduled_for", "automation_executions", ["scheduled_for"]
    )

    op.create_table(
        "notification_logs",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("guest_id", sa.UUID(), nullable=False),
        sa.Column("execution_id", sa.UUID(), nullable=True),
        sa.Column("notification_type", sa.String(length=64), nullable=False),
        sa.Column("channel", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=7), nullable=False, server_default="pending"),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["guest_id"], ["guests.uuid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["execution_id"], ["automation_executions.uuid"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_notification_logs_guest_id", "notification_logs", ["guest_id"])
    op.create_index("ix_notification_logs_status", "notification_logs", ["status"])
    op.create_index("ix_notification_logs_sent_at", "notification_logs", ["sent_at"])


def downgrade() -> None:
    op.drop_index("ix_notification_logs_sent_at", table_name="notification_logs")
    op.drop_index("ix_notification_logs_status", table_name="notification_logs")
    op.drop_index("ix_notification_logs_guest_id", table_name="notification_logs")
    op.drop_table("notification_logs")
    op.drop_index("ix_automation_executions_scheduled_for", table_name="automation_executions")
    op.drop_index("ix_automation_executions_status", table_name="automation_executions")
    op.drop_index("ix_automation_executions_guest_id", table_name="automation_executions")
    op.drop_index("ix_automation_executions_flow_id", table_name="automation_executions")
    op.drop_table("automation_executions")
    op.drop_index("ix_automation_flows_status", table_name="automation_flows")
    op.drop_index("ix_automation_flows_event_id", table_name="automation_flows")
    op.drop_table("automation_flows")
    op.drop_index("ix_guests_rsvp_token", table_name="guests")
    op.drop_index("ix_guests_event_id", table_name="guests")
    op.drop_table("guests")
    op.drop_index("ix_seating_tables_event_id", table_name="seating_tables")
    op.drop_table("seating_tables")
    op.drop_table("events")
