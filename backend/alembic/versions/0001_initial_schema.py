"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates all tables for the circle scheduler:
users, circles, circle_members, events, event_time_options, time_votes,
rsvps, personal_events, notifications, outbox_events.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

circle_role = sa.Enum("owner", "admin", "member", name="circlerole")
event_status = sa.Enum("draft", "locked", "finalized", name="eventstatus")
rsvp_status = sa.Enum("going", "not going", "maybe", name="rsvpstatus")
rsvp_source = sa.Enum("manual", "conflict", name="rsvpsource")
notification_type = sa.Enum(
    "event_reminder", "conflict_detected", "rsvp_updated", "event_finalized", name="notificationtype"
)
notification_priority = sa.Enum("normal", "high", name="notificationpriority")
outbox_status = sa.Enum("pending", "processing", "completed", "failed", name="outboxstatus")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("default_timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )

    # --- circles ---
    op.create_table(
        "circles",
        sa.Column("circle_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )

    # --- circle_members ---
    op.create_table(
        "circle_members",
        sa.Column("member_id", sa.String(36), primary_key=True),
        sa.Column(
            "circle_id", sa.String(36), sa.ForeignKey("circles.circle_id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("role", circle_role, nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("circle_id", "user_id", name="uq_circle_member"),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("circle_id", sa.String(36), sa.ForeignKey("circles.circle_id"), nullable=False),
        sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("status", event_status, nullable=False, server_default="draft"),
        sa.Column("starts_at", sa.DateTime, nullable=True),
        sa.Column("ends_at", sa.DateTime, nullable=True),
        sa.Column("reminder_minutes", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_events_circle_id", "events", ["circle_id"])

    # --- event_time_options ---
    op.create_table(
        "event_time_options",
        sa.Column("option_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("start_time", sa.DateTime, nullable=False),
        sa.Column("end_time", sa.DateTime, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_event_time_options_event_id", "event_time_options", ["event_id"])

    # --- time_votes ---
    op.create_table(
        "time_votes",
        sa.Column("vote_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_time_option_id",
            sa.String(36),
            sa.ForeignKey("event_time_options.option_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("voter_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("event_id", "voter_id", name="uq_time_vote_event_voter"),
    )
    op.create_index("ix_time_votes_event_time_option_id", "time_votes", ["event_time_option_id"])

    # --- rsvps ---
    op.create_table(
        "rsvps",
        sa.Column("rsvp_id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("status", rsvp_status, nullable=False),
        sa.Column("source", rsvp_source, nullable=False, server_default="manual"),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("event_id", "user_id", name="uq_rsvp_event_user"),
    )

    # --- personal_events ---
    op.create_table(
        "personal_events",
        sa.Column("personal_event_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_time", sa.DateTime, nullable=False),
        sa.Column("end_time", sa.DateTime, nullable=False),
        sa.Column("cancelled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cancelled_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_personal_events_user_id", "personal_events", ["user_id"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("notification_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="event"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("body", sa.String(1000), nullable=False, server_default=""),
        sa.Column("priority", notification_priority, nullable=False, server_default="normal"),
        sa.Column("icon_type", sa.String(20), nullable=False, server_default="calendar"),
        sa.Column("icon_color", sa.String(7), nullable=False, server_default="#4A90E2"),
        sa.Column("action_buttons", sa.JSON, nullable=False),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("dedupe_key", sa.String(255), nullable=True, unique=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    # --- outbox_events ---
    op.create_table(
        "outbox_events",
        sa.Column("outbox_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("aggregate_type", sa.String(50), nullable=False),
        sa.Column("aggregate_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", outbox_status, nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=False, server_default="3"),
        sa.Column("scheduled_for", sa.DateTime, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("processed_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"])
    op.create_index("ix_outbox_events_created_at", "outbox_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("outbox_events")
    op.drop_table("notifications")
    op.drop_table("personal_events")
    op.drop_table("rsvps")
    op.drop_table("time_votes")
    op.drop_table("event_time_options")
    op.drop_table("events")
    op.drop_table("circle_members")
    op.drop_table("circles")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in (
        outbox_status,
        notification_priority,
        notification_type,
        rsvp_source,
        rsvp_status,
        event_status,
        circle_role,
    ):
        enum_type.drop(bind, checkfirst=True)
