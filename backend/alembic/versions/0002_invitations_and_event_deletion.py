"""invitations_and_event_deletion

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

Adds circle_invitations, soft-delete columns on events and the
member_joined notification type.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

invitation_status = sa.Enum("pending", "accepted", "expired", "declined", name="invitationstatus")
old_notification_type = sa.Enum(
    "event_reminder", "conflict_detected", "rsvp_updated", "event_finalized", name="notificationtype"
)
new_notification_type = sa.Enum(
    "event_reminder", "conflict_detected", "rsvp_updated", "event_finalized", "member_joined",
    name="notificationtype",
)


def upgrade() -> None:
    # --- circle_invitations ---
    op.create_table(
        "circle_invitations",
        sa.Column("invitation_id", sa.String(36), primary_key=True),
        sa.Column(
            "circle_id", sa.String(36), sa.ForeignKey("circles.circle_id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("invited_email", sa.String(255), nullable=False),
        sa.Column("invited_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("status", invitation_status, nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("accepted_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_circle_invitations_circle_id", "circle_invitations", ["circle_id"])

    # --- events: soft delete ---
    with op.batch_alter_table("events") as batch:
        batch.add_column(sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()))
        batch.add_column(sa.Column("deleted_at", sa.DateTime, nullable=True))

    # --- notifications.type ---
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TYPE notificationtype ADD VALUE IF NOT EXISTS 'member_joined'")
    else:
        with op.batch_alter_table("notifications") as batch:
            batch.alter_column("type", existing_type=old_notification_type, type_=new_notification_type)


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        with op.batch_alter_table("notifications") as batch:
            batch.alter_column("type", existing_type=new_notification_type, type_=old_notification_type)
    with op.batch_alter_table("events") as batch:
        batch.drop_column("deleted_at")
        batch.drop_column("is_deleted")
    op.drop_index("ix_circle_invitations_circle_id", table_name="circle_invitations")
    op.drop_table("circle_invitations")
    invitation_status.drop(op.get_bind(), checkfirst=True)
