"""OutboxEvent ORM model — durable queue of deferred side effects."""
import enum
from sqlalchemy import Column, String, Integer, Text, JSON, Enum as SAEnum
from circle_scheduler.database import Base, UTCDateTime, utcnow


class OutboxStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"  # terminal


class OutboxEventType:
    """Known ``event_type`` values. Stored as a plain string column."""

    NOTIFICATION_PUSH = "notification.push"
    NOTIFICATION_REMINDER = "notification.reminder"
    PROCESS_CONFLICTS = "event.process_conflicts"
    EMAIL_INVITATION = "email.invitation"
    EMAIL_MAGIC_LINK = "email.magic_link"
    EMAIL_VERIFICATION = "email.verification"


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    # Integer key doubles as a FIFO tie-breaker for rows sharing created_at.
    outbox_id = Column(Integer, primary_key=True, autoincrement=True)
    aggregate_type = Column(String(50), nullable=False)
    aggregate_id = Column(String(36), nullable=False)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(SAEnum(OutboxStatus), nullable=False, default=OutboxStatus.pending, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    scheduled_for = Column(UTCDateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    processed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
