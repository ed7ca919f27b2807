"""Notification ORM model."""
import enum
import uuid
from sqlalchemy import Column, String, Boolean, JSON, ForeignKey, Enum as SAEnum
from circle_scheduler.database import Base, UTCDateTime, utcnow


class NotificationType(str, enum.Enum):
    event_reminder = "event_reminder"
    conflict_detected = "conflict_detected"
    rsvp_updated = "rsvp_updated"
    event_finalized = "event_finalized"
    member_joined = "member_joined"


class NotificationPriority(str, enum.Enum):
    normal = "normal"
    high = "high"


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    type = Column(SAEnum(NotificationType), nullable=False)
    category = Column(String(20), nullable=False, default="event")
    title = Column(String(500), nullable=False)
    body = Column(String(1000), nullable=False, default="")
    priority = Column(SAEnum(NotificationPriority), nullable=False, default=NotificationPriority.normal)
    icon_type = Column(String(20), nullable=False, default="calendar")
    icon_color = Column(String(7), nullable=False, default="#4A90E2")
    action_buttons = Column(JSON, nullable=False, default=list)
    data = Column(JSON, nullable=False, default=dict)
    # Unique when set; guards against emitting the same notice twice.
    dedupe_key = Column(String(255), nullable=True, unique=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
