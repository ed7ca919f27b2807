"""Rsvp ORM model."""
import enum
import uuid
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, Enum as SAEnum
from circle_scheduler.database import Base, UTCDateTime, utcnow


class RsvpStatus(str, enum.Enum):
    going = "going"
    not_going = "not going"
    maybe = "maybe"


class RsvpSource(str, enum.Enum):
    manual = "manual"
    conflict = "conflict"  # written by conflict detection


class Rsvp(Base):
    __tablename__ = "rsvps"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_rsvp_event_user"),)

    rsvp_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    status = Column(
        SAEnum(RsvpStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    source = Column(SAEnum(RsvpSource), nullable=False, default=RsvpSource.manual)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
