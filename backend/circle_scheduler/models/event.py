"""Event, EventTimeOption and TimeVote ORM models."""
import enum
import uuid
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship
from circle_scheduler.database import Base, UTCDateTime, utcnow


class EventStatus(str, enum.Enum):
    draft = "draft"
    locked = "locked"
    finalized = "finalized"


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    circle_id = Column(String(36), ForeignKey("circles.circle_id"), nullable=False, index=True)
    creator_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    location = Column(String(500), nullable=True)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.draft)
    starts_at = Column(UTCDateTime, nullable=True)
    ends_at = Column(UTCDateTime, nullable=True)
    reminder_minutes = Column(Integer, nullable=True)
    # Soft delete; repositories never return deleted events.
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    time_options = relationship(
        "EventTimeOption",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventTimeOption.start_time",
    )

    @property
    def has_committed_time(self) -> bool:
        return self.starts_at is not None and self.ends_at is not None


class EventTimeOption(Base):
    __tablename__ = "event_time_options"

    option_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    event = relationship("Event", back_populates="time_options")


class TimeVote(Base):
    """A member's current choice; at most one row per (event, voter)."""

    __tablename__ = "time_votes"
    __table_args__ = (UniqueConstraint("event_id", "voter_id", name="uq_time_vote_event_voter"),)

    vote_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_time_option_id = Column(
        String(36), ForeignKey("event_time_options.option_id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False)
    voter_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
