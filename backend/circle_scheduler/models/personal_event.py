"""PersonalEvent ORM model — a member's private calendar entry."""
import uuid
from sqlalchemy import Column, String, Boolean, ForeignKey
from circle_scheduler.database import Base, UTCDateTime, utcnow


class PersonalEvent(Base):
    __tablename__ = "personal_events"

    personal_event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
