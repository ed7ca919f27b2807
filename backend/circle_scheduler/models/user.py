"""User ORM model."""
import uuid
from sqlalchemy import Column, String
from circle_scheduler.database import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    default_timezone = Column(String(50), nullable=False, default="UTC")  # IANA tz
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
