"""Circle and CircleMember ORM models."""
import enum
import uuid
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship
from circle_scheduler.database import Base, UTCDateTime, utcnow


class CircleRole(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"


# Roles that may lock, finalize or edit any event in the circle.
MANAGER_ROLES = (CircleRole.owner, CircleRole.admin)


class Circle(Base):
    __tablename__ = "circles"

    circle_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(150), nullable=False)
    description = Column(String(500), nullable=True)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    members = relationship("CircleMember", back_populates="circle", cascade="all, delete-orphan")


class CircleMember(Base):
    __tablename__ = "circle_members"
    __table_args__ = (UniqueConstraint("circle_id", "user_id", name="uq_circle_member"),)

    member_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    circle_id = Column(String(36), ForeignKey("circles.circle_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    role = Column(SAEnum(CircleRole), nullable=False, default=CircleRole.member)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    circle = relationship("Circle", back_populates="members")
