"""CircleInvitation ORM model."""
import enum
import uuid
from sqlalchemy import Column, String, ForeignKey, Enum as SAEnum
from circle_scheduler.database import Base, UTCDateTime, utcnow


class InvitationStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    expired = "expired"
    declined = "declined"


class CircleInvitation(Base):
    """An emailed invitation; the token is the only credential the invitee holds."""

    __tablename__ = "circle_invitations"

    invitation_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    circle_id = Column(String(36), ForeignKey("circles.circle_id", ondelete="CASCADE"), nullable=False, index=True)
    invited_email = Column(String(255), nullable=False)
    invited_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    token = Column(String(64), nullable=False, unique=True)
    status = Column(SAEnum(InvitationStatus), nullable=False, default=InvitationStatus.pending)
    expires_at = Column(UTCDateTime, nullable=False)
    accepted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
