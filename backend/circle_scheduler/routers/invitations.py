"""Invitation API routes: look up and accept an emailed invitation by token."""
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock
from circle_scheduler.database import get_db
from circle_scheduler.models.invitation import CircleInvitation
from circle_scheduler.repositories.circle_repository import UserRepository
from circle_scheduler.routers.common import get_clock, unwrap
from circle_scheduler.schemas.circle import InvitationAccepted, InvitationOut
from circle_scheduler.services import circle_service

logger = logging.getLogger(__name__)
router = APIRouter()


def invitation_out(db: Session, invitation: CircleInvitation) -> InvitationOut:
    return InvitationOut(
        invitation_id=invitation.invitation_id,
        circle_id=invitation.circle_id,
        email=invitation.invited_email,
        status=invitation.status,
        expires_at=invitation.expires_at,
        is_registered=UserRepository(db).get_by_email(invitation.invited_email) is not None,
    )


@router.get("/{token}", response_model=InvitationOut)
def get_invitation(token: str, db: Session = Depends(get_db)):
    return invitation_out(db, unwrap(circle_service.get_invitation(db, token)))


@router.post("/{token}/accept", response_model=InvitationAccepted)
def accept_invitation(
    token: str,
    user_id: str = Query(..., description="ID of the user accepting the invitation"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Join the circle; the user's email must match the invited address."""
    member = unwrap(circle_service.accept_invitation(db, token, user_id, clock))
    return InvitationAccepted(circle_id=member.circle_id, user_id=member.user_id, role=member.role)
