"""Circle API routes."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock
from circle_scheduler.database import get_db
from circle_scheduler.repositories.circle_repository import CircleRepository
from circle_scheduler.repositories.event_repository import EventRepository
from circle_scheduler.routers.common import get_clock, unwrap
from circle_scheduler.routers.invitations import invitation_out
from circle_scheduler.schemas.circle import (
    CircleCreate,
    CircleMemberAdd,
    CircleMemberOut,
    CircleOut,
    InvitationCreate,
    InvitationOut,
)
from circle_scheduler.schemas.event import EventOut
from circle_scheduler.services import circle_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=CircleOut, status_code=status.HTTP_201_CREATED)
def create_circle(payload: CircleCreate, db: Session = Depends(get_db)):
    """Create a new circle. Creator is automatically added as owner."""
    return unwrap(circle_service.create_circle(db, payload.created_by, payload.name, payload.description))


@router.get("/{circle_id}", response_model=CircleOut)
def get_circle(circle_id: str, db: Session = Depends(get_db)):
    """Fetch a single circle by ID with members."""
    circle = CircleRepository(db).get(circle_id)
    if not circle:
        raise HTTPException(status_code=404, detail="Circle not found")
    return circle


@router.get("/{circle_id}/events", response_model=list[EventOut])
def list_circle_events(circle_id: str, db: Session = Depends(get_db)):
    """All events of a circle, drafts included."""
    if not CircleRepository(db).get(circle_id):
        raise HTTPException(status_code=404, detail="Circle not found")
    return EventRepository(db).list_for_circle(circle_id)


@router.post("/{circle_id}/members", response_model=CircleMemberOut, status_code=status.HTTP_201_CREATED)
def add_member(
    circle_id: str,
    payload: CircleMemberAdd,
    actor_user_id: str = Query(..., description="ID of the owner/admin adding the member"),
    db: Session = Depends(get_db),
):
    """Add a member to a circle."""
    return unwrap(circle_service.add_member(db, circle_id, actor_user_id, payload.user_id, payload.role))


@router.delete("/{circle_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    circle_id: str,
    user_id: str,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    """Remove a member from a circle (or leave it)."""
    unwrap(circle_service.remove_member(db, circle_id, actor_user_id, user_id))


@router.post("/{circle_id}/invitations", response_model=InvitationOut, status_code=status.HTTP_202_ACCEPTED)
def invite(
    circle_id: str,
    payload: InvitationCreate,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Store an invitation and queue its email for the outbox dispatcher."""
    invitation = unwrap(circle_service.invite_by_email(db, circle_id, actor_user_id, payload.email, clock))
    return invitation_out(db, invitation)
