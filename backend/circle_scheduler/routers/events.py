"""Event API routes — delegates to the lifecycle, voting and RSVP services."""
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock
from circle_scheduler.database import get_db
from circle_scheduler.routers.common import get_clock, unwrap
from circle_scheduler.schemas.event import (
    EventCreate,
    EventDetailOut,
    EventOut,
    EventUpdate,
    LockRequest,
    RsvpOut,
    RsvpUpdate,
    TimeOptionOut,
    TimeOptionsAdd,
    TimeOptionTally,
    VoteCast,
    VoteOut,
)
from circle_scheduler.services import event_service, rsvp_service, voting_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """Create a voting event (time_options) or a fixed-time event (starts_at/ends_at)."""
    return unwrap(
        event_service.create_event(
            db=db,
            creator_id=payload.creator_id,
            circle_id=payload.circle_id,
            title=payload.title,
            description=payload.description,
            location=payload.location,
            reminder_minutes=payload.reminder_minutes,
            starts_at=payload.starts_at,
            ends_at=payload.ends_at,
            time_options=[(o.start_time, o.end_time) for o in payload.time_options],
            clock=clock,
        )
    )


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    """Event with per-option vote counts, the current winner and RSVPs."""
    detail = unwrap(event_service.get_event_detail(db, event_id))
    return EventDetailOut(
        event=EventOut.model_validate(detail.event),
        options=[
            TimeOptionTally(**TimeOptionOut.model_validate(option).model_dump(), votes=count)
            for option, count in detail.tally
        ],
        winning_option_id=detail.winning_option.option_id if detail.winning_option else None,
        rsvps=[RsvpOut.model_validate(r) for r in detail.rsvps],
    )


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor_user_id: str = Query(..., description="ID of the user performing the update"),
    db: Session = Depends(get_db),
):
    """Edit event details (creator, owner or admin). Times freeze on finalize."""
    changes = payload.model_dump(exclude_unset=True)
    return unwrap(event_service.update_event(db, event_id, actor_user_id, changes))


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Delete an event (creator, owner or admin). Pending reminders are dropped."""
    unwrap(event_service.delete_event(db, event_id, actor_user_id, clock))


@router.post("/{event_id}/options", response_model=list[TimeOptionOut], status_code=status.HTTP_201_CREATED)
def add_time_options(event_id: str, payload: TimeOptionsAdd, db: Session = Depends(get_db)):
    """Add candidate slots to a draft event."""
    ranges = [(o.start_time, o.end_time) for o in payload.options]
    return unwrap(voting_service.create_options(db, event_id, ranges))


@router.post("/{event_id}/votes", response_model=VoteOut)
def cast_vote(event_id: str, payload: VoteCast, db: Session = Depends(get_db)):
    """Vote for a time option; replaces the voter's previous choice."""
    outcome = unwrap(voting_service.cast_vote(db, event_id, payload.option_id, payload.voter_id))
    return VoteOut(
        vote_id=outcome.vote.vote_id,
        event_time_option_id=outcome.vote.event_time_option_id,
        voter_id=outcome.vote.voter_id,
        winning_option=TimeOptionOut.model_validate(outcome.winning_option) if outcome.winning_option else None,
    )


@router.post("/{event_id}/lock", response_model=EventOut)
def lock_event(
    event_id: str,
    payload: LockRequest,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    """Close voting on a hand-picked option."""
    return unwrap(event_service.lock_event(db, event_id, actor_user_id, payload.selected_option_id))


@router.post("/{event_id}/finalize", response_model=EventOut)
def finalize_event(
    event_id: str,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Commit the winning option and schedule conflict checks and notices."""
    return unwrap(event_service.finalize_event(db, event_id, actor_user_id, clock))


@router.put("/{event_id}/rsvp", response_model=RsvpOut)
def update_rsvp(event_id: str, payload: RsvpUpdate, db: Session = Depends(get_db)):
    """Set a member's attendance."""
    return unwrap(rsvp_service.update_rsvp(db, event_id, payload.user_id, payload.status))
