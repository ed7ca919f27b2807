"""Member RSVPs — always a manual upsert, one row per (event, member)."""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.errors import ErrorKind, Result
from circle_scheduler.models.event import Event
from circle_scheduler.models.rsvp import Rsvp, RsvpSource, RsvpStatus
from circle_scheduler.repositories.circle_repository import CircleMemberRepository, UserRepository
from circle_scheduler.repositories.event_repository import EventRepository, RsvpRepository
from circle_scheduler.services import notification_templates, outbox_service

logger = logging.getLogger(__name__)


def _notify_creator(db: Session, event: Event, responder_id: str, status: RsvpStatus) -> None:
    responder = UserRepository(db).get(responder_id)
    name = responder.display_name if responder else "Someone"
    outbox_service.notify(
        db,
        notification_templates.rsvp_updated(event.creator_id, name, event, status),
        aggregate_type="event",
        aggregate_id=event.event_id,
    )


def update_rsvp(db: Session, event_id: str, user_id: str, status: RsvpStatus) -> Result[Rsvp]:
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    if CircleMemberRepository(db).find_member(event.circle_id, user_id) is None:
        return Result.fail(ErrorKind.forbidden, "You are not a member of this circle")

    try:
        rsvp = RsvpRepository(db).upsert(event_id, user_id, status, RsvpSource.manual)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to save RSVP of %s for event %s: %s", user_id, event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not save RSVP")
    logger.info("User %s RSVP'd %r to event %s", user_id, status.value, event_id)

    if user_id != event.creator_id:
        outbox_service.run_secondary(
            db, f"RSVP notice for {event_id}", lambda: _notify_creator(db, event, user_id, status)
        )
    db.refresh(rsvp)
    return Result.success(rsvp)
