"""Core event service — the event lifecycle state machine.

Responsibilities:
- Transition table ``draft -> locked -> finalized``, checked in one place
- Authorization hook: creator, or a circle owner/admin, may lock/finalize/edit/delete
- Time commitment from a chosen (lock) or winning (finalize) option
- Fixed-time creation goes straight to ``finalized`` and runs the conflict
  scan before returning
- Deferred side effects (conflict job, member notices, reminders) are
  written to the outbox after the primary commit; failures there are
  logged and never undo the primary change
- Deletion is soft: the row stays, repositories stop returning it
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock, system_clock
from circle_scheduler.errors import ErrorKind, Result, ServiceError
from circle_scheduler.models.circle import MANAGER_ROLES
from circle_scheduler.models.event import Event, EventStatus, EventTimeOption
from circle_scheduler.models.outbox_event import OutboxEventType
from circle_scheduler.models.rsvp import Rsvp
from circle_scheduler.repositories.circle_repository import (
    CircleMemberRepository,
    CircleRepository,
    UserRepository,
)
from circle_scheduler.repositories.event_repository import (
    EventRepository,
    RsvpRepository,
    TimeOptionRepository,
)
from circle_scheduler.services import conflict_service, notification_templates, outbox_service
from circle_scheduler.services.voting_service import validate_ranges

logger = logging.getLogger(__name__)

TRANSITIONS: dict[EventStatus, tuple[EventStatus, ...]] = {
    EventStatus.draft: (EventStatus.locked, EventStatus.finalized),
    EventStatus.locked: (EventStatus.finalized,),
    EventStatus.finalized: (),
}

EDITABLE_FIELDS = ("title", "description", "location", "reminder_minutes", "starts_at", "ends_at")
TIME_FIELDS = ("starts_at", "ends_at")


@dataclass
class EventDetail:
    event: Event
    tally: list[tuple[EventTimeOption, int]] = field(default_factory=list)
    winning_option: Optional[EventTimeOption] = None
    rsvps: list[Rsvp] = field(default_factory=list)


def check_transition(current: EventStatus, target: EventStatus) -> Optional[ServiceError]:
    if current == EventStatus.finalized:
        return ServiceError(ErrorKind.already_finalized, "Event is already finalized")
    if target not in TRANSITIONS[current]:
        return ServiceError(
            ErrorKind.conflict, f"Cannot move event from {current.value} to {target.value}"
        )
    return None


def _authorize_manager(db: Session, event: Event, actor_id: str) -> Optional[ServiceError]:
    """Only the creator or a circle owner/admin may manage an event."""
    membership = CircleMemberRepository(db).find_member(event.circle_id, actor_id)
    if membership is None:
        return ServiceError(ErrorKind.forbidden, "You are not a member of this circle")
    if event.creator_id != actor_id and membership.role not in MANAGER_ROLES:
        return ServiceError(ErrorKind.forbidden, "You don't have permission to manage this event")
    return None


def _store_failure(db: Session, exc: SQLAlchemyError, action: str) -> Result:
    db.rollback()
    logger.error("Store error while trying to %s: %s", action, exc)
    return Result.fail(ErrorKind.store_error, f"Could not {action}")


def _schedule_reminders(db: Session, event: Event, now: datetime) -> int:
    if event.reminder_minutes is None or event.starts_at is None:
        return 0
    lead_time = timedelta(minutes=event.reminder_minutes)
    remind_at = event.starts_at - lead_time
    if remind_at <= now:
        return 0
    members = CircleMemberRepository(db).list_members(event.circle_id)
    for member in members:
        outbox_service.notify(
            db,
            notification_templates.event_reminder(member.user_id, event, lead_time),
            aggregate_type="event",
            aggregate_id=event.event_id,
            event_type=OutboxEventType.NOTIFICATION_REMINDER,
            scheduled_for=remind_at,
        )
    logger.info("Scheduled %d reminders for event %s at %s", len(members), event.event_id, remind_at.isoformat())
    return len(members)


def _announce_finalized(db: Session, event: Event) -> None:
    outbox_service.enqueue(
        db,
        aggregate_type="event",
        aggregate_id=event.event_id,
        event_type=OutboxEventType.PROCESS_CONFLICTS,
        payload={"eventId": event.event_id, "circleId": event.circle_id},
    )
    circle = CircleRepository(db).get(event.circle_id)
    users = UserRepository(db)
    for member in CircleMemberRepository(db).list_members(event.circle_id):
        user = users.get(member.user_id)
        tz_name = user.default_timezone if user else "UTC"
        outbox_service.notify(
            db,
            notification_templates.event_finalized(member.user_id, tz_name, event, circle),
            aggregate_type="event",
            aggregate_id=event.event_id,
        )


def create_event(
    db: Session,
    creator_id: str,
    circle_id: str,
    title: str,
    description: Optional[str] = None,
    location: Optional[str] = None,
    reminder_minutes: Optional[int] = None,
    starts_at: Optional[datetime] = None,
    ends_at: Optional[datetime] = None,
    time_options: Optional[list[tuple[datetime, datetime]]] = None,
    clock: Clock = system_clock,
) -> Result[Event]:
    """Create a voting (draft) event, or a fixed-time event that is final at once."""
    if CircleMemberRepository(db).find_member(circle_id, creator_id) is None:
        return Result.fail(ErrorKind.forbidden, "You are not a member of this circle")

    time_options = time_options or []
    fixed_time = starts_at is not None or ends_at is not None
    if time_options and fixed_time:
        return Result.fail(ErrorKind.validation_failed, "Provide either fixed times or time options, not both")
    if time_options:
        error = validate_ranges(time_options)
        if error:
            return Result(error=error)
    else:
        if starts_at is None or ends_at is None:
            return Result.fail(ErrorKind.no_times_available, "A fixed-time event needs both start and end")
        if ends_at <= starts_at:
            return Result.fail(ErrorKind.invalid_time_range, "End time must be after start time")

    event = Event(
        circle_id=circle_id,
        creator_id=creator_id,
        title=title,
        description=description,
        location=location,
        reminder_minutes=reminder_minutes,
        status=EventStatus.draft if time_options else EventStatus.finalized,
        starts_at=None if time_options else starts_at,
        ends_at=None if time_options else ends_at,
    )
    try:
        EventRepository(db).add(event)
        if time_options:
            TimeOptionRepository(db).add_many(event.event_id, time_options)
        db.commit()
    except SQLAlchemyError as exc:
        return _store_failure(db, exc, "create event")
    db.refresh(event)
    logger.info("Created %s event '%s' (%s) by %s", event.status.value, title, event.event_id, creator_id)

    if event.status == EventStatus.finalized:
        conflict_service.detect_conflicts_now(db, event)
        outbox_service.run_secondary(
            db, f"reminders for {event.event_id}", lambda: _schedule_reminders(db, event, clock.now())
        )
        db.refresh(event)
    return Result.success(event)


def lock_event(db: Session, event_id: str, actor_id: str, selected_option_id: str) -> Result[Event]:
    """Close voting and commit the time of a hand-picked option."""
    events = EventRepository(db)
    event = events.get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    error = _authorize_manager(db, event, actor_id)
    if error:
        return Result(error=error)
    if event.status == EventStatus.finalized:
        return Result.fail(ErrorKind.already_finalized, "Event is already finalized")

    option = TimeOptionRepository(db).get(selected_option_id)
    if option is None or option.event_id != event_id:
        return Result.fail(ErrorKind.invalid_option, "Invalid time option for this event")
    error = check_transition(event.status, EventStatus.locked)
    if error:
        return Result(error=error)

    try:
        event.starts_at = option.start_time
        event.ends_at = option.end_time
        event.status = EventStatus.locked
        db.commit()
    except SQLAlchemyError as exc:
        return _store_failure(db, exc, "lock event")
    db.refresh(event)
    logger.info("Event %s locked to option %s by %s", event_id, selected_option_id, actor_id)
    return Result.success(event)


def finalize_event(db: Session, event_id: str, actor_id: str, clock: Clock = system_clock) -> Result[Event]:
    """Commit the winning option and make the decision terminal."""
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    error = _authorize_manager(db, event, actor_id)
    if error:
        return Result(error=error)
    if event.status == EventStatus.finalized:
        return Result.fail(ErrorKind.already_finalized, "Event is already finalized")
    error = check_transition(event.status, EventStatus.finalized)
    if error:
        return Result(error=error)

    try:
        winner = TimeOptionRepository(db).find_winning_option(event_id)
        if winner is None:
            return Result.fail(ErrorKind.no_times_available, "No time options available to finalize")
        event.starts_at = winner.start_time
        event.ends_at = winner.end_time
        event.status = EventStatus.finalized
        db.commit()
    except SQLAlchemyError as exc:
        return _store_failure(db, exc, "finalize event")
    db.refresh(event)
    logger.info("Event %s finalized at %s by %s", event_id, event.starts_at.isoformat(), actor_id)

    outbox_service.run_secondary(db, f"announcements for {event_id}", lambda: _announce_finalized(db, event))
    outbox_service.run_secondary(
        db, f"reminders for {event_id}", lambda: _schedule_reminders(db, event, clock.now())
    )
    db.refresh(event)
    return Result.success(event)


def update_event(db: Session, event_id: str, actor_id: str, changes: dict[str, Any]) -> Result[Event]:
    """Edit event details. Times are frozen once finalized."""
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    error = _authorize_manager(db, event, actor_id)
    if error:
        return Result(error=error)

    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    touches_time = any(k in changes for k in TIME_FIELDS)
    if touches_time:
        if event.status == EventStatus.finalized:
            return Result.fail(ErrorKind.cannot_modify_finalized, "Cannot change times of a finalized event")
        if event.status == EventStatus.draft:
            return Result.fail(ErrorKind.validation_failed, "A draft event gets its time from voting")
        new_start = changes.get("starts_at", event.starts_at)
        new_end = changes.get("ends_at", event.ends_at)
        if new_start is None or new_end is None or new_end <= new_start:
            return Result.fail(ErrorKind.invalid_time_range, "End time must be after start time")

    try:
        for name, value in changes.items():
            setattr(event, name, value)
        db.commit()
    except SQLAlchemyError as exc:
        return _store_failure(db, exc, "update event")
    db.refresh(event)
    logger.info("Updated event %s fields %s", event_id, sorted(changes))
    return Result.success(event)


def get_event_detail(db: Session, event_id: str) -> Result[EventDetail]:
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    tally = TimeOptionRepository(db).tally(event_id)
    return Result.success(
        EventDetail(
            event=event,
            tally=tally,
            winning_option=tally[0][0] if tally else None,
            rsvps=RsvpRepository(db).list_for_event(event_id),
        )
    )


def delete_event(db: Session, event_id: str, actor_id: str, clock: Clock = system_clock) -> Result[None]:
    """Soft-delete an event. Its pending reminders are dropped at delivery time."""
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    error = _authorize_manager(db, event, actor_id)
    if error:
        return Result(error=error)

    try:
        event.is_deleted = True
        event.deleted_at = clock.now()
        db.commit()
    except SQLAlchemyError as exc:
        return _store_failure(db, exc, "delete event")
    logger.info("Event %s deleted by %s", event_id, actor_id)
    return Result.success(None)
