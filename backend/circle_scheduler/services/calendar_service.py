"""Personal calendar entries and member-driven conflict resolution.

Personal events feed the conflict engine; a cancelled entry stays in the
table (``cancelled=True``) and is ignored by every overlap check.

The unified calendar merges those entries with the scheduled circle events
of every circle the user belongs to.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock, system_clock
from circle_scheduler.errors import ErrorKind, Result
from circle_scheduler.models.event import Event, EventStatus
from circle_scheduler.models.personal_event import PersonalEvent
from circle_scheduler.models.rsvp import RsvpStatus
from circle_scheduler.repositories.circle_repository import (
    CircleMemberRepository,
    CircleRepository,
    UserRepository,
)
from circle_scheduler.repositories.event_repository import EventRepository, RsvpRepository
from circle_scheduler.repositories.personal_event_repository import PersonalEventRepository
from circle_scheduler.services import rsvp_service
from circle_scheduler.services.overlap import overlaps

logger = logging.getLogger(__name__)


class ConflictTarget(str, enum.Enum):
    personal = "personal"
    circle = "circle"


class ConflictAction(str, enum.Enum):
    cancel_personal = "cancel_personal"
    change_rsvp_maybe = "change_rsvp_maybe"
    change_rsvp_going = "change_rsvp_going"
    keep_both = "keep_both"


def _owned(db: Session, personal_event_id: str, user_id: str) -> Result[PersonalEvent]:
    personal_event = PersonalEventRepository(db).get(personal_event_id)
    if personal_event is None:
        return Result.fail(ErrorKind.not_found, "Personal event not found")
    if personal_event.user_id != user_id:
        return Result.fail(ErrorKind.forbidden, "This personal event belongs to someone else")
    return Result.success(personal_event)


def create_personal_event(
    db: Session, user_id: str, title: str, start_time: datetime, end_time: datetime
) -> Result[PersonalEvent]:
    if UserRepository(db).get(user_id) is None:
        return Result.fail(ErrorKind.not_found, "User not found")
    if end_time <= start_time:
        return Result.fail(ErrorKind.invalid_time_range, "End time must be after start time")
    try:
        personal_event = PersonalEventRepository(db).add(
            PersonalEvent(user_id=user_id, title=title, start_time=start_time, end_time=end_time)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to create personal event for %s: %s", user_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not save personal event")
    db.refresh(personal_event)
    return Result.success(personal_event)


def list_personal_events(db: Session, user_id: str, include_cancelled: bool = False) -> list[PersonalEvent]:
    return PersonalEventRepository(db).list_for_user(user_id, include_cancelled=include_cancelled)


def update_personal_event(
    db: Session, personal_event_id: str, user_id: str, changes: dict[str, Any]
) -> Result[PersonalEvent]:
    result = _owned(db, personal_event_id, user_id)
    if not result.ok:
        return result
    personal_event = result.value
    if personal_event.cancelled:
        return Result.fail(ErrorKind.conflict, "Personal event is cancelled")

    changes = {k: v for k, v in changes.items() if k in ("title", "start_time", "end_time")}
    start = changes.get("start_time", personal_event.start_time)
    end = changes.get("end_time", personal_event.end_time)
    if start is None or end is None or end <= start:
        return Result.fail(ErrorKind.invalid_time_range, "End time must be after start time")

    try:
        for name, value in changes.items():
            setattr(personal_event, name, value)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to update personal event %s: %s", personal_event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not update personal event")
    db.refresh(personal_event)
    return Result.success(personal_event)


def cancel_personal_event(
    db: Session, personal_event_id: str, user_id: str, clock: Clock = system_clock
) -> Result[PersonalEvent]:
    result = _owned(db, personal_event_id, user_id)
    if not result.ok:
        return result
    personal_event = result.value
    if personal_event.cancelled:
        return Result.success(personal_event)
    try:
        personal_event.cancelled = True
        personal_event.cancelled_at = clock.now()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to cancel personal event %s: %s", personal_event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not cancel personal event")
    db.refresh(personal_event)
    logger.info("Personal event %s cancelled by %s", personal_event_id, user_id)
    return Result.success(personal_event)


def resolve_conflict(
    db: Session,
    user_id: str,
    target_id: str,
    target: ConflictTarget,
    action: ConflictAction,
    clock: Clock = system_clock,
) -> Result[str]:
    """Apply the member's answer to a conflict notification."""
    if target == ConflictTarget.personal and action == ConflictAction.cancel_personal:
        result = cancel_personal_event(db, target_id, user_id, clock)
        if not result.ok:
            return Result(error=result.error)
        return Result.success("Personal event marked as cancelled")

    if target == ConflictTarget.circle and action in (
        ConflictAction.change_rsvp_maybe,
        ConflictAction.change_rsvp_going,
    ):
        status = RsvpStatus.maybe if action == ConflictAction.change_rsvp_maybe else RsvpStatus.going
        result = rsvp_service.update_rsvp(db, target_id, user_id, status)
        if not result.ok:
            return Result(error=result.error)
        return Result.success(f"RSVP changed to {status.value}")

    if action == ConflictAction.keep_both:
        return Result.success("Kept both events as-is")

    return Result.fail(ErrorKind.validation_failed, "Invalid action or event type")


def find_conflicting_personal_events(
    db: Session, user_id: str, start: datetime, end: datetime, exclude_id: Optional[str] = None
) -> list[PersonalEvent]:
    return PersonalEventRepository(db).check_overlap(user_id, start, end, exclude_id=exclude_id)


class CalendarFilter(str, enum.Enum):
    all = "all"
    personal = "personal"
    going = "going"
    maybe = "maybe"
    not_going = "not-going"


_RSVP_FILTERS = {
    CalendarFilter.going: RsvpStatus.going,
    CalendarFilter.maybe: RsvpStatus.maybe,
    CalendarFilter.not_going: RsvpStatus.not_going,
}


@dataclass
class CalendarConflict:
    id: str
    title: str
    type: ConflictTarget
    start_time: datetime
    end_time: datetime


@dataclass
class CalendarEntry:
    """One row of the unified calendar, personal or circle."""

    id: str
    type: ConflictTarget
    title: str
    start_time: datetime
    end_time: datetime
    conflicts_with: list[CalendarConflict] = field(default_factory=list)
    cancelled: bool = False
    circle_id: Optional[str] = None
    circle_name: Optional[str] = None
    status: Optional[EventStatus] = None
    rsvp_status: Optional[RsvpStatus] = None
    attendee_count: int = 0
    is_creator: bool = False

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts_with)


@dataclass
class CalendarSummary:
    total_events: int = 0
    personal_events: int = 0
    circle_events: int = 0
    going_count: int = 0
    maybe_count: int = 0
    not_going_count: int = 0
    conflicts_count: int = 0


@dataclass
class UnifiedCalendar:
    events: list[CalendarEntry]
    summary: CalendarSummary


def _as_conflict(entry_id: str, title: str, kind: ConflictTarget, start: datetime, end: datetime) -> CalendarConflict:
    return CalendarConflict(id=entry_id, title=title, type=kind, start_time=start, end_time=end)


def list_unified_calendar(
    db: Session,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    calendar_filter: CalendarFilter = CalendarFilter.all,
) -> Result[UnifiedCalendar]:
    """Personal entries and scheduled circle events of one user, merged by start time.

    ``start``/``end`` narrow the view to entries overlapping that window;
    both must be given for the window to apply. Circle events without a
    committed time never appear.
    """
    if UserRepository(db).get(user_id) is None:
        return Result.fail(ErrorKind.not_found, "User not found")
    windowed = start is not None and end is not None
    if windowed and end <= start:
        return Result.fail(ErrorKind.invalid_time_range, "End time must be after start time")

    personal_events = PersonalEventRepository(db).list_for_user(user_id, include_cancelled=True)
    circle_events: list[Event] = []
    circle_names: dict[str, str] = {}
    for circle_id in CircleMemberRepository(db).list_circle_ids_for_user(user_id):
        circle = CircleRepository(db).get(circle_id)
        circle_names[circle_id] = circle.name if circle else "Unknown Circle"
        circle_events.extend(EventRepository(db).list_scheduled_for_circle(circle_id))
    if windowed:
        personal_events = [pe for pe in personal_events if overlaps(pe.start_time, pe.end_time, start, end)]
        circle_events = [ev for ev in circle_events if overlaps(ev.starts_at, ev.ends_at, start, end)]
    active_personal = [pe for pe in personal_events if not pe.cancelled]

    personal_entries = []
    for pe in personal_events:
        entry = CalendarEntry(
            id=pe.personal_event_id,
            type=ConflictTarget.personal,
            title=pe.title,
            start_time=pe.start_time,
            end_time=pe.end_time,
            cancelled=pe.cancelled,
        )
        # Cancelled entries never conflict.
        if not pe.cancelled:
            entry.conflicts_with = [
                _as_conflict(ev.event_id, ev.title, ConflictTarget.circle, ev.starts_at, ev.ends_at)
                for ev in circle_events
                if overlaps(pe.start_time, pe.end_time, ev.starts_at, ev.ends_at)
            ]
        personal_entries.append(entry)

    rsvps = RsvpRepository(db)
    circle_entries = []
    for ev in circle_events:
        rsvp = rsvps.find_by_event_and_user(ev.event_id, user_id)
        conflicts = [
            _as_conflict(pe.personal_event_id, pe.title, ConflictTarget.personal, pe.start_time, pe.end_time)
            for pe in active_personal
            if overlaps(ev.starts_at, ev.ends_at, pe.start_time, pe.end_time)
        ]
        conflicts.extend(
            _as_conflict(other.event_id, other.title, ConflictTarget.circle, other.starts_at, other.ends_at)
            for other in circle_events
            if other.event_id != ev.event_id and overlaps(ev.starts_at, ev.ends_at, other.starts_at, other.ends_at)
        )
        circle_entries.append(
            CalendarEntry(
                id=ev.event_id,
                type=ConflictTarget.circle,
                title=ev.title,
                start_time=ev.starts_at,
                end_time=ev.ends_at,
                conflicts_with=conflicts,
                circle_id=ev.circle_id,
                circle_name=circle_names.get(ev.circle_id),
                status=ev.status,
                rsvp_status=rsvp.status if rsvp else None,
                attendee_count=rsvps.count_with_status(ev.event_id, RsvpStatus.going),
                is_creator=ev.creator_id == user_id,
            )
        )

    if calendar_filter == CalendarFilter.personal:
        circle_entries = []
    elif calendar_filter in _RSVP_FILTERS:
        wanted = _RSVP_FILTERS[calendar_filter]
        personal_entries = []
        circle_entries = [entry for entry in circle_entries if entry.rsvp_status == wanted]

    entries = sorted(personal_entries + circle_entries, key=lambda entry: entry.start_time)
    summary = CalendarSummary(
        total_events=len(entries),
        personal_events=len(personal_entries),
        circle_events=len(circle_entries),
        going_count=sum(1 for e in circle_entries if e.rsvp_status == RsvpStatus.going),
        maybe_count=sum(1 for e in circle_entries if e.rsvp_status == RsvpStatus.maybe),
        not_going_count=sum(1 for e in circle_entries if e.rsvp_status == RsvpStatus.not_going),
        conflicts_count=sum(1 for e in entries if e.has_conflict),
    )
    return Result.success(UnifiedCalendar(events=entries, summary=summary))
