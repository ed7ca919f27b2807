"""Conflict detection engine.

A member is in conflict with a scheduled circle event when either
- one of their non-cancelled personal events overlaps it, or
- another scheduled circle event they RSVP'd "going" to overlaps it.

Personal events are checked first; the first hit wins. When a conflict is
found and the member has not answered yet, they are auto-RSVP'd
"not going" and sent a conflict notification (through the outbox). RSVPs
written by the member are never overwritten.

``resolve_member_conflict`` is shared by the synchronous path (fixed-time
event creation) and the outbox-driven conflict job, so both produce the
same outcome for the same inputs.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.models.event import Event
from circle_scheduler.models.rsvp import RsvpSource, RsvpStatus
from circle_scheduler.repositories.circle_repository import CircleMemberRepository
from circle_scheduler.repositories.event_repository import EventRepository, RsvpRepository
from circle_scheduler.repositories.notification_repository import NotificationRepository
from circle_scheduler.repositories.personal_event_repository import PersonalEventRepository
from circle_scheduler.services import notification_templates, outbox_service
from circle_scheduler.services.overlap import overlaps

logger = logging.getLogger(__name__)

PERSONAL = "personal"
CIRCLE = "circle"


@dataclass(frozen=True)
class Conflict:
    kind: str  # PERSONAL or CIRCLE
    conflicting_id: str
    title: str


@dataclass(frozen=True)
class MemberConflictOutcome:
    user_id: str
    conflict: Optional[Conflict] = None
    rsvp_created: bool = False
    notified: bool = False


def find_conflict(
    db: Session,
    user_id: str,
    starts_at: datetime,
    ends_at: datetime,
    event_id: str,
) -> Optional[Conflict]:
    """Return the first commitment of ``user_id`` colliding with the range, if any."""
    personal = PersonalEventRepository(db).check_overlap(user_id, starts_at, ends_at)
    if personal:
        hit = personal[0]
        return Conflict(kind=PERSONAL, conflicting_id=hit.personal_event_id, title=hit.title)

    events = EventRepository(db)
    rsvps = RsvpRepository(db)
    for circle_id in CircleMemberRepository(db).list_circle_ids_for_user(user_id):
        for other in events.list_scheduled_for_circle(circle_id):
            if other.event_id == event_id:
                continue
            if not overlaps(other.starts_at, other.ends_at, starts_at, ends_at):
                continue
            rsvp = rsvps.find_by_event_and_user(other.event_id, user_id)
            if rsvp is not None and rsvp.status == RsvpStatus.going:
                return Conflict(kind=CIRCLE, conflicting_id=other.event_id, title=other.title)
    return None


def resolve_member_conflict(db: Session, event: Event, user_id: str) -> MemberConflictOutcome:
    """Detect and act on a conflict for one member of ``event``.

    Commits its own writes. Safe to re-run: an RSVP is only created when
    none exists, and the notification is keyed by (event, member) so a
    retry never emits it twice. Store errors propagate to the caller.
    """
    conflict = find_conflict(db, user_id, event.starts_at, event.ends_at, event.event_id)
    if conflict is None:
        return MemberConflictOutcome(user_id=user_id)

    rsvps = RsvpRepository(db)
    existing = rsvps.find_by_event_and_user(event.event_id, user_id)
    rsvp_created = False
    if existing is None:
        rsvps.upsert(event.event_id, user_id, RsvpStatus.not_going, RsvpSource.conflict)
        db.commit()
        rsvp_created = True
        logger.info(
            "Auto-RSVP'd user %s 'not going' to event %s (conflicts with %s %s)",
            user_id, event.event_id, conflict.kind, conflict.conflicting_id,
        )
    elif existing.source != RsvpSource.conflict:
        logger.info("User %s already answered event %s; leaving RSVP untouched", user_id, event.event_id)
        return MemberConflictOutcome(user_id=user_id, conflict=conflict)

    dedupe_key = notification_templates.conflict_dedupe_key(event.event_id, user_id)
    if NotificationRepository(db).find_by_dedupe_key(dedupe_key) is not None:
        return MemberConflictOutcome(user_id=user_id, conflict=conflict, rsvp_created=rsvp_created)

    notification = notification_templates.conflict_detected(
        user_id, event, conflict.conflicting_id, conflict.title
    )
    outbox_service.notify(db, notification, aggregate_type="event", aggregate_id=event.event_id)
    db.commit()
    return MemberConflictOutcome(user_id=user_id, conflict=conflict, rsvp_created=rsvp_created, notified=True)


def detect_conflicts_now(db: Session, event: Event) -> list[MemberConflictOutcome]:
    """Synchronous pass over every circle member, used on fixed-time creation.

    Runs after the event itself is committed; a failure for one member is
    logged and never undoes the event.
    """
    outcomes = []
    for member in CircleMemberRepository(db).list_members(event.circle_id):
        try:
            outcomes.append(resolve_member_conflict(db, event, member.user_id))
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "Conflict check failed for user %s on event %s: %s", member.user_id, event.event_id, exc
            )
    return outcomes
