"""Conflict resolution job — consumer of ``event.process_conflicts`` outbox rows.

Payload: ``{"eventId": ..., "circleId": ...}``. Runs the conflict engine
for every member of the circle. Store errors propagate so the dispatcher
retries the whole job; per-member work is idempotent, so members handled
by an earlier partial attempt are not written or notified again.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from circle_scheduler.repositories.circle_repository import CircleMemberRepository
from circle_scheduler.repositories.event_repository import EventRepository
from circle_scheduler.services.conflict_service import MemberConflictOutcome, resolve_member_conflict
from circle_scheduler.services.outbox_errors import PermanentOutboxError

logger = logging.getLogger(__name__)


def process_event_conflicts(db: Session, payload: dict[str, Any]) -> list[MemberConflictOutcome]:
    event_id = (payload or {}).get("eventId")
    circle_id = (payload or {}).get("circleId")
    if not event_id or not circle_id:
        raise PermanentOutboxError(f"Invalid event.process_conflicts payload: {payload!r}")

    event = EventRepository(db).get(event_id)
    if event is None or event.circle_id != circle_id:
        logger.warning("Event %s not found in circle %s; nothing to check", event_id, circle_id)
        return []
    if not event.has_committed_time:
        logger.warning("Event %s has no committed time; skipping conflict scan", event_id)
        return []

    outcomes = [
        resolve_member_conflict(db, event, member.user_id)
        for member in CircleMemberRepository(db).list_members(circle_id)
    ]
    conflicted = sum(1 for o in outcomes if o.conflict is not None)
    logger.info(
        "Conflict scan for event %s: %d members checked, %d in conflict", event_id, len(outcomes), conflicted
    )
    return outcomes
