"""Time-option voting engine.

One active vote per (event, voter): casting again replaces the previous
choice inside the same transaction, and the ``uq_time_vote_event_voter``
constraint rejects a concurrent duplicate. The winner is the option with
the most votes; ties go to the earliest start time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from circle_scheduler.errors import ErrorKind, Result, ServiceError
from circle_scheduler.models.event import EventStatus, EventTimeOption, TimeVote
from circle_scheduler.repositories.circle_repository import CircleMemberRepository
from circle_scheduler.repositories.event_repository import (
    EventRepository,
    TimeOptionRepository,
    TimeVoteRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteOutcome:
    vote: TimeVote
    winning_option: Optional[EventTimeOption]


def validate_ranges(ranges: list[tuple[datetime, datetime]]) -> Optional[ServiceError]:
    for start, end in ranges:
        if end <= start:
            return ServiceError(ErrorKind.invalid_time_range, "End time must be after start time")
    return None


def create_options(
    db: Session, event_id: str, ranges: list[tuple[datetime, datetime]]
) -> Result[list[EventTimeOption]]:
    """Attach candidate slots to a draft event."""
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    if event.status != EventStatus.draft:
        return Result.fail(ErrorKind.event_not_votable, f"Event is {event.status.value}; options are fixed")
    if not ranges:
        return Result.fail(ErrorKind.validation_failed, "At least one time option is required")
    error = validate_ranges(ranges)
    if error:
        return Result(error=error)

    try:
        options = TimeOptionRepository(db).add_many(event_id, ranges)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to create time options for event %s: %s", event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not save time options")
    logger.info("Added %d time options to event %s", len(options), event_id)
    return Result.success(options)


def cast_vote(db: Session, event_id: str, option_id: str, voter_id: str) -> Result[VoteOutcome]:
    """Record ``voter_id``'s choice, replacing any earlier vote on the event."""
    event = EventRepository(db).get(event_id)
    if event is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    if event.status == EventStatus.finalized:
        return Result.fail(ErrorKind.event_not_votable, "Cannot vote on a finalized event")
    if event.status == EventStatus.locked:
        return Result.fail(ErrorKind.event_not_votable, "Voting is locked for this event")
    if CircleMemberRepository(db).find_member(event.circle_id, voter_id) is None:
        return Result.fail(ErrorKind.forbidden, "You are not a member of this circle")

    options = TimeOptionRepository(db)
    option = options.get(option_id)
    if option is None or option.event_id != event_id:
        return Result.fail(ErrorKind.option_not_found, "Invalid time option for this event")

    votes = TimeVoteRepository(db)
    try:
        votes.remove_user_votes_for_event(event_id, voter_id)
        vote = votes.add(TimeVote(event_time_option_id=option_id, event_id=event_id, voter_id=voter_id))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to record vote of %s on event %s: %s", voter_id, event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not record vote")

    logger.info("User %s voted for option %s on event %s", voter_id, option_id, event_id)
    return Result.success(VoteOutcome(vote=vote, winning_option=options.find_winning_option(event_id)))


def winning_option(db: Session, event_id: str) -> Result[Optional[EventTimeOption]]:
    """Current leader; ``None`` when the event has no options."""
    if EventRepository(db).get(event_id) is None:
        return Result.fail(ErrorKind.not_found, "Event not found")
    try:
        return Result.success(TimeOptionRepository(db).find_winning_option(event_id))
    except SQLAlchemyError as exc:
        logger.error("Failed to tally votes for event %s: %s", event_id, exc)
        return Result.fail(ErrorKind.store_error, "Could not tally votes")
