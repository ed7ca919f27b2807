"""Repositories for events, time options, votes and RSVPs."""
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from circle_scheduler.models.event import Event, EventTimeOption, TimeVote
from circle_scheduler.models.rsvp import Rsvp, RsvpSource, RsvpStatus


class EventRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _live(self):
        return self.db.query(Event).filter(Event.is_deleted.is_(False))

    def get(self, event_id: str) -> Optional[Event]:
        return self._live().filter(Event.event_id == event_id).first()

    def add(self, event: Event) -> Event:
        self.db.add(event)
        self.db.flush()
        return event

    def list_for_circle(self, circle_id: str) -> list[Event]:
        return (
            self._live()
            .filter(Event.circle_id == circle_id)
            .order_by(Event.created_at, Event.event_id)
            .all()
        )

    def list_scheduled_for_circle(self, circle_id: str) -> list[Event]:
        """Events of a circle that have a committed time, earliest first."""
        return (
            self._live()
            .filter(
                Event.circle_id == circle_id,
                Event.starts_at.isnot(None),
                Event.ends_at.isnot(None),
            )
            .order_by(Event.starts_at, Event.event_id)
            .all()
        )


class TimeOptionRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, option_id: str) -> Optional[EventTimeOption]:
        return self.db.query(EventTimeOption).filter(EventTimeOption.option_id == option_id).first()

    def add_many(self, event_id: str, ranges: list[tuple[datetime, datetime]]) -> list[EventTimeOption]:
        options = [
            EventTimeOption(event_id=event_id, start_time=start, end_time=end)
            for start, end in ranges
        ]
        self.db.add_all(options)
        self.db.flush()
        return options

    def tally(self, event_id: str) -> list[tuple[EventTimeOption, int]]:
        """Every option of the event with its active vote count.

        Ordered ``vote count DESC, start_time ASC`` so the first entry is
        the current winner.
        """
        vote_count = func.count(TimeVote.vote_id)
        rows = (
            self.db.query(EventTimeOption, vote_count)
            .outerjoin(TimeVote, TimeVote.event_time_option_id == EventTimeOption.option_id)
            .filter(EventTimeOption.event_id == event_id)
            .group_by(EventTimeOption.option_id)
            .order_by(vote_count.desc(), EventTimeOption.start_time.asc(), EventTimeOption.option_id)
            .all()
        )
        return [(option, count) for option, count in rows]

    def find_winning_option(self, event_id: str) -> Optional[EventTimeOption]:
        ranked = self.tally(event_id)
        return ranked[0][0] if ranked else None


class TimeVoteRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def remove_user_votes_for_event(self, event_id: str, voter_id: str) -> int:
        removed = (
            self.db.query(TimeVote)
            .filter(TimeVote.event_id == event_id, TimeVote.voter_id == voter_id)
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        return removed

    def add(self, vote: TimeVote) -> TimeVote:
        self.db.add(vote)
        self.db.flush()
        return vote


class RsvpRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_event_and_user(self, event_id: str, user_id: str) -> Optional[Rsvp]:
        return (
            self.db.query(Rsvp)
            .filter(Rsvp.event_id == event_id, Rsvp.user_id == user_id)
            .first()
        )

    def list_for_event(self, event_id: str) -> list[Rsvp]:
        return self.db.query(Rsvp).filter(Rsvp.event_id == event_id).order_by(Rsvp.created_at).all()

    def count_with_status(self, event_id: str, status: RsvpStatus) -> int:
        return self.db.query(Rsvp).filter(Rsvp.event_id == event_id, Rsvp.status == status).count()

    def upsert(self, event_id: str, user_id: str, status: RsvpStatus, source: RsvpSource) -> Rsvp:
        """Create or replace the single RSVP row for (event, user)."""
        rsvp = self.find_by_event_and_user(event_id, user_id)
        if rsvp is None:
            rsvp = Rsvp(event_id=event_id, user_id=user_id, status=status, source=source)
            self.db.add(rsvp)
        else:
            rsvp.status = status
            rsvp.source = source
        self.db.flush()
        return rsvp
