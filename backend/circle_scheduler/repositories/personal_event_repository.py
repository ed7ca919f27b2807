"""Repository for members' personal calendar entries."""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from circle_scheduler.models.personal_event import PersonalEvent
from circle_scheduler.services.overlap import overlaps


class PersonalEventRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, personal_event_id: str) -> Optional[PersonalEvent]:
        return (
            self.db.query(PersonalEvent)
            .filter(PersonalEvent.personal_event_id == personal_event_id)
            .first()
        )

    def add(self, personal_event: PersonalEvent) -> PersonalEvent:
        self.db.add(personal_event)
        self.db.flush()
        return personal_event

    def list_for_user(self, user_id: str, include_cancelled: bool = False) -> list[PersonalEvent]:
        query = self.db.query(PersonalEvent).filter(PersonalEvent.user_id == user_id)
        if not include_cancelled:
            query = query.filter(PersonalEvent.cancelled.is_(False))
        return query.order_by(PersonalEvent.start_time).all()

    def check_overlap(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> list[PersonalEvent]:
        """Non-cancelled personal events of the user overlapping [start, end)."""
        query = self.db.query(PersonalEvent).filter(
            PersonalEvent.user_id == user_id,
            PersonalEvent.cancelled.is_(False),
            PersonalEvent.start_time < end,
        )
        if exclude_id:
            query = query.filter(PersonalEvent.personal_event_id != exclude_id)
        candidates = query.order_by(PersonalEvent.start_time, PersonalEvent.personal_event_id).all()
        return [pe for pe in candidates if overlaps(pe.start_time, pe.end_time, start, end)]
