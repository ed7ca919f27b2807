"""Calendar API routes: the unified view and personal entries."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from circle_scheduler.clock import Clock
from circle_scheduler.database import as_utc, get_db
from circle_scheduler.routers.common import get_clock, unwrap
from circle_scheduler.schemas.calendar import (
    ConflictResolution,
    ConflictResolutionOut,
    PersonalEventCreate,
    PersonalEventOut,
    PersonalEventUpdate,
    UnifiedCalendarOut,
)
from circle_scheduler.services import calendar_service
from circle_scheduler.services.calendar_service import CalendarFilter

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{user_id}", response_model=UnifiedCalendarOut)
def unified_calendar(
    user_id: str,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    calendar_filter: CalendarFilter = Query(CalendarFilter.all, alias="filter"),
    db: Session = Depends(get_db),
):
    """Personal and circle events of a user in one list, with RSVP state and conflicts."""
    calendar = unwrap(
        calendar_service.list_unified_calendar(
            db,
            user_id,
            as_utc(start) if start else None,
            as_utc(end) if end else None,
            calendar_filter,
        )
    )
    return UnifiedCalendarOut.model_validate(calendar)


@router.post("/{user_id}/personal-events", response_model=PersonalEventOut, status_code=status.HTTP_201_CREATED)
def create_personal_event(user_id: str, payload: PersonalEventCreate, db: Session = Depends(get_db)):
    return unwrap(
        calendar_service.create_personal_event(db, user_id, payload.title, payload.start_time, payload.end_time)
    )


@router.get("/{user_id}/personal-events", response_model=list[PersonalEventOut])
def list_personal_events(
    user_id: str,
    include_cancelled: bool = Query(False),
    db: Session = Depends(get_db),
):
    return calendar_service.list_personal_events(db, user_id, include_cancelled=include_cancelled)


@router.get("/{user_id}/personal-events/overlapping", response_model=list[PersonalEventOut])
def list_overlapping(
    user_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    exclude_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Active personal events colliding with [start, end)."""
    return calendar_service.find_conflicting_personal_events(db, user_id, as_utc(start), as_utc(end), exclude_id)


@router.patch("/{user_id}/personal-events/{personal_event_id}", response_model=PersonalEventOut)
def update_personal_event(
    user_id: str, personal_event_id: str, payload: PersonalEventUpdate, db: Session = Depends(get_db)
):
    changes = payload.model_dump(exclude_unset=True)
    return unwrap(calendar_service.update_personal_event(db, personal_event_id, user_id, changes))


@router.post("/{user_id}/personal-events/{personal_event_id}/cancel", response_model=PersonalEventOut)
def cancel_personal_event(
    user_id: str, personal_event_id: str, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
):
    """Cancel (not delete) a personal event; it stops counting as a conflict."""
    return unwrap(calendar_service.cancel_personal_event(db, personal_event_id, user_id, clock))


@router.post("/{user_id}/conflicts/resolve", response_model=ConflictResolutionOut)
def resolve_conflict(
    user_id: str, payload: ConflictResolution, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
):
    message = unwrap(
        calendar_service.resolve_conflict(db, user_id, payload.target_id, payload.target, payload.action, clock)
    )
    return ConflictResolutionOut(message=message)
