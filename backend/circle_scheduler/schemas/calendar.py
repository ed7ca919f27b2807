"""Pydantic schemas for personal calendar entries and conflict resolution."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from circle_scheduler.database import as_utc
from circle_scheduler.models.event import EventStatus
from circle_scheduler.models.rsvp import RsvpStatus
from circle_scheduler.services.calendar_service import ConflictAction, ConflictTarget


class PersonalEventCreate(BaseModel):
    title: str
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class PersonalEventUpdate(BaseModel):
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class PersonalEventOut(BaseModel):
    personal_event_id: str
    user_id: str
    title: str
    start_time: datetime
    end_time: datetime
    cancelled: bool
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConflictResolution(BaseModel):
    target_id: str
    target: ConflictTarget
    action: ConflictAction


class ConflictResolutionOut(BaseModel):
    message: str


class CalendarConflictOut(BaseModel):
    id: str
    title: str
    type: ConflictTarget
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class CalendarEntryOut(BaseModel):
    id: str
    type: ConflictTarget
    title: str
    start_time: datetime
    end_time: datetime
    cancelled: bool = False
    circle_id: Optional[str] = None
    circle_name: Optional[str] = None
    status: Optional[EventStatus] = None
    rsvp_status: Optional[RsvpStatus] = None
    attendee_count: int = 0
    is_creator: bool = False
    has_conflict: bool = False
    conflicts_with: list[CalendarConflictOut] = []

    model_config = {"from_attributes": True}


class CalendarSummaryOut(BaseModel):
    total_events: int
    personal_events: int
    circle_events: int
    going_count: int
    maybe_count: int
    not_going_count: int
    conflicts_count: int

    model_config = {"from_attributes": True}


class UnifiedCalendarOut(BaseModel):
    events: list[CalendarEntryOut]
    summary: CalendarSummaryOut

    model_config = {"from_attributes": True}
