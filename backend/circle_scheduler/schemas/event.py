"""Pydantic schemas for Events, time options, votes and RSVPs."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from circle_scheduler.database import as_utc
from circle_scheduler.models.event import EventStatus
from circle_scheduler.models.rsvp import RsvpSource, RsvpStatus


class TimeRange(BaseModel):
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class EventCreate(BaseModel):
    circle_id: str
    creator_id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    reminder_minutes: Optional[int] = Field(None, ge=0)
    # Either a fixed time (starts_at/ends_at) or candidate slots to vote on
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    time_options: list[TimeRange] = []

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    reminder_minutes: Optional[int] = Field(None, ge=0)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class TimeOptionOut(BaseModel):
    option_id: str
    event_id: str
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class TimeOptionTally(TimeOptionOut):
    votes: int = 0


class EventOut(BaseModel):
    event_id: str
    circle_id: str
    creator_id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    status: EventStatus
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    reminder_minutes: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    time_options: list[TimeOptionOut] = []

    model_config = {"from_attributes": True}


class RsvpOut(BaseModel):
    user_id: str
    status: RsvpStatus
    source: RsvpSource
    updated_at: datetime

    model_config = {"from_attributes": True}


class EventDetailOut(BaseModel):
    event: EventOut
    options: list[TimeOptionTally] = []
    winning_option_id: Optional[str] = None
    rsvps: list[RsvpOut] = []


class TimeOptionsAdd(BaseModel):
    options: list[TimeRange]


class VoteCast(BaseModel):
    option_id: str
    voter_id: str


class VoteOut(BaseModel):
    vote_id: str
    event_time_option_id: str
    voter_id: str
    winning_option: Optional[TimeOptionOut] = None


class LockRequest(BaseModel):
    selected_option_id: str


class RsvpUpdate(BaseModel):
    user_id: str
    status: RsvpStatus
