"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator
import pytz


class UserCreate(BaseModel):
    display_name: str
    email: Optional[str] = None
    default_timezone: str = "UTC"

    @field_validator("default_timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value


class UserUpdate(BaseModel):
    display_name: Optional[str] = None
    email: Optional[str] = None
    default_timezone: Optional[str] = None

    @field_validator("default_timezone")
    @classmethod
    def known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value


class UserOut(BaseModel):
    user_id: str
    display_name: str
    email: Optional[str] = None
    default_timezone: str
    created_at: datetime

    model_config = {"from_attributes": True}
