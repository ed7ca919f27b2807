"""Pydantic schemas for Circles."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from circle_scheduler.models.circle import CircleRole
from circle_scheduler.models.invitation import InvitationStatus


class CircleCreate(BaseModel):
    name: str
    description: Optional[str] = None
    created_by: str


class CircleOut(BaseModel):
    circle_id: str
    name: str
    description: Optional[str] = None
    created_by: str
    created_at: datetime
    members: list[CircleMemberOut] = []

    model_config = {"from_attributes": True}


class CircleMemberAdd(BaseModel):
    user_id: str
    role: CircleRole = CircleRole.member


class CircleMemberOut(BaseModel):
    user_id: str
    role: CircleRole
    joined_at: datetime

    model_config = {"from_attributes": True}


class InvitationCreate(BaseModel):
    email: str


class InvitationOut(BaseModel):
    invitation_id: str
    circle_id: str
    email: str
    status: InvitationStatus
    expires_at: datetime
    is_registered: bool


class InvitationAccepted(BaseModel):
    circle_id: str
    user_id: str
    role: CircleRole
    message: str = "Successfully joined the circle"


# Rebuild CircleOut now that CircleMemberOut is defined
CircleOut.model_rebuild()
