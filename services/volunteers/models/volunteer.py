"""Pydantic models for volunteer accounts"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class VolunteerCreate(BaseModel):
    event_id: str
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.\-]+$")
    password: str = Field(..., min_length=8)


class VolunteerLogin(BaseModel):
    event_id: str
    username: str
    password: str


class VolunteerResponse(BaseModel):
    id: str
    event_id: str
    username: str
    is_active: bool
    created_at: Optional[datetime] = None


class VolunteerSession(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    volunteer: VolunteerResponse
