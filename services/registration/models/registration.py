"""Pydantic models for registrations and tickets"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime


class TeamMember(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    college: Optional[str] = None
    year: Optional[int] = None


class RegistrationRequest(BaseModel):
    event_id: str
    pass_type_id: str
    team_name: Optional[str] = None
    team_members: Optional[List[TeamMember]] = None
    payment_reference: Optional[str] = None  # UTR of a manual UPI transfer


class ConfirmRegistrationRequest(BaseModel):
    payment_reference: str = Field(..., min_length=1)


class TicketResponse(BaseModel):
    id: str
    ticket_token: str
    event_id: str
    user_id: str
    registration_id: str
    pass_type_id: str
    status: str
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None
    created_at: Optional[datetime] = None
    qr_data: Optional[str] = None


class RegistrationResponse(BaseModel):
    id: str
    event_id: str
    pass_type_id: str
    user_id: str
    status: str  # pending, confirmed, cancelled
    team_name: Optional[str] = None
    team_members: Optional[List[TeamMember]] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    ticket: Optional[TicketResponse] = None
