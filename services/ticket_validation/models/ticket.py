"""Pydantic models for ticket check-in"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Literal
from datetime import datetime


class CheckInRequest(BaseModel):
    qr_data: str = Field(..., description="Raw string read from the QR code")
    event_id: str = Field(..., description="Event being scanned at this gate")


class CheckedInTicket(BaseModel):
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
    attendee_name: Optional[str] = None
    team_name: Optional[str] = None
    pass_name: Optional[str] = None
    event_title: Optional[str] = None


class CheckInResult(BaseModel):
    type: Literal["success", "duplicate", "invalid"]
    message: str
    ticket: Optional[CheckedInTicket] = None
    qr_data: Optional[str] = None


class TicketQRResponse(BaseModel):
    ticket_id: str
    qr_data: str
    image_base64: str
    mime_type: str = "image/png"


class ScanSessionRequest(BaseModel):
    event_id: str


class ScanSessionState(BaseModel):
    event_id: str
    scanner_id: str
    started_at: Optional[datetime] = None
    counts: Dict[str, int]
    history: List[Dict] = []
