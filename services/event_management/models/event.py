"""Pydantic models for events"""
from pydantic import BaseModel, Field, field_serializer, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal


EVENT_TYPES = ("hackathon", "workshop", "seminar", "fest", "ideathon", "other")
SORT_FIELDS = ("date", "price", "popularity")


class PassTypeResponse(BaseModel):
    id: str
    event_id: str
    name: str
    description: Optional[str] = None
    price: float
    quantity: Optional[int] = None
    sold: int = 0
    is_active: bool = True
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None


class EventResponse(BaseModel):
    id: str
    organizer_id: str
    title: str
    description: Optional[str] = None
    event_type: str = "other"
    banner_url: Optional[str] = None
    venue: str
    address: Optional[str] = None
    city: str
    state: Optional[str] = None
    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    current_participants: int = 0
    is_team_event: bool = False
    max_team_size: Optional[int] = None
    event_status: str
    is_featured: bool = False
    tags: Optional[List[str]] = None
    requirements: Optional[str] = None
    prizes: Optional[str] = None
    contact_info: Optional[Dict[str, Any]] = None
    ticket_types: List[PassTypeResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("start_date", "end_date", "registration_deadline", "created_at", "updated_at")
    def serialize_datetime_utc(self, dt: Optional[datetime], _info) -> Optional[str]:
        """ISO 8601 with explicit UTC offset"""
        if dt is None:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat()


class EventListResponse(BaseModel):
    data: List[EventResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class PassTypeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(Decimal("0"), ge=0)
    quantity: Optional[int] = Field(None, ge=1)
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    event_type: str = "other"
    banner_url: Optional[str] = None
    venue: str = Field(..., min_length=1)
    address: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=1)
    is_team_event: bool = False
    max_team_size: Optional[int] = Field(None, ge=1)
    tags: Optional[List[str]] = None
    requirements: Optional[str] = None
    prizes: Optional[str] = None
    contact_info: Optional[Dict[str, Any]] = None
    ticket_types: List[PassTypeCreate] = Field(..., min_length=1)
    publish: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"event_type must be one of {', '.join(EVENT_TYPES)}")
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.registration_deadline and self.registration_deadline > self.end_date:
            raise ValueError("registration_deadline must not be after end_date")
        return self
