"""Pydantic models for organizers"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Dict
from datetime import datetime


class OrganizerApplication(BaseModel):
    organization_name: str = Field(..., min_length=2)
    organization_type: str = Field("college", pattern="^(college|club|startup|company)$")
    official_email: Optional[EmailStr] = None
    website_url: Optional[str] = None
    social_links: Optional[Dict[str, str]] = None
    upi_id: Optional[str] = Field(None, pattern=r"^[\w.\-]+@[\w.\-]+$")
    verification_documents: Optional[List[str]] = None


class OrganizerRejection(BaseModel):
    reason: str = Field(..., min_length=1)


class OrganizerResponse(BaseModel):
    id: str
    user_id: str
    organization_name: str
    organization_type: str
    official_email: Optional[str] = None
    website_url: Optional[str] = None
    social_links: Optional[Dict[str, str]] = None
    upi_id: Optional[str] = None
    verification_status: str
    verification_documents: Optional[List[str]] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
