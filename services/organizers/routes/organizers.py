"""Organizer registry routes"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional

from shared.database.session import get_db
from shared.auth.dependencies import get_current_user, get_current_admin
from shared.utils.exceptions import FindMyEventError
from services.organizers.models.organizer import (
    OrganizerApplication,
    OrganizerRejection,
    OrganizerResponse,
)
from services.organizers.services.organizer_service import OrganizerService, serialize_organizer


router = APIRouter()


@router.post("", response_model=OrganizerResponse, status_code=status.HTTP_201_CREATED)
async def apply_as_organizer(
    application: OrganizerApplication,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """Submit an organizer application (starts pending)"""
    service = OrganizerService()
    try:
        organizer = await service.apply(db, current_user["user_id"], application.model_dump())
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_organizer(organizer)


@router.get("/me", response_model=OrganizerResponse)
async def get_my_organizer(
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    service = OrganizerService()
    organizer = await service.get_organizer_by_user_id(db, current_user["user_id"])
    if not organizer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="You have not applied as an organizer"
        )
    return serialize_organizer(organizer)


@router.get("", response_model=List[OrganizerResponse])
async def list_organizers(
    verification_status: Optional[str] = Query(None, alias="status", pattern="^(pending|approved|rejected)$"),
    db: AsyncSession = Depends(get_db),
    current_admin: Dict = Depends(get_current_admin)
):
    """Organizer applications, optionally filtered by status (admin)"""
    service = OrganizerService()
    organizers = await service.list_organizers(db, verification_status)
    return [serialize_organizer(o) for o in organizers]


@router.post("/{organizer_id}/approve", response_model=OrganizerResponse)
async def approve_organizer(
    organizer_id: str,
    db: AsyncSession = Depends(get_db),
    current_admin: Dict = Depends(get_current_admin)
):
    """Approve an organizer; its events waiting for publication go live"""
    service = OrganizerService()
    try:
        organizer = await service.approve(db, organizer_id, current_admin["user_id"])
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_organizer(organizer)


@router.post("/{organizer_id}/reject", response_model=OrganizerResponse)
async def reject_organizer(
    organizer_id: str,
    rejection: OrganizerRejection,
    db: AsyncSession = Depends(get_db),
    current_admin: Dict = Depends(get_current_admin)
):
    service = OrganizerService()
    try:
        organizer = await service.reject(db, organizer_id, current_admin["user_id"], rejection.reason)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_organizer(organizer)
