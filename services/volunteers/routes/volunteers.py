"""Volunteer account routes"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List

from shared.database.session import get_db
from shared.auth.dependencies import get_current_organizer
from shared.utils.exceptions import FindMyEventError
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.volunteers.models.volunteer import (
    VolunteerCreate,
    VolunteerLogin,
    VolunteerResponse,
    VolunteerSession,
)
from services.volunteers.services.volunteer_service import VolunteerService, serialize_volunteer


router = APIRouter()


@router.post("", response_model=VolunteerResponse, status_code=status.HTTP_201_CREATED)
async def create_volunteer(
    volunteer_data: VolunteerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    """Create a volunteer account for one of the organizer's events"""
    service = VolunteerService()
    try:
        volunteer = await service.create_volunteer(
            db,
            event_id=volunteer_data.event_id,
            username=volunteer_data.username,
            password=volunteer_data.password,
            user=current_user,
        )
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_volunteer(volunteer)


@router.get("", response_model=List[VolunteerResponse])
async def list_volunteers(
    event_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    service = VolunteerService()
    try:
        volunteers = await service.list_volunteers(db, event_id, current_user)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return [serialize_volunteer(v) for v in volunteers]


@router.post("/login", response_model=VolunteerSession)
@limiter.limit(RATE_LIMITS["purchase"])
async def volunteer_login(
    request: Request,
    credentials: VolunteerLogin,
    db: AsyncSession = Depends(get_db)
):
    """Sign a volunteer in; the token is only valid for scanning its event"""
    service = VolunteerService()
    try:
        return await service.login(db, credentials.event_id, credentials.username, credentials.password)
    except FindMyEventError as e:
        status_code = status.HTTP_401_UNAUTHORIZED if e.status_code == status.HTTP_403_FORBIDDEN else e.status_code
        raise HTTPException(status_code=status_code, detail=e.message)
