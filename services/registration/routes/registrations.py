"""Registration routes"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict
import logging

from shared.database.session import get_db
from shared.auth.dependencies import get_current_user, get_current_organizer
from shared.database.models import UserRole
from shared.utils.exceptions import FindMyEventError
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.registration.models.registration import (
    ConfirmRegistrationRequest,
    RegistrationRequest,
    RegistrationResponse,
)
from services.registration.services.registration_service import (
    RegistrationService,
    serialize_registration,
)
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["purchase"])
async def create_registration(
    request: Request,
    registration_data: RegistrationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """
    Register the current user for an event

    Free ticket types are confirmed right away and come back with their
    ticket; paid ones stay pending until the payment is verified.
    """
    service = RegistrationService()
    team_members = None
    if registration_data.team_members is not None:
        team_members = [member.model_dump() for member in registration_data.team_members]

    try:
        registration, ticket = await service.register(
            db=db,
            event_id=registration_data.event_id,
            pass_type_id=registration_data.pass_type_id,
            user_id=current_user["user_id"],
            team_name=registration_data.team_name,
            team_members=team_members,
            payment_reference=registration_data.payment_reference,
        )
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return serialize_registration(registration, ticket)


@router.post("/{registration_id}/confirm", response_model=RegistrationResponse)
async def confirm_registration(
    registration_id: str,
    confirmation: ConfirmRegistrationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    """
    Confirm a registration paid by manual UPI transfer

    The organizer checks the UTR against the bank statement first.
    """
    service = RegistrationService()
    try:
        registration = await service.require_registration(db, registration_id)
        event = await service.get_event(db, registration.event_id)
        await EventService().assert_can_manage(db, event, current_user)

        ticket = await service.confirm_registration(
            db, registration_id, payment_reference=confirmation.payment_reference
        )
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    await db.refresh(registration)
    return serialize_registration(registration, ticket)


@router.post("/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration(
    registration_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """Cancel a registration (owner, event organizer or admin)"""
    service = RegistrationService()
    try:
        registration = await service.require_registration(db, registration_id)
        if str(registration.user_id) != current_user["user_id"]:
            if current_user.get("role") not in (UserRole.ORGANIZER, UserRole.ADMIN):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You cannot cancel this registration"
                )
            event = await service.get_event(db, registration.event_id)
            await EventService().assert_can_manage(db, event, current_user)

        registration = await service.cancel_registration(db, registration_id)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    ticket = await service.get_ticket_for_registration(db, registration)
    return serialize_registration(registration, ticket)
