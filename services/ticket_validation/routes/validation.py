"""Ticket routes: check-in, lookup and QR download"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List
import logging

from shared.database import connection
from shared.database.session import get_db
from shared.database.models import UserRole
from shared.auth.dependencies import get_current_user, get_current_scanner, get_current_organizer, SCANNER_ROLES
from shared.datasource.base import DataSource
from shared.datasource.provider import get_data_source
from shared.utils.exceptions import FindMyEventError, PermissionDeniedError
from shared.utils.qr_generator import render_qr_png_base64
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_validation.models.ticket import (
    CheckInRequest,
    CheckInResult,
    ScanSessionRequest,
    ScanSessionState,
    TicketQRResponse,
)
from services.ticket_validation.services.checkin_service import (
    CheckInResultType,
    CheckInService,
    GENERIC_FAILURE_MESSAGE,
    ScanSession,
)
from services.registration.services.registration_service import (
    RegistrationService,
    serialize_ticket,
    ticket_qr_payload,
)
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _assert_can_scan(db: AsyncSession, event_id: str, current_user: Dict) -> None:
    """Volunteers scan only the event of their session; organizers only their own events"""
    role = current_user.get("role")
    if role == UserRole.VOLUNTEER:
        if str(current_user.get("event_id") or "").lower() != str(event_id).strip().lower():
            raise PermissionDeniedError("Your volunteer session is for a different event")
        return

    if role == UserRole.ORGANIZER:
        service = EventService()
        event = await service.get_event_by_id(db, event_id)
        if event is None:
            raise PermissionDeniedError("You do not manage this event")
        await service.assert_can_manage(db, event, current_user)


@router.post("/check-in", response_model=CheckInResult)
@limiter.limit(RATE_LIMITS["validation"])
async def check_in_ticket(
    request: Request,
    check_in: CheckInRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Check a ticket in by its scanned QR

    Always answers 200 with success, duplicate or invalid; only an
    authorization problem is an HTTP error.
    """
    try:
        await _assert_can_scan(db, check_in.event_id, current_user)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"[CHECK-IN] Could not verify scanner access for event {check_in.event_id}: {e}")
        return {"type": CheckInResultType.INVALID, "message": GENERIC_FAILURE_MESSAGE}

    scan_session = await ScanSession.resume(connection.async_session_maker, check_in.event_id, current_user["user_id"])
    if scan_session is not None:
        return await scan_session.scan(check_in.qr_data)

    service = CheckInService()
    return await service.validate_and_check_in(
        db=db,
        qr_payload=check_in.qr_data,
        scanning_event_id=check_in.event_id,
        scanner_id=current_user["user_id"],
    )


async def _authorize_scan_session(db: AsyncSession, event_id: str, current_user: Dict) -> None:
    try:
        await _assert_can_scan(db, event_id, current_user)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


@router.post("/scan-sessions", response_model=ScanSessionState, status_code=status.HTTP_201_CREATED)
async def start_scan_session(
    scan_request: ScanSessionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Open the scanner's session for an event

    Check-ins sent while it is open are counted in it. One session per
    scanner and event; a second device gets 409 until the first stops.
    """
    await _authorize_scan_session(db, scan_request.event_id, current_user)
    scan_session = ScanSession(connection.async_session_maker, scan_request.event_id, current_user["user_id"])
    try:
        await scan_session.start()
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return scan_session.to_dict()


@router.get("/scan-sessions/{event_id}", response_model=ScanSessionState)
async def get_scan_session(
    event_id: str,
    current_user: Dict = Depends(get_current_scanner)
):
    scan_session = await ScanSession.resume(connection.async_session_maker, event_id, current_user["user_id"])
    if scan_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No open scan session")
    return scan_session.to_dict()


@router.delete("/scan-sessions/{event_id}", response_model=ScanSessionState)
async def stop_scan_session(
    event_id: str,
    current_user: Dict = Depends(get_current_scanner)
):
    """Close the scanner's session (stop, navigation away, logout) and return its summary"""
    scan_session = await ScanSession.resume(connection.async_session_maker, event_id, current_user["user_id"])
    if scan_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No open scan session")
    return await scan_session.stop()


@router.get("/user/{user_id}")
async def get_user_tickets(
    user_id: str,
    source: DataSource = Depends(get_data_source),
    current_user: Dict = Depends(get_current_user)
) -> List[Dict]:
    """Tickets of a user, newest first (the user themself or an admin)"""
    if user_id != current_user["user_id"] and current_user.get("role") != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only list your own tickets"
        )
    try:
        return await source.fetch_user_tickets(user_id)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


async def _get_visible_ticket(db: AsyncSession, ticket_id: str, current_user: Dict, allow_scanners: bool):
    ticket = await RegistrationService.get_ticket_by_id(db, ticket_id)
    if not ticket:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket not found"
        )

    is_owner = str(ticket.user_id) == current_user["user_id"]
    is_scanner = allow_scanners and current_user.get("role") in SCANNER_ROLES
    if not (is_owner or is_scanner or current_user.get("role") == UserRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot access this ticket"
        )
    return ticket


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """Ticket detail; the QR payload is only shown to its holder"""
    ticket = await _get_visible_ticket(db, ticket_id, current_user, allow_scanners=True)
    registration = await RegistrationService.get_registration(db, str(ticket.registration_id))
    team_name = registration.team_name if registration else None
    is_owner = str(ticket.user_id) == current_user["user_id"]
    return serialize_ticket(ticket, team_name, include_qr=is_owner)


@router.get("/{ticket_id}/qr", response_model=TicketQRResponse)
async def get_ticket_qr(
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    """QR of a ticket as a base64 PNG"""
    ticket = await _get_visible_ticket(db, ticket_id, current_user, allow_scanners=False)
    registration = await RegistrationService.get_registration(db, str(ticket.registration_id))
    qr_data = ticket_qr_payload(ticket, registration.team_name if registration else None)

    image = render_qr_png_base64(qr_data)
    if not image:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not render the QR code"
        )
    return TicketQRResponse(ticket_id=str(ticket.id), qr_data=qr_data, image_base64=image)


@router.post("/{ticket_id}/cancel")
async def cancel_ticket(
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    """Cancel an active ticket (event organizer or admin)"""
    service = RegistrationService()
    try:
        ticket = await service.get_ticket_by_id(db, ticket_id)
        if ticket is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
        event = await service.get_event(db, ticket.event_id)
        await EventService().assert_can_manage(db, event, current_user)
        ticket = await service.cancel_ticket(db, ticket_id, actor_id=current_user["user_id"])
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_ticket(ticket, include_qr=False)
