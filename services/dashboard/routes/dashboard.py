"""Dashboard routes"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict

from shared.database.session import get_db
from shared.database.models import UserRole
from shared.auth.dependencies import (
    get_current_user, get_current_organizer, get_current_admin, get_current_scanner
)
from shared.datasource.base import DataSource
from shared.datasource.provider import get_data_source
from shared.utils.exceptions import FindMyEventError, NotFoundError
from services.dashboard.services.dashboard_service import DashboardService


router = APIRouter()


async def _load_managed_event(db: AsyncSession, event_id: str, current_user: Dict):
    service = DashboardService()
    event = await service.event_service.get_event_by_id(db, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    await service.event_service.assert_can_manage(db, event, current_user)
    return event


@router.get("/student")
async def student_dashboard(
    source: DataSource = Depends(get_data_source),
    current_user: Dict = Depends(get_current_user)
):
    service = DashboardService()
    return await service.student_dashboard(source, current_user["user_id"])


@router.get("/organizer")
async def organizer_dashboard(
    db: AsyncSession = Depends(get_db),
    source: DataSource = Depends(get_data_source),
    current_user: Dict = Depends(get_current_organizer)
):
    service = DashboardService()
    return await service.organizer_dashboard(db, source, current_user["user_id"])


@router.get("/admin")
async def admin_dashboard(
    db: AsyncSession = Depends(get_db),
    current_admin: Dict = Depends(get_current_admin)
):
    service = DashboardService()
    return await service.admin_dashboard(db)


@router.get("/events/{event_id}/check-in-summary")
async def check_in_summary(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """Checked in vs remaining, for the gate (volunteers of the event included)"""
    try:
        if current_user.get("role") == UserRole.VOLUNTEER:
            if str(current_user.get("event_id") or "").lower() != event_id.lower():
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Your volunteer session is for a different event"
                )
            event = await DashboardService().event_service.get_event_by_id(db, event_id)
            if event is None:
                raise NotFoundError("Event not found")
        else:
            event = await _load_managed_event(db, event_id, current_user)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return await DashboardService.check_in_summary(db, event.id)


@router.get("/events/{event_id}/export")
async def export_tickets(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    """Tickets of an event as a CSV download"""
    service = DashboardService()
    try:
        event = await _load_managed_event(db, event_id, current_user)
        content = await service.export_tickets_csv(db, event_id)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="tickets-{event.id}.csv"'},
    )
