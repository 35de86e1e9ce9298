"""Event catalog routes"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional
from datetime import datetime
import logging

from shared.database.session import get_db
from shared.auth.dependencies import get_current_organizer
from shared.datasource.base import DataSource
from shared.datasource.provider import get_data_source
from shared.utils.exceptions import FindMyEventError
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.event_management.models.event import (
    EventCreate,
    EventListResponse,
    EventResponse,
    SORT_FIELDS,
)
from services.event_management.services.event_service import EventService, serialize_event

logger = logging.getLogger(__name__)

router = APIRouter()


async def _count_view(event_id: str):
    """Record a catalog view in its own session, after the response is sent"""
    from shared.database.connection import get_db as open_db

    try:
        async for db in open_db():
            await EventService.record_view(db, event_id)
    except Exception as e:
        logger.warning(f"Could not record view for event {event_id}: {e}")


@router.get("", response_model=EventListResponse)
@limiter.limit(RATE_LIMITS["public"])
async def search_events(
    request: Request,
    q: Optional[str] = Query(None, description="Search in title, description and venue"),
    city: Optional[str] = Query(None),
    event_type: Optional[str] = Query(None),
    is_team_event: Optional[bool] = Query(None),
    tags: Optional[List[str]] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort_by: str = Query("date"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    source: DataSource = Depends(get_data_source)
):
    """
    Search published events

    Public endpoint; results are cached for 5 minutes.
    """
    if sort_by not in SORT_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort_by must be one of {', '.join(SORT_FIELDS)}"
        )

    return await source.fetch_events(
        query=q,
        city=city,
        event_type=event_type,
        is_team_event=is_team_event,
        tags=tags,
        min_price=min_price,
        max_price=max_price,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    background_tasks: BackgroundTasks,
    source: DataSource = Depends(get_data_source)
):
    """Event detail with its ticket types (public)"""
    event = await source.fetch_event(event_id)
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found"
        )

    if source.name == "database":
        background_tasks.add_task(_count_view, event["id"])
    return event


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    """
    Create an event with its ticket types

    Set publish=true to request publication; events of organizers that
    are still pending verification wait in the pending state.
    """
    service = EventService()
    try:
        event = await service.create_event(db, event_data.model_dump(), current_user["user_id"])
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_event(event)


@router.post("/{event_id}/publish", response_model=EventResponse)
async def publish_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    service = EventService()
    try:
        event = await service.publish_event(db, event_id, current_user)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_event(event)


@router.post("/{event_id}/cancel", response_model=EventResponse)
async def cancel_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_organizer)
):
    service = EventService()
    try:
        event = await service.cancel_event(db, event_id, current_user)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_event(event)
