"""Notification routes"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List

from shared.database.session import get_db
from shared.auth.dependencies import get_current_user
from shared.datasource.base import DataSource
from shared.datasource.provider import get_data_source
from shared.utils.exceptions import FindMyEventError
from services.notifications.services.notification_service import NotificationService, serialize_notification


router = APIRouter()


@router.get("")
async def list_notifications(
    source: DataSource = Depends(get_data_source),
    current_user: Dict = Depends(get_current_user)
) -> List[Dict]:
    """Latest 20 notifications of the current user"""
    return await source.fetch_notifications(current_user["user_id"])


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    count = await NotificationService.unread_count(db, current_user["user_id"])
    return {"unread": count}


@router.post("/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    updated = await NotificationService.mark_all_read(db, current_user["user_id"])
    return {"updated": updated}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_user)
):
    try:
        notification = await NotificationService.mark_read(db, current_user["user_id"], notification_id)
    except FindMyEventError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return serialize_notification(notification)
