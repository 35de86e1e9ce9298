"""In-app notifications"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from typing import Dict, List, Optional
import logging

from shared.database.models import Notification
from shared.utils.identifiers import parse_uuid
from shared.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

NOTIFICATION_LIST_LIMIT = 20


def serialize_notification(notification: Notification) -> Dict:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data,
        "is_read": notification.is_read,
        "sent_via": notification.sent_via,
        "created_at": notification.created_at,
    }


class NotificationService:
    """Per-user notification feed"""

    @staticmethod
    def build_notification(
        user_id,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict] = None,
        sent_via: Optional[List[str]] = None
    ) -> Notification:
        """Unsaved notification, added by the caller to its own transaction"""
        return Notification(
            user_id=parse_uuid(user_id, "User"),
            type=type,
            title=title,
            message=message,
            data=data,
            is_read=False,
            sent_via=sent_via or ["in_app"],
        )

    async def create_notification(
        self,
        db: AsyncSession,
        user_id,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict] = None,
        sent_via: Optional[List[str]] = None
    ) -> Notification:
        notification = self.build_notification(user_id, type, title, message, data, sent_via)
        db.add(notification)
        await db.commit()
        await db.refresh(notification)
        return notification

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: str,
        limit: int = NOTIFICATION_LIST_LIMIT
    ) -> List[Notification]:
        """Latest notifications of a user, newest first"""
        stmt = (
            select(Notification)
            .where(Notification.user_id == parse_uuid(user_id, "User"))
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def unread_count(db: AsyncSession, user_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == parse_uuid(user_id, "User"),
            Notification.is_read == False  # noqa: E712
        )
        return (await db.execute(stmt)).scalar_one()

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: str, notification_id: str) -> Notification:
        """Mark one notification read; only its owner may do it"""
        stmt = select(Notification).where(
            Notification.id == parse_uuid(notification_id, "Notification"),
            Notification.user_id == parse_uuid(user_id, "User")
        )
        notification = (await db.execute(stmt)).scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")

        if not notification.is_read:
            notification.is_read = True
            await db.commit()
            await db.refresh(notification)
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: str) -> int:
        stmt = (
            update(Notification)
            .where(
                Notification.user_id == parse_uuid(user_id, "User"),
                Notification.is_read == False  # noqa: E712
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        logger.info(f"Marked {result.rowcount} notifications read for user {user_id}")
        return result.rowcount
