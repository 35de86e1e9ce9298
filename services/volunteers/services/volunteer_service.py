"""Event-scoped volunteer accounts"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import Dict, List
import logging

from app.core.config import settings
from shared.auth.jwt_handler import create_volunteer_token
from shared.auth.passwords import hash_password, verify_password
from shared.database.models import VolunteerAssignment
from shared.utils.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from shared.utils.identifiers import parse_uuid
from shared.utils.timeutils import ensure_aware
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)


def serialize_volunteer(volunteer: VolunteerAssignment) -> Dict:
    return {
        "id": str(volunteer.id),
        "event_id": str(volunteer.event_id),
        "username": volunteer.username,
        "is_active": volunteer.is_active,
        "created_at": ensure_aware(volunteer.created_at),
    }


class VolunteerService:
    """Volunteer accounts created by organizers, each bound to one event"""

    def __init__(self):
        self.event_service = EventService()

    async def create_volunteer(
        self,
        db: AsyncSession,
        event_id: str,
        username: str,
        password: str,
        user: Dict
    ) -> VolunteerAssignment:
        event = await self.event_service.get_event_by_id(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        await self.event_service.assert_can_manage(db, event, user)

        volunteer = VolunteerAssignment(
            event_id=event.id,
            username=username.strip().lower(),
            password_hash=hash_password(password),
            is_active=True,
            created_by=parse_uuid(user["user_id"], "User"),
        )
        db.add(volunteer)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Volunteer '{username}' already exists for this event")
        await db.refresh(volunteer)

        logger.info(f"Volunteer {volunteer.username} created for event {event.id}")
        return volunteer

    async def list_volunteers(self, db: AsyncSession, event_id: str, user: Dict) -> List[VolunteerAssignment]:
        event = await self.event_service.get_event_by_id(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        await self.event_service.assert_can_manage(db, event, user)

        stmt = (
            select(VolunteerAssignment)
            .where(VolunteerAssignment.event_id == event.id)
            .order_by(VolunteerAssignment.username)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def login(self, db: AsyncSession, event_id: str, username: str, password: str) -> Dict:
        """
        Check volunteer credentials and issue a session token.

        The token carries role, event scope and expiry as signed claims.
        """
        try:
            event_uuid = parse_uuid(event_id, "Event")
        except NotFoundError:
            raise PermissionDeniedError("Invalid volunteer credentials")

        stmt = select(VolunteerAssignment).where(
            VolunteerAssignment.event_id == event_uuid,
            VolunteerAssignment.username == username.strip().lower()
        )
        volunteer = (await db.execute(stmt)).scalar_one_or_none()

        if volunteer is None or not verify_password(password, volunteer.password_hash):
            logger.warning(f"Failed volunteer login for '{username}' on event {event_id}")
            raise PermissionDeniedError("Invalid volunteer credentials")
        if not volunteer.is_active:
            raise PermissionDeniedError("Volunteer account is disabled")

        token = create_volunteer_token(str(volunteer.id), str(volunteer.event_id), volunteer.username)
        logger.info(f"Volunteer {volunteer.username} signed in for event {volunteer.event_id}")
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": settings.VOLUNTEER_SESSION_HOURS * 3600,
            "volunteer": serialize_volunteer(volunteer),
        }
