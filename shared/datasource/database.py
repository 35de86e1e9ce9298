"""Data source backed by the SQLAlchemy session"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from typing import Dict, List, Optional

from shared.database.models import Event
from shared.datasource.base import DataSource
from shared.utils.timeutils import ensure_aware
from services.event_management.services.event_service import EventService, serialize_event
from services.notifications.services.notification_service import NotificationService, serialize_notification
from services.registration.services.registration_service import RegistrationService, serialize_ticket


def serialize_user_ticket(ticket, registration, event) -> Dict:
    """Ticket row as shown in "my tickets", with a short event summary"""
    data = serialize_ticket(ticket, registration.team_name)
    data["team_name"] = registration.team_name
    data["event"] = {
        "id": str(event.id),
        "title": event.title,
        "venue": event.venue,
        "city": event.city,
        "start_date": ensure_aware(event.start_date),
        "end_date": ensure_aware(event.end_date),
        "event_status": event.event_status,
        "banner_url": event.banner_url,
    }
    return data


class DatabaseDataSource(DataSource):
    name = "database"

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_events(self, **filters) -> Dict:
        return await EventService().search_events(self.db, **filters)

    async def fetch_event(self, event_id: str) -> Optional[Dict]:
        event = await EventService.get_event_by_id(self.db, event_id)
        return serialize_event(event) if event else None

    async def fetch_user_tickets(self, user_id: str) -> List[Dict]:
        rows = await RegistrationService.get_user_tickets(self.db, user_id)
        return [serialize_user_ticket(ticket, registration, event) for ticket, registration, event in rows]

    async def fetch_notifications(self, user_id: str) -> List[Dict]:
        notifications = await NotificationService.list_for_user(self.db, user_id)
        return [serialize_notification(n) for n in notifications]

    async def fetch_organizer_events(self, user_id: str) -> List[Dict]:
        organizer = await EventService.get_organizer_for_user(self.db, user_id)
        if organizer is None:
            return []
        stmt = (
            select(Event)
            .options(selectinload(Event.ticket_types))
            .where(Event.organizer_id == organizer.id)
            .order_by(Event.start_date.desc())
        )
        events = (await self.db.execute(stmt)).scalars().all()
        return [serialize_event(event) for event in events]
