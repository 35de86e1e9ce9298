"""Event catalog service"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, and_, func, update, exists, cast, Text
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional
from datetime import datetime
from decimal import Decimal
import hashlib
import json
import logging

from shared.database.models import (
    Event, Organizer, PassType, EventAnalytics,
    EventStatus, VerificationStatus, UserRole
)
from shared.cache.redis_client import cache_get, cache_set
from shared.utils.exceptions import NotFoundError, ConflictError, PermissionDeniedError
from shared.utils.timeutils import utcnow, ensure_aware
from shared.utils.identifiers import parse_uuid

logger = logging.getLogger(__name__)

CATALOG_VERSION_KEY = "events:catalog:version"
CATALOG_CACHE_TTL = 300


def serialize_pass_type(pass_type: PassType) -> Dict:
    return {
        "id": str(pass_type.id),
        "event_id": str(pass_type.event_id),
        "name": pass_type.name,
        "description": pass_type.description,
        "price": float(pass_type.price or 0),
        "quantity": pass_type.quantity,
        "sold": pass_type.sold,
        "is_active": pass_type.is_active,
        "sale_start": ensure_aware(pass_type.sale_start),
        "sale_end": ensure_aware(pass_type.sale_end),
    }


def serialize_event(event: Event) -> Dict:
    """Event with its pass types; ticket_types must be loaded"""
    return {
        "id": str(event.id),
        "organizer_id": str(event.organizer_id),
        "title": event.title,
        "description": event.description,
        "event_type": event.event_type,
        "banner_url": event.banner_url,
        "venue": event.venue,
        "address": event.address,
        "city": event.city,
        "state": event.state,
        "start_date": ensure_aware(event.start_date),
        "end_date": ensure_aware(event.end_date),
        "registration_deadline": ensure_aware(event.registration_deadline),
        "max_participants": event.max_participants,
        "current_participants": event.current_participants,
        "is_team_event": event.is_team_event,
        "max_team_size": event.max_team_size,
        "event_status": event.event_status,
        "is_featured": event.is_featured,
        "tags": event.tags,
        "requirements": event.requirements,
        "prizes": event.prizes,
        "contact_info": event.contact_info,
        "ticket_types": [serialize_pass_type(pt) for pt in event.ticket_types],
        "created_at": ensure_aware(event.created_at),
        "updated_at": ensure_aware(event.updated_at),
    }


class EventService:
    """Creates, publishes and searches events"""

    @staticmethod
    async def get_event_by_id(db: AsyncSession, event_id: str) -> Optional[Event]:
        try:
            event_uuid = parse_uuid(event_id, "Event")
        except NotFoundError:
            return None
        stmt = (
            select(Event)
            .options(selectinload(Event.ticket_types))
            .where(Event.id == event_uuid)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_organizer_for_user(db: AsyncSession, user_id: str) -> Optional[Organizer]:
        stmt = select(Organizer).where(Organizer.user_id == parse_uuid(user_id, "User"))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def assert_can_manage(self, db: AsyncSession, event: Event, user: Dict) -> None:
        """Admins manage every event; organizers only their own"""
        if user.get("role") == UserRole.ADMIN:
            return
        organizer = await self.get_organizer_for_user(db, user["user_id"])
        if organizer is None or organizer.id != event.organizer_id:
            raise PermissionDeniedError("You do not manage this event")

    async def create_event(self, db: AsyncSession, event_data: Dict, user_id: str) -> Event:
        """
        Create an event with its pass types.

        The event starts as draft, or pending when publication was requested.
        Publication itself goes through the organizer verification gate.
        """
        organizer = await self.get_organizer_for_user(db, user_id)
        if organizer is None:
            raise PermissionDeniedError("Register as an organizer before creating events")
        if organizer.verification_status == VerificationStatus.REJECTED:
            raise PermissionDeniedError("Organizer verification was rejected")

        data = dict(event_data)
        pass_types = data.pop("ticket_types", [])
        publish = data.pop("publish", False)

        event = Event(
            organizer_id=organizer.id,
            event_status=EventStatus.DRAFT,
            current_participants=0,
            **data
        )
        event.ticket_types = [
            PassType(
                name=pt["name"],
                description=pt.get("description"),
                price=Decimal(str(pt.get("price") or 0)),
                quantity=pt.get("quantity"),
                sale_start=pt.get("sale_start"),
                sale_end=pt.get("sale_end"),
                sold=0,
                is_active=True,
            )
            for pt in pass_types
        ]
        if publish:
            event.event_status = self._publication_status(organizer)

        db.add(event)
        await db.commit()
        await self.invalidate_catalog_cache()

        logger.info(f"Event {event.id} created by organizer {organizer.id} (status={event.event_status})")
        return await self.get_event_by_id(db, str(event.id))

    async def publish_event(self, db: AsyncSession, event_id: str, user: Dict) -> Event:
        """Published when the organizer is approved, pending otherwise"""
        event = await self.get_event_by_id(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        await self.assert_can_manage(db, event, user)

        if event.event_status == EventStatus.CANCELLED:
            raise ConflictError("Cancelled events cannot be published")
        if event.event_status == EventStatus.PUBLISHED:
            return event

        organizer = await db.get(Organizer, event.organizer_id)
        event.event_status = self._publication_status(organizer)
        await db.commit()
        await self.invalidate_catalog_cache()

        logger.info(f"Event {event.id} publication requested -> {event.event_status}")
        return await self.get_event_by_id(db, str(event.id))

    async def cancel_event(self, db: AsyncSession, event_id: str, user: Dict) -> Event:
        event = await self.get_event_by_id(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        await self.assert_can_manage(db, event, user)

        if event.event_status != EventStatus.CANCELLED:
            event.event_status = EventStatus.CANCELLED
            await db.commit()
            await self.invalidate_catalog_cache()
            logger.info(f"Event {event.id} cancelled by {user.get('user_id')}")
        return await self.get_event_by_id(db, str(event.id))

    @staticmethod
    def _publication_status(organizer: Optional[Organizer]) -> str:
        if organizer is not None and organizer.verification_status == VerificationStatus.APPROVED:
            return EventStatus.PUBLISHED
        return EventStatus.PENDING

    # ==================== SEARCH ====================

    @staticmethod
    def _min_price_subquery():
        return (
            select(func.min(PassType.price))
            .where(PassType.event_id == Event.id, PassType.is_active == True)  # noqa: E712
            .correlate(Event)
            .scalar_subquery()
        )

    def _search_conditions(
        self,
        query: Optional[str],
        city: Optional[str],
        event_type: Optional[str],
        is_team_event: Optional[bool],
        tags: Optional[List[str]],
        min_price: Optional[float],
        max_price: Optional[float],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> List:
        conditions = [Event.event_status == EventStatus.PUBLISHED]

        if query:
            pattern = f"%{query.strip()}%"
            conditions.append(or_(
                Event.title.ilike(pattern),
                Event.description.ilike(pattern),
                Event.venue.ilike(pattern),
            ))
        if city:
            conditions.append(Event.city.ilike(f"%{city.strip()}%"))
        if event_type:
            conditions.append(Event.event_type == event_type)
        if is_team_event is not None:
            conditions.append(Event.is_team_event == is_team_event)
        if tags:
            # JSON arrays are stored as text; matching the quoted tag keeps it portable
            conditions.append(or_(*[
                func.lower(cast(Event.tags, Text)).like(f'%"{tag.lower()}"%')
                for tag in tags
            ]))
        if min_price is not None or max_price is not None:
            price_conditions = [PassType.event_id == Event.id, PassType.is_active == True]  # noqa: E712
            if min_price is not None:
                price_conditions.append(PassType.price >= min_price)
            if max_price is not None:
                price_conditions.append(PassType.price <= max_price)
            conditions.append(exists().where(and_(*price_conditions)))
        if date_from:
            conditions.append(Event.start_date >= date_from)
        if date_to:
            conditions.append(Event.start_date <= date_to)

        return conditions

    async def search_events(
        self,
        db: AsyncSession,
        query: Optional[str] = None,
        city: Optional[str] = None,
        event_type: Optional[str] = None,
        is_team_event: Optional[bool] = None,
        tags: Optional[List[str]] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: str = "date",
        sort_order: str = "asc",
        page: int = 1,
        limit: int = 12
    ) -> Dict:
        """
        Search published events.

        Returns:
            {"data": [...], "total", "page", "limit", "has_more"}
        """
        params = {
            "query": query, "city": city, "event_type": event_type,
            "is_team_event": is_team_event, "tags": sorted(tags or []),
            "min_price": min_price, "max_price": max_price,
            "date_from": date_from, "date_to": date_to,
            "sort_by": sort_by, "sort_order": sort_order,
            "page": page, "limit": limit,
        }
        cache_key = await self._catalog_cache_key(params)
        cached = await cache_get(cache_key)
        if cached:
            return cached

        conditions = self._search_conditions(
            query, city, event_type, is_team_event, tags,
            min_price, max_price, date_from, date_to
        )

        total_stmt = select(func.count(Event.id)).where(and_(*conditions))
        total = (await db.execute(total_stmt)).scalar_one()

        if sort_by == "price":
            sort_column = self._min_price_subquery()
        elif sort_by == "popularity":
            sort_column = Event.current_participants
        else:
            sort_column = Event.start_date
        ordering = sort_column.desc() if sort_order == "desc" else sort_column.asc()

        stmt = (
            select(Event)
            .options(selectinload(Event.ticket_types))
            .where(and_(*conditions))
            .order_by(ordering, Event.id)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        events = (await db.execute(stmt)).scalars().all()

        response = {
            "data": [serialize_event(event) for event in events],
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }
        await cache_set(cache_key, response, expire=CATALOG_CACHE_TTL)
        return response

    @staticmethod
    async def _catalog_cache_key(params: Dict) -> str:
        version = await cache_get(CATALOG_VERSION_KEY) or 0
        params_hash = hashlib.md5(json.dumps(params, default=str, sort_keys=True).encode()).hexdigest()
        return f"events:search:{version}:{params_hash}"

    @staticmethod
    async def invalidate_catalog_cache():
        """Bump the catalog version so cached searches are no longer read"""
        version = await cache_get(CATALOG_VERSION_KEY) or 0
        await cache_set(CATALOG_VERSION_KEY, int(version) + 1, expire=7 * 24 * 3600)

    # ==================== ANALYTICS ====================

    @staticmethod
    async def record_view(db: AsyncSession, event_id) -> None:
        """Count one view in today's analytics row"""
        event_uuid = parse_uuid(event_id, "Event")
        today = utcnow().date()

        stmt = (
            update(EventAnalytics)
            .where(EventAnalytics.event_id == event_uuid, EventAnalytics.date == today)
            .values(views=EventAnalytics.views + 1)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount == 0:
            db.add(EventAnalytics(event_id=event_uuid, date=today, views=1, registrations=0, revenue=0))
            try:
                await db.commit()
                return
            except IntegrityError:
                # Another request created today's row first
                await db.rollback()
                await db.execute(stmt)
        await db.commit()

    @staticmethod
    async def record_registration(
        db: AsyncSession,
        event_id,
        revenue: Decimal = Decimal("0")
    ) -> None:
        """
        Count one confirmed registration in today's analytics row, no commit.

        The first row of the day is inserted in a savepoint: losing that
        insert race to another registration only costs a retry of the
        UPDATE, never the caller's transaction.
        """
        event_uuid = parse_uuid(event_id, "Event")
        today = utcnow().date()

        stmt = (
            update(EventAnalytics)
            .where(EventAnalytics.event_id == event_uuid, EventAnalytics.date == today)
            .values(
                registrations=EventAnalytics.registrations + 1,
                revenue=EventAnalytics.revenue + revenue,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount:
            return

        # Keep the caller's pending changes out of the savepoint
        await db.flush()
        try:
            async with db.begin_nested():
                db.add(EventAnalytics(
                    event_id=event_uuid, date=today, views=0, registrations=1, revenue=revenue
                ))
        except IntegrityError:
            logger.info(f"Analytics row for event {event_uuid} on {today} created concurrently")
            await db.execute(stmt)

    @staticmethod
    async def get_analytics(db: AsyncSession, event_id: str) -> List[Dict]:
        stmt = (
            select(EventAnalytics)
            .where(EventAnalytics.event_id == parse_uuid(event_id, "Event"))
            .order_by(EventAnalytics.date.asc())
            # Counters move through bulk UPDATEs
            .execution_options(populate_existing=True)
        )
        rows = (await db.execute(stmt)).scalars().all()
        return [
            {
                "date": row.date.isoformat(),
                "views": row.views,
                "registrations": row.registrations,
                "revenue": float(row.revenue or 0),
            }
            for row in rows
        ]
