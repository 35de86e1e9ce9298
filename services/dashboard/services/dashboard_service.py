"""Aggregations behind the role dashboards"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Dict, List
import csv
import io
import logging

from shared.database.models import (
    Profile, Organizer, Event, PassType, Registration, Ticket, Payment,
    TicketStatus, RegistrationStatus, PaymentStatus, VerificationStatus
)
from shared.datasource.base import DataSource
from shared.utils.exceptions import NotFoundError
from shared.utils.timeutils import utcnow, ensure_aware, isoformat
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "ticket_id", "ticket_token", "status", "attendee_name", "attendee_email",
    "college", "pass_name", "team_name", "team_size", "registered_at", "scanned_at", "scanned_by",
]


class DashboardService:
    """Read-only statistics for students, organizers and admins"""

    def __init__(self):
        self.event_service = EventService()

    async def student_dashboard(self, source: DataSource, user_id: str) -> Dict:
        """
        Upcoming and past events of a student with their tickets.

        attended counts tickets that were scanned in.
        """
        tickets = await source.fetch_user_tickets(user_id)
        notifications = await source.fetch_notifications(user_id)

        now = utcnow()
        upcoming, past = [], []
        for ticket in tickets:
            if ticket["status"] == TicketStatus.CANCELLED:
                continue
            end_date = ensure_aware(ticket["event"]["end_date"])
            (upcoming if end_date and end_date >= now else past).append(ticket)
        upcoming.sort(key=lambda t: ensure_aware(t["event"]["start_date"]))

        return {
            "upcoming_events": upcoming,
            "past_events": past,
            "tickets": tickets,
            "notifications": notifications,
            "stats": {
                "upcoming": len(upcoming),
                "attended": sum(1 for t in tickets if t["status"] == TicketStatus.USED),
                "total_tickets": len(tickets),
                "unread_notifications": sum(1 for n in notifications if not n["is_read"]),
            },
        }

    async def organizer_dashboard(self, db: AsyncSession, source: DataSource, user_id: str) -> Dict:
        organizer = await self.event_service.get_organizer_for_user(db, user_id)
        events = await source.fetch_organizer_events(user_id)

        registrations: List[Dict] = []
        revenue = 0.0
        if organizer is not None:
            stmt = (
                select(Registration, Profile.full_name, Profile.email, Event.title, PassType.name, PassType.price)
                .join(Event, Registration.event_id == Event.id)
                .join(PassType, Registration.pass_type_id == PassType.id)
                .outerjoin(Profile, Registration.user_id == Profile.id)
                .where(Event.organizer_id == organizer.id)
                .order_by(Registration.created_at.desc())
            )
            for registration, name, email, event_title, pass_name, price in (await db.execute(stmt)).all():
                registrations.append({
                    "id": str(registration.id),
                    "event_id": str(registration.event_id),
                    "event_title": event_title,
                    "pass_name": pass_name,
                    "attendee_name": name,
                    "attendee_email": email,
                    "team_name": registration.team_name,
                    "status": registration.status,
                    "payment_reference": registration.payment_reference,
                    "created_at": ensure_aware(registration.created_at),
                })
                if registration.status == RegistrationStatus.CONFIRMED:
                    revenue += float(price or 0)

        analytics = {}
        for event in events:
            analytics[event["id"]] = await self.event_service.get_analytics(db, event["id"])

        return {
            "organizer": {
                "id": str(organizer.id),
                "organization_name": organizer.organization_name,
                "verification_status": organizer.verification_status,
            } if organizer else None,
            "events": events,
            "registrations": registrations,
            "analytics": analytics,
            "stats": {
                "events": len(events),
                "registrations": sum(1 for r in registrations if r["status"] != RegistrationStatus.CANCELLED),
                "revenue": revenue,
                "pending_verification": (
                    organizer is not None and organizer.verification_status == VerificationStatus.PENDING
                ),
            },
        }

    @staticmethod
    async def _count_by(db: AsyncSession, column) -> Dict[str, int]:
        result = await db.execute(select(column, func.count()).group_by(column))
        return {key: count for key, count in result.all()}

    async def admin_dashboard(self, db: AsyncSession) -> Dict:
        """Platform-wide counters"""
        revenue_stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.status == PaymentStatus.COMPLETED
        )
        revenue_paise = (await db.execute(revenue_stmt)).scalar_one()

        return {
            "profiles_by_role": await self._count_by(db, Profile.role),
            "organizers_by_status": await self._count_by(db, Organizer.verification_status),
            "events_by_status": await self._count_by(db, Event.event_status),
            "tickets_by_status": await self._count_by(db, Ticket.status),
            "revenue": {"amount": int(revenue_paise), "currency": "INR"},
        }

    @staticmethod
    async def check_in_summary(db: AsyncSession, event_id) -> Dict:
        """Checked-in vs remaining tickets of an event (cancelled excluded)"""
        stmt = (
            select(Ticket.status, func.count(Ticket.id))
            .where(Ticket.event_id == event_id)
            .group_by(Ticket.status)
        )
        counts = {status: count for status, count in (await db.execute(stmt)).all()}
        checked_in = counts.get(TicketStatus.USED, 0)
        remaining = counts.get(TicketStatus.ACTIVE, 0)
        return {
            "event_id": str(event_id),
            "total": checked_in + remaining,
            "checked_in": checked_in,
            "remaining": remaining,
            "cancelled": counts.get(TicketStatus.CANCELLED, 0),
        }

    async def export_tickets_csv(self, db: AsyncSession, event_id: str) -> str:
        """Every ticket of an event as CSV, for audit and offline check-in"""
        event = await self.event_service.get_event_by_id(db, event_id)
        if event is None:
            raise NotFoundError("Event not found")

        stmt = (
            select(Ticket, Registration, Profile.full_name, Profile.email, Profile.college, PassType.name)
            .join(Registration, Ticket.registration_id == Registration.id)
            .outerjoin(Profile, Ticket.user_id == Profile.id)
            .outerjoin(PassType, Ticket.pass_type_id == PassType.id)
            .where(Ticket.event_id == event.id)
            .order_by(Ticket.created_at.asc())
        )
        rows = (await db.execute(stmt)).all()

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for ticket, registration, name, email, college, pass_name in rows:
            writer.writerow({
                "ticket_id": str(ticket.id),
                "ticket_token": ticket.ticket_token,
                "status": ticket.status,
                "attendee_name": name or "",
                "attendee_email": email or "",
                "college": college or "",
                "pass_name": pass_name or "",
                "team_name": registration.team_name or "",
                "team_size": len(registration.team_members or []),
                "registered_at": isoformat(registration.created_at) or "",
                "scanned_at": isoformat(ticket.scanned_at) or "",
                "scanned_by": ticket.scanned_by or "",
            })

        logger.info(f"Exported {len(rows)} tickets for event {event.id}")
        return buffer.getvalue()

