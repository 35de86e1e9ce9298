"""Registration and ticket issuance service"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from shared.utils.identifiers import parse_uuid
import logging

from shared.database.models import (
    Event, PassType, Registration, Ticket, Profile,
    EventStatus, RegistrationStatus, TicketStatus
)
from shared.cache.redis_client import LockNotAcquired
from shared.utils.exceptions import (
    RegistrationValidationError, CapacityError, NotFoundError, ConflictError
)
from shared.utils.qr_generator import QRCodeData, encode_qr_payload, generate_ticket_token
from shared.utils.timeutils import utcnow, ensure_aware, isoformat
from services.registration.services.inventory_service import InventoryService
from services.event_management.services.event_service import EventService

logger = logging.getLogger(__name__)

DEFAULT_MAX_TEAM_SIZE = 4


def ticket_qr_payload(ticket: Ticket, team_name: Optional[str] = None) -> str:
    """QR string printed on a ticket"""
    data = QRCodeData(
        ticket_token=ticket.ticket_token,
        event_id=str(ticket.event_id),
        user_id=str(ticket.user_id),
        type="team" if team_name else "individual",
        issued_at=isoformat(ticket.created_at) or utcnow().isoformat(),
    )
    return encode_qr_payload(data)


def is_ticket_conflict(error: IntegrityError) -> bool:
    """True when a unique key of the tickets table was violated"""
    message = str(error.orig)
    return any(marker in message for marker in ("uq_tickets_", "ix_tickets_", "tickets."))


def serialize_ticket(ticket: Ticket, team_name: Optional[str] = None, include_qr: bool = True) -> Dict:
    return {
        "id": str(ticket.id),
        "ticket_token": ticket.ticket_token,
        "event_id": str(ticket.event_id),
        "user_id": str(ticket.user_id),
        "registration_id": str(ticket.registration_id),
        "pass_type_id": str(ticket.pass_type_id),
        "status": ticket.status,
        "scanned_at": ensure_aware(ticket.scanned_at),
        "scanned_by": ticket.scanned_by,
        "created_at": ensure_aware(ticket.created_at),
        "qr_data": ticket_qr_payload(ticket, team_name) if include_qr else None,
    }


def serialize_registration(registration: Registration, ticket: Optional[Ticket] = None) -> Dict:
    return {
        "id": str(registration.id),
        "event_id": str(registration.event_id),
        "pass_type_id": str(registration.pass_type_id),
        "user_id": str(registration.user_id),
        "status": registration.status,
        "team_name": registration.team_name,
        "team_members": registration.team_members,
        "payment_reference": registration.payment_reference,
        "created_at": ensure_aware(registration.created_at),
        "confirmed_at": ensure_aware(registration.confirmed_at),
        "ticket": serialize_ticket(ticket, registration.team_name) if ticket else None,
    }


class RegistrationService:
    """Turns purchase intents into registrations and tickets"""

    def __init__(self):
        self.inventory_service = InventoryService()

    # ==================== VALIDATION ====================

    @staticmethod
    def validate_team(
        event: Event,
        team_name: Optional[str],
        team_members: Optional[List[Dict]]
    ) -> Tuple[Optional[str], Optional[List[Dict]]]:
        """
        Check the team invariants and return the normalized team fields.

        team_name and members go together; team events require them and
        cap the member count at max_team_size.
        """
        team_name = (team_name or "").strip() or None
        team_members = list(team_members or []) or None

        if (team_name is None) != (team_members is None):
            raise RegistrationValidationError("Team name and team members must be provided together")

        if event.is_team_event:
            if team_name is None:
                raise RegistrationValidationError("Team name and members are required for team events")
            max_team_size = event.max_team_size or DEFAULT_MAX_TEAM_SIZE
            if len(team_members) > max_team_size:
                raise RegistrationValidationError(f"Maximum team size is {max_team_size}")
        elif team_name is not None:
            raise RegistrationValidationError("This event does not accept team registrations")

        return team_name, team_members

    @staticmethod
    def validate_pass_type(pass_type: PassType, event: Event) -> None:
        """Pass type must be active and inside its sale window"""
        if pass_type.event_id != event.id:
            raise RegistrationValidationError("Ticket type does not belong to this event")

        if not pass_type.is_active:
            raise RegistrationValidationError(f"'{pass_type.name}' is not on sale")

        now = utcnow()
        if pass_type.sale_start and ensure_aware(pass_type.sale_start) > now:
            raise RegistrationValidationError(f"Sales for '{pass_type.name}' have not started yet")
        if pass_type.sale_end and ensure_aware(pass_type.sale_end) < now:
            raise RegistrationValidationError(f"Sales for '{pass_type.name}' have ended")

    @staticmethod
    def validate_event_open(event: Event) -> None:
        if event.event_status != EventStatus.PUBLISHED:
            raise RegistrationValidationError("Event is not open for registration")

        deadline = ensure_aware(event.registration_deadline)
        if deadline and deadline < utcnow():
            raise RegistrationValidationError("Registration deadline has passed")

    # ==================== REGISTRATION ====================

    async def register(
        self,
        db: AsyncSession,
        event_id: str,
        pass_type_id: str,
        user_id: str,
        team_name: Optional[str] = None,
        team_members: Optional[List[Dict]] = None,
        payment_reference: Optional[str] = None
    ) -> Tuple[Registration, Optional[Ticket]]:
        """
        Create a registration.

        Free passes are confirmed and ticketed in the same transaction;
        paid passes stay pending until the payment is verified.

        Returns:
            (registration, ticket or None)
        """
        event = await self.get_event(db, event_id)
        pass_type = await self._get_pass_type(db, pass_type_id)
        user_uuid = parse_uuid(user_id, "User")

        self.validate_event_open(event)
        self.validate_pass_type(pass_type, event)
        team_name, team_members = self.validate_team(event, team_name, team_members)

        if not self.inventory_service.has_capacity(pass_type, event):
            raise CapacityError(f"'{pass_type.name}' is sold out")

        stmt_existing = select(Registration.id).where(
            Registration.user_id == user_uuid,
            Registration.pass_type_id == pass_type.id,
            Registration.status != RegistrationStatus.CANCELLED
        )
        if (await db.execute(stmt_existing)).first():
            raise RegistrationValidationError("You are already registered with this ticket type")

        registration = Registration(
            event_id=event.id,
            pass_type_id=pass_type.id,
            user_id=user_uuid,
            team_name=team_name,
            team_members=team_members,
            payment_reference=payment_reference,
            status=RegistrationStatus.PENDING,
        )
        db.add(registration)

        ticket = None
        email_payload = None
        is_free = Decimal(pass_type.price or 0) == 0
        try:
            await db.flush()
            if is_free:
                ticket = await self._confirm_and_issue(db, registration, pass_type, event)
                email_payload = await self._prepare_confirmation(db, registration, ticket, event, pass_type)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Registration {registration.id} created for event {event.id} "
            f"(status={registration.status}, free={is_free})"
        )

        if ticket is not None:
            self._send_confirmation_email(registration, email_payload)

        return registration, ticket

    async def confirm_registration(
        self,
        db: AsyncSession,
        registration_id: str,
        payment_reference: Optional[str] = None,
        order_id: Optional[str] = None
    ) -> Ticket:
        """
        Confirm a pending registration and issue its ticket.

        Idempotent: a registration that is already confirmed returns its
        existing ticket.
        """
        registration = await self.require_registration(db, registration_id, for_update=True)

        if registration.status == RegistrationStatus.CONFIRMED:
            ticket = await self.get_ticket_for_registration(db, registration)
            if ticket is not None:
                return ticket

        if registration.status == RegistrationStatus.CANCELLED:
            raise ConflictError("Registration is cancelled")

        event = await self.get_event(db, registration.event_id)
        pass_type = await self._get_pass_type(db, registration.pass_type_id)

        if payment_reference:
            registration.payment_reference = payment_reference
        if order_id:
            registration.order_id = order_id

        try:
            ticket = await self._confirm_and_issue(db, registration, pass_type, event)
            email_payload = await self._prepare_confirmation(db, registration, ticket, event, pass_type)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Registration {registration.id} confirmed, ticket {ticket.id} issued")
        self._send_confirmation_email(registration, email_payload)
        return ticket

    async def cancel_registration(
        self,
        db: AsyncSession,
        registration_id: str
    ) -> Registration:
        """Cancel a registration and its active ticket"""
        registration = await self.require_registration(db, registration_id, for_update=True)

        if registration.status == RegistrationStatus.CANCELLED:
            return registration

        ticket = await self.get_ticket_for_registration(db, registration)
        if ticket is not None and ticket.status == TicketStatus.USED:
            raise ConflictError("Ticket was already used; the registration cannot be cancelled")

        registration.status = RegistrationStatus.CANCELLED
        if ticket is not None and ticket.status == TicketStatus.ACTIVE:
            await self._transition_ticket(db, ticket, TicketStatus.CANCELLED)

        await db.commit()
        logger.info(f"Registration {registration.id} cancelled")
        return registration

    async def cancel_ticket(
        self,
        db: AsyncSession,
        ticket_id: str,
        actor_id: Optional[str] = None
    ) -> Ticket:
        """Administrative cancellation: active -> cancelled only"""
        ticket = await self.get_ticket_by_id(db, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")

        if ticket.status == TicketStatus.CANCELLED:
            return ticket

        await self._transition_ticket(db, ticket, TicketStatus.CANCELLED)
        await db.commit()
        await db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} cancelled by {actor_id}")
        return ticket

    # ==================== QUERIES ====================

    @staticmethod
    async def get_ticket_by_id(db: AsyncSession, ticket_id: str) -> Optional[Ticket]:
        try:
            ticket_uuid = parse_uuid(ticket_id, "Ticket")
        except NotFoundError:
            return None
        stmt = select(Ticket).where(Ticket.id == ticket_uuid)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_registration(db: AsyncSession, registration_id: str) -> Optional[Registration]:
        try:
            registration_uuid = parse_uuid(registration_id, "Registration")
        except NotFoundError:
            return None
        result = await db.execute(select(Registration).where(Registration.id == registration_uuid))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_tickets(db: AsyncSession, user_id: str) -> List[Tuple[Ticket, Registration, Event]]:
        """Tickets of a user with their registration and event, newest first"""
        user_uuid = parse_uuid(user_id, "User")
        stmt = (
            select(Ticket, Registration, Event)
            .join(Registration, Ticket.registration_id == Registration.id)
            .join(Event, Ticket.event_id == Event.id)
            .where(Ticket.user_id == user_uuid)
            .order_by(Ticket.created_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.all())

    # ==================== INTERNALS ====================

    async def _confirm_and_issue(
        self,
        db: AsyncSession,
        registration: Registration,
        pass_type: PassType,
        event: Event
    ) -> Ticket:
        """
        Confirm the registration and issue exactly one ticket, counters
        included. Runs inside the caller's transaction, no commit.
        """
        try:
            await self.inventory_service.reserve_seat(db, pass_type, event)
        except LockNotAcquired:
            raise ConflictError("Too many simultaneous registrations, please try again")

        registration.status = RegistrationStatus.CONFIRMED
        registration.confirmed_at = utcnow()
        await EventService.record_registration(db, event.id, revenue=Decimal(pass_type.price or 0))

        # 128-bit random token; the unique indexes on ticket_token and
        # (registration_id, pass_type_id) reject collisions and double issues
        ticket = Ticket(
            ticket_token=generate_ticket_token(),
            event_id=registration.event_id,
            user_id=registration.user_id,
            registration_id=registration.id,
            pass_type_id=registration.pass_type_id,
            status=TicketStatus.ACTIVE,
        )
        db.add(ticket)
        try:
            await db.flush()
        except IntegrityError as e:
            if is_ticket_conflict(e):
                raise ConflictError("A ticket was already issued for this registration")
            raise

        await db.refresh(pass_type)
        await db.refresh(event)
        return ticket

    @staticmethod
    async def _transition_ticket(db: AsyncSession, ticket: Ticket, new_status: str) -> None:
        """active -> new_status, conditioned on the ticket still being active"""
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.ACTIVE)
            .values(status=new_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount == 0:
            await db.refresh(ticket)
            raise ConflictError(f"Ticket is {ticket.status}")
        await db.refresh(ticket)

    @staticmethod
    async def get_event(db: AsyncSession, event_id) -> Event:
        event_uuid = parse_uuid(event_id, "Event")
        result = await db.execute(select(Event).where(Event.id == event_uuid))
        event = result.scalar_one_or_none()
        if event is None:
            raise NotFoundError("Event not found")
        return event

    @staticmethod
    async def _get_pass_type(db: AsyncSession, pass_type_id) -> PassType:
        pass_uuid = parse_uuid(pass_type_id, "Ticket type")
        result = await db.execute(select(PassType).where(PassType.id == pass_uuid))
        pass_type = result.scalar_one_or_none()
        if pass_type is None:
            raise NotFoundError("Ticket type not found")
        return pass_type

    @staticmethod
    async def require_registration(db: AsyncSession, registration_id, for_update: bool = False) -> Registration:
        registration_uuid = parse_uuid(registration_id, "Registration")
        stmt = select(Registration).where(Registration.id == registration_uuid)
        if for_update:
            # No-op on SQLite
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        registration = result.scalar_one_or_none()
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration

    @staticmethod
    async def get_ticket_for_registration(db: AsyncSession, registration: Registration) -> Optional[Ticket]:
        stmt = select(Ticket).where(
            Ticket.registration_id == registration.id,
            Ticket.pass_type_id == registration.pass_type_id
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _prepare_confirmation(
        db: AsyncSession,
        registration: Registration,
        ticket: Ticket,
        event: Event,
        pass_type: PassType
    ) -> Optional[Dict]:
        """
        Add the in-app notification to the current unit of work and build
        the e-mail payload sent once the transaction commits.
        """
        from services.notifications.services.notification_service import NotificationService

        db.add(NotificationService.build_notification(
            user_id=registration.user_id,
            type="registration_confirmed",
            title="Registration confirmed",
            message=f"You're registered for {event.title}. Show your QR ticket at the entrance.",
            data={
                "event_id": str(event.id),
                "ticket_id": str(ticket.id),
                "registration_id": str(registration.id),
            },
            sent_via=["in_app", "email"],
        ))

        result = await db.execute(select(Profile).where(Profile.id == registration.user_id))
        profile = result.scalar_one_or_none()
        if profile is None or not profile.email:
            return None

        return {
            "email": profile.email,
            "attendee_name": profile.full_name,
            "event_title": event.title,
            "event_date": isoformat(event.start_date),
            "venue": f"{event.venue}, {event.city}",
            "pass_name": pass_type.name,
            "team_name": registration.team_name,
            "ticket_id": str(ticket.id),
            "qr_data": ticket_qr_payload(ticket, registration.team_name),
        }

    @staticmethod
    def _send_confirmation_email(registration: Registration, email_payload: Optional[Dict]) -> None:
        """Queue the confirmation e-mail; a broker outage never fails the registration"""
        if not email_payload:
            return

        from services.registration.tasks.notification_tasks import enqueue_registration_confirmation

        try:
            enqueue_registration_confirmation(email_payload)
        except Exception as e:
            logger.error(f"Error queueing confirmation e-mail for registration {registration.id}: {e}", exc_info=True)
