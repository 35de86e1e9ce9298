"""Ticket check-in at the venue"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from redis.exceptions import RedisError
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, Optional, Tuple
import json
import logging

from shared.database.models import Ticket, Registration, Profile, PassType, Event, TicketStatus
from shared.cache.redis_client import get_redis
from shared.utils.exceptions import ConflictError
from shared.utils.qr_generator import decode_qr_payload
from shared.utils.timeutils import utcnow
from services.registration.services.registration_service import serialize_ticket

logger = logging.getLogger(__name__)


class CheckInResultType:
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


GENERIC_FAILURE_MESSAGE = "Could not validate the ticket. Please scan again."


class CheckInService:
    """
    Decides success / duplicate / invalid for a scanned QR.

    A ticket moves active -> used at most once: the transition is a
    conditional UPDATE, so when two devices scan the same ticket exactly
    one of them wins and the other reports a duplicate.
    """

    @staticmethod
    def _result(
        type: str,
        message: str,
        ticket: Optional[Dict] = None,
        qr_data: Optional[str] = None
    ) -> Dict:
        result = {"type": type, "message": message}
        if ticket is not None:
            result["ticket"] = ticket
        if qr_data is not None:
            result["qr_data"] = qr_data
        return result

    async def validate_and_check_in(
        self,
        db: AsyncSession,
        qr_payload: str,
        scanning_event_id: str,
        scanner_id: str
    ) -> Dict:
        """
        Validate a scanned payload for the event being scanned and check
        the ticket in.

        Never raises: any failure, database outages included, comes back
        as an invalid result so the scanner can keep going.
        """
        try:
            return await self._check_in(db, qr_payload, scanning_event_id, scanner_id)
        except Exception as e:
            logger.error(f"[CHECK-IN] Error validating ticket for event {scanning_event_id}: {type(e).__name__}: {e}", exc_info=True)
            try:
                await db.rollback()
            except Exception as rollback_error:
                logger.warning(f"[CHECK-IN] Rollback failed: {rollback_error}")
            return self._result(CheckInResultType.INVALID, GENERIC_FAILURE_MESSAGE)

    async def _check_in(
        self,
        db: AsyncSession,
        qr_payload: str,
        scanning_event_id: str,
        scanner_id: str
    ) -> Dict:
        qr_data = decode_qr_payload(qr_payload)
        if qr_data is None:
            logger.info(f"[CHECK-IN] Unreadable QR scanned by {scanner_id}")
            return self._result(CheckInResultType.INVALID, "Invalid QR code")

        scanning_event = str(scanning_event_id).strip().lower()
        if qr_data.event_id.lower() != scanning_event:
            return self._result(CheckInResultType.INVALID, "Ticket is not for this event")

        row = await self._load_ticket(db, qr_data.ticket_token)
        if row is None:
            return self._result(CheckInResultType.INVALID, "Ticket not found")

        ticket, registration, attendee_name, pass_name, event_title = row
        # The QR claim is not trusted on its own
        if str(ticket.event_id).lower() != scanning_event:
            return self._result(CheckInResultType.INVALID, "Ticket is not for this event")

        def ticket_info() -> Dict:
            data = serialize_ticket(ticket, registration.team_name, include_qr=False)
            data.update({
                "attendee_name": attendee_name,
                "team_name": registration.team_name,
                "pass_name": pass_name,
                "event_title": event_title,
            })
            return data

        if ticket.status == TicketStatus.USED:
            return self._result(
                CheckInResultType.DUPLICATE,
                "Ticket already used",
                ticket=ticket_info(),
                qr_data=qr_payload,
            )

        if ticket.status != TicketStatus.ACTIVE:
            return self._result(CheckInResultType.INVALID, f"Ticket is {ticket.status}")

        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.ACTIVE)
            .values(status=TicketStatus.USED, scanned_at=utcnow(), scanned_by=str(scanner_id), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        # Both outcomes report the values stored by whoever won
        await db.refresh(ticket)

        if result.rowcount == 0:
            if ticket.status == TicketStatus.USED:
                logger.info(f"[CHECK-IN] Ticket {ticket.id} lost the race, reported as duplicate")
                return self._result(
                    CheckInResultType.DUPLICATE,
                    "Ticket already used",
                    ticket=ticket_info(),
                    qr_data=qr_payload,
                )
            return self._result(CheckInResultType.INVALID, f"Ticket is {ticket.status}")

        logger.info(f"[CHECK-IN] Ticket {ticket.id} checked in for event {ticket.event_id} by {scanner_id}")
        return self._result(
            CheckInResultType.SUCCESS,
            f"Welcome, {attendee_name}!" if attendee_name else "Check-in successful",
            ticket=ticket_info(),
            qr_data=qr_payload,
        )

    @staticmethod
    async def _load_ticket(
        db: AsyncSession,
        ticket_token: str
    ) -> Optional[Tuple[Ticket, Registration, Optional[str], Optional[str], Optional[str]]]:
        stmt = (
            select(Ticket, Registration, Profile.full_name, PassType.name, Event.title)
            .join(Registration, Ticket.registration_id == Registration.id)
            .join(Event, Ticket.event_id == Event.id)
            .outerjoin(Profile, Ticket.user_id == Profile.id)
            .outerjoin(PassType, Ticket.pass_type_id == PassType.id)
            .where(Ticket.ticket_token == ticket_token)
        )
        result = await db.execute(stmt)
        row = result.first()
        return tuple(row) if row is not None else None


class ScanSessionBusy(ConflictError):
    pass


class ScanSession:
    """
    One scanning device at one event.

    The scanner's slot lives in Redis, so it is shared by every API worker:
    a scanner holds at most one open session per event. The slot is
    released on every exit path (stop, navigation away, logout, errors)
    and expires on its own when a device disappears without stopping.
    Each scan uses its own database session.

        async with ScanSession(session_maker, event_id, scanner_id) as scanner:
            result = await scanner.scan(payload)
    """

    KEY_PREFIX = "scan:session"
    TTL_SECONDS = 15 * 60
    HISTORY_SIZE = 50

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        event_id: str,
        scanner_id: str,
        service: Optional[CheckInService] = None
    ):
        self.session_factory = session_factory
        self.event_id = str(event_id)
        self.scanner_id = str(scanner_id)
        self.service = service or CheckInService()
        self.counts = {
            CheckInResultType.SUCCESS: 0,
            CheckInResultType.DUPLICATE: 0,
            CheckInResultType.INVALID: 0,
        }
        self.history: Deque[Dict] = deque(maxlen=self.HISTORY_SIZE)
        self.started_at = None
        self._open = False

    @classmethod
    def slot_key(cls, event_id: str, scanner_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{str(event_id).lower()}:{scanner_id}"

    @property
    def key(self) -> str:
        return self.slot_key(self.event_id, self.scanner_id)

    @property
    def is_open(self) -> bool:
        return self._open

    def to_dict(self) -> Dict:
        return {
            "event_id": self.event_id,
            "scanner_id": self.scanner_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "counts": dict(self.counts),
            "history": list(self.history),
        }

    @classmethod
    async def is_scanning(cls, event_id: str, scanner_id: str) -> bool:
        try:
            redis_conn = await get_redis()
            return bool(await redis_conn.get(cls.slot_key(event_id, scanner_id)))
        except (RedisError, OSError) as e:
            logger.warning(f"[CHECK-IN] Could not read scan slot: {e}")
            return False

    @classmethod
    async def resume(
        cls,
        session_factory: Callable[[], AsyncSession],
        event_id: str,
        scanner_id: str
    ) -> Optional["ScanSession"]:
        """The open session of a scanner, as saved by the previous request"""
        try:
            redis_conn = await get_redis()
            raw = await redis_conn.get(cls.slot_key(event_id, scanner_id))
        except (RedisError, OSError) as e:
            logger.warning(f"[CHECK-IN] Could not read scan slot: {e}")
            return None
        if not raw:
            return None

        state = json.loads(raw)
        scan_session = cls(session_factory, event_id, scanner_id)
        scan_session.counts.update(state.get("counts") or {})
        scan_session.history.extend(state.get("history") or [])
        started_at = state.get("started_at")
        scan_session.started_at = datetime.fromisoformat(started_at) if started_at else None
        scan_session._open = True
        return scan_session

    async def _save(self, nx: bool = False) -> bool:
        redis_conn = await get_redis()
        stored = await redis_conn.set(self.key, json.dumps(self.to_dict()), nx=nx, ex=self.TTL_SECONDS)
        return bool(stored)

    async def start(self) -> "ScanSession":
        self.started_at = utcnow()
        try:
            acquired = await self._save(nx=True)
        except (RedisError, OSError) as e:
            # Without Redis the slot is not enforced
            logger.warning(f"[CHECK-IN] Scan slot not reserved, Redis unavailable: {e}")
            acquired = True
        if not acquired:
            raise ScanSessionBusy(f"Scanner {self.scanner_id} is already scanning event {self.event_id}")

        self._open = True
        logger.info(f"[CHECK-IN] Scan session opened by {self.scanner_id} for event {self.event_id}")
        return self

    async def stop(self) -> Dict:
        """Release the slot and return the session summary; safe to call more than once"""
        if not self._open:
            return self.to_dict()
        self._open = False
        try:
            redis_conn = await get_redis()
            await redis_conn.delete(self.key)
        except (RedisError, OSError) as e:
            logger.warning(f"[CHECK-IN] Could not release scan slot {self.key}, it will expire: {e}")
        logger.info(
            f"[CHECK-IN] Scan session closed by {self.scanner_id} for event {self.event_id}: "
            f"{self.counts[CheckInResultType.SUCCESS]} checked in, "
            f"{self.counts[CheckInResultType.DUPLICATE]} duplicates, "
            f"{self.counts[CheckInResultType.INVALID]} invalid"
        )
        return self.to_dict()

    async def scan(self, qr_payload: str) -> Dict:
        if not self._open:
            raise RuntimeError("Scan session is closed")

        async with self.session_factory() as db:
            result = await self.service.validate_and_check_in(db, qr_payload, self.event_id, self.scanner_id)

        self.counts[result["type"]] += 1
        self.history.appendleft({"type": result["type"], "message": result["message"], "at": utcnow().isoformat()})
        try:
            await self._save()
        except (RedisError, OSError) as e:
            logger.warning(f"[CHECK-IN] Could not save scan session {self.key}: {e}")
        return result

    async def __aenter__(self) -> "ScanSession":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
