import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from shared.database.models import Ticket, TicketStatus
from shared.utils.qr_generator import QRCodeData, encode_qr_payload
from services.registration.services.registration_service import RegistrationService, ticket_qr_payload
from services.ticket_validation.services.checkin_service import (
    CheckInResultType,
    CheckInService,
    GENERIC_FAILURE_MESSAGE,
    ScanSession,
    ScanSessionBusy,
)


@pytest.fixture
async def issued(db, factory):
    """A published event with one active ticket held by a student"""
    event = await factory.event()
    pass_type = await factory.pass_type(event)
    student = await factory.profile(full_name="Asha Rao")
    _, ticket = await RegistrationService().register(db, str(event.id), str(pass_type.id), str(student.id))
    return {
        "event_id": str(event.id),
        "ticket_id": ticket.id,
        "qr": ticket_qr_payload(ticket),
        "ticket_token": ticket.ticket_token,
        "user_id": str(student.id),
    }


async def _ticket_row(session_factory, ticket_id) -> Ticket:
    async with session_factory() as session:
        return await session.get(Ticket, ticket_id)


async def test_first_scan_checks_the_ticket_in(db, session_factory, issued):
    result = await CheckInService().validate_and_check_in(db, issued["qr"], issued["event_id"], "scanner-1")

    assert result["type"] == CheckInResultType.SUCCESS
    assert result["message"] == "Welcome, Asha Rao!"
    assert result["ticket"]["status"] == TicketStatus.USED
    assert result["ticket"]["scanned_by"] == "scanner-1"
    assert result["ticket"]["attendee_name"] == "Asha Rao"

    stored = await _ticket_row(session_factory, issued["ticket_id"])
    assert stored.status == TicketStatus.USED
    assert stored.scanned_at is not None
    assert stored.scanned_by == "scanner-1"


async def test_second_scan_is_a_duplicate_and_keeps_the_first_check_in(db, issued):
    service = CheckInService()
    first = await service.validate_and_check_in(db, issued["qr"], issued["event_id"], "scanner-1")
    second = await service.validate_and_check_in(db, issued["qr"], issued["event_id"], "scanner-2")

    assert second["type"] == CheckInResultType.DUPLICATE
    assert second["message"] == "Ticket already used"
    assert second["ticket"]["scanned_by"] == "scanner-1"
    assert second["ticket"]["scanned_at"] == first["ticket"]["scanned_at"]


async def test_ticket_for_another_event_is_invalid(db, factory, session_factory, issued):
    other_event = await factory.event()

    result = await CheckInService().validate_and_check_in(db, issued["qr"], str(other_event.id), "scanner-1")

    assert result["type"] == CheckInResultType.INVALID
    assert result["message"] == "Ticket is not for this event"
    stored = await _ticket_row(session_factory, issued["ticket_id"])
    assert stored.status == TicketStatus.ACTIVE


async def test_forged_event_claim_is_checked_against_the_stored_ticket(db, factory, session_factory, issued):
    other_event = await factory.event()
    forged = encode_qr_payload(QRCodeData(
        ticket_token=issued["ticket_token"],
        event_id=str(other_event.id),
        user_id=issued["user_id"],
        type="individual",
        issued_at="2026-01-01T00:00:00+00:00",
    ))

    result = await CheckInService().validate_and_check_in(db, forged, str(other_event.id), "scanner-1")

    assert result["type"] == CheckInResultType.INVALID
    assert result["message"] == "Ticket is not for this event"
    stored = await _ticket_row(session_factory, issued["ticket_id"])
    assert stored.status == TicketStatus.ACTIVE


async def test_unknown_ticket_is_invalid(db, issued):
    payload = encode_qr_payload(QRCodeData(
        ticket_token="does-not-exist",
        event_id=issued["event_id"],
        user_id=issued["user_id"],
        type="individual",
        issued_at="2026-01-01T00:00:00+00:00",
    ))

    result = await CheckInService().validate_and_check_in(db, payload, issued["event_id"], "scanner-1")

    assert result == {"type": CheckInResultType.INVALID, "message": "Ticket not found"}


async def test_unreadable_qr_is_invalid(db, issued):
    result = await CheckInService().validate_and_check_in(db, "https://example.com/promo", issued["event_id"], "s")
    assert result == {"type": CheckInResultType.INVALID, "message": "Invalid QR code"}


async def test_cancelled_ticket_is_invalid(db, issued):
    await RegistrationService().cancel_ticket(db, str(issued["ticket_id"]), actor_id="organizer")

    result = await CheckInService().validate_and_check_in(db, issued["qr"], issued["event_id"], "scanner-1")

    assert result["type"] == CheckInResultType.INVALID
    assert result["message"] == "Ticket is cancelled"


async def test_scanner_with_stale_view_reports_duplicate(session_factory, issued):
    service = CheckInService()
    async with session_factory() as stale, session_factory() as fresh:
        # Loaded while still active; the identity map keeps this state
        seen = await stale.get(Ticket, issued["ticket_id"])
        assert seen.status == TicketStatus.ACTIVE

        winner = await service.validate_and_check_in(fresh, issued["qr"], issued["event_id"], "gate-a")
        loser = await service.validate_and_check_in(stale, issued["qr"], issued["event_id"], "gate-b")

    assert winner["type"] == CheckInResultType.SUCCESS
    assert loser["type"] == CheckInResultType.DUPLICATE
    assert loser["ticket"]["scanned_by"] == "gate-a"
    assert loser["ticket"]["scanned_at"] == winner["ticket"]["scanned_at"]


async def test_simultaneous_scans_check_in_once(session_factory, issued):
    service = CheckInService()

    async def scan(scanner_id):
        async with session_factory() as session:
            return await service.validate_and_check_in(session, issued["qr"], issued["event_id"], scanner_id)

    results = await asyncio.gather(scan("gate-a"), scan("gate-b"))

    assert sorted(r["type"] for r in results) == [CheckInResultType.DUPLICATE, CheckInResultType.SUCCESS]
    stored = await _ticket_row(session_factory, issued["ticket_id"])
    winner = next(r for r in results if r["type"] == CheckInResultType.SUCCESS)
    assert stored.scanned_by == winner["ticket"]["scanned_by"]


class _UnavailableSession:
    def __init__(self):
        self.rolled_back = False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    async def rollback(self):
        self.rolled_back = True


async def test_database_outage_is_reported_as_invalid(issued):
    session = _UnavailableSession()

    result = await CheckInService().validate_and_check_in(session, issued["qr"], issued["event_id"], "scanner-1")

    assert result == {"type": CheckInResultType.INVALID, "message": GENERIC_FAILURE_MESSAGE}
    assert session.rolled_back


async def test_scan_session_counts_results_and_releases_its_slot(session_factory, issued):
    async with ScanSession(session_factory, issued["event_id"], "volunteer-7") as scanner:
        assert await ScanSession.is_scanning(issued["event_id"], "volunteer-7")

        await scanner.scan(issued["qr"])
        await scanner.scan(issued["qr"])
        await scanner.scan("garbage")

    assert scanner.counts == {
        CheckInResultType.SUCCESS: 1,
        CheckInResultType.DUPLICATE: 1,
        CheckInResultType.INVALID: 1,
    }
    assert [entry["type"] for entry in scanner.history] == [
        CheckInResultType.INVALID, CheckInResultType.DUPLICATE, CheckInResultType.SUCCESS
    ]
    assert not scanner.is_open
    assert not await ScanSession.is_scanning(issued["event_id"], "volunteer-7")


async def test_scan_session_holds_one_slot_per_scanner(session_factory, issued):
    first = await ScanSession(session_factory, issued["event_id"], "volunteer-7").start()

    with pytest.raises(ScanSessionBusy):
        await ScanSession(session_factory, issued["event_id"], "volunteer-7").start()

    summary = await first.stop()
    assert summary["counts"][CheckInResultType.SUCCESS] == 0
    await first.stop()

    with pytest.raises(RuntimeError):
        await first.scan(issued["qr"])

    again = await ScanSession(session_factory, issued["event_id"], "volunteer-7").start()
    assert again.is_open
    await again.stop()


async def test_scan_session_releases_slot_on_error(session_factory, issued):
    with pytest.raises(KeyError):
        async with ScanSession(session_factory, issued["event_id"], "volunteer-9"):
            raise KeyError("navigation away")

    assert not await ScanSession.is_scanning(issued["event_id"], "volunteer-9")


async def test_scan_session_state_survives_between_requests(session_factory, issued):
    opened = await ScanSession(session_factory, issued["event_id"], "volunteer-7").start()
    await opened.scan(issued["qr"])

    resumed = await ScanSession.resume(session_factory, issued["event_id"], "volunteer-7")

    assert resumed.is_open
    assert resumed.counts[CheckInResultType.SUCCESS] == 1
    assert resumed.history[0]["type"] == CheckInResultType.SUCCESS
    assert resumed.started_at == opened.started_at
    await resumed.stop()
    assert await ScanSession.resume(session_factory, issued["event_id"], "volunteer-7") is None
