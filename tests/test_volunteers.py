import time
from datetime import timedelta

import pytest

from app.core.config import settings
from shared.auth.jwt_handler import create_access_token, decode_token
from shared.auth.passwords import hash_password, verify_password
from shared.database.models import UserRole
from shared.utils.exceptions import ConflictError, PermissionDeniedError
from services.registration.services.registration_service import RegistrationService, ticket_qr_payload
from services.volunteers.services.volunteer_service import VolunteerService

from conftest import auth_headers


def test_password_hashing():
    hashed = hash_password("gate-pass-2026")

    assert hashed != hash_password("gate-pass-2026")
    assert verify_password("gate-pass-2026", hashed)
    assert not verify_password("gate-pass-2027", hashed)
    assert not verify_password("gate-pass-2026", "")
    assert not verify_password("gate-pass-2026", "not-hex")


@pytest.fixture
async def scoped(db, factory):
    organizer = await factory.organizer()
    event = await factory.event(organizer=organizer)
    other_event = await factory.event()
    owner = {"user_id": str(organizer.user_id), "role": UserRole.ORGANIZER}
    await VolunteerService().create_volunteer(db, str(event.id), "Gate_One", "s3cret-pass", owner)
    return {"event_id": str(event.id), "other_event_id": str(other_event.id), "owner": owner}


async def test_login_issues_an_event_scoped_token(db, scoped):
    session = await VolunteerService().login(db, scoped["event_id"], "gate_one", "s3cret-pass")

    claims = decode_token(session["access_token"])
    assert claims["role"] == UserRole.VOLUNTEER
    assert claims["event_id"] == scoped["event_id"]
    assert claims["username"] == "gate_one"
    assert claims["sub"] == session["volunteer"]["id"]
    assert session["expires_in"] == settings.VOLUNTEER_SESSION_HOURS * 3600

    lifetime = claims["exp"] - time.time()
    assert settings.VOLUNTEER_SESSION_HOURS * 3600 - 60 < lifetime <= settings.VOLUNTEER_SESSION_HOURS * 3600


async def test_wrong_credentials_are_refused(db, scoped):
    service = VolunteerService()

    with pytest.raises(PermissionDeniedError):
        await service.login(db, scoped["event_id"], "gate_one", "wrong-password")
    with pytest.raises(PermissionDeniedError):
        await service.login(db, scoped["other_event_id"], "gate_one", "s3cret-pass")
    with pytest.raises(PermissionDeniedError):
        await service.login(db, "not-an-event", "gate_one", "s3cret-pass")


async def test_usernames_are_unique_per_event(db, scoped):
    with pytest.raises(ConflictError):
        await VolunteerService().create_volunteer(db, scoped["event_id"], "GATE_ONE", "another-pass", scoped["owner"])


async def test_only_the_event_organizer_creates_volunteers(db, factory, scoped):
    stranger = await factory.organizer()

    with pytest.raises(PermissionDeniedError):
        await VolunteerService().create_volunteer(
            db, scoped["event_id"], "gate_two", "another-pass",
            {"user_id": str(stranger.user_id), "role": UserRole.ORGANIZER},
        )


def test_expired_tokens_are_rejected():
    token = create_access_token(
        {"sub": "volunteer-1", "role": UserRole.VOLUNTEER, "event_id": "e1"},
        expires_delta=timedelta(seconds=-1),
    )
    assert decode_token(token) is None


async def test_volunteer_scans_only_its_event(client, db, factory):
    organizer = await factory.organizer()
    event = await factory.event(organizer=organizer)
    other_event = await factory.event()
    pass_type = await factory.pass_type(event)
    student = await factory.profile()
    _, ticket = await RegistrationService().register(db, str(event.id), str(pass_type.id), str(student.id))
    qr = ticket_qr_payload(ticket)
    owner_headers = auth_headers(organizer.user_id, role=UserRole.ORGANIZER)

    created = await client.post("/api/v1/volunteers", headers=owner_headers, json={
        "event_id": str(event.id), "username": "gate.one", "password": "s3cret-pass",
    })
    assert created.status_code == 201

    listed = await client.get("/api/v1/volunteers", params={"event_id": str(event.id)}, headers=owner_headers)
    assert [v["username"] for v in listed.json()] == ["gate.one"]

    bad_login = await client.post("/api/v1/volunteers/login", json={
        "event_id": str(event.id), "username": "gate.one", "password": "nope",
    })
    assert bad_login.status_code == 401

    login = await client.post("/api/v1/volunteers/login", json={
        "event_id": str(event.id), "username": "gate.one", "password": "s3cret-pass",
    })
    assert login.status_code == 200
    volunteer_headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    elsewhere = await client.post("/api/v1/tickets/check-in", headers=volunteer_headers, json={
        "qr_data": qr, "event_id": str(other_event.id),
    })
    assert elsewhere.status_code == 403

    scanned = await client.post("/api/v1/tickets/check-in", headers=volunteer_headers, json={
        "qr_data": qr, "event_id": str(event.id),
    })
    assert scanned.status_code == 200
    assert scanned.json()["type"] == "success"
    assert scanned.json()["ticket"]["scanned_by"] == login.json()["volunteer"]["id"]

    summary = await client.get(f"/api/v1/dashboard/events/{event.id}/check-in-summary", headers=volunteer_headers)
    assert summary.json()["checked_in"] == 1


async def test_expired_volunteer_session_cannot_scan(client, factory):
    event = await factory.event()
    expired = create_access_token(
        {"sub": "volunteer-1", "role": UserRole.VOLUNTEER, "event_id": str(event.id)},
        expires_delta=timedelta(seconds=-1),
    )

    response = await client.post(
        "/api/v1/tickets/check-in",
        headers={"Authorization": f"Bearer {expired}"},
        json={"qr_data": "FME1.x", "event_id": str(event.id)},
    )

    assert response.status_code == 401
