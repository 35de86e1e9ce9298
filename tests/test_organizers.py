from datetime import timedelta

import pytest

from shared.database.models import EventStatus, Organizer, Profile, UserRole, VerificationStatus
from shared.utils.exceptions import ConflictError, PermissionDeniedError, RegistrationValidationError
from shared.utils.timeutils import utcnow
from services.event_management.models.event import EventCreate
from services.event_management.services.event_service import EventService
from services.organizers.services.organizer_service import OrganizerService

from conftest import auth_headers


def _event_payload(publish: bool = True, **overrides) -> dict:
    start = utcnow() + timedelta(days=10)
    values = {
        "title": "Ideathon 2026",
        "event_type": "ideathon",
        "venue": "Innovation Lab",
        "city": "Pune",
        "start_date": start,
        "end_date": start + timedelta(hours=8),
        "tags": ["ideas", "startups"],
        "ticket_types": [{"name": "Participant", "price": "0", "quantity": 50}],
        "publish": publish,
    }
    values.update(overrides)
    return EventCreate(**values).model_dump()


async def test_apply_creates_a_pending_organizer(db, factory):
    student = await factory.profile()
    service = OrganizerService()

    organizer = await service.apply(db, str(student.id), {
        "organization_name": "Robotics Society",
        "organization_type": "club",
        "upi_id": "robotics@upi",
    })

    assert organizer.verification_status == VerificationStatus.PENDING
    assert student.role == UserRole.ORGANIZER
    with pytest.raises(ConflictError):
        await service.apply(db, str(student.id), {"organization_name": "Again"})


async def test_events_of_unverified_organizers_wait_for_approval(db, factory, session_factory):
    student = await factory.profile()
    admin = await factory.profile(role=UserRole.ADMIN)
    organizer_service = OrganizerService()
    event_service = EventService()
    organizer = await organizer_service.apply(db, str(student.id), {"organization_name": "Robotics Society"})

    event = await event_service.create_event(db, _event_payload(publish=True), str(student.id))
    assert event.event_status == EventStatus.PENDING
    assert (await event_service.search_events(db, city="Pune"))["total"] == 0

    approved = await organizer_service.approve(db, str(organizer.id), str(admin.id))

    assert approved.verification_status == VerificationStatus.APPROVED
    assert approved.verified_at is not None
    assert approved.verified_by == admin.id
    async with session_factory() as session:
        profile = await session.get(Profile, student.id)
        published = await EventService.get_event_by_id(session, str(event.id))
    assert profile.role == UserRole.ORGANIZER
    assert published.event_status == EventStatus.PUBLISHED

    # The cached empty search is not served after approval
    results = await event_service.search_events(db, city="Pune")
    assert [e["id"] for e in results["data"]] == [str(event.id)]


async def test_drafts_stay_drafts_on_approval(db, factory, session_factory):
    student = await factory.profile()
    admin = await factory.profile(role=UserRole.ADMIN)
    organizer = await OrganizerService().apply(db, str(student.id), {"organization_name": "Drama Club"})
    draft = await EventService().create_event(db, _event_payload(publish=False), str(student.id))

    await OrganizerService().approve(db, str(organizer.id), str(admin.id))

    async with session_factory() as session:
        stored = await EventService.get_event_by_id(session, str(draft.id))
    assert stored.event_status == EventStatus.DRAFT


async def test_approved_organizer_publishes_directly(db, factory):
    organizer = await factory.organizer(status=VerificationStatus.APPROVED)
    service = EventService()

    draft = await service.create_event(db, _event_payload(publish=False), str(organizer.user_id))
    assert draft.event_status == EventStatus.DRAFT

    published = await service.publish_event(db, str(draft.id), {"user_id": str(organizer.user_id), "role": "organizer"})
    assert published.event_status == EventStatus.PUBLISHED
    assert [pt.name for pt in published.ticket_types] == ["Participant"]


async def test_rejection_needs_a_reason_and_is_final(db, factory):
    organizer = await factory.organizer(status=VerificationStatus.PENDING)
    admin = await factory.profile(role=UserRole.ADMIN)
    service = OrganizerService()

    with pytest.raises(RegistrationValidationError):
        await service.reject(db, str(organizer.id), str(admin.id), "  ")

    rejected = await service.reject(db, str(organizer.id), str(admin.id), "Documents do not match")
    assert rejected.verification_status == VerificationStatus.REJECTED
    assert rejected.rejection_reason == "Documents do not match"

    with pytest.raises(ConflictError):
        await service.approve(db, str(organizer.id), str(admin.id))


async def test_rejected_organizer_cannot_create_events(db, factory):
    organizer = await factory.organizer(status=VerificationStatus.REJECTED)

    with pytest.raises(PermissionDeniedError):
        await EventService().create_event(db, _event_payload(), str(organizer.user_id))


async def test_students_without_organizer_profile_cannot_create_events(db, factory):
    student = await factory.profile()

    with pytest.raises(PermissionDeniedError):
        await EventService().create_event(db, _event_payload(), str(student.id))


async def test_organizers_only_manage_their_own_events(db, factory):
    owner = await factory.organizer()
    other = await factory.organizer()
    event = await factory.event(organizer=owner)
    service = EventService()

    await service.assert_can_manage(db, event, {"user_id": str(owner.user_id), "role": "organizer"})
    await service.assert_can_manage(db, event, {"user_id": str(other.user_id), "role": "admin"})
    with pytest.raises(PermissionDeniedError):
        await service.assert_can_manage(db, event, {"user_id": str(other.user_id), "role": "organizer"})


async def test_admin_review_routes(client, db, factory):
    admin = await factory.profile(role=UserRole.ADMIN)
    student = await factory.profile()
    admin_headers = auth_headers(admin.id, role=UserRole.ADMIN)

    applied = await client.post(
        "/api/v1/organizers",
        headers=auth_headers(student.id),
        json={"organization_name": "Quiz Club", "organization_type": "club", "upi_id": "quiz@upi"},
    )
    assert applied.status_code == 201
    organizer_id = applied.json()["id"]

    forbidden = await client.get("/api/v1/organizers", headers=auth_headers(student.id))
    assert forbidden.status_code == 403

    pending = await client.get("/api/v1/organizers?status=pending", headers=admin_headers)
    assert [o["id"] for o in pending.json()] == [organizer_id]

    approved = await client.post(f"/api/v1/organizers/{organizer_id}/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["verification_status"] == VerificationStatus.APPROVED

    again = await client.post(f"/api/v1/organizers/{organizer_id}/approve", headers=admin_headers)
    assert again.status_code == 409

    mine = await client.get("/api/v1/organizers/me", headers=auth_headers(student.id))
    assert mine.json()["verified_by"] == str(admin.id)


async def test_create_event_route(client, factory):
    organizer = await factory.organizer(status=VerificationStatus.PENDING)
    payload = _event_payload(publish=True)
    body = {
        **payload,
        "start_date": payload["start_date"].isoformat(),
        "end_date": payload["end_date"].isoformat(),
        "ticket_types": [{"name": "Participant", "price": 0, "quantity": 50}],
    }

    response = await client.post(
        "/api/v1/events", json=body, headers=auth_headers(organizer.user_id, role=UserRole.ORGANIZER)
    )

    assert response.status_code == 201
    created = response.json()
    assert created["event_status"] == EventStatus.PENDING
    assert created["ticket_types"][0]["quantity"] == 50

    invalid = await client.post(
        "/api/v1/events",
        json={**body, "end_date": (payload["start_date"] - timedelta(days=1)).isoformat()},
        headers=auth_headers(organizer.user_id, role=UserRole.ORGANIZER),
    )
    assert invalid.status_code == 422


def test_event_type_is_validated():
    with pytest.raises(ValueError):
        _event_payload(event_type="party")


async def test_organizer_listing_filters_by_status(db, factory):
    await factory.organizer(status=VerificationStatus.PENDING)
    approved = await factory.organizer(status=VerificationStatus.APPROVED)

    listed = await OrganizerService().list_organizers(db, VerificationStatus.APPROVED)

    assert [o.id for o in listed] == [approved.id]
    assert all(isinstance(o, Organizer) for o in await OrganizerService().list_organizers(db))


async def test_applicant_goes_from_pending_to_published_over_http(client, factory):
    student = await factory.profile()
    admin = await factory.profile(role=UserRole.ADMIN)
    headers = auth_headers(student.id)
    admin_headers = auth_headers(admin.id, role=UserRole.ADMIN)
    payload = _event_payload(publish=True)
    body = {
        **payload,
        "start_date": payload["start_date"].isoformat(),
        "end_date": payload["end_date"].isoformat(),
        "ticket_types": [{"name": "Participant", "price": 0, "quantity": 50}],
    }

    blocked = await client.post("/api/v1/events", json=body, headers=headers)
    assert blocked.status_code == 403

    applied = await client.post("/api/v1/organizers", headers=headers, json={"organization_name": "Quiz Club"})
    assert applied.status_code == 201

    waiting = await client.post("/api/v1/events", json=body, headers=headers)
    assert waiting.status_code == 201
    assert waiting.json()["event_status"] == EventStatus.PENDING

    draft = await client.post("/api/v1/events", json={**body, "publish": False}, headers=headers)
    assert draft.json()["event_status"] == EventStatus.DRAFT

    approved = await client.post(f"/api/v1/organizers/{applied.json()['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200

    live = await client.get(f"/api/v1/events/{waiting.json()['id']}")
    assert live.json()["event_status"] == EventStatus.PUBLISHED

    published = await client.post(f"/api/v1/events/{draft.json()['id']}/publish", headers=headers)
    assert published.status_code == 200
    assert published.json()["event_status"] == EventStatus.PUBLISHED

    listing = await client.get("/api/v1/events", params={"city": "Pune"})
    assert listing.json()["total"] == 2


async def test_profile_role_outranks_token_claims(client, factory):
    student = await factory.profile()
    admin = await factory.profile(role=UserRole.ADMIN)

    claims_admin = await client.get("/api/v1/organizers", headers=auth_headers(student.id, role=UserRole.ADMIN))
    supabase_style = await client.get(
        "/api/v1/organizers", headers=auth_headers(admin.id, role="authenticated")
    )

    assert claims_admin.status_code == 403
    assert supabase_style.status_code == 200
