import pytest

from shared.utils.exceptions import NotFoundError
from services.notifications.services.email_service import EmailService
from services.notifications.services.notification_service import NotificationService
from services.registration.services.registration_service import RegistrationService

from conftest import auth_headers


async def test_feed_is_capped(db, factory):
    student = await factory.profile()
    service = NotificationService()
    for n in range(25):
        await service.create_notification(db, student.id, "event_reminder", f"Reminder {n}", "Soon")

    feed = await NotificationService.list_for_user(db, str(student.id))

    assert len(feed) == 20
    assert await NotificationService.unread_count(db, str(student.id)) == 25


async def test_mark_read_is_owner_only(db, factory):
    owner = await factory.profile()
    other = await factory.profile()
    notification = await NotificationService().create_notification(db, owner.id, "info", "Hello", "World")

    with pytest.raises(NotFoundError):
        await NotificationService.mark_read(db, str(other.id), str(notification.id))

    marked = await NotificationService.mark_read(db, str(owner.id), str(notification.id))
    assert marked.is_read is True
    assert await NotificationService.unread_count(db, str(owner.id)) == 0


async def test_notification_routes(client, db, factory):
    event = await factory.event(title="Design Jam")
    pass_type = await factory.pass_type(event)
    student = await factory.profile()
    await RegistrationService().register(db, str(event.id), str(pass_type.id), str(student.id))
    await NotificationService().create_notification(db, student.id, "event_reminder", "Tomorrow", "Design Jam")
    headers = auth_headers(student.id)

    feed = await client.get("/api/v1/notifications", headers=headers)
    assert {n["type"] for n in feed.json()} == {"registration_confirmed", "event_reminder"}
    assert (await client.get("/api/v1/notifications/unread-count", headers=headers)).json() == {"unread": 2}

    first = feed.json()[0]["id"]
    read = await client.post(f"/api/v1/notifications/{first}/read", headers=headers)
    assert read.json()["is_read"] is True

    assert (await client.post("/api/v1/notifications/read-all", headers=headers)).json() == {"updated": 1}
    assert (await client.get("/api/v1/notifications/unread-count", headers=headers)).json() == {"unread": 0}

    missing = await client.post("/api/v1/notifications/not-a-uuid/read", headers=headers)
    assert missing.status_code == 404


async def test_unconfigured_email_is_simulated():
    service = EmailService()

    assert service.resend_configured is False
    assert await service.send_registration_confirmation(
        to_email="asha@college.edu",
        attendee_name="Asha Rao",
        event_title="Design Jam",
        event_date="2026-11-02T10:00:00+00:00",
        venue="Main Auditorium, Bangalore",
        pass_name="General",
        ticket_id="ticket-1",
        qr_data="FME1.eyJ0IjoieCJ9",
        team_name=None,
    ) is True


async def test_network_failure_answers_503(client, factory, monkeypatch):
    student = await factory.profile()

    async def refuse(db, user_id):
        raise ConnectionRefusedError("database refused the connection")

    monkeypatch.setattr(NotificationService, "unread_count", staticmethod(refuse))
    response = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(student.id))

    assert response.status_code == 503
    assert response.json()["error"] == "service_unavailable"


def test_every_worker_queue_receives_tasks():
    from shared.cache.celery_app import celery_app

    declared = {queue.name for queue in celery_app.conf.task_queues}
    routed = {route["queue"] for route in celery_app.conf.task_routes.values()}

    assert declared == routed
