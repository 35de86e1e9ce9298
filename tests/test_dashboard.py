import csv
import io

from shared.database.models import UserRole
from shared.datasource.database import DatabaseDataSource
from shared.datasource.fixtures import DEMO_EVENT_IDS, DEMO_USER_IDS, FixtureDataSource
from services.dashboard.services.dashboard_service import EXPORT_COLUMNS, DashboardService
from services.registration.services.registration_service import RegistrationService, ticket_qr_payload
from services.ticket_validation.services.checkin_service import CheckInService

from conftest import auth_headers

TEAM = [{"name": "Asha Rao", "email": "asha@college.edu"}, {"name": "Ravi K", "email": "ravi@college.edu"}]


async def _event_with_attendees(db, factory):
    organizer = await factory.organizer()
    event = await factory.event(organizer=organizer, is_team_event=True, max_team_size=3)
    pass_type = await factory.pass_type(event, price="0", name="Team entry")
    service = RegistrationService()
    tickets = []
    for n in range(3):
        student = await factory.profile(full_name=f"Student {n}")
        _, ticket = await service.register(
            db, str(event.id), str(pass_type.id), str(student.id), team_name=f"Team {n}", team_members=TEAM
        )
        tickets.append(ticket)
    return organizer, event, tickets


async def test_check_in_summary(db, factory):
    _, event, tickets = await _event_with_attendees(db, factory)
    await CheckInService().validate_and_check_in(db, ticket_qr_payload(tickets[0], "Team 0"), str(event.id), "gate")
    await RegistrationService().cancel_ticket(db, str(tickets[1].id), actor_id="organizer")

    summary = await DashboardService.check_in_summary(db, event.id)

    assert summary == {
        "event_id": str(event.id),
        "total": 2,
        "checked_in": 1,
        "remaining": 1,
        "cancelled": 1,
    }


async def test_ticket_export(db, factory):
    _, event, tickets = await _event_with_attendees(db, factory)
    await CheckInService().validate_and_check_in(db, ticket_qr_payload(tickets[2], "Team 2"), str(event.id), "gate-7")

    content = await DashboardService().export_tickets_csv(db, str(event.id))

    rows = list(csv.DictReader(io.StringIO(content)))
    assert list(rows[0].keys()) == EXPORT_COLUMNS
    assert len(rows) == 3
    by_ticket = {row["ticket_id"]: row for row in rows}
    used = by_ticket[str(tickets[2].id)]
    assert used["status"] == "used"
    assert used["scanned_by"] == "gate-7"
    assert used["attendee_name"] == "Student 2"
    assert used["team_name"] == "Team 2"
    assert used["team_size"] == "2"
    assert used["pass_name"] == "Team entry"
    assert by_ticket[str(tickets[0].id)]["scanned_at"] == ""


async def test_organizer_dashboard(db, factory):
    organizer, event, _ = await _event_with_attendees(db, factory)

    dashboard = await DashboardService().organizer_dashboard(db, DatabaseDataSource(db), str(organizer.user_id))

    assert dashboard["organizer"]["id"] == str(organizer.id)
    assert [e["id"] for e in dashboard["events"]] == [str(event.id)]
    assert dashboard["stats"]["registrations"] == 3
    assert dashboard["stats"]["revenue"] == 0.0
    assert dashboard["analytics"][str(event.id)][0]["registrations"] == 3


async def test_admin_dashboard(db, factory):
    await _event_with_attendees(db, factory)
    await factory.profile(role=UserRole.ADMIN)

    dashboard = await DashboardService().admin_dashboard(db)

    assert dashboard["profiles_by_role"][UserRole.STUDENT] == 3
    assert dashboard["profiles_by_role"][UserRole.ADMIN] == 1
    assert dashboard["tickets_by_status"] == {"active": 3}
    assert dashboard["revenue"] == {"amount": 0, "currency": "INR"}


async def test_student_dashboard_from_fixtures():
    source = FixtureDataSource()

    dashboard = await DashboardService().student_dashboard(source, DEMO_USER_IDS["student"])

    assert [t["event"]["id"] for t in dashboard["upcoming_events"]] == [DEMO_EVENT_IDS[0]]
    assert dashboard["past_events"] == []
    assert dashboard["stats"] == {
        "upcoming": 1,
        "attended": 0,
        "total_tickets": 1,
        "unread_notifications": 1,
    }


async def test_student_dashboard_from_database(db, factory):
    _, _, tickets = await _event_with_attendees(db, factory)
    student_id = str(tickets[0].user_id)

    dashboard = await DashboardService().student_dashboard(DatabaseDataSource(db), student_id)

    assert [t["id"] for t in dashboard["upcoming_events"]] == [str(tickets[0].id)]
    assert dashboard["stats"]["unread_notifications"] == 1


async def test_dashboard_routes(client, db, factory):
    organizer, event, _ = await _event_with_attendees(db, factory)
    admin = await factory.profile(role=UserRole.ADMIN)
    student = await factory.profile()
    organizer_headers = auth_headers(organizer.user_id, role=UserRole.ORGANIZER)

    export = await client.get(f"/api/v1/dashboard/events/{event.id}/export", headers=organizer_headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert f'tickets-{event.id}.csv' in export.headers["content-disposition"]

    stranger = await factory.organizer()
    denied = await client.get(
        f"/api/v1/dashboard/events/{event.id}/export",
        headers=auth_headers(stranger.user_id, role=UserRole.ORGANIZER),
    )
    assert denied.status_code == 403

    assert (await client.get("/api/v1/dashboard/admin", headers=auth_headers(admin.id, role=UserRole.ADMIN))).status_code == 200
    assert (await client.get("/api/v1/dashboard/admin", headers=auth_headers(student.id))).status_code == 403
    assert (await client.get("/api/v1/dashboard/organizer", headers=organizer_headers)).status_code == 200

    mine = await client.get("/api/v1/dashboard/student", headers=auth_headers(student.id))
    assert mine.json()["stats"]["total_tickets"] == 0
