import pytest

from app.core.config import settings
from shared.datasource.fixtures import DEMO_EVENT_IDS, DEMO_USER_IDS, FixtureDataSource

from conftest import auth_headers


async def test_fixture_catalog_filters_and_paginates():
    source = FixtureDataSource()

    everything = await source.fetch_events()
    teams = await source.fetch_events(is_team_event=True)
    by_price = await source.fetch_events(sort_by="price", sort_order="desc")
    first_page = await source.fetch_events(limit=1)

    assert [e["id"] for e in everything["data"]] == list(DEMO_EVENT_IDS)
    assert [e["title"] for e in teams["data"]] == ["HackFest"]
    assert by_price["data"][0]["ticket_types"][0]["price"] == 499.0
    assert first_page["total"] == 2
    assert first_page["has_more"] is True
    assert (await source.fetch_events(query="nothing like this"))["total"] == 0


async def test_fixture_records_are_copies():
    source = FixtureDataSource()

    event = await source.fetch_event(DEMO_EVENT_IDS[0])
    event["title"] = "changed"

    assert (await source.fetch_event(DEMO_EVENT_IDS[0]))["title"] == "AI/ML Workshop"
    assert await source.fetch_event("00000000-0000-0000-0000-000000000000") is None


async def test_fixture_data_per_demo_user():
    source = FixtureDataSource()

    assert len(await source.fetch_user_tickets(DEMO_USER_IDS["student"])) == 1
    assert await source.fetch_user_tickets(DEMO_USER_IDS["admin"]) == []
    assert len(await source.fetch_organizer_events(DEMO_USER_IDS["organizer"])) == 2
    assert await source.fetch_organizer_events(DEMO_USER_IDS["student"]) == []
    for user_id in DEMO_USER_IDS.values():
        assert len(await source.fetch_notifications(user_id)) == 1


@pytest.fixture
def fixtures_mode(monkeypatch):
    monkeypatch.setattr(settings, "DATA_SOURCE", "fixtures")


async def test_routes_serve_fixtures(client, fixtures_mode):
    student = DEMO_USER_IDS["student"]

    events = await client.get("/api/v1/events")
    detail = await client.get(f"/api/v1/events/{DEMO_EVENT_IDS[1]}")
    tickets = await client.get(f"/api/v1/tickets/user/{student}", headers=auth_headers(student))
    notifications = await client.get("/api/v1/notifications", headers=auth_headers(student))

    assert events.status_code == 200
    assert events.json()["total"] == 2
    assert detail.json()["max_team_size"] == 4
    assert [t["event_id"] for t in tickets.json()] == [DEMO_EVENT_IDS[0]]
    assert notifications.json()[0]["type"] == "event_reminder"


async def test_database_source_is_the_default(client, factory):
    event = await factory.event(title="Only in the database")

    events = await client.get("/api/v1/events")

    assert [e["title"] for e in events.json()["data"]] == [event.title]


async def test_database_source_closes_its_session_when_the_request_fails(database, monkeypatch):
    from sqlalchemy.ext.asyncio import AsyncSession

    from shared.datasource.provider import get_data_source

    original = AsyncSession.close
    closed = []

    async def recording_close(self):
        closed.append(self)
        await original(self)

    monkeypatch.setattr(AsyncSession, "close", recording_close)

    sources = get_data_source()
    source = await sources.__anext__()

    with pytest.raises(LookupError):
        await sources.athrow(LookupError("handler failed"))

    assert closed == [source.db]
