import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.connection import get_db


async def test_errors_raised_by_the_request_are_not_retried(database):
    sessions = get_db()
    session = await sessions.__anext__()

    with pytest.raises(ConnectionRefusedError):
        await sessions.athrow(ConnectionRefusedError("lost the database mid-request"))

    assert session.in_transaction() is False


async def test_connection_errors_are_retried(database, monkeypatch):
    original = AsyncSession.connection
    attempts = []

    async def flaky_connection(self, *args, **kwargs):
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionRefusedError("database is restarting")
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "connection", flaky_connection)

    sessions = get_db()
    session = await sessions.__anext__()

    assert len(attempts) == 3
    assert isinstance(session, AsyncSession)
    await sessions.aclose()
