import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATA_SOURCE", "database")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_secret")
os.environ.setdefault("RESEND_API_KEY", "")

from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional

import httpx
import pytest

from shared.auth.jwt_handler import create_access_token
from shared.cache import redis_client as redis_module
from shared.database import connection
from shared.database.models import (
    Event, EventStatus, Organizer, PassType, Profile, UserRole, VerificationStatus
)
from shared.utils.timeutils import utcnow
from services.registration.tasks import notification_tasks


class FakeRedis:
    """Enough of redis.asyncio.Redis for cache and lock helpers"""

    def __init__(self):
        self.store: Dict[str, str] = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        return True

    async def setex(self, key, expire, value):
        self.store[key] = str(value)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def eval(self, script, numkeys, key, identifier):
        if self.store.get(key) == identifier:
            del self.store[key]
            return 1
        return 0

    async def close(self):
        pass


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_module, "redis_client", fake)
    return fake


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch) -> List[Dict]:
    """Ticket e-mails queued during the test instead of going to Celery"""
    sent: List[Dict] = []

    def enqueue(payload):
        sent.append(payload)
        return "test-task"

    monkeypatch.setattr(notification_tasks, "enqueue_registration_confirmation", enqueue)
    return sent


@pytest.fixture
async def database(tmp_path):
    await connection.init_db(f"sqlite:///{tmp_path / 'findmyevent-test.db'}")
    await connection.create_tables()
    yield
    await connection.close_db()


@pytest.fixture
def session_factory(database):
    return connection.async_session_maker


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(database):
    from main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


def auth_headers(user_id, role: str = UserRole.STUDENT, **claims) -> Dict[str, str]:
    token = create_access_token({"sub": str(user_id), "role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


class Factory:
    """Committed rows for tests"""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def profile(
        self,
        role: str = UserRole.STUDENT,
        full_name: str = "Asha Rao",
        email: Optional[str] = None
    ) -> Profile:
        n = self._next()
        profile = Profile(
            email=email or f"user{n}@college.edu",
            full_name=full_name,
            role=role,
            college="RV College of Engineering",
        )
        self.db.add(profile)
        await self.db.commit()
        return profile

    async def organizer(
        self,
        profile: Optional[Profile] = None,
        status: str = VerificationStatus.APPROVED
    ) -> Organizer:
        if profile is None:
            profile = await self.profile(role=UserRole.ORGANIZER, full_name="Coding Club Lead")
        organizer = Organizer(
            user_id=profile.id,
            organization_name=f"Coding Club {self._next()}",
            organization_type="club",
            upi_id="codingclub@upi",
            verification_status=status,
        )
        self.db.add(organizer)
        await self.db.commit()
        return organizer

    async def event(self, organizer: Optional[Organizer] = None, **overrides) -> Event:
        if organizer is None:
            organizer = await self.organizer()
        start = utcnow() + timedelta(days=7)
        values = {
            "title": f"Tech Talk {self._next()}",
            "description": "An evening of lightning talks",
            "event_type": "seminar",
            "venue": "Main Auditorium",
            "city": "Bangalore",
            "start_date": start,
            "end_date": start + timedelta(hours=3),
            "event_status": EventStatus.PUBLISHED,
            "current_participants": 0,
        }
        values.update(overrides)
        event = Event(organizer_id=organizer.id, **values)
        self.db.add(event)
        await self.db.commit()
        return event

    async def pass_type(
        self,
        event: Event,
        price="0",
        quantity: Optional[int] = None,
        name: str = "General",
        **overrides
    ) -> PassType:
        pass_type = PassType(
            event_id=event.id,
            name=name,
            price=Decimal(str(price)),
            quantity=quantity,
            sold=0,
            is_active=True,
            **overrides
        )
        self.db.add(pass_type)
        await self.db.commit()
        return pass_type


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)
