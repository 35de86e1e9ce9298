"""In-memory demo data source (DATA_SOURCE=fixtures)"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import copy

from shared.datasource.base import DataSource

DEMO_USER_IDS = {
    "admin": "00000000-0000-4000-8000-000000000001",
    "organizer": "00000000-0000-4000-8000-000000000002",
    "student": "00000000-0000-4000-8000-000000000003",
}

DEMO_ORGANIZER_ID = "00000000-0000-4000-8000-000000000010"
DEMO_EVENT_IDS = (
    "00000000-0000-4000-8000-000000000101",
    "00000000-0000-4000-8000-000000000102",
)


def _build_events(now: datetime) -> List[Dict]:
    def pass_type(suffix: str, event_id: str, name: str, price: float, quantity: int, sold: int) -> Dict:
        return {
            "id": f"00000000-0000-4000-8000-0000000002{suffix}",
            "event_id": event_id,
            "name": name,
            "description": None,
            "price": price,
            "quantity": quantity,
            "sold": sold,
            "is_active": True,
            "sale_start": None,
            "sale_end": None,
        }

    workshop, hackathon = DEMO_EVENT_IDS
    base = {
        "organizer_id": DEMO_ORGANIZER_ID,
        "banner_url": None,
        "address": None,
        "state": "Karnataka",
        "registration_deadline": None,
        "event_status": "published",
        "is_featured": True,
        "requirements": None,
        "prizes": None,
        "contact_info": None,
        "created_at": now,
        "updated_at": now,
    }
    return [
        {
            **base,
            "id": workshop,
            "title": "AI/ML Workshop",
            "description": "Comprehensive workshop on Artificial Intelligence and Machine Learning fundamentals.",
            "event_type": "workshop",
            "venue": "IIT Bangalore Campus, Lecture Hall 1",
            "city": "Bangalore",
            "start_date": now + timedelta(days=7),
            "end_date": now + timedelta(days=7, hours=4),
            "max_participants": 200,
            "current_participants": 145,
            "is_team_event": False,
            "max_team_size": None,
            "tags": ["AI", "ML", "Workshop", "Tech"],
            "ticket_types": [pass_type("01", workshop, "General", 0.0, 200, 145)],
        },
        {
            **base,
            "id": hackathon,
            "title": "HackFest",
            "description": "48-hour hackathon focused on solving real-world problems with technology.",
            "event_type": "hackathon",
            "venue": "Tech Hub Auditorium",
            "city": "Bangalore",
            "start_date": now + timedelta(days=14),
            "end_date": now + timedelta(days=16),
            "max_participants": 500,
            "current_participants": 287,
            "is_team_event": True,
            "max_team_size": 4,
            "tags": ["Hackathon", "Coding", "Innovation"],
            "ticket_types": [pass_type("02", hackathon, "Team pass", 499.0, 125, 72)],
        },
    ]


class FixtureDataSource(DataSource):
    """Fixed demo catalog for the three demo users"""

    name = "fixtures"

    def __init__(self, now: Optional[datetime] = None):
        now = now or datetime.now(timezone.utc)
        self._events = _build_events(now)
        student = DEMO_USER_IDS["student"]
        workshop = self._events[0]
        self._tickets = {
            student: [{
                "id": "00000000-0000-4000-8000-000000000301",
                "ticket_token": "FME-DEMO-001",
                "event_id": workshop["id"],
                "user_id": student,
                "registration_id": "00000000-0000-4000-8000-000000000401",
                "pass_type_id": workshop["ticket_types"][0]["id"],
                "status": "active",
                "scanned_at": None,
                "scanned_by": None,
                "created_at": now,
                "qr_data": None,
                "team_name": None,
                "event": {
                    key: workshop[key]
                    for key in ("id", "title", "venue", "city", "start_date", "end_date", "event_status", "banner_url")
                },
            }],
        }
        self._notifications = {
            DEMO_USER_IDS["admin"]: [self._notification(
                "501", DEMO_USER_IDS["admin"], "admin_welcome", "Welcome to the admin dashboard",
                "You are signed in as the demo admin.", now
            )],
            DEMO_USER_IDS["organizer"]: [self._notification(
                "502", DEMO_USER_IDS["organizer"], "organizer_welcome", "Welcome to the organizer dashboard",
                "Start creating events and connect with students across India.", now
            )],
            student: [self._notification(
                "503", student, "event_reminder", "Event reminder: AI/ML Workshop",
                "Your registered event 'AI/ML Workshop' starts in 7 days!", now,
                data={"event_id": workshop["id"]}
            )],
        }

    @staticmethod
    def _notification(suffix, user_id, type, title, message, now, data=None) -> Dict:
        return {
            "id": f"00000000-0000-4000-8000-000000000{suffix}",
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "data": data or {},
            "is_read": False,
            "sent_via": ["in_app"],
            "created_at": now,
        }

    async def fetch_events(
        self,
        query: Optional[str] = None,
        city: Optional[str] = None,
        event_type: Optional[str] = None,
        is_team_event: Optional[bool] = None,
        sort_by: str = "date",
        sort_order: str = "asc",
        page: int = 1,
        limit: int = 12,
        **_ignored
    ) -> Dict:
        events = [e for e in self._events if e["event_status"] == "published"]
        if query:
            needle = query.strip().lower()
            events = [
                e for e in events
                if needle in e["title"].lower() or needle in (e["description"] or "").lower()
            ]
        if city:
            events = [e for e in events if city.strip().lower() in e["city"].lower()]
        if event_type:
            events = [e for e in events if e["event_type"] == event_type]
        if is_team_event is not None:
            events = [e for e in events if e["is_team_event"] == is_team_event]

        if sort_by == "price":
            key = lambda e: min((pt["price"] for pt in e["ticket_types"]), default=0)  # noqa: E731
        elif sort_by == "popularity":
            key = lambda e: e["current_participants"]  # noqa: E731
        else:
            key = lambda e: e["start_date"]  # noqa: E731
        events.sort(key=key, reverse=sort_order == "desc")

        total = len(events)
        start = (page - 1) * limit
        return {
            "data": copy.deepcopy(events[start:start + limit]),
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }

    async def fetch_event(self, event_id: str) -> Optional[Dict]:
        for event in self._events:
            if event["id"] == str(event_id):
                return copy.deepcopy(event)
        return None

    async def fetch_user_tickets(self, user_id: str) -> List[Dict]:
        return copy.deepcopy(self._tickets.get(str(user_id), []))

    async def fetch_notifications(self, user_id: str) -> List[Dict]:
        return copy.deepcopy(self._notifications.get(str(user_id), []))

    async def fetch_organizer_events(self, user_id: str) -> List[Dict]:
        if str(user_id) != DEMO_USER_IDS["organizer"]:
            return []
        return copy.deepcopy(self._events)
