"""Read interface shared by the catalog, ticket and notification views"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class DataSource(ABC):
    """
    Read side of the API.

    The database implementation serves production; the fixture
    implementation serves demos and front-end development without a
    database. Writes always go through the services.
    """

    name = "base"

    @abstractmethod
    async def fetch_events(self, **filters) -> Dict:
        """Paginated published events: {data, total, page, limit, has_more}"""

    @abstractmethod
    async def fetch_event(self, event_id: str) -> Optional[Dict]:
        ...

    @abstractmethod
    async def fetch_user_tickets(self, user_id: str) -> List[Dict]:
        ...

    @abstractmethod
    async def fetch_notifications(self, user_id: str) -> List[Dict]:
        ...

    @abstractmethod
    async def fetch_organizer_events(self, user_id: str) -> List[Dict]:
        ...
