"""Selection of the data source from settings"""
from typing import AsyncGenerator
import logging

from app.core.config import settings
from shared.datasource.base import DataSource
from shared.datasource.fixtures import FixtureDataSource

logger = logging.getLogger(__name__)

DATA_SOURCES = ("database", "fixtures")


async def get_data_source() -> AsyncGenerator[DataSource, None]:
    """FastAPI dependency yielding the configured data source"""
    if settings.DATA_SOURCE == "fixtures":
        yield FixtureDataSource()
        return
    if settings.DATA_SOURCE not in DATA_SOURCES:
        logger.warning(f"Unknown DATA_SOURCE {settings.DATA_SOURCE!r}, using the database")

    from shared.database import connection
    from shared.datasource.database import DatabaseDataSource

    if connection.async_session_maker is None:
        raise RuntimeError("Database not initialized. Please check application startup.")

    async with connection.async_session_maker() as db:
        yield DatabaseDataSource(db)
