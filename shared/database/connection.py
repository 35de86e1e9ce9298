"""Connection to the PostgreSQL database"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
import os
from typing import AsyncGenerator, Optional
import logging
import asyncio

logger = logging.getLogger(__name__)

# Base for SQLAlchemy models
Base = declarative_base()

# Engine and session factory
engine = None
async_session_maker = None


def normalize_database_url(database_url: str) -> str:
    """Strip query parameters and switch to the async driver"""
    # SSL parameters are configured in connect_args
    if "?" in database_url:
        database_url = database_url.split("?")[0]
        logger.info("Removed query parameters from DATABASE_URL (SSL configured in connect_args)")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql+psycopg://"):
        database_url = database_url.replace("postgresql+psycopg://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return database_url


async def init_db(database_url: Optional[str] = None):
    """Initialize the database connection"""
    global engine, async_session_maker

    if engine is not None:
        logger.warning("Database engine already initialized, skipping...")
        return

    if database_url is None:
        from app.core.config import settings
        database_url = os.getenv("DATABASE_URL", settings.DATABASE_URL)

    logger.info(f"Initializing database connection to: {database_url.split('@')[1] if '@' in database_url else database_url}")

    database_url = normalize_database_url(database_url)
    logger.info(f"Using async driver: {database_url.split(':')[0]}")

    is_supabase = "pooler.supabase.com" in database_url or "supabase.com" in database_url
    is_sqlite = database_url.startswith("sqlite")

    connect_args = {}
    if is_supabase:
        logger.info("Detected Supabase connection, configuring search_path and SSL")
        import ssl
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

        connect_args = {
            "ssl": ssl_context,
            "server_settings": {
                "search_path": "public",
                "jit": "off"
            },
            "command_timeout": 60,
            "timeout": 60,
            "statement_cache_size": 100
        }

    if is_sqlite:
        # Local development without Postgres, no pool tuning
        pool_config = {}
    else:
        pool_config = {
            "pool_pre_ping": True,
            "pool_recycle": 180 if is_supabase else 300,
            "pool_timeout": 30,
            "pool_use_lifo": True,
        }
        if is_supabase:
            # Supabase pooler: small and conservative pool
            pool_config.update({
                "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "3")),
                "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "5")),
            })
        else:
            pool_config.update({
                "pool_size": int(os.getenv("DATABASE_POOL_SIZE", "5")),
                "max_overflow": int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            })
        logger.info(f"Pool config: size={pool_config['pool_size']}, overflow={pool_config['max_overflow']}")

    engine = create_async_engine(
        database_url,
        echo=os.getenv("APP_DEBUG", "False").lower() == "true",
        connect_args=connect_args,
        **pool_config
    )

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    logger.info("Database engine initialized successfully")


async def create_tables():
    """Create missing tables (local development and fixtures only)"""
    if engine is None:
        raise RuntimeError("Database not initialized. Please check application startup.")

    # Register every model on Base.metadata
    import shared.database.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields a database session.

    Opening the connection is retried with exponential backoff on DNS and
    socket errors. Errors raised by the request itself are never retried.
    """
    if async_session_maker is None:
        logger.error("Database not initialized! Call init_db() first.")
        raise RuntimeError("Database not initialized. Please check application startup.")

    max_retries = 3
    retry_delay = 0.5
    session = None

    for attempt in range(max_retries):
        session = async_session_maker()
        try:
            await session.connection()
            break
        except OSError as e:
            # socket.gaierror is a subclass of OSError
            await session.close()
            session = None
            if attempt < max_retries - 1:
                delay = retry_delay * (2 ** attempt)
                logger.warning(
                    f"Database connection error (attempt {attempt + 1}/{max_retries}): {type(e).__name__}: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"Database connection failed after {max_retries} attempts: {e}")
                raise

    try:
        yield session
    finally:
        await session.close()


async def close_db():
    """Close database connections"""
    global engine, async_session_maker
    if engine:
        logger.info("Closing database connections...")
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("Database connections closed")
