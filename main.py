"""FindMyEvent API entry point"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
import os
import logging
from contextlib import asynccontextmanager

from app.core.config import settings
from shared.database.connection import init_db, close_db, create_tables
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.exceptions import FindMyEventError, findmyevent_error_handler, database_error_handler
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    logger.info("Starting FindMyEvent API...")
    if settings.DATA_SOURCE == "fixtures":
        # Writes still need somewhere to go
        await init_db(settings.DEMO_DATABASE_URL)
        await create_tables()
    else:
        await init_db()
        if settings.DATABASE_URL.startswith("sqlite"):
            await create_tables()
    await init_redis()
    logger.info(f"FindMyEvent API started (data source: {settings.DATA_SOURCE})")
    yield
    logger.info("Shutting down FindMyEvent API...")
    await close_db()
    await close_redis()
    logger.info("FindMyEvent API stopped")


app = FastAPI(
    title="FindMyEvent API",
    description="Student event discovery, registration, ticketing and QR check-in",
    version="1.0.0",
    lifespan=lifespan
)

# CORS before rate limiting
if settings.APP_ENV == "development":
    logger.info("Development mode: CORS allows every origin")
    allow_origins = ["*"]
    allow_credentials = False  # credentials cannot be combined with "*"
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(FindMyEventError, findmyevent_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)
app.add_exception_handler(OSError, database_error_handler)

from services.ticket_validation.routes.validation import router as tickets_router  # noqa: E402
from services.registration.routes.registrations import router as registrations_router  # noqa: E402
from services.payments.routes.payments import router as payments_router  # noqa: E402
from services.event_management.routes.events import router as events_router  # noqa: E402
from services.organizers.routes.organizers import router as organizers_router  # noqa: E402
from services.notifications.routes.notifications import router as notifications_router  # noqa: E402
from services.dashboard.routes.dashboard import router as dashboard_router  # noqa: E402
from services.volunteers.routes.volunteers import router as volunteers_router  # noqa: E402

app.include_router(tickets_router, prefix="/api/v1/tickets", tags=["tickets"])
app.include_router(registrations_router, prefix="/api/v1/registrations", tags=["registrations"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(events_router, prefix="/api/v1/events", tags=["events"])
app.include_router(organizers_router, prefix="/api/v1/organizers", tags=["organizers"])
app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])
app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["dashboard"])
app.include_router(volunteers_router, prefix="/api/v1/volunteers", tags=["volunteers"])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "findmyevent-api"}


@app.get("/ready")
async def ready():
    """Readiness: database and Redis reachable"""
    from sqlalchemy import text
    from shared.database import connection
    from shared.cache.redis_client import get_redis

    try:
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))

        redis = await get_redis()
        await redis.ping()
    except Exception as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})

    return {"status": "ready", "database": "connected", "redis": "connected"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=settings.APP_DEBUG
    )
