"""
Rate limiting with slowapi + Redis
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import hashlib
import os
import logging

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


def get_real_client_ip(request: Request) -> str:
    """
    Real client IP behind proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # client, proxy1, proxy2: the first one is the client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """
    Rate limit key: IP plus a hash of the bearer token when present, so
    several scanner devices behind one venue NAT get separate buckets.
    """
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token_hash = hashlib.md5(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=REDIS_URL,
    strategy="fixed-window",
    headers_enabled=False,  # incompatible with FastAPI response_model
    enabled=RATE_LIMIT_ENABLED,
    swallow_errors=True,  # a Redis outage must not block scans
)
logger.info(f"Rate limiter initialized with Redis: {REDIS_URL.split('@')[-1] if '@' in REDIS_URL else REDIS_URL} (enabled={RATE_LIMIT_ENABLED})")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    JSON response for exceeded rate limits.
    """
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"

    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}, "
        f"Retry-After: {retry_after}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Too many requests. Please wait before trying again.",
            "retry_after_seconds": int(retry_after) if retry_after.isdigit() else 60,
        },
        headers={
            "Retry-After": str(retry_after),
        }
    )


RATE_LIMITS = {
    # Registrations and payments: strict
    "purchase": "10/minute",
    # Payment gateway webhooks
    "webhook": "100/minute",
    # Scanners checking tickets in at the gate
    "validation": "120/minute",
    # Public catalog
    "public": "60/minute",
}
