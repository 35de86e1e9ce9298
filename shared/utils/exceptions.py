"""Domain errors raised by the services and translated by the routes"""
from fastapi import Request, status
from starlette.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class FindMyEventError(ValueError):
    """Base error for business rule violations"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RegistrationValidationError(FindMyEventError):
    """Malformed registration data or a broken team invariant"""
    error_code = "validation_error"


class CapacityError(FindMyEventError):
    """Pass type sold out or event full"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "capacity_error"


class NotFoundError(FindMyEventError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class ConflictError(FindMyEventError):
    """State transition not allowed from the current state"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"


class PaymentVerificationError(FindMyEventError):
    """Signature mismatch; the payment flow must be restarted"""
    error_code = "payment_verification_failed"


class PermissionDeniedError(FindMyEventError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "permission_denied"


def findmyevent_error_handler(request: Request, exc: FindMyEventError) -> JSONResponse:
    """Map domain errors that reach the app boundary to JSON responses"""
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "detail": exc.message},
    )


def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Database and network outages outside the scan path answer 503"""
    logger.error(f"Database error on {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "service_unavailable", "detail": "Service temporarily unavailable, please retry"},
    )
