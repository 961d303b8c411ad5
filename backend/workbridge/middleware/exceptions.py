"""Onboarding error taxonomy and exception handlers.

Every error the wizard can raise maps to a stable error code and HTTP
status; handlers render them as `{"error": {"code", "message", "details"}}`
and log them with request context.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class WorkBridgeException(Exception):
    """Base exception for WorkBridge application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class AuthRequired(WorkBridgeException):
    """No authenticated user; the wizard cannot start."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_REQUIRED",
        )


class PermissionDeniedError(WorkBridgeException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class ValidationFailed(WorkBridgeException):
    """Step data does not satisfy the step's rules. Nothing was merged."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_FAILED",
            details={"errors": errors} if errors else None,
        )
        self.errors = errors or []


class UploadRejected(WorkBridgeException):
    """A document or photo upload failed a pre-storage check."""

    INVALID_TYPE = "InvalidType"
    TOO_LARGE = "TooLarge"
    RATE_LIMITED = "RateLimited"
    NAME_TOO_LONG = "NameTooLong"
    INVALID_DOCUMENT_TYPE = "InvalidDocumentType"

    _STATUS = {
        INVALID_TYPE: status.HTTP_400_BAD_REQUEST,
        TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
        NAME_TOO_LONG: status.HTTP_400_BAD_REQUEST,
        INVALID_DOCUMENT_TYPE: status.HTTP_400_BAD_REQUEST,
    }

    def __init__(self, reason: str, message: str):
        super().__init__(
            message=message,
            status_code=self._STATUS.get(reason, status.HTTP_400_BAD_REQUEST),
            error_code="UPLOAD_REJECTED",
            details={"reason": reason},
        )
        self.reason = reason


class PersistenceFailed(WorkBridgeException):
    """A database or storage write failed. In-memory wizard state is kept."""

    def __init__(self, message: str = "Failed to save. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="PERSISTENCE_FAILED",
        )


class StorageCleanupFailed(WorkBridgeException):
    """Removing a stored object failed. Logged, never surfaced to the worker."""

    def __init__(self, storage_key: str):
        super().__init__(
            message=f"Failed to remove stored object: {storage_key}",
            error_code="STORAGE_CLEANUP_FAILED",
        )
        self.storage_key = storage_key


class NavigationBlocked(WorkBridgeException):
    def __init__(self, step: int, current_step: int):
        super().__init__(
            message=f"Complete step {current_step} before moving to step {step}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="NAVIGATION_BLOCKED",
            details={"step": step, "current_step": current_step},
        )


class OnboardingLocked(WorkBridgeException):
    def __init__(self, message: str = "Onboarding has been submitted and can no longer be edited"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="ONBOARDING_LOCKED",
        )


class ResourceNotFoundError(WorkBridgeException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
    )


async def workbridge_exception_handler(
    request: Request,
    exc: WorkBridgeException,
) -> JSONResponse:
    """Handle WorkBridge exceptions."""
    logger.warning(
        f"WorkBridge exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    # Log non-4xx errors
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Handle database integrity errors (unique violations, foreign key, etc.)."""
    logger.error(
        f"Database integrity error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    error_msg = str(exc.orig) if hasattr(exc, "orig") else str(exc)

    if "unique" in error_msg.lower():
        message = "A record with this value already exists"
        error_code = "DUPLICATE_RECORD"
    elif "foreign key" in error_msg.lower():
        message = "Referenced record does not exist"
        error_code = "FOREIGN_KEY_VIOLATION"
    else:
        message = "Database constraint violation"
        error_code = "INTEGRITY_ERROR"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, etc.)."""
    logger.error(
        f"Database operational error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Generic message only; internals stay in the log
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(WorkBridgeException, workbridge_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
