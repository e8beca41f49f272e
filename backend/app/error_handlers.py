"""
Error handling for the API

Provides:
- Custom exception classes for the authentication domain
- Exception handlers for FastAPI
- Standardized error responses: {"error", "message", "path"} plus extras
"""
import logging
from datetime import datetime
from typing import Optional, Union
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for API exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR"
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)

    def extra_content(self) -> dict:
        """Additional fields merged into the JSON error body"""
        return {}


class NotFoundError(APIError):
    """Resource not found"""

    def __init__(self, message: str = "Resource not found", resource_type: str = "resource"):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND"
        )
        self.resource_type = resource_type


class ValidationError(APIError):
    """Validation error (weak password, bad OTP, hostile input)"""

    def __init__(self, message: str = "Validation error", details: dict = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR"
        )
        self.details = details or {}

    def extra_content(self) -> dict:
        return {"details": self.details} if self.details else {}


class ConflictError(APIError):
    """Resource already exists"""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT"
        )


class DatabaseError(APIError):
    """Database operation error"""

    def __init__(self, message: str = "Database error occurred"):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="DATABASE_ERROR"
        )


class AuthenticationError(APIError):
    """Authentication failed"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTHENTICATION_ERROR"
        )


class AuthorizationError(APIError):
    """Authorization failed (insufficient permissions or account state)"""

    def __init__(self, message: str = "Insufficient permissions", error_code: str = "AUTHORIZATION_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=error_code
        )


class AccountLockedError(AuthorizationError):
    """Too many failed logins; locked until a fixed time"""

    def __init__(self, locked_until: Optional[datetime] = None):
        message = "Account is temporarily locked due to too many failed login attempts."
        if locked_until:
            message += f" Try again after {locked_until.strftime('%H:%M')} UTC."
        super().__init__(message=message, error_code="ACCOUNT_LOCKED")
        self.locked_until = locked_until

    def extra_content(self) -> dict:
        return {"locked_until": self.locked_until.isoformat()} if self.locked_until else {}


class AccountNotConfirmedError(AuthorizationError):
    """Registration OTP has not been verified yet"""

    def __init__(self, message: str = "Your account is not activated. Check your email or phone for the verification code."):
        super().__init__(message=message, error_code="ACCOUNT_NOT_CONFIRMED")


class AccountInactiveError(AuthorizationError):
    """Account has been deactivated"""

    def __init__(self, message: str = "Account is inactive"):
        super().__init__(message=message, error_code="ACCOUNT_INACTIVE")


class RecoveryFlowError(APIError):
    """Recovery path not available for this account (e.g. Google-only sign-in)"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="RECOVERY_FLOW_ERROR"
        )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API exceptions"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"API error: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path
        }
    )

    content = {
        "error": exc.error_code,
        "message": exc.message,
        "path": request.url.path
    }
    content.update(exc.extra_content())

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def validation_error_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Handle Pydantic validation errors"""
    if isinstance(exc, RequestValidationError):
        # Drop echoed input values; they may hold passwords or codes
        errors = [
            {key: value for key, value in error.items() if key not in ("input", "ctx", "url")}
            for error in exc.errors()
        ]
    else:
        errors = [{"msg": str(exc)}]

    logger.warning(
        f"Validation error: {errors}",
        extra={"path": request.url.path}
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": errors,
            "path": request.url.path
        }
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy database errors"""
    logger.error(
        f"Database error: {type(exc).__name__}",
        extra={"path": request.url.path},
        exc_info=True
    )

    # Determine specific error type
    if isinstance(exc, IntegrityError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "error": "INTEGRITY_ERROR",
                "message": "Database integrity constraint violated",
                "path": request.url.path
            }
        )
    elif isinstance(exc, OperationalError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "DATABASE_UNAVAILABLE",
                "message": "Database is currently unavailable",
                "path": request.url.path
            }
        )
    else:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "DATABASE_ERROR",
                "message": "An unexpected database error occurred",
                "path": request.url.path
            }
        )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"path": request.url.path},
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "path": request.url.path
        }
    )


def register_error_handlers(app):
    """Register all error handlers with the FastAPI app"""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    logger.info("Error handlers registered")
