"""Error taxonomy and the handlers that render it as ``{"error": ...}`` JSON.

Every application error carries a short, client-safe ``detail`` and an
optional ``reason`` that only ever reaches the server log. Security
failures share one ``detail`` per category while the ``reason`` keeps
them apart for operators.
"""
import logging

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Bad request"

    def __init__(self, detail: str | None = None, reason: str | None = None, headers: dict | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.detail, headers=headers)
        self.reason = reason


# --- malformed input (400) ---

class ValidationError(AppError):
    detail = "Invalid request"


class InvalidCodeFormat(ValidationError):
    detail = "Invalid code format"


# --- authentication failures ---

class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication failed"


class MissingBearerToken(AuthenticationError):
    detail = "No token provided"

    def __init__(self, detail: str | None = None, reason: str | None = None):
        super().__init__(detail, reason, headers={"WWW-Authenticate": "Bearer"})


class InvalidBearerToken(AuthenticationError):
    detail = "Invalid or expired token"

    def __init__(self, detail: str | None = None, reason: str | None = None):
        super().__init__(detail, reason, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(AuthenticationError):
    detail = "Invalid credentials"


class InvalidOrExpiredSession(AuthenticationError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid or expired session"


class InvalidCode(AuthenticationError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid verification code"


# --- authorization / state conflicts ---

class AuthorizationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Operation not permitted"


class AccountDeactivated(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Account is deactivated"


class RegistrationDisabled(AuthorizationError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Registration is disabled"


class InvalidState(AuthorizationError):
    detail = "User not found or 2FA not enabled"


class AlreadyEnabled(AuthorizationError):
    detail = "2FA is already enabled"


class SetupNotStarted(AuthorizationError):
    detail = "Setup not completed"


class NotEnabled(AuthorizationError):
    detail = "2FA is not enabled"


# --- everything else ---

class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Resource already exists"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"


def _error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def app_error_handler(request: Request, exc: AppError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{request.method} {request.url.path} -> {exc.status_code} "
        f"{type(exc).__name__}: {exc.reason or exc.detail}"
    )
    return _error_response(exc.status_code, exc.detail, exc.headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(x) for x in first.get("loc", ()) if x != "body")
        message = f"Invalid request: {field} {first.get('msg', '')}".strip() if field else message
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


def sqlalchemy_exception_handler(debug: bool):
    async def handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Internal server error: {exc}" if debug else "Internal server error",
        )

    return handler


def general_exception_handler(debug: bool):
    async def handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Internal server error: {exc}" if debug else "Internal server error",
        )

    return handler


def register_exception_handlers(app, debug: bool = False) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler(debug))
    app.add_exception_handler(Exception, general_exception_handler(debug))
