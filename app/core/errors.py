"""Error classification and the shared API error envelope.

Every exception that escapes a route is reduced to one of a closed set of
failure variants, then classified into a status code, a caller-facing
message and optional field errors. The resulting envelope is the only error
shape the API produces, apart from the legacy user lookup 404.
"""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
import logging
import traceback
from typing import Any
from typing import Union

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import jwt
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.config import AppSettings
from app.core.middleware import original_url
from app.db.errors import StorageErrorCode
from app.db.errors import StorageFailure
from app.db.errors import translate_storage_error
from app.schemas.error import ErrorResponse
from app.schemas.error import FieldError

logger = logging.getLogger(__name__)

VALIDATION_FAILED_MESSAGE = "Validation failed"
INTERNAL_ERROR_MESSAGE = "Internal Server Error"


class AppError(Exception):
    """Base application exception for intended, caller-facing failures."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        *,
        is_operational: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational


class NotFoundError(AppError):
    """Convenience exception for missing resources."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


@dataclass(frozen=True)
class DomainFailure:
    status_code: int
    message: str
    is_operational: bool = True


@dataclass(frozen=True)
class ValidationFailure:
    issues: tuple[FieldError, ...]


@dataclass(frozen=True)
class AuthTokenFailure:
    expired: bool


@dataclass(frozen=True)
class MalformedBodyFailure:
    pass


@dataclass(frozen=True)
class UnclassifiedFailure:
    pass


RaisedError = Union[
    DomainFailure,
    ValidationFailure,
    StorageFailure,
    AuthTokenFailure,
    MalformedBodyFailure,
    UnclassifiedFailure,
]


@dataclass(frozen=True)
class ClassifiedError:
    """Outcome of classifying one failed request."""

    status_code: int
    message: str
    field_errors: tuple[FieldError, ...] = ()
    is_operational: bool = True
    should_log_verbose: bool = False


def _field_errors(issues: Iterable[Mapping[str, Any]]) -> tuple[FieldError, ...]:
    return tuple(
        FieldError(
            field=".".join(str(part) for part in issue.get("loc", ())),
            message=str(issue.get("msg", "Invalid value")),
        )
        for issue in issues
    )


def describe_error(exc: BaseException) -> RaisedError:
    """Reduce an exception to exactly one failure variant."""

    if isinstance(exc, AppError):
        return DomainFailure(exc.status_code, exc.message, exc.is_operational)

    if isinstance(exc, StarletteHTTPException):
        return DomainFailure(exc.status_code, str(exc.detail))

    if isinstance(exc, RequestValidationError):
        issues = exc.errors()
        if any(issue.get("type") == "json_invalid" for issue in issues):
            return MalformedBodyFailure()
        return ValidationFailure(_field_errors(issues))

    if isinstance(exc, ValidationError):
        return ValidationFailure(_field_errors(exc.errors()))

    if isinstance(exc, SQLAlchemyError):
        return translate_storage_error(exc)

    # ExpiredSignatureError subclasses InvalidTokenError.
    if isinstance(exc, jwt.ExpiredSignatureError):
        return AuthTokenFailure(expired=True)
    if isinstance(exc, jwt.InvalidTokenError):
        return AuthTokenFailure(expired=False)

    return UnclassifiedFailure()


_STORAGE_OUTCOMES: dict[StorageErrorCode, tuple[int, str]] = {
    StorageErrorCode.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Record not found"),
    StorageErrorCode.FOREIGN_KEY_VIOLATION: (status.HTTP_400_BAD_REQUEST, "Invalid reference to related record"),
    StorageErrorCode.INVALID_RELATION: (status.HTTP_400_BAD_REQUEST, "Invalid relation in query"),
    StorageErrorCode.INVALID_DATA: (status.HTTP_400_BAD_REQUEST, "Invalid data provided"),
    StorageErrorCode.CONNECTION_FAILED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Database connection failed"),
}


def _storage_outcome(failure: StorageFailure) -> tuple[int, str]:
    if failure.code is StorageErrorCode.UNIQUE_VIOLATION:
        return status.HTTP_409_CONFLICT, f"Duplicate value for {', '.join(failure.target)}"
    if failure.code in _STORAGE_OUTCOMES:
        return _STORAGE_OUTCOMES[failure.code]
    return status.HTTP_400_BAD_REQUEST, failure.message or "Database operation failed"


def _resolve(failure: RaisedError) -> ClassifiedError:
    match failure:
        case DomainFailure(status_code=status_code, message=message, is_operational=is_operational):
            return ClassifiedError(status_code, message, is_operational=is_operational)
        case ValidationFailure(issues=issues):
            return ClassifiedError(status.HTTP_400_BAD_REQUEST, VALIDATION_FAILED_MESSAGE, field_errors=issues)
        case StorageFailure(code=StorageErrorCode.UNRECOGNIZED):
            return ClassifiedError(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE, is_operational=False)
        case StorageFailure():
            status_code, message = _storage_outcome(failure)
            return ClassifiedError(status_code, message)
        case AuthTokenFailure(expired=False):
            return ClassifiedError(status.HTTP_401_UNAUTHORIZED, "Invalid token")
        case AuthTokenFailure(expired=True):
            return ClassifiedError(status.HTTP_401_UNAUTHORIZED, "Token expired")
        case MalformedBodyFailure():
            return ClassifiedError(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")
        case _:
            return ClassifiedError(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE, is_operational=False)


def classify_error(exc: BaseException, settings: AppSettings) -> ClassifiedError:
    """Classify an exception and decide whether it must be logged."""

    resolved = _resolve(describe_error(exc))
    return ClassifiedError(
        status_code=resolved.status_code,
        message=resolved.message,
        field_errors=resolved.field_errors,
        is_operational=resolved.is_operational,
        should_log_verbose=settings.is_development or not resolved.is_operational,
    )


def format_stack(exc: BaseException) -> str:
    """Return the formatted traceback text for an exception."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def build_error_payload(exc: BaseException, classified: ClassifiedError, settings: AppSettings) -> dict[str, Any]:
    """Render the JSON body of the shared error envelope."""
    payload = ErrorResponse(
        status_code=classified.status_code,
        message=classified.message,
        errors=list(classified.field_errors) or None,
        stack=format_stack(exc) if settings.is_development else None,
    )
    return payload.model_dump(by_alias=True, exclude_none=True)


def _log_failure(exc: BaseException, classified: ClassifiedError, request: Request) -> None:
    field_errors = ""
    if classified.field_errors:
        field_errors = " validation_errors=%s" % [item.model_dump() for item in classified.field_errors]
    logger.error(
        "Error: %s | status=%s path=%s method=%s%s",
        exc,
        classified.status_code,
        request.url.path,
        request.method,
        field_errors,
        exc_info=(type(exc), exc, exc.__traceback__),
    )


def classify_and_respond(exc: BaseException, request: Request, settings: AppSettings) -> JSONResponse:
    """Classify an exception, log it when required, and build the response."""

    classified = classify_error(exc, settings)
    if classified.should_log_verbose:
        _log_failure(exc, classified, request)
    return JSONResponse(
        status_code=classified.status_code,
        content=build_error_payload(exc, classified, settings),
    )


def route_not_found_error(request: Request) -> AppError:
    """Build the 404 domain error for a request that matched no route."""
    return AppError(f"Route {original_url(request)} not found", status.HTTP_404_NOT_FOUND)


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Render exceptions no registered handler claimed inside the middleware stack.

    Sits innermost so access logging, CORS and security headers still apply
    to the response, and the exception is not re-raised to the server.
    """

    def __init__(self, app: ASGIApp, *, settings: AppSettings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return classify_and_respond(exc, request, self._settings)


_HANDLED_EXCEPTIONS = (
    AppError,
    StarletteHTTPException,
    RequestValidationError,
    ValidationError,
    SQLAlchemyError,
    jwt.InvalidTokenError,
)


def register_error_handlers(app: FastAPI, settings: AppSettings) -> None:
    """Attach the shared error handlers to a FastAPI app instance.

    Call before adding other middleware so the fallback for unclassified
    errors ends up innermost.
    """

    async def error_handler(request: Request, exc: Exception) -> JSONResponse:
        return classify_and_respond(exc, request, settings)

    async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Only the router raises a 404 before an endpoint is resolved.
        if "endpoint" not in request.scope:
            return classify_and_respond(route_not_found_error(request), request, settings)
        return classify_and_respond(exc, request, settings)

    app.add_exception_handler(status.HTTP_404_NOT_FOUND, not_found_handler)
    for exc_type in _HANDLED_EXCEPTIONS:
        app.add_exception_handler(exc_type, error_handler)
    app.add_middleware(UnhandledErrorMiddleware, settings=settings)
