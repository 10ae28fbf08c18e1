"""
Exception hierarchy for the habit-log service.

Rule: every error has a machine-readable `code` string so clients can
branch on it without parsing English messages. Errors raised by the data
gateway keep the backend's own code (PostgREST / Postgres style) so the
classification below can map them to a user-facing kind.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class HabitLogException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class GatewayError(HabitLogException):
    """Transport or backend failure reported by the data gateway."""
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        backend_code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            details={"backend_code": backend_code} if backend_code else {},
            cause=cause,
        )
        self.backend_code = backend_code


# Backend codes the classifier understands.
AUTH_FAILED = "PGRST301"
NOT_FOUND = "PGRST116"
NETWORK_FAILED = "ERR_NETWORK"
UNIQUE_VIOLATION = "23505"
RAISED_BY_PROCEDURE = "P0001"
MALFORMED_ROW = "MALFORMED_ROW"


class ErrorKind(str, enum.Enum):
    network = "network"
    authentication = "authentication"
    validation = "validation"
    conflict = "conflict"
    not_found = "not_found"
    server = "server"
    unknown = "unknown"


_KIND_BY_CODE: dict[str, tuple[ErrorKind, str]] = {
    NETWORK_FAILED: (ErrorKind.network, "Check your network connection."),
    AUTH_FAILED: (ErrorKind.authentication, "Authentication failed. Please sign in again."),
    NOT_FOUND: (ErrorKind.not_found, "The requested record does not exist."),
    MALFORMED_ROW: (ErrorKind.server, "The server returned malformed data."),
    UNIQUE_VIOLATION: (ErrorKind.conflict, "A log for this day already exists."),
}


def classify(exc: Optional[BaseException]) -> tuple[ErrorKind, str]:
    """Map an underlying error to (kind, human-readable message)."""
    if exc is None:
        return ErrorKind.unknown, "An unknown error occurred."
    if isinstance(exc, GatewayError):
        if exc.backend_code in _KIND_BY_CODE:
            return _KIND_BY_CODE[exc.backend_code]
        if exc.backend_code == RAISED_BY_PROCEDURE:
            # Procedures raise user-facing messages.
            return ErrorKind.server, exc.message
        if exc.backend_code:
            return ErrorKind.server, "A server error occurred."
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorKind.network, "Check your network connection."
    return ErrorKind.unknown, "An unexpected error occurred."


class CoreError(HabitLogException):
    """Failure of one of the habit-view operations; scoped, never fatal."""
    kind: ErrorKind = ErrorKind.unknown

    @classmethod
    def from_gateway(cls, exc: BaseException):
        kind, message = classify(exc)
        err = cls(message=message, details={"kind": kind.value}, cause=exc)
        err.kind = kind
        return err


class FetchError(CoreError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "HABIT_LOG_FETCH_FAILED"


class UpdateError(CoreError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "HABIT_LOG_UPDATE_FAILED"


class SubscriptionError(CoreError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "SUBSCRIPTION_FAILED"


class RecomputeError(CoreError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "STATISTICS_RECOMPUTE_FAILED"


class HabitNotFoundError(HabitLogException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "HABIT_NOT_FOUND"

    def __init__(self, habit_id: str):
        super().__init__(
            message=f"Habit {habit_id} does not exist.",
            details={"habit_id": habit_id},
        )


class TemplateNotFoundError(HabitLogException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        super().__init__(
            message=f"Habit template {template_id} does not exist.",
            details={"template_id": template_id},
        )


class InvalidLogUpdateError(HabitLogException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_LOG_UPDATE"


class MissingIdentityError(HabitLogException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "MISSING_IDENTITY"

    def __init__(self):
        super().__init__(message="X-User-Id header is required.")


class JobUnauthorizedError(HabitLogException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "JOB_UNAUTHORIZED"

    def __init__(self):
        super().__init__(message="A valid X-Job-Token header is required.")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def habitlog_exception_handler(request: Request, exc: HabitLogException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
