"""
Custom exception hierarchy for the activity ledger.

Rule: every error has a machine-readable `code` string so the chat front-end
can branch on it without parsing English messages. Three families matter to
callers:

  NotFoundError / ConflictError / ValidationError
      application errors; never retried, surfaced as-is.
  TransientStoreError
      the store was unreachable or the transaction lost a serialization race
      on every attempt; "try again later".
  FatalStoreError
      schema mismatch or driver failure; needs an operator.
"""
from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from app.schemas.common import FieldError


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class LedgerException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(LedgerException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} is not registered.",
            details={"user_id": user_id},
        )


class ActivityNotFoundError(NotFoundError):
    code = "ACTIVITY_NOT_FOUND"

    def __init__(self, user_id: int, name: str):
        super().__init__(
            message=f"Activity {name!r} not found for user {user_id}.",
            details={"user_id": user_id, "activity": name},
        )


class MissingReferenceError(NotFoundError):
    """A write pointed at a row that was deleted under it (foreign-key violation)."""
    code = "REFERENCE_NOT_FOUND"

    def __init__(self, operation: str, cause: str):
        super().__init__(
            message=f"A referenced record disappeared during {operation}.",
            details={"operation": operation, "cause": cause},
        )


class ConflictError(LedgerException):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ActivityAlreadyExistsError(ConflictError):
    code = "ACTIVITY_EXISTS"

    def __init__(self, user_id: int, name: str):
        super().__init__(
            message=f"Activity {name!r} already exists for user {user_id}.",
            details={"user_id": user_id, "activity": name},
        )


class ValidationError(LedgerException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_INPUT"


class InvalidRotationHourError(ValidationError):
    code = "INVALID_ROTATION_HOUR"

    def __init__(self, hour: Any):
        super().__init__(
            message=f"Rotation hour must be an integer within 0..23. Received {hour!r}.",
            details={"hour": hour},
        )


class InvalidActivityNameError(ValidationError):
    code = "INVALID_ACTIVITY_NAME"

    def __init__(self, name: Any, reason: str):
        super().__init__(
            message=f"Invalid activity name: {reason}.",
            details={"activity": name},
        )


class InvalidUserError(ValidationError):
    code = "INVALID_USER"

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(message=f"Invalid user data: {reason}.", details=details)


class TransientStoreError(LedgerException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, attempts: int, cause: str | None = None):
        details: dict[str, Any] = {"operation": operation, "attempts": attempts}
        if cause:
            details["cause"] = cause
        super().__init__(
            message=f"Storage temporarily unavailable during {operation}. Try again later.",
            details=details,
        )


class DeadlineExceededError(TransientStoreError):
    http_status = status.HTTP_504_GATEWAY_TIMEOUT
    code = "DEADLINE_EXCEEDED"

    def __init__(self, operation: str, attempts: int):
        LedgerException.__init__(
            self,
            message=f"Deadline exceeded during {operation} after {attempts} attempt(s).",
            details={"operation": operation, "attempts": attempts},
        )


class FatalStoreError(LedgerException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "STORE_FATAL"

    def __init__(self, operation: str, cause: str):
        super().__init__(
            message=f"Unrecoverable storage error during {operation}.",
            details={"operation": operation, "cause": cause},
        )


class TriggerForbiddenError(LedgerException):
    http_status = status.HTTP_403_FORBIDDEN
    code = "TRIGGER_FORBIDDEN"

    def __init__(self):
        super().__init__(message="Missing or invalid X-Trigger-Token header.")


class ConfigurationError(LedgerException):
    code = "CONFIGURATION_ERROR"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            message="Invalid configuration: " + "; ".join(problems),
            details={"problems": problems},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def ledger_exception_handler(request: Request, exc: LedgerException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = [
        FieldError(
            field=".".join(str(loc) for loc in error["loc"] if loc != "body"),
            message=error["msg"],
            type=error["type"],
        ).model_dump()
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
