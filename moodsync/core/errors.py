"""
Custom exception hierarchy for MoodSync.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Only validation problems on explicit user actions and the daily insight
limit ever reach a client.
Sync failures are absorbed by the synced collections and summarization
failures are absorbed by the compression scheduler, journal analysis and
insight generation.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class MoodSyncException(Exception):
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


class ProfileValidationError(MoodSyncException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "PROFILE_INVALID"

    def __init__(self, message: str, field: str):
        super().__init__(message=message, details={"field": field})
        self.field = field


class SessionNotFoundError(MoodSyncException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Journal session {session_id} not found.",
            details={"id": session_id},
        )


class InvalidDeleteTargetError(MoodSyncException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "DELETE_TARGET_REQUIRED"

    def __init__(self):
        super().__init__(message="Provide either an entry id or both date and slot.")


class DailyLimitReachedError(MoodSyncException):
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    code = "DAILY_LIMIT_REACHED"

    def __init__(self, limit: int):
        super().__init__(
            message=f"Daily AI insight limit reached ({limit}/day).",
            details={"limit": limit},
        )


# ---------------------------------------------------------------------------
# Summarization service failures (never surfaced over HTTP)
# ---------------------------------------------------------------------------

class SummarizationError(MoodSyncException):
    code = "SUMMARIZATION_ERROR"


class SummarizationUnavailableError(SummarizationError):
    code = "SUMMARIZATION_UNAVAILABLE"

    def __init__(self, reason: str = "No text-completion service is configured."):
        super().__init__(message=reason)


class SummarizationFailedError(SummarizationError):
    code = "SUMMARIZATION_FAILED"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message=message,
            details={"status_code": status_code} if status_code is not None else {},
        )


class MalformedSummaryError(SummarizationError):
    code = "SUMMARY_MALFORMED"

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(
            message=message,
            details={"raw": raw[:200]} if raw else {},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def moodsync_exception_handler(request: Request, exc: MoodSyncException) -> JSONResponse:
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
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
