"""
Custom exception hierarchy for Dreamtrack.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Data-integrity problems (a malformed template, an instance that breaks an
invariant) are NOT exceptions: they are collected as DataIntegrityWarning
records and logged, so one bad record never blocks the rest of a pass.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class DreamTrackException(Exception):
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


class ValidationError(DreamTrackException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class NotFoundError(DreamTrackException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            message=f"{kind} {identifier!r} not found.",
            details={"kind": kind, "id": identifier},
        )


class SkipNotAllowedError(DreamTrackException):
    http_status = status.HTTP_409_CONFLICT
    code = "SKIP_NOT_ALLOWED"

    def __init__(self, instance_id: str):
        super().__init__(
            message=f"Goal {instance_id!r} has no template and cannot be skipped.",
            details={"id": instance_id},
        )


class ConcurrencyConflictError(DreamTrackException):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"

    def __init__(self, container: str, doc_id: str):
        super().__init__(
            message=f"Document {doc_id!r} in {container!r} was modified concurrently.",
            details={"container": container, "id": doc_id},
        )


class StoreUnavailableError(DreamTrackException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "Could not reach the document store."):
        super().__init__(message=message, details={"retryable": True})


# ---------------------------------------------------------------------------
# Non-fatal integrity record
# ---------------------------------------------------------------------------

@dataclass
class DataIntegrityWarning:
    """A record skipped during a pass because it violates an invariant."""
    record_id: str | None
    reason: str

    def to_dict(self) -> dict:
        return {"record_id": self.record_id, "reason": self.reason}


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def dreamtrack_exception_handler(
    request: Request, exc: DreamTrackException
) -> JSONResponse:
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
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
