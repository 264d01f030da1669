"""Error taxonomy shared by the registry, the ledger and the HTTP layer.

Core functions raise the ``AssetTrackerError`` subclasses below; the FastAPI
app turns each of them into the same JSON envelope used for framework errors:
``{"code": ..., "message": ..., "details": ...}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class AssetTrackerError(Exception):
    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(AssetTrackerError):
    """Missing or malformed input."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFound(AssetTrackerError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AssetTrackerError):
    """The requested transition is not allowed from the current state.

    Concurrent losers land here too; callers decide whether to retry.
    """

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class Forbidden(AssetTrackerError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class StorageUnavailable(AssetTrackerError):
    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def domain_exception_handler(request: Request, exc: AssetTrackerError):
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
