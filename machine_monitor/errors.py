"""
Error taxonomy for every access-controlled operation.

Services and the row policy layer raise these; routers never translate them
by hand. `register_exception_handlers` maps each kind to one HTTP status and
the shared ErrorResponse body, so a caller can always tell the five kinds apart
from the `error` field alone.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from machine_monitor.schemas.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


class MonitorError(Exception):
    """Base class — never raised directly."""

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthorizationDenied(MonitorError):
    """Role or scope check failed. Raised before any write is attempted."""

    kind = "authorization_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(MonitorError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id=None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource} not found"
        if resource_id is not None:
            msg = f"{resource} {resource_id} not found"
        super().__init__(msg)


class ConstraintViolation(MonitorError):
    """Uniqueness, foreign-key or catalog rule violated (duplicate code, assignment exists, ...)."""

    kind = "constraint_violation"
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(MonitorError):
    """The compound status write kept losing to concurrent writers."""

    kind = "concurrency_conflict"
    status_code = status.HTTP_409_CONFLICT


class TransientBackendError(MonitorError):
    """Datastore or network failure — safe for the caller to retry."""

    kind = "transient_backend_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def _to_response(exc: MonitorError) -> JSONResponse:
    body = ErrorResponse(error=exc.kind, details=[ErrorDetail(message=exc.message)])
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MonitorError)
    async def _handle_monitor_error(request: Request, exc: MonitorError) -> JSONResponse:
        if isinstance(exc, TransientBackendError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _to_response(exc)
