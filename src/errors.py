"""Error taxonomy shared by the orchestrators, reconcilers and HTTP layer.

Each error carries the HTTP status it maps to and a stable machine code.
Handlers raise; a single FastAPI exception handler renders the response.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors surfaced to an HTTP caller."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationFailed(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationFailed(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"


class PermissionDenied(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"


class UpstreamFailure(ServiceError):
    """A payment, identity or messaging provider call failed."""

    status_code = 502
    code = "UPSTREAM_ERROR"


class PersistenceFailure(ServiceError):
    status_code = 500
    code = "PERSISTENCE_ERROR"


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s (%s)",
            request.method,
            request.url.path,
            exc.message,
            exc.__cause__ or exc.code,
        )
    else:
        logger.info("%s %s rejected: %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse({"error": exc.message, "code": exc.code}, status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "invalid request body", "code": ValidationFailed.code},
        status_code=400,
    )


def install_error_handlers(app: FastAPI) -> None:
    """Render ServiceError and request-body validation errors uniformly."""
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
