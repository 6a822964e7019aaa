"""Domain exceptions and their HTTP mapping.

Services raise these; the handlers registered in ``cashdesk.main`` turn
them into JSON error responses of the form ``{"detail": "..."}``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cashdesk.core.config import settings

logger = logging.getLogger(__name__)


class CashDeskError(Exception):
    """Base class for errors that carry an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CashDeskError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(CashDeskError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(CashDeskError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(CashDeskError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(CashDeskError):
    status_code = status.HTTP_409_CONFLICT


async def cashdesk_error_handler(request: Request, exc: CashDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"detail": "Internal server error"}
    if settings.debug:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CashDeskError, cashdesk_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
