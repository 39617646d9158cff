"""Domain errors and structured error responses.

Services raise the DomainError subclasses below; the handlers registered here
turn every error (domain, HTTP, validation, unhandled) into the same JSON
envelope.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("trainermatch.errors")


class DomainError(Exception):
    """Base class for errors raised by the engagement services."""

    status_code = status.HTTP_400_BAD_REQUEST
    retry_hint: str | None = None

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidTransition(DomainError):
    """The requested event is not legal for the record's current state."""

    status_code = status.HTTP_409_CONFLICT
    retry_hint = "Refresh the current state and choose an available action."

    def __init__(self, message: str, *, current: str | None = None, attempted: str | None = None, **context):
        super().__init__(message, current=current, attempted=attempted, **context)
        self.current = current
        self.attempted = attempted


class NotFound(DomainError):
    """A referenced engagement, request, assignment or style does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    """A precondition was violated, e.g. an active record already exists."""

    status_code = status.HTTP_409_CONFLICT
    retry_hint = "Another change got there first. Review it before retrying."


class ValidationError(DomainError):
    """Malformed input, e.g. an empty style key or a weight outside 0-100."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


def _envelope(request: Request, status_code: int, detail, **extra) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    content = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "request_id": request_id,
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        extra = {"error_type": type(exc).__name__}
        if exc.retry_hint:
            extra["retry_hint"] = exc.retry_hint
        context = {k: str(v) for k, v in exc.context.items() if v is not None}
        if context:
            extra["context"] = context
        return _envelope(request, exc.status_code, exc.message, **extra)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _envelope(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _envelope(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            errors=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
