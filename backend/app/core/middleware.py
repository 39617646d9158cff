"""Request IDs and the per-request access log line."""

import hashlib
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("trainermatch.access")

REQUEST_ID_HEADER = "X-Request-ID"


def _incoming_request_id(request: Request) -> str | None:
    """A caller-supplied request id, kept only if it is a UUID."""
    raw = request.headers.get(REQUEST_ID_HEADER)
    if not raw:
        return None
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, reusing the caller's when it is well formed."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One key=value line per request. User ids are hashed, roles are not."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000

        state = request.state
        user_id = getattr(state, "user_id", None)
        logger.info(
            "request_id=%s user=%s role=%s ip=%s method=%s path=%s status=%d elapsed_ms=%.1f",
            getattr(state, "request_id", "-"),
            _hash_user_id(user_id) if user_id else "-",
            getattr(state, "user_role", None) or "guest",
            request.client.host if request.client else "-",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


def _hash_user_id(uid: str) -> str:
    """First 12 hex chars of the SHA-256 of a user id."""
    return hashlib.sha256(str(uid).encode()).hexdigest()[:12]
