"""In-memory rate limiting middleware.

Limits:
  /auth/*                      → 10 requests/minute per IP
  /coach-selection/requests    → 10 requests/hour per session
  /conversations/              → 60 requests/minute per session

Single-instance only; counters live in process memory.
"""

import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings

# (prefix, max_requests, window_seconds)
_IP_RULES: list[tuple[str, int, int]] = [
    ("/auth/", 10, 60),
]

_USER_RULES: list[tuple[str, int, int]] = [
    ("/coach-selection/requests", 10, 3600),
    ("/conversations/", 60, 60),
]


class _SlidingWindow:
    """Sliding-window hit counter keyed by string."""

    def __init__(self) -> None:
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, key: str, max_requests: int, window: int) -> bool:
        now = time.monotonic()
        cutoff = now - window
        self._hits[key] = hits = [t for t in self._hits[key] if t > cutoff]
        if len(hits) >= max_requests:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()


_ip_window = _SlidingWindow()
_user_window = _SlidingWindow()


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.is_production:
            return await call_next(request)

        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        for prefix, max_req, window in _IP_RULES:
            if path.startswith(prefix):
                if not _ip_window.is_allowed(f"ip:{client_ip}:{prefix}", max_req, window):
                    return _rate_limit_response(request, window)

        # Keyed by session token; the user id is not resolved yet at this point.
        token = request.headers.get("X-Session-Token")
        if token and request.method != "GET":
            for prefix, max_req, window in _USER_RULES:
                if path.startswith(prefix):
                    if not _user_window.is_allowed(f"user:{token}:{prefix}", max_req, window):
                        return _rate_limit_response(request, window)

        return await call_next(request)


def _rate_limit_response(request: Request, window: int) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "status_code": 429,
            "detail": "Rate limit exceeded. Please try again later.",
            "request_id": request_id,
        },
        headers={"Retry-After": str(window)},
    )
