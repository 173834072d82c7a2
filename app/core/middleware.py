"""
HTTP middleware: security headers and per-IP rate limiting.
"""
import math
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.logging import get_logger

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds conservative security headers to every JSON response.

    HSTS is only sent when ``hsts`` is enabled (production).
    """

    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["X-DNS-Prefetch-Control"] = "off"
        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response


class FixedWindowLimiter:
    """In-memory fixed-window counter keyed by client.

    Single event loop, so no locking is needed around the counters.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        # {key: (count, reset_time)}
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._last_cleanup = 0.0

    def _cleanup(self, now: float):
        if now - self._last_cleanup < self.window_seconds:
            return
        expired = [k for k, (_, reset) in self._windows.items() if now >= reset]
        for k in expired:
            del self._windows[k]
        self._last_cleanup = now

    def hit(self, key: str) -> Tuple[bool, int, float]:
        """Count one request. Returns (allowed, remaining, seconds_until_reset)."""
        now = self.clock()
        self._cleanup(now)

        count, reset_time = self._windows.get(key, (0, now + self.window_seconds))
        if now >= reset_time:
            count, reset_time = 0, now + self.window_seconds

        allowed = count < self.limit
        if allowed:
            count += 1
        self._windows[key] = (count, reset_time)
        return allowed, max(0, self.limit - count), max(0.0, reset_time - now)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int, window_seconds: int,
                 limiter: Optional[FixedWindowLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or FixedWindowLimiter(limit, window_seconds)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_ip = request.client.host if request.client else "unknown"
        allowed, remaining, reset_in = self.limiter.hit(client_ip)

        if not allowed:
            logger.warning("rate_limited", client=client_ip)
            return JSONResponse(
                {"message": RATE_LIMIT_MESSAGE},
                status_code=429,
                headers={"Retry-After": str(math.ceil(reset_in))},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
