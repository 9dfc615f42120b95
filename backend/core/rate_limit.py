"""Rate limiting middleware for API protection.

Per-user (falling back to per-IP) rate limiting with an in-memory sliding
window. AI workflow generation has its own, much tighter, budget because
every request there may cost several model calls.

Production note: the window lives in process memory, so each instance
enforces its own limit.
"""

import time
import threading
from typing import Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.security import user_id_from_authorization

settings = get_settings()

# Format: { "group_name": (max_requests, window_seconds) }
RATE_LIMITS = {
    "ai_generation": (settings.AI_CHAT_RATE_LIMIT, settings.AI_CHAT_RATE_WINDOW),
    "write": (60, 60),
    "read": (200, 60),
    "default": (120, 60),
}


def _classify_request(method: str, path: str) -> str:
    """Classify a request into a rate limit group."""
    if method == "POST" and (path.endswith("/ai/chat") or path.endswith("/regenerate")):
        return "ai_generation"
    if method in ("POST", "PUT", "PATCH", "DELETE"):
        return "write"
    if method == "GET":
        return "read"
    return "default"


class SlidingWindowCounter:
    """Thread-safe sliding window rate counter.

    Two-bucket approximation: the previous window's count is weighted by
    how much of it still overlaps the sliding window.
    """

    def __init__(self, max_keys: int = 50_000):
        self._lock = threading.Lock()
        # (identifier, group) -> (current_count, prev_count, current_window_start)
        self._windows: dict[Tuple[str, str], Tuple[int, int, float]] = {}
        self._max_keys = max_keys

    def check_and_increment(
        self, key: str, group: str, max_requests: int, window_seconds: int
    ) -> Tuple[bool, int, int, float]:
        """Check if request is allowed and increment counter.

        Returns:
            (allowed, current_count, limit, retry_after_seconds)
        """
        now = time.monotonic()
        bucket_key = (key, group)

        with self._lock:
            entry = self._windows.get(bucket_key)

            if entry is None:
                self._windows[bucket_key] = (1, 0, now)
                self._maybe_cleanup()
                return (True, 1, max_requests, 0)

            current_count, prev_count, window_start = entry
            elapsed = now - window_start

            if elapsed >= window_seconds:
                if elapsed >= window_seconds * 2:
                    self._windows[bucket_key] = (1, 0, now)
                else:
                    self._windows[bucket_key] = (1, current_count, now)
                return (True, 1, max_requests, 0)

            weight = 1 - (elapsed / window_seconds)
            estimated = prev_count * weight + current_count

            if estimated >= max_requests:
                return (False, int(estimated), max_requests, window_seconds - elapsed)

            self._windows[bucket_key] = (current_count + 1, prev_count, window_start)
            return (True, int(estimated) + 1, max_requests, 0)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _maybe_cleanup(self):
        """Evict the oldest 20% of windows once the key bound is exceeded."""
        if len(self._windows) > self._max_keys:
            to_remove = int(self._max_keys * 0.2)
            sorted_keys = sorted(
                self._windows.keys(),
                key=lambda k: self._windows[k][2],
            )
            for k in sorted_keys[:to_remove]:
                del self._windows[k]


_counter = SlidingWindowCounter()


def get_rate_limit_counter() -> SlidingWindowCounter:
    return _counter


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting.

    Adds X-RateLimit-Limit / X-RateLimit-Remaining / X-RateLimit-Reset
    headers, and Retry-After on 429. Health probes are never limited.
    """

    SKIP_PATHS = {"/api/health", "/api/v1/health", "/health"}

    async def dispatch(self, request: Request, call_next):
        path = request.url.path.rstrip("/") or "/"
        if path in self.SKIP_PATHS or path.startswith("/api/v1/health"):
            return await call_next(request)

        identifier = self._get_identifier(request)
        group = _classify_request(request.method, path)
        max_req, window = RATE_LIMITS.get(group, RATE_LIMITS["default"])

        allowed, current, limit, retry_after = _counter.check_and_increment(
            identifier, group, max_req, window
        )

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests",
                    "retry_after": round(retry_after, 1),
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(retry_after)),
                    "Retry-After": str(max(1, int(retry_after))),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - current))
        response.headers["X-RateLimit-Reset"] = str(window)

        return response

    def _get_identifier(self, request: Request) -> str:
        """Authenticated user id when the bearer token verifies, client IP otherwise."""
        user_id = user_id_from_authorization(request.headers.get("Authorization"))
        if user_id:
            return f"user:{user_id}"

        if request.client and request.client.host:
            return f"ip:{request.client.host}"

        return "ip:unknown"
