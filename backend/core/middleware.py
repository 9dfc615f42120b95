"""FastAPI middleware for request tracking, timing, and error handling.

Adds:
- X-Request-ID header (generated if not provided)
- X-Process-Time header (request duration)
- Structured logging per request
- Exception handlers for the MarketplaceException hierarchy
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.exceptions import MarketplaceException
from core.logging_config import bind_request_context, clear_request_context

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/api/health", "/api/v1/health", "/health")


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id

        clear_request_context()
        bind_request_context(request_id=request_id)
        try:
            return await self._track(request, request_id, call_next)
        finally:
            clear_request_context()

    async def _track(self, request: Request, request_id: str, call_next):
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                "Unhandled exception",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(exc),
                },
                exc_info=True,
            )
            # Error details stay server-side in production
            if get_settings().is_production:
                error_detail = "Internal server error"
            else:
                error_detail = str(exc) or "Internal server error"

            return JSONResponse(
                status_code=500,
                content={"detail": error_detail, "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.monotonic() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if not request.url.path.rstrip("/").endswith(QUIET_PATHS):
            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(MarketplaceException)
    async def marketplace_exception_handler(request: Request, exc: MarketplaceException):
        if exc.status_code >= 500:
            logger.warning(
                "Request failed: %s",
                exc.message,
                extra={"request_id": getattr(request.state, "request_id", None)},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                **exc.to_dict(),
                "request_id": getattr(request.state, "request_id", None),
            },
        )
