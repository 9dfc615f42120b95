"""Health check endpoints.

- Liveness probe (/health)
- Readiness probe with database check (/health/ready)
"""

import time
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()


@router.get("", response_model=dict[str, Any])
@router.get("/", response_model=dict[str, Any], include_in_schema=False)
async def liveness() -> dict[str, Any]:
    """Basic liveness probe with app name and version."""
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/ready")
async def readiness():
    """Readiness probe; 503 when the database is unreachable."""
    from db.database import ping_db

    checks: dict[str, str] = {}
    try:
        await ping_db()
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "checks": checks},
    )
