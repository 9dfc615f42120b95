"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import ai, health

api_v1_router = APIRouter()

# Health (no auth required)
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# AI workflow builder
api_v1_router.include_router(
    ai.router,
    prefix="/ai",
    tags=["AI Workflow Builder"],
)
