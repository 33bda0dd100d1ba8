"""
CompStat API package initialization.

Router modules:
- compstat: GET /compstat dashboard payload with stale fallback
- health: GET /health source and aggregation health
"""

from fastapi import APIRouter

from compstat.api.compstat import router as compstat_router
from compstat.api.health import router as health_router

# Create main API router
api_router = APIRouter()
api_router.include_router(compstat_router)
api_router.include_router(health_router)

__all__ = [
    "api_router",
    "compstat_router",
    "health_router",
]
