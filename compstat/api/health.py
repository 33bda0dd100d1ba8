"""
Health API Router

GET /health reports whether the service has produced a CompStat payload and
whether the Socrata source answered its most recent query. Load balancers
read the status code: 200 when healthy, 503 otherwise.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from compstat.core.dependencies import CompstatServiceDep, SocrataHealthDep
from compstat.models import HealthResponse


router = APIRouter(tags=["health"])

HEALTH_CACHE_CONTROL = "public, max-age=30"


@router.get("/health", response_model=HealthResponse)
async def health_check(service: CompstatServiceDep, socrata: SocrataHealthDep) -> JSONResponse:
    """
    Service health for monitoring and load balancer probes.

    ok is true only when a CompStat aggregation has succeeded, Socrata has
    answered at least once, and its latest query did not fail.
    """
    compstat = service.get_compstat_health()
    ok = (
        compstat.lastSuccess is not None
        and socrata.lastSuccess is not None
        and socrata.lastError is None
    )
    body = HealthResponse(
        ok=ok,
        compstat=compstat,
        socrata=socrata,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        content=body.model_dump(mode="json"),
        status_code=200 if ok else 503,
        headers={"Cache-Control": HEALTH_CACHE_CONTROL},
    )
