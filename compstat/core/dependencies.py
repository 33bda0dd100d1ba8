"""
FastAPI dependency injection module for the CompStat backend.

Endpoint handlers never reach into app.state themselves; they declare the
dependencies below, which tests replace through app.dependency_overrides.

Key Dependencies Provided:
- get_compstat_service / CompstatServiceDep: the process-wide CompstatService
- get_socrata_health / SocrataHealthDep: last success and last error of the
  Socrata client

Usage Examples:
    @router.get("/compstat")
    async def compstat(service: CompstatServiceDep) -> CompstatResponse:
        return await service.build_compstat_response()
"""

from typing import Annotated

from fastapi import Depends, Request

from compstat.models import SocrataHealth
from compstat.services.compstat import CompstatService


# =============================================================================
# Service Dependencies
# =============================================================================

def get_compstat_service(request: Request) -> CompstatService:
    """
    Return the CompstatService created by the application lifespan.

    Raises:
        RuntimeError: If the lifespan has not run (the service is missing).
    """
    service = getattr(request.app.state, "compstat_service", None)
    if service is None:
        raise RuntimeError("CompstatService is not initialised; was the lifespan run?")
    return service


def get_socrata_health(request: Request) -> SocrataHealth:
    client = getattr(request.app.state, "socrata_client", None)
    if client is None:
        return SocrataHealth()
    return client.health()


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(service: CompstatServiceDep)
CompstatServiceDep = Annotated[CompstatService, Depends(get_compstat_service)]

# Usage: async def endpoint(socrata: SocrataHealthDep)
SocrataHealthDep = Annotated[SocrataHealth, Depends(get_socrata_health)]
