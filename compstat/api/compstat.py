"""
CompStat API Router

Serves the dashboard payload. The heavy lifting happens in CompstatService;
this module only parses query parameters and decides what to send back when
a live aggregation fails.

Endpoints:
    GET /compstat?focusRange=28d&division=NORTH%20CENTRAL&offenseCategory=ALL

Failure handling:
    AggregationFailure -> last cached payload for the same key with
    meta.stale = true, or 500 {"error": ...} when nothing was ever cached.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from compstat.core.dependencies import CompstatServiceDep
from compstat.models import CompstatResponse, DashboardFilters
from compstat.services.aggregator import AggregationFailure
from compstat.services.windows import parse_window_id


logger = logging.getLogger(__name__)

router = APIRouter(tags=["compstat"])

UNAVAILABLE_DETAIL = "Unable to load CompStat data at this time."


@router.get("/compstat", response_model=CompstatResponse)
async def get_compstat(
    service: CompstatServiceDep,
    focus_range: Optional[str] = Query(
        None,
        alias="focusRange",
        description="Focus window: 7d, 28d, ytd or 365d (anything else means 28d)",
    ),
    division: Optional[str] = Query(None, description="Police division, or ALL"),
    offense_category: Optional[str] = Query(
        None,
        alias="offenseCategory",
        description="NIBRS crime category, or ALL",
    ),
) -> Union[CompstatResponse, JSONResponse]:
    """
    Build (or serve from cache) the CompStat payload for the given filters.

    Returns a 500 with an {"error": ...} body when aggregation failed and no
    cached payload exists.
    """
    focus_window = parse_window_id(focus_range)
    filters = DashboardFilters(division=division, offenseCategory=offense_category)

    try:
        return await service.build_compstat_response(filters, focus_window)
    except AggregationFailure as e:
        logger.error(f"Failed to build CompStat response: {e}", exc_info=True)
        stale = service.serve_stale(filters, focus_window, e)
        if stale is not None:
            logger.warning(f"Serving stale CompStat payload for {focus_window.value}")
            return stale
        return JSONResponse(status_code=500, content={"error": UNAVAILABLE_DETAIL})
