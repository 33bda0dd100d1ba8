"""
CompStat aggregation orchestrator.

Turns (filters, focus window, reference instant) into a complete
CompstatResponse by fanning out adapter queries concurrently and feeding the
results through compstat.services.statistics.

Query batches:
    1. Window counts: for each of the 4 windows, current / previous / yearAgo
       totals, 12 concurrent count queries.
    2. Context (concurrent): 3-year daily history, incident sample, current
       offense and division breakdowns, distinct divisions and categories,
       day-of-week and hour-of-day histograms for the focus window.
    3. Follow-ups (concurrent, after batch 2): previous-window offense and
       division counts restricted to the labels batch 2 returned, and the
       7-day offense drilldown (3 offense-detail queries).

Failure Semantics:
    Aggregation is all-or-nothing. Every adapter call runs under
    asyncio.wait_for; a timeout raises AdapterTimeout and any other adapter
    error raises AggregationFailure, chained to the original exception. When
    one call in a batch fails, the remaining calls of that batch are
    cancelled. No retries happen here; recovery is the caller's stale-cache
    read.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, List, Optional, Sequence, Union

from compstat.models import (
    BreakdownRow,
    CompstatMeta,
    CompstatMetric,
    CompstatResponse,
    DashboardFilters,
    FilterEcho,
    OffenseDrilldownRow,
    WindowDefinition,
    WindowId,
)
from compstat.services.data_source import DataSourceAdapter
from compstat.services.statistics import (
    build_metric,
    build_narrative,
    build_offense_drilldown,
    build_weekly_trend,
    merge_breakdowns,
    summarize_incidents,
)
from compstat.services.windows import (
    ZoneLike,
    build_range_from_dates,
    get_all_window_definitions,
    get_window_definition,
    localize,
    resolve_zone,
    shift_years,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Years of daily history requested for the weekly trend
HISTORY_YEARS: int = 3

# Floor for the daily-history row limit (history days + a week of slack)
MIN_HISTORY_LIMIT: int = 500

DRILLDOWN_WINDOW = WindowId.LAST_7_DAYS

DIVISION_FIELD = "division"
CATEGORY_FIELD = "nibrs_crime_category"

DEFAULT_ADAPTER_TIMEOUT_SECONDS: float = 20.0


# =============================================================================
# Errors
# =============================================================================


class AggregationFailure(Exception):
    """An adapter call failed, so no payload could be produced."""


class AdapterTimeout(AggregationFailure):
    """An adapter call did not complete within the adapter timeout."""


# =============================================================================
# Aggregator
# =============================================================================


class CompstatAggregator:
    """
    Builds CompstatResponse payloads from a DataSourceAdapter.

    Args:
        adapter: Data source implementing the query primitives.
        zone: Operational time zone for window boundaries.
        adapter_timeout: Seconds allowed per adapter call; None disables it.
    """

    def __init__(
        self,
        adapter: DataSourceAdapter,
        zone: ZoneLike = None,
        adapter_timeout: Optional[float] = DEFAULT_ADAPTER_TIMEOUT_SECONDS,
    ):
        self.adapter = adapter
        self.zone = resolve_zone(zone)
        self.adapter_timeout = adapter_timeout

    # -------------------------------------------------------------------------
    # Adapter call helpers
    # -------------------------------------------------------------------------

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke one adapter primitive under the timeout, translating failures."""
        try:
            return await asyncio.wait_for(
                getattr(self.adapter, method)(*args, **kwargs),
                timeout=self.adapter_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AdapterTimeout(
                f"{method} did not respond within {self.adapter_timeout}s"
            ) from exc
        except AggregationFailure:
            raise
        except Exception as exc:
            raise AggregationFailure(f"{method} failed: {exc}") from exc

    @staticmethod
    async def _gather_all(*awaitables: Awaitable[Any]) -> List[Any]:
        """Await all concurrently; on the first failure cancel the rest and re-raise."""
        tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    # -------------------------------------------------------------------------
    # Partial builders
    # -------------------------------------------------------------------------

    async def _window_metric(
        self,
        definition: WindowDefinition,
        filters: DashboardFilters,
    ) -> CompstatMetric:
        current, previous, year_ago = await self._gather_all(
            self._call("fetch_count_for_range", definition.current, filters),
            self._call("fetch_count_for_range", definition.previous, filters),
            self._call("fetch_count_for_range", definition.yearAgo, filters),
        )
        return build_metric(definition, current, previous, year_ago)

    async def _previous_breakdown(
        self,
        method: str,
        definition: WindowDefinition,
        filters: DashboardFilters,
        labels: Sequence[str],
    ) -> List[BreakdownRow]:
        # Restricting to the current labels bounds the cost of the second query
        if not labels:
            return []
        return await self._call(
            method,
            definition.previous,
            filters,
            limit=len(labels),
            only_labels=list(labels),
        )

    async def build_offense_drilldown(
        self,
        window_id: Union[WindowId, str],
        reference: datetime,
        filters: DashboardFilters,
    ) -> List[OffenseDrilldownRow]:
        """Per-offense-code comparison for one window (3 concurrent queries)."""
        definition = get_window_definition(window_id, reference, self.zone)
        current, previous, year_ago = await self._gather_all(
            self._call("fetch_offense_details", definition.current, filters),
            self._call("fetch_offense_details", definition.previous, filters),
            self._call("fetch_offense_details", definition.yearAgo, filters),
        )
        return build_offense_drilldown(current, previous, year_ago)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def build(
        self,
        filters: DashboardFilters,
        focus_window: Union[WindowId, str],
        reference: datetime,
    ) -> CompstatResponse:
        """
        Produce the full payload for one request.

        Args:
            filters: Normalised dashboard filters.
            focus_window: Window the narrative, breakdowns and histograms use.
            reference: Instant whose calendar day closes every window.

        Returns:
            CompstatResponse with meta.stale = False.

        Raises:
            AdapterTimeout: An adapter call exceeded the timeout.
            AggregationFailure: Any other adapter call failed.
        """
        started = time.perf_counter()
        focus_window = WindowId(focus_window)
        reference = localize(reference, self.zone)

        # Batch 1: 4 windows x (current, previous, yearAgo)
        definitions = get_all_window_definitions(reference, self.zone)
        windows: List[CompstatMetric] = await self._gather_all(
            *(self._window_metric(definition, filters) for definition in definitions)
        )

        # Batch 2: context for the focus window
        focus = next(d for d in definitions if d.id == focus_window)
        history_end = reference.date()
        history_start = shift_years(history_end, HISTORY_YEARS)
        history_range = build_range_from_dates(history_start, history_end, self.zone)
        history_days = (history_end - history_start).days + 1
        history_limit = max(history_days + 7, MIN_HISTORY_LIMIT)

        (
            trend_history,
            incidents,
            offenses_current,
            divisions_current,
            available_divisions,
            available_categories,
            day_of_week,
            hour_of_day,
        ) = await self._gather_all(
            self._call("fetch_daily_trend", history_range, filters, limit=history_limit),
            self._call("fetch_incidents", focus.current, filters),
            self._call("fetch_top_offenses", focus.current, filters),
            self._call("fetch_divisions", focus.current, filters),
            self._call("fetch_distinct_values", DIVISION_FIELD),
            self._call("fetch_distinct_values", CATEGORY_FIELD),
            self._call("fetch_day_of_week_counts", focus.current, filters),
            self._call("fetch_hour_of_day_counts", focus.current, filters),
        )

        # Batch 3: previous-window breakdowns depend on the labels above
        offenses_previous, divisions_previous, drilldown_rows = await self._gather_all(
            self._previous_breakdown(
                "fetch_top_offenses", focus, filters, [row.label for row in offenses_current]
            ),
            self._previous_breakdown(
                "fetch_divisions", focus, filters, [row.label for row in divisions_current]
            ),
            self.build_offense_drilldown(DRILLDOWN_WINDOW, reference, filters),
        )

        top_offenses = merge_breakdowns(offenses_current, offenses_previous)
        division_leaders = merge_breakdowns(divisions_current, divisions_previous)
        focus_metric = next(
            (metric for metric in windows if metric.id == focus_window),
            windows[0],
        )

        response = CompstatResponse(
            generatedAt=reference.astimezone(timezone.utc),
            filters=FilterEcho(
                focusRange=focus_window,
                applied=filters,
                availableDivisions=available_divisions,
                availableCategories=available_categories,
            ),
            windows=windows,
            trend=build_weekly_trend(trend_history),
            topOffenses=top_offenses,
            divisionLeaders=division_leaders,
            incidents=incidents,
            incidentCategories=summarize_incidents(incidents, "offense"),
            incidentDivisions=summarize_incidents(incidents, "division"),
            focusNarrative=build_narrative(
                focus_metric,
                top_offenses[0] if top_offenses else None,
                division_leaders[0] if division_leaders else None,
            ),
            meta=CompstatMeta(stale=False),
            dayOfWeek=day_of_week,
            hourOfDay=hour_of_day,
            drilldown={DRILLDOWN_WINDOW: drilldown_rows} if drilldown_rows else {},
        )

        logger.info(
            f"Built CompStat response for {focus_window.value} in "
            f"{time.perf_counter() - started:.2f}s"
        )
        return response
