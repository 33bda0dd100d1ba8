"""
Data Source Adapter for the CompStat aggregator.

The aggregator depends only on the DataSourceAdapter protocol: nine async
query primitives over a date range and a filter set. SocrataDataSource is the
production implementation, turning SoQL rows from the incident dataset into
the typed rows the aggregator consumes.

Row normalisation rules:
    - Count strings become ints; missing counts are 0.
    - Breakdown rows without a label become 'Uncoded' (offense categories) or
      'Unassigned' (divisions).
    - Daily history rows are truncated to their YYYY-MM-DD day.
    - Incidents without both coordinates are dropped; a missing incident
      number is replaced by a random UUID.
    - Weekday buckets are ordered Sun..Sat; hour buckets are labelled 'HH:00'.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from compstat.core.socrata import SocrataClient
from compstat.models import (
    BreakdownRow,
    DailyCount,
    DashboardFilters,
    DateRange,
    HistogramBucket,
    IncidentFeature,
    OffenseDetail,
)
from compstat.soql.queries import (
    DEFAULT_BREAKDOWN_LIMIT,
    get_count_query,
    get_daily_trend_query,
    get_day_of_week_query,
    get_distinct_values_query,
    get_divisions_query,
    get_hour_of_day_query,
    get_incidents_query,
    get_offense_details_query,
    get_top_offenses_query,
)


logger = logging.getLogger(__name__)

WEEKDAY_ORDER = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
DEFAULT_INCIDENT_LIMIT: int = 350


# =============================================================================
# Adapter Protocol
# =============================================================================


@runtime_checkable
class DataSourceAdapter(Protocol):
    """Query primitives consumed by the aggregator."""

    async def fetch_count_for_range(self, date_range: DateRange, filters: DashboardFilters) -> int:
        ...

    async def fetch_top_offenses(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int = DEFAULT_BREAKDOWN_LIMIT,
        only_labels: Optional[Sequence[str]] = None,
    ) -> List[BreakdownRow]:
        ...

    async def fetch_divisions(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int = DEFAULT_BREAKDOWN_LIMIT,
        only_labels: Optional[Sequence[str]] = None,
    ) -> List[BreakdownRow]:
        ...

    async def fetch_distinct_values(self, field: str) -> List[str]:
        ...

    async def fetch_daily_trend(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int,
    ) -> List[DailyCount]:
        ...

    async def fetch_incidents(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[IncidentFeature]:
        ...

    async def fetch_day_of_week_counts(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[HistogramBucket]:
        ...

    async def fetch_hour_of_day_counts(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[HistogramBucket]:
        ...

    async def fetch_offense_details(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[OffenseDetail]:
        ...


# =============================================================================
# Row Helpers
# =============================================================================


def _safe_int(value: Any) -> int:
    """Convert a SODA numeric string to int; None or garbage becomes 0."""
    if value is None:
        return 0
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return 0


def _safe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _to_breakdown(rows: List[Dict[str, Any]], key: str, fallback: str) -> List[BreakdownRow]:
    return [
        BreakdownRow(
            label=row.get(key) or fallback,
            count=_safe_int(row.get("count")),
            changePct=0.0,
        )
        for row in rows
    ]


# =============================================================================
# Socrata Implementation
# =============================================================================


class SocrataDataSource:
    """
    DataSourceAdapter backed by the Socrata incident dataset.

    Args:
        client: Shared SocrataClient.
        incident_limit: Size of the newest-first incident sample.
    """

    def __init__(self, client: SocrataClient, incident_limit: int = DEFAULT_INCIDENT_LIMIT):
        self.client = client
        self.incident_limit = incident_limit

    async def fetch_count_for_range(self, date_range: DateRange, filters: DashboardFilters) -> int:
        rows = await self.client.query(get_count_query(date_range, filters))
        if not rows:
            return 0
        return _safe_int(rows[0].get("count"))

    async def fetch_top_offenses(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int = DEFAULT_BREAKDOWN_LIMIT,
        only_labels: Optional[Sequence[str]] = None,
    ) -> List[BreakdownRow]:
        rows = await self.client.query(
            get_top_offenses_query(date_range, filters, limit, only_labels)
        )
        return _to_breakdown(rows, "category", "Uncoded")

    async def fetch_divisions(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int = DEFAULT_BREAKDOWN_LIMIT,
        only_labels: Optional[Sequence[str]] = None,
    ) -> List[BreakdownRow]:
        rows = await self.client.query(
            get_divisions_query(date_range, filters, limit, only_labels)
        )
        return _to_breakdown(rows, "division", "Unassigned")

    async def fetch_distinct_values(self, field: str) -> List[str]:
        rows = await self.client.query(get_distinct_values_query(field))
        return [row[field] for row in rows if row.get(field)]

    async def fetch_daily_trend(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
        limit: int,
    ) -> List[DailyCount]:
        rows = await self.client.query(get_daily_trend_query(date_range, filters, limit))
        series: List[DailyCount] = []
        for row in rows:
            raw_day = row.get("day")
            if not raw_day:
                continue
            try:
                day = date.fromisoformat(raw_day[:10])
            except ValueError:
                logger.debug(f"Skipping daily trend row with unparseable day {raw_day!r}")
                continue
            series.append(DailyCount(day=day, count=_safe_int(row.get("count"))))
        return series

    async def fetch_incidents(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[IncidentFeature]:
        rows = await self.client.query(
            get_incidents_query(date_range, filters, self.incident_limit)
        )
        incidents: List[IncidentFeature] = []
        for row in rows:
            location = row.get("geocoded_column") or {}
            latitude = _safe_float(location.get("latitude"))
            longitude = _safe_float(location.get("longitude"))
            if latitude is None or longitude is None:
                continue

            incidents.append(
                IncidentFeature(
                    id=row.get("incidentnum") or str(uuid.uuid4()),
                    offense=row.get("offincident") or "Unspecified offense",
                    narrative=row.get("mo") or "No modus operandi recorded.",
                    status=row.get("status") or "Pending",
                    occurred=row.get("date1") or "",
                    division=row.get("division") or "Unknown",
                    beat=row.get("beat") or "Unknown",
                    latitude=latitude,
                    longitude=longitude,
                )
            )
        return incidents

    async def fetch_day_of_week_counts(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[HistogramBucket]:
        rows = await self.client.query(get_day_of_week_query(date_range, filters))
        buckets = [
            HistogramBucket(
                label=row["day"],
                order=WEEKDAY_ORDER.index(row["day"]),
                count=_safe_int(row.get("count")),
            )
            for row in rows
            if row.get("day") in WEEKDAY_ORDER
        ]
        return sorted(buckets, key=lambda bucket: bucket.order)

    async def fetch_hour_of_day_counts(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[HistogramBucket]:
        rows = await self.client.query(get_hour_of_day_query(date_range, filters))
        buckets: List[HistogramBucket] = []
        for row in rows:
            raw_hour = row.get("hour")
            if not raw_hour:
                continue
            hour = raw_hour[:2]
            buckets.append(
                HistogramBucket(
                    label=f"{hour}:00",
                    order=int(hour) if hour.isdigit() else 0,
                    count=_safe_int(row.get("count")),
                )
            )
        return sorted(buckets, key=lambda bucket: bucket.order)

    async def fetch_offense_details(
        self,
        date_range: DateRange,
        filters: DashboardFilters,
    ) -> List[OffenseDetail]:
        rows = await self.client.query(get_offense_details_query(date_range, filters))
        return [
            OffenseDetail(
                code=row["code"],
                label=row.get("label") or row["code"],
                crimeAgainst=row.get("crime_against") or "Unclassified",
                count=_safe_int(row.get("count")),
            )
            for row in rows
            if row.get("code")
        ]
