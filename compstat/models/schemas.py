"""
Pydantic request/response models for the CompStat analytics backend.

This module provides type-safe data validation and serialization for the
response contract consumed by the dashboard, the window definitions used by
the aggregator, and the rows exchanged with the open-data adapter.

Field names are camelCase because the JSON payload is the stable contract to
the presentation layer.

Model groups:
- Filters and windows: DashboardFilters, DateRange, WindowDefinition
- Adapter rows: BreakdownRow, DailyCount, HistogramBucket, IncidentFeature,
  OffenseDetail
- Derived analytics: CompstatMetric, TrendPoint, OffenseDrilldownRow
- Aggregate root: CompstatResponse (+ FilterEcho, CompstatMeta)
- Health: CompstatHealth, SocrataError, SocrataHealth, HealthResponse

All models use Pydantic v2 syntax.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from compstat.models.enums import WindowId, ZClassification


# Sentinel the dashboard sends for "no filter" in its dropdowns
ALL_FILTER_VALUE = "ALL"


# =============================================================================
# Filters and Windows
# =============================================================================


class DashboardFilters(BaseModel):
    """
    Filters applied to every adapter query.

    Values are stripped of surrounding whitespace; blank values and the
    dropdown sentinel 'ALL' are normalised to None so that equivalent
    requests share a cache key.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "division": "SOUTHWEST",
                "offenseCategory": "LARCENY/ THEFT OFFENSES",
            }
        }
    )

    division: Optional[str] = Field(
        default=None,
        description="Police division name"
    )
    offenseCategory: Optional[str] = Field(
        default=None,
        description="NIBRS crime category"
    )

    @field_validator("division", "offenseCategory", mode="before")
    @classmethod
    def _clean_filter_value(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text == ALL_FILTER_VALUE:
            return None
        return text


class DateRange(BaseModel):
    """
    Inclusive, timezone-aware date range in the operational time zone.

    `end` is the last representable instant of its day. `years` lists every
    calendar year the range touches, as strings, because the data source is
    partitioned by year.
    """
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    years: Tuple[str, ...]


class WindowDefinition(BaseModel):
    """Current, previous and year-ago ranges for one comparison window."""
    model_config = ConfigDict(frozen=True)

    id: WindowId
    label: str
    current: DateRange
    previous: DateRange
    yearAgo: DateRange
    dayCount: int = Field(..., ge=1)


# =============================================================================
# Adapter Rows
# =============================================================================


class BreakdownRow(BaseModel):
    """Labelled count with its change against the adjacent window."""
    label: str
    count: int = Field(..., ge=0)
    changePct: float = 0.0


class DailyCount(BaseModel):
    """One day of incident history."""
    day: date
    count: int = Field(..., ge=0)


class HistogramBucket(BaseModel):
    """
    Ordered labelled count for the day-of-week and hour-of-day charts.

    `order` is 0-6 (Sun-Sat) for weekdays and 0-23 for hours.
    """
    label: str
    order: int
    count: int = Field(..., ge=0)


class IncidentFeature(BaseModel):
    """
    Geocoded incident sample record.

    Passed through to the map and table untouched; only re-tallied for the
    incident summaries.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "INC-1",
                "offense": "BURGLARY",
                "narrative": "UNKNOWN SUSPECT ENTERED RESIDENCE",
                "status": "Open",
                "occurred": "2024-09-02T01:00:00.000",
                "division": "SOUTHWEST",
                "beat": "123",
                "latitude": 32.7,
                "longitude": -96.8,
            }
        }
    )

    id: str
    offense: str
    narrative: str
    status: str
    occurred: str
    division: str
    beat: str
    latitude: float
    longitude: float


class OffenseDetail(BaseModel):
    """Per-offense-code count with NIBRS metadata."""
    code: str
    label: str
    crimeAgainst: str
    count: int = Field(..., ge=0)


# =============================================================================
# Derived Analytics
# =============================================================================


class CompstatMetric(BaseModel):
    """
    Summary tile for one window.

    changePct compares against the previous window, changePctYearAgo against
    the same window one year earlier. zScore is the Poisson z-score of
    current vs previous.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "28d",
                "label": "Last 28 days",
                "current": 1180,
                "previous": 1100,
                "yearAgo": 1250,
                "changePct": 7.27,
                "changePctYearAgo": -5.6,
                "zScore": 2.37,
                "classification": "Elevated",
            }
        }
    )

    id: WindowId
    label: str
    current: int = Field(..., ge=0)
    previous: int = Field(..., ge=0)
    yearAgo: int = Field(..., ge=0)
    changePct: float
    changePctYearAgo: float
    zScore: float
    classification: ZClassification


class TrendPoint(BaseModel):
    """
    One full calendar week (Monday-Sunday) with its expected band.

    rollingAverage is the mean of the 8 preceding weeks; the band is the
    square-root-scale interval around it.
    """
    weekStart: date
    weekEnd: date
    count: int = Field(..., ge=0)
    rollingAverage: float
    lowerBand: float
    upperBand: float


class OffenseDrilldownRow(BaseModel):
    """Per-offense-code comparison inside one window."""
    code: str
    label: str
    crimeAgainst: str
    current: int = Field(..., ge=0)
    previous: int = Field(..., ge=0)
    yearAgo: int = Field(..., ge=0)
    changePct: float
    changePctYearAgo: float
    zScore: float


# =============================================================================
# Aggregate Root
# =============================================================================


class FilterEcho(BaseModel):
    """Filters that produced the payload plus the options for the filter bar."""
    focusRange: WindowId
    applied: DashboardFilters
    availableDivisions: List[str] = Field(default_factory=list)
    availableCategories: List[str] = Field(default_factory=list)


class CompstatMeta(BaseModel):
    """Freshness annotation; stale=True when served from an expired snapshot."""
    stale: bool = False
    reason: Optional[str] = None


class CompstatResponse(BaseModel):
    """
    Complete dashboard payload for one (filters, focus window) pair.

    Built in one pass by the aggregator, cached as a whole and never patched
    in place. Stale serving returns a copy with a different `meta`.
    """
    generatedAt: datetime
    filters: FilterEcho
    windows: List[CompstatMetric]
    trend: List[TrendPoint] = Field(default_factory=list)
    topOffenses: List[BreakdownRow] = Field(default_factory=list)
    divisionLeaders: List[BreakdownRow] = Field(default_factory=list)
    incidents: List[IncidentFeature] = Field(default_factory=list)
    incidentCategories: List[BreakdownRow] = Field(default_factory=list)
    incidentDivisions: List[BreakdownRow] = Field(default_factory=list)
    focusNarrative: str
    meta: CompstatMeta = Field(default_factory=CompstatMeta)
    dayOfWeek: List[HistogramBucket] = Field(default_factory=list)
    hourOfDay: List[HistogramBucket] = Field(default_factory=list)
    drilldown: Dict[WindowId, List[OffenseDrilldownRow]] = Field(default_factory=dict)


# =============================================================================
# Health
# =============================================================================


class CompstatHealth(BaseModel):
    """Timestamp of the last successful aggregation (None before the first)."""
    lastSuccess: Optional[datetime] = None


class SocrataError(BaseModel):
    """Most recent failed open-data query."""
    timestamp: datetime
    message: str
    status: Optional[int] = None


class SocrataHealth(BaseModel):
    """Open-data client health; lastError is cleared by the next success."""
    lastSuccess: Optional[datetime] = None
    lastError: Optional[SocrataError] = None


class HealthResponse(BaseModel):
    """Body of GET /health."""
    ok: bool
    compstat: CompstatHealth
    socrata: SocrataHealth
    timestamp: datetime
