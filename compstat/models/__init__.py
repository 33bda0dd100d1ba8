"""
Package initialization file for CompStat models.

Re-exports all Pydantic schemas and enumerations so other modules can write:

    from compstat.models import CompstatResponse, DashboardFilters, WindowId
"""

# =============================================================================
# Enums
# =============================================================================

from compstat.models.enums import (
    CrimeAgainst,
    WindowId,
    ZClassification,
)

# =============================================================================
# Schemas
# =============================================================================

from compstat.models.schemas import (
    ALL_FILTER_VALUE,
    # Filters and windows
    DashboardFilters,
    DateRange,
    WindowDefinition,
    # Adapter rows
    BreakdownRow,
    DailyCount,
    HistogramBucket,
    IncidentFeature,
    OffenseDetail,
    # Derived analytics
    CompstatMetric,
    TrendPoint,
    OffenseDrilldownRow,
    # Aggregate root
    FilterEcho,
    CompstatMeta,
    CompstatResponse,
    # Health
    CompstatHealth,
    SocrataError,
    SocrataHealth,
    HealthResponse,
)


__all__ = [
    # ----- Enums -----
    'CrimeAgainst',
    'WindowId',
    'ZClassification',
    # ----- Schemas -----
    'ALL_FILTER_VALUE',
    'DashboardFilters',
    'DateRange',
    'WindowDefinition',
    'BreakdownRow',
    'DailyCount',
    'HistogramBucket',
    'IncidentFeature',
    'OffenseDetail',
    'CompstatMetric',
    'TrendPoint',
    'OffenseDrilldownRow',
    'FilterEcho',
    'CompstatMeta',
    'CompstatResponse',
    'CompstatHealth',
    'SocrataError',
    'SocrataHealth',
    'HealthResponse',
]
