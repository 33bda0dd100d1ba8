"""
CompStat Services Module

Business logic behind the /compstat endpoint.

Services:
- windows: calendar-aligned window definitions in the operational time zone
- statistics: percent change, Poisson z-scores, weekly trend, breakdowns,
  drilldown and narrative
- data_source: DataSourceAdapter protocol and the Socrata implementation
- aggregator: concurrent fan-out of adapter queries into one payload
- cache: TTL response cache keyed by (filters, focus window)
- compstat: CompstatService, the cached single-flight entry point

All services are consumed by the API layer (compstat/api/).
"""

# =============================================================================
# Windows
# =============================================================================

from compstat.services.windows import (
    COMPSTAT_ZONE,
    DEFAULT_FOCUS_WINDOW,
    WINDOW_LABELS,
    build_range_from_dates,
    get_all_window_definitions,
    get_window_definition,
    parse_window_id,
)

# =============================================================================
# Statistics
# =============================================================================

from compstat.services.statistics import (
    build_metric,
    build_narrative,
    build_offense_drilldown,
    build_weekly_trend,
    classify_z,
    merge_breakdowns,
    percent_change,
    poisson_z,
    summarize_incidents,
)

# =============================================================================
# Data source, aggregation and caching
# =============================================================================

from compstat.services.data_source import (
    DataSourceAdapter,
    SocrataDataSource,
)

from compstat.services.aggregator import (
    AdapterTimeout,
    AggregationFailure,
    CompstatAggregator,
)

from compstat.services.cache import (
    RESPONSE_TTL_SECONDS,
    ResponseCache,
    build_cache_key,
)

from compstat.services.compstat import (
    STALE_REASON,
    STALE_TIMEOUT_REASON,
    CompstatService,
    mark_stale,
)


__all__ = [
    # Windows
    'COMPSTAT_ZONE',
    'DEFAULT_FOCUS_WINDOW',
    'WINDOW_LABELS',
    'build_range_from_dates',
    'get_all_window_definitions',
    'get_window_definition',
    'parse_window_id',
    # Statistics
    'build_metric',
    'build_narrative',
    'build_offense_drilldown',
    'build_weekly_trend',
    'classify_z',
    'merge_breakdowns',
    'percent_change',
    'poisson_z',
    'summarize_incidents',
    # Data source
    'DataSourceAdapter',
    'SocrataDataSource',
    # Aggregation
    'AdapterTimeout',
    'AggregationFailure',
    'CompstatAggregator',
    # Cache
    'RESPONSE_TTL_SECONDS',
    'ResponseCache',
    'build_cache_key',
    # Service
    'STALE_REASON',
    'STALE_TIMEOUT_REASON',
    'CompstatService',
    'mark_stale',
]
