"""
SoQL query module for the CompStat backend.

Builders return SODA parameter dicts; execution happens in
compstat.core.socrata.SocrataClient.
"""

from compstat.soql.queries import (
    DEFAULT_BREAKDOWN_LIMIT,
    build_where,
    get_count_query,
    get_daily_trend_query,
    get_day_of_week_query,
    get_distinct_values_query,
    get_divisions_query,
    get_hour_of_day_query,
    get_incidents_query,
    get_offense_details_query,
    get_top_offenses_query,
    in_clause,
    sanitize,
    year_clause,
)

__all__ = [
    'DEFAULT_BREAKDOWN_LIMIT',
    'build_where',
    'get_count_query',
    'get_daily_trend_query',
    'get_day_of_week_query',
    'get_distinct_values_query',
    'get_divisions_query',
    'get_hour_of_day_query',
    'get_incidents_query',
    'get_offense_details_query',
    'get_top_offenses_query',
    'in_clause',
    'sanitize',
    'year_clause',
]
