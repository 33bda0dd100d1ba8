"""
SoQL query builders for the police incidents dataset.

Each get_*_query function returns the SODA parameter dict ($select, $where,
$group, $order, $limit) for one adapter primitive. Nothing here performs I/O.

Dataset columns used:
    incidentnum            incident identifier (counted)
    date1 / year1          occurrence timestamp and its partition year
    day1 / time1           weekday abbreviation and HH:MM time
    division / beat        patrol geography
    nibrs_crime_category   offense category (dashboard filter)
    nibrs_code / nibrs_crime / nibrs_crimeagainst   offense drilldown metadata
    offincident / mo / status / geocoded_column     incident sample fields

Quoting:
    String literals are single-quoted with embedded quotes doubled, the only
    escape SoQL supports.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence

from compstat.models import DashboardFilters, DateRange


# =============================================================================
# Constants
# =============================================================================

COUNT_COLUMN = "incidentnum"
DATE_COLUMN = "date1"
YEAR_COLUMN = "year1"
DIVISION_COLUMN = "division"
CATEGORY_COLUMN = "nibrs_crime_category"

QUERY_STAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_BREAKDOWN_LIMIT: int = 8
DISTINCT_VALUES_LIMIT: int = 50
OFFENSE_DETAILS_LIMIT: int = 500

_FIELD_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")

SoqlParams = Dict[str, str]


# =============================================================================
# Clause Helpers
# =============================================================================


def sanitize(value: str) -> str:
    """Escape a value for use inside a single-quoted SoQL literal."""
    return value.replace("'", "''").strip()


def quote(value: str) -> str:
    return f"'{sanitize(value)}'"


def in_clause(field: str, values: Sequence[str]) -> str:
    """`field IN ('a','b')`, or an empty string for no values."""
    if not values:
        return ""
    return f"{field} IN ({','.join(quote(value) for value in values)})"


def year_clause(years: Sequence[str]) -> str:
    """Partition predicate on year1; equality for one year, `in` for several."""
    if not years:
        return ""
    if len(years) == 1:
        return f"{YEAR_COLUMN}='{years[0]}'"
    joined = ",".join(f"'{year}'" for year in years)
    return f"{YEAR_COLUMN} in ({joined})"


def date_clause(date_range: DateRange) -> str:
    start = date_range.start.strftime(QUERY_STAMP_FORMAT)
    end = date_range.end.strftime(QUERY_STAMP_FORMAT)
    return f"{DATE_COLUMN} between '{start}' AND '{end}'"


def build_where(
    date_range: DateRange,
    filters: DashboardFilters,
    extra_clauses: Iterable[str] = (),
) -> str:
    """
    Combine partition, date, filter and extra predicates with AND.

    Empty clauses are skipped so callers can pass optional predicates
    unconditionally.
    """
    clauses: List[str] = [year_clause(date_range.years), date_clause(date_range)]

    if filters.division:
        clauses.append(f"{DIVISION_COLUMN}={quote(filters.division)}")
    if filters.offenseCategory:
        clauses.append(f"{CATEGORY_COLUMN}={quote(filters.offenseCategory)}")

    clauses.extend(extra_clauses)
    return " AND ".join(clause for clause in clauses if clause)


def validate_field_name(field: str) -> str:
    """
    Reject anything but a plain column name.

    Raises:
        ValueError: If field is not a lowercase identifier.
    """
    if not _FIELD_NAME.match(field):
        raise ValueError(f"Invalid dataset field name: {field!r}")
    return field


# =============================================================================
# Query Builders
# =============================================================================


def get_count_query(date_range: DateRange, filters: DashboardFilters) -> SoqlParams:
    return {
        "$select": f"count({COUNT_COLUMN}) as count",
        "$where": build_where(date_range, filters),
        "$limit": "1",
    }


def _breakdown_query(
    column: str,
    alias: str,
    date_range: DateRange,
    filters: DashboardFilters,
    limit: int,
    only_labels: Optional[Sequence[str]],
) -> SoqlParams:
    extra = [f"{column} IS NOT NULL"]
    if only_labels:
        extra.append(in_clause(column, only_labels))

    select = f"{column} as {alias}" if alias != column else column
    return {
        "$select": f"{select}, count({COUNT_COLUMN}) as count",
        "$where": build_where(date_range, filters, extra),
        "$group": column,
        "$order": "count DESC",
        "$limit": str(len(only_labels) if only_labels else limit),
    }


def get_top_offenses_query(
    date_range: DateRange,
    filters: DashboardFilters,
    limit: int = DEFAULT_BREAKDOWN_LIMIT,
    only_labels: Optional[Sequence[str]] = None,
) -> SoqlParams:
    """
    Offense categories by count, descending.

    When only_labels is given the query is restricted to exactly those
    categories and the limit becomes the label count.
    """
    return _breakdown_query(CATEGORY_COLUMN, "category", date_range, filters, limit, only_labels)


def get_divisions_query(
    date_range: DateRange,
    filters: DashboardFilters,
    limit: int = DEFAULT_BREAKDOWN_LIMIT,
    only_labels: Optional[Sequence[str]] = None,
) -> SoqlParams:
    """Divisions by count, descending (same label restriction rules as offenses)."""
    return _breakdown_query(DIVISION_COLUMN, DIVISION_COLUMN, date_range, filters, limit, only_labels)


def get_distinct_values_query(field: str) -> SoqlParams:
    field = validate_field_name(field)
    return {
        "$select": field,
        "$where": f"{field} IS NOT NULL",
        "$group": field,
        "$order": field,
        "$limit": str(DISTINCT_VALUES_LIMIT),
    }


def get_daily_trend_query(
    date_range: DateRange,
    filters: DashboardFilters,
    limit: int,
) -> SoqlParams:
    day_expression = f"substring({DATE_COLUMN},0,11)"
    return {
        "$select": f"{day_expression} as day, count({COUNT_COLUMN}) as count",
        "$where": build_where(date_range, filters),
        "$group": day_expression,
        "$order": "day",
        "$limit": str(limit),
    }


def get_incidents_query(
    date_range: DateRange,
    filters: DashboardFilters,
    limit: int,
) -> SoqlParams:
    """Newest-first geocoded incident sample."""
    return {
        "$select": "incidentnum, offincident, mo, status, date1, division, beat, geocoded_column",
        "$where": build_where(
            date_range,
            filters,
            ["geocoded_column IS NOT NULL", "beat IS NOT NULL"],
        ),
        "$order": f"{DATE_COLUMN} DESC",
        "$limit": str(limit),
    }


def get_day_of_week_query(date_range: DateRange, filters: DashboardFilters) -> SoqlParams:
    return {
        "$select": f"day1 as day, count({COUNT_COLUMN}) as count",
        "$where": build_where(date_range, filters, ["day1 IS NOT NULL"]),
        "$group": "day1",
        "$order": "day",
    }


def get_hour_of_day_query(date_range: DateRange, filters: DashboardFilters) -> SoqlParams:
    hour_expression = "substring(time1,0,3)"
    return {
        "$select": f"{hour_expression} as hour, count({COUNT_COLUMN}) as count",
        "$where": build_where(date_range, filters, ["time1 IS NOT NULL"]),
        "$group": hour_expression,
        "$order": "hour",
    }


def get_offense_details_query(date_range: DateRange, filters: DashboardFilters) -> SoqlParams:
    """Counts per NIBRS offense code with the code's label and crime-against group."""
    return {
        "$select": (
            "nibrs_code as code, nibrs_crime as label, "
            f"nibrs_crimeagainst as crime_against, count({COUNT_COLUMN}) as count"
        ),
        "$where": build_where(date_range, filters, ["nibrs_code IS NOT NULL"]),
        "$group": "nibrs_code, nibrs_crime, nibrs_crimeagainst",
        "$order": "count DESC",
        "$limit": str(OFFENSE_DETAILS_LIMIT),
    }
