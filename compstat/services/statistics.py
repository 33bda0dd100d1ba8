"""
Statistical building blocks for CompStat summaries.

Every function here is pure: counts in, derived values out. The aggregator
feeds them adapter results; tests exercise them directly.

Algorithms:
    1. percent_change: relative change with a defined zero baseline
    2. poisson_z: square-root (Anscombe for small counts) difference of two
       Poisson counts, scaled to an approximate z-score
    3. classify_z: fixed significance bands
    4. build_weekly_trend: Monday-Sunday weekly totals with an 8-week rolling
       mean and a square-root-scale expected band
    5. merge_breakdowns: current top-N rows paired with previous counts by label
    6. summarize_incidents: top-5 tallies from the incident sample
    7. build_offense_drilldown: per-offense-code comparison ordered by
       crime-against category
    8. build_narrative: one-paragraph summary of the focus window

Dependencies:
    - numpy: prefix sums over weekly totals
    - pandas: gap-filling the daily history onto a continuous calendar
"""

import math
from collections import Counter
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from compstat.models import (
    BreakdownRow,
    CompstatMetric,
    CrimeAgainst,
    DailyCount,
    IncidentFeature,
    OffenseDetail,
    OffenseDrilldownRow,
    TrendPoint,
    WindowDefinition,
    ZClassification,
)


# =============================================================================
# Constants
# =============================================================================

# Below this count either operand switches the z-score to the Anscombe
# transform sqrt(x + 3/8), which keeps small counts approximately normal.
ANSCOMBE_MIN_COUNT: int = 10
ANSCOMBE_OFFSET: float = 0.375

SPIKE_THRESHOLD: float = 3.5
ELEVATED_THRESHOLD: float = 1.0
BELOW_NORMAL_THRESHOLD: float = -1.0

# Weekly trend: number of full prior weeks in the rolling mean, and the
# half-width of the band on the square-root scale.
PRIOR_WEEKS: int = 8
BAND_MULTIPLIER: float = 1.5

INCIDENT_SUMMARY_SIZE: int = 5
UNSPECIFIED_OFFENSE = "Unspecified offense"
UNASSIGNED_DIVISION = "Unassigned division"

CRIME_AGAINST_ORDER: Dict[str, int] = {
    CrimeAgainst.PERSON.value: 0,
    CrimeAgainst.PROPERTY.value: 1,
    CrimeAgainst.SOCIETY.value: 2,
}
UNCLASSIFIED_ORDER: int = 99


# =============================================================================
# Change and Significance
# =============================================================================


def percent_change(current: float, previous: float) -> float:
    """
    Percent change from previous to current.

    A zero baseline has no ratio, so it is defined as 0% when current is
    also zero and +100% otherwise.

    Example:
        >>> percent_change(120, 100)
        20.0
        >>> percent_change(5, 0)
        100.0
    """
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return (current - previous) / previous * 100.0


def poisson_z(current: int, previous: int) -> float:
    """
    Approximate z-score for the difference of two Poisson counts.

    Uses z = 2 * (t(current) - t(previous)) where t is sqrt(x), or the
    Anscombe transform sqrt(x + 0.375) when either count is below 10.

    Returns:
        0.0 when both counts are zero (and whenever current == previous).
    """
    if current == 0 and previous == 0:
        return 0.0

    use_anscombe = current < ANSCOMBE_MIN_COUNT or previous < ANSCOMBE_MIN_COUNT
    offset = ANSCOMBE_OFFSET if use_anscombe else 0.0
    return 2.0 * (math.sqrt(current + offset) - math.sqrt(previous + offset))


def classify_z(z_score: float) -> ZClassification:
    """Map a z-score to its band. Monotonic: a larger z never gets a lower band."""
    if z_score >= SPIKE_THRESHOLD:
        return ZClassification.SPIKE
    if z_score >= ELEVATED_THRESHOLD:
        return ZClassification.ELEVATED
    if z_score <= BELOW_NORMAL_THRESHOLD:
        return ZClassification.BELOW_NORMAL
    return ZClassification.NORMAL


def build_metric(
    definition: WindowDefinition,
    current: int,
    previous: int,
    year_ago: int,
) -> CompstatMetric:
    """Assemble the summary tile for one window from its three counts."""
    z_score = poisson_z(current, previous)
    return CompstatMetric(
        id=definition.id,
        label=definition.label,
        current=current,
        previous=previous,
        yearAgo=year_ago,
        changePct=percent_change(current, previous),
        changePctYearAgo=percent_change(current, year_ago),
        zScore=z_score,
        classification=classify_z(z_score),
    )


# =============================================================================
# Weekly Trend
# =============================================================================


def build_weekly_trend(series: Sequence[DailyCount]) -> List[TrendPoint]:
    """
    Build the weekly trend with its rolling expected band.

    Steps:
        1. Sum duplicate days and lay the history onto a continuous daily
           calendar; days absent from the history count as zero.
        2. Keep only full Monday-Sunday weeks: the first starts on the first
           Monday on or after the earliest day, the last ends on the last
           Sunday on or before the latest day.
        3. Total each week and take prefix sums so every 8-week window sum
           is a single subtraction.
        4. For week index >= PRIOR_WEEKS:
               rollingAverage = mean of the PRIOR_WEEKS preceding weeks
               lowerBand = max(0, (sqrt(avg) - 1.5) ** 2)
               upperBand = (sqrt(avg) + 1.5) ** 2

    Args:
        series: Daily counts in any order.

    Returns:
        One TrendPoint per week that has PRIOR_WEEKS full weeks before it.
        Empty when the history holds PRIOR_WEEKS full weeks or fewer.
    """
    if not series:
        return []

    counts = (
        pd.Series(
            [row.count for row in series],
            index=pd.to_datetime([row.day for row in series]),
        )
        .groupby(level=0)
        .sum()
        .sort_index()
    )
    first_day = counts.index[0].date()
    last_day = counts.index[-1].date()

    begin_week = first_day + timedelta(days=(7 - first_day.weekday()) % 7)
    total_weeks = ((last_day - begin_week).days + 1) // 7
    if total_weeks <= PRIOR_WEEKS:
        return []

    span_end = begin_week + timedelta(days=total_weeks * 7 - 1)
    daily = counts.reindex(pd.date_range(begin_week, span_end, freq="D"), fill_value=0)
    week_counts = daily.to_numpy(dtype=np.int64).reshape(total_weeks, 7).sum(axis=1)
    prefix_sums = np.concatenate(([0], np.cumsum(week_counts)))

    trend: List[TrendPoint] = []
    for index in range(PRIOR_WEEKS, total_weeks):
        week_start = begin_week + timedelta(days=index * 7)
        prior_sum = prefix_sums[index] - prefix_sums[index - PRIOR_WEEKS]
        prior_average = float(prior_sum) / PRIOR_WEEKS
        root = math.sqrt(max(prior_average, 0.0))

        trend.append(
            TrendPoint(
                weekStart=week_start,
                weekEnd=week_start + timedelta(days=6),
                count=int(week_counts[index]),
                rollingAverage=prior_average,
                lowerBand=max((root - BAND_MULTIPLIER) ** 2, 0.0),
                upperBand=(root + BAND_MULTIPLIER) ** 2,
            )
        )

    return trend


# =============================================================================
# Breakdowns
# =============================================================================


def merge_breakdowns(
    current: Sequence[BreakdownRow],
    previous: Sequence[BreakdownRow],
) -> List[BreakdownRow]:
    """
    Attach changePct to each current row using the previous count of the
    same label. Labels missing from `previous` have a baseline of 0.

    Example:
        >>> merge_breakdowns(
        ...     [BreakdownRow(label="THEFT", count=120)],
        ...     [BreakdownRow(label="THEFT", count=100)],
        ... )[0].changePct
        20.0
    """
    previous_counts = {row.label: row.count for row in previous}
    return [
        row.model_copy(
            update={"changePct": percent_change(row.count, previous_counts.get(row.label, 0))}
        )
        for row in current
    ]


def summarize_incidents(
    incidents: Sequence[IncidentFeature],
    field: str,
) -> List[BreakdownRow]:
    """
    Tally the incident sample by offense or division.

    This is computed from the bounded sample, not from a server-side
    aggregate, so it is cheap and reflects exactly what the map shows.

    Args:
        incidents: Incident sample.
        field: 'offense' or 'division'.

    Returns:
        Top INCIDENT_SUMMARY_SIZE labels by count (ties keep first-seen order),
        with changePct 0.

    Raises:
        ValueError: If field is not 'offense' or 'division'.
    """
    if field == "offense":
        fallback = UNSPECIFIED_OFFENSE
    elif field == "division":
        fallback = UNASSIGNED_DIVISION
    else:
        raise ValueError(f"Cannot summarize incidents by {field!r}")

    tally: Counter = Counter()
    for incident in incidents:
        label = (getattr(incident, field) or "").strip() or fallback
        tally[label] += 1

    return [
        BreakdownRow(label=label, count=count, changePct=0.0)
        for label, count in tally.most_common(INCIDENT_SUMMARY_SIZE)
    ]


# =============================================================================
# Offense Drilldown
# =============================================================================


def _counts_by_code(rows: Sequence[OffenseDetail]) -> Counter:
    counts: Counter = Counter()
    for row in rows:
        counts[row.code] += row.count
    return counts


def build_offense_drilldown(
    current: Sequence[OffenseDetail],
    previous: Sequence[OffenseDetail],
    year_ago: Sequence[OffenseDetail],
) -> List[OffenseDrilldownRow]:
    """
    Compare per-offense-code counts across the three ranges of one window.

    - Codes are the union of all three inputs; label and crimeAgainst come
      from the first row that mentions the code.
    - Rows sharing a code (one code reported under two labels) are summed.
    - Missing counts default to 0; codes that are zero in all three ranges
      are dropped (a code seen only a year ago is kept).
    - Rows are ordered Person, Property, Society, then unclassified, and by
      descending current count within a category.
    """
    current_counts = _counts_by_code(current)
    previous_counts = _counts_by_code(previous)
    year_ago_counts = _counts_by_code(year_ago)

    metadata: Dict[str, OffenseDetail] = {}
    for rows in (current, previous, year_ago):
        for row in rows:
            metadata.setdefault(row.code, row)

    drilldown: List[OffenseDrilldownRow] = []
    for code, meta in metadata.items():
        current_value = current_counts.get(code, 0)
        previous_value = previous_counts.get(code, 0)
        year_ago_value = year_ago_counts.get(code, 0)
        if current_value == 0 and previous_value == 0 and year_ago_value == 0:
            continue

        drilldown.append(
            OffenseDrilldownRow(
                code=code,
                label=meta.label,
                crimeAgainst=meta.crimeAgainst,
                current=current_value,
                previous=previous_value,
                yearAgo=year_ago_value,
                changePct=percent_change(current_value, previous_value),
                changePctYearAgo=percent_change(current_value, year_ago_value),
                zScore=poisson_z(current_value, previous_value),
            )
        )

    drilldown.sort(
        key=lambda row: (
            CRIME_AGAINST_ORDER.get(row.crimeAgainst, UNCLASSIFIED_ORDER),
            -row.current,
        )
    )
    return drilldown


# =============================================================================
# Narrative
# =============================================================================


def build_narrative(
    focus_metric: CompstatMetric,
    top_offense: Optional[BreakdownRow],
    top_division: Optional[BreakdownRow],
) -> str:
    """
    Template the focus-window summary sentence.

    Example:
        "Last 28 days: 1,180 incidents vs 1,100 (7.3% and 2.4 z-score,
        Elevated). Most frequent offense: THEFT (120 cases). Highest volume
        division: SOUTHWEST (90 cases)."
    """
    pieces = [
        f"{focus_metric.label}: {focus_metric.current:,} incidents",
        (
            f"vs {focus_metric.previous:,} ({focus_metric.changePct:.1f}% and "
            f"{focus_metric.zScore:.1f} z-score, {focus_metric.classification.value})."
        ),
    ]
    if top_offense is not None:
        pieces.append(
            f"Most frequent offense: {top_offense.label} ({top_offense.count:,} cases)."
        )
    if top_division is not None:
        pieces.append(
            f"Highest volume division: {top_division.label} ({top_division.count:,} cases)."
        )
    return " ".join(pieces)
