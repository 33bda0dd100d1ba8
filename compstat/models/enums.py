"""
Enumeration definitions for the CompStat analytics backend.

All enums inherit from both `str` and `Enum` so they serialize to their plain
string values inside Pydantic models and JSON responses.

- WindowId: the four comparison horizons shown as summary tiles
- ZClassification: significance band derived from the Poisson z-score
- CrimeAgainst: NIBRS "crime against" grouping used to order the drilldown
"""

from enum import Enum


class WindowId(str, Enum):
    """
    Comparison window identifiers.

    Values: '7d' | '28d' | 'ytd' | '365d'

    - 7d / 28d / 365d: fixed-length windows ending at the reference day
    - ytd: January 1 of the reference year through the reference day
    """
    LAST_7_DAYS = "7d"
    LAST_28_DAYS = "28d"
    YEAR_TO_DATE = "ytd"
    LAST_365_DAYS = "365d"


class ZClassification(str, Enum):
    """
    Significance band for a current-vs-previous comparison.

    Thresholds (applied to the Poisson z-score):
    - Spike: z >= 3.5
    - Elevated: z >= 1.0
    - Below Normal: z <= -1.0
    - Normal: everything in between
    """
    SPIKE = "Spike"
    ELEVATED = "Elevated"
    NORMAL = "Normal"
    BELOW_NORMAL = "Below Normal"


class CrimeAgainst(str, Enum):
    """NIBRS crime-against categories, in drilldown display order."""
    PERSON = "Person"
    PROPERTY = "Property"
    SOCIETY = "Society"
