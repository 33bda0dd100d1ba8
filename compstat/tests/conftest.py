"""
Pytest Configuration and Shared Fixtures for CompStat Backend Tests.

This module provides fixtures and configuration for all backend tests, supporting:
- Async test execution with pytest-asyncio
- A fake DataSourceAdapter built from AsyncMock primitives, so the aggregator
  and service run without the Socrata API
- A controllable monotonic timer for cache expiry tests
- A CompstatService factory pinned to a fixed reference instant

Fixture data (reference instant 2024-09-30 12:00 America/Chicago):
- Every window count query returns 100
- Offense categories: THEFT 120, BURGLARY 60 (previous window 100 / 80)
- Divisions: SOUTHWEST 90, NORTHEAST 70 (previous window 84 / 65)
- Offense details: 13A ASSAULT (Person) 24, 23 LARCENY (Property) 42
- Three days of daily history, one geocoded incident
"""

from datetime import date, datetime
from typing import Any, Callable, List, Optional, Sequence
from unittest.mock import AsyncMock, Mock
from zoneinfo import ZoneInfo

import pytest

from compstat.models import (
    BreakdownRow,
    DailyCount,
    HistogramBucket,
    IncidentFeature,
    OffenseDetail,
)
from compstat.services.compstat import CompstatService


CHICAGO = ZoneInfo("America/Chicago")
REFERENCE = datetime(2024, 9, 30, 12, 0, tzinfo=CHICAGO)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests that exercise several layers together
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests that run the aggregator, cache and routes together'
    )


# ============================================================
# FAKE ADAPTER
# ============================================================

def _breakdown(*pairs: Any) -> List[BreakdownRow]:
    return [BreakdownRow(label=label, count=count) for label, count in pairs]


def _top_offenses(
    date_range: Any,
    filters: Any,
    limit: int = 8,
    only_labels: Optional[Sequence[str]] = None,
) -> List[BreakdownRow]:
    if only_labels:
        return _breakdown(("THEFT", 100), ("BURGLARY", 80))
    return _breakdown(("THEFT", 120), ("BURGLARY", 60))


def _divisions(
    date_range: Any,
    filters: Any,
    limit: int = 8,
    only_labels: Optional[Sequence[str]] = None,
) -> List[BreakdownRow]:
    if only_labels:
        return _breakdown(("SOUTHWEST", 84), ("NORTHEAST", 65))
    return _breakdown(("SOUTHWEST", 90), ("NORTHEAST", 70))


def _distinct_values(field: str) -> List[str]:
    if field == "division":
        return ["NORTHEAST", "SOUTHWEST"]
    return ["ASSAULT OFFENSES", "LARCENY/ THEFT OFFENSES"]


def create_fake_adapter() -> Mock:
    """
    Build a fake DataSourceAdapter whose primitives are AsyncMocks.

    Tests override individual primitives through side_effect / return_value
    and inspect await_args_list afterwards.
    """
    adapter = Mock()
    adapter.fetch_count_for_range = AsyncMock(return_value=100)
    adapter.fetch_top_offenses = AsyncMock(side_effect=_top_offenses)
    adapter.fetch_divisions = AsyncMock(side_effect=_divisions)
    adapter.fetch_distinct_values = AsyncMock(side_effect=_distinct_values)
    adapter.fetch_daily_trend = AsyncMock(
        return_value=[
            DailyCount(day=date(2024, 9, 28), count=10),
            DailyCount(day=date(2024, 9, 29), count=12),
            DailyCount(day=date(2024, 9, 30), count=14),
        ]
    )
    adapter.fetch_incidents = AsyncMock(
        return_value=[
            IncidentFeature(
                id="INC-1",
                offense="BURGLARY",
                narrative="UNKNOWN SUSPECT ENTERED RESIDENCE",
                status="Open",
                occurred="2024-09-29T01:00:00.000",
                division="SOUTHWEST",
                beat="123",
                latitude=32.7,
                longitude=-96.8,
            )
        ]
    )
    adapter.fetch_day_of_week_counts = AsyncMock(
        return_value=[
            HistogramBucket(label="Sun", order=0, count=10),
            HistogramBucket(label="Mon", order=1, count=12),
        ]
    )
    adapter.fetch_hour_of_day_counts = AsyncMock(
        return_value=[
            HistogramBucket(label="00:00", order=0, count=4),
            HistogramBucket(label="01:00", order=1, count=6),
        ]
    )
    adapter.fetch_offense_details = AsyncMock(
        return_value=[
            OffenseDetail(code="23", label="LARCENY", crimeAgainst="Property", count=42),
            OffenseDetail(code="13A", label="ASSAULT", crimeAgainst="Person", count=24),
        ]
    )
    return adapter


class FakeTimer:
    """Monotonic timer the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def reference() -> datetime:
    """Reference instant used by the end-to-end fixture: 2024-09-30 12:00 Chicago."""
    return REFERENCE


@pytest.fixture
def fake_adapter() -> Mock:
    return create_fake_adapter()


@pytest.fixture
def fake_timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def make_service(fake_timer: FakeTimer) -> Callable[..., CompstatService]:
    """
    Factory for a CompstatService pinned to REFERENCE and the fake timer.

    Usage:
        service = make_service(fake_adapter, adapter_timeout=0.05)
    """

    def _make(adapter: Any, **overrides: Any) -> CompstatService:
        options = {
            "clock": lambda: REFERENCE,
            "timer": fake_timer,
            "adapter_timeout": 5.0,
        }
        options.update(overrides)
        return CompstatService(adapter, **options)

    return _make


@pytest.fixture
def service(make_service: Callable[..., CompstatService], fake_adapter: Mock) -> CompstatService:
    return make_service(fake_adapter)
