"""
Pytest test module for the CompStat aggregator.

Runs the full aggregation against the fake adapter from conftest at the
reference instant 2024-09-30 12:00 America/Chicago and checks both the
payload and the queries the adapter received.
"""

import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from compstat.models import DashboardFilters, WindowId, ZClassification
from compstat.services.aggregator import (
    AdapterTimeout,
    AggregationFailure,
    CompstatAggregator,
)


@pytest.fixture
def aggregator(fake_adapter: Mock) -> CompstatAggregator:
    return CompstatAggregator(fake_adapter, adapter_timeout=5.0)


class TestBuild:
    """End-to-end payload from the fake adapter."""

    @pytest.mark.asyncio
    async def test_windows_and_metrics(self, aggregator: CompstatAggregator, reference: datetime) -> None:
        response = await aggregator.build(DashboardFilters(), "28d", reference)

        assert [metric.id for metric in response.windows] == list(WindowId)
        for metric in response.windows:
            assert metric.current == 100
            assert metric.changePct == 0.0
            assert metric.zScore == 0.0
            assert metric.classification == ZClassification.NORMAL

    @pytest.mark.asyncio
    async def test_breakdown_change(self, aggregator: CompstatAggregator, reference: datetime) -> None:
        response = await aggregator.build(DashboardFilters(), "28d", reference)

        theft = next(row for row in response.topOffenses if row.label == "THEFT")
        burglary = next(row for row in response.topOffenses if row.label == "BURGLARY")
        assert theft.changePct == pytest.approx(20.0, abs=0.1)
        assert burglary.changePct == pytest.approx(-25.0)

        southwest = response.divisionLeaders[0]
        assert southwest.label == "SOUTHWEST"
        assert southwest.changePct == pytest.approx((90 - 84) / 84 * 100)

    @pytest.mark.asyncio
    async def test_previous_breakdown_restricted_to_current_labels(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        await aggregator.build(DashboardFilters(), "28d", reference)

        calls = fake_adapter.fetch_top_offenses.await_args_list
        assert len(calls) == 2
        assert calls[1].kwargs["only_labels"] == ["THEFT", "BURGLARY"]
        assert calls[1].kwargs["limit"] == 2

        division_calls = fake_adapter.fetch_divisions.await_args_list
        assert division_calls[1].kwargs["only_labels"] == ["SOUTHWEST", "NORTHEAST"]

    @pytest.mark.asyncio
    async def test_drilldown_orders_person_first(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        response = await aggregator.build(DashboardFilters(), "28d", reference)

        rows = response.drilldown[WindowId.LAST_7_DAYS]
        assert [row.crimeAgainst for row in rows] == ["Person", "Property"]
        assert rows[0].code == "13A"
        assert fake_adapter.fetch_offense_details.await_count == 3

    @pytest.mark.asyncio
    async def test_query_volume(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        await aggregator.build(DashboardFilters(), "28d", reference)

        assert fake_adapter.fetch_count_for_range.await_count == 12
        assert fake_adapter.fetch_daily_trend.await_count == 1
        assert fake_adapter.fetch_incidents.await_count == 1
        assert fake_adapter.fetch_distinct_values.await_count == 2

    @pytest.mark.asyncio
    async def test_history_request(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        await aggregator.build(DashboardFilters(), "28d", reference)

        call = fake_adapter.fetch_daily_trend.await_args
        history_range = call.args[0]
        assert history_range.start.date() == date(2021, 9, 30)
        assert history_range.end.date() == date(2024, 9, 30)
        assert call.kwargs["limit"] == 1104

    @pytest.mark.asyncio
    async def test_focus_window_drives_context_queries(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        response = await aggregator.build(DashboardFilters(), WindowId.LAST_7_DAYS, reference)

        focus_range = fake_adapter.fetch_incidents.await_args.args[0]
        assert focus_range.start.date() == date(2024, 9, 24)
        assert fake_adapter.fetch_day_of_week_counts.await_args.args[0] == focus_range
        assert response.filters.focusRange == WindowId.LAST_7_DAYS
        assert response.focusNarrative.startswith("Last 7 days: 100 incidents")

    @pytest.mark.asyncio
    async def test_payload_context(self, aggregator: CompstatAggregator, reference: datetime) -> None:
        filters = DashboardFilters(division="SOUTHWEST")
        response = await aggregator.build(filters, "28d", reference)

        assert response.generatedAt == reference.astimezone(timezone.utc)
        assert response.meta.stale is False
        assert response.filters.applied == filters
        assert response.filters.availableDivisions == ["NORTHEAST", "SOUTHWEST"]
        assert response.trend == []
        assert [row.label for row in response.incidentCategories] == ["BURGLARY"]
        assert [row.label for row in response.incidentDivisions] == ["SOUTHWEST"]
        assert [bucket.label for bucket in response.dayOfWeek] == ["Sun", "Mon"]
        assert response.focusNarrative == (
            "Last 28 days: 100 incidents vs 100 (0.0% and 0.0 z-score, Normal). "
            "Most frequent offense: THEFT (120 cases). "
            "Highest volume division: SOUTHWEST (90 cases)."
        )

    @pytest.mark.asyncio
    async def test_filters_reach_every_query(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        filters = DashboardFilters(offenseCategory="ASSAULT OFFENSES")
        await aggregator.build(filters, "28d", reference)

        for call in fake_adapter.fetch_count_for_range.await_args_list:
            assert call.args[1] == filters
        assert fake_adapter.fetch_offense_details.await_args.args[1] == filters


class TestEdgeCases:

    @pytest.mark.asyncio
    async def test_no_labels_skips_previous_breakdown(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        fake_adapter.fetch_top_offenses = AsyncMock(return_value=[])

        response = await aggregator.build(DashboardFilters(), "28d", reference)

        assert response.topOffenses == []
        assert fake_adapter.fetch_top_offenses.await_count == 1
        assert "Most frequent offense" not in response.focusNarrative

    @pytest.mark.asyncio
    async def test_empty_drilldown_is_omitted(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        fake_adapter.fetch_offense_details = AsyncMock(return_value=[])

        response = await aggregator.build(DashboardFilters(), "28d", reference)

        assert response.drilldown == {}

    @pytest.mark.asyncio
    async def test_public_drilldown(self, aggregator: CompstatAggregator, reference: datetime) -> None:
        rows = await aggregator.build_offense_drilldown("28d", reference, DashboardFilters())

        assert [row.code for row in rows] == ["13A", "23"]
        assert rows[0].changePct == 0.0


class TestFailures:

    @pytest.mark.asyncio
    async def test_adapter_error_becomes_aggregation_failure(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        fake_adapter.fetch_incidents.side_effect = RuntimeError("socrata down")

        with pytest.raises(AggregationFailure) as exc_info:
            await aggregator.build(DashboardFilters(), "28d", reference)

        assert not isinstance(exc_info.value, AdapterTimeout)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_slow_adapter_times_out(self, fake_adapter: Mock, reference: datetime) -> None:
        async def slow_count(*args, **kwargs) -> int:
            await asyncio.sleep(1)
            return 100

        fake_adapter.fetch_count_for_range.side_effect = slow_count
        aggregator = CompstatAggregator(fake_adapter, adapter_timeout=0.01)

        with pytest.raises(AdapterTimeout):
            await aggregator.build(DashboardFilters(), "28d", reference)

    @pytest.mark.asyncio
    async def test_failure_in_first_batch_stops_later_batches(
        self,
        aggregator: CompstatAggregator,
        fake_adapter: Mock,
        reference: datetime,
    ) -> None:
        fake_adapter.fetch_count_for_range.side_effect = RuntimeError("boom")

        with pytest.raises(AggregationFailure):
            await aggregator.build(DashboardFilters(), "28d", reference)

        assert fake_adapter.fetch_daily_trend.await_count == 0
