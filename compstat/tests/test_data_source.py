"""
Pytest test module for the Socrata client and data source.

HTTP is served by httpx.MockTransport, so these tests exercise the real
client (params, headers, error recording) and the row normalisation in
SocrataDataSource without network access.
"""

import json
from datetime import date
from typing import Any, Callable, Dict, List

import httpx
import pytest

from compstat.core.socrata import QUERY_CACHE_TTL_SECONDS, SocrataClient, SocrataQueryError
from compstat.models import DashboardFilters
from compstat.services.data_source import DataSourceAdapter, SocrataDataSource
from compstat.services.windows import build_range_from_dates
from compstat.tests.conftest import FakeTimer


DATASET_URL = "https://example.test/resource/qv6i-rri7.json"


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    app_token: str = None,
    timer: FakeTimer = None,
) -> SocrataClient:
    return SocrataClient(
        DATASET_URL,
        app_token=app_token,
        transport=httpx.MockTransport(handler),
        timer=timer or FakeTimer(),
    )


def _rows(rows: List[Dict[str, Any]]) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=rows)
    return handler


@pytest.fixture
def september():
    return build_range_from_dates(date(2024, 9, 1), date(2024, 9, 30))


# =============================================================================
# Client
# =============================================================================


class TestSocrataClient:

    @pytest.mark.asyncio
    async def test_query_sends_params_and_token(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"count": "3"}])

        client = _client(handler, app_token="secret")
        rows = await client.query({"$select": "count(incidentnum) as count"})
        await client.aclose()

        assert rows == [{"count": "3"}]
        assert seen[0].url.params["$select"] == "count(incidentnum) as count"
        assert seen[0].url.params["$$app_token"] == "secret"
        assert seen[0].headers["X-App-Token"] == "secret"

    @pytest.mark.asyncio
    async def test_error_is_recorded_and_cleared(self) -> None:
        responses = [httpx.Response(500, text="x" * 500), httpx.Response(200, json=[])]

        client = _client(lambda request: responses.pop(0))

        with pytest.raises(SocrataQueryError) as exc_info:
            await client.query({})
        assert exc_info.value.status == 500

        health = client.health()
        assert health.lastSuccess is None
        assert health.lastError.status == 500
        assert len(health.lastError.message) == 200

        await client.query({})
        health = client.health()
        assert health.lastSuccess is not None
        assert health.lastError is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(SocrataQueryError):
            await client.query({})

        assert client.health().lastError.status is None
        await client.aclose()


class TestSocrataQueryCache:

    @pytest.mark.asyncio
    async def test_identical_queries_make_one_request(self, september) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"count": "1180"}])

        source = SocrataDataSource(_client(handler))

        first = await source.fetch_count_for_range(september, DashboardFilters())
        second = await source.fetch_count_for_range(september, DashboardFilters())

        assert first == second == 1180
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_param_order_does_not_matter(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _client(handler)
        await client.query({"$select": "division", "$group": "division"})
        await client.query({"$group": "division", "$select": "division"})
        await client.query({"$group": "beat", "$select": "beat"})

        assert len(seen) == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_expired_result_is_refetched(self, september) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"count": str(len(seen))}])

        timer = FakeTimer()
        source = SocrataDataSource(_client(handler, timer=timer))

        assert await source.fetch_count_for_range(september, DashboardFilters()) == 1
        timer.advance(QUERY_CACHE_TTL_SECONDS - 1)
        assert await source.fetch_count_for_range(september, DashboardFilters()) == 1

        timer.advance(1)
        assert await source.fetch_count_for_range(september, DashboardFilters()) == 2
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self) -> None:
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json=[{"count": "7"}])]

        client = _client(lambda request: responses.pop(0))

        with pytest.raises(SocrataQueryError):
            await client.query({"$select": "count(incidentnum) as count"})
        rows = await client.query({"$select": "count(incidentnum) as count"})

        assert rows == [{"count": "7"}]
        assert responses == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _client(handler)
        await client.query({"$limit": "1"})
        client.clear_cache()
        await client.query({"$limit": "1"})

        assert len(seen) == 2
        await client.aclose()


# =============================================================================
# Data Source
# =============================================================================


class TestSocrataDataSource:

    def test_satisfies_protocol(self) -> None:
        source = SocrataDataSource(_client(_rows([])))
        assert isinstance(source, DataSourceAdapter)

    @pytest.mark.asyncio
    async def test_count(self, september) -> None:
        source = SocrataDataSource(_client(_rows([{"count": "1180"}])))
        assert await source.fetch_count_for_range(september, DashboardFilters()) == 1180

    @pytest.mark.asyncio
    async def test_count_without_rows(self, september) -> None:
        source = SocrataDataSource(_client(_rows([])))
        assert await source.fetch_count_for_range(september, DashboardFilters()) == 0

    @pytest.mark.asyncio
    async def test_breakdown_labels(self, september) -> None:
        source = SocrataDataSource(
            _client(_rows([{"category": "THEFT", "count": "120"}, {"count": "4"}]))
        )
        rows = await source.fetch_top_offenses(september, DashboardFilters())

        assert [(row.label, row.count) for row in rows] == [("THEFT", 120), ("Uncoded", 4)]

    @pytest.mark.asyncio
    async def test_breakdown_sends_label_restriction(self, september) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"division": None, "count": "2"}])

        source = SocrataDataSource(_client(handler))
        rows = await source.fetch_divisions(september, DashboardFilters(), only_labels=["NORTH"])

        assert rows[0].label == "Unassigned"
        assert "division IN ('NORTH')" in seen[0].url.params["$where"]
        assert seen[0].url.params["$limit"] == "1"

    @pytest.mark.asyncio
    async def test_distinct_values_skip_blanks(self) -> None:
        source = SocrataDataSource(_client(_rows([{"division": "NORTH"}, {"division": ""}, {}])))
        assert await source.fetch_distinct_values("division") == ["NORTH"]

    @pytest.mark.asyncio
    async def test_daily_trend(self, september) -> None:
        source = SocrataDataSource(
            _client(
                _rows(
                    [
                        {"day": "2024-09-01T00:00:00.000", "count": "5"},
                        {"day": "garbage", "count": "1"},
                        {"count": "9"},
                    ]
                )
            )
        )
        series = await source.fetch_daily_trend(september, DashboardFilters(), limit=30)

        assert len(series) == 1
        assert series[0].day == date(2024, 9, 1)
        assert series[0].count == 5

    @pytest.mark.asyncio
    async def test_incidents_drop_missing_coordinates(self, september) -> None:
        rows = [
            {
                "incidentnum": "INC-1",
                "offincident": "BURGLARY",
                "date1": "2024-09-02T01:00:00.000",
                "division": "SOUTHWEST",
                "beat": "123",
                "geocoded_column": {"latitude": "32.7", "longitude": "-96.8"},
            },
            {"incidentnum": "INC-2", "geocoded_column": {"latitude": "32.7"}},
            {"geocoded_column": {"latitude": "32.8", "longitude": "-96.9"}},
        ]
        source = SocrataDataSource(_client(_rows(rows)), incident_limit=10)

        incidents = await source.fetch_incidents(september, DashboardFilters())

        assert len(incidents) == 2
        assert incidents[0].id == "INC-1"
        assert incidents[0].latitude == pytest.approx(32.7)
        assert incidents[1].id
        assert incidents[1].offense == "Unspecified offense"

    @pytest.mark.asyncio
    async def test_incident_limit_is_sent(self, september) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=json.dumps([]).encode())

        source = SocrataDataSource(_client(handler), incident_limit=25)
        await source.fetch_incidents(september, DashboardFilters())

        assert seen[0].url.params["$limit"] == "25"
        assert seen[0].url.params["$order"] == "date1 DESC"

    @pytest.mark.asyncio
    async def test_day_of_week_order(self, september) -> None:
        rows = [{"day": "Wed", "count": "3"}, {"day": "Sun", "count": "1"}, {"day": "???", "count": "2"}]
        source = SocrataDataSource(_client(_rows(rows)))

        buckets = await source.fetch_day_of_week_counts(september, DashboardFilters())

        assert [(b.label, b.order) for b in buckets] == [("Sun", 0), ("Wed", 3)]

    @pytest.mark.asyncio
    async def test_hour_of_day_labels(self, september) -> None:
        rows = [{"hour": "13", "count": "3"}, {"hour": "02", "count": "1"}]
        source = SocrataDataSource(_client(_rows(rows)))

        buckets = await source.fetch_hour_of_day_counts(september, DashboardFilters())

        assert [(b.label, b.order) for b in buckets] == [("02:00", 2), ("13:00", 13)]

    @pytest.mark.asyncio
    async def test_offense_details_fallbacks(self, september) -> None:
        rows = [
            {"code": "13A", "label": "ASSAULT", "crime_against": "Person", "count": "24"},
            {"code": "90Z", "count": "2"},
            {"label": "no code", "count": "1"},
        ]
        source = SocrataDataSource(_client(_rows(rows)))

        details = await source.fetch_offense_details(september, DashboardFilters())

        assert [(d.code, d.label, d.crimeAgainst) for d in details] == [
            ("13A", "ASSAULT", "Person"),
            ("90Z", "90Z", "Unclassified"),
        ]
