"""
CompStat service: cached, single-flight access to the aggregator.

One CompstatService instance lives on app.state for the process lifetime.
It owns the aggregator, the TTL response cache, the map of in-flight
aggregations and the timestamp of the last successful build, so tests can
construct an isolated instance with a fake adapter, clock and timer.

Request flow:
    1. Fresh cache hit -> return the cached payload, no adapter calls.
    2. An aggregation for the same key is already running -> await it.
    3. Otherwise start one aggregation, publish it as in-flight, and store the
       result in the cache on success. Failures propagate to every waiter and
       leave the cache untouched.

Stale fallback is the caller's decision: serve_stale() reads the cache with
allow_stale and returns a copy flagged meta.stale = True.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Union

from compstat.core.config import Settings
from compstat.models import (
    CompstatHealth,
    CompstatMeta,
    CompstatResponse,
    DashboardFilters,
    WindowId,
)
from compstat.services.aggregator import (
    DEFAULT_ADAPTER_TIMEOUT_SECONDS,
    AdapterTimeout,
    CompstatAggregator,
)
from compstat.services.cache import RESPONSE_TTL_SECONDS, ResponseCache, build_cache_key
from compstat.services.data_source import DataSourceAdapter
from compstat.services.windows import DEFAULT_FOCUS_WINDOW, ZoneLike, resolve_zone


logger = logging.getLogger(__name__)

STALE_REASON = "Live data is unavailable; showing the last cached snapshot."
STALE_TIMEOUT_REASON = "Live data timed out; showing the last cached snapshot."

FiltersLike = Union[DashboardFilters, Mapping[str, Optional[str]], None]


def _coerce_filters(filters: FiltersLike) -> DashboardFilters:
    if isinstance(filters, DashboardFilters):
        return filters
    return DashboardFilters.model_validate(dict(filters or {}))


def mark_stale(payload: CompstatResponse, reason: str = STALE_REASON) -> CompstatResponse:
    """Copy of payload with meta.stale set; an existing meta.reason is kept."""
    meta = CompstatMeta(stale=True, reason=payload.meta.reason or reason)
    return payload.model_copy(update={"meta": meta})


class CompstatService:
    """
    Process-wide entry point for CompStat payloads.

    Args:
        adapter: Data source the aggregator queries.
        zone: Operational time zone (defaults to America/Chicago).
        adapter_timeout: Per-call adapter timeout in seconds.
        ttl_seconds: Freshness window of cached payloads.
        clock: Returns the reference instant for a new aggregation.
        timer: Monotonic seconds used for cache expiry.
    """

    def __init__(
        self,
        adapter: DataSourceAdapter,
        *,
        zone: ZoneLike = None,
        adapter_timeout: Optional[float] = DEFAULT_ADAPTER_TIMEOUT_SECONDS,
        ttl_seconds: float = RESPONSE_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.zone = resolve_zone(zone)
        self.aggregator = CompstatAggregator(adapter, zone=self.zone, adapter_timeout=adapter_timeout)
        self.cache = ResponseCache(ttl_seconds=ttl_seconds, timer=timer)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._in_flight: Dict[str, "asyncio.Future[CompstatResponse]"] = {}
        self._last_success: Optional[datetime] = None

    @classmethod
    def from_settings(cls, adapter: DataSourceAdapter, settings: Settings) -> "CompstatService":
        return cls(
            adapter,
            zone=settings.compstat_timezone,
            adapter_timeout=settings.adapter_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Payloads
    # -------------------------------------------------------------------------

    async def build_compstat_response(
        self,
        filters: FiltersLike = None,
        focus_window: Union[WindowId, str] = DEFAULT_FOCUS_WINDOW,
    ) -> CompstatResponse:
        """
        Return a fresh payload for (filters, focus_window).

        Concurrent callers with the same key share one aggregation.

        Raises:
            AggregationFailure: The aggregation failed (nothing is cached).
        """
        filters = _coerce_filters(filters)
        focus_window = WindowId(focus_window)
        key = build_cache_key(filters, focus_window)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"CompStat cache hit for {key}")
            return cached

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(key, filters, focus_window))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug(f"Joining in-flight CompStat aggregation for {key}")

        return await asyncio.shield(pending)

    async def _refresh(
        self,
        key: str,
        filters: DashboardFilters,
        focus_window: WindowId,
    ) -> CompstatResponse:
        payload = await self.aggregator.build(filters, focus_window, self._clock())
        self.cache.put(key, payload)
        self._last_success = payload.generatedAt
        return payload

    def _forget(self, key: str, future: "asyncio.Future[CompstatResponse]") -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        # Retrieve the exception so an unawaited failure is not reported at GC time
        if not future.cancelled():
            future.exception()

    def get_cached_compstat_response(
        self,
        filters: FiltersLike = None,
        focus_window: Union[WindowId, str] = DEFAULT_FOCUS_WINDOW,
        allow_stale: bool = False,
    ) -> Optional[CompstatResponse]:
        return self.cache.get(build_cache_key(_coerce_filters(filters), focus_window), allow_stale)

    def serve_stale(
        self,
        filters: FiltersLike,
        focus_window: Union[WindowId, str],
        error: Optional[BaseException] = None,
    ) -> Optional[CompstatResponse]:
        """Last cached payload for the key, flagged stale, or None if never cached."""
        cached = self.get_cached_compstat_response(filters, focus_window, allow_stale=True)
        if cached is None:
            return None
        reason = STALE_TIMEOUT_REASON if isinstance(error, AdapterTimeout) else STALE_REASON
        return mark_stale(cached, reason)

    def reset_compstat_cache(self) -> None:
        self.cache.reset()

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_compstat_health(self) -> CompstatHealth:
        return CompstatHealth(lastSuccess=self._last_success)
