"""
TTL response cache for CompStat payloads.

Entries are keyed by an order-normalised serialisation of (filters, focus
window), hold one complete CompstatResponse, and are replaced wholesale on
every successful aggregation. There is no eviction besides overwrite and
reset(); expired entries stay readable through allow_stale so the route layer
can fall back to them when a refresh fails.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from compstat.models import CompstatResponse, DashboardFilters, WindowId


# Fixed freshness window for cached payloads
RESPONSE_TTL_SECONDS: float = 120.0


@dataclass(frozen=True)
class CacheEntry:
    key: str
    expires_at: float
    payload: CompstatResponse


def build_cache_key(
    filters: Union[DashboardFilters, Mapping[str, Any], None],
    focus_window: Union[WindowId, str],
) -> str:
    """
    Deterministic cache key for a request.

    Filters are normalised through DashboardFilters (so 'ALL', blanks and
    surrounding whitespace collapse), unset fields are dropped and keys are
    sorted, so two filter objects with the same values always produce the
    same key regardless of field order.

    Example:
        >>> build_cache_key({"division": "NORTH"}, "28d")
        '{"filters":{"division":"NORTH"},"focusRange":"28d"}'
    """
    if not isinstance(filters, DashboardFilters):
        filters = DashboardFilters.model_validate(dict(filters or {}))
    payload = {
        "filters": filters.model_dump(exclude_none=True),
        "focusRange": WindowId(focus_window).value,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class ResponseCache:
    """
    In-memory map of cache key to CacheEntry.

    Args:
        ttl_seconds: Freshness window applied on put().
        timer: Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = RESPONSE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str, allow_stale: bool = False) -> Optional[CompstatResponse]:
        """
        Return the cached payload for key.

        Without allow_stale only entries with now < expires_at are returned;
        with it, any stored entry is. Missing keys return None.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not allow_stale and self._timer() >= entry.expires_at:
            return None
        return entry.payload

    def put(self, key: str, payload: CompstatResponse) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            expires_at=self._timer() + self.ttl_seconds,
            payload=payload,
        )
        self._entries[key] = entry
        return entry

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
