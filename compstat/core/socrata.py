"""
Async HTTP client for the Socrata (SODA) open-data API.

This module is the single point through which the backend talks to the
incident dataset. It owns one httpx.AsyncClient (connection pooling, timeout,
app-token header) and records the outcome of the most recent query so the
health endpoint can report source availability without issuing a request.
Successful results are kept for QUERY_CACHE_TTL_SECONDS, keyed by the sorted
query parameters, so window counts and lookup lists that do not depend on the
focus window are not re-issued when only the focus window changes.

Lifecycle:
    The FastAPI lifespan creates one client at startup and closes it at
    shutdown:

        client = SocrataClient.from_settings(get_settings())
        ...
        await client.aclose()

Error Handling:
    Transport failures and non-2xx responses raise SocrataQueryError and are
    recorded as lastError. A later successful query clears lastError. Failed
    queries are never cached.

Dependencies:
    - httpx: async HTTP client
    - compstat.core.config: dataset URL, app token and timeout
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from compstat.core.config import Settings
from compstat.models import SocrataError, SocrataHealth


logger = logging.getLogger(__name__)

# Error bodies are truncated to this many characters in messages and health
ERROR_SNIPPET_LENGTH = 200

QUERY_CACHE_TTL_SECONDS = 300.0


class SocrataQueryError(Exception):
    """A SODA request failed at the transport level or returned non-2xx."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SocrataClient:
    """
    Thin async wrapper over one SODA resource URL.

    Args:
        dataset_url: Resource endpoint, e.g. https://.../resource/qv6i-rri7.json
        app_token: Optional app token, sent as X-App-Token and $$app_token.
        timeout: httpx timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
        cache_ttl: Seconds a successful result is reused for identical params.
        timer: Monotonic seconds used for result expiry.
    """

    def __init__(
        self,
        dataset_url: str,
        app_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_ttl: float = QUERY_CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ):
        headers = {"Accept": "application/json"}
        if app_token:
            headers["X-App-Token"] = app_token

        self.dataset_url = dataset_url
        self.app_token = app_token
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)
        self._last_success: Optional[datetime] = None
        self._last_error: Optional[SocrataError] = None
        self._cache_ttl = cache_ttl
        self._timer = timer
        self._cache: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SocrataClient":
        return cls(
            dataset_url=settings.socrata_dataset_url,
            app_token=settings.socrata_app_token,
            timeout=settings.socrata_timeout_seconds,
        )

    async def query(self, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """
        Run one SoQL query and return the decoded JSON rows.

        Identical params within cache_ttl are answered from memory.

        Raises:
            SocrataQueryError: On transport errors or non-2xx responses.
        """
        key = json.dumps(params, sort_keys=True)
        cached = self._cache.get(key)
        if cached is not None and cached[0] > self._timer():
            logger.debug(f"Socrata query cache hit: {key}")
            return cached[1]

        request_params = dict(params)
        if self.app_token:
            request_params["$$app_token"] = self.app_token

        try:
            response = await self._client.get(self.dataset_url, params=request_params)
        except httpx.RequestError as exc:
            message = f"Request to Socrata failed: {exc}"
            self._record_error(message[:ERROR_SNIPPET_LENGTH], None)
            raise SocrataQueryError(message) from exc

        if response.is_error:
            snippet = response.text[:ERROR_SNIPPET_LENGTH]
            self._record_error(snippet, response.status_code)
            raise SocrataQueryError(
                f"Failed to query Socrata ({response.status_code}): {snippet}",
                status=response.status_code,
            )

        rows = response.json()
        self._last_success = datetime.now(timezone.utc)
        self._last_error = None
        self._cache[key] = (self._timer() + self._cache_ttl, rows)
        return rows

    def clear_cache(self) -> None:
        self._cache.clear()

    def _record_error(self, message: str, status: Optional[int]) -> None:
        logger.warning(f"Socrata query failed (status={status}): {message}")
        self._last_error = SocrataError(
            timestamp=datetime.now(timezone.utc),
            message=message,
            status=status,
        )

    def health(self) -> SocrataHealth:
        return SocrataHealth(lastSuccess=self._last_success, lastError=self._last_error)

    async def aclose(self) -> None:
        await self._client.aclose()
