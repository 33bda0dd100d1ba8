"""
Settings and environment management for the CompStat backend.

Configuration is loaded with pydantic-settings from environment variables and
an optional .env file. Values are validated and coerced once, then shared via
the @lru_cache singleton returned by get_settings().

Environment Variables:
- SOCRATA_DATASET_URL: SODA endpoint of the incident dataset
- SOCRATA_APP_TOKEN: Optional app token (raises the anonymous rate limit)
- SOCRATA_TIMEOUT_SECONDS: HTTP timeout for a single open-data request
- ADAPTER_TIMEOUT_SECONDS: Upper bound for any adapter call during aggregation
- COMPSTAT_TIMEZONE: Operational time zone that defines "a day"
- INCIDENT_SAMPLE_LIMIT: Maximum incidents returned for the map and table
- LOG_LEVEL: Root log level
- CORS_ORIGINS: JSON list of allowed browser origins

Usage:
    from compstat.core.config import get_settings

    settings = get_settings()
    timeout = settings.adapter_timeout_seconds
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATASET_URL = "https://www.dallasopendata.com/resource/qv6i-rri7.json"
DEFAULT_TIMEZONE = "America/Chicago"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        socrata_dataset_url: SODA resource URL for the police incidents dataset.
        socrata_app_token: Optional Socrata app token.
        socrata_timeout_seconds: httpx timeout for each open-data request.
        adapter_timeout_seconds: asyncio timeout wrapped around each adapter
            call made by the aggregator. Exceeding it fails the aggregation
            and triggers stale serving.
        compstat_timezone: IANA zone used for all day boundaries.
        incident_sample_limit: Size of the newest-first incident sample.
        log_level: Root logging level name.
        cors_origins: Origins allowed by the CORS middleware.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Open-data source
    # =========================================================================

    socrata_dataset_url: str = DEFAULT_DATASET_URL

    # Sent as X-App-Token and $$app_token when present
    socrata_app_token: Optional[str] = None

    socrata_timeout_seconds: float = 30.0

    # =========================================================================
    # Aggregation
    # =========================================================================

    adapter_timeout_seconds: float = 20.0

    compstat_timezone: str = DEFAULT_TIMEZONE

    incident_sample_limit: int = 350

    # =========================================================================
    # Service
    # =========================================================================

    log_level: str = 'INFO'

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
