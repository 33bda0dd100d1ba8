"""
Core infrastructure package for the CompStat backend.

Provides:
- Configuration management via pydantic-settings
- The async Socrata (SODA) HTTP client

FastAPI dependencies live in compstat.core.dependencies and are imported from
there directly, since they reference the service layer:

    from compstat.core import get_settings, SocrataClient
    from compstat.core.dependencies import CompstatServiceDep
"""

from compstat.core.config import (
    DEFAULT_DATASET_URL,
    DEFAULT_TIMEZONE,
    Settings,
    get_settings,
)
from compstat.core.socrata import (
    SocrataClient,
    SocrataQueryError,
)

__all__ = [
    # Configuration
    "DEFAULT_DATASET_URL",
    "DEFAULT_TIMEZONE",
    "Settings",
    "get_settings",
    # Socrata
    "SocrataClient",
    "SocrataQueryError",
]
