"""
FastAPI application entry point for the CompStat API.

This module wires the service together: it configures logging and CORS,
builds the Socrata client, data source and CompstatService during the
lifespan, and registers the API routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from compstat import __version__
from compstat.api import api_router
from compstat.core.config import get_settings
from compstat.core.socrata import SocrataClient
from compstat.services.compstat import CompstatService
from compstat.services.data_source import SocrataDataSource

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the shared Socrata client
        - Build the data source and the CompstatService on app.state

    On shutdown:
        - Close the Socrata HTTP client
    """
    # Startup
    logger.info("CompStat API starting")
    client = SocrataClient.from_settings(settings)
    data_source = SocrataDataSource(client, incident_limit=settings.incident_sample_limit)
    app.state.socrata_client = client
    app.state.compstat_service = CompstatService.from_settings(data_source, settings)
    logger.info(f"Socrata source: {settings.socrata_dataset_url}")

    yield

    # Shutdown
    logger.info("CompStat API shutting down")
    try:
        await client.aclose()
        logger.info("Socrata client closed")
    except Exception as e:
        logger.error(f"Error closing Socrata client: {e}")


# Create FastAPI application
app = FastAPI(
    title="CompStat API",
    version=__version__,
    description=(
        "CompStat analytics over the Dallas police incident dataset: "
        "window comparisons, weekly trends, breakdowns and offense drilldowns."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(api_router)


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "CompStat API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "compstat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
