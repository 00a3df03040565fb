"""
FastAPI application entry point for the ChurnGuard API.

This module configures logging and CORS, registers the API routers under
/api, and starts the ASGI server when run directly:

    python -m churnguard.main
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from churnguard import __version__
from churnguard.api import api_router
from churnguard.core.config import get_settings
from churnguard.core.dependencies import get_metrics_provider, get_session_store
from churnguard.services.thresholds import get_threshold_policy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Build the metrics provider and session store
        - Log the effective threshold policy

    On shutdown:
        - Log shutdown message
    """
    settings = get_settings()
    logger.info(f"{settings.app_name} API starting")

    provider = get_metrics_provider()
    get_session_store()
    policy = get_threshold_policy()
    logger.info(
        f"Metrics provider {type(provider).__name__} ready; "
        f"threshold policy {policy.name} v{policy.version}"
    )
    if settings.dashboard_password == "change-me":
        logger.warning("DASHBOARD_PASSWORD is not set; using the default password")

    yield

    logger.info(f"{settings.app_name} API shutting down")


# Create FastAPI application
app = FastAPI(
    title="ChurnGuard API",
    version=__version__,
    description=(
        "Churn risk classification for restaurant-client accounts. "
        "Provides classified account tables, per-account risk history, "
        "risk distributions and dashboard sessions."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware for the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5000",
        "http://127.0.0.1:5000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy", "service": get_settings().app_name}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": f"{get_settings().app_name} API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "churnguard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
