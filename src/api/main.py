"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures logging, and manages the backend client in lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.adapters.backend.http import HttpRegistrationBackend
from src.adapters.backend.memory import InMemoryRegistrationBackend
from src.adapters.repository.memory import InMemoryFlowRepository
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Event Registration API v1 - Conditional forms, identity lookup and event registration",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Configures log level from settings
    - Creates the registration backend client on startup
    - Closes the backend client on shutdown
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    logger.info("Starting application...")

    http_backend = None
    if settings.use_in_memory_backend:
        logger.info("Using in-memory registration backend")
        app.state.backend = InMemoryRegistrationBackend()
    else:
        logger.info("Connecting to registration backend at %s", settings.backend_base_url)
        http_backend = HttpRegistrationBackend.from_settings(settings)
        app.state.backend = http_backend

    app.state.flows = InMemoryFlowRepository(
        max_flows=settings.max_live_flows, ttl_seconds=settings.flow_ttl_seconds
    )

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if http_backend is not None:
        await http_backend.aclose()
        logger.info("Registration backend client closed")


app = FastAPI(
    title="event-registration",
    description="Event Registration API - Dynamic registration forms with conditional fields, "
    "identifier-based lookup and one anonymous session per device",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns 200 OK while the application is serving requests. The
    registration backend is not contacted; its failures surface as 502 on
    the flow endpoints.
    """
    return {"status": "healthy"}
