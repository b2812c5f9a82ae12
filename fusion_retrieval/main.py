"""
Main entry point for the fusion retrieval service.

Creates the FastAPI application instance for uvicorn:

    uvicorn fusion_retrieval.main:app --port 8090
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fusion_retrieval.adapters.memory import close_memory
from fusion_retrieval.api.dependencies import ServiceContainer, get_services, set_services
from fusion_retrieval.api.error_handlers import register_error_handlers
from fusion_retrieval.api.routes import health_router, search_router, sources_router
from fusion_retrieval.core.constants import API_VERSION
from fusion_retrieval.core.logging import configure_logging, get_logger


# Configure structured logging on module load
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    On startup: build (or reuse) the service container and start the
    background health monitor
    On shutdown: stop the monitor and close the memory client
    """
    services = get_services()
    app.state.services = services
    logger.info(
        "Starting fusion retrieval service",
        port=services.settings.port,
        sources=len(services.registry),
    )
    services.monitor.start()

    yield

    logger.info("Shutting down fusion retrieval service")
    await services.monitor.stop()
    await close_memory(services.memory)


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services (tests); built from settings when omitted

    Registers:
    - sources_router: /sources, /sources/{id}, /sources/{id}/test, /source-types
    - search_router: POST /search
    - health_router: GET /health, /health/ready, /health/live
    """
    if services is not None:
        set_services(services)

    app = FastAPI(
        title="Fusion Retrieval Service",
        description="Fused search over temporal memory and external knowledge sources",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(sources_router)
    app.include_router(search_router)
    app.include_router(health_router)

    return app


# Create application instance
app = create_app()
