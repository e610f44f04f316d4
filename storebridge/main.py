"""Store bridge main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storebridge.api.checkout import PAYMENT_RESPONSE_HEADER
from storebridge.api.checkout import router as checkout_router
from storebridge.api.errors import register_exception_handlers
from storebridge.api.health import router as health_router
from storebridge.api.mcp import router as mcp_router
from storebridge.api.middleware import setup_middleware
from storebridge.api.orders import router as orders_router
from storebridge.api.stores import router as stores_router
from storebridge.application.order_intent_service import run_expiry_sweep
from storebridge.container import ServiceContainer, build_container
from storebridge.infrastructure.config import Settings, get_settings
from storebridge.infrastructure.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Builds the service container unless one was injected, and runs the
    expiry sweep when it is enabled.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, json_logs=not settings.debug)

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        app.state.container = build_container(settings)
    container: ServiceContainer = app.state.container

    logger.info(
        "Starting store bridge",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
    )

    sweep_task = None
    if settings.expiry_sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            run_expiry_sweep(container.service, settings.expiry_sweep_interval_seconds)
        )

    yield

    logger.info("Shutting down store bridge")
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    if owns_container:
        await container.close()


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        container: Prebuilt container; built at startup when omitted.

    Returns:
        Configured application.
    """
    if settings is None:
        settings = container.settings if container is not None else get_settings()

    app = FastAPI(
        title="x402 Store Bridge",
        description="x402 payments and agent tools for connected storefronts",
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    if container is not None:
        app.state.container = container

    # CORS middleware (must be added before custom middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[PAYMENT_RESPONSE_HEADER, "X-Request-ID"],
    )

    # Setup custom middleware (request ID, error handling)
    setup_middleware(app)
    register_exception_handlers(app)

    api = APIRouter(prefix="/api")
    api.include_router(checkout_router)
    api.include_router(orders_router)
    api.include_router(stores_router)
    api.include_router(mcp_router)

    app.include_router(health_router, tags=["Health"])
    app.include_router(api)

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "storebridge.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
