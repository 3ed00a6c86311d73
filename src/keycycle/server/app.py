"""
FastAPI application factory and server setup.

This module creates and configures the FastAPI application with:
- Router construction from settings and the YAML backend pool
- Request logging
- Rotation event forwarding to WebSocket clients
- Route registration
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from keycycle import __version__
from keycycle.backends import gemini_client_factory
from keycycle.router import (
    MultiBackendRouter,
    RouterConfig,
    backends_from_keys,
    get_router,
    load_router_config,
    set_router,
)
from keycycle.server.config import Settings, get_settings
from keycycle.server.middleware import RequestLoggingMiddleware
from keycycle.server.routes import admin, generate, health
from keycycle.server.websocket import get_connection_manager
from keycycle.server.websocket import router as ws_router

logger = logging.getLogger(__name__)


def load_pool_config(settings: Settings) -> RouterConfig:
    """
    Resolve the router configuration.

    The YAML file's router section wins; environment settings provide the
    defaults. Without configured backends, KEYCYCLE_ROUTER_API_KEYS is used.
    """
    defaults = settings.router.to_router_config()
    path = settings.server.config_path
    config = load_router_config(path, defaults=defaults) if path else defaults

    if not config.backends:
        config.backends = backends_from_keys(settings.router.key_list())

    return config


def build_router(settings: Settings) -> MultiBackendRouter:
    """Create the router for the current settings."""
    config = load_pool_config(settings)
    if not config.backends:
        logger.warning("No backends configured; every request will fail with 503")

    return MultiBackendRouter.from_config(
        config,
        client_factory=gemini_client_factory(
            base_url=settings.router.gemini_base_url,
            timeout=settings.router.request_timeout,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Build and install the router (unless one is already installed)
    - Forward router events to WebSocket clients
    - Close backend clients on shutdown
    """
    settings = get_settings()
    manager = get_connection_manager()

    routing = get_router()
    owns_router = routing is None
    if routing is None:
        routing = build_router(settings)
        set_router(routing)

    routing.add_listener(manager.forward_router_event)
    logger.info(f"Server starting on {settings.server.host}:{settings.server.port}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    routing.remove_listener(manager.forward_router_event)
    if owns_router:
        await routing.aclose()
        set_router(None)


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title="keycycle - Multi-backend Router",
        description="Route generation requests across API keys with rate-limit failover",
        version=__version__,
        docs_url="/docs" if settings.server.docs_enabled else None,
        redoc_url="/redoc" if settings.server.docs_enabled else None,
        lifespan=lifespan,
    )

    if settings.server.request_logging:
        app.add_middleware(RequestLoggingMiddleware)

    # Register routes
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(generate.router, prefix="/v1", tags=["Generation"])
    app.include_router(admin.router, prefix="/admin", tags=["Admin"])
    app.include_router(ws_router, prefix="/ws", tags=["WebSocket"])

    @app.get("/")
    async def root() -> dict:  # pyright: ignore[reportUnusedFunction]
        """Root endpoint with basic info."""
        return {
            "name": "keycycle",
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.server.docs_enabled else None,
        }

    return app


# Create default app instance
app = create_app()
