from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.dependencies import Container, build_container_from_settings
from src.messaging.api.routes.messages import router as messages_router
from src.messaging.api.routes.webhook import router as webhook_router
from src.platform.api.routes.quota_routes import router as quota_router
from src.shared.config import Settings, get_settings
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.health import router as health_router
from src.shared.logging import get_logger, setup_logging
from src.shared.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """
    Build the ASGI app.

    Tests pass a prebuilt container (in-memory adapters, fake provider); in
    production it is built from settings inside the lifespan.
    """
    settings = settings or (container.settings if container else get_settings())
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        c = container or await build_container_from_settings(settings)
        app.state.container = c
        await c.start()
        logger.info("Application started", environment=settings.environment)
        try:
            yield
        finally:
            await c.stop()
            logger.info("Application stopped")

    app = FastAPI(
        title="Workshop Messaging API",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )
    # X-Correlation-Id → request.state.correlation_id + log context
    app.add_middleware(CorrelationIdMiddleware)

    # Routers
    app.include_router(health_router)
    app.include_router(quota_router)
    app.include_router(messages_router)
    app.include_router(webhook_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": "Workshop Messaging API",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
