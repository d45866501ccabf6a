"""Application factory for the FastAPI app.

Centralizes app construction (lifespan, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from quota_gate.adapters.store.factory import connect_counter_store
from quota_gate.api.routes import demo_router, health_router
from quota_gate.core.config import settings
from quota_gate.core.exception_handlers import setup_exception_handlers
from quota_gate.core.logging import configure_logging
from quota_gate.core.middleware import request_id_middleware
from quota_gate.services.rate_limit_service import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the process-wide counter store for the lifetime of the app.

    The store is connected (and pinged) before the first request is served
    and closed on shutdown. A store that cannot be reached aborts startup.
    """
    store = await connect_counter_store(settings.store)
    app.state.counter_store = store
    app.state.rate_limiter = FixedWindowRateLimiter(
        store,
        strategy=settings.app.rate_limit_strategy,
    )
    logger.info(
        "app.started",
        extra={
            "store_backend": settings.store.backend,
            "strategy": settings.app.rate_limit_strategy,
            "rate_limit_enabled": settings.app.rate_limit_enabled,
        },
    )
    try:
        yield
    finally:
        await store.close()
        app.state.rate_limiter = None
        logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with lifespan, middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Gate",
        description=(
            "Fixed-window request rate limiting for FastAPI routes, backed by a "
            "shared Redis counter store so limits hold across every instance."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(demo_router)
    app.include_router(health_router)

    return app
