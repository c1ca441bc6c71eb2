"""OpenAPI Aggregator: serves collated OpenAPI documents of many services."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI

from aggregator.scheduler import ScrapeScheduler
from aggregator.storage import Storage
from server.config import ServerConfig, settings
from server.middleware.request_metrics import RequestMetricsMiddleware
from server.routes import health, openapi

logger = logging.getLogger(__name__)


def create_app(
    cfg: ServerConfig,
    store: Storage,
    scheduler: ScrapeScheduler | None = None,
    graceful_timeout: float | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Build the FastAPI application serving collated versions from store.

    When a scheduler is given, it runs for the lifetime of the application.
    On shutdown it gets up to ``graceful_timeout`` seconds to finish the
    in-flight scrape before storage is closed.
    """
    timeout = settings.graceful_timeout if graceful_timeout is None else graceful_timeout

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            scheduler.start()
        logger.info("serving %d service(s)", len(cfg.services))
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop(timeout)
                await scheduler.scraper.close()
            await store.close()
            logger.info("shutdown complete")

    app = FastAPI(
        title="OpenAPI Aggregator",
        description="Collated OpenAPI documents of all configured services, by version",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = cfg
    app.state.storage = store
    app.state.clock = clock

    app.add_middleware(RequestMetricsMiddleware)

    app.include_router(openapi.router)
    app.include_router(health.router)
    return app
