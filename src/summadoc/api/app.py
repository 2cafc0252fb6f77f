"""FastAPI application factory for Summadoc.

Creates the application with:
- Document collection and user routers
- Health probes and Prometheus metrics
- Lifecycle management for the database, cache and completion client
- Result/Message error bodies for domain and API errors
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from summadoc import __version__
from summadoc.api.errors import (
    ApiError,
    api_exception_handler,
    domain_exception_handler,
    generic_exception_handler,
)
from summadoc.api.middleware import CorrelationMiddleware
from summadoc.api.routers import documents, health, users
from summadoc.api.routers import metrics as metrics_router
from summadoc.cache import close_redis, get_redis
from summadoc.config import settings
from summadoc.core.errors import SummadocError
from summadoc.observability import configure_logging
from summadoc.observability.metrics import MetricsMiddleware, get_metrics
from summadoc.persistence.db import close_db, init_db
from summadoc.services.completion import close_completion_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup: configure logging, metrics, the database schema and the
    Redis client. On shutdown: close the completion client, Redis and the
    database pool.
    """
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    logger.info(f"Starting Summadoc ({settings.env})")
    await init_db()
    if settings.cache_enabled:
        await get_redis()
    else:
        logger.info("Cache disabled; every read is served from the store")
    logger.info("Summadoc startup complete")

    yield

    logger.info("Shutting down Summadoc")
    await close_completion_client()
    await close_redis()
    await close_db()
    logger.info("Summadoc shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Summadoc",
        description="Per-user collections of summarized documents",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # CorrelationMiddleware is innermost so ids are set for everything below it
    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(SummadocError, cast(ExceptionHandler, domain_exception_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)
    app.include_router(documents.router)
    app.include_router(users.router)

    return app
