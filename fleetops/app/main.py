"""
FastAPI Application Entry Point.

This is the main application file for the Fleet Operations rule engine.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError

from fleetops.app.core.config import settings
from fleetops.app.api.v1.router import router as api_v1_router
from fleetops.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from fleetops.app.core.observability import ObservabilityMiddleware, configure_logging
from fleetops.app.core.redis_client import build_redis_client, ping_redis
from fleetops.app.db.memory_store import MemoryFleetStore
from fleetops.app.db.session import AsyncSessionLocal, create_tables, engine
from fleetops.app.db.sql_store import SqlFleetStore
from fleetops.app.services.cache import MetricsCache
from fleetops.app.services.change_feed import (
    LocalChangeFeed, RedisChangeFeed, run_cache_invalidator
)
from fleetops.app.services.fleet_coordinator import FleetCoordinator

logger = logging.getLogger("fleetops")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Builds the store, change feed, cache and coordinator from settings.
    2. Creates database tables when the SQL store is used.
    3. Follows the Redis change feed to drop cache entries written elsewhere.
    """
    configure_logging()
    redis_client = build_redis_client()
    app.state.redis = redis_client

    if settings.change_feed_backend == "redis":
        feed = RedisChangeFeed(redis_client, settings.change_feed_channel)
    else:
        feed = LocalChangeFeed()

    if settings.store_backend == "sql":
        await create_tables()
        store = SqlFleetStore(AsyncSessionLocal, change_feed=feed)
    else:
        store = MemoryFleetStore(change_feed=feed)

    cache = MetricsCache(redis_client) if settings.metrics_cache_enabled else None
    app.state.coordinator = FleetCoordinator(store, metrics_cache=cache)

    invalidator = None
    if cache is not None and isinstance(feed, RedisChangeFeed):
        invalidator = asyncio.create_task(
            run_cache_invalidator(feed, cache, settings.change_feed_retry_seconds)
        )

    logger.info(
        "Fleet engine started",
        extra={"store_backend": settings.store_backend, "change_feed_backend": settings.change_feed_backend,
               "metrics_cache_enabled": cache is not None}
    )
    yield

    if invalidator is not None:
        invalidator.cancel()
        with suppress(asyncio.CancelledError):
            await invalidator
    await redis_client.aclose()
    if settings.store_backend == "sql":
        await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Business-rule engine for fleet operations: vehicles, drivers, trips and expenses",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Redis only backs the cache and change feed, so an unreachable Redis is
    reported but does not make the service unhealthy.

    Returns:
        dict: Status and application information
    """
    redis_client = getattr(request.app.state, "redis", None)
    redis_ok = redis_client is not None and await ping_redis(redis_client)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "store_backend": settings.store_backend,
        "redis": "up" if redis_ok else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Fleet Operations Engine API",
        "docs": "/docs",
        "health": "/health",
    }
