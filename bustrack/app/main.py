"""
FastAPI Application Entry Point.

This is the main application file for the Campus Bus Tracker Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from bustrack.app.core.config import settings
from bustrack.app.api.v1.router import router as api_v1_router
from bustrack.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from bustrack.app.core.redis_client import close_redis, ping_redis
from bustrack.app.db.session import AsyncSessionLocal, init_models
from bustrack.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from bustrack.app.services.auth_service import ensure_demo_driver_account
from bustrack.app.services.geocoding import close_geocoder
from bustrack.app.services.identity_provider import close_identity_provider, get_identity_provider
from bustrack.app.services.tracking import TrackingRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Refuses to start without identity provider configuration.
    2. Creates database tables and optionally provisions the demo driver.
    3. Stops every tracking session and closes clients on shutdown.
    """
    configure_logging(settings.log_level)
    settings.ensure_configured()

    await init_models()

    if settings.provision_demo_driver:
        async with AsyncSessionLocal() as db:
            await ensure_demo_driver_account(db, get_identity_provider())

    logger.info("Startup complete")
    yield

    app.state.tracking_registry.stop_all()
    await close_identity_provider()
    await close_geocoder()
    await close_redis()
    logger.info("Shutdown complete")

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Live campus bus location sharing between drivers and students",
    lifespan=lifespan,
)

# Tracking sessions live as long as this process
app.state.tracking_registry = TrackingRegistry()

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": redis_ok,
        "tracking_sessions": len(app.state.tracking_registry),
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
        "message": "Welcome to Campus Bus Tracker Backend API",
        "docs": "/docs",
        "health": "/health",
    }
