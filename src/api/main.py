"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures middleware, exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.adapters.scheduler import ExpiryReaper
from src.adapters.store.memory import InMemoryPendingRegistrationStore
from src.api.dependencies import build_email_sender
from src.api.errors import register_exception_handlers
from src.api.routes import router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "registro",
        "description": "User registration gated by an emailed one-time code",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and runs migrations on startup
    - Creates the pending store, email sender and expiry reaper
    - Stops the reaper and closes the pool on shutdown
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    store = InMemoryPendingRegistrationStore()
    reaper = ExpiryReaper(store, settings.sweep_interval_seconds)

    # Store shared objects in app state for dependency injection
    app.state.pool = pool
    app.state.pending_store = store
    app.state.email_sender = build_email_sender(settings)
    app.state.reaper = reaper

    reaper.start()
    logger.info("Application startup complete (email backend: %s)", settings.email_backend)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    reaper.stop()
    pool.close()
    logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Build the application with middleware, routes and error handlers."""
    settings = get_settings()
    application = FastAPI(
        title="registro-2fa",
        description="User registration API with email one-time-code verification",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)
    application.include_router(router, prefix="/api/usuarios")
    application.add_api_route("/health", health_check, methods=["GET"])
    return application


def health_check(request: Request) -> dict[str, str | int]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy, along with
    the number of registrations awaiting verification.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy", "pendientes": len(request.app.state.pending_store)}


app = create_app()
