# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""FastAPI application entry point for the Tripfluence spaces API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tripfluence import __version__
from tripfluence.api import (
    api_keys,
    audit,
    event_sync,
    health,
    integrations,
    listings,
    orders,
    public,
    reports,
    reviews,
    seo,
    social_posts,
    space_requests,
    spaces,
    webhooks,
)
from tripfluence.config import get_settings
from tripfluence.database import get_session_factory
from tripfluence.middleware.auth import AuthenticationMiddleware
from tripfluence.middleware.error_handler import (
    ErrorHandlerMiddleware,
    validation_exception_handler,
)
from tripfluence.services.idempotency import get_idempotency_cache
from tripfluence.services.scheduler import MaintenanceScheduler, init_scheduler
from tripfluence.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup/shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    # Startup
    setup_logging()

    settings = get_settings()
    app.state.settings = settings

    scheduler: MaintenanceScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = init_scheduler(get_session_factory(), get_idempotency_cache())
        scheduler.start()
        logger.info("Background maintenance scheduler started")
    else:
        logger.info("Background maintenance scheduler disabled")

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.stop()
        logger.info("Background maintenance scheduler stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title="Tripfluence Spaces API",
        description="Venue booking marketplace with listings, orders and reviews",
        version=__version__,
        docs_url="/docs" if settings.expose_docs else None,
        redoc_url="/redoc" if settings.expose_docs else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - first added is outermost)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(AuthenticationMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include routers
    app.include_router(health.router)
    app.include_router(seo.router)
    app.include_router(public.router)
    app.include_router(spaces.router)
    app.include_router(space_requests.router)
    app.include_router(listings.router)
    app.include_router(orders.router)
    app.include_router(reviews.router)
    app.include_router(integrations.router)
    app.include_router(event_sync.router)
    app.include_router(social_posts.router)
    app.include_router(webhooks.router)
    app.include_router(api_keys.router)
    app.include_router(audit.router)
    app.include_router(reports.router)

    return app


# Application instance
app = create_app()
