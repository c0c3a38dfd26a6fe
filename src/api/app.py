# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the application factory for the attendance
notification API.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src import __version__
from src.api.dependencies import close_services, init_services
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.infrastructure.database import DatabaseError
from src.utils.logging import setup_logging

if TYPE_CHECKING:
    from src.infrastructure.notifications.channels.base import MessageTransport
    from src.infrastructure.stores.base import AttendanceDataSource, StudentDataSource

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.
    Initializes and cleans up:
    - Logging
    - Database connection and schema
    - Notification service with its default templates

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting attendance notification API (environment=%s, delivery=%s)",
        settings.environment,
        "live" if settings.whatsapp.enabled else "dry run",
    )

    # =========================================================================
    # Startup
    # =========================================================================

    await init_services(
        settings,
        student_source=app.state.student_source,
        attendance_source=app.state.attendance_source,
        transport=app.state.transport,
    )
    logger.info("Notification service initialized")

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    try:
        await close_services()
        logger.info("Database connections closed")
    except DatabaseError as e:
        logger.warning("Error closing database connections: %s", str(e))

    logger.info("Shutting down attendance notification API")


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Translate storage failures into 503 responses."""
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": exc.message},
    )


def create_app(
    student_source: "StudentDataSource | None" = None,
    attendance_source: "AttendanceDataSource | None" = None,
    transport: "MessageTransport | None" = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a new FastAPI instance with all
    middleware, routes, and configurations applied.

    Args:
        student_source: Student record store of the academy system.
        attendance_source: Attendance query of the academy system.
        transport: Message transport; the WhatsApp gateway when None.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Attendance Notification API",
        description="Guardian notifications for late arrivals and absences",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.student_source = student_source
    app.state.attendance_source = attendance_source
    app.state.transport = transport

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(DatabaseError, database_error_handler)

    # =========================================================================
    # Middleware
    # =========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
