# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides the API health endpoint and the delivery health
report used to decide whether automatic sends may continue.
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src import __version__
from src.api.dependencies import get_notification_service
from src.core.config import get_settings
from src.domains.notification import NotificationService
from src.infrastructure.database import check_database_connection
from src.infrastructure.notifications import HealthStatus, WhatsAppChannel

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    """All components health status."""
    database: ComponentHealth | None = None
    gateway: ComponentHealth | None = None
    delivery: ComponentHealth | None = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(description="Current server timestamp")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class NotificationHealthResponse(BaseModel):
    """Delivery health report."""
    status: HealthStatus
    can_continue: bool
    error_rate: float = Field(description="Failed operations in the last 24 hours, percent")
    recent_failures: int = Field(description="Operations that failed permanently in the last 24 hours")
    retry_success_rate: float = Field(description="Retried operations that succeeded, percent")
    critical_errors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


async def check_database() -> ComponentHealth:
    """Check the service database connection."""
    start = time.time()
    if not await check_database_connection():
        logger.error("Database health check failed")
        return ComponentHealth(status="unhealthy", message="Database unreachable")

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


async def check_gateway(service: NotificationService) -> ComponentHealth | None:
    """Check the WhatsApp gateway, when it is the configured transport."""
    transport = service.transport
    if not isinstance(transport, WhatsAppChannel):
        return None

    start = time.time()
    gateway_status = await transport.check_status()
    latency = (time.time() - start) * 1000
    state = gateway_status.get("status")
    if state in ("unreachable", "error"):
        return ComponentHealth(status="unhealthy", message=str(gateway_status.get("error")))
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2), message=str(state))


def check_delivery(service: NotificationService) -> ComponentHealth:
    """Summarize the delivery health report."""
    report = service.error_manager.generate_health_report()
    status_map = {
        HealthStatus.HEALTHY: "healthy",
        HealthStatus.WARNING: "degraded",
        HealthStatus.CRITICAL: "unhealthy",
    }
    message = "; ".join(report.recommendations) if report.recommendations else None
    return ComponentHealth(status=status_map[report.status], message=message)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: NotificationService = Depends(get_notification_service),
) -> HealthResponse:
    """Check if the API is healthy with component details.

    Returns:
        HealthResponse with detailed status.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    uptime = int(time.time() - _server_start_time)

    db_health = await check_database()
    gateway_health = await check_gateway(service)
    delivery_health = check_delivery(service)

    component_statuses = [db_health.status, delivery_health.status]
    if gateway_health is not None:
        component_statuses.append(gateway_health.status)

    if all(s == "healthy" for s in component_statuses):
        overall_status = "healthy"
    elif db_health.status == "unhealthy":
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=now,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=uptime,
        components=ComponentsHealth(
            database=db_health,
            gateway=gateway_health,
            delivery=delivery_health,
        ),
    )


@router.get("/health/notifications", response_model=NotificationHealthResponse)
async def notification_health(
    service: NotificationService = Depends(get_notification_service),
) -> NotificationHealthResponse:
    """Get the delivery health report.

    CRITICAL means automatic sends are suspended.
    """
    report = service.error_manager.generate_health_report()
    return NotificationHealthResponse(
        status=report.status,
        can_continue=report.can_continue,
        error_rate=report.error_rate,
        recent_failures=report.recent_failures,
        retry_success_rate=report.retry_success_rate,
        critical_errors=report.critical_errors,
        recommendations=report.recommendations,
    )
