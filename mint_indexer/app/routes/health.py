"""
Health Check Endpoint

Provides service health status for container health checks and monitoring.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import settings


router = APIRouter()


class ComponentHealth(BaseModel):
    """Health status of a component."""
    status: str  # "healthy", "degraded", "unhealthy"
    message: Optional[str] = None
    last_check: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str  # "healthy", "degraded", "unhealthy"
    service: str
    version: str
    environment: str
    timestamp: str
    components: dict[str, ComponentHealth]


HealthCheck = Callable[[], Awaitable[dict]]

# Populated by the lifespan in app.main
_component_checks: dict[str, HealthCheck] = {}


def register_health_check(name: str, check_fn: HealthCheck) -> None:
    """Register a component health check function."""
    _component_checks[name] = check_fn


def clear_health_checks() -> None:
    """Drop all registered checks (service shutdown)."""
    _component_checks.clear()


async def _run_checks(now: str) -> tuple[str, dict[str, ComponentHealth]]:
    components: dict[str, ComponentHealth] = {}
    overall_status = "healthy"

    for name, check_fn in _component_checks.items():
        try:
            result = await check_fn()
            status = result.get("status", "healthy")
            components[name] = ComponentHealth(
                status=status,
                message=result.get("message"),
                last_check=now,
            )
            if status == "unhealthy":
                overall_status = "unhealthy"
            elif status == "degraded" and overall_status == "healthy":
                overall_status = "degraded"
        except Exception as e:
            components[name] = ComponentHealth(
                status="unhealthy",
                message=str(e),
                last_check=now,
            )
            overall_status = "unhealthy"

    return overall_status, components


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Service health check endpoint.

    Returns overall health status and per-component breakdown
    (database, upstream, scheduler).
    """
    now = datetime.now(timezone.utc).isoformat()
    overall_status, components = await _run_checks(now)

    return HealthResponse(
        status=overall_status,
        service=settings.service_name,
        version=settings.service_version,
        environment=settings.environment,
        timestamp=now,
        components=components,
    )


@router.get("/health/live")
async def liveness_check() -> dict:
    """
    Liveness probe.

    Simple check that the service is running.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness probe.

    Ready once the engines are wired and no component reports unhealthy.
    """
    if getattr(request.app.state, "aggregator", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "engines not configured"},
        )

    now = datetime.now(timezone.utc).isoformat()
    overall_status, components = await _run_checks(now)
    if overall_status == "unhealthy":
        failing = [name for name, c in components.items() if c.status == "unhealthy"]
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": f"unhealthy: {', '.join(failing)}"},
        )

    return {"status": "ready"}
