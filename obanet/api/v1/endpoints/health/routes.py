"""Health check API routes."""

import time

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from obanet.api.dependencies import get_database_session, get_resources
from obanet.infrastructure.resources import AppResources
from .schemas import HealthResponse, DetailedHealthResponse, ReadinessResponse, LivenessResponse

router = APIRouter(prefix="/health", tags=["Health Check"])


async def _database_latency_ms(session: AsyncSession) -> float:
    start_time = time.perf_counter()
    await session.execute(text("SELECT 1"))
    return round((time.perf_counter() - start_time) * 1000, 2)


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Simple health check endpoint.",
)
async def basic_health_check(
    resources: AppResources = Depends(get_resources),
) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns minimal health status information without dependency checks.
    Useful for load balancer health checks.
    """
    return HealthResponse(status="healthy", timestamp=resources.clock().isoformat())


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    description="Check the health status of the application and its dependencies.",
    responses={
        200: {"description": "Service is healthy or degraded"},
        503: {"description": "User store is unreachable"},
    },
)
async def detailed_health_check(
    response: Response,
    session: AsyncSession = Depends(get_database_session),
    resources: AppResources = Depends(get_resources),
) -> DetailedHealthResponse:
    """
    Perform detailed health check of the application and its dependencies.

    The user store is required; Redis outages only degrade the service
    because every Redis-backed feature fails open.
    """
    services = {}
    overall_status = "healthy"

    try:
        await _database_latency_ms(session)
        services["database"] = "healthy"
    except SQLAlchemyError:
        services["database"] = "unhealthy"
        overall_status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    cache = await resources.session_cache.health_check()
    services["redis"] = cache["status"]
    if not cache["connected"] and overall_status == "healthy":
        overall_status = "degraded"

    now = resources.clock()
    return DetailedHealthResponse(
        status=overall_status,
        timestamp=now.isoformat(),
        services=services,
        cache=cache,
        version=resources.settings.app_version,
        environment=resources.settings.environment,
        uptime_seconds=max(0, int((now - resources.started_at).total_seconds())),
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Check if the application is ready to serve requests.",
    responses={
        200: {"description": "Service is ready"},
        503: {"description": "Service is not ready"},
    },
)
async def readiness_check(
    response: Response,
    session: AsyncSession = Depends(get_database_session),
    resources: AppResources = Depends(get_resources),
) -> ReadinessResponse:
    """
    Readiness probe for Kubernetes deployments.

    Only the user store gates readiness.
    """
    checks = {}
    ready = True

    try:
        checks["database"] = {"status": "ready", "latency_ms": await _database_latency_ms(session)}
    except SQLAlchemyError as e:
        checks["database"] = {"status": "not_ready", "error": type(e).__name__}
        ready = False
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    start_time = time.perf_counter()
    redis_ok = await resources.redis.ping()
    latency = round((time.perf_counter() - start_time) * 1000, 2)
    checks["redis"] = {"status": "ready" if redis_ok else "degraded", "latency_ms": latency}

    return ReadinessResponse(ready=ready, checks=checks)


@router.get(
    "/live",
    response_model=LivenessResponse,
    summary="Liveness check",
    description="Check if the application is alive and responsive.",
)
async def liveness_check(
    resources: AppResources = Depends(get_resources),
) -> LivenessResponse:
    """
    Liveness probe for Kubernetes deployments.

    Does not check dependencies.
    """
    return LivenessResponse(alive=True, timestamp=resources.clock().isoformat())
