"""Health check API schemas."""

from typing import Dict, Any
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Basic health check response schema."""

    status: str = Field(
        ...,
        description="Service health status",
        examples=["healthy"]
    )
    service: str = Field(
        default="obanet-auth",
        description="Service name",
    )
    timestamp: str = Field(
        ...,
        description="Response timestamp",
        examples=["2026-01-01T12:00:00+00:00"]
    )


class DetailedHealthResponse(BaseModel):
    """
    Detailed health check response schema.

    Redis is best-effort for this service: when it is down the service
    keeps answering, so it only degrades the overall status.
    """

    status: str = Field(
        ...,
        description="Overall status: healthy, degraded or unhealthy",
        examples=["healthy"]
    )
    timestamp: str = Field(..., description="Response timestamp")
    services: Dict[str, str] = Field(
        ...,
        description="Status of individual services",
        examples=[{"database": "healthy", "redis": "healthy"}]
    )
    cache: Dict[str, Any] = Field(
        default_factory=dict,
        description="Redis connection details",
    )
    version: str = Field(..., description="Application version", examples=["1.0.0"])
    environment: str = Field(..., description="Deployment environment", examples=["development"])
    uptime_seconds: int = Field(..., description="Seconds since startup")


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    ready: bool = Field(
        ...,
        description="Whether service is ready to accept requests",
        examples=[True]
    )
    checks: Dict[str, Any] = Field(
        ...,
        description="Individual readiness checks",
        examples=[{
            "database": {"status": "ready", "latency_ms": 5.2},
            "redis": {"status": "ready", "latency_ms": 1.1}
        }]
    )


class LivenessResponse(BaseModel):
    """Liveness check response schema."""

    alive: bool = Field(..., description="Whether service is alive", examples=[True])
    timestamp: str = Field(..., description="Response timestamp")
