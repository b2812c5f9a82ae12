"""Health check API routes.

GET /health probes the memory store and every enabled knowledge source and
reports healthy, degraded or unhealthy. /health/live and /health/ready are
liveness and readiness probes that never call a knowledge source.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fusion_retrieval.api.dependencies import ServiceContainer, get_services
from fusion_retrieval.schemas.health import HealthReport


# =============================================================================
# Router Configuration
# =============================================================================

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


# =============================================================================
# Response Models
# =============================================================================

class ReadinessResponse(BaseModel):
    """Response model for readiness check.

    Attributes:
        ready: Whether service is ready to accept traffic
        checks: Individual check results
    """

    ready: bool = Field(default=True, description="Whether service is ready")
    checks: dict[str, bool] = Field(default_factory=dict, description="Individual check results")


class LivenessResponse(BaseModel):
    """Response model for liveness check."""

    alive: bool = Field(default=True, description="Whether service is alive")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
        description="Check timestamp",
    )


# =============================================================================
# API Endpoints
# =============================================================================

@router.get(
    "",
    response_model=HealthReport,
    summary="Health check",
    description="Probes memory and every enabled knowledge source.",
)
async def health_check(services: ServiceContainer = Depends(get_services)) -> HealthReport:
    """Aggregated health report.

    Returns:
        HealthReport with overall status, memory entry and per-source entries
    """
    return await services.monitor.health_check()


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
)
async def readiness_check(services: ServiceContainer = Depends(get_services)) -> ReadinessResponse:
    """Kubernetes-style readiness probe: ready once memory answers."""
    memory = await services.monitor.check_memory()
    checks = {"memory_reachable": memory.connected}
    return ReadinessResponse(ready=all(checks.values()), checks=checks)


@router.get(
    "/live",
    response_model=LivenessResponse,
    summary="Liveness check",
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True, timestamp=datetime.now(UTC).isoformat())


__all__ = [
    "LivenessResponse",
    "ReadinessResponse",
    "router",
]
