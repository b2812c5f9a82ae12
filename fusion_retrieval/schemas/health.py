"""Health report models for ``GET /health`` and ``POST /sources/{id}/test``."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import Field

from fusion_retrieval.schemas.search import CamelModel
from fusion_retrieval.schemas.sources import SourceState, SourceType


class HealthStatus(str, Enum):
    """Overall service status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class SourceHealthEntry(CamelModel):
    """Probe outcome of one knowledge source.

    ``connected`` is None for disabled sources, which are not probed.
    """

    id: str
    name: str
    type: SourceType
    state: SourceState
    connected: bool | None = None
    message: str = ""
    latency_ms: float | None = None
    last_checked: datetime | None = None
    consecutive_failures: int = 0


class MemoryHealthEntry(CamelModel):
    """Reachability of the memory store."""

    connected: bool
    message: str = ""
    latency_ms: float | None = None


class HealthReport(CamelModel):
    """Aggregated health of the memory store and every knowledge source.

    healthy: memory and every probed source answered
    degraded: some did
    unhealthy: none did
    """

    status: HealthStatus = HealthStatus.HEALTHY
    service: str = ""
    version: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    uptime_seconds: float | None = None
    memory: MemoryHealthEntry
    sources: list[SourceHealthEntry] = Field(default_factory=list)


class ConnectionTestResponse(CamelModel):
    """Response of ``POST /sources/{id}/test``."""

    connected: bool
    message: str
    sample: list[dict[str, Any]] = Field(default_factory=list)
    latency_ms: float = 0.0
