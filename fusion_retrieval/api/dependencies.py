"""API dependencies: service wiring and request identity.

Pattern: Lazy initialization with a setter for tests
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header

from fusion_retrieval.adapters.memory import (
    HTTPMemorySearchClient,
    InMemoryTemporalMemory,
    MemorySearchProtocol,
)
from fusion_retrieval.core.config import Settings, get_settings
from fusion_retrieval.core.constants import HEADER_PROJECT_ID, HEADER_USER_ID
from fusion_retrieval.core.logging import bind_request_context, get_logger
from fusion_retrieval.health.monitor import HealthMonitor
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from fusion_retrieval.registry.store import create_source_store
from fusion_retrieval.retrieval.orchestrator import QueryOrchestrator


logger = get_logger(__name__)


# =============================================================================
# Service container
# =============================================================================


@dataclass
class ServiceContainer:
    """Long-lived services shared by all requests."""

    settings: Settings
    registry: KnowledgeSourceRegistry
    memory: MemorySearchProtocol
    monitor: HealthMonitor
    orchestrator: QueryOrchestrator


def build_services(
    settings: Settings | None = None,
    memory: MemorySearchProtocol | None = None,
    registry: KnowledgeSourceRegistry | None = None,
) -> ServiceContainer:
    """Wire the registry, memory, health monitor and orchestrator.

    Args:
        settings: Settings to use (defaults to environment settings)
        memory: Memory-search primitive; built from settings when omitted
        registry: Source registry; loaded from the configured store when omitted

    Returns:
        ServiceContainer ready to serve requests
    """
    settings = settings or get_settings()
    if registry is None:
        registry = KnowledgeSourceRegistry(create_source_store(settings.sources_file))
        registry.load()
    if memory is None:
        if settings.memory_service_url:
            memory = HTTPMemorySearchClient(settings.memory_service_url, timeout=settings.source_timeout_seconds)
        else:
            memory = InMemoryTemporalMemory()
    monitor = HealthMonitor(registry, memory, settings)
    orchestrator = QueryOrchestrator(registry, memory, settings=settings, recorder=monitor)
    logger.info(
        "Services built",
        sources=len(registry),
        memory=type(memory).__name__,
        sources_file=settings.sources_file,
    )
    return ServiceContainer(settings, registry, memory, monitor, orchestrator)


_services: ServiceContainer | None = None


def get_services() -> ServiceContainer:
    """Get or create the shared ServiceContainer.

    Returns:
        The process-wide ServiceContainer
    """
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: ServiceContainer | None) -> None:
    """Set the shared ServiceContainer (None resets it).

    Args:
        services: Container to use, or None to rebuild lazily
    """
    global _services
    _services = services


# =============================================================================
# Identity context
# =============================================================================


@dataclass(frozen=True)
class RequestIdentity:
    """Caller identity supplied by the upstream identity middleware."""

    user_id: str | None = None
    project_id: str | None = None


def get_identity(
    user_id: str | None = Header(default=None, alias=HEADER_USER_ID),
    project_id: str | None = Header(default=None, alias=HEADER_PROJECT_ID),
) -> RequestIdentity:
    """Read identity headers and bind them to the logging context."""
    bind_request_context(user_id=user_id, project_id=project_id)
    return RequestIdentity(user_id=user_id, project_id=project_id)


__all__ = [
    "RequestIdentity",
    "ServiceContainer",
    "build_services",
    "get_identity",
    "get_services",
    "set_services",
]
