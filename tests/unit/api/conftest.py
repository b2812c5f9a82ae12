"""Fixtures for API route tests.

The application is built around a ServiceContainer wired with fakes, so
routes run end to end without touching the network.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from fusion_retrieval.api.dependencies import ServiceContainer, set_services
from fusion_retrieval.core.config import Settings
from fusion_retrieval.health.monitor import HealthMonitor
from fusion_retrieval.main import create_app
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from fusion_retrieval.retrieval.orchestrator import QueryOrchestrator
from tests.fakes.fake_adapters import FakeAdapterFactory, FakeMemorySearch


@pytest.fixture
def adapter_factory() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture
def memory() -> FakeMemorySearch:
    return FakeMemorySearch()


@pytest.fixture
def services(
    test_settings: Settings,
    registry: KnowledgeSourceRegistry,
    memory: FakeMemorySearch,
    adapter_factory: FakeAdapterFactory,
) -> ServiceContainer:
    monitor = HealthMonitor(registry, memory, test_settings, adapter_factory=adapter_factory)
    orchestrator = QueryOrchestrator(
        registry,
        memory,
        settings=test_settings,
        adapter_factory=adapter_factory,
        recorder=monitor,
    )
    return ServiceContainer(test_settings, registry, memory, monitor, orchestrator)


@pytest.fixture
def client(services: ServiceContainer) -> Iterator[TestClient]:
    with TestClient(create_app(services)) as test_client:
        yield test_client
    set_services(None)
