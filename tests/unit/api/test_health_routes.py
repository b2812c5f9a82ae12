"""Tests for health API routes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fusion_retrieval.api.routes.health import router
from fusion_retrieval.core.exceptions import SourceUnavailableError
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from tests.fakes.fake_adapters import (
    FakeAdapterFactory,
    FakeMemorySearch,
    FakeSourceAdapter,
    make_raw,
    source_definition,
)


def test_router_has_health_tag() -> None:
    assert "Health" in router.tags


class TestHealthEndpoint:
    def test_memory_only_is_healthy(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "fusion-retrieval"
        assert body["memory"]["connected"] is True
        assert body["sources"] == []
        assert "uptimeSeconds" in body

    def test_partial_outage_is_degraded(
        self,
        client: TestClient,
        registry: KnowledgeSourceRegistry,
        adapter_factory: FakeAdapterFactory,
    ) -> None:
        registry.add(source_definition("up"))
        registry.add(source_definition("down"))
        adapter_factory.adapters["up"] = FakeSourceAdapter("up", [make_raw("up", "sample", 0.9)])
        adapter_factory.adapters["down"] = FakeSourceAdapter(
            "down", error=SourceUnavailableError("connection refused", source_id="down")
        )

        response = client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "degraded"
        entries = {entry["id"]: entry for entry in body["sources"]}
        assert entries["up"]["state"] == "enabled"
        assert entries["down"]["connected"] is False
        assert entries["down"]["type"] == "external_api"


class TestReadiness:
    def test_ready_when_memory_answers(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True, "checks": {"memory_reachable": True}}


class TestReadinessWithMemoryDown:
    @pytest.fixture
    def memory(self) -> FakeMemorySearch:
        return FakeMemorySearch(error=SourceUnavailableError("memory down", source_id="memory"))

    def test_not_ready_when_memory_fails(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.json()["ready"] is False


def test_liveness(client: TestClient) -> None:
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["alive"] is True
