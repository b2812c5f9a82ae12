"""Tests for memory search primitives and the memory retriever."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from fusion_retrieval.adapters.memory import (
    HTTPMemorySearchClient,
    InMemoryTemporalMemory,
    MemoryRetriever,
    close_memory,
)
from fusion_retrieval.core.exceptions import SourceUnavailableError
from fusion_retrieval.schemas.search import QueryOptions, ResultKind
from tests.fakes.fake_adapters import FakeMemorySearch, make_raw


NOW = datetime(2026, 3, 1, tzinfo=UTC)


class TestInMemoryTemporalMemory:
    @pytest.fixture
    def memory(self) -> InMemoryTemporalMemory:
        memory = InMemoryTemporalMemory()
        memory.add("proj", "We agreed on new pricing for teams", NOW - timedelta(days=1), memory_id="m1")
        memory.add("proj", "Pricing call notes", NOW, memory_id="m2")
        memory.add("proj", "Holiday schedule", NOW, memory_id="m3")
        memory.add("other", "Pricing for another project", NOW, memory_id="m4")
        return memory

    @pytest.mark.asyncio
    async def test_scores_by_term_overlap_within_project(self, memory: InMemoryTemporalMemory) -> None:
        results = await memory.search("proj", "pricing teams", limit=10, threshold=0.0)

        assert [(result.result_id, result.raw_score) for result in results] == [("m1", 1.0), ("m2", 0.5)]
        assert all(result.kind == ResultKind.MEMORY for result in results)
        assert len(memory) == 4

    @pytest.mark.asyncio
    async def test_equal_scores_prefer_newer_entries(self, memory: InMemoryTemporalMemory) -> None:
        results = await memory.search("proj", "pricing", limit=10, threshold=0.0)

        assert [result.result_id for result in results] == ["m2", "m1"]

    @pytest.mark.asyncio
    async def test_threshold_and_limit(self, memory: InMemoryTemporalMemory) -> None:
        assert [r.result_id for r in await memory.search("proj", "pricing teams", 10, 0.75)] == ["m1"]
        assert len(await memory.search("proj", "pricing", 1, 0.0)) == 1

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, memory: InMemoryTemporalMemory) -> None:
        assert await memory.search("proj", "  ", 10, 0.0) == []


class TestHTTPMemorySearchClient:
    @pytest.mark.asyncio
    async def test_search_posts_camel_case_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"results": [{"id": "m9", "content": "pricing memo", "score": 0.8, "timestamp": "2026-02-01T00:00:00Z"}]},
            )

        client = HTTPMemorySearchClient("http://memory.test/", transport=httpx.MockTransport(handler))

        [result] = await client.search("proj", "pricing", limit=3, threshold=0.2)
        await client.close()

        assert seen[0].url.path == "/v1/memories/search"
        assert json.loads(seen[0].content) == {"projectId": "proj", "query": "pricing", "limit": 3, "threshold": 0.2}
        assert result.result_id == "m9"
        assert result.kind == ResultKind.MEMORY
        assert result.source_id == "memory"

    @pytest.mark.asyncio
    async def test_remote_relevance_is_coerced_per_hit(self) -> None:
        payload = {
            "results": [
                {"id": "m1", "content": "pricing memo", "score": 0.3, "relevance": "0.8"},
                {"id": "m2", "content": "pricing draft", "score": 0.9, "relevance": "high"},
            ]
        }
        client = HTTPMemorySearchClient(
            "http://memory.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
        )
        retriever = MemoryRetriever(client, "proj")

        results = await retriever.query("pricing", QueryOptions(limit=5, threshold=0.5, deadline=1.0))
        await client.close()

        assert [(result.result_id, result.relevance) for result in results] == [("m1", 0.8), ("m2", None)]

    @pytest.mark.asyncio
    async def test_error_status_raises_http_error(self) -> None:
        client = HTTPMemorySearchClient(
            "http://memory.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.search("proj", "pricing", limit=3, threshold=0.0)


class TestMemoryRetriever:
    @pytest.mark.asyncio
    async def test_results_are_tagged_as_memory(self) -> None:
        fake = FakeMemorySearch([make_raw("elsewhere", "pricing memo", 0.7, result_id="m1")])
        retriever = MemoryRetriever(fake, "proj")

        [result] = await retriever.query("pricing", QueryOptions(limit=5, threshold=0.1, deadline=1.0))

        assert retriever.source_id == "memory"
        assert result.source_id == "memory"
        assert result.kind == ResultKind.MEMORY
        assert fake.call_history == [{"project_id": "proj", "query": "pricing", "limit": 5, "threshold": 0.1}]

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_unavailable(self) -> None:
        fake = FakeMemorySearch(error=httpx.ConnectError("refused"))

        with pytest.raises(SourceUnavailableError):
            await MemoryRetriever(fake, "proj").query("pricing", QueryOptions())

    @pytest.mark.asyncio
    async def test_empty_memory_probe_is_connected(self) -> None:
        probe = await MemoryRetriever(FakeMemorySearch(), "proj").test_connection(timeout=1.0)

        assert probe.connected is True

    @pytest.mark.asyncio
    async def test_close_leaves_shared_memory_open(self) -> None:
        fake = FakeMemorySearch()

        await MemoryRetriever(fake, "proj").close()

        assert fake.closed is False
        await close_memory(fake)
        assert fake.closed is True
