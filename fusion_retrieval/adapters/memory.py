"""Temporal memory retrieval.

The memory store is the always-on signal of every search. It is reached
through a small search primitive:

    search(project_id, query, limit, threshold) -> list[RawResult]

Two implementations are provided:

- ``InMemoryTemporalMemory``: process-local store scored by token overlap
- ``HTTPMemorySearchClient``: remote memory service (``POST /v1/memories/search``)

``MemoryRetriever`` wraps either one as a source adapter bound to one
project, so the orchestrator fans it out like any knowledge source.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import httpx

from fusion_retrieval.adapters.base import BaseSourceAdapter, query_terms, truncate
from fusion_retrieval.core.constants import MEMORY_SOURCE_ID, MEMORY_SOURCE_NAME
from fusion_retrieval.schemas.search import QueryOptions, RawResult, ResultKind, coerce_unit


logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Definition
# =============================================================================


@runtime_checkable
class MemorySearchProtocol(Protocol):
    """Protocol for memory-search primitives.

    Enables duck typing for test doubles (FakeMemorySearch).
    """

    async def search(
        self,
        project_id: str,
        query: str,
        limit: int,
        threshold: float,
    ) -> list[RawResult]:
        """Return memory hits for ``query`` within ``project_id``."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


# =============================================================================
# In-process store
# =============================================================================


@dataclass(frozen=True)
class MemoryEntry:
    """One remembered piece of content."""

    memory_id: str
    project_id: str
    content: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


class InMemoryTemporalMemory:
    """Process-local temporal memory.

    Scores entries by the fraction of query terms they contain. Entries
    scoring zero are never returned.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[MemoryEntry]] = {}

    def add(
        self,
        project_id: str,
        content: str,
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None,
        memory_id: str | None = None,
    ) -> MemoryEntry:
        entry = MemoryEntry(
            memory_id=memory_id or uuid.uuid4().hex,
            project_id=project_id,
            content=content,
            timestamp=timestamp or datetime.now(UTC),
            metadata=dict(metadata or {}),
        )
        self._entries.setdefault(project_id, []).append(entry)
        return entry

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    async def search(
        self,
        project_id: str,
        query: str,
        limit: int,
        threshold: float,
    ) -> list[RawResult]:
        terms = query_terms(query)
        if not terms:
            return []
        scored: list[tuple[float, MemoryEntry]] = []
        for entry in self._entries.get(project_id, []):
            lowered = entry.content.lower()
            score = sum(1 for term in terms if term in lowered) / len(terms)
            if score > 0 and score >= threshold:
                scored.append((score, entry))
        scored.sort(key=lambda item: (-item[0], -item[1].timestamp.timestamp(), item[1].memory_id))
        return [
            RawResult(
                source_id=MEMORY_SOURCE_ID,
                content=entry.content,
                raw_score=score,
                timestamp=entry.timestamp,
                source_metadata=dict(entry.metadata),
                result_id=entry.memory_id,
                kind=ResultKind.MEMORY,
            )
            for score, entry in scored[:limit]
        ]

    async def close(self) -> None:
        """Nothing to release."""


# =============================================================================
# Remote memory service
# =============================================================================


class HTTPMemorySearchClient:
    """Client for a remote memory service.

    Uses httpx.AsyncClient with connection pooling. The client is created
    lazily on first use.

    Attributes:
        base_url: Memory service base URL
        timeout: Default request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def search(
        self,
        project_id: str,
        query: str,
        limit: int,
        threshold: float,
    ) -> list[RawResult]:
        """Search the remote memory service.

        Raises:
            httpx.HTTPError: Transport failure or error status; the memory
                retriever maps it to a per-source failure
        """
        response = await self._get_client().post(
            "/v1/memories/search",
            json={"projectId": project_id, "query": query, "limit": limit, "threshold": threshold},
        )
        response.raise_for_status()
        data = response.json()
        return [
            RawResult(
                source_id=MEMORY_SOURCE_ID,
                content=truncate(str(item.get("content") or "")),
                raw_score=item.get("score"),
                timestamp=item.get("timestamp"),
                source_metadata=item.get("metadata") or {},
                result_id=str(item.get("id", index)),
                relevance=coerce_unit(item.get("relevance")),
                kind=ResultKind.MEMORY,
            )
            for index, item in enumerate(data.get("results", []))
        ]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Adapter
# =============================================================================


class MemoryRetriever(BaseSourceAdapter):
    """Memory search exposed as a source adapter bound to one project.

    The memory store counts as reachable even when it holds nothing that
    matches the probe query.
    """

    empty_probe_is_success = True

    def __init__(
        self,
        memory: MemorySearchProtocol,
        project_id: str,
        source_name: str = MEMORY_SOURCE_NAME,
    ) -> None:
        super().__init__(MEMORY_SOURCE_ID, source_name)
        self.memory = memory
        self.project_id = project_id

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        results = await self.memory.search(self.project_id, query, options.limit, options.threshold)
        return [
            replace(result, source_id=MEMORY_SOURCE_ID, kind=ResultKind.MEMORY)
            for result in results
        ]

    async def close(self) -> None:
        """The memory primitive is shared across requests and stays open."""


async def close_memory(memory: MemorySearchProtocol) -> None:
    """Close a memory primitive, logging instead of raising on shutdown."""
    try:
        await asyncio.wait_for(memory.close(), timeout=5.0)
    except (asyncio.TimeoutError, httpx.HTTPError) as e:
        logger.warning("Memory client did not close cleanly: %s", e)
