"""Fake adapters and memory for unit testing.

In-memory fakes implementing the SourceAdapter and MemorySearchProtocol
contracts for duck typing. They return configured results, support error
injection and artificial latency, and record their calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from fusion_retrieval.adapters.base import ConnectionTestResult
from fusion_retrieval.core.exceptions import SourceError
from fusion_retrieval.schemas.search import QueryOptions, RawResult, ResultKind
from fusion_retrieval.schemas.sources import KnowledgeSource


def make_raw(
    source_id: str,
    content: str,
    score: Any,
    result_id: str = "",
    timestamp: Any = None,
    relevance: Any = None,
    kind: ResultKind = ResultKind.KNOWLEDGE,
) -> RawResult:
    """Build a RawResult with short argument names."""
    return RawResult(
        source_id=source_id,
        content=content,
        raw_score=score,
        timestamp=timestamp,
        result_id=result_id,
        relevance=relevance,
        kind=kind,
    )


class FakeSourceAdapter:
    """Fake knowledge-source adapter.

    Attributes:
        call_history: Recorded ``query`` calls for verification
        closed: Whether ``close`` was awaited

    Example:
        >>> adapter = FakeSourceAdapter("docs", results=[make_raw("docs", "text", 0.8)])
        >>> hits = await adapter.query("text", QueryOptions())
        >>> assert adapter.call_history[0]["query"] == "text"
    """

    def __init__(
        self,
        source_id: str,
        results: list[RawResult] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        probe: ConnectionTestResult | None = None,
    ) -> None:
        self.source_id = source_id
        self._results = results or []
        self._error = error
        self._delay = delay
        self._probe = probe
        self.call_history: list[dict[str, Any]] = []
        self.closed = False
        self.cancelled = False

    async def connect(self) -> None:
        await asyncio.sleep(0)

    async def query(self, query: str, options: QueryOptions) -> list[RawResult]:
        self.call_history.append({"query": query, "options": options})
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        return self._results[: options.limit]

    async def test_connection(self, timeout: float) -> ConnectionTestResult:
        if self._probe is not None:
            return self._probe
        if self._error is not None:
            message = self._error.message if isinstance(self._error, SourceError) else str(self._error)
            return ConnectionTestResult(False, message)
        return ConnectionTestResult(True, "Connection successful", self._results[:1], 1.0)

    async def close(self) -> None:
        self.closed = True


class FakeAdapterFactory:
    """Adapter factory returning preconfigured fakes by source id.

    Sources without a configured fake get an empty FakeSourceAdapter.
    """

    def __init__(self, adapters: dict[str, FakeSourceAdapter] | None = None) -> None:
        self.adapters = dict(adapters or {})
        self.created: list[str] = []

    def __call__(self, source: KnowledgeSource) -> FakeSourceAdapter:
        self.created.append(source.id)
        return self.adapters.setdefault(source.id, FakeSourceAdapter(source.id))


class FakeMemorySearch:
    """Fake memory-search primitive.

    Returns the configured results for every project, or raises ``error``.
    """

    def __init__(
        self,
        results: list[RawResult] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        on_search: Callable[[], None] | None = None,
    ) -> None:
        self._results = results or []
        self._error = error
        self._delay = delay
        self._on_search = on_search
        self.call_history: list[dict[str, Any]] = []
        self.closed = False

    async def search(
        self,
        project_id: str,
        query: str,
        limit: int,
        threshold: float,
    ) -> list[RawResult]:
        self.call_history.append(
            {"project_id": project_id, "query": query, "limit": limit, "threshold": threshold}
        )
        if self._on_search is not None:
            self._on_search()
        await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._results[:limit]

    async def close(self) -> None:
        self.closed = True


def source_definition(
    source_id: str,
    project_id: str = "proj",
    enabled: bool = True,
    priority: int = 5,
    **overrides: Any,
) -> dict[str, Any]:
    """Camel-case definition of an external-API source."""
    definition: dict[str, Any] = {
        "id": source_id,
        "name": f"Source {source_id}",
        "type": "external_api",
        "config": {"endpoint": f"http://{source_id}.test/search"},
        "priority": priority,
        "enabled": enabled,
        "projectId": project_id,
    }
    definition.update(overrides)
    return definition
