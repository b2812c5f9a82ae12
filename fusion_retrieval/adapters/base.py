"""Source Adapter contract.

Every knowledge-source kind implements the same capability set:

- ``connect()``: prepare native clients (lazy, idempotent)
- ``query(query, options)``: return ``RawResult`` hits within ``options.deadline``
- ``test_connection()``: run the probe query and report connectivity

Adapters map native relevance onto ``raw_score`` in [0, 1] with a
documented per-kind normalization. ``BaseSourceAdapter`` enforces the
deadline and translates transport failures into per-source errors so that
the orchestrator sees one of ``SourceTimeoutError``/``SourceUnavailableError``.

Pattern: Template method over a Protocol
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx

from fusion_retrieval.core.constants import MAX_CONTENT_CHARS, PROBE_LIMIT, PROBE_QUERY
from fusion_retrieval.core.exceptions import (
    SourceError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from fusion_retrieval.schemas.search import QueryOptions, RawResult, coerce_unit


logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Definition
# =============================================================================


@dataclass
class ConnectionTestResult:
    """Outcome of a connectivity probe.

    Attributes:
        connected: Whether the source is considered reachable
        message: Human-readable explanation
        sample: Results returned by the probe query
        latency_ms: Probe duration in milliseconds
    """

    connected: bool
    message: str
    sample: list[RawResult] = field(default_factory=list)
    latency_ms: float = 0.0


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for knowledge-source adapters.

    Enables duck typing for test doubles (FakeSourceAdapter).
    """

    source_id: str

    async def connect(self) -> None:
        """Prepare native clients."""
        ...

    async def query(self, query: str, options: QueryOptions) -> list[RawResult]:
        """Search the source.

        Raises:
            SourceTimeoutError: Deadline exceeded
            SourceUnavailableError: Source unreachable or answered with an error
        """
        ...

    async def test_connection(self, timeout: float) -> ConnectionTestResult:
        """Run the probe query."""
        ...

    async def close(self) -> None:
        """Release native clients."""
        ...


# =============================================================================
# Base Implementation
# =============================================================================


class BaseSourceAdapter(ABC):
    """Shared deadline, error mapping and probe logic for adapters.

    Subclasses implement ``_search`` and receive a read-only snapshot of
    their configuration.

    Attributes:
        source_id: Id of the source this adapter serves
        source_name: Display name used in results
    """

    empty_probe_is_success: ClassVar[bool] = False
    """Whether a probe returning zero hits still counts as connected."""

    def __init__(self, source_id: str, source_name: str | None = None) -> None:
        self.source_id = source_id
        self.source_name = source_name or source_id

    async def connect(self) -> None:
        """Prepare native clients. No-op by default."""

    async def close(self) -> None:
        """Release native clients. No-op by default."""

    async def query(self, query: str, options: QueryOptions) -> list[RawResult]:
        """Search the source within ``options.deadline``.

        Args:
            query: Adapter-neutral query text
            options: Limit, threshold and deadline

        Returns:
            At most ``options.limit`` hits ordered as the source ranked them

        Raises:
            SourceTimeoutError: Deadline exceeded
            SourceUnavailableError: Transport or protocol failure
        """
        try:
            await self.connect()
            results = await asyncio.wait_for(self._search(query, options), timeout=options.deadline)
        except asyncio.TimeoutError as e:
            raise SourceTimeoutError(
                f"Source '{self.source_id}' exceeded its {options.deadline:.2f}s deadline",
                source_id=self.source_id,
                timeout_seconds=options.deadline,
                cause=e,
            ) from e
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(
                f"Source '{self.source_id}' timed out: {e}",
                source_id=self.source_id,
                timeout_seconds=options.deadline,
                cause=e,
            ) from e
        except httpx.HTTPStatusError as e:
            raise SourceUnavailableError(
                f"Source '{self.source_id}' answered {e.response.status_code}",
                source_id=self.source_id,
                cause=e,
                url=str(e.request.url),
            ) from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(
                f"Source '{self.source_id}' unreachable: {e}",
                source_id=self.source_id,
                cause=e,
            ) from e
        except SourceError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SourceUnavailableError(
                f"Source '{self.source_id}' failed: {e}",
                source_id=self.source_id,
                cause=e,
            ) from e
        return self._finalize(results, options)

    @abstractmethod
    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        """Run the native query and map hits to RawResult."""

    def _finalize(self, results: list[RawResult], options: QueryOptions) -> list[RawResult]:
        """Drop hits that cannot reach the threshold and apply the limit.

        With weights at most 1, a fused score never exceeds the larger of a
        hit's confidence and relevance, so such hits are safe to drop here.
        """
        kept = [
            result for result in results
            if _upper_bound(result) >= options.threshold
        ]
        return kept[: options.limit]

    async def test_connection(self, timeout: float) -> ConnectionTestResult:
        """Run the probe query with a short deadline.

        Args:
            timeout: Probe deadline in seconds

        Returns:
            ConnectionTestResult; never raises for source failures
        """
        started = time.perf_counter()
        try:
            sample = await self.query(
                PROBE_QUERY,
                QueryOptions(limit=PROBE_LIMIT, threshold=0.0, deadline=timeout),
            )
        except SourceError as e:
            logger.warning("Probe failed for source %s: %s", self.source_id, e.message)
            return ConnectionTestResult(
                connected=False,
                message=e.message,
                latency_ms=_elapsed_ms(started),
            )
        latency = _elapsed_ms(started)
        if sample:
            return ConnectionTestResult(True, "Connection successful", sample, latency)
        if self.empty_probe_is_success:
            return ConnectionTestResult(True, "Connection successful (no matching content)", [], latency)
        return ConnectionTestResult(False, "Connection failed or no data found", [], latency)


# =============================================================================
# Helpers shared by adapters
# =============================================================================


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _upper_bound(result: RawResult) -> float:
    """Highest fused score a hit could reach; malformed values count as 0."""
    confidence = coerce_unit(result.raw_score) or 0.0
    relevance = coerce_unit(result.relevance)
    return confidence if relevance is None else max(confidence, relevance)


def truncate(content: str) -> str:
    """Bound the content carried by a hit."""
    return content[:MAX_CONTENT_CHARS]


def query_terms(query: str) -> list[str]:
    """Lowercased, de-duplicated query terms in order of appearance."""
    seen: dict[str, None] = {}
    for term in query.lower().split():
        term = term.strip(".,;:!?\"'()[]{}")
        if term:
            seen.setdefault(term, None)
    return list(seen)


def auth_headers(api_key: str | None, scheme: str = "Bearer") -> dict[str, str]:
    """Authorization header for ``api_key`` (empty when unset)."""
    if not api_key:
        return {}
    return {"Authorization": f"{scheme} {api_key}"}


class HTTPSourceAdapter(BaseSourceAdapter):
    """Adapter base for sources reached over HTTP.

    Holds one pooled ``httpx.AsyncClient`` per adapter, created lazily.
    """

    def __init__(
        self,
        source_id: str,
        source_name: str | None,
        base_url: str,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(source_id, source_name)
        self.base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("connect() must be called before using the client")
        return self._client

    async def _post_json(self, path: str, payload: dict[str, Any], timeout: float) -> Any:
        response = await self.client.post(path, json=payload, timeout=timeout)
        response.raise_for_status()
        return response.json()
