"""Query Orchestrator.

Runs one search end to end:

1. validate the request and resolve its fusion strategy
2. resolve the source set from an immutable registry snapshot
3. fan the query out to memory plus every resolved source, concurrently
4. isolate per-source failures and record them in the stats
5. hand the union of successful hits to the fusion engine

Concurrency:
- one asyncio task per source, bounded by a semaphore
- each task has its own deadline (``source_timeout_seconds``)
- the whole fan-out has an overall deadline (``request_timeout_seconds``)
  and may be cut short by a cancellation event; still-running tasks are
  cancelled and whatever already completed is fused

Pattern: Scatter-gather with failure isolation
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from fusion_retrieval.adapters.base import SourceAdapter
from fusion_retrieval.adapters.factory import create_adapter
from fusion_retrieval.adapters.memory import MemoryRetriever, MemorySearchProtocol
from fusion_retrieval.core.config import Settings, get_settings
from fusion_retrieval.core.constants import MEMORY_SOURCE_ID, MEMORY_SOURCE_NAME
from fusion_retrieval.core.exceptions import (
    AggregateFailureError,
    FusionValidationError,
    SourceError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from fusion_retrieval.core.logging import get_logger
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from fusion_retrieval.retrieval.fusion import FusionEngine
from fusion_retrieval.schemas.search import (
    FailureReason,
    QueryOptions,
    RawResult,
    SearchRequest,
    SearchResponse,
    SearchStats,
    SourceDescriptor,
    SourceFailure,
)
from fusion_retrieval.schemas.sources import KnowledgeSource


logger = get_logger(__name__)

AdapterFactory = Callable[[KnowledgeSource], SourceAdapter]


class SourceOutcomeRecorder(Protocol):
    """Receives per-source query outcomes (implemented by HealthMonitor)."""

    def record_success(self, source_id: str) -> None:
        ...

    def record_failure(self, source_id: str, error: str) -> None:
        ...


@dataclass
class SourceOutcome:
    """What one fan-out task produced: hits or a failure."""

    source_id: str
    results: list[RawResult] | None = None
    error: Exception | None = None
    reason: FailureReason | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryOrchestrator:
    """Fans a search out to memory and knowledge sources, then fuses.

    Attributes:
        registry: Source registry (read through snapshots only)
        memory: Memory-search primitive, always queried
        fusion_engine: Scores and ranks the collected hits
    """

    def __init__(
        self,
        registry: KnowledgeSourceRegistry,
        memory: MemorySearchProtocol,
        fusion_engine: FusionEngine | None = None,
        settings: Settings | None = None,
        adapter_factory: AdapterFactory | None = None,
        recorder: SourceOutcomeRecorder | None = None,
    ) -> None:
        self.registry = registry
        self.memory = memory
        self.fusion_engine = fusion_engine or FusionEngine()
        self.settings = settings or get_settings()
        self._adapter_factory: AdapterFactory = adapter_factory or create_adapter
        self._recorder = recorder

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def search(
        self,
        request: SearchRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> SearchResponse:
        """Run a fused search.

        Args:
            request: Search request
            cancel_event: When set, running source queries are cancelled and
                the hits collected so far are fused

        Returns:
            SearchResponse with ranked results and fan-out stats

        Raises:
            FusionValidationError: Missing query or projectId
            AggregateFailureError: Every queried source, memory included, failed
        """
        started = time.perf_counter()
        self.validate(request)
        strategy = request.effective_strategy(self.settings.default_strategy())
        sources, skipped = self.resolve_sources(request)

        adapters: list[SourceAdapter] = [
            MemoryRetriever(self.memory, request.project_id, MEMORY_SOURCE_NAME)
        ]
        adapters.extend(self._adapter_factory(source) for source in sources)
        descriptors = {
            MEMORY_SOURCE_ID: SourceDescriptor(
                MEMORY_SOURCE_ID, MEMORY_SOURCE_NAME, self.settings.memory_priority
            ),
            **{source.id: SourceDescriptor(source.id, source.name, source.priority) for source in sources},
        }
        options = QueryOptions(
            limit=strategy.max_results * self.settings.candidate_multiplier,
            threshold=strategy.threshold,
            deadline=self.settings.source_timeout_seconds,
        )

        try:
            outcomes = await self._fan_out(adapters, request.query, options, cancel_event)
        finally:
            await asyncio.gather(*(adapter.close() for adapter in adapters), return_exceptions=True)

        self._record_health(outcomes)
        stats = self._build_stats(outcomes, skipped)
        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed and len(failed) == len(outcomes):
            logger.error("All sources failed", project_id=request.project_id, sources=len(outcomes))
            raise AggregateFailureError(
                {outcome.source_id: outcome.error for outcome in failed if outcome.error is not None}
            )

        candidates = [hit for outcome in outcomes if outcome.results for hit in outcome.results]
        fused = self.fusion_engine.fuse(candidates, strategy, descriptors, query=request.query)
        stats.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "Search complete",
            project_id=request.project_id,
            sources_queried=stats.sources_queried,
            sources_failed=stats.sources_failed,
            sources_timed_out=stats.sources_timed_out,
            candidates=stats.total_candidates,
            results=len(fused),
            duration_ms=stats.duration_ms,
        )
        return SearchResponse(fused_results=fused, stats=stats)

    @staticmethod
    def validate(request: SearchRequest) -> None:
        """Reject requests without a query or project.

        Raises:
            FusionValidationError: If ``query`` or ``projectId`` is blank
        """
        if not request.query or not request.query.strip():
            raise FusionValidationError("Query is required", field="query", value=request.query)
        if not request.project_id or not request.project_id.strip():
            raise FusionValidationError("projectId is required", field="projectId", value=request.project_id)

    def resolve_sources(self, request: SearchRequest) -> tuple[tuple[KnowledgeSource, ...], list[str]]:
        """Pick the knowledge sources to query.

        With no requested ids, every enabled, non-degraded source of the
        project is used. Otherwise the requested ids are intersected with the
        project's enabled sources (degraded ones included); ids that do not
        match are reported as skipped.

        Returns:
            (sources ordered by id, skipped ids in request order)
        """
        if not request.sources:
            return self.registry.snapshot(request.project_id), []

        available = {
            source.id: source
            for source in self.registry.snapshot(request.project_id, include_degraded=True)
        }
        selected: list[KnowledgeSource] = []
        skipped: list[str] = []
        for source_id in dict.fromkeys(request.sources):
            if source_id == MEMORY_SOURCE_ID:
                continue  # memory is always queried
            if source_id in available:
                selected.append(available[source_id])
            else:
                skipped.append(source_id)
        if skipped:
            logger.info("Requested sources skipped", project_id=request.project_id, skipped=skipped)
        return tuple(sorted(selected, key=lambda source: source.id)), skipped

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    async def _fan_out(
        self,
        adapters: Sequence[SourceAdapter],
        query: str,
        options: QueryOptions,
        cancel_event: asyncio.Event | None,
    ) -> list[SourceOutcome]:
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        async def run(adapter: SourceAdapter) -> list[RawResult]:
            async with semaphore:
                try:
                    return await asyncio.wait_for(adapter.query(query, options), timeout=options.deadline)
                except asyncio.TimeoutError as e:
                    raise SourceTimeoutError(
                        f"Source '{adapter.source_id}' exceeded its {options.deadline:.2f}s deadline",
                        source_id=adapter.source_id,
                        timeout_seconds=options.deadline,
                        cause=e,
                    ) from e

        tasks = {asyncio.create_task(run(adapter)): adapter.source_id for adapter in adapters}
        pending: set[asyncio.Task[list[RawResult]]] = set(tasks)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.request_timeout_seconds
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        stop_reason: FailureReason | None = None

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    stop_reason = FailureReason.TIMEOUT
                    break
                waiting: set[asyncio.Task] = set(pending)
                if cancel_waiter is not None:
                    waiting.add(cancel_waiter)
                done, _ = await asyncio.wait(waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if cancel_waiter is not None and cancel_waiter in done:
                    stop_reason = FailureReason.CANCELLED
                    break
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if pending:
            logger.warning(
                "Search fan-out stopped early",
                reason=(stop_reason or FailureReason.TIMEOUT).value,
                unfinished=sorted(tasks[task] for task in pending),
            )
        return [
            self._outcome(tasks[task], task, task in pending, stop_reason or FailureReason.TIMEOUT)
            for task in tasks
        ]

    def _outcome(
        self,
        source_id: str,
        task: asyncio.Task[list[RawResult]],
        unfinished: bool,
        stop_reason: FailureReason,
    ) -> SourceOutcome:
        if unfinished or task.cancelled():
            message = (
                "Search was cancelled before the source answered"
                if stop_reason == FailureReason.CANCELLED
                else f"Request deadline of {self.settings.request_timeout_seconds:.2f}s exceeded"
            )
            error = SourceTimeoutError(message, source_id=source_id)
            return SourceOutcome(source_id, error=error, reason=stop_reason)

        error = task.exception()
        if error is None:
            return SourceOutcome(source_id, results=task.result())
        if isinstance(error, SourceTimeoutError):
            reason = FailureReason.TIMEOUT
        elif isinstance(error, SourceUnavailableError):
            reason = FailureReason.UNAVAILABLE
        else:
            reason = FailureReason.ERROR
        log = logger.warning if isinstance(error, SourceError) else logger.error
        log(
            "Source query failed",
            source_id=source_id,
            reason=reason.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        return SourceOutcome(source_id, error=error, reason=reason)

    # -------------------------------------------------------------------------
    # Accounting
    # -------------------------------------------------------------------------

    @staticmethod
    def _build_stats(outcomes: list[SourceOutcome], skipped: list[str]) -> SearchStats:
        stats = SearchStats(sources_queried=len(outcomes), sources_skipped=list(skipped))
        for outcome in outcomes:
            if outcome.ok:
                stats.total_candidates += len(outcome.results or [])
                continue
            if outcome.reason in (FailureReason.TIMEOUT, FailureReason.CANCELLED):
                stats.sources_timed_out += 1
            else:
                stats.sources_failed += 1
            stats.failures.append(
                SourceFailure(
                    source_id=outcome.source_id,
                    reason=outcome.reason or FailureReason.ERROR,
                    message=str(outcome.error),
                )
            )
        return stats

    def _record_health(self, outcomes: list[SourceOutcome]) -> None:
        if self._recorder is None:
            return
        for outcome in outcomes:
            if outcome.source_id == MEMORY_SOURCE_ID or outcome.reason == FailureReason.CANCELLED:
                continue
            if outcome.ok:
                self._recorder.record_success(outcome.source_id)
            else:
                self._recorder.record_failure(outcome.source_id, str(outcome.error))
