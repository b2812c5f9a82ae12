"""Health Monitor.

Probes knowledge sources and the memory store, and drives the per-source
state machine kept in the registry:

    enabled  -> degraded   after N consecutive failed searches
    degraded -> enabled    after one successful probe

A successful search resets the failure streak but does not by itself
recover a degraded source; degraded sources are only searched when a
request names them, so recovery goes through a probe.

Pattern: Monitor over registry-owned health records
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from fusion_retrieval.adapters.base import ConnectionTestResult, SourceAdapter
from fusion_retrieval.adapters.factory import create_adapter
from fusion_retrieval.adapters.memory import MemoryRetriever, MemorySearchProtocol
from fusion_retrieval.core.config import Settings, get_settings
from fusion_retrieval.core.constants import API_VERSION, DEFAULT_PROJECT_ID
from fusion_retrieval.core.logging import get_logger
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from fusion_retrieval.retrieval.orchestrator import AdapterFactory
from fusion_retrieval.schemas.health import (
    HealthReport,
    HealthStatus,
    MemoryHealthEntry,
    SourceHealthEntry,
)
from fusion_retrieval.schemas.sources import KnowledgeSource, source_state


logger = get_logger(__name__)


def calculate_overall_status(up: int, probed: int) -> HealthStatus:
    """Overall status from the number of probed components that answered."""
    if probed == 0 or up == probed:
        return HealthStatus.HEALTHY
    if up == 0:
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


class HealthMonitor:
    """Connectivity probes and failure bookkeeping for knowledge sources.

    Attributes:
        registry: Registry holding sources and their health records
        memory: Memory-search primitive probed by ``health_check``
    """

    def __init__(
        self,
        registry: KnowledgeSourceRegistry,
        memory: MemorySearchProtocol,
        settings: Settings | None = None,
        adapter_factory: AdapterFactory | None = None,
    ) -> None:
        self.registry = registry
        self.memory = memory
        self.settings = settings or get_settings()
        self._adapter_factory: AdapterFactory = adapter_factory or create_adapter
        self._started_at = datetime.now(UTC)
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Search outcomes (called by the orchestrator)
    # -------------------------------------------------------------------------

    def record_success(self, source_id: str) -> None:
        self.registry.record_success(source_id)

    def record_failure(self, source_id: str, error: str) -> None:
        self.registry.record_failure(source_id, error, self.settings.degrade_after_failures)

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def test_connection(self, source_id: str) -> ConnectionTestResult:
        """Probe one source and update its health record.

        A successful probe recovers a degraded source.

        Raises:
            SourceNotFoundError: If the source is not registered
        """
        source = self.registry.get(source_id)
        return await self._probe_source(source)

    async def _probe_source(self, source: KnowledgeSource) -> ConnectionTestResult:
        adapter = self._adapter_factory(source)
        try:
            result = await self._probe(adapter)
        finally:
            await adapter.close()
        if result.connected:
            self.registry.record_success(source.id, recover=True)
        else:
            self.registry.record_failure(
                source.id,
                result.message,
                self.settings.degrade_after_failures,
                count=False,
            )
        logger.info(
            "Source probed",
            source_id=source.id,
            connected=result.connected,
            latency_ms=result.latency_ms,
        )
        return result

    async def _probe(self, adapter: SourceAdapter) -> ConnectionTestResult:
        timeout = self.settings.probe_timeout_seconds
        try:
            return await asyncio.wait_for(adapter.test_connection(timeout), timeout=timeout + 1.0)
        except asyncio.TimeoutError:
            return ConnectionTestResult(False, f"Probe exceeded {timeout:.2f}s", [], timeout * 1000)

    async def check_memory(self) -> MemoryHealthEntry:
        """Probe the memory store."""
        result = await self._probe(MemoryRetriever(self.memory, DEFAULT_PROJECT_ID))
        return MemoryHealthEntry(
            connected=result.connected,
            message=result.message,
            latency_ms=result.latency_ms,
        )

    async def probe_degraded(self) -> int:
        """Probe every degraded source once.

        Returns:
            Number of sources that recovered
        """
        degraded = [
            source for source in self.registry.list()
            if source.enabled and self.registry.health_of(source.id).degraded
        ]
        results = await asyncio.gather(
            *(self._probe_source(source) for source in degraded),
            return_exceptions=True,
        )
        recovered = 0
        for source, result in zip(degraded, results):
            if isinstance(result, Exception):
                logger.warning("Degraded source probe errored", source_id=source.id, error=repr(result))
                self.registry.record_failure(
                    source.id,
                    str(result) or type(result).__name__,
                    self.settings.degrade_after_failures,
                    count=False,
                )
            elif isinstance(result, BaseException):
                raise result
            elif result.connected:
                recovered += 1
        if degraded:
            logger.info("Degraded sources probed", probed=len(degraded), recovered=recovered)
        return recovered

    # -------------------------------------------------------------------------
    # Aggregated report
    # -------------------------------------------------------------------------

    async def health_check(self) -> HealthReport:
        """Probe memory and every enabled source concurrently.

        Returns:
            HealthReport with overall status and per-source entries
        """
        sources = self.registry.list()
        enabled = [source for source in sources if source.enabled]
        memory, *probes = await asyncio.gather(
            self.check_memory(),
            *(self._probe_source(source) for source in enabled),
        )
        outcome = {source.id: probe for source, probe in zip(enabled, probes)}

        entries = [self._entry(source, outcome.get(source.id)) for source in sources]
        up = int(memory.connected) + sum(1 for probe in probes if probe.connected)
        status = calculate_overall_status(up, len(probes) + 1)
        if status != HealthStatus.HEALTHY:
            logger.warning("Health check not healthy", status=status.value, up=up, probed=len(probes) + 1)

        return HealthReport(
            status=status,
            service=self.settings.service_name,
            version=API_VERSION,
            uptime_seconds=self.uptime_seconds(),
            memory=memory,
            sources=entries,
        )

    def _entry(self, source: KnowledgeSource, probe: ConnectionTestResult | None) -> SourceHealthEntry:
        health = self.registry.health_of(source.id)
        return SourceHealthEntry(
            id=source.id,
            name=source.name,
            type=source.type,
            state=source_state(source, health),
            connected=probe.connected if probe else None,
            message=probe.message if probe else "Source is disabled",
            latency_ms=probe.latency_ms if probe else None,
            last_checked=health.last_checked,
            consecutive_failures=health.consecutive_failures,
        )

    def uptime_seconds(self) -> float:
        return (datetime.now(UTC) - self._started_at).total_seconds()

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start periodic probing of degraded sources (no-op if the interval is 0)."""
        interval = self.settings.probe_interval_seconds
        if interval <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._run(interval))
        logger.info("Health monitor started", interval_seconds=interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Health monitor stopped")

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.probe_degraded()
            except Exception as e:
                logger.error("Degraded source probing failed", error=repr(e))
