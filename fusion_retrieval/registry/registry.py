"""Knowledge Source Registry.

Owns the canonical set of configured knowledge sources and their health
records.

Concurrency model:
- Writes (add/update/remove/health changes) are serialized by a single lock.
- Every write builds a new immutable mapping and swaps the reference, so
  readers never lock and a snapshot taken by an in-flight search is not
  affected by later writes.

Pattern: Copy-on-write registry over a pluggable store
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from fusion_retrieval.core.exceptions import FusionValidationError, SourceNotFoundError
from fusion_retrieval.core.logging import get_logger
from fusion_retrieval.registry.store import InMemorySourceConfigStore, SourceConfigStore
from fusion_retrieval.schemas.sources import (
    KnowledgeSource,
    SourceHealth,
    SourceState,
    source_state,
)


logger = get_logger(__name__)

_NEVER_PATCHED = frozenset({"id"})


class KnowledgeSourceRegistry:
    """Registry of knowledge sources.

    Attributes:
        store: Persistence collaborator; written through on every change
    """

    def __init__(self, store: SourceConfigStore | None = None) -> None:
        self.store: SourceConfigStore = store if store is not None else InMemorySourceConfigStore()
        self._write_lock = threading.Lock()
        self._sources: Mapping[str, KnowledgeSource] = MappingProxyType({})
        self._health: Mapping[str, SourceHealth] = MappingProxyType({})

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self) -> int:
        """Load all sources from the store, replacing the current set.

        Invalid records are skipped and logged.

        Returns:
            Number of sources loaded
        """
        loaded: dict[str, KnowledgeSource] = {}
        for record in self.store.list():
            try:
                source = KnowledgeSource.parse(record)
            except FusionValidationError as e:
                logger.warning("Skipping invalid stored source", record_id=record.get("id"), error=e.message)
                continue
            loaded[source.id] = source
        with self._write_lock:
            self._sources = MappingProxyType(loaded)
            self._health = MappingProxyType({source_id: SourceHealth() for source_id in loaded})
        logger.info("Knowledge sources loaded", count=len(loaded))
        return len(loaded)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def add(self, source: KnowledgeSource | dict[str, Any]) -> KnowledgeSource:
        """Register a new source.

        Args:
            source: Validated source or raw definition

        Returns:
            The registered source

        Raises:
            FusionValidationError: Missing/invalid fields or duplicate id
        """
        if not isinstance(source, KnowledgeSource):
            source = KnowledgeSource.parse(source)
        with self._write_lock:
            if source.id in self._sources:
                raise FusionValidationError(
                    f"Knowledge source '{source.id}' already exists",
                    field="id",
                    value=source.id,
                )
            self.store.put(source.id, source.to_record())
            self._sources = MappingProxyType({**self._sources, source.id: source})
            self._health = MappingProxyType({**self._health, source.id: SourceHealth()})
        logger.info("Knowledge source added", source_id=source.id, source_type=source.type.value)
        return source

    def update(self, source_id: str, patch: dict[str, Any]) -> KnowledgeSource:
        """Apply a partial patch to a source.

        ``config`` keys are merged into the existing configuration unless
        the patch also changes ``type``, in which case the patch config
        replaces it.

        Raises:
            SourceNotFoundError: If the source is not registered
            FusionValidationError: If the patched source is invalid
        """
        with self._write_lock:
            current = self._sources.get(source_id)
            if current is None:
                raise SourceNotFoundError(source_id)
            patched_id = patch.get("id", source_id)
            if patched_id != source_id:
                raise FusionValidationError(
                    "Source id cannot be changed",
                    field="id",
                    value=patched_id,
                )
            updated = KnowledgeSource.parse(self._merge(current, patch))
            self.store.put(source_id, updated.to_record())
            self._sources = MappingProxyType({**self._sources, source_id: updated})
            if not current.enabled and updated.enabled:
                # Re-enabling starts from a clean health record
                self._health = MappingProxyType({**self._health, source_id: SourceHealth()})
        logger.info("Knowledge source updated", source_id=source_id, fields=sorted(patch))
        return updated

    @staticmethod
    def _merge(current: KnowledgeSource, patch: dict[str, Any]) -> dict[str, Any]:
        merged = current.to_record()
        by_alias = {
            KnowledgeSource.model_fields[name].alias or name: value
            for name, value in patch.items()
            if name in KnowledgeSource.model_fields
        }
        # Accept both camelCase and snake_case keys in the patch
        by_alias.update({key: value for key, value in patch.items() if key not in KnowledgeSource.model_fields})
        type_changed = "type" in by_alias and by_alias["type"] != merged["type"]
        for key, value in by_alias.items():
            if key in _NEVER_PATCHED:
                continue
            if key == "config" and isinstance(value, dict) and not type_changed:
                merged["config"] = {**merged.get("config", {}), **value}
            else:
                merged[key] = value
        return merged

    def remove(self, source_id: str) -> bool:
        """Remove a source and its health record.

        Idempotent: removing an unknown id is not an error.

        Returns:
            True if a source was removed
        """
        with self._write_lock:
            existed = source_id in self._sources
            self.store.delete(source_id)
            if existed:
                self._sources = MappingProxyType(
                    {key: value for key, value in self._sources.items() if key != source_id}
                )
                self._health = MappingProxyType(
                    {key: value for key, value in self._health.items() if key != source_id}
                )
        if existed:
            logger.info("Knowledge source removed", source_id=source_id)
        return existed

    # -------------------------------------------------------------------------
    # Reads (lock-free)
    # -------------------------------------------------------------------------

    def get(self, source_id: str) -> KnowledgeSource:
        """Return a source by id.

        Raises:
            SourceNotFoundError: If the source is not registered
        """
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def list(self, project_id: str | None = None) -> list[KnowledgeSource]:
        """Return enabled and disabled sources, optionally for one project."""
        sources = self._sources.values()
        if project_id is not None:
            sources = [source for source in sources if source.project_id == project_id]
        return sorted(sources, key=lambda source: source.id)

    def snapshot(
        self,
        project_id: str,
        enabled_only: bool = True,
        include_degraded: bool = False,
    ) -> tuple[KnowledgeSource, ...]:
        """Immutable slice of a project's sources for one search.

        Args:
            project_id: Project whose sources are returned
            enabled_only: Drop disabled sources
            include_degraded: Keep sources currently marked degraded

        Returns:
            Tuple of sources ordered by id
        """
        sources, health = self._sources, self._health
        selected = []
        for source in sources.values():
            if source.project_id != project_id:
                continue
            if enabled_only and not source.enabled:
                continue
            if not include_degraded and health.get(source.id, SourceHealth()).degraded:
                continue
            selected.append(source)
        return tuple(sorted(selected, key=lambda source: source.id))

    def health_of(self, source_id: str) -> SourceHealth:
        """Return the health record of a source (clean record if unknown)."""
        return self._health.get(source_id, SourceHealth())

    def state_of(self, source_id: str) -> SourceState:
        """Return the lifecycle state of a registered source."""
        return source_state(self.get(source_id), self.health_of(source_id))

    # -------------------------------------------------------------------------
    # Health writes
    # -------------------------------------------------------------------------

    def record_success(self, source_id: str, recover: bool = False) -> SourceHealth | None:
        """Reset the failure streak of a source.

        Args:
            source_id: Source that answered
            recover: Also clear the degraded flag (successful probe)

        Returns:
            New health record, or None if the source is no longer registered
        """
        return self._update_health(
            source_id,
            lambda health: replace(
                health,
                consecutive_failures=0,
                degraded=False if recover else health.degraded,
                last_checked=datetime.now(UTC),
                last_error=None,
            ),
        )

    def record_failure(
        self,
        source_id: str,
        error: str,
        degrade_after: int,
        count: bool = True,
    ) -> SourceHealth | None:
        """Record a failure and degrade the source after ``degrade_after`` in a row.

        With ``count=False`` only the error and check time are recorded
        (failed probes do not advance the streak).
        """

        def _fail(health: SourceHealth) -> SourceHealth:
            failures = health.consecutive_failures + (1 if count else 0)
            return replace(
                health,
                consecutive_failures=failures,
                degraded=health.degraded or failures >= degrade_after,
                last_checked=datetime.now(UTC),
                last_error=error,
            )

        return self._update_health(source_id, _fail)

    def _update_health(
        self,
        source_id: str,
        change: Callable[[SourceHealth], SourceHealth],
    ) -> SourceHealth | None:
        with self._write_lock:
            if source_id not in self._sources:
                return None
            previous = self._health.get(source_id, SourceHealth())
            updated = change(previous)
            self._health = MappingProxyType({**self._health, source_id: updated})
        if updated.degraded != previous.degraded:
            logger.warning(
                "Knowledge source state changed",
                source_id=source_id,
                state=SourceState.DEGRADED.value if updated.degraded else SourceState.ENABLED.value,
                consecutive_failures=updated.consecutive_failures,
            )
        return updated

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources
