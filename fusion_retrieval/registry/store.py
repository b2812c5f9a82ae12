"""Source configuration stores.

Backing persistence for the knowledge source registry. Records are plain
JSON-compatible dicts keyed by source id; the registry owns validation.

Pattern: Protocol duck typing with in-memory and file implementations
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml


logger = logging.getLogger(__name__)


@runtime_checkable
class SourceConfigStore(Protocol):
    """Protocol for source-config persistence (get/list/put/delete by id)."""

    def get(self, source_id: str) -> dict[str, Any] | None:
        """Return the stored record or None."""
        ...

    def list(self) -> list[dict[str, Any]]:
        """Return all stored records."""
        ...

    def put(self, source_id: str, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        ...

    def delete(self, source_id: str) -> None:
        """Remove a record; absent ids are ignored."""
        ...


class InMemorySourceConfigStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self, records: dict[str, dict[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = dict(records or {})

    def get(self, source_id: str) -> dict[str, Any] | None:
        record = self._records.get(source_id)
        return dict(record) if record is not None else None

    def list(self) -> list[dict[str, Any]]:
        return [dict(record) for record in self._records.values()]

    def put(self, source_id: str, record: dict[str, Any]) -> None:
        self._records[source_id] = dict(record)

    def delete(self, source_id: str) -> None:
        self._records.pop(source_id, None)


class YamlSourceConfigStore:
    """Store that keeps every record in a single YAML file.

    The file holds ``{"sources": [record, ...]}``. Writes go to a temporary
    sibling file that then replaces the original.

    Attributes:
        path: Location of the YAML file
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        records = data.get("sources", []) if isinstance(data, dict) else []
        return {
            str(record["id"]): record
            for record in records
            if isinstance(record, dict) and record.get("id")
        }

    def _write(self, records: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {"sources": list(records.values())},
                f,
                sort_keys=False,
                allow_unicode=True,
            )
        os.replace(tmp_path, self.path)

    def get(self, source_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._read().get(source_id)

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._read().values())

    def put(self, source_id: str, record: dict[str, Any]) -> None:
        with self._lock:
            records = self._read()
            records[source_id] = record
            self._write(records)
        logger.debug("Persisted source %s to %s", source_id, self.path)

    def delete(self, source_id: str) -> None:
        with self._lock:
            records = self._read()
            if records.pop(source_id, None) is not None:
                self._write(records)


def create_source_store(sources_file: str | None) -> SourceConfigStore:
    """Pick the YAML store when a file is configured, else in-memory."""
    if sources_file:
        return YamlSourceConfigStore(sources_file)
    return InMemorySourceConfigStore()
