"""Relational store adapter (SQLite).

Each query term becomes a parameterized ``LIKE`` predicate on the content
column; rows matching any term are returned. The score is the fraction of
query terms the row matched. Table and column names were checked to be
plain identifiers when the source was registered.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import closing
from typing import Any

from fusion_retrieval.adapters.base import (
    BaseSourceAdapter,
    query_terms,
    truncate,
)
from fusion_retrieval.core.exceptions import SourceUnavailableError
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import RelationalStoreConfig


_SQLITE_PREFIX = "sqlite:///"


class RelationalStoreAdapter(BaseSourceAdapter):
    """Keyword search over one table."""

    def __init__(self, source_id: str, source_name: str | None, config: RelationalStoreConfig) -> None:
        super().__init__(source_id, source_name)
        self.config = config
        self.database = config.connection_string[len(_SQLITE_PREFIX):]

    def build_statement(self, terms: list[str], limit: int) -> tuple[str, list[Any]]:
        """SQL and parameters selecting rows that contain any of ``terms``."""
        cfg = self.config
        columns = [cfg.id_field, cfg.content_field]
        if cfg.timestamp_field:
            columns.append(cfg.timestamp_field)
        predicate = " OR ".join(f"lower({cfg.content_field}) LIKE ?" for _ in terms)
        sql = f"SELECT {', '.join(columns)} FROM {cfg.table} WHERE {predicate}"
        params: list[Any] = [f"%{term}%" for term in terms]
        # Over-fetch so that ranking by matched terms happens on a wider pool
        sql += " LIMIT ?"
        params.append(limit * 5)
        return sql, params

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        terms = query_terms(query)
        if not terms:
            return []
        try:
            rows = await asyncio.to_thread(self._fetch, terms, options.limit)
        except sqlite3.Error as e:
            raise SourceUnavailableError(
                f"Source '{self.source_id}' query failed: {e}",
                source_id=self.source_id,
                cause=e,
            ) from e
        results = [self._map_row(row, terms) for row in rows]
        results.sort(key=lambda result: -result.raw_score)
        return results[: options.limit]

    def _fetch(self, terms: list[str], limit: int) -> list[tuple[Any, ...]]:
        sql, params = self.build_statement(terms, limit)
        uri = f"file:{self.database}?mode=ro"
        with closing(sqlite3.connect(uri, uri=True)) as conn:
            return conn.execute(sql, params).fetchall()

    def _map_row(self, row: tuple[Any, ...], terms: list[str]) -> RawResult:
        content = str(row[1] or "")
        lowered = content.lower()
        matched = sum(1 for term in terms if term in lowered)
        timestamp = row[2] if self.config.timestamp_field and len(row) > 2 else None
        return RawResult(
            source_id=self.source_id,
            content=truncate(content),
            raw_score=matched / len(terms),
            timestamp=timestamp,
            source_metadata={"table": self.config.table, "matchedTerms": matched},
            result_id=str(row[0]),
        )
