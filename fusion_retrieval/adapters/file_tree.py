"""File tree adapter.

Walks a local directory and matches query terms against file contents.
A file either matches or it does not, so every hit carries the constant
``FILE_MATCH_CONFIDENCE``; the fraction of query terms found is reported
as relevance. File modification time is the hit timestamp.

An existing directory with no matching files is still a reachable source:
an empty probe counts as connected.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from fusion_retrieval.adapters.base import BaseSourceAdapter, query_terms, truncate
from fusion_retrieval.core.constants import FILE_MATCH_CONFIDENCE
from fusion_retrieval.core.exceptions import SourceUnavailableError
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import FileTreeConfig


logger = logging.getLogger(__name__)


class FileTreeAdapter(BaseSourceAdapter):
    """Keyword search over text files under one root directory."""

    empty_probe_is_success = True

    def __init__(self, source_id: str, source_name: str | None, config: FileTreeConfig) -> None:
        super().__init__(source_id, source_name)
        self.config = config
        self.root = Path(config.file_path).expanduser()
        self._suffixes = {
            suffix.lower() if suffix.startswith(".") else f".{suffix.lower()}"
            for suffix in config.file_types
        }

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        if not self.root.is_dir():
            raise SourceUnavailableError(
                f"Directory not found: {self.root}",
                source_id=self.source_id,
            )
        return await asyncio.to_thread(self._scan, query_terms(query), options.limit)

    def _scan(self, terms: list[str], limit: int) -> list[RawResult]:
        if not terms:
            return []
        hits: list[tuple[float, str, RawResult]] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path.suffix.lower() not in self._suffixes:
                continue
            try:
                stat = path.stat()
                if stat.st_size > self.config.max_file_bytes:
                    continue
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug("Skipping unreadable file %s: %s", path, e)
                continue
            lowered = text.lower()
            matched = [term for term in terms if term in lowered]
            if not matched:
                continue
            relevance = len(matched) / len(terms)
            relative = path.relative_to(self.root).as_posix()
            hits.append(
                (
                    relevance,
                    relative,
                    RawResult(
                        source_id=self.source_id,
                        content=truncate(text),
                        raw_score=FILE_MATCH_CONFIDENCE,
                        relevance=relevance,
                        timestamp=stat.st_mtime,
                        source_metadata={
                            "path": relative,
                            "size": stat.st_size,
                            "matchedTerms": matched,
                        },
                        result_id=relative,
                    ),
                )
            )
        hits.sort(key=lambda hit: (-hit[0], hit[1]))
        return [hit[2] for hit in hits[:limit]]
