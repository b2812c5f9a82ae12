"""Search engine adapter (Elasticsearch/OpenSearch ``_search`` API).

Normalization: BM25 scores are unbounded, so each hit's score is divided by
the top-1 score of the same response. The best hit therefore always has
``raw_score == 1.0`` and the rest are relative to it.
"""

from __future__ import annotations

from typing import Any

import httpx

from fusion_retrieval.adapters.base import (
    HTTPSourceAdapter,
    auth_headers,
    truncate,
)
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import SearchEngineConfig


_TIMESTAMP_KEYS = ("timestamp", "updated_at", "updatedAt", "@timestamp", "created_at")


class SearchEngineAdapter(HTTPSourceAdapter):
    """Full-text search over one index."""

    def __init__(
        self,
        source_id: str,
        source_name: str | None,
        config: SearchEngineConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            source_id,
            source_name,
            config.endpoint,
            headers=auth_headers(config.api_key, scheme="ApiKey"),
            transport=transport,
        )
        self.config = config

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        payload = {
            "query": {"multi_match": {"query": query, "fields": list(self.config.fields)}},
            "size": options.limit,
        }
        data = await self._post_json(f"/{self.config.index_name}/_search", payload, options.deadline)
        hits: list[dict[str, Any]] = (data.get("hits") or {}).get("hits") or []
        return self._map_hits(hits)

    def _map_hits(self, hits: list[dict[str, Any]]) -> list[RawResult]:
        top_score = max((float(hit.get("_score") or 0.0) for hit in hits), default=0.0)
        results = []
        for hit in hits:
            document = hit.get("_source") or {}
            content = document.get("content") or document.get("text") or document.get("title") or ""
            score = float(hit.get("_score") or 0.0)
            results.append(
                RawResult(
                    source_id=self.source_id,
                    content=truncate(str(content)),
                    raw_score=score / top_score if top_score > 0 else 0.0,
                    timestamp=_first_present(document, _TIMESTAMP_KEYS),
                    source_metadata={
                        **{key: value for key, value in document.items() if key not in ("content", "text")},
                        "index": self.config.index_name,
                        "nativeScore": score,
                    },
                    result_id=str(hit.get("_id", "")),
                )
            )
        return results


def _first_present(document: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if document.get(key):
            return document[key]
    return None
