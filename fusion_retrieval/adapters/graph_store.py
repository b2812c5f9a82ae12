"""Graph store adapter (Weaviate-style GraphQL ``Get`` with ``nearText``).

Normalization: the store reports ``_additional.certainty`` in [0, 1], which
is passed through as both confidence and relevance.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from fusion_retrieval.adapters.base import (
    HTTPSourceAdapter,
    auth_headers,
    truncate,
)
from fusion_retrieval.core.exceptions import SourceUnavailableError
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import GraphStoreConfig


class GraphStoreAdapter(HTTPSourceAdapter):
    """Semantic search over one object class."""

    def __init__(
        self,
        source_id: str,
        source_name: str | None,
        config: GraphStoreConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            source_id,
            source_name,
            config.endpoint,
            headers=auth_headers(config.api_key),
            transport=transport,
        )
        self.config = config

    def build_query(self, query: str, limit: int) -> str:
        prop = self.config.content_property
        return (
            "{ Get { %s(nearText: {concepts: [%s]}, limit: %d) "
            "{ %s _additional { id certainty lastUpdateTimeUnix } } } }"
            % (self.config.class_name, json.dumps(query), limit, prop)
        )

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        data = await self._post_json(
            "/v1/graphql",
            {"query": self.build_query(query, options.limit)},
            options.deadline,
        )
        if data.get("errors"):
            raise SourceUnavailableError(
                f"Source '{self.source_id}' rejected the query: {data['errors'][0].get('message', 'unknown error')}",
                source_id=self.source_id,
            )
        objects = ((data.get("data") or {}).get("Get") or {}).get(self.config.class_name) or []
        return [self._map_object(obj) for obj in objects]

    def _map_object(self, obj: dict[str, Any]) -> RawResult:
        extra = obj.get("_additional") or {}
        certainty = extra.get("certainty")
        score = float(certainty) if certainty is not None else 0.0
        updated = extra.get("lastUpdateTimeUnix")
        return RawResult(
            source_id=self.source_id,
            content=truncate(str(obj.get(self.config.content_property) or "")),
            raw_score=score,
            relevance=score,
            # lastUpdateTimeUnix is in milliseconds
            timestamp=float(updated) / 1000 if updated else None,
            source_metadata={
                key: value for key, value in obj.items()
                if key not in ("_additional", self.config.content_property)
            } | {"className": self.config.class_name},
            result_id=str(extra.get("id", "")),
        )
