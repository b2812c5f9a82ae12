"""Generic HTTP knowledge-base adapter.

Sends ``{query, limit}`` (POST body or GET params) and reads hits from
``results_field``. A hit's ``score_field`` is expected in [0, 1]; hits
without one get ``DEFAULT_API_CONFIDENCE``.
"""

from __future__ import annotations

from typing import Any

import httpx

from fusion_retrieval.adapters.base import (
    HTTPSourceAdapter,
    auth_headers,
    truncate,
)
from fusion_retrieval.core.constants import DEFAULT_API_CONFIDENCE
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import ExternalApiConfig


class ExternalApiAdapter(HTTPSourceAdapter):
    """Third-party search API reached at a single URL."""

    def __init__(
        self,
        source_id: str,
        source_name: str | None,
        config: ExternalApiConfig,
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

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        params = {"query": query, "limit": options.limit}
        if self.config.method == "GET":
            response = await self.client.get(self.config.endpoint, params=params, timeout=options.deadline)
        else:
            response = await self.client.post(self.config.endpoint, json=params, timeout=options.deadline)
        response.raise_for_status()
        data = response.json()
        hits = data if isinstance(data, list) else data.get(self.config.results_field) or []
        return [self._map_hit(index, hit) for index, hit in enumerate(hits) if isinstance(hit, dict)]

    def _map_hit(self, index: int, hit: dict[str, Any]) -> RawResult:
        cfg = self.config
        score = hit.get(cfg.score_field)
        return RawResult(
            source_id=self.source_id,
            content=truncate(str(hit.get(cfg.content_field) or "")),
            raw_score=score if score is not None else DEFAULT_API_CONFIDENCE,
            timestamp=hit.get("timestamp") or hit.get("updatedAt"),
            source_metadata={
                key: value for key, value in hit.items()
                if key not in (cfg.content_field, cfg.score_field)
            },
            result_id=str(hit.get("id", index)),
        )
