"""Vector store adapter (Chroma-style collection query API).

Normalization depends on the collection's distance metric:

- cosine: distance d in [0, 2] maps to similarity 1 - d, then [-1, 1] -> [0, 1]
- ip: the store returns 1 - dot; the dot product is passed through and clamped
- l2: similarity 1 / (1 + d)

The similarity is also reported as the hit's relevance.
"""

from __future__ import annotations

from typing import Any

import httpx
import numpy as np

from fusion_retrieval.adapters.base import HTTPSourceAdapter, truncate
from fusion_retrieval.schemas.search import QueryOptions, RawResult
from fusion_retrieval.schemas.sources import VectorStoreConfig


def distances_to_scores(distances: list[float], metric: str) -> list[float]:
    """Map native distances to [0, 1] similarity scores."""
    values = np.asarray(distances, dtype=float)
    if metric == "l2":
        scores = 1.0 / (1.0 + np.maximum(values, 0.0))
    elif metric == "ip":
        scores = 1.0 - values
    else:
        scores = ((1.0 - values) + 1.0) / 2.0
    return np.clip(scores, 0.0, 1.0).tolist()


class VectorStoreAdapter(HTTPSourceAdapter):
    """Nearest-neighbour search over one collection, queried by text."""

    def __init__(
        self,
        source_id: str,
        source_name: str | None,
        config: VectorStoreConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(source_id, source_name, config.endpoint, transport=transport)
        self.config = config

    async def _search(self, query: str, options: QueryOptions) -> list[RawResult]:
        payload = {
            "query_texts": [query],
            "n_results": options.limit,
            "include": ["documents", "metadatas", "distances"],
        }
        data = await self._post_json(
            f"/api/v1/collections/{self.config.collection}/query",
            payload,
            options.deadline,
        )
        return self._map_response(data)

    def _map_response(self, data: dict[str, Any]) -> list[RawResult]:
        documents = _first_row(data.get("documents"))
        ids = _first_row(data.get("ids"))
        metadatas = _first_row(data.get("metadatas"))
        distances = _first_row(data.get("distances"))
        scores = distances_to_scores(
            [float(d) if d is not None else 2.0 for d in distances[: len(documents)]],
            self.config.distance,
        )
        results = []
        for index, document in enumerate(documents):
            metadata = (metadatas[index] if index < len(metadatas) else None) or {}
            score = scores[index] if index < len(scores) else 0.0
            results.append(
                RawResult(
                    source_id=self.source_id,
                    content=truncate(str(document or "")),
                    raw_score=score,
                    relevance=score,
                    timestamp=metadata.get("timestamp"),
                    source_metadata={**metadata, "collection": self.config.collection},
                    result_id=str(ids[index]) if index < len(ids) else f"{self.config.collection}_{index}",
                )
            )
        return results


def _first_row(value: Any) -> list[Any]:
    if isinstance(value, list) and value and isinstance(value[0], list):
        return value[0]
    return []
