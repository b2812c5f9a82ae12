"""Adapter construction from a knowledge source definition."""

from __future__ import annotations

import httpx

from fusion_retrieval.adapters.base import BaseSourceAdapter
from fusion_retrieval.adapters.external_api import ExternalApiAdapter
from fusion_retrieval.adapters.file_tree import FileTreeAdapter
from fusion_retrieval.adapters.graph_store import GraphStoreAdapter
from fusion_retrieval.adapters.relational_store import RelationalStoreAdapter
from fusion_retrieval.adapters.search_engine import SearchEngineAdapter
from fusion_retrieval.adapters.vector_store import VectorStoreAdapter
from fusion_retrieval.schemas.sources import KnowledgeSource, SourceType


ADAPTER_TYPES: dict[SourceType, type[BaseSourceAdapter]] = {
    SourceType.SEARCH_ENGINE: SearchEngineAdapter,
    SourceType.VECTOR_STORE: VectorStoreAdapter,
    SourceType.GRAPH_STORE: GraphStoreAdapter,
    SourceType.FILE_TREE: FileTreeAdapter,
    SourceType.RELATIONAL_STORE: RelationalStoreAdapter,
    SourceType.EXTERNAL_API: ExternalApiAdapter,
}

_HTTP_TYPES = frozenset(
    {
        SourceType.SEARCH_ENGINE,
        SourceType.VECTOR_STORE,
        SourceType.GRAPH_STORE,
        SourceType.EXTERNAL_API,
    }
)


def create_adapter(
    source: KnowledgeSource,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseSourceAdapter:
    """Build the adapter for ``source`` over a snapshot of its config.

    Args:
        source: Registered knowledge source
        transport: Optional httpx transport for HTTP-backed kinds

    Returns:
        A fresh, unconnected adapter
    """
    adapter_cls = ADAPTER_TYPES[source.type]
    if source.type in _HTTP_TYPES:
        return adapter_cls(source.id, source.name, source.config, transport=transport)  # type: ignore[call-arg]
    return adapter_cls(source.id, source.name, source.config)  # type: ignore[call-arg]
