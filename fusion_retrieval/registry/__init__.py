"""Knowledge source registry and its persistence stores."""

from fusion_retrieval.registry.registry import KnowledgeSourceRegistry
from fusion_retrieval.registry.store import (
    InMemorySourceConfigStore,
    SourceConfigStore,
    YamlSourceConfigStore,
    create_source_store,
)


__all__ = [
    "InMemorySourceConfigStore",
    "KnowledgeSourceRegistry",
    "SourceConfigStore",
    "YamlSourceConfigStore",
    "create_source_store",
]
