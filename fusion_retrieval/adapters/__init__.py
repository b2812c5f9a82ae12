"""Source adapters.

One adapter per knowledge-source kind plus the memory retriever, all
sharing the ``SourceAdapter`` contract (connect, query, test_connection).
"""

from fusion_retrieval.adapters.base import (
    BaseSourceAdapter,
    ConnectionTestResult,
    HTTPSourceAdapter,
    SourceAdapter,
)
from fusion_retrieval.adapters.factory import ADAPTER_TYPES, create_adapter
from fusion_retrieval.adapters.memory import (
    HTTPMemorySearchClient,
    InMemoryTemporalMemory,
    MemoryRetriever,
    MemorySearchProtocol,
)


__all__ = [
    "ADAPTER_TYPES",
    "BaseSourceAdapter",
    "ConnectionTestResult",
    "HTTPMemorySearchClient",
    "HTTPSourceAdapter",
    "InMemoryTemporalMemory",
    "MemoryRetriever",
    "MemorySearchProtocol",
    "SourceAdapter",
    "create_adapter",
]
