"""Pydantic Schemas Package.

- search: fusion strategy, search request/response, adapter value objects
- sources: knowledge sources and their per-type configuration variants
- health: health report and connection-test responses

Pattern: Typed Data Transfer Objects (DTOs)
"""

from fusion_retrieval.schemas.health import HealthReport, HealthStatus
from fusion_retrieval.schemas.search import (
    FusedResult,
    FusionStrategy,
    QueryOptions,
    RawResult,
    ResultKind,
    SearchRequest,
    SearchResponse,
    SearchStats,
)
from fusion_retrieval.schemas.sources import (
    KnowledgeSource,
    SourceHealth,
    SourceState,
    SourceType,
)


__all__: list[str] = [
    "FusedResult",
    "FusionStrategy",
    "HealthReport",
    "HealthStatus",
    "KnowledgeSource",
    "QueryOptions",
    "RawResult",
    "ResultKind",
    "SearchRequest",
    "SearchResponse",
    "SearchStats",
    "SourceHealth",
    "SourceState",
    "SourceType",
]
