"""Search Models for Fusion Retrieval.

Two families of models live here:

- Wire models (pydantic) for the ``POST /search`` JSON contract. They use
  camelCase on the wire and snake_case attributes in Python.
- Per-request value objects (dataclasses) passed between the orchestrator,
  adapters and the fusion engine. They never leave the process.

Pattern: Value Objects (immutable data carriers)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire models: camelCase JSON, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================


class ResultKind(str, Enum):
    """Origin family of a result: the internal memory store or a knowledge source."""

    MEMORY = "memory"
    KNOWLEDGE = "knowledge"


class FailureReason(str, Enum):
    """Why a source contributed nothing to a search."""

    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    ERROR = "error"
    CANCELLED = "cancelled"


# =============================================================================
# Fusion Strategy
# =============================================================================


class FusionStrategy(CamelModel):
    """Weighting configuration for one search.

    Weights are independent multipliers and need not sum to 1.

    Attributes:
        memory_weight: Multiplier on memory confidence
        rag_weight: Multiplier on knowledge-source confidence
        time_decay: Exponential decay rate per day of age (0 disables decay)
        relevance_boost: Share of the score taken from pure relevance
        max_results: Maximum number of top-level results
        threshold: Minimum fused score to keep a result
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    memory_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    rag_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    time_decay: float = Field(default=0.1, ge=0.0, le=1.0)
    relevance_boost: float = Field(default=0.2, ge=0.0, le=1.0)
    max_results: int = Field(default=10, gt=0)
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)


class FusionStrategyOverride(CamelModel):
    """Partial fusion strategy supplied with a request.

    Unset fields fall back to the server-side default strategy.
    """

    memory_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    rag_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    time_decay: float | None = Field(default=None, ge=0.0, le=1.0)
    relevance_boost: float | None = Field(default=None, ge=0.0, le=1.0)
    max_results: int | None = Field(default=None, gt=0)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    def apply_to(self, base: FusionStrategy) -> FusionStrategy:
        """Layer the set fields of this override on top of ``base``."""
        return base.model_copy(update=self.model_dump(exclude_none=True))


# =============================================================================
# Request
# =============================================================================


class SearchRequest(CamelModel):
    """Request payload for ``POST /search``.

    ``query`` and ``project_id`` are checked by the orchestrator so that an
    empty string is reported the same way as a missing field.

    Attributes:
        query: Free-text query
        project_id: Project whose sources and memory are searched
        sources: Knowledge source ids to search; empty means all enabled
        fusion_strategy: Partial strategy override
        limit: Shorthand for ``fusionStrategy.maxResults``
        threshold: Shorthand for ``fusionStrategy.threshold``
    """

    query: str = Field(default="", description="Search query")
    project_id: str = Field(default="", description="Project identifier")
    sources: list[str] = Field(
        default_factory=list,
        description="Knowledge source ids, empty for all enabled sources",
    )
    fusion_strategy: FusionStrategyOverride | None = Field(
        default=None,
        description="Fusion strategy override",
    )
    limit: int | None = Field(default=None, gt=0, description="Maximum results")
    threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Minimum fused score",
    )

    def effective_strategy(self, default: FusionStrategy) -> FusionStrategy:
        """Resolve the strategy for this request.

        Precedence: server default, then ``fusionStrategy``, then the
        top-level ``limit``/``threshold`` shorthands.
        """
        strategy = default
        if self.fusion_strategy is not None:
            strategy = self.fusion_strategy.apply_to(strategy)
        shorthand: dict[str, Any] = {}
        if self.limit is not None:
            shorthand["max_results"] = self.limit
        if self.threshold is not None:
            shorthand["threshold"] = self.threshold
        if shorthand:
            strategy = strategy.model_copy(update=shorthand)
        return strategy


# =============================================================================
# Adapter Boundary
# =============================================================================


@dataclass(frozen=True)
class QueryOptions:
    """Adapter-neutral query options.

    Attributes:
        limit: Maximum number of results the adapter should return
        threshold: Results whose confidence and relevance are both below
            this value may be dropped at the adapter
        deadline: Seconds the adapter may spend before failing
    """

    limit: int = 10
    threshold: float = 0.0
    deadline: float = 5.0


@dataclass(frozen=True)
class RawResult:
    """A single adapter hit before fusion.

    ``raw_score`` is already mapped onto [0, 1] by the adapter's documented
    normalization. ``timestamp`` is left as the adapter found it (datetime,
    ISO string or epoch seconds); the fusion engine parses it.

    Attributes:
        source_id: Id of the source that produced the hit
        content: Text content
        raw_score: Normalized confidence in [0, 1]
        timestamp: When the content was created or last updated
        source_metadata: Native metadata from the source
        result_id: Native id of the hit within its source
        relevance: Distinct textual/semantic match strength, if any
        kind: Memory or knowledge
    """

    source_id: str
    content: str
    raw_score: Any
    timestamp: Any = None
    source_metadata: dict[str, Any] = field(default_factory=dict)
    result_id: str = ""
    relevance: Any = None
    kind: ResultKind = ResultKind.KNOWLEDGE


def coerce_unit(value: Any) -> float | None:
    """``value`` as a float clamped to [0, 1], or None if not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return min(1.0, max(0.0, number))


@dataclass(frozen=True)
class SourceDescriptor:
    """What the fusion engine needs to know about a result's source."""

    source_id: str
    name: str
    priority: int = 0


# =============================================================================
# Response
# =============================================================================


class FusedMetadata(CamelModel):
    """Explanation of how a fused score was produced."""

    original_score: float = Field(..., description="Score reported by the source")
    fusion_weight: float = Field(..., description="memoryWeight or ragWeight applied")
    timestamp: str | None = Field(default=None, description="Parsed timestamp (ISO 8601)")
    confidence: float = Field(..., description="Clamped confidence in [0, 1]")
    relevance: float = Field(..., description="Relevance signal in [0, 1]")
    freshness: float = Field(..., description="Recency multiplier in [0, 1]")
    source_metadata: dict[str, Any] = Field(default_factory=dict)


class RelatedResult(CamelModel):
    """A near-duplicate merged into a canonical result."""

    id: str
    kind: ResultKind
    source: str
    source_id: str
    score: float
    original_score: float
    content: str


class FusedResult(CamelModel):
    """A ranked, explainable result."""

    id: str
    kind: ResultKind
    content: str
    score: float
    source: str
    source_id: str
    priority: int = 0
    metadata: FusedMetadata
    highlights: list[str] = Field(default_factory=list)
    related_results: list[RelatedResult] = Field(default_factory=list)


class SourceFailure(CamelModel):
    """Why one source contributed nothing."""

    source_id: str
    reason: FailureReason
    message: str


class SearchStats(CamelModel):
    """Fan-out accounting for one search."""

    sources_queried: int = 0
    sources_failed: int = 0
    sources_timed_out: int = 0
    total_candidates: int = 0
    sources_skipped: list[str] = Field(default_factory=list)
    failures: list[SourceFailure] = Field(default_factory=list)
    duration_ms: float = 0.0


class SearchResponse(CamelModel):
    """Response payload for ``POST /search``."""

    fused_results: list[FusedResult] = Field(default_factory=list)
    stats: SearchStats = Field(default_factory=SearchStats)
