"""Fusion Engine.

Turns the raw hits of one search into a ranked, explainable result list.

Pipeline (per search, request-scoped, no shared state):
1. confidence  = clamp(raw_score, 0, 1); malformed scores become 0
2. freshness   = exp(-time_decay * age_days); 1 when time_decay == 0,
                 0 for an unknown timestamp otherwise
3. relevance   = adapter-reported relevance, else confidence
4. base        = (memory_weight | rag_weight) * confidence
5. score       = (base * (1 - relevance_boost) + relevance_boost * relevance) * freshness
6. drop score < threshold
7. merge near-duplicates
8. rank (score, freshness, priority desc; id asc)
9. truncate to max_results

Malformed results are scored as low as admissible and logged, never dropped
for being malformed.

Pattern: Pipeline over vectorized scoring
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import numpy as np

from fusion_retrieval.core.constants import SECONDS_PER_DAY
from fusion_retrieval.core.exceptions import FusionInconsistencyError
from fusion_retrieval.core.logging import get_logger
from fusion_retrieval.retrieval.dedup import ResultDeduplicator
from fusion_retrieval.retrieval.highlights import extract_highlights, highlight_terms
from fusion_retrieval.retrieval.ranker import rank
from fusion_retrieval.schemas.search import (
    FusedMetadata,
    FusedResult,
    FusionStrategy,
    RawResult,
    ResultKind,
    SourceDescriptor,
    coerce_unit,
)


logger = get_logger(__name__)


# =============================================================================
# Input coercion
# =============================================================================


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a hit timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO 8601 strings
    (a trailing ``Z`` included) and epoch seconds or milliseconds.

    Returns:
        Parsed datetime, or None when the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


# =============================================================================
# Fusion Engine
# =============================================================================


@dataclass
class FusionEngine:
    """Scores, filters, merges and ranks raw hits.

    Attributes:
        deduplicator: Near-duplicate merger applied after the threshold filter
        with_highlights: Attach query-term snippets to each result
    """

    deduplicator: ResultDeduplicator = field(default_factory=ResultDeduplicator)
    with_highlights: bool = True

    def fuse(
        self,
        results: Sequence[RawResult],
        strategy: FusionStrategy,
        sources: Mapping[str, SourceDescriptor] | None = None,
        query: str = "",
        now: datetime | None = None,
    ) -> list[FusedResult]:
        """Run the full pipeline.

        Args:
            results: Union of hits from every source that answered
            strategy: Effective fusion strategy of the request
            sources: Name and priority per source id
            query: Query text, used for highlights
            now: Reference time for ages (defaults to the current time)

        Returns:
            At most ``strategy.max_results`` results, each with
            ``score >= strategy.threshold``, in ranking order

        Raises:
            FusionInconsistencyError: A computed score is negative or not finite
        """
        if not results:
            return []
        sources = sources or {}
        now = now or datetime.now(UTC)

        confidence = np.empty(len(results))
        relevance = np.empty(len(results))
        weight = np.empty(len(results))
        age_days = np.full(len(results), np.nan)
        original = np.zeros(len(results))
        timestamps: list[datetime | None] = []

        for index, result in enumerate(results):
            conf = coerce_unit(result.raw_score)
            if conf is None:
                logger.warning(
                    "Malformed score, using lowest confidence",
                    source_id=result.source_id,
                    result_id=result.result_id,
                    raw_score=repr(result.raw_score),
                )
                conf = 0.0
            else:
                original[index] = float(result.raw_score)
            confidence[index] = conf
            rel = coerce_unit(result.relevance)
            if rel is None and result.relevance is not None:
                logger.warning(
                    "Malformed relevance, using confidence",
                    source_id=result.source_id,
                    result_id=result.result_id,
                    relevance=repr(result.relevance),
                )
            relevance[index] = conf if rel is None else rel
            weight[index] = (
                strategy.memory_weight if result.kind == ResultKind.MEMORY else strategy.rag_weight
            )
            parsed = parse_timestamp(result.timestamp)
            if parsed is None and strategy.time_decay > 0:
                logger.debug(
                    "Unparsable timestamp, using lowest freshness",
                    source_id=result.source_id,
                    result_id=result.result_id,
                )
            if parsed is not None:
                # Future timestamps count as brand new
                age_days[index] = max(0.0, (now - parsed).total_seconds() / SECONDS_PER_DAY)
            timestamps.append(parsed)

        freshness = self.freshness(age_days, strategy.time_decay)
        base = weight * confidence
        boost = strategy.relevance_boost
        score = (base * (1.0 - boost) + boost * relevance) * freshness

        if not np.all(np.isfinite(score)) or np.any(score < 0):
            raise FusionInconsistencyError("Fused score is negative or not finite")

        terms = highlight_terms(query) if self.with_highlights else []
        kept: list[FusedResult] = []
        for index in map(int, np.flatnonzero(score >= strategy.threshold)):
            kept.append(
                self._build(
                    results[index],
                    index=index,
                    score=float(score[index]),
                    fusion_weight=float(weight[index]),
                    original_score=float(original[index]),
                    confidence=float(confidence[index]),
                    relevance=float(relevance[index]),
                    freshness=float(freshness[index]),
                    timestamp=timestamps[index],
                    source=sources.get(results[index].source_id),
                    terms=terms,
                )
            )

        fused = rank(self.deduplicator.deduplicate(kept), top_k=strategy.max_results)
        logger.debug(
            "Fusion complete",
            candidates=len(results),
            above_threshold=len(kept),
            returned=len(fused),
        )
        return fused

    @staticmethod
    def freshness(age_days: np.ndarray, time_decay: float) -> np.ndarray:
        """Recency multiplier in [0, 1] for each age (NaN marks unknown)."""
        if time_decay == 0:
            return np.ones_like(age_days)
        known = ~np.isnan(age_days)
        decayed = np.exp(-time_decay * np.where(known, age_days, 0.0))
        return np.where(known, decayed, 0.0)

    def _build(
        self,
        result: RawResult,
        *,
        index: int,
        score: float,
        fusion_weight: float,
        original_score: float,
        confidence: float,
        relevance: float,
        freshness: float,
        timestamp: datetime | None,
        source: SourceDescriptor | None,
        terms: list[str],
    ) -> FusedResult:
        native_id = result.result_id or str(index)
        return FusedResult(
            id=f"{result.source_id}:{native_id}",
            kind=result.kind,
            content=result.content,
            score=score,
            source=source.name if source else result.source_id,
            source_id=result.source_id,
            priority=source.priority if source else 0,
            metadata=FusedMetadata(
                original_score=original_score,
                fusion_weight=fusion_weight,
                timestamp=timestamp.isoformat() if timestamp else None,
                confidence=confidence,
                relevance=relevance,
                freshness=freshness,
                source_metadata=dict(result.source_metadata),
            ),
            highlights=extract_highlights(result.content, terms),
        )
