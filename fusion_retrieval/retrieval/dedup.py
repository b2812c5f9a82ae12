"""Near-duplicate merging for fused results.

Pattern: Greedy clustering in ranking order
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import SequenceMatcher

from fusion_retrieval.core.constants import DEDUP_THRESHOLD
from fusion_retrieval.retrieval.ranker import rank
from fusion_retrieval.schemas.search import FusedResult, RelatedResult


def normalize_content(content: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(content.lower().split())


def to_related(result: FusedResult) -> RelatedResult:
    """Summary of a result that was merged into another."""
    return RelatedResult(
        id=result.id,
        kind=result.kind,
        source=result.source,
        source_id=result.source_id,
        score=result.score,
        original_score=result.metadata.original_score,
        content=result.content,
    )


@dataclass
class ResultDeduplicator:
    """Merges results whose content similarity exceeds ``threshold``.

    Results are visited in ranking order. Each one is compared with the
    canonical results kept so far and merged into the first whose content
    is similar enough; otherwise it becomes canonical itself. A merged
    result is attached to the canonical one as a ``RelatedResult``, along
    with anything that had already been merged into it.

    Canonical results are pairwise below the threshold, so running the
    deduplicator on its own output changes nothing.

    Attributes:
        threshold: Similarity strictly above which two results merge
    """

    threshold: float = DEDUP_THRESHOLD

    def deduplicate(self, results: list[FusedResult]) -> list[FusedResult]:
        canonical: list[FusedResult] = []
        normalized: list[str] = []
        related: list[list[RelatedResult]] = []

        for result in rank(results):
            text = normalize_content(result.content)
            match = self._find_match(text, normalized)
            if match is None:
                canonical.append(result)
                normalized.append(text)
                related.append(list(result.related_results))
                continue
            related[match].append(to_related(result))
            related[match].extend(result.related_results)

        return [
            result.model_copy(update={"related_results": merged})
            for result, merged in zip(canonical, related)
        ]

    def _find_match(self, text: str, kept: list[str]) -> int | None:
        for index, other in enumerate(kept):
            matcher = SequenceMatcher(None, text, other)
            # real_quick_ratio and quick_ratio are upper bounds on ratio
            if matcher.real_quick_ratio() <= self.threshold:
                continue
            if matcher.quick_ratio() <= self.threshold:
                continue
            if matcher.ratio() > self.threshold:
                return index
        return None
