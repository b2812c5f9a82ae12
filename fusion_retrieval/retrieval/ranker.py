"""Deterministic ranking of fused results.

Order: score descending, then freshness descending, then source priority
descending, then id ascending. The id makes the order total, so the
ranking never depends on input order or task completion order.
"""

from __future__ import annotations

from collections.abc import Iterable

from fusion_retrieval.schemas.search import FusedResult


def ranking_key(result: FusedResult) -> tuple[float, float, int, str]:
    """Sort key implementing the tie-break chain."""
    return (-result.score, -result.metadata.freshness, -result.priority, result.id)


def rank(results: Iterable[FusedResult], top_k: int | None = None) -> list[FusedResult]:
    """Sort ``results`` and optionally keep the first ``top_k``."""
    ranked = sorted(results, key=ranking_key)
    if top_k is not None:
        ranked = ranked[:top_k]
    return ranked
