"""Fused Retrieval Module.

- QueryOrchestrator: concurrent fan-out to memory and knowledge sources
- FusionEngine: scoring, threshold, deduplication, ranking
- ResultDeduplicator: near-duplicate merging
"""

from fusion_retrieval.retrieval.dedup import ResultDeduplicator
from fusion_retrieval.retrieval.fusion import FusionEngine
from fusion_retrieval.retrieval.orchestrator import QueryOrchestrator
from fusion_retrieval.retrieval.ranker import rank, ranking_key

__all__ = [
    "FusionEngine",
    "QueryOrchestrator",
    "ResultDeduplicator",
    "rank",
    "ranking_key",
]
