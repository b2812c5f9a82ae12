"""Test configuration and shared fixtures.

Pattern: Pytest fixtures, conftest.py
"""

from __future__ import annotations

import pytest

from fusion_retrieval.core.config import Settings
from fusion_retrieval.registry.registry import KnowledgeSourceRegistry


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with short deadlines and a deterministic default strategy."""
    return Settings(
        source_timeout_seconds=0.5,
        request_timeout_seconds=2.0,
        probe_timeout_seconds=0.5,
        max_concurrency=4,
        degrade_after_failures=3,
        default_memory_weight=0.7,
        default_rag_weight=0.3,
        default_time_decay=0.0,
        default_relevance_boost=0.0,
        default_max_results=10,
        default_threshold=0.0,
    )


# ============================================================================
# Registry Fixtures
# ============================================================================

@pytest.fixture
def registry() -> KnowledgeSourceRegistry:
    """Registry backed by an in-memory store."""
    return KnowledgeSourceRegistry()
