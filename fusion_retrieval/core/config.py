"""Application configuration using Pydantic Settings.

Environment variables are loaded with FUSION_ prefix.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fusion_retrieval.core.constants import SERVICE_NAME
from fusion_retrieval.schemas.search import FusionStrategy


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The ``default_*`` strategy fields form the server-side fusion strategy
    that request overrides are layered on top of.
    """

    # Service configuration
    service_name: str = SERVICE_NAME
    port: int = 8090
    environment: str = Field(default="development", description="Runtime environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Fan-out
    source_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Deadline for a single source query"
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Deadline for a whole search request"
    )
    max_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum number of source queries in flight per request"
    )
    candidate_multiplier: int = Field(
        default=2,
        ge=1,
        description="Per-source limit as a multiple of maxResults"
    )

    # Health monitoring
    probe_timeout_seconds: float = Field(default=3.0, gt=0.0, description="Probe deadline")
    probe_interval_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Background probe period, 0 disables the loop"
    )
    degrade_after_failures: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures before a source is degraded"
    )

    # Memory store
    memory_priority: int = Field(default=10, description="Tie-break priority of memory hits")
    memory_service_url: Optional[str] = Field(
        default=None,
        description="Remote memory service URL, in-process store when unset"
    )

    # Source persistence
    sources_file: Optional[str] = Field(
        default=None,
        description="YAML file backing the source registry, in-memory when unset"
    )

    # Default fusion strategy
    default_memory_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    default_rag_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    default_time_decay: float = Field(default=0.1, ge=0.0, le=1.0)
    default_relevance_boost: float = Field(default=0.2, ge=0.0, le=1.0)
    default_max_results: int = Field(default=10, gt=0)
    default_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="FUSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def default_strategy(self) -> FusionStrategy:
        """Build the server-side default fusion strategy."""
        return FusionStrategy(
            memory_weight=self.default_memory_weight,
            rag_weight=self.default_rag_weight,
            time_decay=self.default_time_decay,
            relevance_boost=self.default_relevance_boost,
            max_results=self.default_max_results,
            threshold=self.default_threshold,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton
    """
    return Settings()
