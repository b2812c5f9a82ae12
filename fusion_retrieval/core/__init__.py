"""Core module - Configuration, logging, exceptions and shared constants.

Exports:
    - Settings, get_settings: Pydantic Settings configuration
    - configure_logging, get_logger: Structured logging (structlog)
    - Exception classes: FusionError, FusionValidationError, etc.
"""

from fusion_retrieval.core.config import Settings, get_settings
from fusion_retrieval.core.exceptions import (
    AggregateFailureError,
    FusionError,
    FusionInconsistencyError,
    FusionValidationError,
    SourceError,
    SourceNotFoundError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from fusion_retrieval.core.logging import configure_logging, get_logger


__all__ = [
    "AggregateFailureError",
    "FusionError",
    "FusionInconsistencyError",
    "FusionValidationError",
    "Settings",
    "SourceError",
    "SourceNotFoundError",
    "SourceTimeoutError",
    "SourceUnavailableError",
    "configure_logging",
    "get_logger",
    "get_settings",
]
