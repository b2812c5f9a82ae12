"""Shared constants for the fusion retrieval service.

Single source of truth for values referenced from more than one module.
"""

from __future__ import annotations

from typing import Final


# =============================================================================
# Service
# =============================================================================

SERVICE_NAME: Final[str] = "fusion-retrieval"
API_VERSION: Final[str] = "1.0.0"

# =============================================================================
# Memory source
# =============================================================================

MEMORY_SOURCE_ID: Final[str] = "memory"
MEMORY_SOURCE_NAME: Final[str] = "Temporal Memory"

# =============================================================================
# Fusion
# =============================================================================

DEDUP_THRESHOLD: Final[float] = 0.85
"""Textual similarity above which two results are merged."""

SECONDS_PER_DAY: Final[float] = 86_400.0

MAX_HIGHLIGHTS: Final[int] = 3
MAX_HIGHLIGHT_CHARS: Final[int] = 200

# =============================================================================
# Adapters
# =============================================================================

FILE_MATCH_CONFIDENCE: Final[float] = 0.9
"""Confidence for a file-tree hit; a file either matches or it does not."""

DEFAULT_API_CONFIDENCE: Final[float] = 0.5
"""Confidence for generic API hits that carry no score."""

MAX_CONTENT_CHARS: Final[int] = 2_000

# =============================================================================
# Health
# =============================================================================

PROBE_QUERY: Final[str] = "test connection"
PROBE_LIMIT: Final[int] = 1

# =============================================================================
# Identity headers
# =============================================================================

HEADER_USER_ID: Final[str] = "X-User-Id"
HEADER_PROJECT_ID: Final[str] = "X-Project-Id"
DEFAULT_PROJECT_ID: Final[str] = "default"
