"""API routes.

Exports all API routers for registration in main.py.
"""

from fusion_retrieval.api.routes.health import router as health_router
from fusion_retrieval.api.routes.search import router as search_router
from fusion_retrieval.api.routes.sources import router as sources_router


__all__ = [
    "health_router",
    "search_router",
    "sources_router",
]
