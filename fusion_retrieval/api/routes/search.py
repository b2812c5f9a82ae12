"""Fused search API route.

POST /search runs a search across the memory store and the project's
knowledge sources. A search where some sources failed still returns 200;
``stats`` reports which sources failed or timed out.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fusion_retrieval.api.dependencies import (
    RequestIdentity,
    ServiceContainer,
    get_identity,
    get_services,
)
from fusion_retrieval.schemas.search import SearchRequest, SearchResponse


router = APIRouter(tags=["Search"])


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Fused search",
    description="Search memory and knowledge sources and return one ranked result list.",
)
async def search(
    request: SearchRequest,
    services: ServiceContainer = Depends(get_services),
    identity: RequestIdentity = Depends(get_identity),
) -> SearchResponse:
    """Run a fused search.

    The caller's project is used when the body names none.

    Raises:
        FusionValidationError: Missing query or projectId (400)
        AggregateFailureError: Every source failed (500)
    """
    if not request.project_id and identity.project_id:
        request = request.model_copy(update={"project_id": identity.project_id})
    return await services.orchestrator.search(request)


__all__ = ["router"]
