"""Knowledge source API routes.

Endpoints:
- GET    /sources               list sources (optionally one project)
- POST   /sources               register a source
- PUT    /sources/{source_id}   partial update
- DELETE /sources/{source_id}   remove (idempotent)
- POST   /sources/{source_id}/test   run the connectivity probe
- GET    /source-types          catalogue of adapter kinds and config fields
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from fusion_retrieval.api.dependencies import (
    RequestIdentity,
    ServiceContainer,
    get_identity,
    get_services,
)
from fusion_retrieval.core.logging import get_logger
from fusion_retrieval.schemas.health import ConnectionTestResponse
from fusion_retrieval.schemas.search import RawResult
from fusion_retrieval.schemas.sources import (
    KnowledgeSource,
    SourceTypeInfo,
    source_type_catalogue,
)


logger = get_logger(__name__)


# =============================================================================
# Router Configuration
# =============================================================================

router = APIRouter(tags=["Knowledge Sources"])


class DeleteSourceResponse(BaseModel):
    """Response model for source removal."""

    id: str = Field(..., description="Source id")
    removed: bool = Field(..., description="False if the source was already absent")


def _sample_item(result: RawResult) -> dict[str, Any]:
    timestamp = result.timestamp.isoformat() if isinstance(result.timestamp, datetime) else result.timestamp
    return {
        "id": result.result_id,
        "content": result.content,
        "score": result.raw_score,
        "timestamp": timestamp,
        "metadata": result.source_metadata,
    }


# =============================================================================
# API Endpoints
# =============================================================================

@router.get(
    "/sources",
    response_model=list[KnowledgeSource],
    summary="List knowledge sources",
)
async def list_sources(
    project_id: str | None = Query(default=None, alias="projectId"),
    services: ServiceContainer = Depends(get_services),
    identity: RequestIdentity = Depends(get_identity),
) -> list[KnowledgeSource]:
    """Return enabled and disabled sources, filtered by project when given."""
    return services.registry.list(project_id or identity.project_id)


@router.post(
    "/sources",
    response_model=KnowledgeSource,
    summary="Register a knowledge source",
)
async def add_source(
    payload: dict[str, Any] = Body(...),
    services: ServiceContainer = Depends(get_services),
    identity: RequestIdentity = Depends(get_identity),
) -> KnowledgeSource:
    """Validate and register a source.

    The caller's project is used when the body names none.

    Raises:
        FusionValidationError: Missing/invalid fields or duplicate id (400)
    """
    if identity.project_id and not payload.get("projectId") and not payload.get("project_id"):
        payload = {**payload, "projectId": identity.project_id}
    return services.registry.add(payload)


@router.put(
    "/sources/{source_id}",
    response_model=KnowledgeSource,
    summary="Update a knowledge source",
)
async def update_source(
    source_id: str,
    patch: dict[str, Any] = Body(...),
    services: ServiceContainer = Depends(get_services),
) -> KnowledgeSource:
    """Apply a partial patch.

    Raises:
        SourceNotFoundError: Unknown source (404)
        FusionValidationError: Patched source is invalid (400)
    """
    return services.registry.update(source_id, patch)


@router.delete(
    "/sources/{source_id}",
    response_model=DeleteSourceResponse,
    summary="Remove a knowledge source",
)
async def remove_source(
    source_id: str,
    services: ServiceContainer = Depends(get_services),
) -> DeleteSourceResponse:
    """Remove a source; removing an absent source still succeeds."""
    return DeleteSourceResponse(id=source_id, removed=services.registry.remove(source_id))


@router.post(
    "/sources/{source_id}/test",
    response_model=ConnectionTestResponse,
    summary="Test a knowledge source connection",
)
async def test_source(
    source_id: str,
    services: ServiceContainer = Depends(get_services),
) -> ConnectionTestResponse:
    """Run the probe query against one source.

    Raises:
        SourceNotFoundError: Unknown source (404)
    """
    result = await services.monitor.test_connection(source_id)
    return ConnectionTestResponse(
        connected=result.connected,
        message=result.message,
        sample=[_sample_item(item) for item in result.sample],
        latency_ms=result.latency_ms,
    )


@router.get(
    "/source-types",
    response_model=list[SourceTypeInfo],
    summary="List supported source types",
)
async def list_source_types() -> list[SourceTypeInfo]:
    return source_type_catalogue()


__all__ = ["router"]
