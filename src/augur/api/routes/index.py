"""Index endpoints: keep the vector index in sync with source data.

Called by the source services on create/update/delete. Indexing is
idempotent per source entity, so replays are safe.
"""

import structlog
from fastapi import APIRouter, Depends

from augur.api.dependencies import get_engine, http_error
from augur.api.schemas import (
    BulkIndexRequest,
    BulkIndexResponse,
    IndexRequest,
    IndexResponse,
    OrganizationRemoveResponse,
    RemoveRequest,
    RemoveResponse,
)
from augur.engine import EngineContext
from augur.errors import AugurError
from augur.rag.indexing import IndexResult, OrganizationStats

log = structlog.get_logger()
router = APIRouter(prefix="/index", tags=["index"])


def _to_response(result: IndexResult) -> IndexResponse:
    return IndexResponse(
        document_id=result.document_id,
        chunks_created=result.chunks_created,
        is_new=result.is_new,
        is_updated=result.is_updated,
    )


@router.post("", response_model=IndexResponse)
async def index_document(
    request: IndexRequest, engine: EngineContext = Depends(get_engine)
) -> IndexResponse:
    """Index one source entity, skipping it when its content is unchanged."""
    doc = request.to_document()
    try:
        result = await engine.indexing.index_document(doc)
    except AugurError as e:
        log.error("Indexing failed", entity_id=doc.entity_id, error=e.message)  # noqa: TRY400
        raise http_error(e) from e
    return _to_response(result)


@router.post("/bulk", response_model=BulkIndexResponse)
async def index_bulk(
    request: BulkIndexRequest, engine: EngineContext = Depends(get_engine)
) -> BulkIndexResponse:
    """Index a batch. Per-document failures are reported, not raised."""
    result = await engine.indexing.index_documents([d.to_document() for d in request.documents])
    return BulkIndexResponse(indexed=result.indexed, skipped=result.skipped, errors=result.errors)


@router.delete("", response_model=RemoveResponse)
async def remove_document(
    request: RemoveRequest, engine: EngineContext = Depends(get_engine)
) -> RemoveResponse:
    removed = await engine.indexing.remove_document(
        request.source_schema, request.source_table, request.source_id
    )
    return RemoveResponse(removed=removed)


@router.delete("/organization/{organization_id}", response_model=OrganizationRemoveResponse)
async def remove_organization(
    organization_id: str, engine: EngineContext = Depends(get_engine)
) -> OrganizationRemoveResponse:
    """Drop everything indexed for an organization, e.g. when it is deleted."""
    removed = await engine.indexing.remove_organization_documents(organization_id)
    return OrganizationRemoveResponse(organization_id=organization_id, removed=removed)


@router.post("/organization-overview", response_model=IndexResponse)
async def sync_organization_overview(
    stats: OrganizationStats, engine: EngineContext = Depends(get_engine)
) -> IndexResponse:
    """Refresh the organization's statistics overview document."""
    try:
        result = await engine.indexing.sync_organization_overview(stats)
    except AugurError as e:
        log.error(  # noqa: TRY400
            "Overview sync failed", organization_id=stats.organization_id, error=e.message
        )
        raise http_error(e) from e
    return _to_response(result)
