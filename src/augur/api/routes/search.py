"""Raw semantic search over an organization's indexed content."""

import structlog
from fastapi import APIRouter, Depends

from augur.api.dependencies import get_engine, http_error
from augur.api.schemas import SearchHit, SearchRequest, SearchResponse
from augur.engine import EngineContext
from augur.errors import RetrievalError

log = structlog.get_logger()
router = APIRouter(prefix="/search", tags=["search"])


@router.post("", response_model=SearchResponse)
async def search(
    request: SearchRequest, engine: EngineContext = Depends(get_engine)
) -> SearchResponse:
    """Nearest-neighbor hits above the similarity threshold, best first.

    Unlike chat, no overview document is injected and no answer is generated.
    """
    try:
        chunks = await engine.retrieval.search(
            request.organization_id,
            request.query,
            [str(c) for c in request.content_types] if request.content_types else None,
            request.top_k,
        )
    except RetrievalError as e:
        log.error("Search failed", query=request.query, error=e.message)  # noqa: TRY400
        raise http_error(e) from e

    results = [
        SearchHit(
            id=chunk.id,
            source_id=chunk.source_id,
            content_type=chunk.content_type,
            title=chunk.title,
            text=chunk.text,
            score=chunk.score,
            metadata=chunk.metadata,
        )
        for chunk in chunks
    ]
    return SearchResponse(query=request.query, results=results, total=len(results))
