"""Chat endpoints: the query interface plus session history and index stats."""

import structlog
from fastapi import APIRouter, Depends, Query

from augur.api.dependencies import get_engine, get_query_service
from augur.api.schemas import (
    ActionResultSummary,
    ChatRequest,
    ChatResponse,
    ClearHistoryResponse,
    HistoryResponse,
    SourceRef,
    StatsResponse,
    TurnResponse,
)
from augur.engine import EngineContext, QueryRequest, QueryResponse, QueryService

log = structlog.get_logger()
router = APIRouter(prefix="/chat", tags=["chat"])


def to_query_request(request: ChatRequest) -> QueryRequest:
    return QueryRequest(
        organization_id=request.organization_id,
        user_id=request.user_id,
        query=request.query,
        session_id=request.session_id,
        organization_name=request.organization_name,
        user_name=request.user_name,
        content_types=[str(c) for c in request.content_types] if request.content_types else None,
        enabled_tool_categories=request.enabled_tool_categories,
    )


def to_chat_response(response: QueryResponse) -> ChatResponse:
    action = response.action_result
    return ChatResponse(
        answer=response.answer,
        session_id=response.session_id,
        is_out_of_scope=response.is_out_of_scope,
        is_action_response=response.is_action_response,
        sources=[SourceRef(**source) for source in response.sources],
        action_result=(
            ActionResultSummary(
                success=action.success,
                tools_used=action.tools_used,
                iterations=action.iterations,
            )
            if action
            else None
        ),
        error_code=response.error_code,
    )


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest, service: QueryService = Depends(get_query_service)
) -> ChatResponse:
    """Answer a question or carry out an action request.

    Failures come back as a short answer plus ``errorCode`` rather than an
    HTTP error, so the session can simply be retried.
    """
    response = await service.query(to_query_request(request))
    return to_chat_response(response)


@router.get("/history/{session_id}", response_model=HistoryResponse)
async def get_history(
    session_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    engine: EngineContext = Depends(get_engine),
) -> HistoryResponse:
    turns = await engine.conversations.history(session_id, limit)
    return HistoryResponse(
        session_id=session_id,
        messages=[
            TurnResponse(
                id=turn.id,
                role=turn.role,
                content=turn.content,
                metadata=turn.turn_metadata,
                created_at=turn.created_at,
            )
            for turn in turns
        ],
    )


@router.delete("/history/{session_id}", response_model=ClearHistoryResponse)
async def clear_history(
    session_id: str, engine: EngineContext = Depends(get_engine)
) -> ClearHistoryResponse:
    removed = await engine.conversations.clear(session_id)
    return ClearHistoryResponse(session_id=session_id, removed=removed)


@router.get("/stats/{organization_id}", response_model=StatsResponse)
async def get_stats(
    organization_id: str, engine: EngineContext = Depends(get_engine)
) -> StatsResponse:
    """Indexed document counts for an organization."""
    stats = await engine.indexing.get_stats(organization_id)

    return StatsResponse(
        organization_id=organization_id,
        total_documents=stats.total_documents,
        by_content_type=stats.by_content_type,
        last_synced_at=stats.last_synced_at,
    )
