"""Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from augur.actions.models import ActionCategory
from augur.db import ContentType, TurnRole
from augur.errors import ErrorCode
from augur.rag.indexing import SourceDocument


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatRequest(ApiModel):
    """A user message, with identity already authenticated upstream."""

    organization_id: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    query: str = Field(..., min_length=1, max_length=4000, description="User message")
    session_id: str | None = Field(default=None, max_length=64)
    organization_name: str | None = Field(default=None, max_length=200)
    user_name: str | None = Field(default=None, max_length=200)
    content_types: list[ContentType] | None = Field(
        default=None, description="Restrict retrieval to these content types"
    )
    enabled_tool_categories: list[ActionCategory] | None = Field(
        default=None, description="Tool categories bound to the agent"
    )


class SourceRef(ApiModel):
    id: str
    type: str
    title: str = ""
    score: float = 0.0


class ActionResultSummary(ApiModel):
    success: bool
    tools_used: list[str] = Field(default_factory=list)
    iterations: int = 0


class ChatResponse(ApiModel):
    answer: str
    session_id: str
    is_out_of_scope: bool = False
    is_action_response: bool = False
    sources: list[SourceRef] = Field(default_factory=list)
    action_result: ActionResultSummary | None = None
    error_code: ErrorCode | None = None


class TurnResponse(ApiModel):
    id: int
    role: TurnRole
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class HistoryResponse(ApiModel):
    session_id: str
    messages: list[TurnResponse]


class ClearHistoryResponse(ApiModel):
    session_id: str
    removed: int


class StatsResponse(ApiModel):
    organization_id: str
    total_documents: int
    by_content_type: dict[str, int]
    last_synced_at: datetime | None = None


# =============================================================================
# Index Schemas
# =============================================================================


class IndexRequest(ApiModel):
    """One source entity to mirror into the index."""

    organization_id: str = Field(..., min_length=1, max_length=64)
    source_schema: str = Field(..., min_length=1, max_length=64)
    source_table: str = Field(..., min_length=1, max_length=64)
    source_id: str = Field(..., min_length=1, max_length=128)
    title: str = Field(default="", max_length=512)
    content: str = ""
    content_type: ContentType
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_document(self) -> SourceDocument:
        return SourceDocument(**self.model_dump())


class BulkIndexRequest(ApiModel):
    documents: list[IndexRequest] = Field(..., min_length=1, max_length=500)


class IndexResponse(ApiModel):
    document_id: UUID
    chunks_created: int
    is_new: bool
    is_updated: bool


class BulkIndexResponse(ApiModel):
    indexed: int
    skipped: int
    errors: list[str] = Field(default_factory=list)


class RemoveRequest(ApiModel):
    source_schema: str = Field(..., min_length=1, max_length=64)
    source_table: str = Field(..., min_length=1, max_length=64)
    source_id: str = Field(..., min_length=1, max_length=128)


class RemoveResponse(ApiModel):
    removed: bool


class OrganizationRemoveResponse(ApiModel):
    organization_id: str
    removed: int


# =============================================================================
# Search Schemas
# =============================================================================


class SearchRequest(ApiModel):
    organization_id: str = Field(..., min_length=1, max_length=64)
    query: str = Field(..., min_length=1, max_length=4000)
    content_types: list[ContentType] | None = None
    top_k: int | None = Field(default=None, ge=1, le=100)


class SearchHit(ApiModel):
    id: str
    source_id: str
    content_type: str
    title: str
    text: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResponse(ApiModel):
    query: str
    results: list[SearchHit]
    total: int


# =============================================================================
# Agent Schemas
# =============================================================================


class ToolResponse(ApiModel):
    name: str
    description: str
    category: ActionCategory
    parameters: dict[str, Any]


class ToolListResponse(ApiModel):
    tools: list[ToolResponse]
    total: int


# =============================================================================
# Health
# =============================================================================


class HealthResponse(ApiModel):
    status: str
    version: str
    database: dict[str, str | None]
    vector_store: str
    agent_enabled: bool
