"""Engine context and the query interface.

``EngineContext`` is the whole component graph, built once from ``Settings``
and handed to whoever needs it (the API app, the CLI, tests). Nothing in the
engine is a module-level singleton.

``QueryService`` is the entry point for user messages:

    scope guard -> route -> (RAG answerer | agent orchestrator) -> conversation store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from sqlalchemy.exc import SQLAlchemyError

from augur.actions.gateway import ActionGateway
from augur.agent.orchestrator import AgentOrchestrator
from augur.agent.routing import Route, route
from augur.cache import LRUCache
from augur.conversation import ConversationStore
from augur.db import Database, TurnRole
from augur.errors import AugurError, ErrorCode, ModelInvocationError, RetrievalError
from augur.llm import Message, OpenAIChatModel
from augur.rag.answerer import RagAnswerer
from augur.rag.chunker import Chunker
from augur.rag.embedder import EmbeddingClient
from augur.rag.indexing import IndexingService
from augur.rag.retrieval import RetrievalService
from augur.rag.vector_store import MemoryVectorStore, PgVectorStore
from augur.scope import REFUSAL
from augur.user_context import GatewayUserContextProvider

if TYPE_CHECKING:
    from augur.actions.models import ActionCategory
    from augur.config import Settings
    from augur.db import ConversationTurn
    from augur.llm import ChatModel
    from augur.rag.embedder import Embedder
    from augur.rag.vector_store import VectorStore
    from augur.user_context import UserContextProvider

log = structlog.get_logger()

EXECUTE_ACTION_MAX_ITERATIONS = 3

FAILURE_MESSAGES = {
    ErrorCode.RETRIEVAL_FAILED: (
        "I couldn't search your organization's data right now. Please try again shortly."
    ),
    ErrorCode.MODEL_INVOCATION_FAILED: (
        "I couldn't generate an answer right now. Please try again shortly."
    ),
    ErrorCode.INTERNAL_ERROR: "Something went wrong while handling your request.",
}

# Agent outcomes that produced no assistant turn worth keeping
_UNPERSISTED_AGENT_CODES = frozenset({ErrorCode.MODEL_INVOCATION_FAILED, ErrorCode.INTERNAL_ERROR})


# =============================================================================
# Component graph
# =============================================================================


@dataclass
class EngineContext:
    """Every engine component, wired together once."""

    settings: Settings
    db: Database
    embedder: Embedder
    vector_store: VectorStore
    chat_model: ChatModel
    agent_model: ChatModel
    gateway: ActionGateway
    conversations: ConversationStore
    indexing: IndexingService
    retrieval: RetrievalService
    answerer: RagAnswerer
    orchestrator: AgentOrchestrator

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        db: Database | None = None,
        embedder: Embedder | None = None,
        vector_store: VectorStore | None = None,
        chat_model: ChatModel | None = None,
        agent_model: ChatModel | None = None,
        gateway: ActionGateway | None = None,
        user_context: UserContextProvider | None = None,
    ) -> EngineContext:
        """Build the graph, using real clients for anything not supplied."""
        db = db or Database(settings)
        embedder = embedder or EmbeddingClient.from_settings(settings)

        if vector_store is None:
            if settings.vector_store == "memory":
                vector_store = MemoryVectorStore()
            else:
                vector_store = PgVectorStore(
                    db,
                    dimensions=settings.embedding_dimensions,
                    timeout=settings.vector_store_timeout,
                )

        if chat_model is None:
            openai_model = OpenAIChatModel.from_settings(settings)
            chat_model = openai_model
            agent_model = agent_model or openai_model.with_temperature(settings.agent_temperature)
        agent_model = agent_model or chat_model
        gateway = gateway or ActionGateway.from_settings(settings)
        if user_context is None and settings.user_context_enabled:
            user_context = GatewayUserContextProvider(gateway)

        conversations = ConversationStore(
            db,
            LRUCache(maxsize=settings.session_cache_size, default_ttl=settings.session_cache_ttl),
        )
        indexing = IndexingService(
            db,
            embedder,
            vector_store,
            Chunker(settings.chunk_size, settings.chunk_overlap),
        )
        retrieval = RetrievalService(
            db,
            embedder,
            vector_store,
            top_k=settings.top_k,
            similarity_threshold=settings.similarity_threshold,
        )
        return cls(
            settings=settings,
            db=db,
            embedder=embedder,
            vector_store=vector_store,
            chat_model=chat_model,
            agent_model=agent_model,
            gateway=gateway,
            conversations=conversations,
            indexing=indexing,
            retrieval=retrieval,
            answerer=RagAnswerer(retrieval, chat_model, user_context),
            orchestrator=AgentOrchestrator(
                agent_model, gateway, max_iterations=settings.agent_max_iterations
            ),
        )

    async def start(self) -> None:
        """Create tables (and the vector table for pgvector)."""
        await self.db.init()
        if isinstance(self.vector_store, PgVectorStore):
            await self.vector_store.init()
        log.info(
            "Engine started",
            vector_store=type(self.vector_store).__name__,
            agent_enabled=self.settings.agent_enabled,
        )

    async def close(self) -> None:
        await self.gateway.close()
        await self.db.close()


# =============================================================================
# Query interface
# =============================================================================


@dataclass
class QueryRequest:
    organization_id: str
    user_id: str
    query: str
    session_id: str | None = None
    organization_name: str | None = None
    user_name: str | None = None
    content_types: list[str] | None = None
    enabled_tool_categories: list[ActionCategory] | None = None


@dataclass
class ActionSummary:
    success: bool
    tools_used: list[str]
    iterations: int


@dataclass
class QueryResponse:
    answer: str
    session_id: str
    is_out_of_scope: bool = False
    is_action_response: bool = False
    sources: list[dict[str, Any]] = field(default_factory=list)
    action_result: ActionSummary | None = None
    error_code: ErrorCode | None = None


def turns_to_messages(turns: list[ConversationTurn]) -> list[Message]:
    return [
        Message.user(t.content) if t.role == TurnRole.USER else Message.assistant(t.content)
        for t in turns
    ]


class QueryService:
    """Routes a user message and keeps the session history uniform across paths."""

    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    async def query(self, request: QueryRequest) -> QueryResponse:
        session_id = request.session_id or str(uuid4())
        decision = route(request.query, agent_enabled=self._ctx.settings.agent_enabled)
        log.info(
            "Routing query",
            organization_id=request.organization_id,
            session_id=session_id,
            route=str(decision),
        )

        if decision is Route.SCOPE_REJECTED:
            return QueryResponse(
                answer=REFUSAL,
                session_id=session_id,
                is_out_of_scope=True,
                error_code=ErrorCode.OUT_OF_SCOPE,
            )

        history = await self._load_history(session_id)
        await self._save_turn(request, session_id, TurnRole.USER, request.query)

        if decision is Route.AGENT_LOOP:
            return await self._run_agent(request, session_id, history)
        return await self._run_rag(request, session_id, history)

    async def execute_action(self, request: QueryRequest) -> QueryResponse:
        """Run the agent directly, skipping keyword routing, with a lower ceiling."""
        session_id = request.session_id or str(uuid4())
        if route(request.query) is Route.SCOPE_REJECTED:
            return QueryResponse(
                answer=REFUSAL,
                session_id=session_id,
                is_out_of_scope=True,
                error_code=ErrorCode.OUT_OF_SCOPE,
            )

        history = await self._load_history(session_id)
        await self._save_turn(request, session_id, TurnRole.USER, request.query)
        return await self._run_agent(
            request, session_id, history, max_iterations=EXECUTE_ACTION_MAX_ITERATIONS
        )

    async def _run_rag(
        self, request: QueryRequest, session_id: str, history: list[Message]
    ) -> QueryResponse:
        try:
            result = await self._ctx.answerer.answer(
                request.query,
                organization_id=request.organization_id,
                user_id=request.user_id,
                history=history,
                organization_name=request.organization_name,
                user_name=request.user_name,
                content_types=request.content_types,
            )
        except (RetrievalError, ModelInvocationError) as e:
            log.error(  # noqa: TRY400
                "Question answering failed",
                session_id=session_id,
                code=str(e.code),
                error=e.message,
            )
            return QueryResponse(
                answer=FAILURE_MESSAGES[e.code], session_id=session_id, error_code=e.code
            )
        except Exception:
            log.exception("Question answering crashed", session_id=session_id)
            return QueryResponse(
                answer=FAILURE_MESSAGES[ErrorCode.INTERNAL_ERROR],
                session_id=session_id,
                error_code=ErrorCode.INTERNAL_ERROR,
            )

        sources = [chunk.to_source() for chunk in result.sources]
        await self._save_turn(
            request,
            session_id,
            TurnRole.ASSISTANT,
            result.answer,
            {"sources": [{"id": s["id"], "type": s["type"]} for s in sources]},
        )
        return QueryResponse(
            answer=result.answer,
            session_id=session_id,
            is_out_of_scope=result.is_out_of_scope,
            sources=sources,
        )

    async def _run_agent(
        self,
        request: QueryRequest,
        session_id: str,
        history: list[Message],
        *,
        max_iterations: int | None = None,
    ) -> QueryResponse:
        result = await self._ctx.orchestrator.run(
            request.query,
            organization_id=request.organization_id,
            user_id=request.user_id,
            organization_name=request.organization_name,
            user_name=request.user_name,
            history=history,
            categories=request.enabled_tool_categories,
            max_iterations=max_iterations,
        )

        if result.error_code not in _UNPERSISTED_AGENT_CODES:
            await self._save_turn(
                request,
                session_id,
                TurnRole.ASSISTANT,
                result.response,
                {
                    "isActionResponse": True,
                    "toolsUsed": result.tools_used,
                    "iterations": result.iterations,
                },
            )

        return QueryResponse(
            answer=result.response,
            session_id=session_id,
            is_action_response=True,
            action_result=ActionSummary(
                success=result.success,
                tools_used=result.tools_used,
                iterations=result.iterations,
            ),
            error_code=result.error_code,
        )

    async def _load_history(self, session_id: str) -> list[Message]:
        try:
            turns = await self._ctx.conversations.history(
                session_id, self._ctx.settings.max_history_messages
            )
        except SQLAlchemyError as e:
            log.warning("Failed to load conversation history", session_id=session_id, error=str(e))
            return []
        return turns_to_messages(turns)

    async def _save_turn(
        self,
        request: QueryRequest,
        session_id: str,
        role: TurnRole,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append a turn; a failed write is logged and never fails the answer."""
        try:
            await self._ctx.conversations.append(
                session_id,
                request.organization_id,
                request.user_id,
                role,
                content,
                metadata,
            )
        except AugurError as e:
            log.warning(
                "Failed to save conversation turn",
                session_id=session_id,
                role=str(role),
                error=e.message,
            )
