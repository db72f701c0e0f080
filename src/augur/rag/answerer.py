"""RAG answerer - the pure question-answering path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from augur.agent.prompts import rag_system_prompt, rag_user_prompt
from augur.llm import Message
from augur.rag.retrieval import build_context
from augur.scope import REFUSAL, check_scope

if TYPE_CHECKING:
    from collections.abc import Iterable

    from augur.llm import ChatModel
    from augur.rag.retrieval import RetrievalService, RetrievedChunk
    from augur.user_context import UserContextProvider

log = structlog.get_logger()


@dataclass
class RagAnswer:
    answer: str
    sources: list[RetrievedChunk] = field(default_factory=list)
    context: str = ""
    is_out_of_scope: bool = False


class RagAnswerer:
    """Retrieve context, then condition the chat model on it."""

    def __init__(
        self,
        retrieval: RetrievalService,
        model: ChatModel,
        user_context: UserContextProvider | None = None,
    ) -> None:
        self._retrieval = retrieval
        self._model = model
        self._user_context = user_context

    async def answer(
        self,
        query: str,
        *,
        organization_id: str,
        user_id: str | None = None,
        history: Iterable[Message] = (),
        organization_name: str | None = None,
        user_name: str | None = None,
        content_types: list[str] | None = None,
    ) -> RagAnswer:
        """Answer ``query`` from the organization's indexed content.

        Out-of-scope queries are refused before retrieval. With a ``user_id``
        and a user-context provider, the user's own facts go into the system
        prompt.

        Raises:
            RetrievalError: If embedding or vector search fails.
            ModelInvocationError: If the chat model fails.
        """
        if not check_scope(query).in_scope:
            return RagAnswer(answer=REFUSAL, is_out_of_scope=True)

        user = None
        if self._user_context is not None and user_id:
            user = await self._user_context.get(organization_id, user_id, user_name=user_name)

        sources = await self._retrieval.retrieve(organization_id, query, content_types)
        context = build_context(sources)

        messages = [
            Message.system(rag_system_prompt(organization_name, user)),
            *history,
            Message.user(rag_user_prompt(context, query)),
        ]
        response = await self._model.invoke(messages)

        log.info(
            "Answered question",
            organization_id=organization_id,
            sources=len(sources),
            user_context=user is not None,
        )
        return RagAnswer(answer=response.text, sources=sources, context=context)
