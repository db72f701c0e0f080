"""Retrieval service - similarity search and context assembly.

Hits come back in the vector store's own score order; nothing is re-ranked.
Aggregate ("how many", "overview") and personal ("my", "me") questions also
pull the organization overview document, because narrative chunks tend to
outrank summary statistics under plain similarity.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from augur.db import IndexedDocument, source_entity_id
from augur.errors import RetrievalError
from augur.rag.indexing import OVERVIEW_SCHEMA, OVERVIEW_TABLE, prepare_document_content
from augur.rag.vector_store import VectorFilter

if TYPE_CHECKING:
    from augur.db import Database
    from augur.rag.embedder import Embedder
    from augur.rag.vector_store import VectorStore

log = structlog.get_logger()

AGGREGATE_PATTERN = re.compile(r"how many|count|total|number of|statistics|stats|overview", re.I)
PERSONAL_PATTERN = re.compile(r"\b(my|me|i|myself|who am i|do you know me)\b", re.I)

NO_CONTEXT = "No relevant context found."
CONTEXT_DIVIDER = "\n\n---\n\n"


@dataclass
class RetrievedChunk:
    """One piece of retrieved context."""

    id: str
    source_id: str
    content_type: str
    source_label: str
    title: str
    text: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_source(self) -> dict[str, Any]:
        return {
            "id": self.source_id,
            "type": self.content_type,
            "title": self.title,
            "score": round(self.score, 4),
        }


def is_aggregate_query(query: str) -> bool:
    return bool(AGGREGATE_PATTERN.search(query))


def is_personal_query(query: str) -> bool:
    return bool(PERSONAL_PATTERN.search(query))


def build_context(chunks: list[RetrievedChunk]) -> str:
    """Render numbered context blocks for the model.

    Empty input renders a fixed sentinel; the model never receives an empty
    context.
    """
    if not chunks:
        return NO_CONTEXT

    blocks = []
    for n, chunk in enumerate(chunks, start=1):
        label = chunk.content_type[:1].upper() + chunk.content_type[1:]
        source = chunk.source_label or chunk.source_id
        blocks.append(f"[{n}] {label} ({source}, relevance {chunk.score:.0%}):\n{chunk.text}")
    return CONTEXT_DIVIDER.join(blocks)


class RetrievalService:
    """Query-time search over the vector index."""

    def __init__(
        self,
        db: Database,
        embedder: Embedder,
        vector_store: VectorStore,
        *,
        top_k: int = 10,
        similarity_threshold: float = 0.3,
    ) -> None:
        self._db = db
        self._embedder = embedder
        self._vector_store = vector_store
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold

    async def search(
        self,
        organization_id: str,
        query: str,
        content_types: list[str] | None = None,
        top_k: int | None = None,
    ) -> list[RetrievedChunk]:
        """Embed ``query`` once and return up to ``top_k`` hits for the organization.

        Raises:
            RetrievalError: If the embedding API or vector store fails.
        """
        limit = top_k or self.top_k
        vector = await self._embedder.embed_query(query)

        hits = await self._vector_store.query(
            vector,
            limit,
            VectorFilter(organization_id=organization_id, content_types=content_types or None),
        )

        results = [
            RetrievedChunk(
                id=hit.id,
                source_id=str(hit.metadata.get("source_id", hit.id)),
                content_type=str(hit.metadata.get("content_type", "document")),
                source_label=str(hit.metadata.get("source_label", "")),
                title=str(hit.metadata.get("title", "")),
                text=str(hit.metadata.get("text", "")),
                score=hit.score,
                metadata=hit.metadata,
            )
            for hit in hits
            if hit.score >= self.similarity_threshold
        ]
        log.debug(
            "Retrieved chunks",
            organization_id=organization_id,
            hits=len(hits),
            kept=len(results),
        )
        return results[:limit]

    async def get_organization_overview(self, organization_id: str) -> RetrievedChunk | None:
        """Read the organization overview pseudo-document, if it has been synced."""
        try:
            async with self._db.session() as session:
                result = await session.execute(
                    select(IndexedDocument).where(
                        col(IndexedDocument.organization_id) == organization_id,
                        col(IndexedDocument.source_schema) == OVERVIEW_SCHEMA,
                        col(IndexedDocument.source_table) == OVERVIEW_TABLE,
                        col(IndexedDocument.source_id) == organization_id,
                    )
                )
                document = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RetrievalError(f"Failed to load organization overview: {e}") from e

        if document is None:
            return None

        return RetrievedChunk(
            id=document.entity_id,
            source_id=source_entity_id(OVERVIEW_SCHEMA, OVERVIEW_TABLE, organization_id),
            content_type=document.content_type,
            source_label=OVERVIEW_TABLE,
            title=document.title,
            text=prepare_document_content(
                document.title, document.raw_content, document.doc_metadata
            ),
            score=1.0,
            metadata=dict(document.doc_metadata),
        )

    async def retrieve(
        self,
        organization_id: str,
        query: str,
        content_types: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        """Search, prepending the organization overview for aggregate or personal questions."""
        overview = None
        if is_aggregate_query(query) or is_personal_query(query):
            overview = await self.get_organization_overview(organization_id)

        chunks = await self.search(organization_id, query, content_types)

        if overview is not None and not any(c.source_id == overview.source_id for c in chunks):
            chunks = [overview, *chunks]
            log.debug("Prepended organization overview", organization_id=organization_id)
        return chunks
