"""Indexing service - keeps one vector-indexed document per source entity in sync.

Pipeline per document:
    searchable text -> content hash -> (unchanged? stop) -> chunk -> embed
    -> one transaction: upsert document row, swap chunk rows, swap vectors

The content hash is the only re-indexing gate. Embedding happens before the
transaction opens, so an embedding failure leaves the previous state intact.
Writes for the same source entity are serialized in-process; the natural-key
unique constraint catches anything that slips past across processes.
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, select

from augur.db import (
    ContentType,
    DocumentChunk,
    IndexedDocument,
    chunk_id,
    source_entity_id,
    utcnow_naive,
)
from augur.errors import PersistenceError
from augur.rag.chunker import Chunk, Chunker, content_hash
from augur.rag.vector_store import VectorRecord

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from augur.db import Database
    from augur.rag.embedder import Embedder
    from augur.rag.vector_store import VectorStore

log = structlog.get_logger()

OVERVIEW_SCHEMA = "auth"
OVERVIEW_TABLE = "organizations"


# =============================================================================
# Inputs and results
# =============================================================================


class SourceDocument(BaseModel):
    """A source entity to mirror into the index."""

    organization_id: str = Field(min_length=1, max_length=64)
    source_schema: str = Field(min_length=1, max_length=64)
    source_table: str = Field(min_length=1, max_length=64)
    source_id: str = Field(min_length=1, max_length=128)
    title: str = Field(default="", max_length=512)
    content: str = ""
    content_type: ContentType
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def entity_id(self) -> str:
        return source_entity_id(self.source_schema, self.source_table, self.source_id)


@dataclass
class IndexResult:
    document_id: UUID
    chunks_created: int
    is_new: bool
    is_updated: bool


@dataclass
class BulkIndexResult:
    """Outcome of a batch; one failed document never aborts the rest."""

    indexed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class IndexingStats:
    total_documents: int
    by_content_type: dict[str, int]
    last_synced_at: datetime | None


# =============================================================================
# Searchable text
# =============================================================================

_FIELD_LABELS = (
    ("status", "Status"),
    ("priority", "Priority"),
    ("assignee", "Assignee"),
    ("due_date", "Due Date"),
    ("project_name", "Project"),
    ("team_name", "Team"),
)

_COUNT_LABELS = (
    ("member_count", "Total Members"),
    ("project_count", "Total Projects"),
    ("task_count", "Total Tasks"),
    ("team_count", "Total Teams"),
    ("client_count", "Total Clients"),
    ("milestone_count", "Total Milestones"),
)


def prepare_document_content(
    title: str, content: str, metadata: dict[str, Any] | None = None
) -> str:
    """Assemble the text that gets chunked and embedded.

    Selected structured fields and count statistics are lifted out of
    ``metadata`` so aggregate questions can match them lexically.
    """
    parts = [f"Title: {title}"]

    if metadata:
        for key, label in _FIELD_LABELS:
            if metadata.get(key):
                parts.append(f"{label}: {metadata[key]}")
        for key, label in _COUNT_LABELS:
            if metadata.get(key) is not None:
                parts.append(f"{label}: {metadata[key]}")

    parts.append(f"\nContent:\n{content}")
    return "\n".join(parts)


# =============================================================================
# Organization overview pseudo-document
# =============================================================================


class UpcomingDeadline(BaseModel):
    title: str
    project_name: str = ""
    due_date: date
    priority: str | None = None


class OrganizationStats(BaseModel):
    """Aggregate counts for one organization, computed by the caller."""

    organization_id: str = Field(min_length=1, max_length=64)
    name: str
    slug: str = ""
    created_at: date | None = None

    member_count: int = Field(default=0, ge=0)
    team_count: int = Field(default=0, ge=0)
    client_count: int = Field(default=0, ge=0)

    project_count: int = Field(default=0, ge=0)
    active_projects: int = Field(default=0, ge=0)
    completed_projects: int = Field(default=0, ge=0)
    pending_projects: int = Field(default=0, ge=0)

    task_count: int = Field(default=0, ge=0)
    todo_tasks: int = Field(default=0, ge=0)
    in_progress_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    overdue_tasks: int = Field(default=0, ge=0)

    milestone_count: int = Field(default=0, ge=0)
    completed_milestones: int = Field(default=0, ge=0)
    overdue_milestones: int = Field(default=0, ge=0)

    upcoming_deadlines: list[UpcomingDeadline] = Field(default_factory=list)


def build_organization_overview(stats: OrganizationStats) -> SourceDocument:
    """Render organization statistics as an indexable overview document."""
    if stats.upcoming_deadlines:
        deadlines = "\n".join(
            f"- {d.title} ({d.project_name}) - Due: {d.due_date.isoformat()}"
            + (f" [{d.priority}]" if d.priority else "")
            for d in stats.upcoming_deadlines
        )
    else:
        deadlines = "No upcoming deadlines in the next 7 days."

    created = stats.created_at.isoformat() if stats.created_at else "unknown"
    content = f"""Organization: {stats.name}
Slug: {stats.slug}
Created: {created}

=== ORGANIZATION STATISTICS ===

Team & Workforce:
- Total Members: {stats.member_count}
- Teams: {stats.team_count}
- Clients: {stats.client_count}

Projects Overview:
- Total Projects: {stats.project_count}
- Active Projects: {stats.active_projects}
- Completed Projects: {stats.completed_projects}
- Pending/On Hold: {stats.pending_projects}

Tasks Overview:
- Total Tasks: {stats.task_count}
- To Do: {stats.todo_tasks}
- In Progress: {stats.in_progress_tasks}
- Completed: {stats.completed_tasks}
- Overdue Tasks: {stats.overdue_tasks}

Milestones:
- Total Milestones: {stats.milestone_count}
- Completed: {stats.completed_milestones}
- Overdue: {stats.overdue_milestones}

=== UPCOMING DEADLINES (Next 7 Days) ===
{deadlines}"""

    metadata = stats.model_dump(
        exclude={"organization_id", "created_at", "upcoming_deadlines"},
    )
    return SourceDocument(
        organization_id=stats.organization_id,
        source_schema=OVERVIEW_SCHEMA,
        source_table=OVERVIEW_TABLE,
        source_id=stats.organization_id,
        title=f"{stats.name} - Organization Overview and Statistics",
        content=content,
        content_type=ContentType.ORGANIZATION,
        metadata=metadata,
    )


# =============================================================================
# Service
# =============================================================================


class IndexingService:
    """Chunk, embed and store source documents."""

    def __init__(
        self,
        db: Database,
        embedder: Embedder,
        vector_store: VectorStore,
        chunker: Chunker | None = None,
    ) -> None:
        self._db = db
        self._embedder = embedder
        self._vector_store = vector_store
        self._chunker = chunker or Chunker()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def _entity_lock(self, entity_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        async with lock:
            yield

    @staticmethod
    async def _find_document(session: AsyncSession, doc: SourceDocument) -> IndexedDocument | None:
        result = await session.execute(
            select(IndexedDocument).where(
                col(IndexedDocument.organization_id) == doc.organization_id,
                col(IndexedDocument.source_schema) == doc.source_schema,
                col(IndexedDocument.source_table) == doc.source_table,
                col(IndexedDocument.source_id) == doc.source_id,
            )
        )
        return result.scalar_one_or_none()

    async def index_document(self, doc: SourceDocument) -> IndexResult:
        """Index one source entity.

        Returns with ``chunks_created=0`` and ``is_updated=False`` when the
        content hash is unchanged.

        Raises:
            EmbeddingError: If embedding fails; nothing is written.
            VectorStoreError: If the vector swap fails; the transaction rolls back.
            PersistenceError: If the relational write fails.
        """
        entity_id = doc.entity_id
        searchable = prepare_document_content(doc.title, doc.content, doc.metadata)
        new_hash = content_hash(searchable)

        async with self._entity_lock(entity_id):
            async with self._db.session() as session:
                existing = await self._find_document(session, doc)

            if existing is not None and existing.content_hash == new_hash:
                log.debug("Document unchanged, skipping", entity_id=entity_id)
                return IndexResult(
                    document_id=existing.id, chunks_created=0, is_new=False, is_updated=False
                )

            chunks = self._chunker.split(searchable)
            vectors = await self._embedder.embed_many([c.content for c in chunks])

            try:
                document_id, is_new = await self._replace_document(
                    doc, new_hash, entity_id, chunks, vectors
                )
            except IntegrityError as e:
                log.warning("Concurrent write on document", entity_id=entity_id, error=str(e))
                raise PersistenceError(
                    f"Conflicting write for {entity_id}", details={"entity_id": entity_id}
                ) from e
            except SQLAlchemyError as e:
                raise PersistenceError(
                    f"Failed to store {entity_id}: {e}", details={"entity_id": entity_id}
                ) from e

        log.info(
            "Indexed document",
            entity_id=entity_id,
            document_id=str(document_id),
            chunks=len(chunks),
            is_new=is_new,
        )
        return IndexResult(
            document_id=document_id,
            chunks_created=len(chunks),
            is_new=is_new,
            is_updated=not is_new,
        )

    async def _replace_document(
        self,
        doc: SourceDocument,
        new_hash: str,
        entity_id: str,
        chunks: list[Chunk],
        vectors: list[list[float]],
    ) -> tuple[UUID, bool]:
        """Upsert the document row and swap its chunks and vectors atomically."""
        async with self._db.session() as session:
            document = await self._find_document(session, doc)
            is_new = document is None
            now = utcnow_naive()

            if document is None:
                document = IndexedDocument(
                    organization_id=doc.organization_id,
                    source_schema=doc.source_schema,
                    source_table=doc.source_table,
                    source_id=doc.source_id,
                    title=doc.title,
                    raw_content=doc.content,
                    content_type=doc.content_type,
                    doc_metadata=dict(doc.metadata),
                    content_hash=new_hash,
                    last_synced_at=now,
                )
                session.add(document)
            else:
                document.title = doc.title
                document.raw_content = doc.content
                document.content_type = doc.content_type
                document.doc_metadata = dict(doc.metadata)
                document.content_hash = new_hash
                document.last_synced_at = now
            await session.flush()

            prior = await session.execute(
                select(DocumentChunk.id).where(col(DocumentChunk.document_id) == document.id)
            )
            prior_ids = set(prior.scalars().all())
            await session.execute(
                delete(DocumentChunk).where(col(DocumentChunk.document_id) == document.id)
            )

            total = len(chunks)
            records: list[VectorRecord] = []
            for chunk, vector in zip(chunks, vectors, strict=True):
                cid = chunk_id(doc.organization_id, entity_id, chunk.chunk_index)
                session.add(
                    DocumentChunk(
                        id=cid,
                        document_id=document.id,
                        source_entity_id=entity_id,
                        organization_id=doc.organization_id,
                        content_type=doc.content_type,
                        source_label=doc.source_table,
                        text=chunk.content,
                        embedding=vector,
                        chunk_index=chunk.chunk_index,
                        total_chunks=total,
                    )
                )
                records.append(
                    VectorRecord(
                        id=cid,
                        values=vector,
                        metadata={
                            "organization_id": doc.organization_id,
                            "content_type": str(doc.content_type),
                            "source_id": entity_id,
                            "source_label": doc.source_table,
                            "title": doc.title,
                            "text": chunk.content,
                            "chunk_index": chunk.chunk_index,
                            "total_chunks": total,
                        },
                    )
                )
            await session.flush()

            # Vector writes join this transaction; a failure rolls back the rows above
            await self._vector_store.upsert(records, session=session)
            stale = prior_ids - {r.id for r in records}
            if stale:
                await self._vector_store.delete(sorted(stale), session=session)

            return document.id, is_new

    async def index_documents(self, docs: list[SourceDocument]) -> BulkIndexResult:
        """Index a batch with per-document isolation."""
        result = BulkIndexResult()
        for doc in docs:
            try:
                outcome = await self.index_document(doc)
            except Exception as e:
                log.warning("Failed to index document", entity_id=doc.entity_id, error=str(e))
                result.errors.append(f"{doc.entity_id}: {e}")
                continue
            if outcome.is_new or outcome.is_updated:
                result.indexed += 1
            else:
                result.skipped += 1

        log.info(
            "Bulk indexing complete",
            indexed=result.indexed,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def remove_document(self, source_schema: str, source_table: str, source_id: str) -> bool:
        """Delete a source entity's document, chunks and vectors.

        Returns False when nothing was indexed under that key.
        """
        entity_id = source_entity_id(source_schema, source_table, source_id)
        async with self._entity_lock(entity_id):
            async with self._db.session() as session:
                found = await session.execute(
                    select(IndexedDocument.id).where(
                        col(IndexedDocument.source_schema) == source_schema,
                        col(IndexedDocument.source_table) == source_table,
                        col(IndexedDocument.source_id) == source_id,
                    )
                )
                document_ids = list(found.scalars().all())
                if not document_ids:
                    log.debug("Nothing to remove", entity_id=entity_id)
                    return False
                await self._delete_documents(session, document_ids)

        log.info("Removed document", entity_id=entity_id, documents=len(document_ids))
        return True

    async def remove_organization_documents(self, organization_id: str) -> int:
        """Delete everything indexed for an organization. Returns documents removed."""
        async with self._db.session() as session:
            found = await session.execute(
                select(IndexedDocument.id).where(
                    col(IndexedDocument.organization_id) == organization_id
                )
            )
            document_ids = list(found.scalars().all())
            if document_ids:
                await self._delete_documents(session, document_ids)

        log.info(
            "Removed organization documents",
            organization_id=organization_id,
            count=len(document_ids),
        )
        return len(document_ids)

    async def _delete_documents(self, session: AsyncSession, document_ids: list[UUID]) -> None:
        chunk_rows = await session.execute(
            select(DocumentChunk.id).where(col(DocumentChunk.document_id).in_(document_ids))
        )
        vector_ids = list(chunk_rows.scalars().all())
        await session.execute(
            delete(DocumentChunk).where(col(DocumentChunk.document_id).in_(document_ids))
        )
        await session.execute(
            delete(IndexedDocument).where(col(IndexedDocument.id).in_(document_ids))
        )
        await self._vector_store.delete(vector_ids, session=session)

    async def get_stats(self, organization_id: str) -> IndexingStats:
        """Counts by content type and the most recent sync time."""
        async with self._db.session() as session:
            rows = await session.execute(
                select(IndexedDocument.content_type, func.count())
                .where(col(IndexedDocument.organization_id) == organization_id)
                .group_by(IndexedDocument.content_type)
            )
            by_type = {str(content_type): count for content_type, count in rows.all()}
            last = await session.execute(
                select(func.max(IndexedDocument.last_synced_at)).where(
                    col(IndexedDocument.organization_id) == organization_id
                )
            )
            last_synced_at = last.scalar_one_or_none()

        return IndexingStats(
            total_documents=sum(by_type.values()),
            by_content_type=by_type,
            last_synced_at=last_synced_at,
        )

    async def sync_organization_overview(self, stats: OrganizationStats) -> IndexResult:
        """Index (or refresh) the organization's statistics overview."""
        return await self.index_document(build_organization_overview(stats))
