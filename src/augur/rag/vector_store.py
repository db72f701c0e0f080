"""Vector store adapters.

Nearest-neighbor search is an external concern; the engine only needs
``upsert``, ``query`` and ``delete`` over vectors carrying a metadata bag
that can be filtered by organization and content type.

Backends:
- PgVectorStore: a dedicated ``rag_vectors`` table using the pgvector extension
- MemoryVectorStore: brute-force cosine similarity, for development and tests
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Column, MetaData, String, Table, delete, event, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from augur.errors import VectorStoreError
from augur.utils.resilience import with_timeout

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from augur.db import Database

log = structlog.get_logger()


@dataclass
class VectorRecord:
    """A vector to store, keyed by chunk id."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorHit:
    """A query match with the store's own similarity score."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorFilter:
    """Metadata restriction applied to every query."""

    organization_id: str
    content_types: list[str] | None = None

    def matches(self, metadata: dict[str, Any]) -> bool:
        if metadata.get("organization_id") != self.organization_id:
            return False
        if self.content_types:
            return metadata.get("content_type") in self.content_types
        return True


class VectorStore(Protocol):
    """Interface every nearest-neighbor backend implements.

    Writes accept the caller's relational ``session`` so a backend that lives
    in the same database can join that transaction.
    """

    async def upsert(
        self, records: list[VectorRecord], *, session: AsyncSession | None = None
    ) -> None: ...

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: VectorFilter | None = None,
    ) -> list[VectorHit]: ...

    async def delete(self, ids: list[str], *, session: AsyncSession | None = None) -> None: ...


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


# =============================================================================
# In-memory backend
# =============================================================================


class MemoryVectorStore:
    """Process-local vector store with exact cosine search.

    Writes made with a ``session`` are held back until that session commits
    and dropped if it rolls back.
    """

    def __init__(self) -> None:
        self._records: dict[str, VectorRecord] = {}

    def _on_commit(self, session: AsyncSession | None, apply: Callable[[], None]) -> None:
        if session is None:
            apply()
            return
        event.listen(session.sync_session, "after_commit", lambda _: apply(), once=True)

    async def upsert(
        self, records: list[VectorRecord], *, session: AsyncSession | None = None
    ) -> None:
        staged = list(records)

        def apply() -> None:
            for record in staged:
                self._records[record.id] = record

        self._on_commit(session, apply)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: VectorFilter | None = None,
    ) -> list[VectorHit]:
        hits = [
            VectorHit(
                id=record.id,
                score=cosine_similarity(vector, record.values),
                metadata=dict(record.metadata),
            )
            for record in self._records.values()
            if filter is None or filter.matches(record.metadata)
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]

    async def delete(self, ids: list[str], *, session: AsyncSession | None = None) -> None:
        staged = list(ids)

        def apply() -> None:
            for vector_id in staged:
                self._records.pop(vector_id, None)

        self._on_commit(session, apply)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, vector_id: str) -> bool:
        return vector_id in self._records


# =============================================================================
# pgvector backend
# =============================================================================

_vector_metadata = MetaData()


def _vectors_table(dimensions: int) -> Table:
    return Table(
        "rag_vectors",
        _vector_metadata,
        Column("id", String(400), primary_key=True),
        Column("organization_id", String(64), nullable=False, index=True),
        Column("content_type", String(32), nullable=False, index=True),
        Column("embedding", Vector(dimensions), nullable=False),
        Column("metadata", JSON, nullable=False),
        extend_existing=True,
    )


class PgVectorStore:
    """Vectors stored next to the relational data in PostgreSQL.

    Similarity is ``1 - cosine_distance`` so scores are comparable with the
    in-memory backend.
    """

    def __init__(self, db: Database, *, dimensions: int = 1536, timeout: float = 15.0) -> None:
        self._db = db
        self.timeout = timeout
        self.table = _vectors_table(dimensions)

    async def init(self) -> None:
        """Enable the extension and create the vectors table."""
        async with self._db.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            log.info("Enabled pgvector extension")
            await conn.run_sync(_vector_metadata.create_all)

    async def upsert(
        self, records: list[VectorRecord], *, session: AsyncSession | None = None
    ) -> None:
        if not records:
            return
        rows = [
            {
                "id": r.id,
                "organization_id": str(r.metadata.get("organization_id", "")),
                "content_type": str(r.metadata.get("content_type", "")),
                "embedding": r.values,
                "metadata": r.metadata,
            }
            for r in records
        ]
        stmt = pg_insert(self.table).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[self.table.c.id],
            set_={
                "organization_id": stmt.excluded.organization_id,
                "content_type": stmt.excluded.content_type,
                "embedding": stmt.excluded.embedding,
                "metadata": stmt.excluded.metadata,
            },
        )
        await self._run(stmt, "vector_upsert", session=session, count=len(rows))

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: VectorFilter | None = None,
    ) -> list[VectorHit]:
        similarity = (1 - self.table.c.embedding.cosine_distance(vector)).label("similarity")
        stmt = select(self.table.c.id, self.table.c.metadata, similarity)
        if filter is not None:
            stmt = stmt.where(self.table.c.organization_id == filter.organization_id)
            if filter.content_types:
                stmt = stmt.where(self.table.c.content_type.in_(filter.content_types))
        stmt = stmt.order_by(similarity.desc()).limit(top_k)

        rows = await self._run(stmt, "vector_query", fetch=True)
        return [
            VectorHit(id=row.id, score=float(row.similarity), metadata=dict(row.metadata or {}))
            for row in rows
        ]

    async def delete(self, ids: list[str], *, session: AsyncSession | None = None) -> None:
        if not ids:
            return
        await self._run(
            delete(self.table).where(self.table.c.id.in_(ids)), "vector_delete", session=session
        )

    async def _run(
        self,
        stmt: Any,
        operation: str,
        *,
        fetch: bool = False,
        session: AsyncSession | None = None,
        **context: Any,
    ) -> Any:
        async def execute() -> Any:
            # Inside a caller transaction: no commit here, the caller owns it
            if session is not None:
                result = await session.execute(stmt)
                return result.all() if fetch else None
            async with self._db.session() as own:
                result = await own.execute(stmt)
                return result.all() if fetch else None

        try:
            return await with_timeout(execute(), self.timeout, operation)
        except (SQLAlchemyError, TimeoutError, OSError) as e:
            log.warning("Vector store call failed", operation=operation, error=str(e), **context)
            raise VectorStoreError(
                f"Vector store {operation} failed: {e}",
                details={"operation": operation},
            ) from e
