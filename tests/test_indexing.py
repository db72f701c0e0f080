"""Tests for the indexing service.

Covers idempotent re-indexing, change detection, full chunk-set replacement,
transactional rollback when the vector swap fails, removal and bulk indexing.
"""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from augur.db import ContentType, Database, DocumentChunk, IndexedDocument
from augur.errors import EmbeddingError, PersistenceError, VectorStoreError
from augur.rag.indexing import (
    IndexingService,
    OrganizationStats,
    SourceDocument,
    UpcomingDeadline,
    build_organization_overview,
    prepare_document_content,
)
from tests.harness import HashEmbedder, RecordingVectorStore

LONG_CONTENT = " ".join(
    f"Milestone {i} of the website redesign covers layout, copy and accessibility review."
    for i in range(12)
)


def make_doc(
    content: str = "Redesign the marketing website before the spring launch.",
    *,
    source_id: str = "p1",
    organization_id: str = "org-1",
    content_type: ContentType = ContentType.PROJECT,
    **metadata: object,
) -> SourceDocument:
    return SourceDocument(
        organization_id=organization_id,
        source_schema="project",
        source_table="projects",
        source_id=source_id,
        title="Website Redesign",
        content=content,
        content_type=content_type,
        metadata=metadata,
    )


async def load_document(db: Database, source_id: str) -> IndexedDocument | None:
    async with db.session() as session:
        result = await session.execute(
            select(IndexedDocument).where(col(IndexedDocument.source_id) == source_id)
        )
        return result.scalar_one_or_none()


async def load_chunks(db: Database, entity_id: str) -> list[DocumentChunk]:
    async with db.session() as session:
        result = await session.execute(
            select(DocumentChunk)
            .where(col(DocumentChunk.source_entity_id) == entity_id)
            .order_by(col(DocumentChunk.chunk_index))
        )
        return list(result.scalars().all())


# =============================================================================
# Searchable text
# =============================================================================


def test_prepare_document_content_lifts_structured_fields() -> None:
    text = prepare_document_content(
        "Website Redesign",
        "Body text",
        {"status": "active", "priority": "high", "project_count": 0, "ignored": "x"},
    )

    assert text.startswith("Title: Website Redesign\n")
    assert "Status: active" in text
    assert "Priority: high" in text
    # Zero counts are still statistics worth matching
    assert "Total Projects: 0" in text
    assert "ignored" not in text
    assert text.endswith("Content:\nBody text")


def test_organization_overview_document() -> None:
    stats = OrganizationStats(
        organization_id="org-1",
        name="Acme",
        slug="acme",
        client_count=3,
        project_count=2,
        active_projects=1,
        upcoming_deadlines=[
            UpcomingDeadline(
                title="Ship beta", project_name="Portal", due_date=date(2026, 3, 1), priority="high"
            )
        ],
    )

    doc = build_organization_overview(stats)

    assert doc.entity_id == "auth.organizations.org-1"
    assert doc.content_type == ContentType.ORGANIZATION
    assert "- Clients: 3" in doc.content
    assert "- Total Projects: 2" in doc.content
    assert "- Ship beta (Portal) - Due: 2026-03-01 [high]" in doc.content
    assert doc.metadata["client_count"] == 3


# =============================================================================
# Index
# =============================================================================


@pytest.mark.asyncio
async def test_index_new_document(
    indexing: IndexingService, db: Database, vector_store: RecordingVectorStore
) -> None:
    result = await indexing.index_document(make_doc(LONG_CONTENT))

    assert result.is_new is True
    assert result.is_updated is False
    assert result.chunks_created > 1

    document = await load_document(db, "p1")
    assert document is not None
    assert document.id == result.document_id

    chunks = await load_chunks(db, "project.projects.p1")
    assert [c.chunk_index for c in chunks] == list(range(result.chunks_created))
    assert all(c.total_chunks == result.chunks_created for c in chunks)
    assert vector_store.ids() == {c.id for c in chunks}


@pytest.mark.asyncio
async def test_reindex_unchanged_is_a_no_op(
    indexing: IndexingService, embedder: HashEmbedder, vector_store: RecordingVectorStore
) -> None:
    first = await indexing.index_document(make_doc())
    embedded = embedder.texts_embedded
    upserts = len(vector_store.upserts)

    second = await indexing.index_document(make_doc())

    assert second.document_id == first.document_id
    assert second.chunks_created == 0
    assert second.is_new is False
    assert second.is_updated is False
    assert embedder.texts_embedded == embedded
    assert len(vector_store.upserts) == upserts


@pytest.mark.asyncio
async def test_metadata_change_triggers_reindex(indexing: IndexingService) -> None:
    await indexing.index_document(make_doc(status="planned"))

    result = await indexing.index_document(make_doc(status="active"))

    assert result.is_updated is True
    assert result.chunks_created == 1


@pytest.mark.asyncio
async def test_shrinking_document_drops_stale_chunks(
    indexing: IndexingService, db: Database, vector_store: RecordingVectorStore
) -> None:
    first = await indexing.index_document(make_doc(LONG_CONTENT))
    assert first.chunks_created > 1

    second = await indexing.index_document(make_doc("Now a one-line summary."))

    assert second.is_updated is True
    assert second.document_id == first.document_id
    chunks = await load_chunks(db, "project.projects.p1")
    assert len(chunks) == 1
    assert "one-line summary" in chunks[0].text
    assert vector_store.ids() == {"org-1:project.projects.p1#chunk-0"}


@pytest.mark.asyncio
async def test_embedding_failure_writes_nothing(
    indexing: IndexingService, db: Database, embedder: HashEmbedder
) -> None:
    embedder.fail = True

    with pytest.raises(EmbeddingError):
        await indexing.index_document(make_doc())

    assert await load_document(db, "p1") is None


@pytest.mark.asyncio
async def test_vector_failure_rolls_back_hash_and_chunks(
    indexing: IndexingService, db: Database, vector_store: RecordingVectorStore
) -> None:
    await indexing.index_document(make_doc("Original scope of the redesign."))
    before = await load_document(db, "p1")
    assert before is not None

    vector_store.fail_upsert = True
    with pytest.raises(VectorStoreError):
        await indexing.index_document(make_doc("Revised scope with a new checkout flow."))

    after = await load_document(db, "p1")
    assert after is not None
    assert after.content_hash == before.content_hash
    chunks = await load_chunks(db, "project.projects.p1")
    assert all("Original scope" in c.text for c in chunks)

    # The hash was not advanced, so a retry re-indexes instead of skipping
    vector_store.fail_upsert = False
    retry = await indexing.index_document(make_doc("Revised scope with a new checkout flow."))
    assert retry.is_updated is True


@pytest.mark.asyncio
async def test_failed_commit_leaves_vectors_untouched(
    indexing: IndexingService,
    db: Database,
    vector_store: RecordingVectorStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await indexing.index_document(make_doc(LONG_CONTENT))
    before = vector_store.texts()
    assert len(before) > 1

    original_commit = AsyncSession.commit
    commits: list[AsyncSession] = []

    async def failing_commit(self: AsyncSession) -> None:
        # First commit is the hash lookup, second is the chunk and vector swap
        commits.append(self)
        if len(commits) == 2:
            raise OperationalError("COMMIT", None, Exception("disk I/O error"))
        await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    with pytest.raises(PersistenceError):
        await indexing.index_document(make_doc("Now a one-line summary."))
    monkeypatch.undo()

    assert vector_store.texts() == before
    chunks = await load_chunks(db, "project.projects.p1")
    assert len(chunks) == len(before)

    retry = await indexing.index_document(make_doc("Now a one-line summary."))
    assert retry.is_updated is True
    assert vector_store.ids() == {"org-1:project.projects.p1#chunk-0"}


# =============================================================================
# Remove
# =============================================================================


@pytest.mark.asyncio
async def test_remove_document(
    indexing: IndexingService, db: Database, vector_store: RecordingVectorStore
) -> None:
    await indexing.index_document(make_doc(LONG_CONTENT))

    assert await indexing.remove_document("project", "projects", "p1") is True
    assert await load_document(db, "p1") is None
    assert await load_chunks(db, "project.projects.p1") == []
    assert len(vector_store) == 0

    assert await indexing.remove_document("project", "projects", "p1") is False


@pytest.mark.asyncio
async def test_remove_organization_documents(
    indexing: IndexingService, vector_store: RecordingVectorStore
) -> None:
    await indexing.index_document(make_doc(source_id="p1"))
    await indexing.index_document(make_doc(source_id="p2"))
    await indexing.index_document(make_doc(source_id="p3", organization_id="org-2"))

    removed = await indexing.remove_organization_documents("org-1")

    assert removed == 2
    assert vector_store.ids() == {"org-2:project.projects.p3#chunk-0"}


@pytest.mark.asyncio
async def test_same_source_key_in_two_organizations(
    indexing: IndexingService, db: Database, vector_store: RecordingVectorStore
) -> None:
    first = await indexing.index_document(make_doc("Acme redesign brief."))
    second = await indexing.index_document(
        make_doc("Globex redesign brief.", organization_id="org-2")
    )

    assert first.is_new is True
    assert second.is_new is True
    assert second.document_id != first.document_id
    chunks = await load_chunks(db, "project.projects.p1")
    assert {c.organization_id for c in chunks} == {"org-1", "org-2"}
    assert vector_store.ids() == {
        "org-1:project.projects.p1#chunk-0",
        "org-2:project.projects.p1#chunk-0",
    }

    # Re-indexing one organization's copy leaves the other alone
    await indexing.index_document(make_doc("Acme redesign brief, revised."))
    texts = vector_store.texts()
    assert "Globex" in texts["org-2:project.projects.p1#chunk-0"]
    assert "revised" in texts["org-1:project.projects.p1#chunk-0"]


# =============================================================================
# Bulk and stats
# =============================================================================


@pytest.mark.asyncio
async def test_bulk_indexing_isolates_failures(
    indexing: IndexingService, embedder: HashEmbedder
) -> None:
    await indexing.index_document(make_doc(source_id="p1"))
    embedder.fail_on = "POISON"

    result = await indexing.index_documents(
        [
            make_doc(source_id="p1"),
            make_doc("Brand new project brief.", source_id="p2"),
            make_doc("POISON content", source_id="p3"),
        ]
    )

    assert result.indexed == 1
    assert result.skipped == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("project.projects.p3")


@pytest.mark.asyncio
async def test_get_stats(indexing: IndexingService) -> None:
    await indexing.index_document(make_doc(source_id="p1"))
    await indexing.index_document(make_doc(source_id="p2"))
    await indexing.index_document(make_doc(source_id="t1", content_type=ContentType.TASK))

    stats = await indexing.get_stats("org-1")

    assert stats.total_documents == 3
    assert stats.by_content_type == {"project": 2, "task": 1}
    assert stats.last_synced_at is not None

    empty = await indexing.get_stats("org-unknown")
    assert empty.total_documents == 0
    assert empty.last_synced_at is None


@pytest.mark.asyncio
async def test_sync_organization_overview(indexing: IndexingService, db: Database) -> None:
    stats = OrganizationStats(organization_id="org-1", name="Acme", client_count=4)

    first = await indexing.sync_organization_overview(stats)
    again = await indexing.sync_organization_overview(stats)

    assert first.is_new is True
    assert again.chunks_created == 0
    document = await load_document(db, "org-1")
    assert document is not None
    assert document.content_type == "organization"
