"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from augur.config import Settings
from augur.db import Database
from augur.rag.chunker import Chunker
from augur.rag.indexing import IndexingService
from augur.rag.retrieval import RetrievalService
from tests.harness import HashEmbedder, RecordingVectorStore, make_settings

# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncGenerator[Database]:
    """Fresh in-memory SQLite database with all tables created."""
    database = Database(settings)
    await database.init()
    try:
        yield database
    finally:
        await database.close()


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder()


@pytest.fixture
def vector_store() -> RecordingVectorStore:
    return RecordingVectorStore()


@pytest.fixture
def indexing(
    db: Database, embedder: HashEmbedder, vector_store: RecordingVectorStore
) -> IndexingService:
    # Small windows so ordinary test documents produce several chunks
    return IndexingService(db, embedder, vector_store, Chunker(chunk_size=200, overlap=40))


@pytest.fixture
def retrieval(
    db: Database, embedder: HashEmbedder, vector_store: RecordingVectorStore
) -> RetrievalService:
    return RetrievalService(db, embedder, vector_store, top_k=5, similarity_threshold=0.1)
