"""Retrieval-augmented generation: chunking, embedding, indexing and retrieval."""

from augur.rag.answerer import RagAnswer, RagAnswerer
from augur.rag.chunker import Chunk, Chunker, content_hash, split_text
from augur.rag.embedder import Embedder, EmbeddingClient
from augur.rag.indexing import (
    BulkIndexResult,
    IndexingService,
    IndexingStats,
    IndexResult,
    OrganizationStats,
    SourceDocument,
    build_organization_overview,
    prepare_document_content,
)
from augur.rag.retrieval import RetrievalService, RetrievedChunk, build_context
from augur.rag.vector_store import (
    MemoryVectorStore,
    PgVectorStore,
    VectorFilter,
    VectorHit,
    VectorRecord,
    VectorStore,
)

__all__ = [
    # Chunking
    "Chunk",
    "Chunker",
    "content_hash",
    "split_text",
    # Embedding
    "Embedder",
    "EmbeddingClient",
    # Vector store
    "MemoryVectorStore",
    "PgVectorStore",
    "VectorFilter",
    "VectorHit",
    "VectorRecord",
    "VectorStore",
    # Indexing
    "BulkIndexResult",
    "IndexResult",
    "IndexingService",
    "IndexingStats",
    "OrganizationStats",
    "SourceDocument",
    "build_organization_overview",
    "prepare_document_content",
    # Retrieval
    "RetrievalService",
    "RetrievedChunk",
    "build_context",
    # Answering
    "RagAnswer",
    "RagAnswerer",
]
