"""SQLModel schemas for the engine's durable state.

Architecture:
- IndexedDocument: one row per source entity, keyed by its natural key
- DocumentChunk: immutable chunk rows owned by a document, replaced as a batch
- ConversationTurn: append-only per-session message log
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, ForeignKey, Index, Text, UniqueConstraint, Uuid
from sqlmodel import Field, SQLModel


def utcnow_naive() -> datetime:
    """Get current UTC time as naive datetime (for TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(UTC).replace(tzinfo=None)


def source_entity_id(source_schema: str, source_table: str, source_id: str) -> str:
    """Stable identifier for a source entity, shared by its chunks and vectors."""
    return f"{source_schema}.{source_table}.{source_id}"


def chunk_id(organization_id: str, entity_id: str, chunk_index: int) -> str:
    """Deterministic chunk id so a document's chunks can be addressed without a read.

    Scoped by organization: two organizations may index the same source key.
    """
    return f"{organization_id}:{entity_id}#chunk-{chunk_index}"


# =============================================================================
# Enums
# =============================================================================


class ContentType(StrEnum):
    """Kinds of organizational content that can be indexed."""

    ORGANIZATION = "organization"
    MEMBER = "member"
    PROJECT = "project"
    TASK = "task"
    MILESTONE = "milestone"
    RISK = "risk"
    WIKI = "wiki"
    DOCUMENT = "document"
    TEAM = "team"
    USER = "user"
    CLIENT = "client"
    PROPOSAL = "proposal"


class TurnRole(StrEnum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# IndexedDocument - one per source entity
# =============================================================================


class IndexedDocument(SQLModel, table=True):
    """A source entity mirrored into the retrieval index.

    ``content_hash`` gates re-indexing: an unchanged hash means the chunk set
    and its vectors are left untouched.
    """

    __tablename__ = "rag_documents"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "source_schema",
            "source_table",
            "source_id",
            name="uq_rag_documents_natural_key",
        ),
        Index("ix_rag_documents_source", "source_schema", "source_table", "source_id"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    organization_id: str = Field(max_length=64, index=True)
    source_schema: str = Field(max_length=64)
    source_table: str = Field(max_length=64)
    source_id: str = Field(max_length=128)

    title: str = Field(default="", max_length=512)
    raw_content: str = Field(default="", sa_type=Text, description="Content as received")
    content_type: str = Field(max_length=32, index=True)
    doc_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=False, default=dict),
    )
    content_hash: str = Field(max_length=32, description="Change-detection hash")
    last_synced_at: datetime = Field(default_factory=utcnow_naive)
    created_at: datetime = Field(default_factory=utcnow_naive)

    @property
    def entity_id(self) -> str:
        return source_entity_id(self.source_schema, self.source_table, self.source_id)

    def __repr__(self) -> str:
        return f"<IndexedDocument {self.entity_id} [{self.content_type}]>"


# =============================================================================
# DocumentChunk - immutable, replaced as a full batch
# =============================================================================


class DocumentChunk(SQLModel, table=True):
    """A bounded substring of a document with its embedding."""

    __tablename__ = "rag_chunks"  # type: ignore[assignment]

    id: str = Field(primary_key=True, max_length=400)
    document_id: UUID = Field(
        sa_column=Column(
            Uuid,
            ForeignKey("rag_documents.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    source_entity_id: str = Field(max_length=300, index=True)
    organization_id: str = Field(max_length=64, index=True)
    content_type: str = Field(max_length=32)
    source_label: str = Field(default="", max_length=128)
    text: str = Field(sa_type=Text)
    embedding: list[float] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, default=list),
    )
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    created_at: datetime = Field(default_factory=utcnow_naive)

    def __repr__(self) -> str:
        return f"<DocumentChunk {self.id}>"


# =============================================================================
# ConversationTurn - append-only message log
# =============================================================================


class ConversationTurn(SQLModel, table=True):
    """One message in a session. Never updated; removed only by clearing the session."""

    __tablename__ = "conversation_turns"  # type: ignore[assignment]
    __table_args__ = (Index("ix_conversation_turns_session_created", "session_id", "created_at"),)

    # Autoincrement id breaks ties between turns written within the same tick
    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(max_length=64)
    organization_id: str = Field(max_length=64, index=True)
    user_id: str = Field(max_length=64)
    role: TurnRole
    content: str = Field(sa_type=Text)
    turn_metadata: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=False, default=dict),
    )
    created_at: datetime = Field(default_factory=utcnow_naive)
