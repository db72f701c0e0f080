"""Augur database module - durable state for documents, chunks and conversations.

Usage:
    from augur.db import Database, IndexedDocument

    db = Database(settings)
    await db.init()
    async with db.session() as session:
        session.add(IndexedDocument(...))
"""

from augur.db.connection import Database
from augur.db.models import (
    ContentType,
    ConversationTurn,
    DocumentChunk,
    IndexedDocument,
    TurnRole,
    chunk_id,
    source_entity_id,
    utcnow_naive,
)

__all__ = [
    # Connection
    "Database",
    # Models
    "ConversationTurn",
    "DocumentChunk",
    "IndexedDocument",
    # Enums
    "ContentType",
    "TurnRole",
    # Helpers
    "chunk_id",
    "source_entity_id",
    "utcnow_naive",
]
