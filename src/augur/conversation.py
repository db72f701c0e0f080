"""Conversation store - durable, append-only per-session message log.

Recent history is cached per session in an LRU+TTL cache so hot sessions do
not hit the database on every turn while idle sessions age out of memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from augur.cache import LRUCache
from augur.db import ConversationTurn, TurnRole
from augur.errors import PersistenceError

if TYPE_CHECKING:
    from augur.db import Database

log = structlog.get_logger()


@dataclass(frozen=True)
class SessionHistory:
    """Cached tail of a session, valid for requests up to ``limit`` turns."""

    limit: int
    turns: tuple[ConversationTurn, ...]


class ConversationStore:
    """Append, read back and clear conversation turns."""

    def __init__(self, db: Database, cache: LRUCache[SessionHistory] | None = None) -> None:
        self._db = db
        self._cache: LRUCache[SessionHistory] = cache if cache is not None else LRUCache()

    async def append(
        self,
        session_id: str,
        organization_id: str,
        user_id: str,
        role: TurnRole,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ConversationTurn:
        """Persist one turn.

        Raises:
            PersistenceError: If the write fails.
        """
        turn = ConversationTurn(
            session_id=session_id,
            organization_id=organization_id,
            user_id=user_id,
            role=role,
            content=content,
            turn_metadata=metadata or {},
        )
        try:
            async with self._db.session() as session:
                session.add(turn)
                await session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to save conversation turn: {e}",
                details={"session_id": session_id, "role": str(role)},
            ) from e
        finally:
            self._cache.delete(session_id)

        return turn

    async def history(self, session_id: str, max_messages: int = 6) -> list[ConversationTurn]:
        """The most recent ``max_messages`` turns, oldest first."""
        if max_messages <= 0:
            return []

        cached = self._cache.get(session_id)
        if cached is not None and cached.limit >= max_messages:
            return list(cached.turns[-max_messages:])

        async with self._db.session() as session:
            result = await session.execute(
                select(ConversationTurn)
                .where(col(ConversationTurn.session_id) == session_id)
                .order_by(col(ConversationTurn.created_at).desc(), col(ConversationTurn.id).desc())
                .limit(max_messages)
            )
            turns = list(result.scalars().all())

        turns.reverse()
        self._cache.set(session_id, SessionHistory(limit=max_messages, turns=tuple(turns)))
        return turns

    async def clear(self, session_id: str) -> int:
        """Hard-delete every turn in the session. Returns the number removed."""
        self._cache.delete(session_id)
        async with self._db.session() as session:
            result = await session.execute(
                delete(ConversationTurn).where(col(ConversationTurn.session_id) == session_id)
            )
            removed = result.rowcount or 0

        log.info("Cleared conversation history", session_id=session_id, removed=removed)
        return removed
