"""Async relational store connection management.

Provides the ``Database`` object that owns the engine and session factory.
It is built once from ``Settings`` and handed to every component that needs
durable state, instead of living as a module-level singleton.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from augur.config import Settings

log = structlog.get_logger()


def _create_engine(settings: Settings) -> AsyncEngine:
    if settings.is_sqlite:
        # Single shared connection so in-memory databases survive across sessions
        engine = create_async_engine(
            settings.database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_async_engine(
        settings.database_url,
        echo=settings.log_level == "DEBUG",
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,
    )


class Database:
    """Engine, session factory and lifecycle for the relational store."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.engine = _create_engine(settings)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def init(self) -> None:
        """Create all tables if they don't exist.

        Should be called once at application startup.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        log.info("Database tables initialized")

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
        log.info("Database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session.

        Usage:
            async with db.session() as session:
                result = await session.execute(select(Model))

        Yields:
            AsyncSession: Database session that auto-commits on success,
                rolls back on exception.
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_health(self) -> dict[str, str | None]:
        """Check relational store connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "healthy", "backend": self.engine.dialect.name}
        except Exception as e:
            log.error("Database health check failed", error=str(e))  # noqa: TRY400
            return {"status": "unhealthy", "error": str(e)}
