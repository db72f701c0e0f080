"""Tests for the augur command line."""

import asyncio
from pathlib import Path

import pytest
from typer.testing import CliRunner

from augur.cli import app
from augur.db import ContentType, TurnRole
from augur.engine import EngineContext
from augur.rag.indexing import SourceDocument
from tests.harness import HashEmbedder, RecordingVectorStore, ScriptedChatModel, make_settings

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'augur.db'}"


@pytest.fixture
def cli_env(database_url: str) -> dict[str, str]:
    return {
        "AUGUR_DATABASE_URL": database_url,
        "AUGUR_VECTOR_STORE": "memory",
        "AUGUR_OPENAI_API_KEY": "test-key",
    }


def seed(database_url: str) -> None:
    """Index two documents and one conversation turn into the file database."""

    async def run() -> None:
        engine = EngineContext.build(
            make_settings(database_url=database_url),
            embedder=HashEmbedder(),
            vector_store=RecordingVectorStore(),
            chat_model=ScriptedChatModel(),
        )
        await engine.start()
        try:
            for source_id, content_type in [("p1", ContentType.PROJECT), ("t1", ContentType.TASK)]:
                await engine.indexing.index_document(
                    SourceDocument(
                        organization_id="org-1",
                        source_schema="project",
                        source_table="projects",
                        source_id=source_id,
                        title=source_id,
                        content=f"Body of {source_id}",
                        content_type=content_type,
                    )
                )
            await engine.conversations.append("s1", "org-1", "user-1", TurnRole.USER, "Hello")
        finally:
            await engine.close()

    asyncio.run(run())


def test_tools_lists_catalog() -> None:
    result = runner.invoke(app, ["tools", "--category", "notification"])

    assert result.exit_code == 0
    assert "send_notification" in result.output
    assert "create_project" not in result.output


def test_tools_rejects_unknown_category() -> None:
    result = runner.invoke(app, ["tools", "--category", "astrology"])

    assert result.exit_code != 0


def test_stats(database_url: str, cli_env: dict[str, str]) -> None:
    seed(database_url)

    result = runner.invoke(app, ["stats", "org-1"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "project" in result.output
    assert "task" in result.output
    assert "Last synced" in result.output


def test_clear_history(database_url: str, cli_env: dict[str, str]) -> None:
    seed(database_url)

    first = runner.invoke(app, ["clear-history", "s1"], env=cli_env)
    second = runner.invoke(app, ["clear-history", "s1"], env=cli_env)

    assert "Removed 1 turns from s1" in first.output
    assert "Removed 0 turns from s1" in second.output


def test_init_db(cli_env: dict[str, str]) -> None:
    result = runner.invoke(app, ["init-db"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "Database initialized" in result.output
