"""Tests for settings defaults and validation."""

import pytest

from augur.config import Settings


def build(**values: object) -> Settings:
    return Settings(_env_file=None, **values)  # type: ignore[call-arg]


class TestDefaults:
    """Defaults that the engine relies on."""

    def test_retrieval_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AUGUR_TOP_K", raising=False)
        monkeypatch.delenv("AUGUR_SIMILARITY_THRESHOLD", raising=False)
        settings = build()

        assert settings.top_k == 10
        assert settings.similarity_threshold == 0.3
        assert settings.max_history_messages == 6
        assert settings.chunk_size == 1000
        assert settings.chunk_overlap == 200

    def test_agent_defaults(self) -> None:
        settings = build()

        assert settings.agent_max_iterations == 5
        assert settings.agent_temperature < settings.chat_temperature

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUGUR_TOP_K", "4")
        monkeypatch.setenv("AUGUR_AGENT_ENABLED", "false")

        settings = build()

        assert settings.top_k == 4
        assert settings.agent_enabled is False

    def test_service_urls_cover_every_backend(self) -> None:
        urls = build(project_service_url="http://projects:3003").service_urls()

        assert set(urls) == {
            "project",
            "client",
            "workforce",
            "communication",
            "notification",
            "knowledge",
        }
        assert urls["project"] == "http://projects:3003"

    def test_is_sqlite(self) -> None:
        assert build(database_url="sqlite+aiosqlite://").is_sqlite is True
        assert build().is_sqlite is False


class TestApiKey:
    """The provider key falls back to the conventional variable."""

    def test_falls_back_to_openai_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AUGUR_OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")

        assert build().openai_api_key.get_secret_value() == "sk-fallback"

    def test_prefixed_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")

        settings = build(openai_api_key="sk-explicit")

        assert settings.openai_api_key.get_secret_value() == "sk-explicit"

    def test_key_is_not_printed(self) -> None:
        settings = build(openai_api_key="sk-secret")

        assert "sk-secret" not in repr(settings)


class TestValidation:
    """Settings that cannot work together are rejected at load time."""

    def test_overlap_must_be_smaller_than_chunk(self) -> None:
        with pytest.raises(ValueError, match="chunk_overlap"):
            build(chunk_size=100, chunk_overlap=100)

    def test_memory_store_forbidden_in_production(self) -> None:
        with pytest.raises(ValueError, match="forbidden in production"):
            build(environment="production", vector_store="memory")

    def test_memory_store_allowed_outside_production(self) -> None:
        for env in ["development", "staging"]:
            assert build(environment=env, vector_store="memory").vector_store == "memory"

    @pytest.mark.parametrize(
        "values",
        [
            {"similarity_threshold": 1.5},
            {"top_k": 0},
            {"agent_max_iterations": 0},
            {"environment": "prod"},
            {"vector_store": "faiss"},
        ],
    )
    def test_out_of_range_values(self, values: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            build(**values)
