"""Tests for YAML + environment configuration loading."""
import pytest

from archive_rag.config import Settings, load_settings
from archive_rag.errors import ConfigurationError

_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "ANTHROPIC_API_KEY",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "INDEX_DIR",
    "DOCUMENTS_DIR",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # a developer .env must not leak keys into these tests
    monkeypatch.setattr("archive_rag.config.load_dotenv", lambda *args, **kwargs: False)


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")

        assert settings.chunking.chunk_size == 1000
        assert settings.chunking.chunk_overlap == 200
        assert settings.generation.top_k == 5
        assert settings.source.max_redirects == 5
        assert settings.retry.embedding_attempts == 1

    def test_yaml_values_are_applied(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "chunking:\n  chunk_size: 500\n  chunk_overlap: 50\n"
            "generation:\n  provider: anthropic\n  model: claude-sonnet-4-6\n",
            encoding="utf-8",
        )
        settings = load_settings(path)

        assert settings.chunking.chunk_size == 500
        assert settings.generation.provider == "anthropic"
        assert settings.embedding.model == "text-embedding-3-small"

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("index:\n  index_dir: from/yaml\n", encoding="utf-8")
        monkeypatch.setenv("INDEX_DIR", "from/env")
        monkeypatch.setenv("LLM_PROVIDER", "openai")
        monkeypatch.setenv("LLM_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        settings = load_settings(path)

        assert settings.index.index_dir == "from/env"
        assert settings.generation.provider == "openai"
        assert settings.generation.model == "gpt-4o-mini"
        assert settings.openai_api_key == "sk-test"

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("chunking: [unterminated\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_invalid_value_raises(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EMBEDDING_PROVIDER", "cohere")
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "absent.yaml")


class TestCredentials:
    def test_ingestion_needs_only_embedding_key(self):
        Settings(openai_api_key="sk-test").require_ingestion_credentials()

    def test_query_names_the_missing_variable(self):
        settings = Settings(openai_api_key="sk-test")
        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            settings.require_query_credentials()

    def test_missing_embedding_key(self):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            Settings().require_ingestion_credentials()

    def test_query_credentials_satisfied(self):
        Settings(openai_api_key="sk", openrouter_api_key="or").require_query_credentials()
