"""
Pipeline configuration.

Settings are read from config/config.yaml (all sections optional) and then
overridden by environment variables.  API keys only ever come from the
environment, which python-dotenv populates from .env.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

from archive_rag.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/config.yaml"

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


# --- Sections -----------------------------------------------------------------

class BackupDocument(BaseModel):
    name: str
    url: str


class SourceSettings(BaseModel):
    """Where documents come from and where they land on disk."""

    listing_url: str = "https://www.archives.gov/research/jfk/release-2025"
    link_suffix: str = ".pdf"
    path_prefix: str = "/files/research/jfk/"
    max_documents: int = 10
    scrape_listing: bool = True
    documents_dir: str = "documents"
    max_redirects: int = 5
    timeout_s: float = 60.0
    backup_documents: list[BackupDocument] = Field(
        default_factory=lambda: [
            BackupDocument(
                name="Warren_Commission_Report.pdf",
                url="https://www.archives.gov/files/research/jfk/warren-commission-report/report.pdf",
            ),
            BackupDocument(
                name="HSCA_Report.pdf",
                url="https://www.archives.gov/files/research/jfk/hsca/report/hsca-report.pdf",
            ),
            BackupDocument(
                name="Church_Committee_Report.pdf",
                url="https://www.archives.gov/files/research/jfk/releases/docid-32423624.pdf",
            ),
        ]
    )


class ChunkingSettings(BaseModel):
    chunk_size: int = 1000
    chunk_overlap: int = 200
    sentence_lookback: int = 100    # how far back to look for a sentence end
    break_lookback: int = 20        # how far back to look for a space / newline
    min_chunk_chars: int = 10


class EmbeddingSettings(BaseModel):
    provider: Literal["openai", "openrouter"] = "openai"
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    max_input_tokens: int = 8191


class IndexSettings(BaseModel):
    index_dir: str = "data/index"


class IngestionSettings(BaseModel):
    min_document_chars: int = 100
    min_text_chars: int = 100       # below this the extractor emits a metadata stub
    request_delay_s: float = 0.2
    error_delay_s: float = 1.0


class GenerationSettings(BaseModel):
    provider: Literal["openrouter", "openai", "anthropic"] = "openrouter"
    model: str = "anthropic/claude-3-sonnet"
    max_tokens: int = 1024
    temperature: float = 0.1
    top_k: int = 5
    collection: str = "JFK Archives"   # named in prompts and the no-context answer


class RetrySettings(BaseModel):
    """Attempts per remote call site.  1 means no retry."""

    download_attempts: int = 3
    embedding_attempts: int = 1
    generation_attempts: int = 1
    initial_wait_s: float = 2.0
    max_wait_s: float = 30.0


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: Optional[str] = "logs/pipeline.log"
    structured: bool = False        # JSON lines in the file sink


# --- Root ---------------------------------------------------------------------

class Settings(BaseModel):
    project_name: str = "JFK Archives RAG"
    source: SourceSettings = Field(default_factory=SourceSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Secrets - environment only
    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(provider)

    def require_ingestion_credentials(self) -> None:
        """Ingestion only needs the embedding provider."""
        self._require(self.embedding.provider, "embeddings")

    def require_query_credentials(self) -> None:
        """Queries need both the embedding and the generation provider."""
        self._require(self.embedding.provider, "embeddings")
        self._require(self.generation.provider, "generation")

    def _require(self, provider: str, purpose: str) -> None:
        if not self.api_key_for(provider):
            env_var = f"{provider.upper()}_API_KEY"
            raise ConfigurationError(
                f"{env_var} environment variable is required ({purpose} provider '{provider}')"
            )


_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "EMBEDDING_PROVIDER": ("embedding", "provider"),
    "EMBEDDING_MODEL": ("embedding", "model"),
    "LLM_PROVIDER": ("generation", "provider"),
    "LLM_MODEL": ("generation", "model"),
    "INDEX_DIR": ("index", "index_dir"),
    "DOCUMENTS_DIR": ("source", "documents_dir"),
    "LOG_LEVEL": ("logging", "level"),
}


def load_settings(path: str | Path = DEFAULT_CONFIG_PATH) -> Settings:
    """
    Build Settings from YAML + environment.

    A missing YAML file is not an error: every field has a default.
    Invalid YAML or values that fail validation raise ConfigurationError.
    """
    load_dotenv()

    raw: dict = {}
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
    else:
        logger.debug(f"[Config] {config_path} not found, using defaults")

    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            raw.setdefault(section, {})[key] = value

    raw["openai_api_key"] = os.getenv("OPENAI_API_KEY")
    raw["openrouter_api_key"] = os.getenv("OPENROUTER_API_KEY")
    raw["anthropic_api_key"] = os.getenv("ANTHROPIC_API_KEY")

    try:
        return Settings(**raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
