"""
Error taxonomy for the Archive RAG pipeline.

Every error carries a short `category` so log lines and HTTP error
payloads can say which stage failed without leaking a stack trace.

Recovery policy by stage:
  - ConfigurationError : fatal at startup
  - DownloadError      : skip the document, try the backup list
  - ExtractionError    : degraded to a metadata stub by the extractor
  - EmbeddingError     : skip the chunk (ingestion) / fail the query
  - UpsertError        : skip the chunk
  - SearchError        : fail the query
  - GenerationError    : fail the query
"""
from __future__ import annotations

from typing import Optional


class ArchiveRAGError(Exception):
    """Base class for every error raised by the pipeline."""

    category = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ArchiveRAGError):
    category = "configuration"


class InvalidInputError(ArchiveRAGError):
    category = "invalid_input"


class DownloadError(ArchiveRAGError):
    category = "download"

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractionError(ArchiveRAGError):
    category = "extraction"


class EmbeddingError(ArchiveRAGError):
    category = "embedding"


class VectorStoreError(ArchiveRAGError):
    category = "vector_store"


class UpsertError(VectorStoreError):
    category = "upsert"


class SearchError(VectorStoreError):
    category = "search"


class GenerationError(ArchiveRAGError):
    category = "generation"
