"""
Core Pydantic schemas for the Archive RAG pipeline.

Documents flow fetcher -> extractor -> chunker -> embedder -> vector store;
queries flow embedder -> vector store -> generator.  Everything the two
paths exchange is defined here (Chunk lives in chunking/schemas.py).
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field


# --- Documents ----------------------------------------------------------------

class DocumentLink(BaseModel):
    """A downloadable document as found on a listing page or the backup list."""

    name: str                            # Target filename, e.g. "HSCA_Report.pdf"
    url: str


class SourceDocument(BaseModel):
    """
    A document available on local disk.

    `name` is the source identity: chunk ids and citation labels derive
    from it.  Bytes are read lazily so a large batch is never held in memory.
    """

    name: str
    path: Path
    url: Optional[str] = None

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


# --- Index --------------------------------------------------------------------

class IndexedRecord(BaseModel):
    """The durable unit stored in the vector index."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)   # text, source, chunk, url


class RetrievalMatch(BaseModel):
    """One similarity-search hit.  Ranked by descending score, never persisted."""

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.metadata.get("text", "")

    @property
    def source(self) -> str:
        return self.metadata.get("source") or "Unknown"


# --- Answers ------------------------------------------------------------------

class SourceRef(BaseModel):
    """A cited source.  `index` matches the [n] marker in the answer text."""

    index: int
    document: str
    score: float
    url: Optional[str] = None
    chunk_id: Optional[str] = None


class Answer(BaseModel):
    answer: str
    sources: list[SourceRef] = Field(default_factory=list)


# --- Ingestion ----------------------------------------------------------------

class IngestionStats(BaseModel):
    """Counts reported at the end of an ingestion run.  Failures are counted, not raised."""

    documents_seen: int = 0
    documents_skipped: int = 0
    processed_chunks: int = 0
    failed_chunks: int = 0
    skipped_chunks: int = 0
    chunks_by_document: dict[str, int] = Field(default_factory=dict)
    failures_by_document: dict[str, int] = Field(default_factory=dict)
