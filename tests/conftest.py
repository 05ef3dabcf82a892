"""
Shared test fixtures and in-memory fakes.

Provides: deterministic embedder, scripted vector store, recording generator,
a minimal PDF builder and a plain-text extractor for ingestion tests.
Nothing here touches the network or a real model API.
"""
from __future__ import annotations

import zlib
from typing import Callable, Optional

import numpy as np
import pytest

from archive_rag.errors import EmbeddingError
from archive_rag.generation.generator import RAGResponse
from archive_rag.schemas import RetrievalMatch

DIMS = 8


class FakeEmbedder:
    """Hash-seeded unit vectors: identical text -> identical vector."""

    def __init__(self, dimensions: int = DIMS, fail_when: Optional[Callable[[str], bool]] = None) -> None:
        self.dimensions = dimensions
        self.model = "fake-embedding"
        self.fail_when = fail_when
        self.calls: list[str] = []

    def embed_text(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if self.fail_when is not None and self.fail_when(text):
            raise EmbeddingError("simulated embedding outage")
        rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
        vector = rng.standard_normal(self.dimensions).astype(np.float32)
        return vector / np.linalg.norm(vector)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed_text(text)

    def usage_summary(self) -> dict:
        return {"total_tokens_used": 0, "estimated_cost_usd": 0.0}


class ScriptedStore:
    """Returns a fixed list of matches, or raises a fixed error."""

    def __init__(self, matches: Optional[list[RetrievalMatch]] = None, error: Optional[Exception] = None) -> None:
        self.matches = matches or []
        self.error = error
        self.queries: list[tuple[np.ndarray, int]] = []

    def upsert(self, records) -> None:
        raise NotImplementedError

    def query(self, vector, top_k: int = 5, include_metadata: bool = True) -> list[RetrievalMatch]:
        self.queries.append((vector, top_k))
        if self.error is not None:
            raise self.error
        return self.matches[:top_k]

    def count(self) -> int:
        return len(self.matches)


class RecordingGenerator:
    """Captures the (query, context) it was given."""

    def __init__(self, answer: str = "Lee Harvey Oswald [1].", error: Optional[Exception] = None) -> None:
        self.model = "fake-llm"
        self.answer = answer
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def generate(self, query: str, context: str) -> RAGResponse:
        self.calls.append((query, context))
        if self.error is not None:
            raise self.error
        return RAGResponse(answer=self.answer, model=self.model, prompt_tokens=12, completion_tokens=5)


class PlainTextExtractor:
    """Treats document bytes as UTF-8 text."""

    def extract(self, data: bytes, name: str = "document.pdf", source: Optional[str] = None) -> str:
        return data.decode("utf-8")


def build_pdf(text: str = "") -> bytes:
    """Single-page PDF with `text` drawn in Helvetica (no text layer when empty)."""
    content = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1") if text else b""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)


def make_match(record_id: str, score: float, source: str, chunk: int = 0, text: str = "", url: str = "") -> RetrievalMatch:
    metadata = {"text": text or f"text of {record_id}", "source": source, "chunk": chunk}
    if url:
        metadata["url"] = url
    return RetrievalMatch(id=record_id, score=score, metadata=metadata)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def no_sleep():
    """Injectable sleep that records the requested delays."""
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def ranked_matches():
    return [
        make_match("Warren_Report_chunk_4", 0.9, "Warren_Report.pdf", 4, url="https://example.org/warren.pdf"),
        make_match("HSCA_Report_chunk_1", 0.8, "HSCA_Report.pdf", 1),
        make_match("Church_Report_chunk_7", 0.7, "Church_Report.pdf", 7),
    ]
