"""
Ingestion Pipeline
-------------------
Extract -> chunk -> embed -> upsert, one document and one chunk at a time.

Failure isolation:
  - an unreadable or near-empty document is skipped, the batch continues
  - a chunk whose embedding or upsert fails is counted as failed, the
    document continues
  - nothing is thrown: the run ends with IngestionStats

When `persist` is given it is called after every document that indexed
at least one chunk, so an unexpected crash loses at most the document in
flight.

Rate limiting is a fixed delay after every embed/upsert pair, and a
longer one after a failure.  A failed chunk is not retried; only the
work after it is throttled harder.
"""
from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

from loguru import logger

from archive_rag.chunking.chunker import TextChunker
from archive_rag.chunking.schemas import Chunk
from archive_rag.embedding.embedder import Embedder
from archive_rag.embedding.vector_store import VectorStore
from archive_rag.errors import EmbeddingError, VectorStoreError
from archive_rag.extraction.extractor import TextExtractor
from archive_rag.schemas import IndexedRecord, IngestionStats, SourceDocument

MIN_DOCUMENT_CHARS = 100
MIN_CHUNK_CHARS = 10
REQUEST_DELAY_S = 0.2
ERROR_DELAY_S = 1.0

ProgressCallback = Callable[[SourceDocument, int, int], None]


class IngestionPipeline:
    """
    Composes extractor, chunker, embedder and vector store.

    All collaborators are injected; see build_ingestion_pipeline() for the
    production wiring.  `sleep` is injectable so tests run without delays.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedder: Embedder,
        store: VectorStore,
        min_document_chars: int = MIN_DOCUMENT_CHARS,
        min_chunk_chars: int = MIN_CHUNK_CHARS,
        request_delay_s: float = REQUEST_DELAY_S,
        error_delay_s: float = ERROR_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
        persist: Optional[Callable[[], None]] = None,
    ) -> None:
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.min_document_chars = min_document_chars
        self.min_chunk_chars = min_chunk_chars
        self.request_delay_s = request_delay_s
        self.error_delay_s = error_delay_s
        self._sleep = sleep
        self._persist = persist

    def ingest(
        self,
        documents: Sequence[SourceDocument],
        on_document_done: Optional[ProgressCallback] = None,
    ) -> IngestionStats:
        """
        Ingest every document in order.

        Args:
            documents:        Documents on local disk.
            on_document_done: Called as (document, processed, failed) after
                              each document, for progress display.

        Returns:
            IngestionStats with processed / failed / skipped counts.
        """
        stats = IngestionStats()
        logger.info(f"[Ingestion] Starting: {len(documents)} document(s)")

        for document in documents:
            stats.documents_seen += 1
            processed, failed = self._ingest_document(document, stats)
            if processed and self._persist is not None:
                self._persist()
            if on_document_done is not None:
                on_document_done(document, processed, failed)

        logger.info(
            f"[Ingestion] Complete | processed={stats.processed_chunks} "
            f"failed={stats.failed_chunks} skipped={stats.skipped_chunks} | "
            f"documents={stats.documents_seen} (skipped {stats.documents_skipped})"
        )
        return stats

    # --- Per document ---------------------------------------------------------

    def _ingest_document(self, document: SourceDocument, stats: IngestionStats) -> tuple[int, int]:
        try:
            data = document.read_bytes()
        except OSError as exc:
            logger.error(f"[Ingestion] Cannot read {document.path}: {exc} - skipping")
            stats.documents_skipped += 1
            return 0, 0

        text = self.extractor.extract(data, name=document.name, source=document.url)
        if len(text.strip()) < self.min_document_chars:
            logger.warning(
                f"[Ingestion] {document.name}: only {len(text.strip())} chars of text - skipping"
            )
            stats.documents_skipped += 1
            return 0, 0

        chunks = self.chunker.chunk_document(document.name, text, url=document.url)
        logger.info(f"[Ingestion] {document.name}: {len(chunks)} chunk(s)")

        processed = failed = 0
        for chunk in chunks:
            if len(chunk.text.strip()) < self.min_chunk_chars:
                stats.skipped_chunks += 1
                continue

            if self._ingest_chunk(chunk):
                processed += 1
                logger.debug(
                    f"[Ingestion] Processed chunk {chunk.chunk_index + 1}/{len(chunks)} "
                    f"from {document.name}"
                )
                self._sleep(self.request_delay_s)
            else:
                failed += 1
                self._sleep(self.error_delay_s)

        stats.processed_chunks += processed
        stats.failed_chunks += failed
        stats.chunks_by_document[document.name] = processed
        if failed:
            stats.failures_by_document[document.name] = failed
        logger.info(f"[Ingestion] {document.name}: {processed} processed, {failed} failed")
        return processed, failed

    # --- Per chunk ------------------------------------------------------------

    def _ingest_chunk(self, chunk: Chunk) -> bool:
        """Embed and upsert one chunk.  Returns False (never raises) on failure."""
        try:
            vector = self.embedder.embed_text(chunk.text)
        except EmbeddingError as exc:
            logger.error(f"[Ingestion] Embedding failed for {chunk.chunk_id}: {exc.message}")
            return False

        record = IndexedRecord(
            id=chunk.chunk_id,
            values=[float(v) for v in vector],
            metadata=chunk.to_metadata(),
        )
        try:
            self.store.upsert([record])
        except VectorStoreError as exc:
            logger.error(f"[Ingestion] Upsert failed for {chunk.chunk_id}: {exc.message}")
            return False
        return True


def build_ingestion_pipeline(
    settings,
    embedder: Embedder,
    store: VectorStore,
    persist: Optional[Callable[[], None]] = None,
) -> IngestionPipeline:
    """Wire an IngestionPipeline from Settings and already-built clients."""
    return IngestionPipeline(
        extractor=TextExtractor(min_text_chars=settings.ingestion.min_text_chars),
        chunker=TextChunker.from_settings(settings.chunking),
        embedder=embedder,
        store=store,
        min_document_chars=settings.ingestion.min_document_chars,
        min_chunk_chars=settings.chunking.min_chunk_chars,
        request_delay_s=settings.ingestion.request_delay_s,
        error_delay_s=settings.ingestion.error_delay_s,
        persist=persist,
    )
