"""
Query Pipeline
---------------
Orchestrates a single question:

    user query
        |
        v
    validate (non-empty)              -> InvalidInputError
        |
        v
    Embedder.embed_query              -> EmbeddingError
        |
        v
    VectorStore.query (top_k=5)       -> SearchError
        |               \\
        |                no matches -> canned "not enough information" answer
        v
    build_context ([1]..[K] in rank order)
        |
        v
    Generator.generate                -> GenerationError
        |
        v
    Answer (text verbatim + ranked sources)

Each stage fails with its own error type and nothing is retried within
a query.  The pipeline holds no per-request state, so concurrent requests
can share one instance.
"""
from __future__ import annotations

import time
from typing import Optional

from langsmith import traceable
from loguru import logger

from archive_rag.embedding.embedder import Embedder
from archive_rag.embedding.vector_store import VectorStore
from archive_rag.errors import InvalidInputError
from archive_rag.generation.generator import build_context
from archive_rag.generation.prompts import DEFAULT_COLLECTION, NO_CONTEXT_RESPONSE
from archive_rag.schemas import Answer

TOP_K = 5


class QueryPipeline:
    """
    End-to-end question answering over the vector index.

    Usage:
        pipeline = QueryPipeline(embedder, store, generator)
        result = pipeline.answer("Who chaired the Warren Commission?")
        print(result.answer)
        for src in result.sources:
            print(src.index, src.document, src.score)
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        generator,
        top_k: int = TOP_K,
        collection: str = DEFAULT_COLLECTION,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.generator = generator
        self.top_k = top_k
        self.collection = collection

    @traceable(name="answer_question", run_type="chain")
    def answer(self, query: Optional[str]) -> Answer:
        """
        Answer `query` from the indexed documents.

        Raises:
            InvalidInputError: query is missing or blank.
            EmbeddingError / SearchError / GenerationError: the failing stage.
        """
        if query is None or not query.strip():
            raise InvalidInputError("Query is required")
        query = query.strip()
        logger.info(f"[QueryPipeline] Query: {query[:100]!r}")

        t0 = time.perf_counter()
        query_vec = self.embedder.embed_query(query)
        matches = self.store.query(query_vec, top_k=self.top_k, include_metadata=True)
        retrieval_ms = (time.perf_counter() - t0) * 1000

        if not matches:
            logger.info("[QueryPipeline] No matches - returning canned answer")
            return Answer(answer=NO_CONTEXT_RESPONSE.format(collection=self.collection), sources=[])

        logger.debug(
            f"[QueryPipeline] {len(matches)} matches | top score {matches[0].score:.4f} | "
            f"{retrieval_ms:.0f}ms"
        )
        context, sources = build_context(matches)

        t1 = time.perf_counter()
        response = self.generator.generate(query, context)
        generation_ms = (time.perf_counter() - t1) * 1000

        logger.info(
            f"[QueryPipeline] Complete | retrieve={retrieval_ms:.0f}ms "
            f"generate={generation_ms:.0f}ms | tokens={response.total_tokens}"
        )
        return Answer(answer=response.answer, sources=sources)


def build_query_pipeline(settings) -> QueryPipeline:
    """
    Wire a QueryPipeline from Settings: one embedder, one store, one
    generator per process.  Raises ConfigurationError on missing keys.
    """
    from archive_rag.embedding.embedder import build_embedder
    from archive_rag.embedding.faiss_index import FAISSVectorStore
    from archive_rag.generation.generator import build_generator

    settings.require_query_credentials()
    store = FAISSVectorStore.load_or_create(
        settings.index.index_dir, dimensions=settings.embedding.dimensions
    )
    return QueryPipeline(
        embedder=build_embedder(settings),
        store=store,
        generator=build_generator(settings),
        top_k=settings.generation.top_k,
        collection=settings.generation.collection,
    )
