"""
Archive RAG - Web API Server
-----------------------------
FastAPI server that wraps the QueryPipeline.

Endpoints:
  GET  /api/health    -> index size and configured models
  POST /api/query     -> answer a question with cited sources

Run from the project root:
    uvicorn app.server:app --reload --port 8000

The pipeline loads the index directory relative to CWD, so start the server
from the directory that holds config/ and data/.
"""
from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

# Windows cp1252 terminal fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from archive_rag.config import load_settings
from archive_rag.errors import ArchiveRAGError, InvalidInputError
from archive_rag.schemas import Answer

# ---------------------------------------------------------------------------
# Pipeline singleton
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging at startup; the pipeline itself is built on first use."""
    from archive_rag.utils.logger import setup_logger

    settings = load_settings()
    app.state.settings = settings
    setup_logger(settings.logging.level, settings.logging.file, settings.logging.structured)
    logger.info(f"[Server] {settings.project_name} API starting")
    yield
    app.state.pipeline = None
    logger.info("[Server] Pipeline unloaded.")


app = FastAPI(
    title="Archive RAG API",
    description="Retrieval-Augmented Generation over archival PDF collections",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.settings = None
app.state.pipeline = None
_pipeline_lock = asyncio.Lock()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _build_pipeline(app: FastAPI):
    from archive_rag.serving.pipeline import build_query_pipeline

    if app.state.settings is None:
        app.state.settings = load_settings()
    pipeline = build_query_pipeline(app.state.settings)
    logger.info(
        f"[Server] Pipeline ready | {pipeline.store.count():,} vectors | "
        f"model={getattr(pipeline.generator, 'model', '?')}"
    )
    return pipeline


async def get_pipeline(app: FastAPI):
    """
    Return the process-wide QueryPipeline, building it on first call.

    Raises ConfigurationError when credentials are missing; the error
    handler turns that into a 500 response.  Concurrent first requests
    wait on the lock and share one build.
    """
    if app.state.pipeline is None:
        async with _pipeline_lock:
            if app.state.pipeline is None:
                loop = asyncio.get_event_loop()
                app.state.pipeline = await loop.run_in_executor(None, partial(_build_pipeline, app))
    return app.state.pipeline


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------

class QueryRequest(BaseModel):
    query: Optional[str] = None


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Query is required"})


@app.exception_handler(ArchiveRAGError)
async def pipeline_error_handler(request: Request, exc: ArchiveRAGError):
    logger.error(f"[API] {exc.category} failure: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={"error": f"{exc.category} error: {exc.message}", "category": exc.category},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"[API] Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": f"internal error: {exc}", "category": "internal"},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health(request: Request):
    """Return index size and the configured models."""
    pipeline = await get_pipeline(request.app)
    return {
        "status": "ok",
        "vectors": pipeline.store.count(),
        "top_k": pipeline.top_k,
        "embedding_model": getattr(pipeline.embedder, "model", None),
        "generation_model": getattr(pipeline.generator, "model", None),
    }


@app.post("/api/query", response_model=Answer)
async def query(body: QueryRequest, request: Request):
    """
    Answer a question from the indexed documents.

    The blocking pipeline.answer() call runs in a thread-pool executor to
    avoid stalling the event loop.
    """
    if body.query is None or not body.query.strip():
        raise InvalidInputError("Query is required")

    logger.info(f"[API] Query | {body.query[:80]!r}")
    pipeline = await get_pipeline(request.app)

    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, partial(pipeline.answer, body.query))
