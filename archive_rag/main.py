"""
Archive RAG - CLI Entry Point
------------------------------
Typer commands for the ingestion and query paths.

Usage:
    python -m archive_rag.main ingest              # Download, chunk, embed, index
    python -m archive_rag.main query "..."         # Single-shot question
    python -m archive_rag.main query "..." --json  # Answer as JSON
    python -m archive_rag.main status              # Show index manifest

Exit codes:
    0  Success (ingestion exits 0 even when individual chunks failed)
    1  Unrecoverable setup failure (missing credentials, bad config)
"""
from __future__ import annotations

import sys

# Windows cp1252 terminal fix: PDF text routinely contains characters the
# Rich console cannot encode otherwise.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import asyncio
import json
from pathlib import Path

import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from archive_rag.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from archive_rag.errors import ArchiveRAGError, ConfigurationError
from archive_rag.schemas import Answer, IngestionStats
from archive_rag.utils.helpers import load_json
from archive_rag.utils.logger import setup_logger

app = typer.Typer(
    name="archive-rag",
    help="Archive RAG - PDF ingestion and grounded question answering",
    add_completion=False,
)
console = Console()


# --- Helpers ------------------------------------------------------------------

def _settings_or_exit(config: str) -> Settings:
    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)
    setup_logger(settings.logging.level, settings.logging.file, settings.logging.structured)
    return settings


# --- Commands -----------------------------------------------------------------

@app.command()
def ingest(
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to pipeline config YAML"
    ),
) -> None:
    """
    Download documents and index them.

    \b
    Steps:
      1. Discover documents (listing page, else backup list)
      2. Download missing files into the documents directory
      3. Extract text, chunk, embed, upsert into the FAISS index
      4. Save the index
    """
    settings = _settings_or_exit(config)
    try:
        settings.require_ingestion_credentials()
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)

    from archive_rag.collection.fetcher import DocumentFetcher
    from archive_rag.embedding.embedder import build_embedder
    from archive_rag.embedding.faiss_index import FAISSVectorStore
    from archive_rag.ingestion.pipeline import build_ingestion_pipeline
    from archive_rag.utils.retry import RetryPolicy

    console.print()
    console.print(
        Panel(
            f"[bold cyan]{settings.project_name}[/bold cyan]\n"
            "[white]Ingestion - Download, Chunk, Embed, Index[/white]",
            box=box.DOUBLE_EDGE,
            expand=False,
        )
    )

    # -- Step 1: Documents -----------------------------------------------------
    console.print("\n[bold cyan]Step 1 / 3 - Collecting documents[/bold cyan]")
    fetcher = DocumentFetcher(
        settings.source,
        retry_policy=RetryPolicy(
            max_attempts=settings.retry.download_attempts,
            initial_wait_s=settings.retry.initial_wait_s,
            max_wait_s=settings.retry.max_wait_s,
        ),
    )
    documents = asyncio.run(fetcher.collect())
    if not documents:
        console.print(
            f"[yellow]No PDF files found in {settings.source.documents_dir}. Nothing to ingest.[/yellow]"
        )
        return
    console.print(f"[green][OK] {len(documents)} document(s) ready[/green]")

    # -- Step 2: Index ---------------------------------------------------------
    console.print("\n[bold cyan]Step 2 / 3 - Chunking, embedding, upserting[/bold cyan]")
    try:
        store = FAISSVectorStore.load_or_create(
            settings.index.index_dir, dimensions=settings.embedding.dimensions
        )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)
    embedder = build_embedder(settings)
    pipeline = build_ingestion_pipeline(settings, embedder, store, persist=store.save)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Ingesting documents...[/cyan]", total=len(documents))

            def _advance(document, processed: int, failed: int) -> None:
                progress.update(task, description=f"[cyan]{document.name}[/cyan] {processed} ok / {failed} failed")
                progress.advance(task)

            stats = pipeline.ingest(documents, on_document_done=_advance)
    finally:
        # -- Step 3: Save ------------------------------------------------------
        console.print("\n[bold cyan]Step 3 / 3 - Saving index[/bold cyan]")
        store.save()
    _print_ingestion_summary(stats, store.count(), embedder.usage_summary())


def _print_ingestion_summary(stats: IngestionStats, vectors: int, usage: dict) -> None:
    table = Table("Document", "Chunks", "Failed", box=box.SIMPLE, header_style="bold dim")
    for name, count in sorted(stats.chunks_by_document.items()):
        table.add_row(name, str(count), str(stats.failures_by_document.get(name, 0)))
    console.print(table)

    border = "green" if stats.failed_chunks == 0 else "yellow"
    console.print(
        Panel(
            "[bold green]Ingestion Complete[/bold green]\n\n"
            f"  Documents   : {stats.documents_seen:,} ({stats.documents_skipped} skipped)\n"
            f"  Processed   : {stats.processed_chunks:,} chunks\n"
            f"  Failed      : {stats.failed_chunks:,} chunks\n"
            f"  Index size  : {vectors:,} vectors\n"
            f"  Tokens used : {usage['total_tokens_used']:,}\n"
            f"  Cost        : ${usage['estimated_cost_usd']:.4f} USD",
            box=box.DOUBLE_EDGE,
            border_style=border,
            expand=False,
        )
    )
    logger.info(
        f"Document ingestion completed. Processed {stats.processed_chunks} chunks "
        f"from {stats.documents_seen} files ({stats.failed_chunks} failed)."
    )


@app.command()
def query(
    question: str = typer.Argument(..., help="Question to answer"),
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to pipeline config YAML"
    ),
    json_out: bool = typer.Option(False, "--json", help="Print the answer as JSON"),
) -> None:
    """Answer a single question from the indexed documents."""
    settings = _settings_or_exit(config)

    from archive_rag.serving.pipeline import build_query_pipeline

    try:
        pipeline = build_query_pipeline(settings)
        with console.status("[cyan]Thinking...[/cyan]"):
            answer = pipeline.answer(question)
    except ArchiveRAGError as exc:
        console.print(f"[red]{exc.category} error:[/red] {exc.message}")
        raise typer.Exit(1)

    if json_out:
        console.print_json(json.dumps(answer.model_dump(mode="json")))
    else:
        _print_answer(answer)


def _print_answer(answer: Answer) -> None:
    console.print()
    console.print(
        Panel(
            Markdown(answer.answer),
            title="[bold green]Answer[/bold green]",
            border_style="green",
            expand=True,
        )
    )
    if answer.sources:
        table = Table("No.", "Document", "Score", "URL", box=box.SIMPLE, header_style="bold dim")
        for src in answer.sources:
            table.add_row(str(src.index), src.document, f"{src.score:.3f}", src.url or "")
        console.print(table)


@app.command()
def status(
    config: str = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to pipeline config YAML"
    ),
) -> None:
    """Show the persisted index manifest."""
    settings = _settings_or_exit(config)
    manifest_path = Path(settings.index.index_dir) / "index_manifest.json"
    if not manifest_path.exists():
        console.print(
            "[yellow]No index found. Run: python -m archive_rag.main ingest[/yellow]"
        )
        raise typer.Exit(1)

    manifest = load_json(manifest_path)
    console.print()
    console.print("[bold]Index[/bold]")
    console.print(f"  Location   : {settings.index.index_dir}")
    console.print(f"  Vectors    : [green]{manifest.get('total_vectors')}[/green]")
    console.print(f"  Dimensions : {manifest.get('dimensions')}")
    console.print("  Sources    :")
    for source in manifest.get("sources", []):
        console.print(f"    - {source}")


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
