"""CLI entry point for ingesting and searching documents.

Usage:
    # Ingest a plain-text file into the persistent Chroma store
    docquery ingest notes.txt --scope session-1 --store-dir data/vectorstore/chroma

    # Hybrid search, optionally restricted to one scope
    docquery search "boot partition size" --top-k 5 --scope session-1

    # List documents / show index statistics
    docquery documents --scope session-1
    docquery stats
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from pathlib import Path

import typer

from ..config import RetrievalSettings
from ..errors import IngestFailed, RetrievalError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = typer.Typer(help="Hybrid BM25 + embedding document retrieval", invoke_without_command=True)

_STORE_DIR_HELP = "ChromaDB persistence directory (defaults to CHROMA_PERSIST_DIR or data/vectorstore/chroma)."


def _build(store_dir: Path | None, **overrides):
    """Build (orchestrator, settings) from the environment plus CLI overrides."""
    from .orchestrator import RetrievalOrchestrator

    settings = RetrievalSettings.from_env()
    chroma_dir = str(store_dir) if store_dir else settings.chroma_dir or "data/vectorstore/chroma"
    settings = dataclasses.replace(settings, chroma_dir=chroma_dir, **overrides)
    return RetrievalOrchestrator.from_settings(settings), settings


def _build_or_exit(store_dir: Path | None, **overrides):
    """Like :func:`_build`, but configuration errors end the command with exit code 2."""
    try:
        return _build(store_dir, **overrides)
    except RetrievalError as exc:
        typer.echo(typer.style(f"Configuration error: {exc}", fg=typer.colors.RED), err=True)
        raise typer.Exit(2) from exc


@app.command()
def ingest(
    path: Path = typer.Argument(..., help="UTF-8 plain-text file to ingest.", exists=True, dir_okay=False),
    document_id: str | None = typer.Option(None, "--document-id", "-d", help="Defaults to a new UUID."),
    scope: str | None = typer.Option(None, "--scope", "-s", help="Scope key stored with every chunk."),
    window: int | None = typer.Option(None, help="Words per chunk."),
    overlap: int | None = typer.Option(None, help="Words shared by consecutive chunks."),
    store_dir: Path | None = typer.Option(None, "--store-dir", help=_STORE_DIR_HELP),
) -> None:
    """Chunk, embed and index one text file."""
    overrides = {}
    if window is not None:
        overrides["window_size"] = window
    if overlap is not None:
        overrides["overlap"] = overlap

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        typer.echo(typer.style(f"[ERROR] {path} is not UTF-8 text: {exc}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from exc

    orchestrator, settings = _build_or_exit(store_dir, **overrides)

    document_id = document_id or str(uuid.uuid4())
    metadata = {"filename": path.name}
    if scope is not None:
        metadata[settings.scope_field] = scope

    try:
        chunk_ids = orchestrator.ingest(document_id, text, metadata)
    except IngestFailed as exc:
        typer.echo(typer.style(f"[ERROR] {exc}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from exc

    typer.echo(f"Document: {document_id}")
    typer.echo(f"  chunks indexed: {len(chunk_ids)}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query."),
    top_k: int = typer.Option(5, "--top-k", "-k", help="Number of results to return."),
    scope: str | None = typer.Option(None, "--scope", "-s", help="Only return chunks in this scope."),
    store_dir: Path | None = typer.Option(None, "--store-dir", help=_STORE_DIR_HELP),
) -> None:
    """Run a hybrid search against the indexed documents."""
    orchestrator, _ = _build_or_exit(store_dir)

    typer.echo(f"\nQuery: {query}")
    try:
        results = orchestrator.query(query, top_k=top_k, scope=scope)
    except RetrievalError as exc:
        typer.echo(typer.style(f"[ERROR] {exc}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from exc

    if not results:
        typer.echo(typer.style("No results found.", fg=typer.colors.RED))
        return

    for i, res in enumerate(results, 1):
        vector = f"{res.vector_score:.4f}" if res.vector_score is not None else "n/a"
        typer.echo(
            f"\n[{i}] "
            + typer.style(f"Score: {res.combined_score:.4f}", fg=typer.colors.CYAN)
            + typer.style(f"  (bm25={res.lexical_score:.4f} cosine={vector})", fg=typer.colors.BRIGHT_BLACK)
        )
        typer.echo(
            typer.style(
                f"Document: {res.document_id} | chunk {res.sequence_index}", fg=typer.colors.YELLOW
            )
        )
        text = res.text
        if len(text) > 800:
            text = text[:800] + "..."
        typer.echo("-" * 40)
        typer.echo(text)
        typer.echo("-" * 40)


@app.command()
def documents(
    scope: str | None = typer.Option(None, "--scope", "-s", help="Only list documents in this scope."),
    store_dir: Path | None = typer.Option(None, "--store-dir", help=_STORE_DIR_HELP),
) -> None:
    """List ingested documents."""
    orchestrator, _ = _build_or_exit(store_dir)
    docs = orchestrator.list_documents(scope)
    if not docs:
        typer.echo("No documents.")
        return
    for doc in docs:
        name = doc["metadata"].get("filename", "")
        typer.echo(f"{doc['document_id']}  {doc['chunks']:>5} chunks  {name}")


@app.command()
def stats(
    store_dir: Path | None = typer.Option(None, "--store-dir", help=_STORE_DIR_HELP),
) -> None:
    """Display index statistics."""
    orchestrator, _ = _build_or_exit(store_dir)
    for key, val in orchestrator.stats().items():
        typer.echo(f"  {key:20s}: {val}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
