"""Command line interface for VaultFinder."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from vaultfinder.config import AppConfig
from vaultfinder.errors import ConfigurationError, EmbeddingUnavailableError
from vaultfinder.index.storage import SQLiteVectorStore
from vaultfinder.ingestion.corpus import DirectoryCorpus
from vaultfinder.models import SearchOptions, SearchResult
from vaultfinder.service import SearchOrchestrator, build_orchestrator

console = Console()
app = typer.Typer(help="VaultFinder - local semantic search for a notes vault")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _make_config(db: Optional[Path], **overrides) -> AppConfig:
    try:
        return AppConfig(db_path=db if db is not None else AppConfig().db_path, **overrides)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _open_service(config: AppConfig, vault: Optional[Path] = None) -> SearchOrchestrator:
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)
    corpus = DirectoryCorpus(vault) if vault is not None else None
    return build_orchestrator(config, corpus, store=SQLiteVectorStore(resolved_db))


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result in results:
        snippet = result.content.replace("\n", " ")
        chunk = "-" if result.chunk_index is None else str(result.chunk_index)
        table.add_row(f"{result.score:.4f}", result.document_id, chunk, snippet[:180])

    console.print(table)


@app.command()
def index(
    vault: Path = typer.Argument(
        ..., help="Vault directory with markdown and PDF files.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    force: bool = typer.Option(False, "--force", help="Clear the index and rebuild it"),
    provider: str = typer.Option(
        AppConfig().embedding_provider, help="Embedding provider: ollama, openai or local"
    ),
    model: Optional[str] = typer.Option(None, help="Embedding model for the chosen provider"),
    strategy: str = typer.Option(AppConfig().chunk_strategy, help="Chunking: heading, fixed or smart"),
    chunk_size: int = typer.Option(AppConfig().chunk_size, help="Chunk size in estimated tokens"),
    overlap: int = typer.Option(AppConfig().chunk_overlap, help="Chunk overlap in estimated tokens"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index every note of a vault directory."""
    _setup_logging(verbose)
    if not vault.is_dir():
        raise typer.BadParameter(f"Vault directory not found: {vault}")

    overrides = {
        "embedding_provider": provider,
        "chunk_strategy": strategy,
        "chunk_size": chunk_size,
        "chunk_overlap": overlap,
    }
    if model:
        overrides[{"openai": "openai_model", "local": "local_model"}.get(provider, "ollama_model")] = model
    config = _make_config(db, **overrides)
    service = _open_service(config, vault)

    console.print(f"Indexing [bold]{vault}[/bold] into [bold]{config.resolve_db_path(Path.cwd())}[/bold]...")
    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Indexing", total=None)

            def on_progress(current: int, total: int, document_id: str) -> None:
                progress.update(task, completed=current, total=total, description=document_id[-40:])

            stats = service.reindex(force=force, on_progress=on_progress)
    except EmbeddingUnavailableError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        service.close()

    console.print(f"Documents: {stats.documents}, chunks: {stats.chunks}, failed: {len(stats.failed)}")
    for document_id in stats.failed:
        console.print(f"[yellow]Failed:[/yellow] {document_id}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    folder: Optional[str] = typer.Option(None, help="Only search documents below this folder"),
    threshold: Optional[float] = typer.Option(None, help="Minimum similarity score"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search."""
    _setup_logging(verbose)
    config = _make_config(db)
    if not config.resolve_db_path(Path.cwd()).exists():
        raise typer.BadParameter(f"Database not found: {config.resolve_db_path(Path.cwd())}")

    service = _open_service(config)
    try:
        results = service.search(
            query, SearchOptions(top_k=top_k, folder=folder, similarity_threshold=threshold)
        )
    finally:
        service.close()
    _print_results(results)


@app.command()
def context(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of chunks to include"),
) -> None:
    """Print the context block a chat prompt would receive for QUERY."""
    service = _open_service(_make_config(db))
    try:
        block = service.get_context_for_query(query, SearchOptions(top_k=top_k))
    finally:
        service.close()
    if not block:
        console.print("[yellow]No relevant context found.[/yellow]")
        return
    console.print(block, markup=False, highlight=False)


@app.command()
def related(
    note: Path = typer.Argument(..., help="Note whose related notes to list", exists=True, dir_okay=False),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
) -> None:
    """List notes related to the content of NOTE."""
    content = note.read_text(encoding="utf-8", errors="replace")
    service = _open_service(_make_config(db))
    try:
        results = service.find_related(content, top_k)
    finally:
        service.close()
    _print_results(results)


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show index statistics."""
    resolved_db = _make_config(db).resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing indexed yet.[/yellow]")
        return

    store = SQLiteVectorStore(resolved_db)
    try:
        index_stats = store.get_stats()
    finally:
        store.close()

    updated = (
        datetime.fromtimestamp(index_stats.last_updated).isoformat(sep=" ", timespec="seconds")
        if index_stats.last_updated
        else "never"
    )
    console.print(f"Documents: {index_stats.documents}")
    console.print(f"Chunks: {index_stats.chunks}")
    console.print(f"Last updated: {updated}")


@app.command()
def clear(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove every indexed chunk."""
    resolved_db = _make_config(db).resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to clear.[/yellow]")
        return
    if not yes and not typer.confirm(f"Clear the index at {resolved_db}?"):
        raise typer.Abort()

    store = SQLiteVectorStore(resolved_db)
    try:
        store.clear()
    finally:
        store.close()
    console.print("Index cleared.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    vault: Optional[Path] = typer.Option(None, help="Vault directory to index from the API", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional extra
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from vaultfinder.web.app import app as web_app, configure_service

    config = _make_config(db)
    configure_service(_open_service(config, vault))

    console.print(
        f"Starting web API on http://{host}:{port} (database: {config.resolve_db_path(Path.cwd())})"
    )
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
