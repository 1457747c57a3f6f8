"""
Command-line interface for docrag.

Commands:
    serve          - Start the FastAPI server
    init-db        - Create database tables and check the embedding provider
    create-project - Create a project
    add-document   - Register a stored file with a project
    ingest         - Parse and chunk a project's documents
    embed          - Embed a project's pending chunks
    search         - Retrieve relevant passages for a query
    version        - Show version information
"""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from docrag.config import settings
from docrag.exceptions import DocRAGError
from docrag.logging_setup import configure_logging

app = typer.Typer(
    name="docrag",
    help="Document chunking, embedding and retrieval for grounded reports",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level"),
) -> None:
    configure_logging(log_level.upper())


def _fail(error: DocRAGError) -> NoReturn:
    console.print(f"[red]{error.error_code}: {error}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(settings.api_host, help="Host to bind"),
    port: int = typer.Option(settings.api_port, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Start the FastAPI server."""
    import uvicorn

    console.print(f"[green]Starting docrag server on {host}:{port}[/green]")

    uvicorn.run(
        "docrag.api.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1,  # in-process embedding service and SQLite connection
    )


@app.command("init-db")
def init_db() -> None:
    """Create database tables and check the embedding provider."""
    from docrag.retrieval.resources import get_embedding_service, initialize_resources

    try:
        status = initialize_resources()
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    for name, ok in status.items():
        mark = "[green]✓[/green]" if ok else "[red]✗[/red]"
        console.print(f"  {mark} {name}")
    console.print(f"[dim]Embedding provider: {get_embedding_service().provider.name}[/dim]")


@app.command("create-project")
def create_project(
    name: str = typer.Argument(..., help="Project name"),
    description: Optional[str] = typer.Option(None, help="Project description"),
) -> None:
    """Create a project and print its id."""
    from docrag.db import crud
    from docrag.db.connection import session_scope
    from docrag.retrieval.resources import get_session_factory

    with session_scope(get_session_factory()) as session:
        project = crud.create_project(session, name, description)
        console.print(f"[green]Created project {project.name}[/green]")
        console.print(project.id)


@app.command("add-document")
def add_document(
    project_id: str = typer.Argument(..., help="Project id"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Stored file"),
    mime_type: Optional[str] = typer.Option(None, help="MIME type (guessed from extension)"),
) -> None:
    """Register a stored file as a document of a project."""
    from docrag.db import crud
    from docrag.db.connection import session_scope
    from docrag.retrieval.parser import guess_mime_type
    from docrag.retrieval.resources import get_session_factory

    try:
        with session_scope(get_session_factory()) as session:
            document = crud.create_document(
                session,
                project_id=project_id,
                name=path.name,
                mime_type=mime_type or guess_mime_type(path),
                storage_path=str(path.resolve()),
                size_bytes=path.stat().st_size,
            )
            console.print(f"[green]Registered {document.name} ({document.mime_type})[/green]")
            console.print(document.id)
    except DocRAGError as e:
        _fail(e)


@app.command()
def ingest(
    project_id: str = typer.Argument(..., help="Project id"),
    force: bool = typer.Option(False, "--force", "-f", help="Re-ingest processed documents"),
) -> None:
    """Parse and chunk a project's documents."""
    from docrag.retrieval.ingestion import ingest_project
    from docrag.retrieval.parser import TextDocumentParser
    from docrag.retrieval.resources import get_session_factory

    try:
        with console.status("[bold green]Chunking documents..."):
            report = ingest_project(
                get_session_factory(),
                project_id,
                TextDocumentParser(),
                chunk_size=settings.chunk_size,
                overlap=settings.chunk_overlap,
                force=force,
            )
    except DocRAGError as e:
        _fail(e)

    console.print(
        f"[green]Processed {report.processed_documents} documents, "
        f"{report.created_chunks} chunks[/green]"
    )
    if report.skipped_documents:
        console.print(f"[dim]Skipped {report.skipped_documents} already processed[/dim]")
    for document_id, message in report.errors.items():
        console.print(f"[red]  ✗ {document_id}: {message}[/red]")


@app.command()
def embed(
    project_id: str = typer.Argument(..., help="Project id"),
) -> None:
    """Embed every chunk of a project that has no embedding yet."""
    from docrag.retrieval.batch import embed_project
    from docrag.retrieval.resources import (
        build_file_mirror,
        get_embedding_service,
        get_session_factory,
    )
    from docrag.retrieval.store import EmbeddingStore

    try:
        with console.status("[bold green]Embedding chunks..."):
            report = embed_project(
                project_id,
                get_embedding_service(),
                EmbeddingStore(get_session_factory()),
                batch_size=settings.embedding_batch_size,
                delay_seconds=settings.embedding_batch_delay_seconds,
                mirror=build_file_mirror(settings),
            )
    except DocRAGError as e:
        _fail(e)

    table = Table(title=f"Embedding run ({report.status})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Pending at start", str(report.total_chunks))
    table.add_row("Processed", str(report.processed_chunks))
    table.add_row("Failed", str(report.error_chunks))
    table.add_row("Progress", f"{report.embedding_progress:.0%}")
    console.print(table)


@app.command()
def search(
    project_id: str = typer.Argument(..., help="Project id"),
    query: str = typer.Argument(..., help="Natural language query"),
    top_k: int = typer.Option(settings.retrieval_top_k, "--top-k", "-k", help="Maximum results"),
    min_similarity: float = typer.Option(
        settings.similarity_threshold, "--min-similarity", help="Similarity threshold"
    ),
    context: bool = typer.Option(False, "--context", help="Print the formatted context block"),
) -> None:
    """Retrieve the passages most relevant to a query."""
    from docrag.retrieval.resources import get_embedding_service, get_session_factory
    from docrag.retrieval.retriever import Retriever
    from docrag.retrieval.store import EmbeddingStore

    retriever = Retriever(
        get_embedding_service(),
        EmbeddingStore(get_session_factory()),
        settings.citation_snippet_length,
    )

    try:
        results = retriever.retrieve_relevant_chunks(project_id, query, top_k, min_similarity)
    except DocRAGError as e:
        _fail(e)

    if not results:
        console.print("[yellow]No chunks above the similarity threshold.[/yellow]")
        return

    table = Table(title=f"{len(results)} results")
    table.add_column("#", style="dim")
    table.add_column("Similarity", style="green")
    table.add_column("Source", style="cyan")
    table.add_column("Text")
    for rank, result in enumerate(results, 1):
        table.add_row(
            str(rank),
            f"{result.similarity:.3f}",
            f"{result.document_name}:{result.page}",
            retriever.snippet(result.text),
        )
    console.print(table)

    if context:
        console.print()
        console.print(retriever.format_retrieval_context(results))


@app.command()
def version() -> None:
    """Show version information."""
    from docrag import __version__

    console.print(f"docrag v{__version__}")


if __name__ == "__main__":
    app()
