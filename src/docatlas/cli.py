"""Command line interface for DocAtlas."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from docatlas.config import AppConfig
from docatlas.matching.analyzer import SearchPath
from docatlas.search.types import SearchOptions
from docatlas.services import Services, build_services
from docatlas.web.app import app as web_app


console = Console()
app = typer.Typer(help="DocAtlas - metadata search and memory for organized documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _services(root: Optional[Path], company: Optional[List[str]] = None) -> Services:
    config = AppConfig(
        root_path=root if root is not None else AppConfig().root_path,
        company_names=tuple(company or ()),
    )
    services = build_services(config, base_dir=Path.cwd())
    if not services.root.is_dir():
        raise typer.BadParameter(f"Document root not found: {services.root}")
    return services


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text, e.g. 'status:template employment'"),
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
    max_results: int = typer.Option(AppConfig().max_results, help="Number of results to display"),
    path: Optional[SearchPath] = typer.Option(None, "--path", help="Force a search path"),
    threshold: Optional[float] = typer.Option(None, help="Minimum fuzzy score"),
    synonyms: bool = typer.Option(True, "--synonyms/--no-synonyms", help="Expand synonyms"),
    templates: bool = typer.Option(True, "--templates/--no-templates", help="Include templates"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search document metadata and memory."""
    _setup_logging(verbose)
    services = _services(root)
    options = SearchOptions(
        force_path=path,
        fuzzy_threshold=threshold,
        expand_synonyms=synonyms,
        include_templates=templates,
        max_results=max_results,
    )
    result = asyncio.run(services.orchestrator.search(query, options))

    if result.error:
        console.print(f"[red]Search failed: {result.error}[/red]")
    if result.answer is not None:
        console.print(f"[bold]Answer[/bold] ({result.answer.confidence:.0%} confidence)")
        console.print(result.answer.text, markup=False)
        sources = ", ".join(source.document for source in result.answer.sources)
        if sources:
            console.print(f"[dim]Sources: {sources}[/dim]")

    if not result.documents:
        console.print("[yellow]No matching documents found.[/yellow]")
        for suggestion in result.related.suggestions:
            console.print(f"  - {suggestion}")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Match")
    table.add_column("Document")
    table.add_column("Status")
    table.add_column("Reason")

    for document in result.documents:
        status = document.metadata.status.value if document.metadata is not None else ""
        table.add_row(
            f"{document.relevance:.2f}",
            document.match_type.value,
            document.filename,
            status,
            document.reason[:120],
        )

    console.print(table)
    console.print(
        f"Results: {len(result.documents)} ({result.search_path.value} path, "
        f"{result.performance.items_scanned} documents scanned in {result.performance.total_time_ms:.0f}ms)"
    )


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question about the organization"),
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Answer a question from the memory files."""
    _setup_logging(verbose)
    services = _services(root)
    answer = services.memory.query(question)
    if answer is None:
        console.print("[yellow]No answer found in memory. Try 'docatlas refresh-memory'.[/yellow]")
        return

    console.print(answer.answer, markup=False)
    if answer.sources:
        console.print(f"[dim]Sources ({answer.category}): {', '.join(answer.sources)}[/dim]")


@app.command("refresh-memory")
def refresh_memory(
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
    company: Optional[List[str]] = typer.Option(None, "--company", help="Own company name (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Regenerate every memory file from the metadata sidecars."""
    _setup_logging(verbose)
    services = _services(root, company)
    written = services.aggregator.refresh_all()
    console.print(f"Wrote {len(written)} memory files to [bold]{services.aggregator.memory_dir}[/bold]")


@app.command("update-memory")
def update_memory(
    document: Path = typer.Argument(..., help="Document (or its metadata sidecar) that changed"),
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
    company: Optional[List[str]] = typer.Option(None, "--company", help="Own company name (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Regenerate the memory files affected by one document."""
    _setup_logging(verbose)
    services = _services(root, company)
    names = services.aggregator.update_for_document(document)
    console.print(f"Updated {len(names)} memory files: {', '.join(names)}")


@app.command()
def stats(
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
) -> None:
    """Show document counts by status, category and folder."""
    services = _services(root)
    statistics = services.orchestrator.document_statistics()
    console.print(
        f"Documents: {statistics.total_documents}, templates: {statistics.template_count}"
    )

    for title, counts in (
        ("Status", statistics.by_status),
        ("Category", statistics.by_category),
        ("Folder", statistics.by_folder),
        ("Signer", statistics.top_signers),
    ):
        if not counts:
            continue
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column(title)
        table.add_column("Documents", justify="right")
        for name, count in counts.items():
            table.add_row(name, str(count))
        console.print(table)

    if statistics.recently_executed:
        console.print("[bold]Recently executed[/bold]")
        for record in statistics.recently_executed:
            console.print(f"  {record.document_date.isoformat()}  {record.filename}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    root: Path = typer.Option(None, "--root", help="Organized documents root"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    config = AppConfig(root_path=root if root is not None else AppConfig().root_path)
    services = build_services(config, base_dir=Path.cwd())
    if not services.root.is_dir():
        console.print("[yellow]Warning: document root not found, searches will return nothing.[/yellow]")
    web_app.state.services = services

    console.print(f"Starting web interface on http://{host}:{port} (root: {services.root})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
