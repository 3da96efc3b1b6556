"""Command line interface for the PDF search viewer."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pdf_document import PyMuPDFTextSource, open_document
from search_logic import (
    DocumentError,
    SearchIndexBuilder,
    ViewerState,
    ZoomController,
    highlights_for_page,
    run_search,
)


console = Console()
app = typer.Typer(help="PDF Search - find and highlight text in PDF documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


@app.command()
def search(
    path: Path = typer.Argument(..., help="PDF file to search", exists=True, dir_okay=False),
    query: str = typer.Argument(..., help="Literal text to look for (case-insensitive)"),
    page: Optional[int] = typer.Option(None, "--page", "-p", min=1, help="Only show results on this page"),
    scale: float = typer.Option(1.0, "--scale", "-s", help="Zoom scale for display rects (clamped to 0.5-2.0)"),
    granularity: str = typer.Option("span", help="Fragment granularity: span or word"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search a PDF and print every match with its display rectangle."""
    _setup_logging(verbose)

    try:
        source = PyMuPDFTextSource(granularity=granularity)
        zoom_controller = ZoomController(scale)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        document = open_document(path.read_bytes(), path.name)
    except DocumentError as exc:
        console.print(f"[red]Cannot open {path}: {exc}[/red]")
        raise typer.Exit(code=1)

    with document:
        page_count = source.get_page_count(document)
        if page is not None and page > page_count:
            raise typer.BadParameter(f"--page must be between 1 and {page_count}")

        state = ViewerState(zoom_controller)
        state.set_document(document)
        builder = SearchIndexBuilder(source, state)
        try:
            results = run_search(builder, document, query)
        except DocumentError as exc:
            console.print(f"[red]Search failed: {exc}[/red]")
            raise typer.Exit(code=1)

        if state.failed_pages:
            pages = ", ".join(str(p) for p in state.failed_pages)
            console.print(f"[yellow]Could not read page(s): {pages}[/yellow]")

        if not results:
            console.print("[yellow]No matches found.[/yellow]")
            return

        zoom = state.zoom.current()
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", justify="right")
        table.add_column("Page", justify="right")
        table.add_column("Text")
        table.add_column("Top", justify="right")
        table.add_column("Left", justify="right")
        table.add_column("Width", justify="right")
        table.add_column("Height", justify="right")

        pages_to_show = [page] if page is not None else results.pages()
        shown = 0
        for page_number in pages_to_show:
            page_height = source.get_page_viewport_height(document, page_number)
            for h in highlights_for_page(page_number, results, state.cursor, zoom, page_height):
                match = results[h.result_index]
                marker = "*" if h.is_active else ""
                table.add_row(
                    f"{h.result_index + 1}{marker}",
                    str(page_number),
                    match.text.strip()[:120],
                    f"{h.top:.1f}",
                    f"{h.left:.1f}",
                    f"{h.width:.1f}",
                    f"{h.height:.1f}",
                )
                shown += 1

        console.print(table)
        console.print(
            f"{shown} of {len(results)} match(es) shown for '{state.query}' at {zoom:.2f}x"
        )


@app.command()
def view(
    path: Optional[Path] = typer.Argument(None, help="PDF file to open", exists=True, dir_okay=False),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Start the desktop viewer."""
    _setup_logging(verbose)

    from PyQt6.QtWidgets import QApplication
    from gui.main_window import MainWindow

    qt_app = QApplication.instance() or QApplication(sys.argv)
    window = MainWindow()
    window.show()
    if path is not None:
        window.load_file(str(path))
    raise typer.Exit(code=qt_app.exec())


if __name__ == "__main__":
    app()
