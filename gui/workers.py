"""
Background Workers for the PDF search viewer.

This module provides QRunnable-based workers for:
- SearchWorker: page-by-page text search tagged with a search token
- PageRenderWorker: off-thread page rasterization
"""

import asyncio

import fitz
from PyQt6.QtCore import QObject, pyqtSignal, QRunnable

from gui.pdf_renderer import pixmap_to_qimage
from search_logic import SearchIndexBuilder, StaleSearchDiscarded


class SearchWorkerSignals(QObject):
    """Signals for SearchWorker (QRunnable can't have signals directly)."""

    finished = pyqtSignal(int, object)  # token, SearchOutcome
    progress = pyqtSignal(int, int, int)  # token, pages done, page count
    error = pyqtSignal(int, str)  # token, message


class SearchWorker(QRunnable):
    """
    Runs one search off the UI thread without committing it.

    The outcome is emitted with its token; the window commits it on the
    main thread, where a superseded token is discarded.
    """

    def __init__(self, source, state, document, query: str, token: int):
        super().__init__()
        self.document = document
        self.query = query
        self.token = token
        self.signals = SearchWorkerSignals()
        self.builder = SearchIndexBuilder(
            source, state, progress_callback=self._report_progress
        )
        self.setAutoDelete(True)

    def _report_progress(self, done: int, total: int) -> None:
        self.signals.progress.emit(self.token, done, total)

    def run(self):
        try:
            outcome = asyncio.run(
                self.builder.collect(self.document, self.query, self.token)
            )
        except StaleSearchDiscarded:
            return
        except Exception as e:
            self.signals.error.emit(self.token, str(e))
            return
        self.signals.finished.emit(self.token, outcome)


class PageRenderWorkerSignals(QObject):
    """Signals for PageRenderWorker."""

    # list of (page_number: int, image: QImage), plus the zoom the render was for
    finished = pyqtSignal(list, float)


class PageRenderWorker(QRunnable):
    """
    Rasterizes a set of pages into QImage objects in the background.

    Uses its own fitz document over the handle's bytes, and QImage (thread-safe)
    rather than QPixmap; the window converts to QPixmap on the main thread.
    """

    def __init__(self, document, page_numbers: list, zoom: float):
        super().__init__()
        self.document = document
        self.page_numbers = page_numbers
        self.zoom = round(zoom, 2)
        self.signals = PageRenderWorkerSignals()
        self._cancelled = False
        self.setAutoDelete(True)

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        if self._cancelled:
            return

        results = []
        doc = self.document.open_copy()
        try:
            mat = fitz.Matrix(self.zoom, self.zoom)
            for page_number in self.page_numbers:
                if self._cancelled:
                    return
                pix = doc[page_number - 1].get_pixmap(matrix=mat)
                results.append((page_number, pixmap_to_qimage(pix)))
        finally:
            doc.close()

        if not self._cancelled:
            self.signals.finished.emit(results, self.zoom)
