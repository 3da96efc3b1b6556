"""
PDF Document Access via PyMuPDF.

This module provides the document collaborator used by the search engine:
- Opening in-memory PDF bytes into a document handle
- Page count and intrinsic page geometry
- Asynchronous per-page text fragment extraction in bottom-left-origin space
"""

import asyncio
import itertools
import logging
import threading
from typing import Optional

import fitz  # PyMuPDF

from search_logic import (
    DocumentError,
    DocumentUnreadable,
    PageExtractionFailed,
    TextFragment,
)

LOGGER = logging.getLogger(__name__)

_document_ids = itertools.count(1)


class PDFDocument:
    """
    Handle to a loaded PDF.

    Keeps the raw bytes so that render workers can open private copies,
    and a lock that serialises MuPDF access to the shared fitz document.
    """

    def __init__(self, data: bytes, doc: fitz.Document, name: str = "document.pdf"):
        self.data = data
        self.doc = doc
        self.name = name
        self.doc_id = next(_document_ids)
        self.lock = threading.Lock()

    def __repr__(self) -> str:
        return f"PDFDocument(id={self.doc_id}, name={self.name!r})"

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def is_closed(self) -> bool:
        return self.doc.is_closed

    def close(self) -> None:
        with self.lock:
            if not self.doc.is_closed:
                self.doc.close()

    def open_copy(self) -> fitz.Document:
        """Open an independent fitz document over the same bytes (for worker threads)."""
        return fitz.open(stream=self.data, filetype="pdf")


def open_document(data: bytes, name: Optional[str] = None) -> PDFDocument:
    """
    Open a PDF held in memory.

    Args:
        data: Raw PDF bytes
        name: Display name (usually the file name)

    Returns:
        A PDFDocument handle

    Raises:
        DocumentError: empty, corrupt, non-PDF or password-protected input
    """
    if not data:
        raise DocumentError("Document is empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise DocumentError(f"Cannot open document: {exc}") from exc

    if doc.needs_pass:
        doc.close()
        raise DocumentError("Document is password protected")
    if doc.page_count == 0:
        doc.close()
        raise DocumentError("Document has no pages")

    handle = PDFDocument(data, doc, name or "document.pdf")
    LOGGER.debug("Opened %r with %d pages", handle, doc.page_count)
    return handle


class PyMuPDFTextSource:
    """
    Text/geometry extraction collaborator backed by PyMuPDF.

    PyMuPDF reports boxes with a top-left origin; fragments are converted
    to the bottom-left-origin intrinsic space the search engine stores.
    """

    GRANULARITIES = ("span", "word")

    def __init__(self, granularity: str = "span"):
        if granularity not in self.GRANULARITIES:
            raise ValueError(
                f"granularity must be one of {self.GRANULARITIES}, got {granularity!r}"
            )
        self.granularity = granularity

    def get_page_count(self, document: PDFDocument) -> int:
        with document.lock:
            if document.is_closed:
                raise DocumentUnreadable(f"{document.name} is closed")
            return document.doc.page_count

    def get_page_viewport_height(
        self, document: PDFDocument, page_number: int, scale: float = 1.0
    ) -> float:
        """Height of a page in display units at *scale* (intrinsic at 1.0)."""
        with document.lock:
            if document.is_closed:
                raise DocumentUnreadable(f"{document.name} is closed")
            return document.doc[page_number - 1].rect.height * scale

    async def get_page_text_fragments(
        self, document: PDFDocument, page_number: int
    ) -> list[TextFragment]:
        return await asyncio.to_thread(self.extract_fragments, document, page_number)

    def extract_fragments(
        self, document: PDFDocument, page_number: int
    ) -> list[TextFragment]:
        """Blocking extraction of one page's fragments, in reading order."""
        with document.lock:
            if document.is_closed:
                raise DocumentUnreadable(f"{document.name} is closed")
            if not 1 <= page_number <= document.doc.page_count:
                raise PageExtractionFailed(page_number, "page out of range")
            try:
                page = document.doc[page_number - 1]
                page_height = page.rect.height
                if self.granularity == "word":
                    boxes = self._word_boxes(page)
                else:
                    boxes = self._span_boxes(page)
            except RuntimeError as exc:
                raise PageExtractionFailed(page_number, str(exc)) from exc

        return [
            TextFragment(
                text=text,
                page_number=page_number,
                origin_x=x0,
                origin_y=page_height - y1,
                width=x1 - x0,
                height=y1 - y0,
            )
            for x0, y0, x1, y1, text in boxes
        ]

    @staticmethod
    def _span_boxes(page) -> list[tuple]:
        boxes = []
        text_dict = page.get_text("dict", sort=True)
        for block in text_dict.get("blocks", []):
            # Image blocks carry no lines
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text.strip():
                        continue
                    x0, y0, x1, y1 = span["bbox"]
                    boxes.append((x0, y0, x1, y1, text))
        return boxes

    @staticmethod
    def _word_boxes(page) -> list[tuple]:
        return [
            (w[0], w[1], w[2], w[3], w[4])
            for w in page.get_text("words", sort=True)
            if w[4].strip()
        ]
