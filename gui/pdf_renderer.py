"""
PDF Page Rendering with LRU Caching.

This module keeps page rasterization out of MainWindow:
- LRU-cached pixmap generation keyed by document, page and zoom
- Page dimension queries for fixed-size page slots
- A byte-budgeted cache shared with background render workers
"""

import fitz
from collections import OrderedDict
from typing import Optional
from PyQt6.QtGui import QImage, QPixmap

from pdf_document import PDFDocument


def pixmap_to_qimage(pix: fitz.Pixmap) -> QImage:
    """Wrap a fitz pixmap in a QImage that owns its own buffer."""
    return QImage(
        pix.samples,
        pix.width,
        pix.height,
        pix.stride,
        QImage.Format.Format_RGB888,
    ).copy()


def zoom_key(zoom: float) -> float:
    """Round zoom so cache keys stay stable across float noise."""
    return round(zoom, 2)


class PixmapCache:
    """
    LRU cache for rendered page pixmaps with a byte budget.

    Keys are tuples of (doc_id, page_number, zoom_key). Entries are evicted
    least-recently-used first once the estimated footprint exceeds
    *max_bytes*.
    """

    DEFAULT_MAX_BYTES: int = 256 * 1024 * 1024  # 256 MB

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self._cache: OrderedDict[tuple, QPixmap] = OrderedDict()
        self._used_bytes: int = 0

    @staticmethod
    def _pixmap_bytes(pixmap: QPixmap) -> int:
        if pixmap.isNull():
            return 0
        return pixmap.width() * pixmap.height() * 4

    def get(self, key: tuple) -> Optional[QPixmap]:
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]
        return None

    def put(self, key: tuple, pixmap: QPixmap) -> None:
        if key in self._cache:
            self._cache.move_to_end(key)
            return

        size = self._pixmap_bytes(pixmap)
        # Keep at least one entry even when it alone exceeds the budget
        while self._used_bytes + size > self.max_bytes and self._cache:
            _, evicted = self._cache.popitem(last=False)
            self._used_bytes -= self._pixmap_bytes(evicted)

        self._cache[key] = pixmap
        self._used_bytes += size

    def clear(self) -> None:
        self._cache.clear()
        self._used_bytes = 0

    def invalidate_document(self, doc_id: int) -> None:
        for key in [k for k in self._cache if k[0] == doc_id]:
            self._used_bytes -= self._pixmap_bytes(self._cache.pop(key))

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    def __len__(self) -> int:
        return len(self._cache)


class PDFRenderer:
    """
    Rasterizes pages of a PDFDocument, reusing cached pixmaps.

    Pages are addressed 1-based, matching search results.
    """

    def __init__(self, max_bytes: int = PixmapCache.DEFAULT_MAX_BYTES):
        self.pixmap_cache = PixmapCache(max_bytes=max_bytes)

    def get_cached_pixmap(
        self, document: PDFDocument, page_number: int, zoom: float
    ) -> QPixmap:
        """
        Get the pixmap of a page, rendering it on a cache miss.

        Args:
            document: The loaded document
            page_number: 1-based page number
            zoom: Zoom level (1.0 = 100%)
        """
        key = (document.doc_id, page_number, zoom_key(zoom))
        pixmap = self.pixmap_cache.get(key)
        if pixmap is None:
            with document.lock:
                pix = document.doc[page_number - 1].get_pixmap(
                    matrix=fitz.Matrix(key[2], key[2])
                )
                pixmap = QPixmap.fromImage(pixmap_to_qimage(pix))
            self.pixmap_cache.put(key, pixmap)
        return pixmap

    def is_cached(self, document: PDFDocument, page_number: int, zoom: float) -> bool:
        key = (document.doc_id, page_number, zoom_key(zoom))
        return self.pixmap_cache.get(key) is not None

    def store_pixmap(
        self, document: PDFDocument, page_number: int, zoom: float, pixmap: QPixmap
    ) -> None:
        """Insert a pixmap rendered elsewhere (e.g. a background worker)."""
        self.pixmap_cache.put((document.doc_id, page_number, zoom_key(zoom)), pixmap)

    def page_heights(self, document: PDFDocument) -> list[float]:
        """Intrinsic (zoom 1.0) height of every page."""
        with document.lock:
            return [page.rect.height for page in document.doc]

    def get_page_dimensions(
        self, document: PDFDocument, zoom: float
    ) -> list[tuple[float, float]]:
        """Return (width_px, height_px) for every page at *zoom*."""
        z = zoom_key(zoom)
        with document.lock:
            return [(page.rect.width * z, page.rect.height * z) for page in document.doc]

    def invalidate_cache(self, document: Optional[PDFDocument] = None) -> None:
        if document is not None:
            self.pixmap_cache.invalidate_document(document.doc_id)
        else:
            self.pixmap_cache.clear()

    def cleanup(self) -> None:
        self.pixmap_cache.clear()

    def get_cache_stats(self) -> dict:
        return {
            "cached_pages": len(self.pixmap_cache),
            "used_bytes": self.pixmap_cache.used_bytes,
        }
