from PyQt6.QtWidgets import QListWidget, QLabel, QWidget, QListWidgetItem, QScrollArea
from PyQt6.QtGui import QPainter, QColor, QMouseEvent, QPixmap
from PyQt6.QtCore import Qt, pyqtSignal, QRectF

from search_logic import HighlightRect, ResultSet, to_display_rect

ACTIVE_HIGHLIGHT = QColor(255, 255, 0, 128)
INACTIVE_HIGHLIGHT = QColor(255, 255, 0, 77)


def pdf_paths_from_mime(mime_data) -> list[str]:
    """Local .pdf paths carried by a drag-and-drop payload."""
    if not mime_data.hasUrls():
        return []
    paths = [url.toLocalFile() for url in mime_data.urls()]
    return [p for p in paths if p.lower().endswith(".pdf")]


class DocumentDropArea(QScrollArea):
    """Scroll area hosting the pages; accepts a dropped PDF file."""

    fileDropped = pyqtSignal(str)

    IDLE_STYLE = "QScrollArea { border: 2px dashed transparent; }"
    HOVER_STYLE = "QScrollArea { border: 2px dashed #4CAF50; }"

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setAcceptDrops(True)
        self.setStyleSheet(self.IDLE_STYLE)

    def dragEnterEvent(self, event):
        if pdf_paths_from_mime(event.mimeData()):
            event.acceptProposedAction()
            self.setStyleSheet(self.HOVER_STYLE)
        else:
            event.ignore()

    def dragLeaveEvent(self, event):
        self.setStyleSheet(self.IDLE_STYLE)
        super().dragLeaveEvent(event)

    def dragMoveEvent(self, event):
        if pdf_paths_from_mime(event.mimeData()):
            event.acceptProposedAction()
        else:
            event.ignore()

    def dropEvent(self, event):
        self.setStyleSheet(self.IDLE_STYLE)
        paths = pdf_paths_from_mime(event.mimeData())
        if paths:
            self.fileDropped.emit(paths[0])
            event.acceptProposedAction()
        else:
            event.ignore()


class PDFPageLabel(QLabel):
    """One rendered page with its search highlights painted on top."""

    highlightClicked = pyqtSignal(int)  # result index

    def __init__(self, pixmap: QPixmap, highlights: list[HighlightRect], page_number: int):
        super().__init__()
        self.original_pixmap = pixmap
        self.highlights = highlights
        self.page_number = page_number
        self.setPixmap(self.original_pixmap)
        self.draw_highlights()
        self.setMouseTracking(True)

    def set_highlights(self, highlights: list[HighlightRect]) -> None:
        self.highlights = highlights
        self.draw_highlights()

    def draw_highlights(self):
        if self.original_pixmap.isNull():
            return
        if not self.highlights:
            self.setPixmap(self.original_pixmap)
            return

        canvas = self.original_pixmap.copy()
        painter = QPainter(canvas)
        painter.setPen(Qt.PenStyle.NoPen)
        # Active last so it is drawn over overlapping inactive ones
        for h in sorted(self.highlights, key=lambda h: h.is_active):
            painter.setBrush(ACTIVE_HIGHLIGHT if h.is_active else INACTIVE_HIGHLIGHT)
            painter.drawRect(QRectF(h.left, h.top, h.width, h.height))
        painter.end()
        self.setPixmap(canvas)

    def highlight_at(self, x: float, y: float):
        for h in self.highlights:
            if h.contains(x, y):
                return h
        return None

    def mouseMoveEvent(self, event: QMouseEvent):
        pos = event.position()
        h = self.highlight_at(pos.x(), pos.y())
        if h is not None:
            self.setCursor(Qt.CursorShape.PointingHandCursor)
            self.setToolTip(f"Result {h.result_index + 1}")
        else:
            self.setCursor(Qt.CursorShape.ArrowCursor)
            self.setToolTip("")
        super().mouseMoveEvent(event)

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton:
            pos = event.position()
            h = self.highlight_at(pos.x(), pos.y())
            if h is not None:
                self.highlightClicked.emit(h.result_index)
        super().mousePressEvent(event)


class ResultListWidget(QListWidget):
    """Sidebar listing every match as "Page N" plus its text."""

    resultSelected = pyqtSignal(int)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setAlternatingRowColors(True)
        self.setWordWrap(True)
        self.itemClicked.connect(lambda item: self.resultSelected.emit(self.row(item)))

    def set_results(self, results: ResultSet) -> None:
        self.clear()
        for match in results:
            item = QListWidgetItem(f"Page {match.page_number}\n{match.text.strip()}")
            self.addItem(item)

    def set_active(self, index: int) -> None:
        self.blockSignals(True)
        if index < 0:
            self.clearSelection()
        else:
            self.setCurrentRow(index)
            self.scrollToItem(self.item(index))
        self.blockSignals(False)


class MiniMapWidget(QWidget):
    """Thin strip showing where the matches sit across the whole document."""

    clicked = pyqtSignal(float)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setFixedWidth(25)
        self.results = ResultSet.empty()
        self.active_index = -1
        self.page_heights = []
        self.viewport_pos = 0.0
        self.viewport_height = 0.1

    def set_data(self, results: ResultSet, page_heights: list[float], active_index: int = -1):
        self.results = results
        self.page_heights = page_heights
        self.active_index = active_index
        self.update()

    def set_viewport(self, pos, height):
        self.viewport_pos = pos
        self.viewport_height = height
        self.update()

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(25, 25, 25))

        total_doc_height = sum(self.page_heights)
        if total_doc_height <= 0:
            return

        h = self.height()
        y_offsets = []
        curr_offset = 0.0
        for ph in self.page_heights:
            y_offsets.append(curr_offset)
            curr_offset += ph

        for page_number in self.results.pages():
            if page_number > len(y_offsets):
                continue
            page_base_y = y_offsets[page_number - 1]
            page_height = self.page_heights[page_number - 1]
            for idx, match in self.results.on_page(page_number):
                top = to_display_rect(match.rect, page_height, 1.0).top
                y_pixel = int(((page_base_y + top) / total_doc_height) * h)
                color = QColor(ACTIVE_HIGHLIGHT if idx == self.active_index else INACTIVE_HIGHLIGHT)
                color.setAlpha(220 if idx == self.active_index else 160)
                painter.setPen(color)
                painter.drawLine(0, y_pixel, self.width(), y_pixel)

        painter.setPen(QColor(255, 255, 255, 80))
        painter.setBrush(QColor(255, 255, 255, 20))
        vy = int(self.viewport_pos * h)
        vh = int(self.viewport_height * h)
        painter.drawRect(0, vy, self.width() - 1, vh)

    def mousePressEvent(self, event):
        self.clicked.emit(event.position().y() / self.height())
