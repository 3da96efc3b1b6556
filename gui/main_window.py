"""
Main Application Window for the PDF search viewer.

This module provides the primary UI controller that integrates:
- Document loading (file dialog or drag and drop)
- Background search with stale-result discard
- Result navigation, results list and context panel
- Zoom-synchronized highlight rendering via the PDFRenderer engine
"""

import logging
import os

from PyQt6.QtWidgets import (
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QSplitter,
    QFileDialog,
    QGroupBox,
    QTextEdit,
    QCheckBox,
    QProgressBar,
    QApplication,
)
from PyQt6.QtGui import QColor, QPalette, QPixmap
from PyQt6.QtCore import Qt, QTimer, QThreadPool

from gui.pdf_renderer import PDFRenderer, zoom_key
from gui.widgets import DocumentDropArea, MiniMapWidget, PDFPageLabel, ResultListWidget
from gui.workers import PageRenderWorker, SearchWorker
from pdf_document import PyMuPDFTextSource, open_document
from search_logic import (
    DocumentError,
    ResultSet,
    SearchOutcome,
    ViewerState,
    highlights_for_page,
    normalize_query,
)

LOGGER = logging.getLogger(__name__)

PAGE_SPACING = 10


class Theme:
    """Dark viewer colours; highlight colours live in gui.widgets."""

    BASE = "#1e1e2e"
    MANTLE = "#181825"
    CRUST = "#11111b"
    SURFACE0 = "#313244"
    SURFACE1 = "#45475a"

    TEXT = "#cdd6f4"
    SUBTEXT0 = "#a6adc8"
    OVERLAY0 = "#6c7086"

    ACCENT = "#b4befe"
    PROGRESS = "#89b4fa"
    SELECTION = "#cba6f7"
    ERROR = "#f38ba8"

    PALETTE = (
        (QPalette.ColorRole.Window, BASE),
        (QPalette.ColorRole.WindowText, TEXT),
        (QPalette.ColorRole.Base, MANTLE),
        (QPalette.ColorRole.AlternateBase, SURFACE0),
        (QPalette.ColorRole.Text, TEXT),
        (QPalette.ColorRole.PlaceholderText, OVERLAY0),
        (QPalette.ColorRole.Button, SURFACE0),
        (QPalette.ColorRole.ButtonText, TEXT),
        (QPalette.ColorRole.Highlight, SELECTION),
        (QPalette.ColorRole.HighlightedText, CRUST),
        (QPalette.ColorRole.BrightText, ERROR),
    )

    STYLESHEET = f"""
        QGroupBox {{
            font-weight: bold;
            border: 1px solid {SURFACE1};
            border-radius: 6px;
            margin-top: 12px;
            padding-top: 8px;
        }}
        QGroupBox::title {{
            subcontrol-origin: margin;
            left: 10px;
            color: {ACCENT};
        }}
        QLineEdit, QListWidget, QTextEdit {{
            background-color: {MANTLE};
            border: 1px solid {SURFACE1};
            border-radius: 6px;
            color: {TEXT};
        }}
        QLineEdit {{ padding: 4px 8px; min-height: 24px; }}
        QLineEdit:focus {{ border-color: {ACCENT}; }}
        QPushButton {{ padding: 5px 12px; border-radius: 6px; }}
        QPushButton:disabled {{ color: {OVERLAY0}; }}
        QProgressBar {{ border: none; text-align: center; background-color: {SURFACE0}; }}
        QProgressBar::chunk {{ background-color: {PROGRESS}; }}
        QStatusBar {{ background-color: {CRUST}; color: {SUBTEXT0}; }}
    """


class MainWindow(QMainWindow):
    """
    Main application window.

    Handles:
    - Layout and widget initialization
    - Wiring user actions to the ViewerState (search, cursor, zoom)
    - Rendering coordination via PDFRenderer
    """

    def __init__(self, source=None):
        super().__init__()
        self.setWindowTitle("PDF Search")
        self.resize(1400, 900)
        self.apply_modern_theme()
        self.status_bar = self.statusBar()
        self.status_bar.showMessage("Ready. Open or drop a PDF to start.")

        # Core components
        self.state = ViewerState()
        self.source = source if source is not None else PyMuPDFTextSource()
        self.renderer = PDFRenderer()
        self.state.zoom.add_listener(self._on_zoom_changed)

        # Virtual scroll state
        self._page_slots: list = []
        self._page_materialized: list = []
        self._page_dims: list = []
        self._page_y_offsets: list = []
        self._page_heights: list = []

        # Debounce timers
        self._search_timer = QTimer()
        self._search_timer.setSingleShot(True)
        self._search_timer.setInterval(300)
        self._search_timer.timeout.connect(self.run_search)

        self._refresh_timer = QTimer()
        self._refresh_timer.setSingleShot(True)
        self._refresh_timer.setInterval(150)
        self._refresh_timer.timeout.connect(self._do_refresh_view)

        self._virtual_scroll_timer = QTimer()
        self._virtual_scroll_timer.setSingleShot(True)
        self._virtual_scroll_timer.setInterval(50)
        self._virtual_scroll_timer.timeout.connect(self._update_visible_pages)

        # Thread pools
        self._search_pool = QThreadPool()
        self._search_pool.setMaxThreadCount(2)
        self._bg_render_pool = QThreadPool()
        self._bg_render_pool.setMaxThreadCount(2)
        self._pending_bg_render_worker = None

        self.init_ui()

    def apply_modern_theme(self):
        palette = QPalette()
        for role, color in Theme.PALETTE:
            palette.setColor(role, QColor(color))
        QApplication.setPalette(palette)
        QApplication.instance().setStyleSheet(Theme.STYLESHEET)

    def init_ui(self):
        splitter = QSplitter(Qt.Orientation.Horizontal)
        self.setCentralWidget(splitter)

        # Left panel: document, search and results
        left_panel = QWidget()
        left_panel.setMinimumWidth(280)
        left_layout = QVBoxLayout(left_panel)
        left_layout.setContentsMargins(12, 12, 12, 12)
        left_layout.setSpacing(8)

        btn_open = QPushButton("Open PDF…")
        btn_open.clicked.connect(self.open_file_dialog)
        left_layout.addWidget(btn_open)

        h_search = QHBoxLayout()
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search…")
        self.search_edit.textChanged.connect(lambda _text: self._search_timer.start())
        self.search_edit.returnPressed.connect(self._on_return_pressed)
        h_search.addWidget(self.search_edit)
        self.btn_search = QPushButton("Search")
        self.btn_search.clicked.connect(self.run_search)
        h_search.addWidget(self.btn_search)
        left_layout.addLayout(h_search)

        h_nav = QHBoxLayout()
        self.btn_prev_match = QPushButton("◀")
        self.btn_prev_match.setFixedSize(32, 28)
        self.btn_prev_match.clicked.connect(self.prev_match)
        h_nav.addWidget(self.btn_prev_match)
        self.lbl_match_counter = QLabel("No results")
        self.lbl_match_counter.setStyleSheet(f"color: {Theme.SUBTEXT0}; font-size: 11px;")
        h_nav.addWidget(self.lbl_match_counter, 1, Qt.AlignmentFlag.AlignCenter)
        self.btn_next_match = QPushButton("▶")
        self.btn_next_match.setFixedSize(32, 28)
        self.btn_next_match.clicked.connect(self.next_match)
        h_nav.addWidget(self.btn_next_match)
        left_layout.addLayout(h_nav)

        self.progress_bar = QProgressBar()
        self.progress_bar.setVisible(False)
        left_layout.addWidget(self.progress_bar)

        self.result_list = ResultListWidget()
        self.result_list.resultSelected.connect(self.select_match)
        left_layout.addWidget(self.result_list, 1)

        gb_context = QGroupBox("Context")
        context_layout = QVBoxLayout()
        self.context_text = QTextEdit()
        self.context_text.setReadOnly(True)
        self.context_text.setFixedHeight(110)
        context_layout.addWidget(self.context_text)
        gb_context.setLayout(context_layout)
        left_layout.addWidget(gb_context)

        self.lbl_stats_cache = QLabel("Cache: 0 pages")
        self.lbl_stats_cache.setStyleSheet(f"color: {Theme.OVERLAY0}; font-size: 10px;")
        left_layout.addWidget(self.lbl_stats_cache)

        # Right panel: pages
        right_wrapper = QWidget()
        right_layout = QVBoxLayout(right_wrapper)
        right_layout.setContentsMargins(0, 12, 12, 12)

        h_head = QHBoxLayout()
        self.lbl_doc_title = QLabel("<b>No document</b>")
        h_head.addWidget(self.lbl_doc_title)
        self.chk_minimap = QCheckBox("Map")
        self.chk_minimap.setChecked(True)
        self.chk_minimap.stateChanged.connect(self._toggle_minimap)
        h_head.addWidget(self.chk_minimap)
        h_head.addStretch()

        btn_zoom_out = QPushButton("-")
        btn_zoom_out.setFixedSize(28, 28)
        btn_zoom_out.setStyleSheet("font-size: 16px; font-weight: bold; padding: 0px;")
        btn_zoom_out.clicked.connect(self.zoom_out)
        self.lbl_zoom = QLabel(self._zoom_text())
        btn_zoom_in = QPushButton("+")
        btn_zoom_in.setFixedSize(28, 28)
        btn_zoom_in.setStyleSheet("font-size: 16px; font-weight: bold; padding: 0px;")
        btn_zoom_in.clicked.connect(self.zoom_in)
        h_head.addWidget(btn_zoom_out)
        h_head.addWidget(self.lbl_zoom)
        h_head.addWidget(btn_zoom_in)
        right_layout.addLayout(h_head)

        h_content = QHBoxLayout()
        self.page_scroll = DocumentDropArea()
        self.page_scroll.setWidgetResizable(True)
        self.page_scroll.fileDropped.connect(self.load_file)
        self.page_container = QWidget()
        self.page_layout = QVBoxLayout(self.page_container)
        self.page_layout.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.page_scroll.setWidget(self.page_container)
        self.page_scroll.verticalScrollBar().valueChanged.connect(self._on_page_scroll)
        h_content.addWidget(self.page_scroll)

        self.mini_map = MiniMapWidget()
        self.mini_map.clicked.connect(self.scroll_to_percent)
        h_content.addWidget(self.mini_map)
        right_layout.addLayout(h_content)

        splitter.addWidget(left_panel)
        splitter.addWidget(right_wrapper)
        splitter.setStretchFactor(0, 1)
        splitter.setStretchFactor(1, 3)

        self.update_match_controls()

    # ------------------------------------------------------------------
    # Document loading
    # ------------------------------------------------------------------

    def open_file_dialog(self):
        path, _ = QFileDialog.getOpenFileName(self, "Open PDF", "", "PDF files (*.pdf)")
        if path:
            self.load_file(path)

    def load_file(self, path: str):
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            self.status_bar.showMessage(f"Cannot read {path}: {e}", 8000)
            return
        self.load_bytes(data, os.path.basename(path))

    def load_bytes(self, data: bytes, name: str):
        try:
            document = open_document(data, name)
        except DocumentError as e:
            self.status_bar.showMessage(f"Cannot open {name}: {e}", 8000)
            return

        previous = self.state.document
        # Cancel in-flight work and drop results before any new rendering
        if self._pending_bg_render_worker is not None:
            self._pending_bg_render_worker.cancel()
            self._pending_bg_render_worker = None
        self._search_timer.stop()
        self.state.set_document(document)
        if previous is not None:
            self.renderer.invalidate_cache(previous)
            previous.close()

        LOGGER.info("Loaded %s", name)
        self.lbl_doc_title.setText(f"<b>{name}</b>")
        self.lbl_zoom.setText(self._zoom_text())
        self._page_heights = self.renderer.page_heights(document)
        self.show_results()
        self.render_document()
        self.status_bar.showMessage(
            f"Loaded {name} ({len(self._page_heights)} pages).", 4000
        )
        if normalize_query(self.search_edit.text()):
            self.run_search()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _on_return_pressed(self):
        modifiers = QApplication.keyboardModifiers()
        query = normalize_query(self.search_edit.text())
        if self.state.results and query == self.state.query:
            if modifiers & Qt.KeyboardModifier.ShiftModifier:
                self.prev_match()
            else:
                self.next_match()
        else:
            self.run_search()

    def run_search(self):
        self._search_timer.stop()
        query = self.search_edit.text()
        document = self.state.document
        token = self.state.begin_search()

        if document is None or not normalize_query(query):
            self.state.commit(token, SearchOutcome(normalize_query(query), ResultSet.empty()))
            self.progress_bar.setVisible(False)
            self.show_results()
            return

        self.progress_bar.setRange(0, 100)
        self.progress_bar.setValue(0)
        self.progress_bar.setVisible(True)
        worker = SearchWorker(self.source, self.state, document, query, token)
        worker.signals.progress.connect(self.on_search_progress)
        worker.signals.finished.connect(self.on_search_finished)
        worker.signals.error.connect(self.on_search_error)
        self._search_pool.start(worker)

    def on_search_progress(self, token: int, done: int, total: int):
        if not self.state.is_current(token):
            return
        percent = int(done / total * 100) if total > 0 else 0
        self.progress_bar.setValue(percent)
        self.progress_bar.setFormat(f"Searching page {done}/{total}… %p%")

    def on_search_finished(self, token: int, outcome: SearchOutcome):
        if not self.state.commit(token, outcome):
            return
        self.progress_bar.setVisible(False)
        self.show_results()
        message = f"{len(outcome.results)} result(s) for '{outcome.query}'"
        if outcome.failed_pages:
            pages = ", ".join(str(p) for p in outcome.failed_pages)
            message += f" (could not read page(s) {pages})"
        self.status_bar.showMessage(message, 6000)

    def on_search_error(self, token: int, message: str):
        if not self.state.is_current(token):
            return
        self.state.commit(token, SearchOutcome(normalize_query(self.search_edit.text()), ResultSet.empty()))
        self.progress_bar.setVisible(False)
        self.show_results()
        self.status_bar.showMessage(f"Search failed: {message}", 8000)

    def show_results(self):
        """Sync list, counter, minimap and highlights with the committed results."""
        self.result_list.set_results(self.state.results)
        self.update_match_controls()
        self.refresh_highlights()
        self.scroll_to_active()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next_match(self):
        if self.state.cursor.next() is not None:
            self._on_cursor_moved()

    def prev_match(self):
        if self.state.cursor.previous() is not None:
            self._on_cursor_moved()

    def select_match(self, index: int):
        if 0 <= index < self.state.cursor.count:
            self.state.cursor.select(index)
            self._on_cursor_moved()

    def _on_cursor_moved(self):
        self.update_match_controls()
        self.refresh_highlights()
        self.scroll_to_active()

    def update_match_controls(self):
        position, total = self.state.cursor.position()
        has_results = total > 0
        self.btn_prev_match.setEnabled(has_results)
        self.btn_next_match.setEnabled(has_results)
        if has_results:
            self.lbl_match_counter.setText(f"Result {position} of {total}")
        elif self.state.query:
            self.lbl_match_counter.setText("No results")
        else:
            self.lbl_match_counter.setText("")
        self.result_list.set_active(self.state.cursor.current_index)

        active = self.state.active_match()
        if active is None:
            self.context_text.clear()
        else:
            self.context_text.setPlainText(f"Page {active.page_number}\n\n{active.text}")

    # ------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------

    def zoom_in(self):
        self.state.zoom.step_in()

    def zoom_out(self):
        self.state.zoom.step_out()

    def _zoom_text(self) -> str:
        return f"{self.state.zoom.current() * 100:.0f}%"

    def _on_zoom_changed(self, scale: float):
        # Zooming re-renders and re-projects; it never searches again
        self.lbl_zoom.setText(self._zoom_text())
        self.status_bar.showMessage(f"Zoom Level: {scale:.2f}x", 2000)
        self.refresh_view()

    def refresh_view(self):
        """Debounced entry point; coalesces rapid zoom steps into one re-render."""
        self._refresh_timer.start()

    def _do_refresh_view(self):
        self.render_document()
        self.scroll_to_active()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_zoom(self) -> float:
        return zoom_key(self.state.zoom.current())

    def _page_highlights(self, page_number: int):
        return highlights_for_page(
            page_number,
            self.state.results,
            self.state.cursor,
            self._render_zoom(),
            self._page_heights[page_number - 1],
        )

    def render_document(self):
        """
        Lay out one fixed-size slot per page, then materialize visible ones.

        Slots stay in the layout; materialization swaps the pixmap in and
        dematerialization clears it again.
        """
        if self._pending_bg_render_worker is not None:
            self._pending_bg_render_worker.cancel()
            self._pending_bg_render_worker = None

        while self.page_layout.count():
            item = self.page_layout.takeAt(0)
            widget = item.widget()
            if widget is not None:
                widget.deleteLater()

        self._page_slots = []
        self._page_materialized = []
        self._page_dims = []
        self._page_y_offsets = []

        document = self.state.document
        if document is None:
            self.mini_map.set_data(ResultSet.empty(), [])
            return

        zoom = self._render_zoom()
        self._page_dims = self.renderer.get_page_dimensions(document, zoom)

        y = 0
        for _w, h in self._page_dims:
            self._page_y_offsets.append(y)
            y += h + PAGE_SPACING

        for page_number, (w_px, h_px) in enumerate(self._page_dims, start=1):
            lbl = PDFPageLabel(QPixmap(), self._page_highlights(page_number), page_number)
            lbl.highlightClicked.connect(self.select_match)
            lbl.setFixedSize(int(w_px), int(h_px))
            self.page_layout.addWidget(lbl)
            self.page_layout.addSpacing(PAGE_SPACING)
            self._page_slots.append(lbl)
            self._page_materialized.append(False)

        self._update_minimap()
        QTimer.singleShot(0, self._update_visible_pages)

    def refresh_highlights(self):
        """Re-project highlights for every slot from the stored intrinsic results."""
        for page_number, lbl in enumerate(self._page_slots, start=1):
            lbl.set_highlights(self._page_highlights(page_number))
        self._update_minimap()

    def _update_minimap(self):
        self.mini_map.set_data(
            self.state.results, self._page_heights, self.state.cursor.current_index
        )
        self.update_mini_map_viewport()
        cache_stats = self.renderer.get_cache_stats()
        self.lbl_stats_cache.setText(
            f"Cache: {cache_stats['cached_pages']} pages"
            f" / {cache_stats['used_bytes'] / 1024 / 1024:.0f} MB"
        )

    def _visible_zone(self) -> tuple[int, int]:
        viewport_height = self.page_scroll.viewport().height()
        scroll_value = self.page_scroll.verticalScrollBar().value()
        return max(0, scroll_value - viewport_height), scroll_value + 2 * viewport_height

    def _on_page_scroll(self, value: int) -> None:
        self.update_mini_map_viewport()
        self._virtual_scroll_timer.start()

    def _update_visible_pages(self) -> None:
        """Materialize pages near the viewport; clear pixmaps of distant ones."""
        document = self.state.document
        if not self._page_slots or document is None:
            return

        render_top, render_bottom = self._visible_zone()
        zoom = self._render_zoom()
        uncached = []
        for idx, (y_off, (_w, h)) in enumerate(zip(self._page_y_offsets, self._page_dims)):
            page_number = idx + 1
            if y_off + h >= render_top and y_off <= render_bottom:
                if self.renderer.is_cached(document, page_number, zoom):
                    self._materialize_page(page_number)
                else:
                    uncached.append(page_number)
            else:
                self._dematerialize_page(page_number)

        if uncached:
            if self._pending_bg_render_worker is not None:
                self._pending_bg_render_worker.cancel()
            worker = PageRenderWorker(document, uncached, zoom)
            worker.signals.finished.connect(self._on_bg_pages_rendered)
            self._pending_bg_render_worker = worker
            self._bg_render_pool.start(worker)

    def _on_bg_pages_rendered(self, results: list, zoom: float) -> None:
        self._pending_bg_render_worker = None
        document = self.state.document
        # Discard if the view has since been rebuilt at a different zoom / document
        if not self._page_slots or document is None or zoom != self._render_zoom():
            return

        for page_number, qimg in results:
            if page_number > len(self._page_slots):
                continue
            self.renderer.store_pixmap(document, page_number, zoom, QPixmap.fromImage(qimg))
            self._materialize_page(page_number)

    def _materialize_page(self, page_number: int) -> None:
        if self._page_materialized[page_number - 1]:
            return
        lbl = self._page_slots[page_number - 1]
        pixmap = self.renderer.get_cached_pixmap(
            self.state.document, page_number, self._render_zoom()
        )
        lbl.original_pixmap = pixmap
        lbl.setFixedSize(pixmap.width(), pixmap.height())
        lbl.draw_highlights()
        self._page_materialized[page_number - 1] = True

    def _dematerialize_page(self, page_number: int) -> None:
        if not self._page_materialized[page_number - 1]:
            return
        lbl = self._page_slots[page_number - 1]
        lbl.original_pixmap = QPixmap()
        lbl.setPixmap(QPixmap())
        self._page_materialized[page_number - 1] = False

    # ------------------------------------------------------------------
    # Scrolling
    # ------------------------------------------------------------------

    def scroll_to_active(self):
        active_index = self.state.cursor.current_index
        if active_index < 0 or not self._page_slots:
            return
        page_number = self.state.results[active_index].page_number
        if page_number > len(self._page_y_offsets):
            return
        for h in self._page_highlights(page_number):
            if h.is_active:
                target = self._page_y_offsets[page_number - 1] + h.top
                bar = self.page_scroll.verticalScrollBar()
                bar.setValue(int(target - self.page_scroll.viewport().height() / 3))
                break

    def scroll_to_percent(self, percent):
        bar = self.page_scroll.verticalScrollBar()
        bar.setValue(int(percent * bar.maximum()))

    def update_mini_map_viewport(self):
        if not self.mini_map.isVisible():
            return
        bar = self.page_scroll.verticalScrollBar()
        if bar.maximum() > 0:
            self.mini_map.set_viewport(
                bar.value() / bar.maximum(), bar.pageStep() / bar.maximum()
            )

    def _toggle_minimap(self, state: int) -> None:
        visible = bool(state)
        self.mini_map.setVisible(visible)
        if visible:
            self.update_mini_map_viewport()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def keyPressEvent(self, event):
        """Global keyboard shortcuts."""
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            if event.key() == Qt.Key.Key_Plus or event.key() == Qt.Key.Key_Equal:
                self.zoom_in()
                event.accept()
                return
            elif event.key() == Qt.Key.Key_Minus:
                self.zoom_out()
                event.accept()
                return
            elif event.key() == Qt.Key.Key_F:
                self.search_edit.setFocus()
                self.search_edit.selectAll()
                event.accept()
                return
        super().keyPressEvent(event)

    def wheelEvent(self, event):
        """Handle Ctrl+Scroll for zooming."""
        if event.modifiers() & Qt.KeyboardModifier.ControlModifier:
            delta = event.angleDelta().y()
            if delta > 0:
                self.zoom_in()
            elif delta < 0:
                self.zoom_out()
            event.accept()
        else:
            super().wheelEvent(event)

    def closeEvent(self, event):
        """Clean up resources on window close."""
        if self._pending_bg_render_worker is not None:
            self._pending_bg_render_worker.cancel()
        self.state.clear()
        self._search_pool.waitForDone()
        self._bg_render_pool.waitForDone()
        self.renderer.cleanup()
        if self.state.document is not None:
            self.state.document.close()
        super().closeEvent(event)
