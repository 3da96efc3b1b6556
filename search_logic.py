"""
PDF Search and Highlight Engine.

This module provides the core search algorithms:
- Geometry transform from intrinsic (bottom-left origin) to display (top-left origin) space
- Literal, case-insensitive match extraction over extracted text fragments
- Page-ordered result indexing with stale-search discard
- Result cursor, zoom controller and per-page highlight projection
"""

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

LOGGER = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================
class SearchError(Exception):
    """Base class for all search engine errors."""


class DocumentError(SearchError):
    """The document could not be opened."""


class DocumentUnreadable(DocumentError):
    """The document cannot be read at all; fatal to a search."""


class PageExtractionFailed(SearchError):
    """Text extraction failed for a single page."""

    def __init__(self, page_number: int, reason: str = ""):
        self.page_number = page_number
        self.reason = reason
        message = f"Text extraction failed on page {page_number}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class FragmentValidationError(SearchError):
    """A text fragment is malformed."""

    def __init__(self, fragment, reason: str):
        self.fragment = fragment
        self.reason = reason
        super().__init__(f"Invalid text fragment ({reason}): {fragment!r}")


class StaleSearchDiscarded(SearchError):
    """A newer search (or a document swap) superseded this one."""


# ============================================================================
# Data Model
# ============================================================================
@dataclass(frozen=True, slots=True)
class IntrinsicRect:
    """Rectangle in page-native units, origin at the bottom-left corner."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> "IntrinsicRect":
        return cls(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


@dataclass(frozen=True, slots=True)
class DisplayRect:
    """Rectangle in screen space, origin at the top-left corner, zoom applied."""

    top: float
    left: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class HighlightRect:
    """A renderable highlight for one search match."""

    top: float
    left: float
    width: float
    height: float
    is_active: bool
    result_index: int

    def contains(self, x: float, y: float) -> bool:
        return (
            self.left <= x <= self.left + self.width
            and self.top <= y <= self.top + self.height
        )


@dataclass(frozen=True, slots=True)
class TextFragment:
    """One run of extracted text with its intrinsic position and size."""

    text: str
    page_number: int
    origin_x: float
    origin_y: float
    width: float
    height: float

    @property
    def rect(self) -> IntrinsicRect:
        return IntrinsicRect(self.origin_x, self.origin_y, self.width, self.height)


@dataclass(frozen=True, slots=True)
class SearchMatch:
    """One located occurrence of the query. Geometry is always intrinsic."""

    page_number: int
    text: str
    rect: IntrinsicRect


class ResultSet(Sequence):
    """
    Immutable, page-ordered sequence of search matches.

    Keeps a per-page index of result positions so that projecting the
    highlights of one page costs O(matches on that page).
    """

    __slots__ = ("_matches", "_by_page")

    def __init__(self, matches=()):
        self._matches: tuple[SearchMatch, ...] = tuple(matches)
        by_page: dict[int, list[int]] = {}
        for idx, match in enumerate(self._matches):
            by_page.setdefault(match.page_number, []).append(idx)
        self._by_page = {page: tuple(idxs) for page, idxs in by_page.items()}

    @classmethod
    def empty(cls) -> "ResultSet":
        return _EMPTY_RESULTS

    def __len__(self) -> int:
        return len(self._matches)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return ResultSet(self._matches[index])
        return self._matches[index]

    def __iter__(self) -> Iterator[SearchMatch]:
        return iter(self._matches)

    def __eq__(self, other) -> bool:
        if isinstance(other, ResultSet):
            return self._matches == other._matches
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._matches)

    def __repr__(self) -> str:
        return f"ResultSet({len(self._matches)} matches on {len(self._by_page)} pages)"

    def on_page(self, page_number: int) -> list[tuple[int, SearchMatch]]:
        """Return (result_index, match) pairs for one page, in result order."""
        return [(idx, self._matches[idx]) for idx in self._by_page.get(page_number, ())]

    def pages(self) -> list[int]:
        """Pages holding at least one match, ascending."""
        return sorted(self._by_page)


_EMPTY_RESULTS = ResultSet()


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    """Structured outcome of one search invocation."""

    query: str
    results: ResultSet
    failed_pages: tuple[int, ...] = ()


# ============================================================================
# Geometry Transform
# ============================================================================
def to_display_rect(
    intrinsic_rect: IntrinsicRect, page_viewport_height: float, scale: float
) -> DisplayRect:
    """
    Convert an intrinsic rect to top-left-origin display coordinates.

    Args:
        intrinsic_rect: Rect in page units, origin bottom-left
        page_viewport_height: Intrinsic (unscaled) height of the page
        scale: Zoom factor, must be > 0

    Returns:
        The rect flipped to a top-left origin and multiplied by *scale*
    """
    if not scale > 0:
        raise ValueError(f"scale must be positive, got {scale!r}")
    return DisplayRect(
        top=(page_viewport_height - intrinsic_rect.y - intrinsic_rect.height) * scale,
        left=intrinsic_rect.x * scale,
        width=intrinsic_rect.width * scale,
        height=intrinsic_rect.height * scale,
    )


# ============================================================================
# Match Extractor
# ============================================================================
def normalize_query(query: Optional[str]) -> str:
    """Map a missing or whitespace-only query to "" ("no search"); keep any other query as typed."""
    if not query or not query.strip():
        return ""
    return query


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_fragment(fragment, page_number: int) -> None:
    """Raise FragmentValidationError if *fragment* cannot be matched on *page_number*."""
    if not isinstance(fragment, TextFragment):
        raise FragmentValidationError(fragment, "not a TextFragment")
    if not isinstance(fragment.text, str):
        raise FragmentValidationError(fragment, "text is not a string")
    if fragment.page_number != page_number:
        raise FragmentValidationError(
            fragment, f"belongs to page {fragment.page_number}, not {page_number}"
        )
    for name in ("origin_x", "origin_y", "width", "height"):
        if not _is_number(getattr(fragment, name)):
            raise FragmentValidationError(fragment, f"{name} is not a finite number")
    if fragment.width < 0 or fragment.height < 0:
        raise FragmentValidationError(fragment, "negative size")


def extract_matches(
    fragments: Sequence[TextFragment], query: str, page_number: int
) -> list[SearchMatch]:
    """
    Find the fragments of one page that contain *query*.

    Matching is a literal, case-insensitive substring test. A fragment yields
    at most one match carrying the fragment's own rect, so repeated
    occurrences inside a fragment are not localized separately. Output order
    follows input order. Malformed fragments are logged and skipped.
    """
    needle = normalize_query(query).casefold()
    if not needle:
        return []

    matches = []
    for fragment in fragments:
        try:
            validate_fragment(fragment, page_number)
        except FragmentValidationError as exc:
            LOGGER.warning("Skipping fragment on page %s: %s", page_number, exc.reason)
            continue
        if needle in fragment.text.casefold():
            matches.append(SearchMatch(page_number, fragment.text, fragment.rect))
    return matches


# ============================================================================
# Result Cursor
# ============================================================================
class ResultCursor:
    """
    Pointer to the active search result.

    ``current_index`` is -1 when there is no active result and otherwise a
    valid position in the ResultSet the cursor was last reset with.
    """

    def __init__(self):
        self._results: ResultSet = ResultSet.empty()
        self.current_index: int = -1

    def reset(self, result_set: ResultSet) -> None:
        self._results = result_set
        self.current_index = 0 if len(result_set) else -1

    @property
    def count(self) -> int:
        return len(self._results)

    @property
    def results(self) -> ResultSet:
        return self._results

    def next(self) -> Optional[SearchMatch]:
        n = len(self._results)
        if n:
            self.current_index = (self.current_index + 1) % n
        return self.active()

    def previous(self) -> Optional[SearchMatch]:
        n = len(self._results)
        if n:
            self.current_index = (self.current_index - 1 + n) % n
        return self.active()

    def select(self, index: int) -> SearchMatch:
        if not 0 <= index < len(self._results):
            raise IndexError(f"result index {index} out of range")
        self.current_index = index
        return self._results[index]

    def active(self) -> Optional[SearchMatch]:
        if self.current_index == -1:
            return None
        return self._results[self.current_index]

    def position(self) -> tuple[int, int]:
        """Return (1-based position, total) for "N of M" display."""
        if self.current_index == -1:
            return 0, 0
        return self.current_index + 1, len(self._results)


# ============================================================================
# Zoom Controller
# ============================================================================
class ZoomController:
    """Owns the zoom scale; clamps, steps and notifies listeners of changes."""

    MIN_SCALE: float = 0.5
    MAX_SCALE: float = 2.0
    STEP_FACTOR: float = 1.2

    def __init__(self, scale: float = 1.0):
        self._initial = self._clamp(scale)
        self._scale = self._initial
        self._listeners: list[Callable[[float], None]] = []

    @classmethod
    def _clamp(cls, value: float) -> float:
        if not _is_number(value):
            raise ValueError(f"zoom scale must be a finite number, got {value!r}")
        return max(cls.MIN_SCALE, min(cls.MAX_SCALE, float(value)))

    def add_listener(self, callback: Callable[[float], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[float], None]) -> None:
        self._listeners.remove(callback)

    def _update(self, value: float) -> float:
        value = self._clamp(value)
        if value != self._scale:
            self._scale = value
            for callback in list(self._listeners):
                callback(value)
        return self._scale

    def step_in(self) -> float:
        return self._update(self._scale * self.STEP_FACTOR)

    def step_out(self) -> float:
        return self._update(self._scale / self.STEP_FACTOR)

    def set_scale(self, value: float) -> float:
        return self._update(value)

    def reset(self) -> float:
        return self._update(self._initial)

    def current(self) -> float:
        return self._scale


# ============================================================================
# Highlight Projector
# ============================================================================
def highlights_for_page(
    page_number: int,
    result_set: ResultSet,
    cursor: ResultCursor,
    scale: float,
    page_viewport_height: float,
) -> list[HighlightRect]:
    """
    Project the stored matches of one page into display space.

    Query-only: neither the result set, the cursor nor the zoom is touched.
    """
    highlights = []
    for idx, match in result_set.on_page(page_number):
        rect = to_display_rect(match.rect, page_viewport_height, scale)
        highlights.append(
            HighlightRect(
                top=rect.top,
                left=rect.left,
                width=rect.width,
                height=rect.height,
                is_active=idx == cursor.current_index,
                result_index=idx,
            )
        )
    return highlights


# ============================================================================
# Viewer State
# ============================================================================
class ViewerState:
    """
    Single owner of the mutable search state.

    Holds the document handle, the committed ResultSet, the cursor and the
    zoom controller. Search invocations are tagged with a token; only the
    most recently issued token may commit.
    """

    def __init__(self, zoom: Optional[ZoomController] = None):
        self.document = None
        self.query: str = ""
        self.results: ResultSet = ResultSet.empty()
        self.failed_pages: tuple[int, ...] = ()
        self.cursor = ResultCursor()
        self.zoom = zoom if zoom is not None else ZoomController()
        self._token = 0

    def set_document(self, document) -> None:
        """Swap the document, cancelling in-flight searches and clearing results."""
        self._token += 1
        self.document = document
        self._clear_results()
        self.zoom.reset()
        LOGGER.debug("Document swapped; search token now %d", self._token)

    def clear(self) -> None:
        self._token += 1
        self._clear_results()

    def _clear_results(self) -> None:
        self.query = ""
        self.results = ResultSet.empty()
        self.failed_pages = ()
        self.cursor.reset(self.results)

    def begin_search(self) -> int:
        self._token += 1
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    def commit(self, token: int, outcome: SearchOutcome) -> bool:
        """Install *outcome* if *token* is still current; otherwise discard it."""
        if not self.is_current(token):
            LOGGER.debug(
                "Discarding stale search %r (token %d, current %d)",
                outcome.query,
                token,
                self._token,
            )
            return False
        self.query = outcome.query
        self.results = outcome.results
        self.failed_pages = outcome.failed_pages
        self.cursor.reset(outcome.results)
        return True

    def active_match(self) -> Optional[SearchMatch]:
        return self.cursor.active()

    def highlights_for_page(
        self, page_number: int, page_viewport_height: float
    ) -> list[HighlightRect]:
        return highlights_for_page(
            page_number,
            self.results,
            self.cursor,
            self.zoom.current(),
            page_viewport_height,
        )


# ============================================================================
# Search Index Builder
# ============================================================================
class SearchIndexBuilder:
    """
    Drives match extraction across every page of a document.

    The extraction collaborator (*source*) must provide
    ``get_page_count(document)`` and an awaitable
    ``get_page_text_fragments(document, page_number)``.
    """

    def __init__(
        self,
        source,
        state: ViewerState,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        self.source = source
        self.state = state
        self.progress_callback = progress_callback

    async def search(self, document, query: str) -> ResultSet:
        """
        Search *document* and commit the ResultSet if no newer search started.

        Returns:
            The committed ResultSet, or an empty one if this invocation was
            superseded before it finished

        Raises:
            DocumentUnreadable: the document could not be read at all
        """
        token = self.state.begin_search()
        try:
            outcome = await self.collect(document, query, token)
        except StaleSearchDiscarded:
            return ResultSet.empty()
        except DocumentUnreadable:
            if not self.state.is_current(token):
                return ResultSet.empty()
            self.state.commit(token, SearchOutcome(normalize_query(query), ResultSet.empty()))
            raise

        if not self.state.commit(token, outcome):
            return ResultSet.empty()
        return outcome.results

    async def collect(self, document, query: str, token: int) -> SearchOutcome:
        """
        Gather matches page by page without committing them.

        Raises:
            StaleSearchDiscarded: *token* was superseded while extracting
            DocumentUnreadable: the document could not be read at all
        """
        query = normalize_query(query)
        if document is None or not query:
            return SearchOutcome(query, ResultSet.empty())

        try:
            page_count = self.source.get_page_count(document)
        except DocumentError as exc:
            self._ensure_current(token, query)
            raise DocumentUnreadable(str(exc)) from exc

        matches: list[SearchMatch] = []
        failed_pages: list[int] = []

        for page_number in range(1, page_count + 1):
            try:
                fragments = await self.source.get_page_text_fragments(
                    document, page_number
                )
            except DocumentUnreadable:
                self._ensure_current(token, query)
                raise
            except PageExtractionFailed as exc:
                LOGGER.warning("%s; skipping page", exc)
                failed_pages.append(page_number)
                fragments = []
            self._ensure_current(token, query)

            matches.extend(extract_matches(fragments, query, page_number))

            if self.progress_callback:
                self.progress_callback(page_number, page_count)

        if page_count and len(failed_pages) == page_count:
            raise DocumentUnreadable(
                f"Text extraction failed on all {page_count} pages"
            )

        LOGGER.info(
            "Search %r: %d matches across %d pages", query, len(matches), page_count
        )
        return SearchOutcome(query, ResultSet(matches), tuple(failed_pages))

    def _ensure_current(self, token: int, query: str) -> None:
        if not self.state.is_current(token):
            raise StaleSearchDiscarded(f"search {query!r} superseded")


def run_search(builder: SearchIndexBuilder, document, query: str) -> ResultSet:
    """Blocking wrapper around ``builder.search`` for callers without an event loop."""
    return asyncio.run(builder.search(document, query))
