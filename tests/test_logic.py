import unittest
import os
import sys

# Ensure the root directory is in path so we can import search_logic
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from search_logic import (
    DisplayRect,
    HighlightRect,
    IntrinsicRect,
    ResultCursor,
    ResultSet,
    SearchMatch,
    SearchOutcome,
    TextFragment,
    ViewerState,
    ZoomController,
    extract_matches,
    highlights_for_page,
    normalize_query,
    to_display_rect,
)


def make_match(page, text="match", x=0.0, y=0.0, w=10.0, h=10.0):
    return SearchMatch(page, text, IntrinsicRect(x, y, w, h))


class TestGeometryTransform(unittest.TestCase):
    def test_flips_origin_and_scales(self):
        rect = IntrinsicRect(10, 700, 80, 12)
        self.assertEqual(to_display_rect(rect, 792, 1.0), DisplayRect(80, 10, 80, 12))
        self.assertEqual(to_display_rect(rect, 792, 1.5), DisplayRect(120, 15, 120, 18))

    def test_doubling_scale_doubles_every_component(self):
        rect = IntrinsicRect(33.3, 512.7, 41.9, 9.6)
        for scale in (0.5, 0.75, 1.0, 1.2):
            single = to_display_rect(rect, 842, scale)
            double = to_display_rect(rect, 842, scale * 2)
            self.assertEqual(double.top, single.top * 2)
            self.assertEqual(double.left, single.left * 2)
            self.assertEqual(double.width, single.width * 2)
            self.assertEqual(double.height, single.height * 2)

    def test_top_over_scale_is_scale_invariant(self):
        rect = IntrinsicRect(72, 400.25, 100, 14.5)
        expected = 842 - 400.25 - 14.5
        for scale in (0.5, 0.6944, 1.0, 1.44, 2.0):
            self.assertAlmostEqual(to_display_rect(rect, 842, scale).top / scale, expected)

    def test_repeated_application_is_stable(self):
        rect = IntrinsicRect(1, 2, 3, 4)
        self.assertEqual(to_display_rect(rect, 100, 1.728), to_display_rect(rect, 100, 1.728))

    def test_rejects_non_positive_scale(self):
        with self.assertRaises(ValueError):
            to_display_rect(IntrinsicRect(0, 0, 1, 1), 100, 0)

    def test_from_corners_normalizes(self):
        self.assertEqual(IntrinsicRect.from_corners(90, 712, 10, 700), IntrinsicRect(10, 700, 80, 12))


class TestMatchExtractor(unittest.TestCase):
    def setUp(self):
        self.fragments = [
            TextFragment("Invoice TOTAL", 1, 10, 700, 80, 12),
            TextFragment("subtotal: 12.00", 1, 10, 680, 90, 12),
            TextFragment("Shipping", 1, 10, 660, 50, 12),
            TextFragment("total total total", 1, 10, 640, 100, 12),
        ]

    def test_case_insensitive_substring(self):
        matches = extract_matches(self.fragments, "Total", 1)
        self.assertEqual(
            [m.text for m in matches],
            ["Invoice TOTAL", "subtotal: 12.00", "total total total"],
        )
        for m in matches:
            self.assertIn("total", m.text.casefold())

    def test_one_match_per_fragment_with_fragment_rect(self):
        matches = extract_matches(self.fragments, "total", 1)
        self.assertEqual(len([m for m in matches if m.text == "total total total"]), 1)
        self.assertEqual(matches[0].rect, IntrinsicRect(10, 700, 80, 12))
        self.assertEqual(matches[0].page_number, 1)

    def test_empty_query_matches_nothing(self):
        self.assertEqual(extract_matches(self.fragments, "", 1), [])
        self.assertEqual(extract_matches(self.fragments, "   ", 1), [])
        self.assertEqual(normalize_query(None), "")

    def test_surrounding_spaces_are_part_of_the_query(self):
        fragments = [
            TextFragment("Subtotal", 1, 0, 0, 10, 10),
            TextFragment("total due", 1, 0, 20, 10, 10),
        ]
        self.assertEqual([m.text for m in extract_matches(fragments, "total ", 1)], ["total due"])
        self.assertEqual([m.text for m in extract_matches(fragments, " due", 1)], ["total due"])
        for m in extract_matches(fragments, "total ", 1):
            self.assertIn("total ", m.text.casefold())
        self.assertEqual(normalize_query("  total "), "  total ")

    def test_literal_not_regex(self):
        fragments = [TextFragment("price (usd) 1.00", 1, 0, 0, 10, 10)]
        self.assertEqual(len(extract_matches(fragments, "(usd)", 1)), 1)
        self.assertEqual(extract_matches(fragments, "1.0.", 1), [])

    def test_malformed_fragments_are_skipped(self):
        fragments = [
            TextFragment("total one", 1, 0, 0, 10, 10),
            TextFragment(None, 1, 0, 0, 10, 10),
            TextFragment("total nan", 1, float("nan"), 0, 10, 10),
            TextFragment("total negative", 1, 0, 0, -5, 10),
            TextFragment("total wrong page", 2, 0, 0, 10, 10),
            {"text": "total dict"},
            TextFragment("total two", 1, 0, 20, 10, 10),
        ]
        with self.assertLogs("search_logic", level="WARNING") as logs:
            matches = extract_matches(fragments, "total", 1)
        self.assertEqual([m.text for m in matches], ["total one", "total two"])
        self.assertEqual(len(logs.output), 5)


class TestResultSet(unittest.TestCase):
    def test_on_page_keeps_global_indices(self):
        results = ResultSet([make_match(1), make_match(2, "a"), make_match(2, "b"), make_match(3)])
        self.assertEqual([idx for idx, _ in results.on_page(2)], [1, 2])
        self.assertEqual(results.on_page(4), [])
        self.assertEqual(results.pages(), [1, 2, 3])

    def test_sequence_behaviour(self):
        matches = [make_match(1, "x"), make_match(1, "y")]
        results = ResultSet(matches)
        self.assertEqual(len(results), 2)
        self.assertEqual(list(results), matches)
        self.assertEqual(results[1].text, "y")
        self.assertEqual(results, ResultSet(matches))
        self.assertFalse(ResultSet.empty())

    def test_slice_is_a_result_set(self):
        results = ResultSet([make_match(1, "x"), make_match(2, "y"), make_match(3, "z")])
        tail = results[1:]
        self.assertIsInstance(tail, ResultSet)
        self.assertEqual([m.text for m in tail], ["y", "z"])
        self.assertEqual(tail.pages(), [2, 3])


class TestResultCursor(unittest.TestCase):
    def test_before_reset_is_noop(self):
        cursor = ResultCursor()
        self.assertIsNone(cursor.next())
        self.assertIsNone(cursor.previous())
        self.assertEqual(cursor.current_index, -1)
        self.assertIsNone(cursor.active())

    def test_reset(self):
        cursor = ResultCursor()
        results = ResultSet([make_match(1), make_match(2)])
        cursor.reset(results)
        self.assertEqual(cursor.current_index, 0)
        self.assertEqual(cursor.active(), results[0])
        cursor.reset(ResultSet.empty())
        self.assertEqual(cursor.current_index, -1)
        self.assertEqual(cursor.position(), (0, 0))

    def test_next_wraps_from_last(self):
        cursor = ResultCursor()
        cursor.reset(ResultSet([make_match(i) for i in range(1, 6)]))
        cursor.select(4)
        cursor.next()
        self.assertEqual(cursor.current_index, 0)

    def test_previous_wraps_from_first(self):
        cursor = ResultCursor()
        cursor.reset(ResultSet([make_match(i) for i in range(1, 4)]))
        self.assertEqual(cursor.previous().page_number, 3)
        self.assertEqual(cursor.current_index, 2)

    def test_next_n_times_cycles(self):
        cursor = ResultCursor()
        cursor.reset(ResultSet([make_match(i) for i in range(1, 8)]))
        cursor.select(3)
        for _ in range(7):
            cursor.next()
        self.assertEqual(cursor.current_index, 3)

    def test_index_stays_in_range(self):
        cursor = ResultCursor()
        cursor.reset(ResultSet([make_match(1), make_match(1), make_match(2)]))
        for step in "nnpppnpnnnppp":
            if step == "n":
                cursor.next()
            else:
                cursor.previous()
            self.assertTrue(-1 <= cursor.current_index <= 2)

    def test_select_and_position(self):
        cursor = ResultCursor()
        cursor.reset(ResultSet([make_match(1), make_match(2), make_match(3)]))
        cursor.select(1)
        self.assertEqual(cursor.position(), (2, 3))
        with self.assertRaises(IndexError):
            cursor.select(3)
        self.assertEqual(cursor.current_index, 1)


class TestZoomController(unittest.TestCase):
    def test_step_in_saturates(self):
        zoom = ZoomController()
        previous = zoom.current()
        for _ in range(10):
            value = zoom.step_in()
            self.assertGreaterEqual(value, previous)
            self.assertLessEqual(value, 2.0)
            previous = value
        self.assertEqual(zoom.current(), 2.0)

    def test_step_out_saturates(self):
        zoom = ZoomController()
        previous = zoom.current()
        for _ in range(10):
            value = zoom.step_out()
            self.assertLessEqual(value, previous)
            self.assertGreaterEqual(value, 0.5)
            previous = value
        self.assertEqual(zoom.current(), 0.5)

    def test_step_factor(self):
        zoom = ZoomController()
        self.assertAlmostEqual(zoom.step_in(), 1.2)
        self.assertAlmostEqual(zoom.step_in(), 1.44)
        self.assertAlmostEqual(zoom.step_out(), 1.2)

    def test_set_scale_clamps(self):
        zoom = ZoomController()
        self.assertEqual(zoom.set_scale(10), 2.0)
        self.assertEqual(zoom.set_scale(0.01), 0.5)
        self.assertEqual(zoom.set_scale(1.3), 1.3)
        with self.assertRaises(ValueError):
            zoom.set_scale(float("nan"))
        self.assertEqual(zoom.current(), 1.3)

    def test_listeners_only_on_change(self):
        zoom = ZoomController()
        seen = []
        zoom.add_listener(seen.append)
        zoom.set_scale(1.0)
        zoom.step_in()
        zoom.set_scale(5)
        zoom.step_in()
        zoom.reset()
        self.assertEqual(len(seen), 3)
        self.assertEqual(seen[1:], [2.0, 1.0])
        zoom.remove_listener(seen.append)
        zoom.step_out()
        self.assertEqual(len(seen), 3)


class TestHighlightProjector(unittest.TestCase):
    def setUp(self):
        self.results = ResultSet(
            [
                make_match(1, "a", 10, 700, 80, 12),
                make_match(2, "b", 10, 700, 80, 12),
                make_match(2, "c", 20, 500, 40, 10),
            ]
        )
        self.cursor = ResultCursor()
        self.cursor.reset(self.results)

    def test_filters_page_and_flags_active(self):
        self.cursor.select(2)
        highlights = highlights_for_page(2, self.results, self.cursor, 1.0, 792)
        self.assertEqual(
            highlights,
            [
                HighlightRect(80, 10, 80, 12, False, 1),
                HighlightRect(282, 20, 40, 10, True, 2),
            ],
        )
        self.assertTrue(all(not h.is_active for h in highlights_for_page(1, self.results, self.cursor, 1.0, 792)))

    def test_zoom_reprojects_without_touching_state(self):
        before = (self.results, self.cursor.current_index)
        small = highlights_for_page(2, self.results, self.cursor, 1.0, 792)
        large = highlights_for_page(2, self.results, self.cursor, 2.0, 792)
        for s, l in zip(small, large):
            self.assertEqual(l.top, s.top * 2)
            self.assertEqual(l.left, s.left * 2)
        self.assertEqual(before, (self.results, self.cursor.current_index))

    def test_no_active_when_cursor_empty(self):
        cursor = ResultCursor()
        self.assertTrue(all(not h.is_active for h in highlights_for_page(1, self.results, cursor, 1.0, 792)))

    def test_contains(self):
        h = HighlightRect(80, 10, 80, 12, True, 0)
        self.assertTrue(h.contains(50, 85))
        self.assertFalse(h.contains(5, 85))


class TestViewerState(unittest.TestCase):
    def test_stale_commit_is_discarded(self):
        state = ViewerState()
        old = state.begin_search()
        new = state.begin_search()
        self.assertFalse(state.commit(old, SearchOutcome("a", ResultSet([make_match(1)]))))
        self.assertEqual(len(state.results), 0)
        self.assertTrue(state.commit(new, SearchOutcome("b", ResultSet([make_match(1), make_match(2)]))))
        self.assertEqual(state.query, "b")
        self.assertEqual(state.cursor.current_index, 0)

    def test_set_document_clears_results_and_resets_zoom(self):
        state = ViewerState(ZoomController(1.0))
        token = state.begin_search()
        state.commit(token, SearchOutcome("a", ResultSet([make_match(1)]), (3,)))
        state.zoom.step_in()
        state.set_document(object())
        self.assertFalse(state.is_current(token))
        self.assertEqual(len(state.results), 0)
        self.assertEqual(state.failed_pages, ())
        self.assertEqual(state.cursor.current_index, -1)
        self.assertEqual(state.zoom.current(), 1.0)

    def test_highlights_use_state_zoom(self):
        state = ViewerState()
        token = state.begin_search()
        state.commit(token, SearchOutcome("t", ResultSet([make_match(2, "t", 10, 700, 80, 12)])))
        state.zoom.set_scale(2.0)
        self.assertEqual(state.highlights_for_page(2, 792), [HighlightRect(160, 20, 160, 24, True, 0)])
        self.assertEqual(state.active_match().text, "t")


if __name__ == "__main__":
    unittest.main()
