import logging
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

import fitz
from typer.testing import CliRunner

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from cli import _setup_logging, app


runner = CliRunner()


class TestSetupLogging(unittest.TestCase):
    def test_verbose_sets_debug(self):
        with patch("cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
        self.assertEqual(mock_config.call_args[1]["level"], logging.DEBUG)

    def test_default_is_info(self):
        with patch("cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
        self.assertEqual(mock_config.call_args[1]["level"], logging.INFO)


class TestSearchCommand(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.pdf_path = os.path.join(self.tmp.name, "invoice.pdf")
        doc = fitz.open()
        for lines in (["Acme Corp"], ["Total due", "Subtotal"], ["Thank you"]):
            page = doc.new_page(width=612, height=792)
            for i, text in enumerate(lines):
                page.insert_text((72, 100 + 40 * i), text, fontsize=12)
        doc.save(self.pdf_path)
        doc.close()

    def tearDown(self):
        self.tmp.cleanup()

    def test_lists_matches(self):
        result = runner.invoke(app, ["search", self.pdf_path, "total"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("2 of 2 match(es) shown for 'total' at 1.00x", result.output)

    def test_page_filter_and_scale(self):
        result = runner.invoke(
            app, ["search", self.pdf_path, "thank", "--page", "3", "--scale", "5"]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("1 of 1 match(es) shown for 'thank' at 2.00x", result.output)

    def test_page_without_matches(self):
        result = runner.invoke(app, ["search", self.pdf_path, "total", "-p", "1"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("0 of 2 match(es)", result.output)

    def test_no_matches(self):
        result = runner.invoke(app, ["search", self.pdf_path, "refund"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No matches found.", result.output)

    def test_page_out_of_range(self):
        result = runner.invoke(app, ["search", self.pdf_path, "total", "--page", "9"])
        self.assertEqual(result.exit_code, 2)

    def test_page_out_of_range_without_matches(self):
        result = runner.invoke(app, ["search", self.pdf_path, "refund", "--page", "9"])
        self.assertEqual(result.exit_code, 2)
        self.assertNotIn("No matches found.", result.output)

    def test_invalid_scale(self):
        result = runner.invoke(app, ["search", self.pdf_path, "total", "--scale", "nan"])
        self.assertEqual(result.exit_code, 2)

    def test_invalid_granularity(self):
        result = runner.invoke(
            app, ["search", self.pdf_path, "total", "--granularity", "glyph"]
        )
        self.assertEqual(result.exit_code, 2)

    def test_unreadable_file(self):
        bad_path = os.path.join(self.tmp.name, "broken.pdf")
        with open(bad_path, "wb") as f:
            f.write(b"not a pdf at all")
        result = runner.invoke(app, ["search", bad_path, "total"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Cannot open", result.output)

    def test_missing_file(self):
        missing = os.path.join(self.tmp.name, "missing.pdf")
        result = runner.invoke(app, ["search", missing, "total"])
        self.assertNotEqual(result.exit_code, 0)


if __name__ == "__main__":
    unittest.main()
