from __future__ import annotations

from pathlib import Path
import sys
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from routine_builder.services.markup import render_markup


class TestRenderMarkup(unittest.TestCase):
    def test_plain_text_is_unchanged(self) -> None:
        for text in ("Apply SPF every morning.", "a < b & [not a link]", "(https://example.com)", ""):
            self.assertEqual(render_markup(text), text)

    def test_link_becomes_single_anchor(self) -> None:
        html = render_markup("See [here](https://example.com/x) now")
        self.assertEqual(
            html,
            'See <a href="https://example.com/x" target="_blank" rel="noopener noreferrer">here</a> now',
        )
        self.assertEqual(html.count("<a "), 1)

    def test_line_breaks(self) -> None:
        self.assertEqual(render_markup("AM:\n1. Cleanse\n2. SPF"), "AM:<br>1. Cleanse<br>2. SPF")

    def test_non_http_links_pass_through(self) -> None:
        text = "[mail](mailto:a@b.c) and [ftp](ftp://host/file)"
        self.assertEqual(render_markup(text), text)

    def test_multiple_links_and_breaks(self) -> None:
        html = render_markup("[A](http://a.example)\n[B](https://b.example/p?q=1)")
        self.assertEqual(html.count("<a "), 2)
        self.assertIn('href="http://a.example"', html)
        self.assertIn('href="https://b.example/p?q=1"', html)
        self.assertIn("<br>", html)

    def test_content_is_not_escaped(self) -> None:
        self.assertEqual(render_markup("<b>bold</b>"), "<b>bold</b>")
