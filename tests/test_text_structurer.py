"""Tests for line grouping, heading flags and the per-page cache."""

import pytest

from pagewise.config import StructurerConfig
from pagewise.reader.text_structurer import TextStructurer, TextToken


@pytest.fixture
def structurer():
    return TextStructurer()


def page_tokens():
    return [
        TextToken("Chapter", x=72, y=700, height=18),
        TextToken("Two", x=150, y=700.5, height=18),
        TextToken("The first line of", x=72, y=670, height=10),
        TextToken("body text.", x=200, y=671, height=10),
        TextToken("   ", x=72, y=650, height=10),
        TextToken("Second body line.", x=72, y=655, height=10),
    ]


class TestLineGrouping:
    def test_tokens_within_tolerance_share_a_line(self, structurer):
        result = structurer.structure(1, page_tokens())
        assert [line.text for line in result.all_text] == [
            "Chapter Two",
            "The first line of body text.",
            "Second body line.",
        ]

    def test_line_height_is_max_token_height(self, structurer):
        tokens = [TextToken("Big", y=10, height=20), TextToken("small", y=10, height=8)]
        result = structurer.structure(1, tokens)
        assert result.all_text[0].height == 20

    def test_raw_text_and_word_count(self, structurer):
        result = structurer.structure(1, page_tokens())
        assert result.raw.startswith("Chapter Two The first line")
        assert result.word_count == 11

    def test_empty_page(self, structurer):
        result = structurer.structure(3, [])
        assert result.all_text == []
        assert result.headings == []


class TestHeadings:
    def test_large_short_line_is_heading(self, structurer):
        result = structurer.structure(1, page_tokens())
        assert [h.text for h in result.headings] == ["Chapter Two"]

    def test_long_large_line_is_not_heading(self, structurer):
        text = "word " * 30
        result = structurer.structure(1, [TextToken(text, y=10, height=18)])
        assert result.headings == []

    def test_bold_body_text_is_not_heading(self, structurer):
        result = structurer.structure(1, [TextToken("Note", y=10, height=10, bold=True)])
        assert result.headings == []
        assert result.all_text[0].bold

    def test_thresholds_come_from_config(self):
        structurer = TextStructurer(StructurerConfig(heading_min_height=20.0))
        result = structurer.structure(1, page_tokens())
        assert result.headings == []


class TestCache:
    def test_provider_called_once_per_page(self, structurer):
        calls = []

        def provider(page):
            calls.append(page)
            return page_tokens()

        first = structurer.ensure(4, provider)
        second = structurer.ensure(4, provider)
        assert first is second
        assert calls == [4]

    def test_extraction_failure_leaves_page_uncached(self, structurer):
        def provider(page):
            raise RuntimeError("damaged content stream")

        assert structurer.ensure(2, provider) is None
        assert structurer.get(2) is None
        assert structurer.headings(2) == []

    def test_restructuring_replaces_cached_entry(self, structurer):
        structurer.structure(1, page_tokens())
        structurer.structure(1, [TextToken("Other", y=1, height=10)])
        assert structurer.get(1).raw == "Other"

    def test_invalidate(self, structurer):
        structurer.structure(1, page_tokens())
        structurer.structure(2, page_tokens())
        structurer.invalidate(1)
        assert structurer.get(1) is None
        assert structurer.get(2) is not None
        structurer.invalidate()
        assert len(structurer) == 0

    def test_average_words_per_page(self, structurer):
        assert structurer.average_words_per_page(275) == 275
        structurer.structure(1, [TextToken("one two three four", y=1, height=10)])
        structurer.structure(2, [TextToken("one two", y=1, height=10)])
        assert structurer.average_words_per_page(275) == 3
