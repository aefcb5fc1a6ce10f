"""Tests for the section arena, page lookups and title patterns."""

from pagewise.core.outline import OutlineNode, normalize_outline
from pagewise.core.section_index import SectionIndex, title_pattern
from pagewise.core.sections import Section, SectionKind
from pagewise.core.similarity import keywords, text_similarity


class TestPageMapping:
    def test_every_page_maps_to_its_section(self, paper_index):
        assert [s.title for s in paper_index.sections_for_page(1)] == ["Introduction"]
        assert [s.title for s in paper_index.sections_for_page(12)] == ["Methods and Materials"]
        assert [s.title for s in paper_index.sections_for_page(20)] == ["Results"]
        assert paper_index.sections_for_page(21) == []

    def test_shared_start_page_maps_both(self):
        outline = [
            OutlineNode("Intro", 1),
            OutlineNode("Methods", 6, [OutlineNode("Data Collection", 6)]),
        ]
        index = SectionIndex(normalize_outline(outline, 10), 10)
        assert [s.title for s in index.sections_for_page(6)] == ["Methods", "Data Collection"]
        assert index.primary_section(6).title == "Methods"
        assert [s.title for s in index.sections_for_page(7)] == ["Data Collection"]

    def test_lookup_by_id(self, paper_index):
        section = paper_index.sections_for_page(6)[0]
        assert paper_index.get(section.id) is section
        assert section.id in paper_index
        assert paper_index.get("nope") is None
        assert paper_index.get(None) is None
        assert len(paper_index) == 3


class TestTitlePatterns:
    def test_whitespace_insensitive(self):
        pattern = title_pattern("Getting  Started")
        assert pattern.search("GETTING STARTED with the tool")
        assert pattern.search("gettingstarted")
        assert pattern.search("getting\n  started")

    def test_special_characters_are_escaped(self):
        pattern = title_pattern("1.2 (Draft) [v2]?")
        assert pattern.search("see 1.2 (draft) [v2]? for details")
        assert not pattern.search("1x2 draft v2")

    def test_no_partial_word_match(self):
        pattern = title_pattern("Intro")
        assert not pattern.search("introduction")
        assert pattern.search("the intro, briefly")

    def test_blank_title_has_no_pattern(self):
        assert title_pattern("   ") is None

    def test_keywords_skip_short_tokens(self):
        assert keywords("The Art of War") == {"the", "art", "war"}

    def test_index_stores_patterns(self, paper_index):
        section = paper_index.sections_for_page(6)[0]
        pattern = paper_index.pattern_for(section.id)
        assert pattern.keywords == {"methods", "and", "materials"}
        assert pattern.pattern.search("methods and materials")


class TestDynamicSections:
    def test_add_dynamic_updates_lookups(self, paper_index):
        section = Section(id="dynamic_section_14_discussion", title="Discussion", start_page=14, end_page=14, level=2)
        paper_index.add_dynamic(section)

        assert section.kind == SectionKind.DYNAMIC
        assert [s.title for s in paper_index.sections_for_page(14)] == ["Results", "Discussion"]
        assert paper_index.pattern_for(section.id).keywords == {"discussion"}
        assert paper_index.dynamic_sections == [section]
        assert section in paper_index.roots

    def test_duplicate_id_returns_existing(self, paper_index):
        first = paper_index.add_dynamic(Section(id="dyn", title="A", start_page=2, end_page=2))
        second = paper_index.add_dynamic(Section(id="dyn", title="B", start_page=3, end_page=3))
        assert second is first
        assert len(paper_index) == 4


class TestSimilarity:
    def test_identical_text(self):
        assert text_similarity("the quick fox", "the quick fox") == 1.0

    def test_disjoint_text(self):
        assert text_similarity("a b", "c d") == 0.0

    def test_empty_text(self):
        assert text_similarity("", "") == 0.0
        assert text_similarity("words", "") == 0.0

    def test_case_and_punctuation_ignored(self):
        assert text_similarity("Hello, World!", "hello world") == 1.0

    def test_partial_overlap(self):
        assert text_similarity("red green blue", "green blue yellow") == 0.5
