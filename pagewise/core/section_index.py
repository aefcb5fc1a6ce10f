"""Section arena plus the lookups the detector reads: page -> sections and title patterns."""

import re
import logging
from dataclasses import dataclass

from .sections import Section, SectionKind, flatten_sections
from .similarity import keywords

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TitlePattern:
    pattern: re.Pattern | None
    keywords: frozenset[str]


def title_pattern(title: str) -> re.Pattern | None:
    """Case- and whitespace-insensitive pattern for a section title."""
    words = title.split()
    if not words:
        return None
    body = r"\s*".join(re.escape(w) for w in words)
    return re.compile(rf"(?<!\w){body}(?!\w)", re.IGNORECASE)


class SectionIndex:
    """Owns every Section of a document, configured or dynamic, keyed by id."""

    def __init__(self, sections: list[Section], total_pages: int):
        self.roots = list(sections)
        self.total_pages = total_pages
        self._sections: dict[str, Section] = {}
        self._page_to_sections: dict[int, list[Section]] = {}
        self._patterns: dict[str, TitlePattern] = {}
        for section in flatten_sections(self.roots):
            self._sections[section.id] = section
        self._rebuild()

    def _rebuild(self) -> None:
        self._page_to_sections = {}
        self._patterns = {}
        for section in self._sections.values():
            for page in range(section.start_page, section.end_page + 1):
                self._page_to_sections.setdefault(page, []).append(section)
            self._patterns[section.id] = TitlePattern(
                pattern=title_pattern(section.title),
                keywords=keywords(section.title),
            )
        logger.debug(
            "Section index built: %d sections, %d page mappings",
            len(self._sections), len(self._page_to_sections),
        )

    # ── Lookups ──────────────────────────────────────────────────────────

    def get(self, section_id: str | None) -> Section | None:
        if section_id is None:
            return None
        return self._sections.get(section_id)

    def __contains__(self, section_id: str) -> bool:
        return section_id in self._sections

    def __iter__(self):
        return iter(self._sections.values())

    def __len__(self) -> int:
        return len(self._sections)

    def sections_for_page(self, page: int) -> list[Section]:
        return list(self._page_to_sections.get(page, []))

    def primary_section(self, page: int) -> Section | None:
        sections = self._page_to_sections.get(page)
        return sections[0] if sections else None

    def pattern_for(self, section_id: str) -> TitlePattern | None:
        return self._patterns.get(section_id)

    def has_page(self, page: int) -> bool:
        return 1 <= page <= self.total_pages

    @property
    def dynamic_sections(self) -> list[Section]:
        return [s for s in self._sections.values() if s.is_dynamic]

    # ── Mutation ─────────────────────────────────────────────────────────

    def add_dynamic(self, section: Section) -> Section:
        """Register a runtime section; returns the already-known one if the id exists."""
        existing = self._sections.get(section.id)
        if existing is not None:
            return existing
        section.kind = SectionKind.DYNAMIC
        self._sections[section.id] = section
        self.roots.append(section)
        self._rebuild()
        logger.info("Created dynamic section %r on page %d", section.title, section.start_page)
        return section
