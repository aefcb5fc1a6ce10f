"""Multi-signal section detection.

Every signal is a scorer: a plain function ``(fragment, page, index, context,
config) -> DetectionCandidate | None`` that only reads the SectionIndex. The
detector runs the scorers in priority order and keeps the most confident
candidate; ties go to the earlier scorer. Fallback scorers only run when the
primary ones produce nothing above the shared minimum confidence.

A winning candidate may carry a proposed dynamic section; only then does the
detector touch the index, registering the section and announcing it through
``on_section_created``.
"""

import re
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable

from ..config import DetectorConfig
from ..reader.geometry import GeometryProvider, VisiblePage
from ..reader.text_structurer import Line, TextStructurer
from .section_index import SectionIndex
from .sections import Section, SectionKind
from .similarity import keywords, text_similarity

logger = logging.getLogger(__name__)


class DetectionMethod(str, Enum):
    PAGE_MAPPING = "page_mapping"
    TITLE_PATTERN = "title_pattern"
    KEYWORDS = "keywords"
    HEADING_SIMILARITY = "heading_similarity"
    HEADING_MATCH = "heading_match"
    DYNAMIC = "dynamic"
    PAGE_BASED = "page_based"


@dataclass
class DetectionCandidate:
    section: Section
    confidence: float
    method: DetectionMethod

    def to_dict(self) -> dict:
        return {
            "section_id": self.section.id,
            "title": self.section.title,
            "confidence": round(self.confidence, 4),
            "method": self.method.value,
        }


@dataclass
class DetectionContext:
    """What the caller knows about where the fragment came from."""
    font_size: float | None = None
    bold: bool = False
    y: float | None = None
    is_heading: bool = False
    headings: list[Line] | None = None   # filled from the text structurer when omitted


Scorer = Callable[[str, int, SectionIndex, DetectionContext, DetectorConfig], DetectionCandidate | None]


# ── Scorers ──────────────────────────────────────────────────────────────────

def score_page_mapping(fragment, page, index, context, config):
    sections = index.sections_for_page(page)
    if len(sections) != 1:
        return None
    return DetectionCandidate(sections[0], config.page_mapping_confidence, DetectionMethod.PAGE_MAPPING)


def score_title_pattern(fragment, page, index, context, config):
    if not fragment or not fragment.strip():
        return None

    fragment_words = keywords(fragment)
    primary = index.primary_section(page)
    best: DetectionCandidate | None = None

    for section in index.sections_for_page(page):
        pattern = index.pattern_for(section.id)
        if pattern is None:
            continue

        if pattern.pattern is not None and pattern.pattern.search(fragment):
            confidence = config.title_match_confidence
            method = DetectionMethod.TITLE_PATTERN
        elif pattern.keywords:
            matched = pattern.keywords & fragment_words
            if not matched:
                continue
            confidence = len(matched) / len(pattern.keywords) * config.keyword_weight
            method = DetectionMethod.KEYWORDS
        else:
            continue

        # both signals agree on this section
        if primary is not None and section.id == primary.id:
            confidence *= config.agreement_boost

        confidence = min(confidence, 1.0)
        if best is None or confidence > best.confidence:
            best = DetectionCandidate(section, confidence, method)

    return best


def score_heading_similarity(fragment, page, index, context, config):
    if not fragment or not context.headings:
        return None
    section = index.primary_section(page)
    if section is None:
        return None

    best_similarity = 0.0
    for heading in context.headings:
        similarity = text_similarity(fragment, heading.text)
        if similarity > best_similarity:
            best_similarity = similarity

    if best_similarity <= config.heading_similarity_threshold:
        return None
    return DetectionCandidate(
        section, best_similarity * config.heading_similarity_weight, DetectionMethod.HEADING_SIMILARITY,
    )


def looks_like_heading(fragment: str, context: DetectionContext, config: DetectorConfig) -> bool:
    text = (fragment or "").strip()
    if len(text) < 3 or len(text) >= config.dynamic_max_length:
        return False
    if not keywords(text, min_length=1):
        return False
    if context.is_heading:
        return True
    if context.font_size is None:
        return False
    if context.font_size > config.dynamic_min_font_size:
        return True
    # bold only counts at heading size, never for bold body text
    return context.bold and context.font_size > config.dynamic_bold_min_font_size


def heading_at(headings: list[Line], y: float, tolerance: float) -> Line | None:
    """Nearest heading at or above ``y`` (top-down coordinates), allowing ``tolerance`` below."""
    best = None
    for heading in headings:
        if heading.y > y + tolerance:
            continue
        if best is None or abs(heading.y - y) < abs(best.y - y):
            best = heading
    return best


def dynamic_section_id(page: int, title: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "_", title[:20].lower())
    return f"dynamic_section_{page}_{slug}"


def score_dynamic_heading(fragment, page, index, context, config):
    """Match a heading-like fragment to a section on the page, or propose a new one.

    With a pointer position and structured headings for the page, the
    heading above the pointer is scored instead of the fragment itself.
    """
    if context.y is not None and context.headings:
        anchor = heading_at(context.headings, context.y, config.heading_anchor_tolerance)
        if anchor is None:
            return None
        fragment = anchor.text
        context = DetectionContext(font_size=anchor.height, bold=anchor.bold, y=anchor.y, is_heading=True)
    if not looks_like_heading(fragment, context, config):
        return None
    title = " ".join(fragment.split())

    best: DetectionCandidate | None = None
    for section in index.sections_for_page(page):
        similarity = text_similarity(title, section.title)
        if similarity >= config.heading_similarity_threshold and (best is None or similarity > best.confidence):
            best = DetectionCandidate(section, similarity, DetectionMethod.HEADING_MATCH)
    if best is not None:
        return best

    section_id = dynamic_section_id(page, title)
    existing = index.get(section_id)
    if existing is not None:
        return DetectionCandidate(existing, config.dynamic_confidence, DetectionMethod.DYNAMIC)

    proposed = Section(
        id=section_id,
        title=title,
        start_page=page,
        end_page=page,
        level=2,
        kind=SectionKind.DYNAMIC,
    )
    return DetectionCandidate(proposed, config.dynamic_confidence, DetectionMethod.DYNAMIC)


PRIMARY_SCORERS: list[Scorer] = [score_page_mapping, score_title_pattern]
FALLBACK_SCORERS: list[Scorer] = [score_heading_similarity]
HEADING_SCORERS: list[Scorer] = [score_dynamic_heading]


def pick_best(candidates: list[DetectionCandidate]) -> DetectionCandidate | None:
    best = None
    for candidate in candidates:
        if best is None or candidate.confidence > best.confidence:
            best = candidate
    return best


# ── Detector ─────────────────────────────────────────────────────────────────

class SectionDetector:
    """Arbitrates among the scorers to decide which section a fragment belongs to."""

    def __init__(
        self,
        index: SectionIndex,
        structurer: TextStructurer | None = None,
        config: DetectorConfig | None = None,
        on_section_created: Callable[[Section], None] | None = None,
    ):
        self.index = index
        self.structurer = structurer
        self.config = config or DetectorConfig()
        self.on_section_created = on_section_created
        self.primary_scorers = list(PRIMARY_SCORERS)
        self.fallback_scorers = list(FALLBACK_SCORERS)
        self.heading_scorers = list(HEADING_SCORERS)

    def detect(self, fragment: str, page: int, context: DetectionContext | None = None) -> DetectionCandidate | None:
        if not self.index.has_page(page):
            logger.debug("Detection skipped: page %s out of range", page)
            return None

        context = context or DetectionContext()
        if context.headings is None:
            context.headings = self.structurer.headings(page) if self.structurer else []
        fragment = fragment or ""

        candidates = self._run(self.primary_scorers, fragment, page, context)
        best = pick_best(candidates)
        if best is None or best.confidence < self.config.min_confidence:
            candidates += self._run(self.fallback_scorers, fragment, page, context)
        candidates += self._run(self.heading_scorers, fragment, page, context)

        best = pick_best(candidates)
        if best is None or best.confidence < self.config.min_confidence:
            return None

        if best.section.id not in self.index:
            best.section = self.index.add_dynamic(best.section)
            if self.on_section_created:
                self.on_section_created(best.section)

        logger.debug(
            "Detected section %r on page %d (%s, %.2f)",
            best.section.title, page, best.method.value, best.confidence,
        )
        return best

    def detect_from_viewport(
        self,
        visible_pages: list[VisiblePage],
        geometry: GeometryProvider | None = None,
        context: DetectionContext | None = None,
    ) -> DetectionCandidate | None:
        pages = [p for p in visible_pages if self.index.has_page(p.page)]
        if not pages:
            return None

        primary = pages[0]
        for candidate in pages[1:]:
            if candidate.ratio > primary.ratio:
                primary = candidate

        sections = self.index.sections_for_page(primary.page)
        if not sections:
            return None
        if len(sections) == 1:
            return DetectionCandidate(sections[0], self.config.page_mapping_confidence, DetectionMethod.PAGE_MAPPING)

        text = geometry.text_in_region(primary.page) if geometry else ""
        if text:
            detected = self.detect(text, primary.page, context)
            if detected and detected.confidence > self.config.viewport_threshold:
                return detected

        return DetectionCandidate(sections[0], self.config.min_confidence, DetectionMethod.PAGE_BASED)

    def _run(self, scorers, fragment, page, context) -> list[DetectionCandidate]:
        results = []
        for scorer in scorers:
            candidate = scorer(fragment, page, self.index, context, self.config)
            if candidate is not None:
                results.append(candidate)
        return results
