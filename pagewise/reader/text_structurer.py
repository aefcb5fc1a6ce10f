"""Groups positioned text tokens into lines and flags probable headings, cached per page."""

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..config import StructurerConfig

logger = logging.getLogger(__name__)


@dataclass
class TextToken:
    text: str
    x: float = 0.0
    y: float = 0.0          # baseline
    height: float = 0.0     # rendered font height
    bold: bool = False


@dataclass
class Line:
    text: str
    height: float
    y: float
    bold: bool = False
    tokens: list[TextToken] = field(default_factory=list)


@dataclass
class PageStructure:
    page: int
    headings: list[Line] = field(default_factory=list)
    all_text: list[Line] = field(default_factory=list)

    @property
    def raw(self) -> str:
        return " ".join(line.text for line in self.all_text)

    @property
    def word_count(self) -> int:
        return len(self.raw.split())


TokenProvider = Callable[[int], list[TextToken]]


class TextStructurer:
    """Per-page line/heading structure with an idempotent cache (last write wins)."""

    def __init__(self, config: StructurerConfig | None = None):
        self.config = config or StructurerConfig()
        self._cache: dict[int, PageStructure] = {}

    def structure(self, page: int, tokens: list[TextToken]) -> PageStructure:
        result = PageStructure(page=page)
        current: list[TextToken] = []
        current_y: float | None = None

        for token in tokens:
            if not token.text or not token.text.strip():
                continue
            if current_y is None or abs(token.y - current_y) < self.config.line_tolerance:
                current.append(token)
            else:
                self._close_line(current, current_y, result)
                current = [token]
            current_y = token.y

        if current:
            self._close_line(current, current_y, result)

        self._cache[page] = result
        return result

    def _close_line(self, tokens: list[TextToken], y: float, result: PageStructure) -> None:
        text = " ".join(t.text.strip() for t in tokens).strip()
        if not text:
            return
        line = Line(
            text=text,
            height=max(t.height for t in tokens),
            y=y,
            bold=all(t.bold for t in tokens),
            tokens=list(tokens),
        )
        result.all_text.append(line)
        if self.is_heading(line):
            result.headings.append(line)

    def is_heading(self, line: Line) -> bool:
        if len(line.text) >= self.config.heading_max_length:
            return False
        return line.height > self.config.heading_min_height

    # ── Cache ────────────────────────────────────────────────────────────

    def get(self, page: int) -> PageStructure | None:
        return self._cache.get(page)

    def headings(self, page: int) -> list[Line]:
        structure = self._cache.get(page)
        return list(structure.headings) if structure else []

    def ensure(self, page: int, provider: TokenProvider | None) -> PageStructure | None:
        """Structure a page once; extraction failures leave the page uncached."""
        cached = self._cache.get(page)
        if cached is not None or provider is None:
            return cached
        try:
            tokens = provider(page)
        except Exception as e:
            logger.warning("Could not extract text from page %d: %s", page, e)
            return None
        return self.structure(page, tokens)

    def invalidate(self, page: int | None = None) -> None:
        if page is None:
            self._cache.clear()
        else:
            self._cache.pop(page, None)

    def average_words_per_page(self, default: int = 275) -> int:
        pages = [s for s in self._cache.values() if s.all_text]
        if not pages:
            return default
        return round(sum(p.word_count for p in pages) / len(pages))

    def __len__(self) -> int:
        return len(self._cache)
