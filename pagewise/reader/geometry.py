from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from .text_structurer import Line


@dataclass
class VisiblePage:
    page: int
    ratio: float   # visible fraction of the page's rendered height, 0..1


@dataclass
class Region:
    top: float
    bottom: float


class GeometryProvider(ABC):
    """Abstract view of the rendering surface: what is on screen and where."""

    @abstractmethod
    def visible_pages(self) -> list[VisiblePage]:
        """Pages currently in the viewport with their visibility ratio."""
        ...

    @abstractmethod
    def text_in_region(self, page: int, region: Region | None = None) -> str:
        """Visible text of a page, optionally limited to a vertical region."""
        ...

    @abstractmethod
    def page_number_from_position(self, x: float, y: float) -> int | None:
        """Page under a viewport position, or None outside any page."""
        ...


LineSource = Callable[[int], list[Line]]


@dataclass
class ReportedViewport(GeometryProvider):
    """Geometry as last reported by a client (browser viewer, test harness).

    Pages are assumed stacked vertically with ``page_height`` units each,
    which is enough to map a pointer position back to a page. Positions are
    in page units, top-down. When a ``line_source`` is attached, regions are
    resolved against the positioned lines of the page.
    """
    pages: list[VisiblePage] = field(default_factory=list)
    texts: dict[int, str] = field(default_factory=dict)
    page_height: float = 0.0
    scroll_top: float = 0.0
    line_source: LineSource | None = field(default=None, repr=False)

    def update(self, pages: list[VisiblePage], texts: dict[int, str] | None = None,
               scroll_top: float | None = None, page_height: float | None = None) -> None:
        self.pages = [p for p in pages if p.ratio > 0.1]
        self.texts = dict(texts or {})
        if scroll_top is not None:
            self.scroll_top = scroll_top
        if page_height is not None:
            self.page_height = page_height

    def visible_pages(self) -> list[VisiblePage]:
        return list(self.pages)

    def text_in_region(self, page: int, region: Region | None = None) -> str:
        if region is None or self.line_source is None:
            return self.texts.get(page, "")
        lines = self.line_source(page)
        return " ".join(line.text for line in lines if region.top <= line.y <= region.bottom)

    def page_number_from_position(self, x: float, y: float) -> int | None:
        if self.page_height <= 0:
            return None
        absolute = self.scroll_top + y
        if absolute < 0:
            return None
        return int(absolute // self.page_height) + 1

    def locate(self, x: float, y: float) -> tuple[int, float] | None:
        """Page under a viewport position and the position's offset from that page's top."""
        page = self.page_number_from_position(x, y)
        if page is None:
            return None
        return page, self.scroll_top + y - (page - 1) * self.page_height
