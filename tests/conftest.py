"""Shared fixtures: a controllable millisecond clock and a small outlined document."""

import pytest

from pagewise.core.outline import OutlineNode, normalize_outline
from pagewise.core.section_index import SectionIndex


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


def make_index(starts: list[int], total_pages: int, titles: list[str] | None = None) -> SectionIndex:
    titles = titles or [f"Part {i + 1}" for i in range(len(starts))]
    outline = [OutlineNode(title=t, destination=p) for t, p in zip(titles, starts)]
    return SectionIndex(normalize_outline(outline, total_pages), total_pages)


@pytest.fixture
def paper_index():
    """20 pages: Introduction 1-5, Methods and Materials 6-12, Results 13-20."""
    return make_index([1, 6, 13], 20, ["Introduction", "Methods and Materials", "Results"])


@pytest.fixture
def build_index():
    return make_index
