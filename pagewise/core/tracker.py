"""Reading tracker: Active/Idle attention model with per-page and per-section time accrual.

Time is attributed only while ACTIVE, only for the span since the last
accumulation point, and never more than ``accrual_cap_ms`` per step. Every
accumulation moves the anchor forward so the same interval is never counted
twice. Recording calls never raise on bad input: they log and skip.
"""

import time
import uuid
import logging
from collections import deque
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Callable

from ..config import TrackerConfig
from .section_index import SectionIndex
from .sections import Section

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class AttentionState(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


class NavigationKind(str, Enum):
    INITIAL = "initial"
    FORWARD = "forward"
    BACKWARD = "backward"
    JUMP = "jump"
    SAME = "same"


@dataclass
class PageStat:
    page_number: int
    time_spent_ms: int = 0
    visit_count: int = 0
    completed: bool = False
    last_visited_at: int | None = None


@dataclass
class SectionStat:
    section_id: str
    title: str = ""
    time_spent_ms: int = 0
    visit_count: int = 0
    completed: bool = False
    started_at: int | None = None
    ended_at: int | None = None
    page_ids: list[int] = field(default_factory=list)


@dataclass
class NavigationEvent:
    from_page: int | None
    to_page: int
    timestamp: int
    kind: NavigationKind

    def to_dict(self) -> dict:
        return {
            "from_page": self.from_page,
            "to_page": self.to_page,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
        }


@dataclass
class TextSelectionEvent:
    id: str
    text: str
    page: int
    section_title: str
    timestamp: int
    length: int


@dataclass
class ReadingAnalytics:
    """Point-in-time analytics projection; plain data, safe to serialize."""
    session_time_ms: int
    active_time_ms: int
    pages_completed: int
    sections_completed: int
    text_selections: int
    page_changes: int
    forward_moves: int
    backward_moves: int
    jump_moves: int
    linear_reading_ratio: float
    linear_reading_percentage: int
    progress_percentage: float
    words_read: int
    reading_speed: int
    current_section_time_ms: int
    current_page: int | None
    current_section_id: str | None
    current_section_title: str | None
    state: str
    total_pages: int
    pages: dict[int, dict] = field(default_factory=dict)
    sections: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def classify_navigation(from_page: int | None, to_page: int | None) -> NavigationKind:
    if not from_page or not to_page:
        return NavigationKind.INITIAL
    diff = to_page - from_page
    if diff == 1:
        return NavigationKind.FORWARD
    if diff == -1:
        return NavigationKind.BACKWARD
    if abs(diff) > 1:
        return NavigationKind.JUMP
    return NavigationKind.SAME


def linear_reading_ratio(forward: int, backward: int, jump: int) -> float:
    total = forward + backward + jump
    return forward / total if total > 0 else 0.0


def compute_reading_speed(words_read: int, active_time_ms: int, max_speed: int = 1000) -> int:
    """Words per active minute, clamped to [0, max_speed]."""
    minutes = active_time_ms / 60_000
    if minutes <= 0:
        return 0
    return max(0, min(round(words_read / minutes), max_speed))


class ReadingTracker:
    """Owns every mutable reading statistic for one document."""

    def __init__(
        self,
        index: SectionIndex,
        config: TrackerConfig | None = None,
        clock: Clock | None = None,
    ):
        self.index = index
        self.config = config or TrackerConfig()
        self.clock = clock or now_ms
        self.total_pages = index.total_pages
        self.words_per_page = self.config.average_words_per_page

        self.pages: dict[int, PageStat] = {}
        self.sections: dict[str, SectionStat] = {}
        self.navigation: list[NavigationEvent] = []
        self.selections: deque[TextSelectionEvent] = deque(maxlen=self.config.max_selections)

        self.state = AttentionState.ACTIVE
        self.current_page: int | None = None
        self.current_section_id: str | None = None
        self._init_session(self.clock())

    def _init_session(self, now: int) -> None:
        self.session_started_at = now
        self.last_activity_at = now
        self._page_anchor = now
        self._section_anchor = now
        self._section_entry_ms = 0
        self._last_section_change_at: int | None = None

        self.pages = {p: PageStat(page_number=p) for p in range(1, self.total_pages + 1)}
        self.sections = {}
        for section in self.index:
            self.register_section(section)
        self.navigation = []
        self.selections.clear()

    def register_section(self, section: Section) -> SectionStat:
        stat = self.sections.get(section.id)
        if stat is None:
            stat = SectionStat(
                section_id=section.id,
                title=section.title,
                page_ids=[p for p in section.page_ids if p in self.pages],
            )
            self.sections[section.id] = stat
        return stat

    # ── Attention state machine ──────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.state == AttentionState.ACTIVE

    def record_activity(self) -> None:
        now = self.clock()
        self.last_activity_at = now
        if self.state == AttentionState.IDLE:
            self.state = AttentionState.ACTIVE
            self._page_anchor = now
            self._section_anchor = now
            logger.debug("Reader active again")

    def tick(self) -> AttentionState:
        """Periodic inactivity check; flushes engaged time before going idle."""
        now = self.clock()
        if self.is_active and now - self.last_activity_at > self.config.inactivity_timeout_ms:
            self._accrue_page(self.current_page, self.last_activity_at)
            self._accrue_section(self.current_section_id, self.last_activity_at)
            self.state = AttentionState.IDLE
            logger.debug("Reader idle after %d ms without activity", now - self.last_activity_at)
        return self.state

    # ── Accrual ──────────────────────────────────────────────────────────

    def _accrue_page(self, page: int | None, until: int) -> int:
        if not self.is_active or page not in self.pages:
            return 0
        delta = min(until - self._page_anchor, self.config.accrual_cap_ms)
        self._page_anchor = max(self._page_anchor, until)
        if delta <= 0:
            return 0
        stat = self.pages[page]
        stat.time_spent_ms += delta
        if stat.time_spent_ms >= self.config.page_complete_ms:
            stat.completed = True
        return delta

    def _accrue_section(self, section_id: str | None, until: int) -> int:
        if not self.is_active or section_id not in self.sections:
            return 0
        delta = min(until - self._section_anchor, self.config.accrual_cap_ms)
        self._section_anchor = max(self._section_anchor, until)
        if delta <= 0:
            return 0
        self.sections[section_id].time_spent_ms += delta
        return delta

    def _refresh_section_completion(self, section_id: str) -> None:
        stat = self.sections[section_id]
        if not stat.page_ids:
            return
        pages_read = sum(1 for p in stat.page_ids if self.pages[p].completed)
        stat.completed = pages_read >= len(stat.page_ids) * self.config.section_complete_ratio

    # ── Recording ────────────────────────────────────────────────────────

    def record_page_change(self, from_page: int | None, to_page: int) -> NavigationEvent | None:
        if to_page not in self.pages or (from_page is not None and from_page not in self.pages):
            logger.warning("Ignoring page change %s -> %s: page out of range", from_page, to_page)
            return None

        now = self.clock()
        if from_page is not None:
            self._accrue_page(from_page, now)

        stat = self.pages[to_page]
        stat.visit_count += 1
        stat.last_visited_at = now

        event = NavigationEvent(
            from_page=from_page,
            to_page=to_page,
            timestamp=now,
            kind=classify_navigation(from_page, to_page),
        )
        self.navigation.append(event)
        self._page_anchor = now
        self.current_page = to_page
        logger.debug("Page change %s -> %d (%s)", from_page, to_page, event.kind.value)
        return event

    def record_section_change(self, from_id: str | None, to_id: str) -> bool:
        if to_id not in self.sections or (from_id is not None and from_id not in self.sections):
            logger.warning("Ignoring section change %s -> %s: unknown section", from_id, to_id)
            return False

        now = self.clock()
        if (self._last_section_change_at is not None
                and now - self._last_section_change_at < self.config.section_debounce_ms):
            logger.debug("Section change to %s debounced", to_id)
            return False
        self._last_section_change_at = now

        if from_id is not None:
            self._accrue_section(from_id, now)
            self.sections[from_id].ended_at = now
            self._refresh_section_completion(from_id)

        stat = self.sections[to_id]
        stat.visit_count += 1
        stat.started_at = now
        self._section_anchor = now
        self._section_entry_ms = stat.time_spent_ms
        self.current_section_id = to_id
        logger.debug("Entered section %r", stat.title)
        return True

    def update_current_section(self, section_id: str) -> bool:
        """Apply a detected section; no-op when it is already current."""
        if section_id == self.current_section_id:
            return False
        return self.record_section_change(self.current_section_id, section_id)

    def record_text_selection(self, text: str, page: int, section_title: str | None = None) -> TextSelectionEvent | None:
        text = (text or "").strip()
        if len(text) < self.config.min_selection_length:
            return None
        if page not in self.pages:
            logger.warning("Ignoring selection on page %s: page out of range", page)
            return None

        now = self.clock()
        if section_title is None:
            current = self.sections.get(self.current_section_id)
            section_title = current.title if current else "Unknown"
        event = TextSelectionEvent(
            id=f"selection_{now}_{uuid.uuid4().hex[:9]}",
            text=text,
            page=page,
            section_title=section_title,
            timestamp=now,
            length=len(text),
        )
        self.selections.append(event)
        logger.debug("Text selection on page %d: %.50s", page, text)
        return event

    # ── Analytics ────────────────────────────────────────────────────────

    def get_analytics(self) -> ReadingAnalytics:
        now = self.clock()
        self._accrue_page(self.current_page, now)
        self._accrue_section(self.current_section_id, now)

        active_time = sum(p.time_spent_ms for p in self.pages.values())
        pages_completed = sum(1 for p in self.pages.values() if p.completed)
        sections_completed = sum(1 for s in self.sections.values() if s.completed)

        forward = sum(1 for e in self.navigation if e.kind == NavigationKind.FORWARD)
        backward = sum(1 for e in self.navigation if e.kind == NavigationKind.BACKWARD)
        jump = sum(1 for e in self.navigation if e.kind == NavigationKind.JUMP)
        ratio = linear_reading_ratio(forward, backward, jump)

        words_from_selections = sum(len(s.text.split()) for s in self.selections)
        words_read = max(words_from_selections, pages_completed * self.words_per_page)

        current = self.sections.get(self.current_section_id)
        current_section_time = current.time_spent_ms - self._section_entry_ms if current else 0

        return ReadingAnalytics(
            session_time_ms=now - self.session_started_at,
            active_time_ms=active_time,
            pages_completed=pages_completed,
            sections_completed=sections_completed,
            text_selections=len(self.selections),
            page_changes=len(self.navigation),
            forward_moves=forward,
            backward_moves=backward,
            jump_moves=jump,
            linear_reading_ratio=ratio,
            linear_reading_percentage=round(ratio * 100),
            progress_percentage=pages_completed / self.total_pages * 100 if self.total_pages else 0.0,
            words_read=words_read,
            reading_speed=compute_reading_speed(words_read, active_time, self.config.max_reading_speed),
            current_section_time_ms=current_section_time,
            current_page=self.current_page,
            current_section_id=self.current_section_id,
            current_section_title=current.title if current else None,
            state=self.state.value,
            total_pages=self.total_pages,
            pages={n: asdict(p) for n, p in self.pages.items()},
            sections={sid: asdict(s) for sid, s in self.sections.items()},
        )

    def reset(self) -> None:
        """Clear all statistics; the page and section universe is kept."""
        self.current_section_id = None
        self.state = AttentionState.ACTIVE
        self._init_session(self.clock())
        logger.info("Reading statistics reset")

    # ── Persistence projection ───────────────────────────────────────────

    def to_snapshot(self) -> dict:
        return {
            "session_started_at": self.session_started_at,
            "current_page": self.current_page,
            "current_section_id": self.current_section_id,
            "pages": [asdict(p) for p in self.pages.values()],
            "sections": [asdict(s) for s in self.sections.values()],
            "navigation": [e.to_dict() for e in self.navigation],
            "selections": [asdict(s) for s in self.selections],
            "dynamic_sections": [s.to_dict(with_children=False) for s in self.index.dynamic_sections],
        }

    def restore(self, snapshot: dict) -> bool:
        """Load stored tables and logs; entries for unknown pages or sections are skipped.

        The whole snapshot is parsed before anything is applied, so a
        malformed snapshot leaves the tracker and the index untouched.
        """
        try:
            dynamic = [Section.from_dict(d) for d in snapshot.get("dynamic_sections", [])]
            page_updates = [(d.get("page_number"), _stat_fields(d)) for d in snapshot.get("pages", [])]
            section_updates = [
                (d.get("section_id"), _stat_fields(d, "started_at", "ended_at"))
                for d in snapshot.get("sections", [])
            ]
            navigation = [
                NavigationEvent(
                    from_page=e.get("from_page"),
                    to_page=int(e["to_page"]),
                    timestamp=int(e["timestamp"]),
                    kind=NavigationKind(e["kind"]),
                )
                for e in snapshot.get("navigation", [])
            ]
            selections = [TextSelectionEvent(**s) for s in snapshot.get("selections", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not restore tracker snapshot: %s", e)
            return False

        for section in dynamic:
            self.register_section(self.index.add_dynamic(section))

        for page_number, values in page_updates:
            stat = self.pages.get(page_number)
            if stat is not None:
                for name, value in values.items():
                    setattr(stat, name, value)

        for section_id, values in section_updates:
            stat = self.sections.get(section_id)
            if stat is not None:
                for name, value in values.items():
                    setattr(stat, name, value)

        self.navigation = navigation
        self.selections.clear()
        self.selections.extend(selections)

        logger.info(
            "Restored snapshot: %d navigation events, %d selections",
            len(self.navigation), len(self.selections),
        )
        return True


def _stat_fields(data: dict, *timestamps: str) -> dict:
    values = {
        "time_spent_ms": int(data.get("time_spent_ms", 0)),
        "visit_count": int(data.get("visit_count", 0)),
        "completed": bool(data.get("completed", False)),
    }
    for name in timestamps or ("last_visited_at",):
        values[name] = data.get(name)
    return values
