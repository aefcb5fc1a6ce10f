"""Per-document reading context: wires index, structurer, detector, tracker and store together."""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from typing import Callable

from ..config import AnalyticsConfig
from ..core.outline import DestinationResolver, normalize_outline
from ..core.section_detector import DetectionCandidate, DetectionContext, SectionDetector
from ..core.section_index import SectionIndex
from ..core.sections import Section
from ..core.tracker import Clock, ReadingTracker
from ..memory.activity_log import ActivityLog
from ..memory.snapshot_store import SnapshotStore
from .geometry import Region, ReportedViewport, VisiblePage
from .pdf_handler import PDFDocument
from .text_structurer import Line, TextStructurer, TextToken

logger = logging.getLogger(__name__)

PREFETCH_PAGES = 10


class ReadingSession:
    """Explicit context for one viewed document; nothing here is reachable globally."""

    def __init__(
        self,
        fingerprint: str,
        index: SectionIndex,
        config: AnalyticsConfig | None = None,
        text_provider: Callable[[int], list[TextToken]] | None = None,
        store: SnapshotStore | None = None,
        clock: Clock | None = None,
        filename: str = "",
        session_id: str | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.fingerprint = fingerprint
        self.filename = filename
        self.config = config or AnalyticsConfig()
        self.index = index
        self.text_provider = text_provider
        self.store = store

        self.structurer = TextStructurer(self.config.structurer)
        self.tracker = ReadingTracker(index, self.config.tracker, clock)
        self.detector = SectionDetector(
            index, self.structurer, self.config.detector,
            on_section_created=self._on_section_created,
        )
        self.geometry = ReportedViewport(line_source=self._page_lines)
        self.activity = ActivityLog()
        self.last_detection: DetectionCandidate | None = None
        self.resumed = False
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def open(
        cls,
        fingerprint: str,
        total_pages: int,
        outline: list | None = None,
        resolve_destination: DestinationResolver | None = None,
        **kwargs,
    ) -> "ReadingSession":
        index = SectionIndex(normalize_outline(outline, total_pages, resolve_destination), total_pages)
        session = cls(fingerprint, index, **kwargs)
        session.prefetch_text()
        session.resumed = session.resume()
        session.activity.add("Session started")
        logger.info(
            "Session %s opened: %d pages, %d sections",
            session.session_id, total_pages, len(index),
        )
        return session

    @classmethod
    def from_document(cls, document: PDFDocument, **kwargs) -> "ReadingSession":
        return cls.open(
            document.fingerprint,
            document.total_pages,
            document.outline,
            document.resolve_destination,
            text_provider=document.get_page_tokens,
            filename=document.filename,
            **kwargs,
        )

    @property
    def total_pages(self) -> int:
        return self.index.total_pages

    @property
    def current_section(self) -> Section | None:
        return self.index.get(self.tracker.current_section_id)

    def prefetch_text(self, pages: int = PREFETCH_PAGES) -> None:
        if self.text_provider is None:
            return
        for page in range(1, min(pages, self.total_pages) + 1):
            self.structurer.ensure(page, self.text_provider)
        self.tracker.words_per_page = self.structurer.average_words_per_page(
            self.config.tracker.average_words_per_page
        )

    # ── Signal handlers ──────────────────────────────────────────────────

    def handle_activity(self) -> None:
        self.tracker.record_activity()

    def handle_page_change(self, page: int) -> DetectionCandidate | None:
        self.tracker.record_activity()
        previous = self.tracker.current_page
        if page == previous:
            return None
        if self.tracker.record_page_change(previous, page) is None:
            return None

        self.activity.add(f"Moved to page {page}")
        self.structurer.ensure(page, self.text_provider)
        candidate = self.detector.detect_from_viewport([VisiblePage(page, 1.0)], self.geometry)
        if candidate:
            self._apply(candidate)
        return candidate

    def handle_selection(self, text: str, page: int | None = None) -> DetectionCandidate | None:
        self.tracker.record_activity()
        page = page or self.tracker.current_page
        if page is None:
            return None

        candidate = self.detector.detect(text, page)
        if candidate and candidate.confidence > self.config.detector.selection_threshold:
            self._apply(candidate)

        if self.tracker.record_text_selection(text, page):
            preview = text.strip()
            if len(preview) > 50:
                preview = preview[:50] + "..."
            self.activity.add(f'Selected text: "{preview}"')
        return candidate

    def handle_hover(self, text: str, page: int | None = None, font_size: float | None = None,
                     bold: bool = False, y: float | None = None,
                     position: tuple[float, float] | None = None) -> DetectionCandidate | None:
        """Detect from hovered text; ``position`` is a viewport point resolved through the geometry."""
        self.tracker.record_activity()
        if position is not None:
            located = self.geometry.locate(*position)
            if located is None:
                return None
            page, y = located
        if not page:
            return None

        self.structurer.ensure(page, self.text_provider)
        if not text and y is not None:
            tolerance = self.config.detector.heading_anchor_tolerance
            text = self.geometry.text_in_region(page, Region(y - tolerance, y + tolerance))
        context = DetectionContext(font_size=font_size, bold=bold, y=y)
        candidate = self.detector.detect(text, page, context)
        if candidate and candidate.confidence > self.config.detector.hover_threshold:
            self._apply(candidate)
        return candidate

    def handle_viewport(self, pages: list[VisiblePage], texts: dict[int, str] | None = None,
                        scroll_top: float | None = None, page_height: float | None = None) -> DetectionCandidate | None:
        self.tracker.record_activity()
        self.geometry.update(pages, texts, scroll_top=scroll_top, page_height=page_height)
        candidate = self.detector.detect_from_viewport(self.geometry.visible_pages(), self.geometry)
        if candidate:
            self._apply(candidate)
        return candidate

    def _apply(self, candidate: DetectionCandidate) -> bool:
        changed = self.tracker.update_current_section(candidate.section.id)
        if changed:
            self.last_detection = candidate
            self.activity.add(f"Entered section: {candidate.section.title}")
            logger.debug("Section %r via %s", candidate.section.title, candidate.method.value)
        return changed

    def _page_lines(self, page: int) -> list[Line]:
        structure = self.structurer.ensure(page, self.text_provider)
        return structure.all_text if structure else []

    def _on_section_created(self, section: Section) -> None:
        self.tracker.register_section(section)
        self.activity.add(f"Detected new section: {section.title}")

    # ── Analytics / persistence ──────────────────────────────────────────

    def tick(self):
        return self.tracker.tick()

    def analytics(self) -> dict:
        data = self.tracker.get_analytics().to_dict()
        data["detection_confidence"] = self.last_detection.confidence if self.last_detection else 0.0
        return data

    def export(self) -> dict:
        data = self.analytics()
        sections = data["sections"]
        data["document_info"] = {
            "id": self.fingerprint,
            "filename": self.filename,
            "total_pages": self.total_pages,
            "sections": [
                {
                    "id": s.id,
                    "title": s.title,
                    "start_page": s.start_page,
                    "end_page": s.end_page,
                    "level": s.level,
                    "is_dynamic": s.is_dynamic,
                    "completed": sections.get(s.id, {}).get("completed", False),
                }
                for s in self.index
            ],
        }
        data["export_date"] = datetime.now(timezone.utc).isoformat()
        return data

    def reset(self) -> None:
        self.tracker.reset()
        self.last_detection = None
        self.activity.clear()
        self.activity.add("Analytics reset")

    def save(self) -> bool:
        if self.store is None:
            return False
        return self.store.save(self.fingerprint, self.tracker.to_snapshot())

    def resume(self) -> bool:
        if self.store is None:
            return False
        snapshot = self.store.load(self.fingerprint)
        if not snapshot:
            return False
        return self.tracker.restore(snapshot)

    # ── Background loops ─────────────────────────────────────────────────

    def start(self) -> None:
        """Start the inactivity tick and auto-persist loops on the running event loop."""
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [loop.create_task(self._tick_loop())]
        if self.store is not None:
            self._tasks.append(loop.create_task(self._autosave_loop()))

    async def stop(self, flush: bool = False) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if flush:
            self.save()
        self.structurer.invalidate()
        logger.info("Session %s stopped", self.session_id)

    async def _tick_loop(self) -> None:
        interval = self.config.tracker.tick_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.tick()

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.signals.autosave_interval_s)
            self.save()
