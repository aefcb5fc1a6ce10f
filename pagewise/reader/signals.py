import time
import logging
from enum import Enum
from dataclasses import dataclass, field

from ..config import SignalConfig
from ..core.tracker import Clock
from .geometry import VisiblePage
from .session import ReadingSession

logger = logging.getLogger(__name__)


class SignalType(str, Enum):
    ACTIVITY = "activity"     # pointer, scroll or key press; no payload
    PAGE_VIEW = "page_view"
    SELECTION = "selection"   # data: {"text"}
    HOVER = "hover"           # data: {"text", "font_size", "bold", "y"} or {"position": {"x", "y"}}
    VIEWPORT = "viewport"     # data: {"pages": [{"page", "ratio"}], "texts", "scroll_top", "page_height"}


@dataclass
class SignalEvent:
    event_type: str
    page: int = 0
    timestamp: float = field(default_factory=time.time)
    data: dict = field(default_factory=dict)


class Throttle:
    """Leading-edge throttle: lets one call through per window."""

    def __init__(self, window_ms: int, clock: Clock):
        self.window_ms = window_ms
        self.clock = clock
        self._last: int | None = None

    def allow(self) -> bool:
        now = self.clock()
        if self._last is not None and now - self._last < self.window_ms:
            return False
        self._last = now
        return True


class SignalRouter:
    """Boundary between raw reader events and the session; throttles high-frequency signals."""

    def __init__(self, session: ReadingSession, config: SignalConfig | None = None, clock: Clock | None = None):
        self.session = session
        self.config = config or session.config.signals
        clock = clock or session.tracker.clock
        self._throttles = {
            SignalType.ACTIVITY: Throttle(self.config.activity_throttle_ms, clock),
            SignalType.HOVER: Throttle(self.config.hover_throttle_ms, clock),
            SignalType.VIEWPORT: Throttle(self.config.viewport_throttle_ms, clock),
        }
        self.dropped = 0

    def record(self, event: SignalEvent) -> bool:
        """Forward an event to the session; returns False when it was dropped."""
        try:
            signal = SignalType(event.event_type)
        except ValueError:
            logger.warning("Unknown signal type: %s", event.event_type)
            return False

        data = event.data or {}
        try:
            payload = _parse_payload(signal, data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed %s signal payload: %s", signal.value, e)
            return False

        throttle = self._throttles.get(signal)
        if throttle is not None and not throttle.allow():
            self.dropped += 1
            return False

        if signal == SignalType.ACTIVITY:
            self.session.handle_activity()

        elif signal == SignalType.PAGE_VIEW:
            self.session.handle_page_change(event.page)

        elif signal == SignalType.SELECTION:
            self.session.handle_selection(payload["text"], event.page or None)

        elif signal == SignalType.HOVER:
            self.session.handle_hover(payload.pop("text"), event.page, **payload)

        elif signal == SignalType.VIEWPORT:
            self.session.handle_viewport(payload.pop("pages"), payload.pop("texts"), **payload)

        logger.debug("Signal %s on page %d", signal.value, event.page)
        return True


def _optional_float(value) -> float | None:
    return None if value is None else float(value)


def _parse_payload(signal: SignalType, data: dict) -> dict:
    """Typed handler arguments from a raw event payload; raises on malformed data."""
    if signal == SignalType.SELECTION:
        return {"text": str(data.get("text", ""))}
    if signal == SignalType.HOVER:
        position = data.get("position")
        return {
            "text": str(data.get("text", "")),
            "font_size": _optional_float(data.get("font_size")),
            "bold": bool(data.get("bold", False)),
            "y": _optional_float(data.get("y")),
            "position": (float(position["x"]), float(position["y"])) if position else None,
        }
    if signal == SignalType.VIEWPORT:
        return {
            "pages": [VisiblePage(page=int(p["page"]), ratio=float(p["ratio"])) for p in data.get("pages", [])],
            "texts": {int(k): str(v) for k, v in (data.get("texts") or {}).items()},
            "scroll_top": _optional_float(data.get("scroll_top")),
            "page_height": _optional_float(data.get("page_height")),
        }
    return {}
