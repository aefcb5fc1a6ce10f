import time
from dataclasses import dataclass, field


@dataclass
class ActivityEntry:
    message: str
    timestamp: float = field(default_factory=time.time)

    @property
    def time_label(self) -> str:
        return time.strftime("%H:%M:%S", time.localtime(self.timestamp))


class ActivityLog:
    """Human-readable feed of recent reading events, newest first (not persistent)."""

    def __init__(self, max_entries: int = 20):
        self._entries: list[ActivityEntry] = []
        self._max = max_entries

    def add(self, message: str) -> None:
        self._entries.insert(0, ActivityEntry(message=message))
        # Keep only the most recent entries
        if len(self._entries) > self._max:
            self._entries = self._entries[:self._max]

    def get_entries(self) -> list[ActivityEntry]:
        return list(self._entries)

    def to_list(self) -> list[dict]:
        return [{"time": e.time_label, "message": e.message} for e in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
