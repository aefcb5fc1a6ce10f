"""SQLite-backed key-value store for tracker snapshots, keyed by document fingerprint."""

import json
import sqlite3
import threading
import time
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Persistent snapshot storage. Failures are logged, never raised."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS snapshots (
        fingerprint TEXT PRIMARY KEY,
        data        TEXT NOT NULL,
        updated_at  REAL NOT NULL
    );
    """

    def __init__(self, db_path: str | Path = "data/analytics.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(self.SCHEMA)
        self._conn.commit()
        logger.info("Snapshot store opened: %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def save(self, fingerprint: str, snapshot: dict) -> bool:
        try:
            data = json.dumps(snapshot)
            with self._lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO snapshots (fingerprint, data, updated_at) VALUES (?, ?, ?)",
                    (fingerprint, data, time.time()),
                )
                self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("Could not save snapshot for %s: %s", fingerprint, e)
            return False
        logger.debug("Snapshot saved for %s", fingerprint)
        return True

    def load(self, fingerprint: str) -> dict | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT data FROM snapshots WHERE fingerprint = ?", (fingerprint,)
                ).fetchone()
            if not row:
                return None
            return json.loads(row["data"])
        except (sqlite3.Error, ValueError) as e:
            logger.error("Could not load snapshot for %s: %s", fingerprint, e)
            return None

    def delete(self, fingerprint: str) -> bool:
        try:
            with self._lock:
                self._conn.execute("DELETE FROM snapshots WHERE fingerprint = ?", (fingerprint,))
                self._conn.commit()
        except sqlite3.Error as e:
            logger.error("Could not delete snapshot for %s: %s", fingerprint, e)
            return False
        return True

    def list_fingerprints(self) -> list[dict]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT fingerprint, updated_at FROM snapshots ORDER BY updated_at DESC"
                ).fetchall()
        except sqlite3.Error as e:
            logger.error("Could not list snapshots: %s", e)
            return []
        return [dict(r) for r in rows]
