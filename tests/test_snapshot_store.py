"""Tests for the SQLite snapshot store."""

import pytest

from pagewise.memory.snapshot_store import SnapshotStore


@pytest.fixture
def store(tmp_path):
    store = SnapshotStore(tmp_path / "nested" / "analytics.db")
    yield store
    store.close()


class TestSnapshotStore:
    def test_save_and_load(self, store):
        snapshot = {"current_page": 4, "pages": [{"page_number": 1, "time_spent_ms": 3000}]}
        assert store.save("abc123", snapshot)
        assert store.load("abc123") == snapshot

    def test_save_replaces_existing(self, store):
        store.save("abc123", {"current_page": 1})
        store.save("abc123", {"current_page": 2})
        assert store.load("abc123") == {"current_page": 2}
        assert len(store.list_fingerprints()) == 1

    def test_missing_key(self, store):
        assert store.load("unknown") is None

    def test_unserializable_snapshot(self, store):
        assert not store.save("abc123", {"bad": object()})
        assert store.load("abc123") is None

    def test_delete(self, store):
        store.save("a", {})
        store.save("b", {})
        assert store.delete("a")
        assert {r["fingerprint"] for r in store.list_fingerprints()} == {"b"}

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "analytics.db"
        first = SnapshotStore(path)
        first.save("doc", {"current_page": 7})
        first.close()

        second = SnapshotStore(path)
        assert second.load("doc") == {"current_page": 7}
        second.close()

    def test_closed_store_fails_softly(self, tmp_path):
        store = SnapshotStore(tmp_path / "analytics.db")
        store.close()
        assert not store.save("doc", {})
        assert store.load("doc") is None
        assert store.list_fingerprints() == []
