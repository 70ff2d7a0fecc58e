"""Tests for the watch history store."""

import json
import logging
import threading

import pytest

from conftest import make_record
from ytsurf.history import HistoryError, HistoryStore


def ids(records):
    return [r.id for r in records]


class TestHistoryList:
    """Tests for HistoryStore.list()."""

    def test_missing_file_is_empty(self, tmp_path):
        assert HistoryStore(tmp_path / "history.json").list() == []

    def test_blank_file_is_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("\n")
        assert HistoryStore(path).list() == []

    def test_corrupted_file_is_reset(self, tmp_path, caplog):
        path = tmp_path / "history.json"
        path.write_text('[{"id": "1", "title": "trunc')
        with caplog.at_level(logging.WARNING, logger="ytsurf.history"):
            assert HistoryStore(path).list() == []
        assert "corrupted" in caplog.text
        assert json.loads(path.read_text()) == []

    def test_deeply_nested_file_is_reset(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("[" * 200_000)
        assert HistoryStore(path).list() == []
        assert json.loads(path.read_text()) == []

    def test_non_list_is_reset(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text('{"entries": []}')
        assert HistoryStore(path).list() == []
        assert json.loads(path.read_text()) == []

    def test_malformed_entries_skipped(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([
            {"id": "1", "title": "One"},
            {"title": "no id"},
            "not an object",
            {"id": "2", "title": "Two"},
        ]))
        assert ids(HistoryStore(path).list()) == ["1", "2"]

    def test_preserves_stored_order(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"id": i, "title": i} for i in ["c", "a", "b"]]))
        assert ids(HistoryStore(path).list()) == ["c", "a", "b"]


class TestRecordSelection:
    """Tests for HistoryStore.record_selection()."""

    def test_first_entry(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        store.record_selection(make_record("1"))
        assert ids(store.list()) == ["1"]

    def test_newest_first(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        for video_id in ["1", "2", "3"]:
            store.record_selection(make_record(video_id))
        assert ids(store.list()) == ["3", "2", "1"]

    def test_duplicate_promoted_not_repeated(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        for video_id in ["1", "2", "3"]:
            store.record_selection(make_record(video_id))
        store.record_selection(make_record("1"))
        assert ids(store.list()) == ["1", "3", "2"]

    def test_promoted_entry_takes_new_data(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        store.record_selection(make_record("1", title="Old title"))
        store.record_selection(make_record("1", title="New title"))
        (entry,) = store.list()
        assert entry.title == "New title"

    def test_sets_added_at(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        store.record_selection(make_record("1"))
        (entry,) = store.list()
        assert entry.added_at is not None
        assert entry.added_at.startswith("20")

    def test_capacity_evicts_oldest(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json", capacity=3)
        for video_id in ["1", "2", "3", "4"]:
            store.record_selection(make_record(video_id))
        assert ids(store.list()) == ["4", "3", "2"]

    def test_smaller_capacity_truncates_existing_log(self, tmp_path):
        path = tmp_path / "history.json"
        big = HistoryStore(path, capacity=10)
        for video_id in ["1", "2", "3", "4", "5"]:
            big.record_selection(make_record(video_id))
        small = HistoryStore(path, capacity=2)
        assert ids(small.list()) == ["5", "4"]
        small.record_selection(make_record("6"))
        assert ids(small.list()) == ["6", "5"]
        assert len(json.loads(path.read_text())) == 2

    def test_promote_then_evict(self, tmp_path):
        # [A, B] -> select B -> [B, A] -> select C with capacity 2 -> [C, B]
        store = HistoryStore(tmp_path / "history.json", capacity=2)
        store.record_selection(make_record("2", title="B"))
        store.record_selection(make_record("1", title="A"))
        assert ids(store.list()) == ["1", "2"]

        store.record_selection(make_record("2", title="B"))
        assert ids(store.list()) == ["2", "1"]

        store.record_selection(make_record("3", title="C"))
        assert ids(store.list()) == ["3", "2"]

    def test_recovers_from_corrupted_file(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("not json at all")
        store = HistoryStore(path)
        store.record_selection(make_record("1"))
        assert ids(store.list()) == ["1"]

    def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = HistoryStore(blocker / "history.json")
        with pytest.raises(HistoryError, match="Cannot write history file"):
            store.record_selection(make_record("1"))

    def test_concurrent_writers_never_corrupt(self, tmp_path):
        path = tmp_path / "history.json"
        barrier = threading.Barrier(4)

        def select(video_id):
            barrier.wait()
            for _ in range(10):
                HistoryStore(path).record_selection(make_record(video_id))

        threads = [threading.Thread(target=select, args=(str(n),)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = json.loads(path.read_text())
        assert isinstance(data, list)
        assert 1 <= len(data) <= 4
        assert len({entry["id"] for entry in data}) == len(data)
        assert not list(tmp_path.glob("*.tmp"))


class TestHistoryMisc:
    def test_clear(self, tmp_path):
        store = HistoryStore(tmp_path / "history.json")
        store.record_selection(make_record("1"))
        store.clear()
        assert store.list() == []

    def test_invalid_capacity(self, tmp_path):
        with pytest.raises(ValueError):
            HistoryStore(tmp_path / "history.json", capacity=0)
