import json
import threading
from pathlib import Path

import pytest

from project_switcher.models import PathRecord
from project_switcher.services.index import (
    ProjectIndex,
    StoreFormatError,
    StoreReadError,
    StoreWriteError,
)


def _record(name: str) -> PathRecord:
    return PathRecord(full_path=f"/home/u/dev/{name}", session_name=name)


@pytest.fixture()
def store(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "cache.json"


class TestLoad:
    def test_missing_store_is_empty(self, store):
        index = ProjectIndex.load(store)
        assert len(index) == 0
        assert index.snapshot() == []

    def test_reads_records(self, store):
        store.parent.mkdir(parents=True)
        store.write_text(json.dumps({"paths": [
            {"full_path": "/home/u/dev/a", "session_name": "a"},
            {"full_path": "/home/u/dev/b", "session_name": "b"},
        ]}))
        index = ProjectIndex.load(store)
        assert index.snapshot() == [_record("a"), _record("b")]

    def test_reads_legacy_field_names(self, store):
        store.parent.mkdir(parents=True)
        store.write_text('{"paths": [{"FullPath": "/home/u/dev/a", "SessionName": "a"}]}')
        assert ProjectIndex.load(store).snapshot() == [_record("a")]

    def test_duplicates_in_store_collapse(self, store):
        store.parent.mkdir(parents=True)
        entry = {"full_path": "/home/u/dev/a", "session_name": "a"}
        store.write_text(json.dumps({"paths": [entry, entry]}))
        assert len(ProjectIndex.load(store)) == 1

    @pytest.mark.parametrize("content", ["not json{{{", '{"paths": [{"full_path": 1}]}', '{"paths": 5}'])
    def test_corrupt_store(self, store, content):
        store.parent.mkdir(parents=True)
        store.write_text(content)
        with pytest.raises(StoreFormatError):
            ProjectIndex.load(store)

    def test_unreadable_store(self, store):
        store.mkdir(parents=True)  # a directory where the file should be
        with pytest.raises(StoreReadError):
            ProjectIndex.load(store)

    def test_clear_discards_records(self, store):
        index = ProjectIndex(store, [_record(str(i)) for i in range(5)])
        index.persist()
        assert len(ProjectIndex.load(store, clear=True)) == 0

    def test_clear_ignores_corrupt_store(self, store):
        store.parent.mkdir(parents=True)
        store.write_text("garbage")
        assert len(ProjectIndex.load(store, clear=True)) == 0


class TestAdd:
    def test_add_is_idempotent(self, store):
        index = ProjectIndex(store)
        assert index.add(_record("a")) is True
        assert index.add(_record("a")) is False
        assert index.snapshot() == [_record("a")]

    def test_contains(self, store):
        index = ProjectIndex(store, [_record("a")])
        assert index.contains(_record("a"))
        assert not index.contains(_record("b"))
        assert not index.contains(PathRecord(full_path="/home/u/dev/a", session_name="other"))

    def test_snapshot_keeps_insertion_order(self, store):
        index = ProjectIndex(store)
        for name in ("c", "a", "b"):
            index.add(_record(name))
        assert [r.session_name for r in index.snapshot()] == ["c", "a", "b"]

    def test_concurrent_adds_never_duplicate(self, store):
        index = ProjectIndex(store)
        records = [_record(str(i)) for i in range(200)]
        wins: list[int] = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            wins.append(sum(index.add(r) for r in records))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(index) == 200
        assert sum(wins) == 200
        assert len(set(index.snapshot())) == len(index.snapshot())


class TestPersist:
    def test_roundtrip(self, store):
        index = ProjectIndex(store, [_record("a"), _record("teamA/svc")])
        index.persist()
        loaded = ProjectIndex.load(store)
        assert set(loaded.snapshot()) == set(index.snapshot())

    def test_empty_roundtrip(self, store):
        ProjectIndex(store).persist()
        assert len(ProjectIndex.load(store)) == 0

    def test_written_format(self, store):
        ProjectIndex(store, [_record("a")]).persist()
        data = json.loads(store.read_text())
        assert data == {"paths": [{"full_path": "/home/u/dev/a", "session_name": "a"}]}

    def test_overwrites_and_leaves_no_temp_file(self, store):
        ProjectIndex(store, [_record("a"), _record("b")]).persist()
        ProjectIndex(store, [_record("c")]).persist()
        assert ProjectIndex.load(store).snapshot() == [_record("c")]
        assert not store.with_suffix(".tmp").exists()

    def test_file_is_private(self, store):
        ProjectIndex(store, [_record("a")]).persist()
        assert store.stat().st_mode & 0o777 == 0o600

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        index = ProjectIndex(blocker / "cache.json", [_record("a")])
        with pytest.raises(StoreWriteError):
            index.persist()


class TestPruneMissing:
    def test_drops_vanished_directories(self, store, tmp_path):
        alive = tmp_path / "alive"
        alive.mkdir()
        kept = PathRecord(full_path=str(alive), session_name="alive")
        gone = PathRecord(full_path=str(tmp_path / "gone"), session_name="gone")
        index = ProjectIndex(store, [kept, gone])

        assert index.prune_missing() == 1
        assert index.snapshot() == [kept]
