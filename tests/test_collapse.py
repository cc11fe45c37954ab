"""Tests for the collapsed-group store and its storage backends."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from roadmap_board.board.collapse import CollapseStateStore, JsonFileStorage, MemoryStorage
from roadmap_board.constants import COLLAPSED_GROUPS_KEY


class TestCollapseStateStore:
    def test_starts_empty(self) -> None:
        store = CollapseStateStore(MemoryStorage())
        assert store.collapsed == frozenset()
        assert not store.is_collapsed("tag-1")

    def test_toggle_flips_and_persists(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage)
        assert store.toggle("tag-1") is True
        assert store.is_collapsed("tag-1")
        assert json.loads(storage.get_item(COLLAPSED_GROUPS_KEY)) == ["tag-1"]
        assert store.toggle("tag-1") is False
        assert json.loads(storage.get_item(COLLAPSED_GROUPS_KEY)) == []

    def test_toggle_survives_reload(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage)
        store.toggle("section-4")
        store.toggle("no-tag")
        store.toggle("section-4")
        reloaded = CollapseStateStore(storage)
        assert reloaded.collapsed == store.collapsed == frozenset({"no-tag"})

    def test_expand_all(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage)
        store.collapse_all(["a", "b"])
        store.expand_all()
        assert store.collapsed == frozenset()
        assert CollapseStateStore(storage).collapsed == frozenset()

    def test_collapse_all_replaces_set(self) -> None:
        store = CollapseStateStore(MemoryStorage())
        store.toggle("old")
        store.collapse_all(["status-completed", "status-in_progress"])
        assert store.collapsed == frozenset({"status-completed", "status-in_progress"})

    def test_operations_are_idempotent(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage)
        store.collapse_all(["x"])
        store.collapse_all(["x"])
        store.expand_all()
        store.expand_all()
        assert CollapseStateStore(storage).collapsed == frozenset()

    @pytest.mark.parametrize("raw", ["{not json", '{"a": 1}', "42", "null"])
    def test_corrupt_state_reads_as_empty(self, raw: str) -> None:
        storage = MemoryStorage({COLLAPSED_GROUPS_KEY: raw})
        store = CollapseStateStore(storage)
        assert store.collapsed == frozenset()
        store.toggle("tag-2")
        assert json.loads(storage.get_item(COLLAPSED_GROUPS_KEY)) == ["tag-2"]

    def test_non_string_members_are_dropped(self) -> None:
        storage = MemoryStorage({COLLAPSED_GROUPS_KEY: '["tag-1", 3, null]'})
        assert CollapseStateStore(storage).collapsed == frozenset({"tag-1"})

    def test_toggle_keeps_writes_from_another_store(self) -> None:
        storage = MemoryStorage()
        server_side = CollapseStateStore(storage)
        CollapseStateStore(storage).toggle("section-1")
        assert server_side.toggle("section-2") is True
        assert server_side.collapsed == frozenset({"section-1", "section-2"})
        assert json.loads(storage.get_item(COLLAPSED_GROUPS_KEY)) == ["section-1", "section-2"]

    def test_reload_picks_up_external_changes(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage)
        storage.set_item(COLLAPSED_GROUPS_KEY, '["tag-9"]')
        assert store.collapsed == frozenset()
        assert store.reload() == frozenset({"tag-9"})
        assert store.is_collapsed("tag-9")

    def test_custom_storage_key(self) -> None:
        storage = MemoryStorage()
        store = CollapseStateStore(storage, storage_key="mine")
        store.toggle("k")
        assert storage.get_item("mine") == '["k"]'
        assert storage.get_item(COLLAPSED_GROUPS_KEY) is None


class TestJsonFileStorage:
    def test_round_trip_through_file(self, tmp_path: Path) -> None:
        path = tmp_path / "local_state.json"
        store = CollapseStateStore(JsonFileStorage(path))
        store.toggle("tag-7")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert json.loads(data[COLLAPSED_GROUPS_KEY]) == ["tag-7"]
        assert CollapseStateStore(JsonFileStorage(path)).is_collapsed("tag-7")

    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        storage = JsonFileStorage(tmp_path / "nope.json")
        assert storage.get_item(COLLAPSED_GROUPS_KEY) is None

    def test_corrupt_file_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "local_state.json"
        path.write_text("{{{", encoding="utf-8")
        store = CollapseStateStore(JsonFileStorage(path))
        assert store.collapsed == frozenset()
        store.toggle("a")
        assert CollapseStateStore(JsonFileStorage(path)).collapsed == frozenset({"a"})

    def test_other_keys_are_preserved(self, tmp_path: Path) -> None:
        path = tmp_path / "local_state.json"
        path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
        storage = JsonFileStorage(path)
        CollapseStateStore(storage).toggle("a")
        assert storage.get_item("theme") == "dark"

    def test_concurrent_writers_share_one_storage(self, tmp_path: Path) -> None:
        storage = JsonFileStorage(tmp_path / "local_state.json")

        def worker(n: int) -> None:
            storage.set_item(f"key-{n}", str(n))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert [storage.get_item(f"key-{i}") for i in range(8)] == [str(i) for i in range(8)]
