"""Tests for the board engine (board/engine.py)."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence

import pytest

from roadmap_board.board.collapse import CollapseStateStore, MemoryStorage
from roadmap_board.board.engine import BoardEngine
from roadmap_board.board.filtering import DeadlineFilter, FilterState, FilterType, GroupBy, SortField
from roadmap_board.board.model import Board
from roadmap_board.board.ordering import DragEnded, DragSession, DragStarted, ItemKind, reduce_drag
from roadmap_board.board.store import BoardStore

TODAY = date(2025, 6, 15)


class RecordingPort:
    """Mutation port that records calls and can be told to fail."""

    def __init__(self, store: BoardStore, fail: bool = False) -> None:
        self.store = store
        self.fail = fail
        self.calls: list[tuple] = []

    def snapshot(self) -> Board:
        return self.store.snapshot()

    def move_task(self, task_id: int, new_section_id: int, new_sort_order: int) -> None:
        self.calls.append(("move_task", task_id, new_section_id, new_sort_order))
        if self.fail:
            raise ConnectionError("data store unavailable")
        self.store.move_task(task_id, new_section_id, new_sort_order)

    def move_section(self, section_id: int, new_block_id: int, new_sort_order: int) -> None:
        self.calls.append(("move_section", section_id, new_block_id, new_sort_order))
        self.store.move_section(section_id, new_block_id, new_sort_order)

    def reorder_tasks(self, section_id: int, ordered_task_ids: Sequence[int]) -> None:
        self.calls.append(("reorder_tasks", section_id, list(ordered_task_ids)))
        self.store.reorder_tasks(section_id, ordered_task_ids)

    def reorder_sections(self, block_id: int, ordered_section_ids: Sequence[int]) -> None:
        self.calls.append(("reorder_sections", block_id, list(ordered_section_ids)))
        self.store.reorder_sections(block_id, ordered_section_ids)

    def reorder_blocks(self, ordered_block_ids: Sequence[int]) -> None:
        self.calls.append(("reorder_blocks", list(ordered_block_ids)))
        self.store.reorder_blocks(ordered_block_ids)

    def reorder_subtasks(self, task_id: int, ordered_subtask_ids: Sequence[int]) -> None:
        self.calls.append(("reorder_subtasks", task_id, list(ordered_subtask_ids)))
        self.store.reorder_subtasks(task_id, ordered_subtask_ids)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".roadmap"
    d.mkdir()
    return d


@pytest.fixture
def port(state_dir: Path) -> RecordingPort:
    return RecordingPort(BoardStore(state_dir))


@pytest.fixture
def engine(state_dir: Path, port: RecordingPort) -> BoardEngine:
    return BoardEngine(state_dir, mutations=port, collapse=CollapseStateStore(MemoryStorage()))


@pytest.fixture
def ids(engine: BoardEngine) -> dict[str, int]:
    b1 = engine.create_block("Phase 1", deadline="2025-06-01")
    b2 = engine.create_block("Phase 2")
    s1 = engine.create_section(b1.id, "S1")
    s2 = engine.create_section(b2.id, "S2")
    a = engine.create_task(s1.id, "a", status="in_progress")
    b = engine.create_task(s1.id, "b", status="completed")
    c = engine.create_task(s1.id, "c")
    d = engine.create_task(s2.id, "d", status="in_progress")
    engine.create_subtask(d.id, "d.1", status="completed")
    return {"b1": b1.id, "b2": b2.id, "s1": s1.id, "s2": s2.id, "a": a.id, "b": b.id, "c": c.id, "d": d.id}


class TestPlanAndCommit:
    def test_plan_is_provisional(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        plan = engine.plan_task_move(ids["a"], f"task-{ids['c']}")
        assert plan is not None
        assert plan.move.kind == ItemKind.TASK
        assert plan.move.new_parent_id == ids["s1"]
        assert plan.move.new_sort_order == 3
        assert plan.provisional.find_task(ids["a"]).sort_order == 3
        assert plan.base.find_task(ids["a"]).sort_order == 1
        assert port.calls == []

    def test_commit_issues_one_call_and_refetches(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        plan = engine.plan_task_move(ids["a"], f"section-{ids['s2']}")
        confirmed = engine.commit(plan)
        assert port.calls == [("move_task", ids["a"], ids["s2"], 2)]
        moved = confirmed.find_task(ids["a"])
        assert moved.section_id == ids["s2"]
        assert engine.board is confirmed

    def test_drop_on_itself_never_calls_port(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        assert engine.plan_task_move(ids["b"], f"task-{ids['b']}") is None
        assert engine.drop_task(ids["b"], f"task-{ids['b']}") is None
        assert port.calls == []

    @pytest.mark.parametrize("target", [None, "garbage", "task-9999", "block-1"])
    def test_invalid_targets_are_no_ops(self, engine: BoardEngine, port: RecordingPort, ids, target) -> None:
        assert engine.plan_task_move(ids["a"], target) is None
        assert port.calls == []

    def test_unknown_item_raises(self, engine: BoardEngine, ids) -> None:
        with pytest.raises(ValueError, match="Task 9999 not found"):
            engine.plan_task_move(9999, "section-1")
        with pytest.raises(ValueError, match="Section 9999 not found"):
            engine.plan_section_move(9999, "block-1")

    def test_failed_commit_propagates_and_keeps_confirmed(
        self, engine: BoardEngine, port: RecordingPort, ids
    ) -> None:
        plan = engine.plan_task_move(ids["c"], f"task-{ids['a']}")
        port.fail = True
        with pytest.raises(ConnectionError):
            engine.commit(plan)
        assert engine.board is plan.base
        assert engine.refresh().find_task(ids["c"]).sort_order == 3
        assert engine.get_recent_events() == []

    def test_section_move(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        board = engine.drop_section(ids["s1"], f"block-{ids['b2']}")
        assert port.calls == [("move_section", ids["s1"], ids["b2"], 2)]
        assert [s.id for s in board.find_block(ids["b2"]).sections] == [ids["s2"], ids["s1"]]

    def test_drop_accepts_records_and_sortable_ids(self, engine: BoardEngine, ids) -> None:
        board = engine.refresh()
        engine.drop(board.find_task(ids["c"]), board.find_section(ids["s2"]))
        engine.drop(f"section-{ids['s2']}", f"block-{ids['b1']}")
        board = engine.board
        assert board.find_task(ids["c"]).section_id == ids["s2"]
        assert board.find_section(ids["s2"]).block_id == ids["b1"]
        with pytest.raises(ValueError, match="reorder_blocks"):
            engine.drop(f"block-{ids['b1']}", f"block-{ids['b2']}")
        with pytest.raises(ValueError, match="Invalid sortable id"):
            engine.drop("nonsense", f"task-{ids['a']}")

    def test_finish_drag(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        board = engine.refresh()
        session = reduce_drag(DragSession(), DragStarted(board.find_task(ids["a"])))
        cancelled = reduce_drag(session, DragEnded(None))
        assert engine.finish_drag(cancelled) is None
        committed = reduce_drag(session, DragEnded(board.find_task(ids["b"])))
        confirmed = engine.finish_drag(committed)
        assert port.calls == [("move_task", ids["a"], ids["s1"], 2)]
        assert confirmed.find_task(ids["a"]).sort_order == 2

    def test_renumber_on_move(self, state_dir: Path, ids) -> None:
        engine = BoardEngine(state_dir, renumber_on_move=True, collapse=CollapseStateStore(MemoryStorage()))
        board = engine.drop_task(ids["c"], f"task-{ids['a']}")
        section = board.find_section(ids["s1"])
        assert [(t.id, t.sort_order) for t in section.tasks] == [(ids["c"], 1), (ids["a"], 2), (ids["b"], 3)]


class TestReorders:
    def test_reorder_tasks(self, engine: BoardEngine, ids) -> None:
        board = engine.reorder_tasks(ids["s1"], [ids["c"], ids["b"], ids["a"]])
        assert [t.id for t in board.find_section(ids["s1"]).tasks] == [ids["c"], ids["b"], ids["a"]]

    def test_reorder_blocks_validates(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        with pytest.raises(ValueError):
            engine.reorder_blocks([])
        assert port.calls == []
        board = engine.reorder_blocks([ids["b2"], ids["b1"]])
        assert [b.id for b in board.blocks] == [ids["b2"], ids["b1"]]

    def test_reorder_sections(self, engine: BoardEngine, ids) -> None:
        s3 = engine.create_section(ids["b1"], "S3")
        board = engine.reorder_sections(ids["b1"], [s3.id, ids["s1"]])
        assert [s.id for s in board.find_block(ids["b1"]).sections] == [s3.id, ids["s1"]]

    def test_move_block_to_index(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        b3 = engine.create_block("Phase 3")
        board = engine.move_block(b3.id, 0)
        assert [b.id for b in board.blocks] == [b3.id, ids["b1"], ids["b2"]]
        assert port.calls == [("reorder_blocks", [b3.id, ids["b1"], ids["b2"]])]
        with pytest.raises(ValueError, match="Block 9999 not found"):
            engine.move_block(9999, 0)
        with pytest.raises(IndexError):
            engine.move_block(b3.id, 3)
        assert len(port.calls) == 1

    def test_reorder_subtasks(self, engine: BoardEngine, port: RecordingPort, ids) -> None:
        first = engine.refresh().find_task(ids["d"]).subtasks[0]
        second = engine.create_subtask(ids["d"], "d.2")
        board = engine.reorder_subtasks(ids["d"], [second.id, first.id])
        assert [s.id for s in board.find_task(ids["d"]).subtasks] == [second.id, first.id]
        assert port.calls == [("reorder_subtasks", ids["d"], [second.id, first.id])]
        assert engine.get_recent_events()[-1]["type"] == "subtasks.reordered"


class TestEvents:
    def test_committed_mutations_are_logged(self, engine: BoardEngine, ids) -> None:
        engine.drop_task(ids["a"], f"section-{ids['s2']}")
        engine.reorder_blocks([ids["b2"], ids["b1"]])
        events = engine.get_recent_events()
        assert [e["type"] for e in events] == ["task.moved", "blocks.reordered"]
        assert events[0]["item_id"] == ids["a"]
        assert "ts" in events[0]
        assert engine.get_recent_events(limit=1)[0]["type"] == "blocks.reordered"

    def test_event_log_failure_does_not_fail_mutation(self, engine: BoardEngine, state_dir: Path, ids) -> None:
        (state_dir / "artifacts").write_text("not a directory", encoding="utf-8")
        board = engine.drop_task(ids["a"], f"section-{ids['s2']}")
        assert board.find_task(ids["a"]).section_id == ids["s2"]


class TestBuildView:
    def test_sections_view(self, engine: BoardEngine, ids) -> None:
        view = engine.build_view(FilterState(), today=TODAY)
        assert [s.section_id for s in view.sections] == [ids["s1"], ids["s2"]]
        assert [t.id for t in view.sections[0].tasks] == [ids["a"], ids["b"], ids["c"]]
        assert view.groups == []
        assert view.deadlines == {ids["b1"]: "overdue", ids["b2"]: "no_deadline"}

    def test_counts_include_subtasks(self, engine: BoardEngine, ids) -> None:
        counts = engine.build_view(FilterState(), today=TODAY).counts
        assert counts.to_dict() == {
            "all": 5,
            "not_started": 1,
            "in_progress": 2,
            "completed": 2,
            "overdue": 2,
        }

    def test_overdue_filter_uses_block_deadline(self, engine: BoardEngine, ids) -> None:
        view = engine.build_view(FilterState(active_filter=FilterType.OVERDUE), today=TODAY)
        visible = [t.id for s in view.sections for t in s.tasks]
        assert visible == [ids["a"], ids["c"]]

    def test_grouped_view_with_collapse_flags(self, engine: BoardEngine, ids) -> None:
        engine.collapse.toggle("status-completed")
        view = engine.build_view(FilterState(group_by=GroupBy.STATUS), today=TODAY)
        assert [g["key"] for g in view.groups] == ["status-in_progress", "status-not_started", "status-completed"]
        assert [g["collapsed"] for g in view.groups] == [False, False, True]
        assert view.collapsed == ["status-completed"]

    def test_tag_view(self, engine: BoardEngine, ids) -> None:
        tag = engine.create_tag("backend", color="#123456")
        engine.tag_task(ids["a"], tag.id)
        state = FilterState(selected_tags=frozenset({tag.id}), group_by=GroupBy.TAG)
        payload = engine.build_view(state, today=TODAY).to_dict()
        assert [g["key"] for g in payload["groups"]] == [f"tag-{tag.id}"]
        assert payload["groups"][0]["tasks"][0]["id"] == ids["a"]
        assert payload["filter"]["selected_tags"] == [tag.id]

    def test_deadline_chip_filters_sections(self, engine: BoardEngine, ids) -> None:
        engine.update_task(ids["a"], {"deadline": "2025-06-15"})
        engine.update_task(ids["c"], {"deadline": "2025-06-20"})
        view = engine.build_view(FilterState(deadline_filter=DeadlineFilter.WEEK), today=TODAY)
        assert [t.id for s in view.sections for t in s.tasks] == [ids["a"], ids["c"]]
        view = engine.build_view(FilterState(deadline_filter=DeadlineFilter.TODAY), today=TODAY)
        assert [t.id for s in view.sections for t in s.tasks] == [ids["a"]]

    def test_sort_applies_to_sections_and_groups(self, engine: BoardEngine, ids) -> None:
        state = FilterState(sort_field=SortField.TITLE, sort_direction="asc", group_by=GroupBy.STATUS)
        view = engine.build_view(state, today=TODAY)
        assert [t.id for t in view.sections[0].tasks] == [ids["c"], ids["b"], ids["a"]]
        in_progress = view.groups[0]
        assert in_progress["key"] == "status-in_progress"
        assert [t["id"] for t in in_progress["tasks"]] == [ids["d"], ids["a"]]
        stored = engine.refresh().find_section(ids["s1"]).tasks
        assert [t.id for t in stored] == [ids["a"], ids["b"], ids["c"]]

    def test_view_rereads_collapsed_state(self, state_dir: Path, ids) -> None:
        storage = MemoryStorage()
        engine = BoardEngine(state_dir, collapse=CollapseStateStore(storage))
        CollapseStateStore(storage).toggle(f"section-{ids['s2']}")
        view = engine.build_view(FilterState(), today=TODAY)
        assert [s.collapsed for s in view.sections] == [False, True]


class TestForProject:
    def test_config_is_honoured(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ROADMAP_BOARD_RENUMBER_ON_MOVE", raising=False)
        state = tmp_path / ".roadmap"
        state.mkdir()
        (state / "config.yaml").write_text(
            "ordering:\n  renumber_on_move: true\n"
            "collapse:\n  storage_key: custom-key\n"
            "grouping:\n  priority_keywords:\n    high: [p0]\n",
            encoding="utf-8",
        )
        engine = BoardEngine.for_project(tmp_path)
        assert engine.renumber_on_move is True
        assert engine.store.renumber_on_move is True
        assert engine.priority_keywords == {"high": ("p0",)}
        engine.collapse.toggle("x")
        assert "custom-key" in (state / "local_state.json").read_text(encoding="utf-8")

    def test_broken_config_falls_back(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ROADMAP_BOARD_RENUMBER_ON_MOVE", raising=False)
        state = tmp_path / ".roadmap"
        state.mkdir()
        (state / "config.yaml").write_text("ordering: [unclosed", encoding="utf-8")
        engine = BoardEngine.for_project(tmp_path)
        assert engine.renumber_on_move is False
        assert engine.priority_keywords is None
