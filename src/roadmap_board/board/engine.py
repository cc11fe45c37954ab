"""Board engine: drag/drop commits, bulk reorders, CRUD and the board view.

This is the primary entry-point for manipulating a board.  Moves follow a
two-phase protocol:

1. ``plan_*_move`` computes the intended position synchronously and returns a
   :class:`MovePlan` with a provisional (optimistic) snapshot;
2. :meth:`BoardEngine.commit` issues exactly one mutation through the
   :class:`~roadmap_board.board.ports.BoardMutations` port and refetches the
   board.  The refetched snapshot is the only confirmed state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from ..config import get_collapse_config, get_ordering_config, get_priority_keywords, load_board_config
from ..constants import ARTIFACTS_DIR, EVENTS_FILE, LOCAL_STATE_FILE, STATE_DIR_NAME
from ..io_utils import _append_event, _read_jsonl
from .collapse import CollapseStateStore, JsonFileStorage
from .deadlines import deadline_status, is_block_overdue
from .filtering import (
    FilterCounts,
    FilterState,
    GroupBy,
    count_by_filter,
    filter_tasks,
    group_tasks,
    iter_countable,
    sort_tasks,
)
from .model import Block, Board, Section, Subtask, Tag, TagType, Task, TaskPriority, TaskStatus
from .ordering import (
    DragPhase,
    DragSession,
    ItemKind,
    MoveResult,
    apply_move,
    array_move,
    parse_sortable_id,
    resolve_drop,
    resolve_order,
)
from .ports import BoardMutations
from .store import BoardStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MovePlan:
    """A computed move that has not been persisted yet."""

    move: MoveResult
    base: Board
    provisional: Board


@dataclass
class SectionView:
    key: str
    block_id: int
    section_id: int
    title: str
    collapsed: bool
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "block_id": self.block_id,
            "section_id": self.section_id,
            "title": self.title,
            "collapsed": self.collapsed,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class BoardView:
    """Everything the main view needs to render one filter selection."""

    filter: FilterState
    counts: FilterCounts
    sections: list[SectionView] = field(default_factory=list)
    groups: list[dict[str, Any]] = field(default_factory=list)
    collapsed: list[str] = field(default_factory=list)
    deadlines: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filter": self.filter.to_dict(),
            "counts": self.counts.to_dict(),
            "sections": [s.to_dict() for s in self.sections],
            "groups": self.groups,
            "collapsed": self.collapsed,
            "deadlines": {str(k): v for k, v in self.deadlines.items()},
        }


class BoardEngine:
    """Coordinate ordering, filtering and persistence for one project board.

    Parameters
    ----------
    state_dir:
        Path to the ``.roadmap/`` directory.
    mutations:
        Port that persists moves and reorders.  Defaults to the file store.
    collapse:
        Collapsed-group store.  Defaults to a JSON file in *state_dir*.
    """

    def __init__(
        self,
        state_dir: Path,
        *,
        mutations: Optional[BoardMutations] = None,
        collapse: Optional[CollapseStateStore] = None,
        renumber_on_move: bool = False,
        priority_keywords: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        self._state_dir = state_dir
        self.store = BoardStore(state_dir, renumber_on_move=renumber_on_move)
        self.mutations: BoardMutations = mutations or self.store
        self.collapse = collapse or CollapseStateStore(JsonFileStorage(state_dir / LOCAL_STATE_FILE))
        self.renumber_on_move = renumber_on_move
        self.priority_keywords = priority_keywords
        self._events_path = state_dir / ARTIFACTS_DIR / EVENTS_FILE
        self._confirmed: Optional[Board] = None

    @classmethod
    def for_project(cls, project_dir: Path) -> "BoardEngine":
        """Build an engine for *project_dir*, honouring ``.roadmap/config.yaml``."""
        config, err = load_board_config(project_dir)
        if err:
            logger.warning("Ignoring unreadable board config: %s", err)
        state_dir = project_dir / STATE_DIR_NAME
        collapse_cfg = get_collapse_config(config)
        return cls(
            state_dir,
            collapse=CollapseStateStore(
                JsonFileStorage(state_dir / LOCAL_STATE_FILE),
                storage_key=collapse_cfg["storage_key"],
            ),
            renumber_on_move=get_ordering_config(config)["renumber_on_move"],
            priority_keywords=get_priority_keywords(config),
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit_event(self, event_type: str, **details: Any) -> None:
        """Append a board mutation event; failures are logged, never raised."""
        try:
            _append_event(self._events_path, {"type": event_type, **details})
        except OSError:
            logger.exception("Failed to append board event %s", event_type)

    def get_recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        return _read_jsonl(self._events_path, limit)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def refresh(self) -> Board:
        """Refetch the authoritative board from the data store."""
        self._confirmed = self.mutations.snapshot()
        return self._confirmed

    @property
    def board(self) -> Board:
        """Last confirmed snapshot (fetched on first use)."""
        if self._confirmed is None:
            return self.refresh()
        return self._confirmed

    @staticmethod
    def resolve_target(board: Board, target: Any) -> Any:
        """Turn a ``task-3`` style id into the record it names (None if unknown)."""
        if not isinstance(target, str):
            return target
        parsed = parse_sortable_id(target)
        if parsed is None:
            return None
        kind, item_id = parsed
        if kind == ItemKind.TASK:
            return board.find_task(item_id)
        if kind == ItemKind.SECTION:
            return board.find_section(item_id)
        return board.find_block(item_id)

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def _plan(self, item: Any, board: Board, target: Any) -> Optional[MovePlan]:
        reference = self.resolve_target(board, target)
        result = resolve_drop(item, reference)
        if result is None:
            logger.debug("Drop of %s on %r is a no-op", getattr(item, "id", item), target)
            return None
        provisional = apply_move(board, result, renumber_siblings=self.renumber_on_move)
        return MovePlan(move=result, base=board, provisional=provisional)

    def plan_task_move(self, task_id: int, target: Any) -> Optional[MovePlan]:
        """Plan dropping task *task_id* on *target* (record or sortable id).

        Returns None for invalid targets and no-op moves.

        Raises:
            ValueError: If the task does not exist.
        """
        board = self.refresh()
        task = board.find_task(task_id)
        if task is None:
            raise ValueError(f"Task {task_id} not found")
        return self._plan(task, board, target)

    def plan_section_move(self, section_id: int, target: Any) -> Optional[MovePlan]:
        board = self.refresh()
        section = board.find_section(section_id)
        if section is None:
            raise ValueError(f"Section {section_id} not found")
        return self._plan(section, board, target)

    def commit(self, plan: MovePlan) -> Board:
        """Persist *plan* with one mutation call and return the refetched board.

        Mutation failures propagate; the last confirmed snapshot is kept.
        """
        move = plan.move
        try:
            if move.kind == ItemKind.TASK:
                self.mutations.move_task(move.item_id, move.new_parent_id, move.new_sort_order)
            elif move.kind == ItemKind.SECTION:
                self.mutations.move_section(move.item_id, move.new_parent_id, move.new_sort_order)
            else:
                raise ValueError(f"Unsupported move kind: {move.kind}")
        except Exception:
            self._confirmed = plan.base
            logger.warning("Move of %s %s failed; keeping previous order", move.kind.value, move.item_id)
            raise
        self._emit_event(
            f"{move.kind.value}.moved",
            item_id=move.item_id,
            parent_id=move.new_parent_id,
            sort_order=move.new_sort_order,
        )
        logger.info(
            "Moved %s %s to parent %s at %s",
            move.kind.value, move.item_id, move.new_parent_id, move.new_sort_order,
        )
        return self.refresh()

    def finish_drag(self, session: DragSession) -> Optional[Board]:
        """Commit a finished drag gesture; cancelled gestures change nothing."""
        if session.phase != DragPhase.COMMITTED or session.result is None:
            return None
        board = self.board
        provisional = apply_move(board, session.result, renumber_siblings=self.renumber_on_move)
        return self.commit(MovePlan(move=session.result, base=board, provisional=provisional))

    def drop(self, item: Any, target: Any) -> Optional[Board]:
        """Plan and commit in one step.  *item* is a record or sortable id."""
        if isinstance(item, str):
            parsed = parse_sortable_id(item)
            if parsed is None:
                raise ValueError(f"Invalid sortable id: {item!r}")
            kind, item_id = parsed
        elif isinstance(item, Task):
            kind, item_id = ItemKind.TASK, item.id
        elif isinstance(item, Section):
            kind, item_id = ItemKind.SECTION, item.id
        else:
            raise ValueError(f"Cannot drag {type(item).__name__}")
        if kind == ItemKind.TASK:
            return self.drop_task(item_id, target)
        if kind == ItemKind.SECTION:
            return self.drop_section(item_id, target)
        raise ValueError("Blocks are reordered with reorder_blocks, not dragged")

    def drop_task(self, task_id: int, target: Any) -> Optional[Board]:
        plan = self.plan_task_move(task_id, target)
        return self.commit(plan) if plan else None

    def drop_section(self, section_id: int, target: Any) -> Optional[Board]:
        plan = self.plan_section_move(section_id, target)
        return self.commit(plan) if plan else None

    # ------------------------------------------------------------------
    # Bulk reorders
    # ------------------------------------------------------------------

    def reorder_tasks(self, section_id: int, task_ids: Sequence[int]) -> Board:
        self.mutations.reorder_tasks(section_id, list(task_ids))
        self._emit_event("tasks.reordered", section_id=section_id, ids=list(task_ids))
        return self.refresh()

    def reorder_sections(self, block_id: int, section_ids: Sequence[int]) -> Board:
        self.mutations.reorder_sections(block_id, list(section_ids))
        self._emit_event("sections.reordered", block_id=block_id, ids=list(section_ids))
        return self.refresh()

    def reorder_blocks(self, block_ids: Sequence[int]) -> Board:
        if not block_ids:
            raise ValueError("block_ids must not be empty")
        self.mutations.reorder_blocks(list(block_ids))
        self._emit_event("blocks.reordered", ids=list(block_ids))
        return self.refresh()

    def move_block(self, block_id: int, to_index: int) -> Board:
        """Move a block to *to_index* in the sidebar list and persist the new order.

        Raises:
            ValueError: If the block does not exist.
            IndexError: If *to_index* is outside the block list.
        """
        ordered = [b.id for b in resolve_order(self.refresh().blocks)]
        if block_id not in ordered:
            raise ValueError(f"Block {block_id} not found")
        return self.reorder_blocks(array_move(ordered, ordered.index(block_id), to_index))

    def reorder_subtasks(self, task_id: int, subtask_ids: Sequence[int]) -> Board:
        self.mutations.reorder_subtasks(task_id, list(subtask_ids))
        self._emit_event("subtasks.reordered", task_id=task_id, ids=list(subtask_ids))
        return self.refresh()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_block(self, title: str, **kwargs: Any) -> Block:
        with self.store.transaction() as tx:
            block = tx.add_block(title, **kwargs)
        logger.info("Created block %s: %s", block.id, title)
        return block

    def create_section(self, block_id: int, title: str) -> Section:
        with self.store.transaction() as tx:
            section = tx.add_section(block_id, title)
        logger.info("Created section %s in block %s", section.id, block_id)
        return section

    def create_task(
        self,
        section_id: int,
        title: str,
        *,
        status: str = "not_started",
        priority: str = "none",
        deadline: Optional[str] = None,
    ) -> Task:
        with self.store.transaction() as tx:
            task = tx.add_task(
                section_id,
                title,
                status=TaskStatus(status),
                priority=TaskPriority(priority),
                deadline=deadline,
            )
        logger.info("Created task %s in section %s", task.id, section_id)
        return task

    def create_subtask(self, task_id: int, title: str, *, status: str = "not_started") -> Subtask:
        with self.store.transaction() as tx:
            return tx.add_subtask(task_id, title, status=TaskStatus(status))

    def create_tag(self, name: str, *, color: Optional[str] = None, tag_type: Optional[str] = "label") -> Tag:
        with self.store.transaction() as tx:
            kwargs: dict[str, Any] = {"tag_type": TagType(tag_type) if tag_type else None}
            if color:
                kwargs["color"] = color
            return tx.add_tag(name, **kwargs)

    def tag_task(self, task_id: int, tag_id: int) -> None:
        with self.store.transaction() as tx:
            tx.assign_tag(task_id, tag_id)

    def untag_task(self, task_id: int, tag_id: int) -> None:
        with self.store.transaction() as tx:
            tx.unassign_tag(task_id, tag_id)

    def update_task(self, task_id: int, changes: dict[str, Any]) -> Task:
        with self.store.transaction() as tx:
            task = tx.update_task(task_id, changes)
        self._emit_event("task.updated", item_id=task_id, fields=sorted(changes))
        return task

    def set_block_deadline(self, block_id: int, deadline: Optional[str], reminder_days: Optional[int] = None) -> Block:
        with self.store.transaction() as tx:
            return tx.set_block_deadline(block_id, deadline, reminder_days)

    def delete_task(self, task_id: int) -> bool:
        with self.store.transaction() as tx:
            return tx.delete_task(task_id)

    def delete_section(self, section_id: int) -> bool:
        with self.store.transaction() as tx:
            return tx.delete_section(section_id)

    def delete_block(self, block_id: int) -> bool:
        with self.store.transaction() as tx:
            return tx.delete_block(block_id)

    def delete_tag(self, tag_id: int) -> bool:
        with self.store.transaction() as tx:
            return tx.delete_tag(tag_id)

    # ------------------------------------------------------------------
    # View model
    # ------------------------------------------------------------------

    def count_units(self, board: Board, today: Optional[date] = None) -> FilterCounts:
        """Filter badge counts over every task and subtask of *board*."""
        units: list[Any] = []
        overdue_units: set[int] = set()
        for unit, block in iter_countable(resolve_order(board.blocks)):
            units.append(unit)
            if is_block_overdue(block, today):
                overdue_units.add(id(unit))
        return count_by_filter(units, lambda unit: id(unit) in overdue_units)

    def build_view(self, state: FilterState, today: Optional[date] = None) -> BoardView:
        """Filter, group and annotate the current board for rendering."""
        board = self.refresh()
        lookup = board.tag_lookup()
        collapsed = self.collapse.reload()
        view = BoardView(
            filter=state,
            counts=self.count_units(board, today),
            collapsed=sorted(collapsed),
        )

        matching: list[Task] = []
        for block in resolve_order(board.blocks):
            view.deadlines[block.id] = deadline_status(block, today).value
            overdue = is_block_overdue(block, today)
            for section in resolve_order(block.sections):
                tasks = filter_tasks(resolve_order(section.tasks), state, overdue, lookup, today)
                matching.extend(tasks)
                if state.sort_field is not None:
                    tasks = sort_tasks(tasks, state.sort_field, state.sort_direction)
                key = f"section-{section.id}"
                view.sections.append(
                    SectionView(
                        key=key,
                        block_id=block.id,
                        section_id=section.id,
                        title=section.title,
                        collapsed=key in collapsed,
                        tasks=tasks,
                    )
                )

        if state.group_by != GroupBy.NONE:
            for group in group_tasks(matching, state.group_by, lookup, self.priority_keywords):
                if state.sort_field is not None:
                    group.tasks = sort_tasks(group.tasks, state.sort_field, state.sort_direction)
                payload = group.to_dict()
                payload["collapsed"] = group.key in collapsed
                view.groups.append(payload)
        return view
