"""File-based board store with exclusive locking.

Stores the whole board (blocks, sections, tasks, subtasks, tags) in a single
YAML file (``board.yaml``) inside the project's ``.roadmap/`` directory.  All
reads and writes go through :meth:`BoardStore.transaction`, which holds an
exclusive file lock so a move's parent id and sort order are written together.

The store implements :class:`~roadmap_board.board.ports.BoardMutations`.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

import yaml

from ..constants import BOARD_FILE, BOARD_LOCK_FILE, DEFAULT_REMINDER_DAYS, DEFAULT_TAG_COLOR
from ..io_utils import FileLock
from .model import Block, Board, Section, Subtask, Tag, TagType, Task, TaskPriority, TaskStatus
from .ordering import ItemKind, MoveResult, apply_move_in_place, next_sort_order, renumber, resolve_order

Dumper = getattr(yaml, "CSafeDumper", yaml.SafeDumper)
Loader = getattr(yaml, "CSafeLoader", yaml.SafeLoader)

STORE_VERSION = 1


# ---------------------------------------------------------------------------
# Low-level I/O
# ---------------------------------------------------------------------------

def _load_raw(path: Path) -> dict[str, Any]:
    """Load the raw board mapping from *path*, returning ``{}`` if missing."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.load(text, Loader=Loader)
    if not isinstance(data, dict):
        return {}
    board = data.get("board")
    return board if isinstance(board, dict) else {}


def _save_raw(path: Path, board: dict[str, Any]) -> None:
    """Atomically write *board* to *path* (write-tmp-then-rename)."""
    payload = {"version": STORE_VERSION, "board": board}
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            yaml.dump(payload, fh, Dumper=Dumper, default_flow_style=False, sort_keys=False, allow_unicode=True)
        shutil.move(tmp, str(path))
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# BoardStore
# ---------------------------------------------------------------------------

class BoardStore:
    """Lock-guarded, file-backed store for one project :class:`Board`.

    Parameters
    ----------
    state_dir:
        Path to the ``.roadmap/`` directory for the project.
    renumber_on_move:
        Renumber destination siblings ``1..N`` in the same write as a move.
    """

    def __init__(self, state_dir: Path, *, renumber_on_move: bool = False) -> None:
        self._state_dir = state_dir
        self._store_path = state_dir / BOARD_FILE
        self._lock_path = state_dir / BOARD_LOCK_FILE
        self.renumber_on_move = renumber_on_move

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> Board:
        return Board.from_dict(_load_raw(self._store_path))

    def _save(self, board: Board) -> None:
        _save_raw(self._store_path, board.to_dict())

    # -- public API ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[_BoardTx]:
        """Acquire the lock, load the board, yield a transaction, save on exit.

        Usage::

            with store.transaction() as tx:
                tx.move_task(7, new_section_id=2, new_sort_order=3)
                # saved on exit if anything changed
        """
        # A fresh lock per transaction: each holder needs its own file handle.
        with FileLock(self._lock_path):
            board = self._load()
            tx = _BoardTx(board, renumber_on_move=self.renumber_on_move)
            yield tx
            if tx.dirty:
                self._save(tx.board)

    def snapshot(self) -> Board:
        """Return a detached copy of the current board."""
        with FileLock(self._lock_path):
            return self._load()

    # -- mutation port --------------------------------------------------------

    def move_task(self, task_id: int, new_section_id: int, new_sort_order: int) -> None:
        with self.transaction() as tx:
            tx.move_task(task_id, new_section_id, new_sort_order)

    def move_section(self, section_id: int, new_block_id: int, new_sort_order: int) -> None:
        with self.transaction() as tx:
            tx.move_section(section_id, new_block_id, new_sort_order)

    def reorder_tasks(self, section_id: int, ordered_task_ids: Sequence[int]) -> None:
        with self.transaction() as tx:
            tx.reorder_tasks(section_id, ordered_task_ids)

    def reorder_sections(self, block_id: int, ordered_section_ids: Sequence[int]) -> None:
        with self.transaction() as tx:
            tx.reorder_sections(block_id, ordered_section_ids)

    def reorder_blocks(self, ordered_block_ids: Sequence[int]) -> None:
        with self.transaction() as tx:
            tx.reorder_blocks(ordered_block_ids)

    def reorder_subtasks(self, task_id: int, ordered_subtask_ids: Sequence[int]) -> None:
        with self.transaction() as tx:
            tx.reorder_subtasks(task_id, ordered_subtask_ids)


class _BoardTx:
    """In-memory transaction over a :class:`Board`.

    Mutations set ``dirty`` and are flushed back to disk when the
    ``transaction`` context-manager exits.
    """

    def __init__(self, board: Board, *, renumber_on_move: bool = False) -> None:
        self.board = board
        self.dirty = False
        self.renumber_on_move = renumber_on_move

    # -- lookups --------------------------------------------------------------

    def require_block(self, block_id: int) -> Block:
        block = self.board.find_block(block_id)
        if block is None:
            raise ValueError(f"Block {block_id} not found")
        return block

    def require_section(self, section_id: int) -> Section:
        section = self.board.find_section(section_id)
        if section is None:
            raise ValueError(f"Section {section_id} not found")
        return section

    def require_task(self, task_id: int) -> Task:
        task = self.board.find_task(task_id)
        if task is None:
            raise ValueError(f"Task {task_id} not found")
        return task

    def require_tag(self, tag_id: int) -> Tag:
        tag = self.board.find_tag(tag_id)
        if tag is None:
            raise ValueError(f"Tag {tag_id} not found")
        return tag

    # -- creation -------------------------------------------------------------

    def add_block(
        self,
        title: str,
        *,
        title_ru: Optional[str] = None,
        number: Optional[int] = None,
        deadline: Optional[str] = None,
        reminder_days: int = DEFAULT_REMINDER_DAYS,
    ) -> Block:
        block = Block(
            id=self.board.allocate_id(),
            title=title,
            title_ru=title_ru,
            number=number if number is not None else len(self.board.blocks) + 1,
            sort_order=next_sort_order(self.board.blocks),
            deadline=deadline,
            reminder_days=reminder_days,
        )
        self.board.blocks.append(block)
        self.dirty = True
        return block

    def add_section(self, block_id: int, title: str) -> Section:
        block = self.require_block(block_id)
        section = Section(
            id=self.board.allocate_id(),
            title=title,
            sort_order=next_sort_order(block.sections),
            block_id=block.id,
        )
        block.sections.append(section)
        self.dirty = True
        return section

    def add_task(
        self,
        section_id: int,
        title: str,
        *,
        status: TaskStatus = TaskStatus.NOT_STARTED,
        priority: TaskPriority = TaskPriority.NONE,
        deadline: Optional[str] = None,
    ) -> Task:
        section = self.require_section(section_id)
        task = Task(
            id=self.board.allocate_id(),
            title=title,
            status=status,
            priority=priority,
            deadline=deadline,
            sort_order=next_sort_order(section.tasks),
            section_id=section.id,
        )
        section.tasks.append(task)
        self.dirty = True
        return task

    def add_subtask(self, task_id: int, title: str, *, status: TaskStatus = TaskStatus.NOT_STARTED) -> Subtask:
        task = self.require_task(task_id)
        sub = Subtask(
            id=self.board.allocate_id(),
            task_id=task.id,
            title=title,
            status=status,
            sort_order=next_sort_order(task.subtasks),
        )
        task.subtasks.append(sub)
        self.dirty = True
        return sub

    def add_tag(self, name: str, *, color: str = DEFAULT_TAG_COLOR, tag_type: Optional[TagType] = TagType.LABEL) -> Tag:
        tag = Tag(id=self.board.allocate_id(), name=name, color=color, tag_type=tag_type)
        self.board.tags.append(tag)
        self.dirty = True
        return tag

    # -- updates --------------------------------------------------------------

    def update_task(self, task_id: int, changes: dict[str, Any]) -> Task:
        """Apply partial field updates; ordering fields go through moves only."""
        task = self.require_task(task_id)
        for key, value in changes.items():
            if key == "title":
                task.title = str(value)
            elif key == "status":
                task.status = TaskStatus(value)
            elif key == "priority":
                task.priority = TaskPriority(value)
            elif key == "deadline":
                task.deadline = str(value) if value else None
            else:
                raise ValueError(f"Field '{key}' cannot be updated directly")
        self.dirty = True
        return task

    def set_block_deadline(self, block_id: int, deadline: Optional[str], reminder_days: Optional[int] = None) -> Block:
        block = self.require_block(block_id)
        block.deadline = deadline or None
        if reminder_days is not None:
            if reminder_days < 0:
                raise ValueError("reminder_days must be non-negative")
            block.reminder_days = reminder_days
        self.dirty = True
        return block

    def assign_tag(self, task_id: int, tag_id: int) -> None:
        self.require_task(task_id)
        self.require_tag(tag_id)
        linked = self.board.task_tags.setdefault(task_id, [])
        if tag_id not in linked:
            linked.append(tag_id)
            self.dirty = True

    def unassign_tag(self, task_id: int, tag_id: int) -> None:
        linked = self.board.task_tags.get(task_id)
        if linked and tag_id in linked:
            linked.remove(tag_id)
            if not linked:
                del self.board.task_tags[task_id]
            self.dirty = True

    # -- deletion ---------------------------------------------------------------

    def _drop_task_links(self, task_ids: Sequence[int]) -> None:
        for task_id in task_ids:
            self.board.task_tags.pop(task_id, None)

    def delete_task(self, task_id: int) -> bool:
        task = self.board.find_task(task_id)
        if task is None:
            return False
        section = self.require_section(task.section_id) if task.section_id is not None else None
        if section is not None:
            section.tasks = [t for t in section.tasks if t.id != task_id]
        self._drop_task_links([task_id])
        self.dirty = True
        return True

    def delete_section(self, section_id: int) -> bool:
        block = self.board.block_of_section(section_id)
        if block is None:
            return False
        section = self.require_section(section_id)
        self._drop_task_links([t.id for t in section.tasks])
        block.sections = [s for s in block.sections if s.id != section_id]
        self.dirty = True
        return True

    def delete_block(self, block_id: int) -> bool:
        block = self.board.find_block(block_id)
        if block is None:
            return False
        self._drop_task_links([t.id for s in block.sections for t in s.tasks])
        self.board.blocks = [b for b in self.board.blocks if b.id != block_id]
        self.dirty = True
        return True

    def delete_tag(self, tag_id: int) -> bool:
        if self.board.find_tag(tag_id) is None:
            return False
        self.board.tags = [t for t in self.board.tags if t.id != tag_id]
        for task_id in list(self.board.task_tags):
            self.unassign_tag(task_id, tag_id)
        self.dirty = True
        return True

    # -- ordering -------------------------------------------------------------

    def move_task(self, task_id: int, new_section_id: int, new_sort_order: int) -> Task:
        apply_move_in_place(
            self.board,
            MoveResult(ItemKind.TASK, task_id, new_section_id, new_sort_order),
            renumber_siblings=self.renumber_on_move,
        )
        self.dirty = True
        return self.require_task(task_id)

    def move_section(self, section_id: int, new_block_id: int, new_sort_order: int) -> Section:
        apply_move_in_place(
            self.board,
            MoveResult(ItemKind.SECTION, section_id, new_block_id, new_sort_order),
            renumber_siblings=self.renumber_on_move,
        )
        self.dirty = True
        return self.require_section(section_id)

    def reorder_tasks(self, section_id: int, ordered_task_ids: Sequence[int]) -> None:
        """Give each listed task its list position; ids from other sections are ignored."""
        section = self.require_section(section_id)
        positions = renumber(ordered_task_ids)
        for task in section.tasks:
            if task.id in positions:
                task.sort_order = positions[task.id]
        section.tasks = resolve_order(section.tasks)
        self.dirty = True

    def reorder_sections(self, block_id: int, ordered_section_ids: Sequence[int]) -> None:
        block = self.require_block(block_id)
        positions = renumber(ordered_section_ids)
        for section in block.sections:
            if section.id in positions:
                section.sort_order = positions[section.id]
        block.sections = resolve_order(block.sections)
        self.dirty = True

    def reorder_blocks(self, ordered_block_ids: Sequence[int]) -> None:
        if not ordered_block_ids:
            raise ValueError("ordered_block_ids must not be empty")
        positions = renumber(ordered_block_ids)
        for block in self.board.blocks:
            if block.id in positions:
                block.sort_order = positions[block.id]
        self.board.blocks = resolve_order(self.board.blocks)
        self.dirty = True

    def reorder_subtasks(self, task_id: int, ordered_subtask_ids: Sequence[int]) -> None:
        task = self.require_task(task_id)
        positions = renumber(ordered_subtask_ids)
        for sub in task.subtasks:
            if sub.id in positions:
                sub.sort_order = positions[sub.id]
        task.subtasks = resolve_order(task.subtasks)
        self.dirty = True
