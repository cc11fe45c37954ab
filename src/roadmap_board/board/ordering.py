"""Sort-order computation for dragged tasks and sections.

The functions here decide where a dragged item lands: the new parent id and
the new ``sort_order``.  They work on read-only snapshots and never mutate
their inputs, so the result can be rendered optimistically before the
mutation is persisted.

Drop semantics:

* dropped on another item of the same kind: take that item's current
  ``sort_order`` (insert at the target's order value, siblings are left
  alone);
* dropped on a parent header (a section for tasks, a block for sections):
  append, i.e. ``child_count + 1``;
* dropped on anything else: no move.

A drag gesture is modelled as a tiny state machine driven by
:func:`reduce_drag`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, TypeVar, Union

from .model import Block, Board, Section, Task

T = TypeVar("T")


class ItemKind(str, Enum):
    TASK = "task"
    SECTION = "section"
    BLOCK = "block"


@dataclass(frozen=True)
class MoveResult:
    """A computed move: the item lands under ``new_parent_id`` at ``new_sort_order``."""

    kind: ItemKind
    item_id: int
    new_parent_id: int
    new_sort_order: int


# ---------------------------------------------------------------------------
# Move computation
# ---------------------------------------------------------------------------

def compute_task_move(
    dragged_task_id: int,
    source_section_id: Optional[int],
    target_section_id: int,
    reference: Any,
    *,
    current_sort_order: int,
) -> Optional[MoveResult]:
    """Compute where a dragged task lands.

    Args:
        dragged_task_id: Id of the task being dragged.
        source_section_id: Section the task currently belongs to.
        target_section_id: Section the task is dropped into.
        reference: The item under the pointer: a :class:`Task` or a
            :class:`Section` header.  Anything else is ignored.
        current_sort_order: The dragged task's current ``sort_order``.

    Returns:
        A :class:`MoveResult`, or None when nothing changes (unknown drop
        target, or the task would land exactly where it already is).
    """
    if isinstance(reference, Task):
        new_order = reference.sort_order
    elif isinstance(reference, Section):
        new_order = len(reference.tasks) + 1
    else:
        return None

    if source_section_id == target_section_id and current_sort_order == new_order:
        return None
    return MoveResult(ItemKind.TASK, dragged_task_id, target_section_id, new_order)


def compute_section_move(
    dragged_section_id: int,
    source_block_id: Optional[int],
    target_block_id: int,
    reference: Any,
    *,
    current_sort_order: int,
) -> Optional[MoveResult]:
    """Compute where a dragged section lands (the task case one level up).

    A :class:`Section` reference yields its ``sort_order``; a :class:`Block`
    header appends after the block's existing sections.
    """
    if isinstance(reference, Section):
        new_order = reference.sort_order
    elif isinstance(reference, Block):
        new_order = len(reference.sections) + 1
    else:
        return None

    if source_block_id == target_block_id and current_sort_order == new_order:
        return None
    return MoveResult(ItemKind.SECTION, dragged_section_id, target_block_id, new_order)


def resolve_drop(item: Union[Task, Section], target: Any) -> Optional[MoveResult]:
    """Resolve a drop of *item* onto *target* using the drag payload only.

    The parent of the drop is read from the target: a task reference lives in
    its ``section_id``, a section header *is* the parent, and so on.
    """
    if isinstance(item, Task):
        if isinstance(target, Task):
            if target.section_id is None:
                return None
            target_parent = target.section_id
        elif isinstance(target, Section):
            target_parent = target.id
        else:
            return None
        return compute_task_move(
            item.id,
            item.section_id,
            target_parent,
            target,
            current_sort_order=item.sort_order,
        )

    if isinstance(item, Section):
        if isinstance(target, Section):
            if target.block_id is None:
                return None
            target_parent = target.block_id
        elif isinstance(target, Block):
            target_parent = target.id
        else:
            return None
        return compute_section_move(
            item.id,
            item.block_id,
            target_parent,
            target,
            current_sort_order=item.sort_order,
        )

    return None


# ---------------------------------------------------------------------------
# Drag gesture state machine
# ---------------------------------------------------------------------------

class DragPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DragStarted:
    item: Union[Task, Section]


@dataclass(frozen=True)
class DragOver:
    target: Any


@dataclass(frozen=True)
class DragEnded:
    target: Any = None


@dataclass(frozen=True)
class DragSession:
    phase: DragPhase = DragPhase.IDLE
    item: Optional[Union[Task, Section]] = None
    over: Any = None
    result: Optional[MoveResult] = None

    @property
    def active(self) -> bool:
        return self.phase == DragPhase.DRAGGING


def reduce_drag(session: DragSession, event: Any) -> DragSession:
    """Advance a drag gesture by one event and return the new session.

    ``idle → dragging → [over]* → committed | cancelled``.  Ending with no
    target, on an unrecognised target, or in the item's current position
    yields ``cancelled``; only ``committed`` sessions carry a result.
    """
    if isinstance(event, DragStarted):
        if not isinstance(event.item, (Task, Section)):
            return DragSession()
        return DragSession(phase=DragPhase.DRAGGING, item=event.item)

    if not session.active:
        return session

    if isinstance(event, DragOver):
        return replace(session, over=event.target)

    if isinstance(event, DragEnded):
        if event.target is None or session.item is None:
            return replace(session, phase=DragPhase.CANCELLED, over=None)
        result = resolve_drop(session.item, event.target)
        if result is None:
            return replace(session, phase=DragPhase.CANCELLED, over=event.target)
        return replace(session, phase=DragPhase.COMMITTED, over=event.target, result=result)

    return session


# ---------------------------------------------------------------------------
# Sortable ids
# ---------------------------------------------------------------------------

def sortable_id(kind: Union[ItemKind, str], item_id: int) -> str:
    """Return the ``<kind>-<id>`` address of a draggable item."""
    return f"{ItemKind(kind).value}-{item_id}"


def parse_sortable_id(value: str) -> Optional[tuple[ItemKind, int]]:
    """Parse ``task-3`` style ids.  Returns None for anything malformed."""
    if not isinstance(value, str) or "-" not in value:
        return None
    prefix, _, raw_id = value.partition("-")
    try:
        kind = ItemKind(prefix)
        item_id = int(raw_id)
    except ValueError:
        return None
    return kind, item_id


# ---------------------------------------------------------------------------
# Sibling helpers
# ---------------------------------------------------------------------------

def array_move(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy of *items* with the element at *from_index* moved to *to_index*."""
    size = len(items)
    if not 0 <= from_index < size or not 0 <= to_index < size:
        raise IndexError(f"array_move indexes out of range: {from_index} -> {to_index} (size {size})")
    moved = list(items)
    element = moved.pop(from_index)
    moved.insert(to_index, element)
    return moved


def renumber(ids: Iterable[int], start: int = 0) -> dict[int, int]:
    """Assign sequential positions to *ids* in the given order."""
    return {item_id: position for position, item_id in enumerate(ids, start=start)}


def next_sort_order(siblings: Sequence[Any]) -> int:
    """Sort order for an item appended after *siblings*: one past the largest in use."""
    return max((s.sort_order for s in siblings), default=0) + 1


def resolve_order(siblings: Iterable[T]) -> list[T]:
    """Visual order of siblings: by sort order, ties broken by creation order."""
    return sorted(
        siblings,
        key=lambda s: (getattr(s, "sort_order", 0), getattr(s, "created_at", ""), getattr(s, "id", 0)),
    )


def _insert_order(siblings: Iterable[T], moved_id: int) -> list[T]:
    # The moved item wins a tie so it lands at the reference's position.
    return sorted(
        siblings,
        key=lambda s: (
            s.sort_order,
            0 if s.id == moved_id else 1,
            s.created_at,
            s.id,
        ),
    )


# ---------------------------------------------------------------------------
# Applying moves to a board snapshot
# ---------------------------------------------------------------------------

def apply_move_in_place(board: Board, move: MoveResult, *, renumber_siblings: bool = False) -> None:
    """Re-parent and re-order one item inside *board*.

    Parent id and sort order change together.  With ``renumber_siblings``
    the destination siblings are renumbered ``1..N`` in their final order.

    Raises:
        ValueError: If the item or its new parent does not exist.
    """
    if move.kind == ItemKind.TASK:
        task = board.find_task(move.item_id)
        target = board.find_section(move.new_parent_id)
        if task is None:
            raise ValueError(f"Task {move.item_id} not found")
        if target is None:
            raise ValueError(f"Section {move.new_parent_id} not found")
        source = board.find_section(task.section_id) if task.section_id is not None else None
        if source is not None:
            source.tasks = [t for t in source.tasks if t.id != task.id]
        task.section_id = target.id
        task.sort_order = move.new_sort_order
        target.tasks = [t for t in target.tasks if t.id != task.id] + [task]
        if renumber_siblings:
            ordered = _insert_order(target.tasks, task.id)
            positions = renumber((t.id for t in ordered), start=1)
            for t in ordered:
                t.sort_order = positions[t.id]
            target.tasks = ordered
        else:
            target.tasks = resolve_order(target.tasks)
        return

    if move.kind == ItemKind.SECTION:
        section = board.find_section(move.item_id)
        target_block = board.find_block(move.new_parent_id)
        if section is None:
            raise ValueError(f"Section {move.item_id} not found")
        if target_block is None:
            raise ValueError(f"Block {move.new_parent_id} not found")
        source_block = board.block_of_section(section.id)
        if source_block is not None:
            source_block.sections = [s for s in source_block.sections if s.id != section.id]
        section.block_id = target_block.id
        section.sort_order = move.new_sort_order
        target_block.sections = [s for s in target_block.sections if s.id != section.id] + [section]
        if renumber_siblings:
            ordered = _insert_order(target_block.sections, section.id)
            positions = renumber((s.id for s in ordered), start=1)
            for s in ordered:
                s.sort_order = positions[s.id]
            target_block.sections = ordered
        else:
            target_block.sections = resolve_order(target_block.sections)
        return

    raise ValueError(f"Unsupported move kind: {move.kind}")


def apply_move(board: Board, move: MoveResult, *, renumber_siblings: bool = False) -> Board:
    """Return a copy of *board* with *move* applied; *board* is left untouched."""
    provisional = copy.deepcopy(board)
    apply_move_in_place(provisional, move, renumber_siblings=renumber_siblings)
    return provisional
