"""Outbound interface to the data store that owns the board."""

from __future__ import annotations

from typing import Protocol, Sequence

from .model import Board


class BoardMutations(Protocol):
    """Persistence operations the ordering engine issues.

    Each call is one logical, atomic update.  Implementations raise on
    failure; callers must not assume the change happened until a fresh
    :meth:`snapshot` shows it.
    """

    def snapshot(self) -> Board: ...

    def move_task(self, task_id: int, new_section_id: int, new_sort_order: int) -> None: ...

    def move_section(self, section_id: int, new_block_id: int, new_sort_order: int) -> None: ...

    def reorder_tasks(self, section_id: int, ordered_task_ids: Sequence[int]) -> None: ...

    def reorder_sections(self, block_id: int, ordered_section_ids: Sequence[int]) -> None: ...

    def reorder_blocks(self, ordered_block_ids: Sequence[int]) -> None: ...

    def reorder_subtasks(self, task_id: int, ordered_subtask_ids: Sequence[int]) -> None: ...
