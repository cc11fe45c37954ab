"""Provide the public `roadmap_board` package exports."""

from __future__ import annotations

from .board.collapse import CollapseStateStore
from .board.engine import BoardEngine, MovePlan
from .board.filtering import FilterState, count_by_filter, filter_tasks, group_tasks
from .board.ordering import MoveResult, compute_section_move, compute_task_move

__all__ = [
    "BoardEngine",
    "CollapseStateStore",
    "FilterState",
    "MovePlan",
    "MoveResult",
    "compute_section_move",
    "compute_task_move",
    "count_by_filter",
    "filter_tasks",
    "group_tasks",
]
