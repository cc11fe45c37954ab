"""Filtering, grouping and counting of board tasks.

Everything here is a pure function of its inputs: task lists are never
mutated in place and a new list is always returned, so callers can rely on
identity checks for change detection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence

from ..constants import NO_TAG_GROUP_KEY
from ..utils import _parse_iso, _to_date, _today
from .model import Block, Tag, Task, TaskPriority, TaskStatus

TagLookup = Mapping[int, Sequence[Tag]]


# ---------------------------------------------------------------------------
# Filter state
# ---------------------------------------------------------------------------

class FilterType(str, Enum):
    ALL = "all"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class TagFilterMode(str, Enum):
    ANY = "any"
    ALL = "all"


class GroupBy(str, Enum):
    NONE = "none"
    TAG = "tag"
    STATUS = "status"
    PRIORITY = "priority"


class DeadlineFilter(str, Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    OVERDUE = "overdue"


class SortField(str, Enum):
    PRIORITY = "priority"
    DEADLINE = "deadline"
    TITLE = "title"
    CREATED = "created"


SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class FilterState:
    """Transient UI filter selection.

    ``sort_field`` of None keeps the stored manual order.
    """

    active_filter: FilterType = FilterType.ALL
    selected_tags: frozenset[int] = frozenset()
    tag_filter_mode: TagFilterMode = TagFilterMode.ANY
    group_by: GroupBy = GroupBy.NONE
    deadline_filter: DeadlineFilter = DeadlineFilter.ALL
    sort_field: Optional[SortField] = None
    sort_direction: str = "desc"

    def __post_init__(self) -> None:
        if self.sort_direction not in SORT_DIRECTIONS:
            raise ValueError(f"direction must be 'asc' or 'desc', got '{self.sort_direction}'")

    @classmethod
    def from_params(
        cls,
        *,
        active_filter: Optional[str] = None,
        selected_tags: Optional[Iterable[int]] = None,
        tag_filter_mode: Optional[str] = None,
        group_by: Optional[str] = None,
        deadline_filter: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> "FilterState":
        """Build a state from loose string parameters.

        Raises:
            ValueError: If a value is not one of the known options.
        """
        return cls(
            active_filter=FilterType(active_filter) if active_filter else FilterType.ALL,
            selected_tags=frozenset(int(t) for t in selected_tags or ()),
            tag_filter_mode=TagFilterMode(tag_filter_mode) if tag_filter_mode else TagFilterMode.ANY,
            group_by=GroupBy(group_by) if group_by else GroupBy.NONE,
            deadline_filter=DeadlineFilter(deadline_filter) if deadline_filter else DeadlineFilter.ALL,
            sort_field=SortField(sort_field) if sort_field else None,
            sort_direction=sort_direction or "desc",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_filter": self.active_filter.value,
            "selected_tags": sorted(self.selected_tags),
            "tag_filter_mode": self.tag_filter_mode.value,
            "group_by": self.group_by.value,
            "deadline_filter": self.deadline_filter.value,
            "sort_field": self.sort_field.value if self.sort_field else None,
            "sort_direction": self.sort_direction,
        }


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _tag_ids(task: Any, tag_lookup: Optional[TagLookup]) -> set[int]:
    if not tag_lookup:
        return set()
    return {tag.id for tag in tag_lookup.get(task.id, ())}


def matches_status(task: Any, active_filter: FilterType, is_parent_overdue: bool) -> bool:
    if active_filter == FilterType.ALL:
        return True
    if active_filter == FilterType.OVERDUE:
        # Overdue comes from the parent block's deadline, not the task's own.
        return is_parent_overdue and task.status != TaskStatus.COMPLETED
    return task.status.value == active_filter.value


def matches_tags(task: Any, state: FilterState, tag_lookup: Optional[TagLookup]) -> bool:
    if not state.selected_tags:
        return True
    task_tags = _tag_ids(task, tag_lookup)
    if state.tag_filter_mode == TagFilterMode.ALL:
        return state.selected_tags <= task_tags
    return bool(state.selected_tags & task_tags)


def filter_tasks(
    tasks: Iterable[Task],
    state: FilterState,
    is_parent_overdue: bool,
    tag_lookup: Optional[TagLookup] = None,
    today: Optional[date] = None,
) -> list[Task]:
    """Return the tasks that pass the status, tag and deadline-chip filters, in input order."""
    return [
        t for t in tasks
        if matches_status(t, state.active_filter, is_parent_overdue)
        and matches_tags(t, state, tag_lookup)
        and matches_deadline_filter(getattr(t, "deadline", None), state.deadline_filter, today)
    ]


def matches_deadline_filter(
    deadline: Any,
    deadline_filter: DeadlineFilter | str,
    today: Optional[date] = None,
) -> bool:
    """Match a task's own deadline against the today/week/overdue chips."""
    chip = DeadlineFilter(deadline_filter)
    if chip == DeadlineFilter.ALL:
        return True
    day = _to_date(deadline)
    if day is None:
        return False
    diff_days = (day - (today or _today())).days
    if chip == DeadlineFilter.TODAY:
        return diff_days == 0
    if chip == DeadlineFilter.WEEK:
        return 0 <= diff_days <= 7
    return diff_days < 0


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

@dataclass
class Group:
    key: str
    label: str
    color: str
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "color": self.color,
            "tasks": [t.to_dict() for t in self.tasks],
        }


NO_TAG_LABEL = "No tag"
NO_TAG_COLOR = "#94a3b8"

STATUS_GROUPS: tuple[tuple[TaskStatus, str, str], ...] = (
    (TaskStatus.IN_PROGRESS, "In progress", "#f59e0b"),
    (TaskStatus.NOT_STARTED, "Not started", "#64748b"),
    (TaskStatus.COMPLETED, "Completed", "#22c55e"),
)

PRIORITY_GROUPS: tuple[tuple[str, str, str], ...] = (
    ("high", "High priority", "#ef4444"),
    ("medium", "Medium priority", "#f59e0b"),
    ("low", "Low priority", "#3b82f6"),
    ("none", "No priority", "#94a3b8"),
)

DEFAULT_PRIORITY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "high": ("high", "urgent", "critical", "asap", "важно", "срочно", "высок", "критич"),
    "medium": ("medium", "normal", "средн", "обычн"),
    "low": ("low", "minor", "низк", "later"),
    "none": ("none", "no priority", "без приоритета"),
}


def priority_bucket(
    tags: Sequence[Tag],
    keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> str:
    """Derive a priority bucket from tag names; the first matching bucket wins."""
    table = {**DEFAULT_PRIORITY_KEYWORDS, **(keywords or {})}
    names = [tag.name.casefold() for tag in tags]
    for bucket in ("high", "medium", "low"):
        if any(word in name for name in names for word in table.get(bucket, ())):
            return bucket
    return "none"


def _group_by_tag(tasks: Sequence[Task], tag_lookup: Optional[TagLookup]) -> list[Group]:
    groups: dict[int, Group] = {}
    untagged: list[Task] = []
    for task in tasks:
        tags = list(tag_lookup.get(task.id, ())) if tag_lookup else []
        if not tags:
            untagged.append(task)
            continue
        seen: set[int] = set()
        for tag in tags:
            if tag.id in seen:
                continue
            seen.add(tag.id)
            group = groups.get(tag.id)
            if group is None:
                group = groups[tag.id] = Group(key=f"tag-{tag.id}", label=tag.name, color=tag.color)
            group.tasks.append(task)

    ordered = sorted(groups.values(), key=lambda g: (g.label.casefold(), g.key))
    if untagged:
        ordered.append(Group(key=NO_TAG_GROUP_KEY, label=NO_TAG_LABEL, color=NO_TAG_COLOR, tasks=untagged))
    return ordered


def _group_by_status(tasks: Sequence[Task]) -> list[Group]:
    groups = []
    for status, label, color in STATUS_GROUPS:
        members = [t for t in tasks if t.status == status]
        if members:
            groups.append(Group(key=f"status-{status.value}", label=label, color=color, tasks=members))
    return groups


def _group_by_priority(
    tasks: Sequence[Task],
    tag_lookup: Optional[TagLookup],
    keywords: Optional[Mapping[str, Sequence[str]]],
) -> list[Group]:
    buckets: dict[str, list[Task]] = {name: [] for name, _, _ in PRIORITY_GROUPS}
    for task in tasks:
        tags = list(tag_lookup.get(task.id, ())) if tag_lookup else []
        buckets[priority_bucket(tags, keywords)].append(task)
    return [
        Group(key=f"priority-{name}", label=label, color=color, tasks=buckets[name])
        for name, label, color in PRIORITY_GROUPS
        if buckets[name]
    ]


def group_tasks(
    tasks: Sequence[Task],
    group_by: GroupBy | str,
    tag_lookup: Optional[TagLookup] = None,
    priority_keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> list[Group]:
    """Split *tasks* into display groups.

    ``GroupBy.NONE`` returns an empty list: the caller renders by section.
    Priority groups are derived from tag-name keywords only; the task's own
    ``priority`` field is not consulted.
    """
    mode = GroupBy(group_by)
    if mode == GroupBy.TAG:
        return _group_by_tag(tasks, tag_lookup)
    if mode == GroupBy.STATUS:
        return _group_by_status(tasks)
    if mode == GroupBy.PRIORITY:
        return _group_by_priority(tasks, tag_lookup, priority_keywords)
    return []


# ---------------------------------------------------------------------------
# Counting
# ---------------------------------------------------------------------------

@dataclass
class FilterCounts:
    all: int = 0
    not_started: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "all": self.all,
            "not_started": self.not_started,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "overdue": self.overdue,
        }


def count_by_filter(items: Iterable[Any], is_overdue: Callable[[Any], bool]) -> FilterCounts:
    """Count units per filter bucket in one pass.

    Each unit bumps ``all``, at most one status bucket, and independently
    ``overdue`` when *is_overdue* holds and the unit is not completed.
    """
    counts = FilterCounts()
    for item in items:
        counts.all += 1
        status = getattr(item, "status", None)
        if status == TaskStatus.NOT_STARTED:
            counts.not_started += 1
        elif status == TaskStatus.IN_PROGRESS:
            counts.in_progress += 1
        elif status == TaskStatus.COMPLETED:
            counts.completed += 1
        if status != TaskStatus.COMPLETED and is_overdue(item):
            counts.overdue += 1
    return counts


def iter_countable(blocks: Iterable[Block]) -> Iterator[tuple[Any, Block]]:
    """Yield ``(unit, block)`` for every task and subtask under *blocks*."""
    for block in blocks:
        for section in block.sections:
            for task in section.tasks:
                yield task, block
                for sub in task.subtasks:
                    yield sub, block


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def _sort_key(field_: SortField) -> Callable[[Task], Any]:
    if field_ == SortField.PRIORITY:
        return lambda t: -(t.priority or TaskPriority.MEDIUM).weight
    if field_ == SortField.DEADLINE:
        def deadline_key(t: Task) -> tuple[int, str]:
            day = _to_date(t.deadline)
            return (1, "") if day is None else (0, day.isoformat())
        return deadline_key
    if field_ == SortField.TITLE:
        return lambda t: t.title.casefold()

    def created_key(t: Task) -> float:
        parsed = _parse_iso(t.created_at)
        return -parsed.timestamp() if parsed else 0.0
    return created_key


def sort_tasks(tasks: Iterable[Task], field_: SortField | str, direction: str = "desc") -> list[Task]:
    """Sort tasks for display.

    ``"desc"`` keeps each field's natural orientation (highest priority,
    earliest deadline, A→Z title, newest first); ``"asc"`` reverses it.
    """
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"direction must be 'asc' or 'desc', got '{direction}'")
    return sorted(tasks, key=_sort_key(SortField(field_)), reverse=direction == "asc")
