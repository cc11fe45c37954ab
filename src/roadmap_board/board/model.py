"""Board model: blocks, sections, tasks, subtasks and tags.

A project board is a three-level hierarchy (block → section → task) with
subtasks hanging off tasks.  Every level carries a ``sort_order`` that
positions an item among its siblings.  Tags are many-to-many with tasks and
are kept as a separate association (``task_tags``) so the filtering code only
ever *reads* them through a lookup.

All records are plain dataclasses, serializable to YAML / JSON through
``to_dict()`` / ``from_dict()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..constants import DEFAULT_REMINDER_DAYS, DEFAULT_TAG_COLOR
from ..utils import _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Work state of a task or subtask."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Structured priority stored on a task."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def weight(self) -> int:
        # Unset priority sorts like medium.
        return {"critical": 4, "high": 3, "medium": 2, "low": 1}.get(self.value, 2)


class TagType(str, Enum):
    LABEL = "label"
    CATEGORY = "category"
    STATUS = "status"
    SPRINT = "sprint"
    EPIC = "epic"
    COMPONENT = "component"
    CUSTOM = "custom"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _enum(enum_cls: type[Enum], raw: Any, default: Enum) -> Any:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except (ValueError, KeyError):
        return default


def _int(raw: Any, default: int = 0) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _opt_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _opt_str(raw: Any) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Tag:
    id: int
    name: str
    color: str = DEFAULT_TAG_COLOR
    tag_type: Optional[TagType] = TagType.LABEL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "tag_type": self.tag_type.value if self.tag_type else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tag":
        raw_type = data.get("tag_type")
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name", "")),
            color=str(data.get("color") or DEFAULT_TAG_COLOR),
            tag_type=_enum(TagType, raw_type, TagType.LABEL) if raw_type is not None else None,
        )


@dataclass
class Subtask:
    id: int
    task_id: int
    title: str = ""
    status: TaskStatus = TaskStatus.NOT_STARTED
    sort_order: int = 0
    created_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "status": self.status.value,
            "sort_order": self.sort_order,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subtask":
        return cls(
            id=_int(data.get("id")),
            task_id=_int(data.get("task_id")),
            title=str(data.get("title", "")),
            status=_enum(TaskStatus, data.get("status"), TaskStatus.NOT_STARTED),
            sort_order=_int(data.get("sort_order")),
            created_at=str(data.get("created_at") or _now_iso()),
        )


@dataclass
class Task:
    """An atomic unit of trackable work, owned by exactly one section."""

    id: int
    title: str = ""
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.NONE
    deadline: Optional[str] = None
    sort_order: int = 0
    section_id: Optional[int] = None
    created_at: str = field(default_factory=_now_iso)
    subtasks: list[Subtask] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "deadline": self.deadline,
            "sort_order": self.sort_order,
            "section_id": self.section_id,
            "created_at": self.created_at,
            "subtasks": [s.to_dict() for s in self.subtasks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=_int(data.get("id")),
            title=str(data.get("title", "")),
            status=_enum(TaskStatus, data.get("status"), TaskStatus.NOT_STARTED),
            priority=_enum(TaskPriority, data.get("priority"), TaskPriority.NONE),
            deadline=_opt_str(data.get("deadline")),
            sort_order=_int(data.get("sort_order")),
            section_id=_opt_int(data.get("section_id")),
            created_at=str(data.get("created_at") or _now_iso()),
            subtasks=[Subtask.from_dict(s) for s in data.get("subtasks") or [] if isinstance(s, dict)],
        )


@dataclass
class Section:
    id: int
    title: str = ""
    sort_order: int = 0
    block_id: Optional[int] = None
    created_at: str = field(default_factory=_now_iso)
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "sort_order": self.sort_order,
            "block_id": self.block_id,
            "created_at": self.created_at,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Section":
        return cls(
            id=_int(data.get("id")),
            title=str(data.get("title", "")),
            sort_order=_int(data.get("sort_order")),
            block_id=_opt_int(data.get("block_id")),
            created_at=str(data.get("created_at") or _now_iso()),
            tasks=[Task.from_dict(t) for t in data.get("tasks") or [] if isinstance(t, dict)],
        )


@dataclass
class Block:
    """Top-level grouping of work (a phase or epic)."""

    id: int
    title: str = ""
    title_ru: Optional[str] = None
    number: int = 0
    sort_order: int = 0
    deadline: Optional[str] = None
    reminder_days: int = DEFAULT_REMINDER_DAYS
    created_at: str = field(default_factory=_now_iso)
    sections: list[Section] = field(default_factory=list)

    @property
    def display_title(self) -> str:
        return self.title_ru or self.title

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "title_ru": self.title_ru,
            "number": self.number,
            "sort_order": self.sort_order,
            "deadline": self.deadline,
            "reminder_days": self.reminder_days,
            "created_at": self.created_at,
            "sections": [s.to_dict() for s in self.sections],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        return cls(
            id=_int(data.get("id")),
            title=str(data.get("title", "")),
            title_ru=_opt_str(data.get("title_ru")),
            number=_int(data.get("number")),
            sort_order=_int(data.get("sort_order")),
            deadline=_opt_str(data.get("deadline")),
            reminder_days=_int(data.get("reminder_days"), DEFAULT_REMINDER_DAYS),
            created_at=str(data.get("created_at") or _now_iso()),
            sections=[Section.from_dict(s) for s in data.get("sections") or [] if isinstance(s, dict)],
        )


# ---------------------------------------------------------------------------
# Board snapshot
# ---------------------------------------------------------------------------

@dataclass
class Board:
    """A whole project hierarchy plus its tag catalogue.

    ``task_tags`` maps a task id to the ids of the tags it carries.
    ``next_id`` is the id counter shared by every record kind.
    """

    blocks: list[Block] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    task_tags: dict[int, list[int]] = field(default_factory=dict)
    next_id: int = 1

    # -- traversal ----------------------------------------------------------

    def iter_sections(self) -> Iterator[Section]:
        for block in self.blocks:
            yield from block.sections

    def iter_tasks(self) -> Iterator[Task]:
        for section in self.iter_sections():
            yield from section.tasks

    def find_block(self, block_id: int) -> Optional[Block]:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None

    def find_section(self, section_id: int) -> Optional[Section]:
        for section in self.iter_sections():
            if section.id == section_id:
                return section
        return None

    def find_task(self, task_id: int) -> Optional[Task]:
        for task in self.iter_tasks():
            if task.id == task_id:
                return task
        return None

    def find_tag(self, tag_id: int) -> Optional[Tag]:
        for tag in self.tags:
            if tag.id == tag_id:
                return tag
        return None

    def block_of_section(self, section_id: int) -> Optional[Block]:
        for block in self.blocks:
            if any(s.id == section_id for s in block.sections):
                return block
        return None

    def block_of_task(self, task: Task) -> Optional[Block]:
        if task.section_id is None:
            return None
        return self.block_of_section(task.section_id)

    def tag_lookup(self) -> dict[int, list[Tag]]:
        """Resolve ``task_tags`` into ``{task_id: [Tag, ...]}``.

        Dangling tag ids are skipped.
        """
        by_id = {t.id: t for t in self.tags}
        lookup: dict[int, list[Tag]] = {}
        for task_id, tag_ids in self.task_tags.items():
            lookup[task_id] = [by_id[tid] for tid in tag_ids if tid in by_id]
        return lookup

    def allocate_id(self) -> int:
        new_id = self.next_id
        self.next_id += 1
        return new_id

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_id": self.next_id,
            "blocks": [b.to_dict() for b in self.blocks],
            "tags": [t.to_dict() for t in self.tags],
            "task_tags": {str(k): list(v) for k, v in self.task_tags.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Board":
        raw_links = data.get("task_tags") or {}
        task_tags: dict[int, list[int]] = {}
        if isinstance(raw_links, dict):
            for key, value in raw_links.items():
                task_id = _opt_int(key)
                if task_id is None or not isinstance(value, list):
                    continue
                task_tags[task_id] = [i for i in (_opt_int(v) for v in value) if i is not None]
        board = cls(
            blocks=[Block.from_dict(b) for b in data.get("blocks") or [] if isinstance(b, dict)],
            tags=[Tag.from_dict(t) for t in data.get("tags") or [] if isinstance(t, dict)],
            task_tags=task_tags,
            next_id=_int(data.get("next_id"), 1),
        )
        # Never hand out an id that is already taken.
        highest = max(board._all_ids(), default=0)
        if board.next_id <= highest:
            board.next_id = highest + 1
        return board

    def _all_ids(self) -> Iterator[int]:
        for block in self.blocks:
            yield block.id
            for section in block.sections:
                yield section.id
                for task in section.tasks:
                    yield task.id
                    for sub in task.subtasks:
                        yield sub.id
        for tag in self.tags:
            yield tag.id
