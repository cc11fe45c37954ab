"""Block-level deadline status."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Optional

from ..utils import _to_date, _today
from .model import Block


class DeadlineStatus(str, Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    ON_TRACK = "on_track"
    NO_DEADLINE = "no_deadline"


def days_remaining(deadline: Any, today: Optional[date] = None) -> Optional[int]:
    """Whole days from *today* until *deadline*; negative once it has passed."""
    day = _to_date(deadline)
    if day is None:
        return None
    return (day - (today or _today())).days


def deadline_status(block: Block, today: Optional[date] = None) -> DeadlineStatus:
    remaining = days_remaining(block.deadline, today)
    if remaining is None:
        return DeadlineStatus.NO_DEADLINE
    if remaining < 0:
        return DeadlineStatus.OVERDUE
    if remaining <= block.reminder_days:
        return DeadlineStatus.DUE_SOON
    return DeadlineStatus.ON_TRACK


def is_block_overdue(block: Optional[Block], today: Optional[date] = None) -> bool:
    return block is not None and deadline_status(block, today) == DeadlineStatus.OVERDUE
