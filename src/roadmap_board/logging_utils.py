"""Configure loguru output for the server and CLI."""

from __future__ import annotations

import sys
from typing import Any

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
            "{message}"
        ),
    )


def summarize_move(result: Any) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a move result for logs.

    Args:
        result: A ``MoveResult``, ``MovePlan`` or None.

    Returns:
        A dictionary suitable for logging or serialization.
    """
    if result is None:
        return {"move": None}
    move = getattr(result, "move", result)
    return {
        "move": move.__class__.__name__,
        "kind": getattr(move, "kind", None),
        "item_id": getattr(move, "item_id", None),
        "new_parent_id": getattr(move, "new_parent_id", None),
        "new_sort_order": getattr(move, "new_sort_order", None),
    }
