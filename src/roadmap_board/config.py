"""Load optional board configuration from `.roadmap/config.yaml`."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from .constants import COLLAPSED_GROUPS_KEY, CONFIG_FILE, RENUMBER_ENV_VAR, STATE_DIR_NAME
from .io_utils import _load_data_with_error

_TRUTHY = {"1", "true", "yes", "on"}

PRIORITY_BUCKETS = ("high", "medium", "low", "none")


def load_board_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional board config file.

    Args:
        project_dir: Directory that holds the `.roadmap/` state directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if not path.exists():
        return {}, None
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_ordering_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the ordering block, applying the environment override.

    Args:
        config: Board configuration dictionary.

    Returns:
        A mapping with a boolean `renumber_on_move` key.
    """
    raw = _get_nested(config, "ordering")
    ordering = dict(raw) if isinstance(raw, dict) else {}
    renumber = bool(ordering.get("renumber_on_move", False))
    env = os.environ.get(RENUMBER_ENV_VAR)
    if env is not None and env.strip():
        renumber = env.strip().lower() in _TRUTHY
    ordering["renumber_on_move"] = renumber
    return ordering


def get_priority_keywords(config: dict[str, Any]) -> dict[str, tuple[str, ...]] | None:
    """Return keyword overrides for priority grouping, or None to use defaults.

    Only the known buckets are honoured; each value must be a list of strings.
    """
    raw = _get_nested(config, "grouping", "priority_keywords")
    if not isinstance(raw, dict):
        return None
    keywords: dict[str, tuple[str, ...]] = {}
    for bucket in PRIORITY_BUCKETS:
        values = raw.get(bucket)
        if isinstance(values, list):
            keywords[bucket] = tuple(str(v).lower() for v in values if str(v).strip())
    return keywords or None


def get_collapse_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the collapse-state block (storage key)."""
    raw = _get_nested(config, "collapse")
    collapse = dict(raw) if isinstance(raw, dict) else {}
    key = collapse.get("storage_key")
    if not isinstance(key, str) or not key:
        collapse["storage_key"] = COLLAPSED_GROUPS_KEY
    return collapse
