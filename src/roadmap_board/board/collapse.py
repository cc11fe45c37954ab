"""Collapsed group/section keys that survive reloads.

The store keeps a set of opaque string keys and writes the whole set to a
key-value storage after every change, as a JSON array of strings under a
single well-known key.  Unreadable stored data means "nothing collapsed".
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

from ..constants import COLLAPSED_GROUPS_KEY
from ..io_utils import FileLock, _atomic_write_json, _load_data

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Minimal string key-value storage (the shape of browser local storage)."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """In-process storage, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class JsonFileStorage:
    """Durable storage backed by one JSON object on disk.

    A missing or corrupt file reads as empty; writes are atomic.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock_path = path.with_suffix(path.suffix + ".lock")

    def get_item(self, key: str) -> Optional[str]:
        with FileLock(self._lock_path):
            value = _load_data(self.path, {}).get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with FileLock(self._lock_path):
            data = _load_data(self.path, {})
            data[key] = value
            _atomic_write_json(self.path, data)


def _decode_keys(raw: Optional[str]) -> frozenset[str]:
    if raw is None:
        return frozenset()
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable collapsed-group state")
        return frozenset()
    if not isinstance(data, list):
        logger.warning("Ignoring collapsed-group state of type %s", type(data).__name__)
        return frozenset()
    return frozenset(item for item in data if isinstance(item, str))


class CollapseStateStore:
    """Track which group keys the user collapsed.

    Parameters
    ----------
    storage:
        Where the key set is persisted.
    storage_key:
        The single key the serialized set lives under.
    """

    def __init__(self, storage: KeyValueStorage, storage_key: str = COLLAPSED_GROUPS_KEY) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._collapsed = _decode_keys(storage.get_item(storage_key))

    @property
    def collapsed(self) -> frozenset[str]:
        return self._collapsed

    def reload(self) -> frozenset[str]:
        """Re-read the stored set, picking up writes from other processes."""
        self._collapsed = _decode_keys(self._storage.get_item(self._storage_key))
        return self._collapsed

    def is_collapsed(self, key: str) -> bool:
        return key in self._collapsed

    def toggle(self, key: str) -> bool:
        """Flip *key* and persist.  Returns whether *key* is now collapsed."""
        self.reload()
        if key in self._collapsed:
            self._replace(self._collapsed - {key})
        else:
            self._replace(self._collapsed | {key})
        return key in self._collapsed

    def expand_all(self) -> None:
        self._replace(frozenset())

    def collapse_all(self, keys: Iterable[str]) -> None:
        self._replace(frozenset(str(k) for k in keys))

    def _replace(self, keys: frozenset[str]) -> None:
        self._collapsed = keys
        self._storage.set_item(self._storage_key, json.dumps(sorted(keys), ensure_ascii=False))
