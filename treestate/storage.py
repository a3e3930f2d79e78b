"""
JSON persistence for state snapshots.

A backend stores raw text under string keys (get_item / set_item).
The adapter returned by init() round-trips JSON values through it.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


@runtime_checkable
class Backend(Protocol):
    """Raw key/value text store."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryBackend:
    """Session-scoped backend. Lives as long as the object does."""

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class FileBackend:
    """
    Durable backend storing one JSON file per key.

    Features:
    - Atomic writes (temp file + replace)
    - Reversible, filesystem-safe file names

    Example:
        >>> backend = FileBackend("./state")
        >>> backend.set_item("todo.list", '{"items": []}')
        >>> backend.get_item("todo.list")
        '{"items": []}'
    """

    SUFFIX = ".json"

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _get_path(self, key: str) -> Path:
        """Get file path for a key."""
        return self.base_path / f"{quote(key, safe='')}{self.SUFFIX}"

    def get_item(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        with self._lock:
            if not path.exists():
                return None
            with open(path, "r", encoding="utf-8") as f:
                return f.read()

    def set_item(self, key: str, value: str) -> None:
        path = self._get_path(key)
        temp_path = path.with_suffix(".tmp")
        with self._lock:
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(temp_path, path)
            except OSError:
                if temp_path.exists():
                    temp_path.unlink()
                raise
        logger.debug(f"Saved {key} to {path}")

    def remove_item(self, key: str) -> None:
        path = self._get_path(key)
        with self._lock:
            if path.exists():
                path.unlink()

    def keys(self) -> List[str]:
        """List all keys with a stored value."""
        with self._lock:
            return sorted(
                unquote(p.name[: -len(self.SUFFIX)])
                for p in self.base_path.glob(f"*{self.SUFFIX}")
            )

    def clear(self) -> None:
        for key in self.keys():
            self.remove_item(key)


def get(backend: Backend, key: str, default: Any = None) -> Any:
    """
    Read a JSON value from a backend.

    Returns default when the key is absent, holds null, or fails to parse.
    """
    try:
        raw = backend.get_item(key)
        if not raw:
            return default
        value = json.loads(raw)
    except ValueError as e:
        # Bad JSON, or bytes that are not UTF-8
        logger.warning(f"Ignoring malformed snapshot under {key}: {e}")
        return default
    return default if value is None else value


def set(backend: Backend, key: str, value: Any) -> None:
    """Write a value to a backend as JSON."""
    backend.set_item(key, json.dumps(value))


@dataclass
class StorageAdapter:
    """JSON get/set bound to a backend."""
    backend: Backend

    def get(self, key: str, default: Any = None) -> Any:
        return get(self.backend, key, default)

    def set(self, key: str, value: Any) -> None:
        set(self.backend, key, value)


def init(backend: Optional[Backend]) -> Optional[StorageAdapter]:
    """Wrap a backend in a JSON adapter, or return None for no backend."""
    return StorageAdapter(backend) if backend is not None else None
