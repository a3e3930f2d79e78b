"""
Copy-on-write updates of nested mappings.

patch() copies every ancestor along a key path, merges or replaces the
value at the end of it, and shares every branch it did not touch.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, Sequence, Tuple, Union, runtime_checkable

PathLike = Union[str, Sequence[str]]


@runtime_checkable
class Patchable(Protocol):
    """Mapping type that knows how to copy itself along a patch path."""

    def assoc(self, key: str, value: Any) -> Any: ...

    def merge(self, other: Any) -> Any: ...

    def empty_child(self, key: str) -> Any: ...


def normalize_path(path: PathLike) -> Tuple[str, ...]:
    """
    Turn a dotted string or a key sequence into a tuple of keys.

    >>> normalize_path("user.settings")
    ('user', 'settings')
    >>> normalize_path("")
    ()
    """
    if isinstance(path, str):
        return tuple(path.split(".")) if path else ()
    return tuple(path)


def get_in(root: Any, path: PathLike, default: Any = None) -> Any:
    """Read the value at a key path, or default if any segment is missing."""
    node = root
    for key in normalize_path(path):
        if not isinstance(node, Mapping) or key not in node:
            return default
        node = node[key]
    return node


def _assoc(node: Any, key: str, value: Any) -> Any:
    if isinstance(node, Patchable):
        return node.assoc(key, value)
    if isinstance(node, Mapping):
        return {**node, key: value}
    return {key: value}


def _merge(existing: Any, value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    if isinstance(existing, Patchable):
        return existing.merge(value)
    if isinstance(existing, Mapping):
        return {**existing, **value}
    return value


def _empty(node: Any, key: str) -> Any:
    if isinstance(node, Patchable):
        return node.empty_child(key)
    return {}


def patch(root: Any, path: PathLike, value: Any) -> Any:
    """
    Return a copy of root with value placed at path.

    When both the current value at path and the new value are mappings
    they are merged shallowly, new keys winning. Missing or non-mapping
    intermediate segments are replaced by empty mappings.

    >>> patch({"a": 1, "b": {"x": 0}}, "b.c", {"y": 2})
    {'a': 1, 'b': {'x': 0, 'c': {'y': 2}}}
    """
    keys = normalize_path(path)
    if not keys:
        return _merge(root, value)

    key, rest = keys[0], keys[1:]
    current = root.get(key) if isinstance(root, Mapping) else None

    if not rest:
        return _assoc(root, key, _merge(current, value))

    if not isinstance(current, Mapping):
        current = _empty(root, key)
    return _assoc(root, key, patch(current, rest, value))
