"""
Action metadata records.

Every completed action invocation produces one ActionEvent on the
adapted tree's stream. Events are used for:
- Logging
- Debug inspection
- Undo bookkeeping by the application
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Tuple


@dataclass(frozen=True)
class ActionEvent:
    """
    Immutable record of one action invocation.

    Attributes:
        path: Keys from the tree root to the invoked action
        payload: Positional arguments passed to the action
        reducer: The reducer the action produced
        kwargs: Keyword arguments passed to the action
        namespace: Channel the reducer was dispatched on
        timestamp: When the reducer was dispatched (ISO format)
    """
    path: Tuple[str, ...]
    payload: Tuple[Any, ...]
    reducer: Callable[[Any], Any]
    kwargs: Dict[str, Any] = field(default_factory=dict)
    namespace: str = "state.changes"
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def action(self) -> str:
        """Dotted action name, e.g. "user.set_name"."""
        return ".".join(self.path)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging. The reducer is rendered by name."""
        return {
            "action": self.action,
            "path": list(self.path),
            "payload": list(self.payload),
            "kwargs": dict(self.kwargs),
            "reducer": getattr(self.reducer, "__qualname__", repr(self.reducer)),
            "namespace": self.namespace,
            "timestamp": self.timestamp,
        }
