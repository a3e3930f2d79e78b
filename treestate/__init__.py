"""
treestate - event-sourced state with auto-dispatching action trees.

    from treestate import create_state

    actions, state = create_state({
        "initial": {"count": 0},
        "increment": lambda: lambda s: {**s, "count": s["count"] + 1},
    })
    state.subscribe(print)
    actions.increment()
"""
from .adapt import AdaptedTree, CreatedState, adapt, attach, create_state
from .bus import Stream
from .core import ActionEvent, LiveState, ReducerError, collect, dispatch, init
from . import storage

__version__ = "1.0.0"

__all__ = [
    "AdaptedTree",
    "CreatedState",
    "adapt",
    "attach",
    "create_state",
    "Stream",
    "ActionEvent",
    "LiveState",
    "ReducerError",
    "collect",
    "dispatch",
    "init",
    "storage",
]
