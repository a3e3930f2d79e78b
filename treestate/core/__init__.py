# State machine with event-sourced reducers
from .events import ActionEvent
from .reducer import apply_reducer, reduce_reducers
from .store import DEFAULT_NAMESPACE, LiveState, ReducerError, collect, dispatch, init

__all__ = [
    "ActionEvent",
    "apply_reducer",
    "reduce_reducers",
    "DEFAULT_NAMESPACE",
    "LiveState",
    "ReducerError",
    "collect",
    "dispatch",
    "init",
]
