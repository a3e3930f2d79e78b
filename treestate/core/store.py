"""
State machine folding dispatched reducers into live state.

All writes go through dispatch(), which publishes a reducer on the
namespace channel. Every LiveState listening on that namespace folds it
into its current value and notifies its subscribers.

Namespaces are shared process-wide: two LiveState instances on the same
namespace observe each other's dispatches.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar, Union

from .reducer import apply_reducer
from .. import bus
from .. import storage as storage_mod
from ..storage import Backend, StorageAdapter

logger = logging.getLogger(__name__)

S = TypeVar("S")

DEFAULT_NAMESPACE = "state.changes"


class ReducerError(Exception):
    """Raised when a reducer fails while being folded into state."""

    def __init__(self, namespace: str, cause: BaseException):
        super().__init__(f"Reducer failed on {namespace}: {cause!r}")
        self.namespace = namespace
        self.cause = cause


def dispatch(change: Callable[[Any], Any], namespace: str = DEFAULT_NAMESPACE) -> bool:
    """
    Publish a reducer on a namespace.

    Example:
        >>> dispatch(lambda state: {**state, "count": state["count"] + 1})
        True

    Returns:
        True once delivery was attempted
    """
    return bus.publish(namespace, change)


def collect(namespace: str = DEFAULT_NAMESPACE) -> bus.Observable:
    """Lazy stream of reducers dispatched on a namespace from subscription on."""
    return bus.Observable(namespace)


class LiveState(bus.Stream[S]):
    """
    Continuously observable current state.

    Subscribers receive the current value immediately, then every
    folded value after it.

    Example:
        >>> state = init({"count": 0}, "counter")
        >>> unsubscribe = state.subscribe(print)
        {'count': 0}
        >>> dispatch(lambda s: {**s, "count": s["count"] + 1}, "counter")
        {'count': 1}
        True
    """

    def __init__(self, seed: S, namespace: str = DEFAULT_NAMESPACE):
        super().__init__()
        self.namespace = namespace
        self._value = seed
        self._detach: Optional[bus.Unsubscribe] = None
        self.error: Optional[BaseException] = None

    @property
    def value(self) -> S:
        with self._lock:
            return self._value

    def get_value(self) -> S:
        """Get the latest state."""
        return self.value

    @property
    def halted(self) -> bool:
        """True once a reducer fault stopped folding."""
        return self.error is not None

    @property
    def closed(self) -> bool:
        return self._detach is None

    def subscribe(self, callback: Callable[[S], None]) -> bus.Unsubscribe:
        with self._lock:
            unsubscribe = super().subscribe(callback)
            callback(self._value)
        return unsubscribe

    def emit(self, value: S) -> None:
        with self._lock:
            self._value = value
            super().emit(value)

    def listen(self, source: bus.Observable) -> None:
        """Start folding reducers from a source."""
        with self._lock:
            if self._detach is not None:
                raise RuntimeError(f"State for {self.namespace} is already listening")
            self._detach = source.subscribe(self._fold)

    def close(self) -> None:
        """Release the channel subscription. The last value stays readable."""
        with self._lock:
            detach, self._detach = self._detach, None
        if detach is not None:
            detach()

    def _fold(self, reducer: Callable[[S], S]) -> None:
        with self._lock:
            try:
                next_state = apply_reducer(self._value, reducer)
            except Exception as e:
                self.error = e
                self.close()
                logger.error(f"Reducer fault on {self.namespace}, state halted: {e!r}")
                raise ReducerError(self.namespace, e) from e
            self.emit(next_state)

    def __repr__(self) -> str:
        return f"LiveState({self.namespace!r}, value={self._value!r})"


def init(
    initial: Any = None,
    namespace: str = DEFAULT_NAMESPACE,
    storage: Union[Backend, StorageAdapter, None] = None,
) -> LiveState:
    """
    Initialize the state machine.

    Args:
        initial: Starting state, used unless storage holds a snapshot
        namespace: Channel to fold reducers from, and the storage key
        storage: Backend (or adapter) to restore from and persist to

    Returns:
        LiveState following every reducer dispatched on the namespace

    Example:
        >>> # Memory only (default)
        >>> state = init({"count": 0})
        >>> # Durable
        >>> state = init({"count": 0}, "counter", FileBackend("./state"))
    """
    if initial is None:
        initial = {}

    adapter = storage if isinstance(storage, StorageAdapter) else storage_mod.init(storage)
    seed = adapter.get(namespace, initial) if adapter else initial
    if adapter and seed is not initial:
        logger.debug(f"Restored state for {namespace} from storage")

    state = LiveState(seed, namespace)

    if adapter:
        state.subscribe(lambda value: adapter.set(namespace, value))

    state.listen(collect(namespace))
    return state
