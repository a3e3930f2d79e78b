"""
Action tree adapter.

Converts a declarative tree of reducer-producing functions into an
auto-dispatching API:

    actions = {
        "initial": {"count": 0},
        "increment": lambda: lambda s: {**s, "count": s["count"] + 1},
        "user": {
            "initial": {"name": "Guest"},
            "set_name": lambda name: lambda s: {**s, "user": {"name": name}},
        },
    }

    tree = adapt(actions, "app")
    tree.initial            # {"count": 0, "user": {"name": "Guest"}}
    tree.increment()        # dispatches on "app"
    tree.user.set_name("A") # dispatches on "app", emits path ("user", "set_name")

Every call also emits an ActionEvent on tree.stream, which is shared by
every branch of the tree and by every later attach().
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional, Tuple, Union

from .bus import Stream
from .core.events import ActionEvent
from .core.reducer import Reducer
from .core.store import DEFAULT_NAMESPACE, LiveState, dispatch, init
from .patch import PathLike, normalize_path, patch
from .storage import Backend, StorageAdapter

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset({"initial"})


# Action nodes

@dataclass(frozen=True)
class Leaf:
    """Function returning a reducer, or an awaitable/future of one."""
    fn: Callable[..., Any]


@dataclass(frozen=True)
class Branch:
    """Named children plus an optional initial state fragment."""
    children: Dict[str, "Node"] = field(default_factory=dict)
    initial: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Mapping) -> "Branch":
        initial = mapping.get("initial")
        if initial is None:
            initial = {}
        elif not isinstance(initial, Mapping):
            raise TypeError(
                f"initial must be a mapping, got {type(initial).__name__}"
            )
        children = {
            key: classify(value)
            for key, value in mapping.items()
            if key not in RESERVED_KEYS
        }
        return cls(children=children, initial=dict(initial))


@dataclass(frozen=True)
class Passthrough:
    """Any other value; copied into the adapted tree as is."""
    value: Any


Node = Union[Leaf, Branch, Passthrough]


def classify(value: Any) -> Node:
    """Tag a raw tree value as a Leaf, Branch or Passthrough."""
    if isinstance(value, (Leaf, Branch, Passthrough)):
        return value
    if callable(value):
        return Leaf(value)
    if isinstance(value, Mapping):
        return Branch.from_mapping(value)
    return Passthrough(value)


# Leaf results

@dataclass(frozen=True)
class Immediate:
    """Reducer available right away."""
    reducer: Reducer

    def then(self, on_ready: Callable[[Reducer], None]) -> None:
        on_ready(self.reducer)
        return None


@dataclass(frozen=True)
class Deferred:
    """Reducer that will be available once pending resolves."""
    pending: Any

    def then(self, on_ready: Callable[[Reducer], None]):
        """
        Schedule on_ready for when the reducer resolves.

        Returns:
            asyncio.Task for awaitables, concurrent Future for futures.
            Either settles after on_ready ran, carrying the reducer or
            the error.
        """
        if isinstance(self.pending, concurrent.futures.Future):
            return _chain_future(self.pending, on_ready)
        return _schedule(self.pending, on_ready)


def resolve_result(result: Any) -> Union[Immediate, Deferred]:
    """Classify what a leaf returned."""
    if isinstance(result, concurrent.futures.Future) or inspect.isawaitable(result):
        return Deferred(result)
    return Immediate(result)


def _schedule(awaitable, on_ready: Callable[[Reducer], None]) -> asyncio.Task:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise RuntimeError("Async actions need a running event loop") from None

    async def settle():
        reducer = await awaitable
        on_ready(reducer)
        return reducer

    return loop.create_task(settle())


def _chain_future(
    future: concurrent.futures.Future,
    on_ready: Callable[[Reducer], None],
) -> concurrent.futures.Future:
    settled: concurrent.futures.Future = concurrent.futures.Future()

    def done(f: concurrent.futures.Future) -> None:
        if f.cancelled():
            settled.cancel()
            return
        try:
            reducer = f.result()
            on_ready(reducer)
        except Exception as e:
            settled.set_exception(e)
        else:
            settled.set_result(reducer)

    future.add_done_callback(done)
    return settled


# Adapted tree

class AdaptedTree(Mapping):
    """
    Immutable, callable mirror of an action tree.

    Children are reachable by item or attribute access. The attributes
    initial, stream, namespace and path belong to the tree itself, as do
    the Mapping methods. Actions and branches may not take one of those
    names (see SHADOWED_NAMES); plain values may, and stay reachable with
    tree["name"].

    Attributes:
        initial: Own initial fragment merged with all descendants'
        stream: Action event stream shared by the whole tree
        namespace: Channel every action dispatches on
        path: Keys from the root to this branch
    """

    def __init__(
        self,
        children: Mapping[str, Any],
        initial: Mapping[str, Any],
        namespace: str,
        stream: Stream,
        path: Tuple[str, ...] = (),
    ):
        self._children = dict(children)
        self.initial = dict(initial)
        self.namespace = namespace
        self.stream = stream
        self.path = tuple(path)

    def __getitem__(self, key: str) -> Any:
        return self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._children[name]
        except KeyError:
            raise AttributeError(
                f"No action or branch {name!r} at {'.'.join(self.path) or '<root>'}"
            ) from None

    def __repr__(self) -> str:
        return f"AdaptedTree(path={self.path!r}, keys={list(self._children)!r})"

    def _replace(self, children=None, initial=None) -> "AdaptedTree":
        return AdaptedTree(
            self._children if children is None else children,
            self.initial if initial is None else initial,
            self.namespace,
            self.stream,
            self.path,
        )

    def with_initial(self, initial: Mapping[str, Any]) -> "AdaptedTree":
        """Copy with a different initial state."""
        return self._replace(initial=initial)

    def assoc(self, key: str, value: Any) -> "AdaptedTree":
        """Copy with one child replaced or added."""
        return self._replace(children={**self._children, key: value})

    def merge(self, other: Mapping) -> "AdaptedTree":
        """Copy with other's children (and initial, for trees) laid on top."""
        children = {**self._children, **other}
        if isinstance(other, AdaptedTree):
            return self._replace(children, {**self.initial, **other.initial})
        return self._replace(children)

    def empty_child(self, key: str) -> "AdaptedTree":
        """New empty branch below this one."""
        return AdaptedTree({}, {}, self.namespace, self.stream, self.path + (key,))


# Names attribute access resolves on the tree itself, never on a child
SHADOWED_NAMES = frozenset(
    {name for name in dir(AdaptedTree) if not name.startswith("_")}
    | {"initial", "stream", "namespace", "path"}
)


def _check_callable_name(key: str, path: Tuple[str, ...]) -> None:
    if key in SHADOWED_NAMES:
        where = ".".join(path + (key,))
        raise TypeError(
            f"Action or branch {where!r} would be hidden by AdaptedTree.{key}"
        )


def _wrap_leaf(
    fn: Callable[..., Any],
    path: Tuple[str, ...],
    namespace: str,
    emitter: Stream,
) -> Callable[..., Any]:
    @functools.wraps(fn)
    def action(*args, **kwargs):
        outcome = resolve_result(fn(*args, **kwargs))

        def on_ready(reducer: Reducer) -> None:
            try:
                dispatch(reducer, namespace)
            finally:
                # The reducer went out even if a state failed to fold it
                emitter.emit(ActionEvent(
                    path=path,
                    payload=args,
                    reducer=reducer,
                    kwargs=kwargs,
                    namespace=namespace,
                ))

        return outcome.then(on_ready)

    return action


def adapt(
    tree: Union[Mapping, Branch],
    namespace: str = DEFAULT_NAMESPACE,
    path: PathLike = (),
    emitter: Optional[Stream] = None,
) -> AdaptedTree:
    """
    Adapt an action tree to auto-dispatch on method calls.

    Args:
        tree: Mapping of actions, nested branches and an optional initial
        namespace: Channel the actions dispatch on
        path: Where the tree sits below the root (for event paths)
        emitter: Stream to share; a new one is created when omitted

    Returns:
        AdaptedTree with merged initial, shared stream and wrapped actions

    Raises:
        TypeError: tree is not a mapping, or an action or branch name is
            one of SHADOWED_NAMES
    """
    branch = classify(tree)
    if not isinstance(branch, Branch):
        raise TypeError(f"Action tree must be a mapping, got {type(tree).__name__}")

    path = normalize_path(path)
    stream = emitter if emitter is not None else Stream()

    initial = dict(branch.initial)
    children: Dict[str, Any] = {}

    for key, node in branch.children.items():
        if isinstance(node, (Leaf, Branch)):
            _check_callable_name(key, path)
        if isinstance(node, Leaf):
            children[key] = _wrap_leaf(node.fn, path + (key,), namespace, stream)
        elif isinstance(node, Branch):
            nested = adapt(node, namespace, path + (key,), stream)
            initial[key] = nested.initial
            children[key] = nested
        else:
            children[key] = node.value

    return AdaptedTree(children, initial, namespace, stream, path)


def attach(tree: AdaptedTree, path: PathLike, node: Union[Mapping, Branch]) -> AdaptedTree:
    """
    Attach a new action branch to an existing adapted tree.

    The node is adapted on the tree's namespace and stream, grafted at
    path, and its initial is grafted into the tree's initial at the same
    path. Missing intermediate branches are created empty.

    Example:
        >>> tree = adapt({"initial": {"count": 0}}, "app")
        >>> tree = attach(tree, "user", {
        ...     "initial": {"name": "Guest"},
        ...     "set_name": lambda name: lambda s: {**s, "user": {"name": name}},
        ... })
        >>> tree.initial
        {'count': 0, 'user': {'name': 'Guest'}}
    """
    if not isinstance(tree, AdaptedTree):
        raise TypeError(f"attach() needs an adapted tree, got {type(tree).__name__}")

    keys = normalize_path(path)
    for depth, key in enumerate(keys):
        _check_callable_name(key, keys[:depth])
    adapted = adapt(node, tree.namespace, keys, tree.stream)

    grafted = patch(tree, keys, adapted)
    initial = patch(tree.initial, keys, adapted.initial)

    logger.debug(f"Attached {'.'.join(keys) or '<root>'} on {tree.namespace}")
    return grafted.with_initial(initial)


class CreatedState(NamedTuple):
    """Adapted actions and the state they drive."""
    actions: AdaptedTree
    state: LiveState


def create_state(
    tree: Union[Mapping, Branch],
    namespace: str = DEFAULT_NAMESPACE,
    storage: Union[Backend, StorageAdapter, None] = None,
) -> CreatedState:
    """
    Create adapted actions and initialize state in one call.

    Example:
        >>> actions, state = create_state({
        ...     "initial": {"count": 0},
        ...     "increment": lambda: lambda s: {**s, "count": s["count"] + 1},
        ... }, "counter")
        >>> actions.increment()
        >>> state.value
        {'count': 1}
    """
    actions = adapt(tree, namespace)
    state = init(actions.initial, namespace, storage)
    return CreatedState(actions, state)
