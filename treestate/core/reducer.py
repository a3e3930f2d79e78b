"""
Folding reducers into state.

A reducer is a pure callable taking the current state and returning
the next one. Folding is the only combinator provided.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar

S = TypeVar("S")

Reducer = Callable[[Any], Any]


def apply_reducer(state: S, reducer: Callable[[S], S]) -> S:
    """Apply a single reducer to produce the next state."""
    if not callable(reducer):
        raise TypeError(f"Reducer must be callable, got {type(reducer).__name__}")
    return reducer(state)


def reduce_reducers(initial: S, reducers: Iterable[Callable[[S], S]]) -> S:
    """Apply a sequence of reducers in order to get the final state."""
    state = initial
    for reducer in reducers:
        state = apply_reducer(state, reducer)
    return state
