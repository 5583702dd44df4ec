"""Transactions — batched state mutations.

Wrapping mutations in ``with transaction(accessor)`` or a ``@batched(accessor)``
function defers all subscriber notification until the outermost batch of the
state exits. This prevents glitchy intermediate states where some
subscribers have seen part of an update but not the rest.

Unlike ``Accessor.batch``, these run immediately even when the state is
pending: a ``with`` block cannot be postponed.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Any, Callable, Iterator, ParamSpec, TypeVar

from pathstate.accessor import Accessor
from pathstate.errors import StateDestroyedError

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def transaction(accessor: Accessor, context: Any = None) -> Iterator[Accessor]:
    """Context manager for batching mutations of accessor's state.

    Usage:
        with transaction(state.root, context="import"):
            state.root["a"].set(1)
            state.root["b"].set(2)
            # subscribers run here, after both are set
    """
    state = accessor.state
    if state.destroyed:
        raise StateDestroyedError(accessor.path)
    state._notifier.begin_batch(accessor.path, context)
    try:
        yield accessor
    finally:
        state._notifier.end_batch(accessor.path, context)


def batched(accessor: Accessor, context: Any = None) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator: batch all mutations of accessor's state made inside fn.

    Usage:
        counters = create_state({"a": 0, "b": 0})

        @batched(counters.root)
        def swap():
            a, b = counters.root["a"].get(), counters.root["b"].get()
            counters.root["a"].set(b)
            counters.root["b"].set(a)
            # subscribers see both changes at once, not one at a time
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with transaction(accessor, context):
                return fn(*args, **kwargs)

        return wrapper

    return decorator
