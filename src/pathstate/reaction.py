"""Reactions — side effects that re-run when the paths they read change.

Each run happens under a fresh ObservationContext. Afterwards the reaction
subscribes to every state it read from; a change overlapping those reads
re-runs it and re-tracks, so the dependency set always reflects the latest
run.

Two flavors:
- autorun(fn): runs fn immediately, re-runs when anything it read changes.
- reaction(data_fn, effect_fn): tracks data_fn, calls effect_fn with the new
  value only when data_fn's result changes.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from pathstate._frozen import thaw
from pathstate._tracking import ObservationContext, tracking
from pathstate.notifier import Unsubscribe

T = TypeVar("T")


class Reaction:
    """A tracked side effect. Call dispose() to stop it."""

    __slots__ = ("_fn", "_context", "_unsubscribers", "_disposed")

    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn = fn
        self._context = ObservationContext()
        self._unsubscribers: list[Unsubscribe] = []
        self._disposed = False

    @property
    def context(self) -> ObservationContext:
        return self._context

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _run(self) -> None:
        """Re-evaluate the reaction function, re-tracking dependencies."""
        if self._disposed:
            return
        self._release()
        self._context.reset()
        try:
            with tracking(self._context):
                self._fn()
        finally:
            self._subscribe()

    def _subscribe(self) -> None:
        for owner in self._context.owners:
            if owner is None or owner.destroyed:
                continue
            self._unsubscribers.append(owner.subscribe(self._context, self._run))

    def _release(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def dispose(self) -> None:
        """Stop this reaction. Releases every subscription."""
        self._disposed = True
        self._release()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        name = getattr(self._fn, "__name__", repr(self._fn))
        return f"Reaction({name}, {state})"


class _DataReaction(Reaction):
    """Internal: reaction(data_fn, effect_fn) implementation.

    Tracks data_fn's reads. When they change, re-runs data_fn.
    If the result differs from last time, calls effect_fn with the new value.
    """

    __slots__ = ("_data_fn", "_effect_fn", "_last_value", "_initialized", "_suppress")

    def __init__(self, data_fn: Callable[[], T], effect_fn: Callable[[T], None]) -> None:
        super().__init__(self._evaluate)
        self._data_fn = data_fn
        self._effect_fn = effect_fn
        self._last_value = None
        self._initialized = False
        self._suppress = False

    def _evaluate(self) -> None:
        new_value = self._data_fn()
        if not self._initialized or new_value != self._last_value:
            # snapshot: views read through to the live tree
            self._last_value = thaw(new_value)
            first = not self._initialized
            self._initialized = True
            if not (first and self._suppress):
                self._effect_fn(new_value)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        name = getattr(self._data_fn, "__name__", repr(self._data_fn))
        return f"_DataReaction({name}, {state})"


def autorun(fn: Callable[[], None]) -> Reaction:
    """Run fn immediately, then re-run whenever any path it read changes.

    Returns the Reaction (call .dispose() to stop).

    Usage:
        state = create_state({"count": 0})
        log = []

        r = autorun(lambda: log.append(state.root["count"].get()))
        # log == [0]: ran immediately

        state.root["count"].set(1)
        # log == [0, 1]: re-ran because count changed

        r.dispose()
        state.root["count"].set(2)
        # log == [0, 1]: stopped
    """
    r = Reaction(fn)
    r._run()  # Initial run to establish dependencies
    return r


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
) -> Reaction:
    """Track data_fn's reads; call effect_fn when its result changes.

    Unlike autorun, effect_fn only fires when data_fn's *return value*
    changes, not on every overlapping write.

    Usage:
        state = create_state({"first": "Alice", "last": "Smith"})
        effects = []
        r = reaction(
            lambda: f"{state.root['first'].get()} {state.root['last'].get()}",
            lambda name: effects.append(name),
        )
        # effects == []: data_fn ran to establish reads, effect did not fire

        state.root["first"].set("Bob")
        # effects == ["Bob Smith"]
    """
    r = _DataReaction(data_fn, effect_fn)
    r._suppress = not fire_immediately
    r._run()
    return r
