"""Dependency tracking engine — records which paths an observer read.

Uses contextvars to hold the active ObservationContext, so every thread and
asyncio task has its own. Any accessor read while a context is active records
its path there; the context is later matched against changed paths to decide
whether its subscriber must be invalidated.

Two kinds of reads are recorded:

- value reads (``get()``, ``value``) overlap a change anywhere above or
  below the read path;
- structure reads (``keys``, ``ornull``, ``promised``, ``error``) only
  overlap a change at the read path or above it. Changing a child's value
  leaves the key set alone.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Iterable, Iterator

from pathstate.path import Path, is_prefix, related

# The context currently recording reads, or None when reads are untracked.
current_context: contextvars.ContextVar[ObservationContext | None] = contextvars.ContextVar(
    "current_context", default=None
)


class ObservationContext:
    """Paths read during one tracked pass, grouped by the state that owns them."""

    __slots__ = ("_values", "_structure")

    def __init__(self) -> None:
        self._values: dict[object, set[Path]] = {}
        self._structure: dict[object, set[Path]] = {}

    def record(self, path: Path, owner: object = None, structural: bool = False) -> None:
        """Add path to the read set. Recording the same path twice is a no-op."""
        target = self._structure if structural else self._values
        target.setdefault(owner, set()).add(path)

    def paths(self, owner: object = None) -> frozenset[Path]:
        return frozenset(self._values.get(owner, ()))

    def structure_paths(self, owner: object = None) -> frozenset[Path]:
        return frozenset(self._structure.get(owner, ()))

    @property
    def owners(self) -> list:
        """Every owner with at least one recorded read, in first-read order."""
        seen = dict.fromkeys(self._values)
        seen.update(dict.fromkeys(self._structure))
        return list(seen)

    def overlaps(self, changed: Iterable[Path], owner: object = None) -> bool:
        values = self._values.get(owner, ())
        structure = self._structure.get(owner, ())
        if not values and not structure:
            return False
        for c in changed:
            for r in values:
                if related(r, c):
                    return True
            for r in structure:
                if is_prefix(c, r):
                    return True
        return False

    def reset(self) -> None:
        self._values.clear()
        self._structure.clear()

    def update(self, other: ObservationContext) -> None:
        """Add every read recorded by other."""
        for owner, paths in other._values.items():
            self._values.setdefault(owner, set()).update(paths)
        for owner, paths in other._structure.items():
            self._structure.setdefault(owner, set()).update(paths)

    def copy(self) -> ObservationContext:
        clone = ObservationContext()
        clone.update(self)
        return clone

    def __bool__(self) -> bool:
        return bool(self._values or self._structure)

    def __repr__(self) -> str:
        count = sum(len(p) for p in self._values.values())
        count += sum(len(p) for p in self._structure.values())
        return f"ObservationContext({count} paths)"


def begin() -> ObservationContext:
    """Start a fresh, independent observation context."""
    return ObservationContext()


@contextmanager
def tracking(context: ObservationContext) -> Iterator[ObservationContext]:
    """Make context the active one for the duration of the block."""
    token = current_context.set(context)
    try:
        yield context
    finally:
        current_context.reset(token)


@contextmanager
def untracked() -> Iterator[None]:
    """Suspend recording for the duration of the block."""
    token = current_context.set(None)
    try:
        yield
    finally:
        current_context.reset(token)


def record(path: Path, owner: object = None, structural: bool = False) -> None:
    """Record a read in the active context, if there is one."""
    context = current_context.get()
    if context is not None:
        context.record(path, owner, structural)
