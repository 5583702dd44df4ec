"""Accessors — thin handles bound to one path of one state.

An accessor holds only its state and path; every read re-derives the value
from the state's store. Reads made while an observation context is active are
recorded there. Writes go through the state, which runs plugins and notifies.

Accessors are cached per path, so navigating twice to the same place returns
the same object:

    state = create_state({"todos": [{"done": False}]})
    done = state.root["todos"][0]["done"]
    assert done is state.root.nested("todos").nested(0).nested("done")
    done.set(True)
"""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Callable, Iterator

from pathstate import _tracking
from pathstate._frozen import freeze
from pathstate.errors import PluginNotAttachedError, StateDestroyedError
from pathstate.path import ROOT, Key, Path, child, format_path, is_prefix
from pathstate.plugins import PluginCallbacks, PluginId, PluginStateControl
from pathstate.store import MISSING

if TYPE_CHECKING:
    from pathstate.state import State


class Accessor:
    """Read/write handle for the value at one path."""

    __slots__ = ("_state", "_path", "__weakref__")

    def __init__(self, state: State, path: Path) -> None:
        self._state = state
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> State:
        return self._state

    def _check(self) -> None:
        if self._state._destroyed:
            raise StateDestroyedError(self._path)

    # --- Read operations (track) ---

    def get(self, untracked: bool = False) -> Any:
        """Return the value at this path. Containers come back as read-only views.

        Absent values and values of a pending state read as None.
        """
        self._check()
        if not untracked:
            _tracking.record(self._path, self._state)
        value = self._state._read(self._path)
        if value is MISSING:
            return None
        return freeze(value, self._path, self._state._meta)

    @property
    def value(self) -> Any:
        return self.get()

    @property
    def keys(self) -> list[Key] | None:
        """Dict keys in insertion order, list indices, or None for anything else."""
        self._check()
        _tracking.record(self._path, self._state, structural=True)
        value = self._state._read(self._path)
        if isinstance(value, dict):
            return list(value)
        if isinstance(value, list):
            return list(range(len(value)))
        return None

    @property
    def promised(self) -> bool:
        self._check()
        _tracking.record(ROOT, self._state, structural=True)
        return self._state._envelope.promised

    @property
    def error(self) -> BaseException | None:
        self._check()
        _tracking.record(ROOT, self._state, structural=True)
        return self._state._envelope.error

    @property
    def ornull(self) -> Accessor | None:
        """None when the value is None or absent, otherwise this accessor."""
        self._check()
        _tracking.record(self._path, self._state, structural=True)
        value = self._state._read(self._path)
        if value is MISSING or value is None:
            return None
        return self

    @property
    def meta(self) -> dict:
        """Untracked side-channel dict attached to this node."""
        self._check()
        return self._state._meta.for_path(self._path)

    # --- Navigation ---

    def nested(self, key: Key) -> Accessor:
        self._check()
        return self._state._accessors.get(child(self._path, key))

    def __getitem__(self, key: Key) -> Accessor:
        return self.nested(key)

    def __iter__(self) -> Iterator[Accessor]:
        for key in self.keys or ():
            yield self.nested(key)

    def __len__(self) -> int:
        return len(self.keys or ())

    def __contains__(self, key: Key) -> bool:
        return key in (self.keys or ())

    def __bool__(self) -> bool:
        return True

    # --- Write operations (notify) ---

    def set(self, value: Any) -> None:
        """Replace the value. Accepts a value, ``none``, a future (root only),
        or a callable receiving the current value and returning one of these.
        """
        self._check()
        self._state._set(self._path, value)

    def merge(self, value: Any) -> None:
        """Partially update the value; see ValueStore.merge for the rules."""
        self._check()
        self._state._merge(self._path, value)

    # --- Batching, plugins, async ---

    def batch(self, action: Callable[[Accessor], Any], context: Any = None) -> Any:
        """Run action(self) with notifications coalesced until it returns."""
        self._check()
        return self._state._batch(self, action, context)

    def attach(self, plugin):
        """Attach a plugin factory (returns self), or look up a plugin by PluginId.

        Looking up returns ``(callbacks, control)`` where callbacks is a
        PluginNotAttachedError when the plugin is not attached.
        """
        self._check()
        if isinstance(plugin, PluginId):
            callbacks: PluginCallbacks | PluginNotAttachedError
            try:
                callbacks = self._state._plugins.lookup(plugin)
            except PluginNotAttachedError as exc:
                callbacks = exc
            return callbacks, PluginStateControl(self._state, self._path)
        self._state._attach(plugin)
        return self

    def map(
        self,
        action: Callable[[Accessor], Any] | None = None,
        on_promised: Callable[[Accessor], Any] | None = None,
        on_error: Callable[[BaseException, Accessor], Any] | None = None,
        context: Any = None,
    ) -> Any:
        """Branch on resolved/pending/rejected without raising.

        With no callbacks, returns ``(promised, error, value)``.
        """
        self._check()
        return self._state._map(self, action, on_promised, on_error, context)

    def __repr__(self) -> str:
        return f"Accessor({format_path(self._path)})"


class AccessorCache:
    """One accessor per path for a state, built on demand and held only while in use."""

    __slots__ = ("_state", "_accessors")

    def __init__(self, state: State) -> None:
        self._state = state
        self._accessors: weakref.WeakValueDictionary[Path, Accessor] = weakref.WeakValueDictionary()

    def get(self, path: Path) -> Accessor:
        accessor = self._accessors.get(path)
        if accessor is None:
            accessor = self._accessors[path] = Accessor(self._state, path)
        return accessor

    def prune(self, path: Path, include_self: bool = True) -> None:
        """Forget accessors at and below path."""
        for p in [p for p in list(self._accessors.keys()) if is_prefix(path, p)]:
            if include_self or p != path:
                self._accessors.pop(p, None)

    def clear(self) -> None:
        self._accessors.clear()

    def __len__(self) -> int:
        return len(self._accessors)

    def __contains__(self, path: Path) -> bool:
        return path in self._accessors


def accessor_for(state: State, path) -> Accessor:
    """Cached accessor for path under state."""
    return state.accessor(path)
