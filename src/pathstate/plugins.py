"""Plugins — named extensions that observe every mutation of a state.

A plugin is described by a ``Plugin(id, init)``. Attaching it to a state
calls ``init(root_accessor)`` once to get a ``PluginCallbacks`` bundle; later
attachments of the same id return the existing instance.

Callbacks are dispatched in attachment order. They observe, they cannot
veto: by the time ``on_set`` runs the mutation is committed, and a callback
that raises is logged and skipped.

Usage:
    LOGGER = PluginId("logger")

    def logger_plugin():
        def init(root):
            return PluginCallbacks(on_set=lambda arg: print(arg.path, arg.value))
        return Plugin(LOGGER, init)

    state.root.attach(logger_plugin)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from pathstate.errors import PluginNotAttachedError
from pathstate.path import Path
from pathstate.store import MISSING

if TYPE_CHECKING:
    from pathstate.accessor import Accessor
    from pathstate.state import State

logger = logging.getLogger("pathstate.plugins")


class PluginId:
    """Unique plugin identifier. Compared by identity, like a symbol."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"PluginId({self.name!r})"


@dataclass(frozen=True)
class SetArgument:
    path: Path
    state: Any = MISSING
    previous: Any = MISSING
    value: Any = MISSING
    merged: Any = MISSING


@dataclass(frozen=True)
class DestroyArgument:
    state: Any = MISSING


@dataclass(frozen=True)
class BatchArgument:
    path: Path
    state: Any = MISSING
    context: Any = None


@dataclass(frozen=True)
class PluginCallbacks:
    on_set: Optional[Callable[[SetArgument], None]] = None
    on_destroy: Optional[Callable[[DestroyArgument], None]] = None
    on_batch_start: Optional[Callable[[BatchArgument], None]] = None
    on_batch_finish: Optional[Callable[[BatchArgument], None]] = None


@dataclass(frozen=True)
class Plugin:
    id: PluginId
    init: Optional[Callable[[Accessor], PluginCallbacks]] = None


class PluginRegistry:
    """Attached plugin instances of one state, in attachment order."""

    def __init__(self) -> None:
        self._instances: dict[PluginId, PluginCallbacks] = {}

    def attach(self, factory: Callable[[], Plugin], root: Accessor) -> PluginCallbacks:
        plugin = factory()
        existing = self._instances.get(plugin.id)
        if existing is not None:
            return existing
        callbacks = plugin.init(root) if plugin.init is not None else None
        callbacks = callbacks or PluginCallbacks()
        self._instances[plugin.id] = callbacks
        logger.debug("Attached plugin %r", plugin.id)
        return callbacks

    def lookup(self, plugin_id: PluginId) -> PluginCallbacks:
        try:
            return self._instances[plugin_id]
        except KeyError:
            raise PluginNotAttachedError(plugin_id) from None

    def __contains__(self, plugin_id: PluginId) -> bool:
        return plugin_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def dispatch(self, callback_name: str, argument) -> None:
        """Call the named callback of every plugin. Failures are logged, not raised."""
        for plugin_id, callbacks in list(self._instances.items()):
            callback = getattr(callbacks, callback_name)
            if callback is None:
                continue
            try:
                callback(argument)
            except Exception:
                logger.exception("Plugin %r failed in %s", plugin_id, callback_name)

    def clear(self) -> None:
        self._instances.clear()


class PluginStateControl:
    """Plugin-only handle for reading and writing a state without side effects.

    Untracked reads leave no trace in the active observation context.
    Untracked writes still reach every plugin's ``on_set`` but notify no
    subscriber; call ``rerender(paths)`` to notify explicitly.
    """

    __slots__ = ("_state", "_path")

    def __init__(self, state: State, path: Path) -> None:
        self._state = state
        self._path = path

    def get_untracked(self) -> Any:
        """Value at the path as a read-only view, or None when absent."""
        return self._state._view(self._state._read(self._path), self._path)

    def set_untracked(self, value) -> list[Path]:
        return list(self._state._set(self._path, value, notify=False))

    def merge_untracked(self, value) -> list[Path]:
        return list(self._state._merge(self._path, value, notify=False))

    def rerender(self, paths) -> None:
        self._state._notify(tuple(tuple(p) for p in paths))
