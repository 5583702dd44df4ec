"""State — the engine behind a tree of accessors.

A State owns the value store, the accessor cache, the plugin registry, the
notifier and the async envelope. Accessors call into it for every read and
write; it sequences each mutation as:

    resolve updater -> mutate store -> prune caches -> plugins.on_set -> notify

Usage:
    state = create_state({"field1": 0, "field2": "str"})

    context = state.begin()
    with tracking(context):
        state.root["field1"].get()
    unsubscribe = state.subscribe(context, rerender)

    state.root["field1"].set(1)      # rerender() runs
    state.root["field2"].set("x")    # field2 was never read: nothing runs
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from pathstate import _tracking
from pathstate._frozen import NodeMeta, freeze
from pathstate.accessor import Accessor, AccessorCache
from pathstate.errors import NestedPromiseError, StateDestroyedError, StateValueError
from pathstate.notifier import Notifier, Unsubscribe
from pathstate.path import ROOT, Path, to_path
from pathstate.plugins import DestroyArgument, Plugin, PluginRegistry, SetArgument
from pathstate.promise import Envelope, is_future, outcome, to_future
from pathstate.store import MISSING, Update, ValueStore, none

logger = logging.getLogger("pathstate.state")


class _Postpone:
    __slots__ = ()

    def __repr__(self) -> str:
        return "postpone"


# Returned from a batch action (or a map on_promised branch) to run the action later.
postpone = _Postpone()


def _kind(value: Any) -> type | None:
    if isinstance(value, (dict, list)):
        return type(value)
    return None


def _plain(value: Any) -> Any:
    return None if value is MISSING else value


class State:
    """A reactive value tree addressed by path."""

    def __init__(self, initial: Any = None) -> None:
        self._store = ValueStore()
        self._envelope = Envelope()
        self._plugins = PluginRegistry()
        self._notifier = Notifier(self, self._plugins, self._snapshot)
        self._accessors = AccessorCache(self)
        self._meta = NodeMeta()
        self._destroyed = False

        if callable(initial) and not is_future(initial):
            initial = initial()
        if isinstance(initial, (Accessor, State)):
            raise StateValueError()
        if is_future(initial):
            future = to_future(initial)
            self._envelope.pend(future)
            self._envelope.watch(future, self._on_settled)
        else:
            self._store = ValueStore(initial)

    # --- Public surface ---

    @property
    def root(self) -> Accessor:
        return self.accessor(ROOT)

    def accessor(self, path=None) -> Accessor:
        """Cached accessor for path (a key, a sequence of keys, or None for the root)."""
        path = to_path(path)
        if self._destroyed:
            raise StateDestroyedError(path)
        return self._accessors.get(path)

    def begin(self) -> _tracking.ObservationContext:
        return _tracking.begin()

    def subscribe(
        self, context: _tracking.ObservationContext, callback: Callable[[], None]
    ) -> Unsubscribe:
        """Call callback whenever a change overlaps what context recorded for this state."""
        if self._destroyed:
            raise StateDestroyedError()
        return self._notifier.subscribe(context, callback)

    @property
    def promised(self) -> bool:
        return self._envelope.promised

    @property
    def error(self) -> BaseException | None:
        return self._envelope.error

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        """Run every plugin's on_destroy, then make the state permanently unusable."""
        if self._destroyed:
            return
        self._plugins.dispatch("on_destroy", DestroyArgument(self._snapshot()))
        self._destroyed = True
        self._notifier.clear()
        self._plugins.clear()
        self._accessors.clear()
        self._meta.clear()
        self._envelope.supersede()
        logger.debug("Destroyed %r", self)

    def __repr__(self) -> str:
        if self._destroyed:
            status = "destroyed"
        else:
            status = repr(self._envelope)
        return f"State({status}, {len(self._notifier._subscriptions)} subscriptions)"

    # --- Internals used by accessors and plugin controls ---

    def _snapshot(self) -> Any:
        """Read-only view of the root value, as handed to plugins."""
        return freeze(_plain(self._store.root), ROOT, self._meta)

    def _view(self, value: Any, path: Path, meta: bool = True) -> Any:
        return freeze(_plain(value), path, self._meta if meta else None)

    def _read(self, path: Path) -> Any:
        if self._envelope.promised:
            return MISSING
        return self._store.get(path)

    def _resolve(self, path: Path, value: Any) -> Any:
        if callable(value) and not is_future(value):
            current = self._store.get(path)
            value = value(None if current is MISSING else freeze(current, path, self._meta))
        if isinstance(value, (Accessor, State)):
            raise StateValueError(path)
        return value

    def _set(self, path: Path, value: Any, notify: bool = True) -> tuple:
        if self._destroyed:
            raise StateDestroyedError(path)
        if path and self._envelope.promised:
            self._envelope.queue(lambda: self._set(path, value, notify))
            return ()
        value = self._resolve(path, value)
        if is_future(value):
            if path:
                raise NestedPromiseError(path)
            return self._pend(to_future(value), notify)
        if not path:
            if value is none:
                return self._pend(None, notify)
            self._envelope.supersede()
        return self._commit(path, self._store.set(path, value), notify)

    def _merge(self, path: Path, value: Any, notify: bool = True) -> tuple:
        if self._destroyed:
            raise StateDestroyedError(path)
        if self._envelope.promised:
            self._envelope.queue(lambda: self._merge(path, value, notify))
            return ()
        value = self._resolve(path, value)
        if is_future(value):
            raise NestedPromiseError(path)
        if not path:
            if value is none:
                return self._pend(None, notify)
            self._envelope.supersede()
        return self._commit(path, self._store.merge(path, value), notify)

    def _commit(self, path: Path, update: Update, notify: bool) -> tuple:
        self._prune(path, update)
        if not update:
            return ()
        self._plugins.dispatch(
            "on_set",
            SetArgument(
                path=path,
                state=self._snapshot(),
                previous=self._view(update.previous, path, meta=False),
                value=self._view(update.value, path),
                merged=self._view(update.merged, path),
            ),
        )
        if notify:
            self._notifier.notify(update.paths)
        return update.paths

    def _prune(self, path: Path, update: Update) -> None:
        for list_path, deleted in update.compacted:
            self._meta.compact(list_path, deleted)
        for removed in update.removed:
            self._accessors.prune(removed)
            self._meta.prune(removed)
        if _kind(update.previous) is not _kind(self._store.get(path)):
            self._accessors.prune(path, include_self=False)
            self._meta.prune(path)

    def _pend(self, future, notify: bool) -> tuple:
        """Enter Pending on future (or with no value at all when future is None)."""
        update = self._store.set(ROOT, none)
        self._envelope.pend(future)
        self._prune(ROOT, update)
        if future is None:
            # deleting the root is a real write; a pending future is not
            self._plugins.dispatch(
                "on_set",
                SetArgument(
                    path=ROOT,
                    state=self._snapshot(),
                    previous=self._view(update.previous, ROOT, meta=False),
                    value=none,
                ),
            )
        if notify:
            self._notifier.notify((ROOT,))
        if future is not None:
            self._envelope.watch(future, self._on_settled)
        return (ROOT,)

    def _on_settled(self, future) -> None:
        if self._destroyed or not self._envelope.is_current(future):
            logger.debug("Discarding settlement of superseded future %r", future)
            return
        result, error = outcome(future)
        if error is not None:
            logger.debug("Root future rejected: %r", error)
            self._envelope.reject(error)
            self._notifier.notify((ROOT,))
            return
        queued = self._envelope.resolve()
        self._commit(ROOT, self._store.set(ROOT, result), notify=True)
        for write in queued:
            try:
                write()
            except Exception:
                logger.exception("Queued write failed after resolution")

    def _notify(self, paths) -> None:
        if self._destroyed:
            raise StateDestroyedError()
        self._notifier.notify(paths)

    def _attach(self, factory: Callable[[], Plugin]) -> None:
        self._plugins.attach(factory, self.root)

    def _batch(self, accessor: Accessor, action: Callable[[Accessor], Any], context: Any) -> Any:
        if self._destroyed:
            raise StateDestroyedError(accessor.path)
        if self._envelope.promised:
            self._envelope.queue(lambda: self._batch(accessor, action, context))
            return None
        path = accessor.path
        self._notifier.begin_batch(path, context)
        try:
            result = action(accessor)
            if result is postpone:
                retry = lambda: self._batch(accessor, action, context)  # noqa: E731
                if self._envelope.promised:
                    self._envelope.queue(retry)
                else:
                    self._notifier.postpone(retry)
            return result
        finally:
            self._notifier.end_batch(path, context)

    def _map(self, accessor, action, on_promised, on_error, context) -> Any:
        if action is None and on_promised is None and on_error is None:
            return accessor.promised, accessor.error, accessor.get()
        _tracking.record(ROOT, self, structural=True)
        if self._envelope.promised:
            if on_promised is None:
                return None
            result = on_promised(accessor)
            if result is postpone and action is not None:
                self._envelope.queue(lambda: self._batch(accessor, action, context))
            return result
        if self._envelope.error is not None:
            if on_error is None:
                return None
            return on_error(self._envelope.error, accessor)
        if action is None:
            return None
        return self._batch(accessor, action, context)


def create_state(initial: Any = None) -> State:
    """Create a state from a value, a future, or a callable returning either.

    Usage:
        state = create_state({"user": None})
        state.root["user"].set({"name": "Ada"})
        state.root["user"]["name"].get()  # "Ada"
    """
    return State(initial)
