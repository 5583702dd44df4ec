"""Notifier — matches changed paths against subscriptions and fires them.

Batching: while a batch is open, changed paths accumulate and are flushed
once when the outermost batch exits, so every subscription fires at most once
per batch and never sees an intermediate state. Outside a batch, notification
is synchronous: callbacks run before the mutating call returns.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from pathstate._tracking import ObservationContext
from pathstate.path import Path
from pathstate.plugins import BatchArgument, PluginRegistry

logger = logging.getLogger("pathstate.notifier")

Unsubscribe = Callable[[], None]


class Subscription:
    """A context's recorded reads paired with the callback to invalidate it."""

    __slots__ = ("context", "callback", "active")

    def __init__(self, context: ObservationContext, callback: Callable[[], None]) -> None:
        self.context = context
        self.callback = callback
        self.active = True

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"Subscription({self.context!r}, {state})"


class Notifier:
    """Per-state subscription list and batch scope."""

    def __init__(
        self,
        owner: object,
        plugins: PluginRegistry,
        snapshot: Callable[[], Any],
    ) -> None:
        self._owner = owner
        self._plugins = plugins
        self._snapshot = snapshot
        self._subscriptions: list[Subscription] = []
        self._batch_depth = 0
        # insertion-ordered set of paths changed inside the open batch
        self._pending: dict[Path, None] = {}
        self._postponed: list[Callable[[], Any]] = []
        self._running_postponed = False

    @property
    def batching(self) -> bool:
        return self._batch_depth > 0

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, context: ObservationContext, callback: Callable[[], None]) -> Unsubscribe:
        """Register callback for changes overlapping context. Returns an unsubscribe function."""
        subscription = Subscription(context, callback)
        self._subscriptions.append(subscription)

        def _unsubscribe() -> None:
            subscription.active = False
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def notify(self, paths: Iterable[Path]) -> None:
        """Invalidate overlapping subscriptions now, or at the end of the open batch."""
        paths = tuple(paths)
        if not paths:
            return
        if self._batch_depth > 0:
            self._pending.update(dict.fromkeys(paths))
        else:
            self._dispatch(paths)

    def _dispatch(self, paths: tuple) -> None:
        # Snapshot: callbacks may subscribe or unsubscribe while we iterate.
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            if not subscription.context.overlaps(paths, self._owner):
                continue
            try:
                subscription.callback()
            except Exception:
                logger.exception("Subscriber callback failed for paths %r", paths)

    # --- batching ---

    def begin_batch(self, path: Path, context: Any = None) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._batch_depth += 1
        if self._batch_depth == 1:
            self._plugins.dispatch(
                "on_batch_start", BatchArgument(path, self._snapshot(), context)
            )

    def end_batch(self, path: Path, context: Any = None) -> None:
        """Exit a batching scope. The outermost exit flushes pending paths."""
        if self._batch_depth == 1:
            self._plugins.dispatch(
                "on_batch_finish", BatchArgument(path, self._snapshot(), context)
            )
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self._flush()

    def postpone(self, action: Callable[[], Any]) -> None:
        """Run action after the outermost batch closes."""
        self._postponed.append(action)
        if self._batch_depth == 0 and not self._running_postponed:
            self._flush()

    def _flush(self) -> None:
        if self._pending:
            paths = tuple(self._pending)
            self._pending.clear()
            self._dispatch(paths)
        if self._running_postponed or not self._postponed:
            return
        # Actions postponed while these run wait for the next batch boundary.
        actions, self._postponed = self._postponed, []
        self._running_postponed = True
        try:
            for action in actions:
                try:
                    action()
                except Exception:
                    logger.exception("Postponed action failed")
        finally:
            self._running_postponed = False

    def clear(self) -> None:
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()
        self._pending.clear()
        self._postponed.clear()
