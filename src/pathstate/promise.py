"""Async envelope — lets the root value of a state be a pending future.

States move through:

    Concrete(value) -> Pending(future) -> Concrete(result) | Rejected(error)

While pending, reads report "not yet available" (``promised`` is True, values
read as None) and writes below the root are queued until the future resolves.
A newer root write supersedes the pending future: the old future's result is
discarded when it eventually settles.

Thread safety: futures may settle on a worker thread. Call set_scheduler()
once from the main thread; settlements arriving on any other thread are then
marshaled through it. Without a scheduler they apply on the settling thread.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from typing import Any, Callable

from pathstate.errors import AsyncUnavailableError
from pathstate.path import Path

logger = logging.getLogger("pathstate.promise")

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for future settlement.

    Call once from the main/UI thread:
        pathstate.set_scheduler(app.call_from_thread)

    After this, a future settling on a background thread applies its result
    through scheduler(fn). Settlement on the scheduler thread stays synchronous.
    Pass None to disable.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def _marshal(fn: Callable[[], None]) -> None:
    if _scheduler is not None and threading.current_thread() != _scheduler_thread:
        _scheduler(fn)
    else:
        fn()


def is_future(value: Any) -> bool:
    """True for asyncio/concurrent futures and any other awaitable."""
    if isinstance(value, (asyncio.Future, concurrent.futures.Future)):
        return True
    return inspect.isawaitable(value)


def to_future(value: Any, path: Path = ()) -> asyncio.Future | concurrent.futures.Future:
    """Return value as a future, scheduling coroutines on the running loop."""
    if isinstance(value, (asyncio.Future, concurrent.futures.Future)):
        return value
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError as exc:
        if inspect.iscoroutine(value):
            value.close()  # never awaited
        raise AsyncUnavailableError(path, exc) from exc
    return asyncio.ensure_future(value, loop=loop)


class Envelope:
    """Pending/resolved/rejected status of a state's root value."""

    __slots__ = ("future", "promised", "error", "_queued")

    def __init__(self) -> None:
        self.future = None
        self.promised = False
        self.error: BaseException | None = None
        self._queued: list[Callable[[], Any]] = []

    def pend(self, future=None) -> None:
        """Enter Pending. A None future means no value until the root is set again."""
        if self._queued:
            logger.debug("Dropping %d queued writes superseded by a new root value", len(self._queued))
        self.future = future
        self.promised = True
        self.error = None
        self._queued = []

    def resolve(self) -> list[Callable[[], Any]]:
        """Enter Concrete. Returns the writes queued while pending, in order."""
        queued, self._queued = self._queued, []
        self.future = None
        self.promised = False
        self.error = None
        return queued

    def reject(self, error: BaseException) -> None:
        if self._queued:
            logger.debug("Dropping %d queued writes after rejection", len(self._queued))
        self.future = None
        self.promised = False
        self.error = error
        self._queued = []

    def supersede(self) -> None:
        """Enter Concrete because the root was written directly."""
        if self._queued:
            logger.debug("Dropping %d queued writes superseded by a new root value", len(self._queued))
        self.future = None
        self.promised = False
        self.error = None
        self._queued = []

    def queue(self, write: Callable[[], Any]) -> None:
        self._queued.append(write)

    @property
    def queued_count(self) -> int:
        return len(self._queued)

    def is_current(self, future) -> bool:
        return future is not None and future is self.future

    def watch(self, future, on_settled: Callable[[Any], None]) -> None:
        """Call on_settled(future) when it completes, marshaled to the scheduler thread."""

        def _done(fut) -> None:
            _marshal(lambda: on_settled(fut))

        future.add_done_callback(_done)

    def __repr__(self) -> str:
        if self.promised:
            return "Envelope(pending)"
        if self.error is not None:
            return f"Envelope(rejected={self.error!r})"
        return "Envelope(concrete)"


def outcome(future) -> tuple[Any, BaseException | None]:
    """(result, None) for a resolved future, (None, error) for a failed or cancelled one."""
    if future.cancelled():
        return None, concurrent.futures.CancelledError()
    error = future.exception()
    if error is not None:
        return None, error
    return future.result(), None
