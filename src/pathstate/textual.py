"""Textual integration for pathstate. Opt-in — requires textual.

Binds tracked reads to widget updates. A guarded autorun or reaction re-runs
when any path it read changes, but only touches widgets while the app can be
queried. Pause handling, NoMatches and thread marshaling live in _Bridge, so
call sites stay plain and the core package never imports Textual.

Usage:
    from pathstate import textual as stx

    stx.bind(app, state.root["user"]["name"], lambda name: app.query_one("#name").update(name))

    with stx.pause(app):
        await container.remove_children()
        await container.mount(*new_widgets)
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from pathstate._tracking import ObservationContext, current_context, tracking
from pathstate.reaction import autorun as _autorun
from pathstate.reaction import reaction as _reaction

# ids of apps currently inside a pause() block
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend every guarded callback of app, e.g. while widgets are replaced."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """True while app is running and not paused."""
    return app.is_running and id(app) not in _paused_apps


class _Bridge:
    """Delivers callbacks to one app's thread, or drops them when it is unsafe."""

    __slots__ = ("app", "main")

    def __init__(self, app) -> None:
        self.app = app
        self.main = threading.get_ident()

    def call(self, fn, *args) -> bool:
        """Run fn(*args) for the app. Returns False when the guard skipped it."""
        if not is_safe(self.app):
            return False
        if threading.get_ident() != self.main:
            self.app.call_from_thread(self._run, fn, *args)
        else:
            self._run(fn, *args)
        return True

    @staticmethod
    def _run(fn, *args) -> None:
        try:
            fn(*args)
        except NoMatches:
            pass  # widget not mounted (yet or anymore)


def reaction(app, data_fn, effect_fn, *, fire_immediately=False):
    """reaction() whose effect only runs while app is safe to query.

    Usage:
        todos = create_state([])
        stx.reaction(app, lambda: len(todos.root), lambda n: footer.update(f"{n} items"))
    """
    bridge = _Bridge(app)
    return _reaction(
        data_fn,
        lambda value: bridge.call(effect_fn, value),
        fire_immediately=fire_immediately,
    )


def autorun(app, fn):
    """autorun() whose body only runs while app is safe to query.

    A run skipped by the guard keeps the reads of the last real run, so a
    paused app still re-renders on the next change. Runs marshaled with
    call_from_thread record their reads into the run's own context.
    """
    bridge = _Bridge(app)
    last_reads = ObservationContext()

    def _tracked(context):
        with tracking(context):
            fn()

    def _guarded():
        context = current_context.get()
        if not bridge.call(_tracked, context):
            context.update(last_reads)
            return
        last_reads.reset()
        last_reads.update(context)

    return _autorun(_guarded)


def bind(app, accessor, render):
    """Call render(value) with the value at accessor's path, now and on every change."""
    return reaction(app, accessor.get, render, fire_immediately=True)
