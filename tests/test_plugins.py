"""Tests for plugins — attachment, lookup, callbacks and state control."""

import logging

import pytest

from pathstate import (
    FrozenDict,
    Plugin,
    PluginCallbacks,
    PluginId,
    PluginNotAttachedError,
    PluginStateControl,
    ReadOnlyValueError,
    StateDestroyedError,
    create_state,
    none,
    tracking,
)


def _recorder(plugin_id, events, **extra):
    def factory():
        def init(root):
            events.append(("init", root.path))
            return PluginCallbacks(on_set=lambda arg: events.append(("set", plugin_id.name, arg)), **extra)

        return Plugin(plugin_id, init)

    return factory


class TestAttach:
    def test_init_once_per_id(self):
        state = create_state({"a": 1})
        events = []
        plugin_id = PluginId("rec")
        factory = _recorder(plugin_id, events)
        assert state.root.attach(factory) is state.root
        state.root["a"].attach(factory)
        assert events == [("init", ())]
        assert len(state._plugins) == 1

    def test_plugin_without_init(self):
        state = create_state({})
        plugin_id = PluginId("bare")
        state.root.attach(lambda: Plugin(plugin_id))
        callbacks, _ = state.root.attach(plugin_id)
        assert callbacks == PluginCallbacks()

    def test_ids_compare_by_identity(self):
        state = create_state({})
        state.root.attach(lambda: Plugin(PluginId("same")))
        callbacks, _ = state.root.attach(PluginId("same"))
        assert isinstance(callbacks, PluginNotAttachedError)


class TestLookup:
    def test_attached(self):
        state = create_state({"a": 1})
        plugin_id = PluginId("rec")
        state.root.attach(_recorder(plugin_id, []))
        callbacks, control = state.root["a"].attach(plugin_id)
        assert isinstance(callbacks, PluginCallbacks)
        assert isinstance(control, PluginStateControl)
        assert control.get_untracked() == 1

    def test_not_attached_returns_error(self):
        state = create_state({})
        plugin_id = PluginId("missing")
        callbacks, control = state.root.attach(plugin_id)
        assert isinstance(callbacks, PluginNotAttachedError)
        assert callbacks.plugin_id is plugin_id
        assert str(callbacks).startswith("PATHSTATE-301")
        assert isinstance(control, PluginStateControl)

    def test_registry_lookup_raises(self):
        state = create_state({})
        with pytest.raises(PluginNotAttachedError):
            state._plugins.lookup(PluginId("missing"))


class TestOnSet:
    def test_arguments(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        state.root["a"].set(2)
        _, name, arg = events[-1]
        assert name == "rec"
        assert arg.path == ("a",)
        assert arg.previous == 1
        assert arg.value == 2
        assert arg.merged is None
        assert arg.state == {"a": 2}

    def test_merge_arguments(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        state.root.merge({"b": 2})
        arg = events[-1][2]
        assert arg.path == ()
        assert arg.merged == {"b": 2}
        assert arg.previous == {"a": 1}
        assert arg.value == {"a": 1, "b": 2}

    def test_delete_reports_none(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        state.root["a"].set(none)
        arg = events[-1][2]
        assert arg.value is none
        assert arg.previous == 1

    def test_root_delete_reports_none(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        state.root.set(none)
        arg = events[-1][2]
        assert arg.path == ()
        assert arg.value is none
        assert arg.previous == {"a": 1}

    def test_arguments_are_read_only(self):
        state = create_state({"a": {"b": 1}})
        blocked = []

        def sneaky(arg):
            for target in (arg.state, arg.value, arg.previous):
                try:
                    target["sneaky"] = 1
                except ReadOnlyValueError:
                    blocked.append(target)

        state.root.attach(lambda: Plugin(PluginId("sneaky"), lambda r: PluginCallbacks(on_set=sneaky)))
        state.root["a"].set({"b": 2})
        assert len(blocked) == 3
        assert state.root.keys == ["a"]
        assert state.root["a"].keys == ["b"]

    def test_noop_does_not_fire(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        state.root["zz"].set(none)
        assert events == [("init", ())]

    def test_attachment_order_and_before_subscribers(self):
        state = create_state({"a": 1})
        order = []
        first, second = PluginId("first"), PluginId("second")
        state.root.attach(lambda: Plugin(first, lambda r: PluginCallbacks(on_set=lambda a: order.append("first"))))
        state.root.attach(lambda: Plugin(second, lambda r: PluginCallbacks(on_set=lambda a: order.append("second"))))

        context = state.begin()
        with tracking(context):
            state.root["a"].get()
        state.subscribe(context, lambda: order.append("subscriber"))

        state.root["a"].set(2)
        assert order == ["first", "second", "subscriber"]

    def test_failing_plugin_is_logged(self, caplog):
        state = create_state({"a": 1})
        events = []

        def _boom(arg):
            raise RuntimeError("boom")

        state.root.attach(lambda: Plugin(PluginId("bad"), lambda r: PluginCallbacks(on_set=_boom)))
        state.root.attach(_recorder(PluginId("good"), events))

        with caplog.at_level(logging.ERROR, logger="pathstate.plugins"):
            state.root["a"].set(2)

        assert state.root["a"].get() == 2
        assert events[-1][1] == "good"
        assert "failed in on_set" in caplog.text


class TestStateControl:
    def _control(self, state, path=()):
        plugin_id = PluginId("ctl")
        state.root.attach(lambda: Plugin(plugin_id))
        _, control = state.accessor(path).attach(plugin_id)
        return control

    def test_get_untracked_leaves_no_trace(self):
        state = create_state({"a": 1})
        control = self._control(state, "a")
        context = state.begin()
        with tracking(context):
            assert control.get_untracked() == 1
        assert not context

    def test_get_untracked_is_read_only(self):
        state = create_state({"a": {"b": 1}})
        control = self._control(state, "a")
        value = control.get_untracked()
        assert isinstance(value, FrozenDict)
        with pytest.raises(ReadOnlyValueError):
            value["c"] = 2
        assert state.root["a"].get() == {"b": 1}

    def test_set_untracked_skips_subscribers_but_not_plugins(self):
        state = create_state({"a": 1})
        events = []
        state.root.attach(_recorder(PluginId("rec"), events))
        control = self._control(state, "a")

        context = state.begin()
        with tracking(context):
            state.root["a"].get()
        log = []
        state.subscribe(context, lambda: log.append(1))

        assert control.set_untracked(5) == [("a",)]
        assert state.root["a"].get() == 5
        assert log == []
        assert events[-1][2].value == 5

        control.rerender([("a",)])
        assert log == [1]

    def test_merge_untracked(self):
        state = create_state({"a": 1})
        control = self._control(state)
        assert set(control.merge_untracked({"b": 2})) == {("b",), ()}
        assert state.root.get() == {"a": 1, "b": 2}

    def test_rerender_after_destroy(self):
        state = create_state({})
        control = self._control(state)
        state.destroy()
        with pytest.raises(StateDestroyedError):
            control.rerender([()])


class TestOnDestroy:
    def test_called_with_final_value(self):
        state = create_state({"a": 1})
        seen = []
        state.root.attach(
            lambda: Plugin(
                PluginId("d"), lambda r: PluginCallbacks(on_destroy=lambda arg: seen.append(arg.state))
            )
        )
        state.destroy()
        state.destroy()
        assert seen == [{"a": 1}]
