"""Tests for State — subscriptions, fine-grained notification and lifecycle."""

import logging

import pytest

from pathstate import (
    StateDestroyedError,
    create_state,
    none,
    tracking,
)


def _observe(state, fn):
    """Run fn under a fresh context, then subscribe to what it read."""
    context = state.begin()
    with tracking(context):
        fn()
    log = []
    unsubscribe = state.subscribe(context, lambda: log.append(1))
    return log, unsubscribe


class TestCreate:
    def test_from_value(self):
        state = create_state({"a": 1})
        assert state.root.get() == {"a": 1}
        assert not state.promised
        assert state.error is None

    def test_from_callable(self):
        state = create_state(lambda: [1, 2])
        assert state.root.get() == [1, 2]

    def test_repr(self):
        state = create_state(0)
        assert repr(state) == "State(Envelope(concrete), 0 subscriptions)"


class TestNotification:
    def test_only_read_fields_notify(self):
        state = create_state({"field1": 0, "field2": "str"})
        log, _ = _observe(state, lambda: state.root["field1"].get())

        state.root["field1"].set(1)
        assert log == [1]
        state.root["field2"].set("x")
        assert log == [1]

    def test_identical_value_still_notifies(self):
        state = create_state({"field1": 0})
        log, _ = _observe(state, lambda: state.root["field1"].get())
        state.root["field1"].set(lambda p: p)
        state.root["field1"].set(0)
        assert log == [1, 1]

    def test_parent_reader_sees_child_change(self):
        state = create_state({"a": {"b": 1}})
        log, _ = _observe(state, lambda: state.root.get())
        state.root["a"]["b"].set(2)
        assert log == [1]

    def test_child_reader_sees_parent_replace(self):
        state = create_state({"a": {"b": 1}})
        log, _ = _observe(state, lambda: state.root["a"]["b"].get())
        state.root.set({"a": {"b": 1}})
        assert log == [1]

    def test_root_reader_sees_new_field(self):
        state = create_state({"field1": 0})
        log, _ = _observe(state, lambda: state.root.get())
        state.root["field3"].set(3)
        assert log == [1]

    def test_nothing_read_nothing_notified(self):
        state = create_state({"field1": 0})
        log, _ = _observe(state, lambda: None)
        state.root["field1"].set(1)
        state.root.set({})
        assert log == []

    def test_reader_of_deleted_field(self):
        state = create_state({"field1": 0})
        log, _ = _observe(state, lambda: state.root["field1"].get())
        state.root["field1"].set(none)
        assert log == [1]

    def test_unsubscribe(self):
        state = create_state({"field1": 0})
        log, unsubscribe = _observe(state, lambda: state.root["field1"].get())
        unsubscribe()
        unsubscribe()  # idempotent
        state.root["field1"].set(1)
        assert log == []

    def test_other_state_changes_ignored(self):
        a = create_state({"x": 1})
        b = create_state({"x": 1})
        log, _ = _observe(a, lambda: a.root["x"].get())
        b.root["x"].set(2)
        assert log == []


class TestKeysReaders:
    def test_value_change_does_not_notify(self):
        state = create_state({"field1": 0, "field2": "str"})
        log, _ = _observe(state, lambda: state.root.keys)
        state.root["field1"].set(1)
        assert log == []

    def test_new_key_notifies(self):
        state = create_state({"field1": 0})
        log, _ = _observe(state, lambda: state.root.keys)
        state.root["field3"].set(3)
        assert log == [1]

    def test_merge_of_existing_keys_does_not_notify(self):
        state = create_state({"field1": 0, "field2": 1})
        log, _ = _observe(state, lambda: state.root.keys)
        state.root.merge({"field1": 5})
        assert log == []
        state.root.merge({"field9": 5})
        assert log == [1]

    def test_deletion_lifecycle(self):
        state = create_state({"field1": 0, "field2": 1})
        log, _ = _observe(state, lambda: state.root.keys)

        state.root["field1"].set(none)
        assert log == [1]
        assert state.root.keys == ["field2"]

        state.root["field1"].set(none)  # already gone
        assert log == [1]

        state.root["field1"].set(2)
        assert log == [1, 1]

        state.root.set(none)
        assert log == [1, 1, 1]
        assert state.root.keys is None
        assert state.root.map(lambda s: False, lambda s: True) is True

    def test_list_length_readers(self):
        state = create_state({"items": [1, 2]})
        log, _ = _observe(state, lambda: len(state.root["items"]))
        state.root["items"][0].set(10)
        assert log == []
        state.root["items"].merge([3])
        assert log == [1]
        state.root["items"][0].set(none)
        assert log == [1, 1]
        assert state.root["items"].get() == [2, 3]

    def test_ornull_reader(self):
        state = create_state({"user": None})
        log, _ = _observe(state, lambda: state.root["user"].ornull)
        state.root["user"].set({"name": "Ada"})
        assert log == [1]
        state.root["user"]["name"].set("Bob")
        assert log == [1]


class TestSubscriberErrors:
    def test_failure_is_logged_and_others_run(self, caplog):
        state = create_state({"a": 1})
        context = state.begin()
        with tracking(context):
            state.root["a"].get()

        def _boom():
            raise RuntimeError("boom")

        log = []
        state.subscribe(context, _boom)
        state.subscribe(context, lambda: log.append(1))

        with caplog.at_level(logging.ERROR, logger="pathstate.notifier"):
            state.root["a"].set(2)

        assert log == [1]
        assert state.root["a"].get() == 2
        assert "Subscriber callback failed" in caplog.text

    def test_unsubscribe_during_dispatch(self):
        state = create_state({"a": 1})
        context = state.begin()
        with tracking(context):
            state.root["a"].get()
        log = []
        unsubscribe_second = None

        def _first():
            log.append("first")
            unsubscribe_second()

        state.subscribe(context, _first)
        unsubscribe_second = state.subscribe(context, lambda: log.append("second"))
        state.root["a"].set(2)
        assert log == ["first"]


class TestDestroy:
    def test_operations_raise_after_destroy(self):
        state = create_state({"a": 1})
        a = state.root["a"]
        state.destroy()
        assert state.destroyed
        with pytest.raises(StateDestroyedError):
            a.get()
        with pytest.raises(StateDestroyedError):
            a.set(2)
        with pytest.raises(StateDestroyedError):
            state.root
        with pytest.raises(StateDestroyedError):
            state.subscribe(state.begin(), lambda: None)

    def test_error_carries_path(self):
        state = create_state({"a": [1]})
        item = state.root["a"][0]
        state.destroy()
        with pytest.raises(StateDestroyedError) as exc:
            item.merge(2)
        assert exc.value.path == ("a", 0)
        assert str(exc.value).startswith("PATHSTATE-106 [path: /a/0]")

    def test_destroy_is_idempotent(self):
        state = create_state({})
        state.destroy()
        state.destroy()
        assert repr(state) == "State(destroyed, 0 subscriptions)"

    def test_subscribers_released(self):
        state = create_state({"a": 1})
        log, _ = _observe(state, lambda: state.root["a"].get())
        state.destroy()
        assert state._notifier.subscription_count == 0
        assert log == []
