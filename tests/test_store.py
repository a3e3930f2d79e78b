"""
Tests for the state machine: dispatch, collect and init.
"""
import json

import pytest

from treestate import storage
from treestate.bus import get_registry
from treestate.core.reducer import apply_reducer, reduce_reducers
from treestate.core.store import LiveState, ReducerError, collect, dispatch, init
from treestate.storage import FileBackend, MemoryBackend


def increment(state):
    return {**state, "count": state["count"] + 1}


class TestDispatch:
    """Test publishing reducers."""

    def test_dispatch_delivers_the_reducer(self):
        received = []
        collect("test.dispatch.1").subscribe(received.append)

        assert dispatch(increment, "test.dispatch.1") is True
        assert received == [increment]

    def test_dispatch_without_listeners_is_still_attempted(self):
        assert dispatch(increment, "test.dispatch.nobody") is True

    def test_default_namespace(self):
        received = []
        unsubscribe = collect().subscribe(received.append)
        try:
            dispatch(increment)
        finally:
            unsubscribe()
        assert received == [increment]


class TestCollect:
    """Test the lazy reducer stream."""

    def test_attaches_only_when_subscribed(self):
        changes = collect("test.collect.lazy")
        assert get_registry().channel("test.collect.lazy").subscriber_count == 0
        changes.subscribe(lambda change: None)
        assert get_registry().channel("test.collect.lazy").subscriber_count == 1

    def test_no_replay_of_earlier_dispatches(self):
        dispatch(increment, "test.collect.replay")
        received = []
        collect("test.collect.replay").subscribe(received.append)
        assert received == []

    def test_each_subscriber_gets_every_value(self):
        changes = collect("test.collect.multi")
        first, second = [], []
        changes.subscribe(first.append)
        changes.subscribe(second.append)

        dispatch(increment, "test.collect.multi")

        assert first == [increment]
        assert second == [increment]


class TestInit:
    """Test folding reducers into live state."""

    def test_starts_with_initial_value(self):
        state = init({"count": 0}, "test.init.1")
        seen = []
        state.subscribe(seen.append)
        assert seen == [{"count": 0}]
        assert state.get_value() == {"count": 0}

    def test_default_initial_is_empty(self):
        assert init(namespace="test.init.empty").value == {}

    def test_applies_dispatched_reducers(self):
        state = init({"count": 0}, "test.init.2")
        dispatch(increment, "test.init.2")
        assert state.value == {"count": 1}

    def test_reducers_fold_in_dispatch_order(self):
        state = init({"count": 0, "items": []}, "test.init.3")
        seen = []
        state.subscribe(seen.append)

        dispatch(increment, "test.init.3")
        dispatch(lambda s: {**s, "items": [1, 2]}, "test.init.3")

        assert seen == [
            {"count": 0, "items": []},
            {"count": 1, "items": []},
            {"count": 1, "items": [1, 2]},
        ]

    def test_late_subscriber_gets_current_value(self):
        state = init({"count": 0}, "test.init.late")
        dispatch(increment, "test.init.late")
        dispatch(increment, "test.init.late")

        seen = []
        state.subscribe(seen.append)
        assert seen == [{"count": 2}]

    def test_same_namespace_instances_observe_each_other(self):
        first = init({"count": 0}, "test.init.shared")
        second = init({"count": 10}, "test.init.shared")

        dispatch(increment, "test.init.shared")

        assert first.value == {"count": 1}
        assert second.value == {"count": 11}

    def test_close_stops_folding(self):
        state = init({"count": 0}, "test.init.close")
        assert not state.closed
        state.close()
        dispatch(increment, "test.init.close")

        assert state.closed
        assert state.value == {"count": 0}

    def test_listen_twice_is_rejected(self):
        state = init({}, "test.init.listen")
        with pytest.raises(RuntimeError):
            state.listen(collect("test.init.listen"))

    def test_live_state_can_be_driven_manually(self):
        state = LiveState({"count": 0}, "test.init.manual")
        seen = []
        state.subscribe(seen.append)
        state.emit({"count": 5})
        assert seen == [{"count": 0}, {"count": 5}]
        assert state.closed


class TestReducerFault:
    """A failing reducer halts the state and reaches the dispatcher."""

    def test_fault_propagates_and_halts(self, caplog):
        state = init({"count": 0}, "test.fault.1")

        with pytest.raises(ReducerError) as exc_info:
            dispatch(lambda s: s["count"] / 0, "test.fault.1")

        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)
        assert exc_info.value.namespace == "test.fault.1"
        assert state.halted
        assert isinstance(state.error, ZeroDivisionError)
        assert state.value == {"count": 0}
        assert "Reducer fault" in caplog.text

    def test_halted_state_ignores_later_dispatches(self):
        state = init({"count": 0}, "test.fault.2")
        with pytest.raises(ReducerError):
            dispatch(lambda s: s["missing"], "test.fault.2")

        dispatch(increment, "test.fault.2")
        assert state.value == {"count": 0}

    def test_fault_only_halts_the_faulting_state(self):
        fragile = init({"items": None}, "test.fault.3")
        healthy = init({"count": 0}, "test.fault.3")
        observed = []
        collect("test.fault.3").subscribe(observed.append)
        seen = []
        healthy.subscribe(seen.append)

        def measure(state):
            return {**state, "size": len(state["items"]) if "items" in state else 0}

        with pytest.raises(ReducerError) as exc_info:
            dispatch(measure, "test.fault.3")
        assert isinstance(exc_info.value.__cause__, TypeError)

        assert fragile.halted
        assert not healthy.halted
        assert healthy.value == {"count": 0, "size": 0}
        assert len(observed) == 1
        assert len(seen) == 2

        dispatch(increment, "test.fault.3")
        assert healthy.value == {"count": 1, "size": 0}
        assert fragile.value == {"items": None}


class TestInitWithStorage:
    """Test optional persistence."""

    def test_persists_seed_and_every_state(self):
        backend = MemoryBackend()
        init({"count": 0}, "test.storage.1", backend)
        assert storage.get(backend, "test.storage.1") == {"count": 0}

        dispatch(increment, "test.storage.1")
        assert json.loads(backend.get_item("test.storage.1")) == {"count": 1}

    def test_recovers_stored_snapshot(self):
        backend = MemoryBackend()
        backend.set_item("test.storage.2", json.dumps({"count": 42}))

        state = init({"count": 0}, "test.storage.2", backend)
        assert state.value == {"count": 42}

    def test_fresh_init_resumes_where_last_left_off(self):
        backend = MemoryBackend()
        first = init({"count": 0}, "test.storage.3", backend)
        dispatch(increment, "test.storage.3")
        first.close()

        second = init({"count": 0}, "test.storage.3", backend)
        assert second.value == {"count": 1}

    def test_malformed_snapshot_uses_initial(self):
        backend = MemoryBackend()
        backend.set_item("test.storage.4", "{oops")

        state = init({"count": 0}, "test.storage.4", backend)
        assert state.value == {"count": 0}
        assert storage.get(backend, "test.storage.4") == {"count": 0}

    def test_undecodable_snapshot_file_uses_initial(self, tmp_path):
        (tmp_path / "test.storage.7.json").write_bytes(b"\xff\xfe{bad")

        state = init({"count": 0}, "test.storage.7", FileBackend(str(tmp_path)))
        assert state.value == {"count": 0}
        assert json.loads((tmp_path / "test.storage.7.json").read_text()) == {"count": 0}

    def test_file_backend(self, tmp_path):
        state = init({"count": 0}, "test.storage.5", FileBackend(str(tmp_path)))
        dispatch(increment, "test.storage.5")
        state.close()

        restored = init({"count": 0}, "test.storage.5", FileBackend(str(tmp_path)))
        assert restored.value == {"count": 1}

    def test_accepts_storage_adapter(self):
        adapter = storage.init(MemoryBackend())
        init({"count": 3}, "test.storage.6", adapter)
        assert adapter.get("test.storage.6") == {"count": 3}


class TestReducerHelpers:
    """Test plain folding helpers."""

    def test_apply_reducer(self):
        assert apply_reducer({"count": 0}, increment) == {"count": 1}

    def test_apply_rejects_non_callable(self):
        with pytest.raises(TypeError):
            apply_reducer({}, {"not": "callable"})

    def test_reduce_reducers_is_left_fold(self):
        double = lambda s: {**s, "count": s["count"] * 2}
        assert reduce_reducers({"count": 1}, [increment, double]) == {"count": 4}
        assert reduce_reducers({"count": 1}, [double, increment]) == {"count": 3}
