import copy
import dataclasses

import pytest

from horizonstore.acceptance import (
    MockEventData,
    acceptance_test,
    benchmark,
    maintenance_acceptance_test,
    snapshot_acceptance_test,
)
from horizonstore.errors import (
    AggregateNotFoundError,
    EventConflictFromOtherSaveError,
    EventNotFoundError,
    EventStoreError,
    EventStoreOp,
    IncorrectEventVersionError,
    MismatchedEventAggregateIDsError,
    MismatchedEventAggregateTypesError,
    MissingEventsError,
)
from horizonstore.event import create_event_data


class FakeStore:
    def __init__(self):
        self.streams = {}

    def save(self, events, original_version):
        if not events:
            raise MissingEventsError(op=EventStoreOp.SAVE)
        first = events[0]
        for offset, event in enumerate(events):
            if event.aggregate_id != first.aggregate_id:
                raise MismatchedEventAggregateIDsError(op=EventStoreOp.SAVE)
            if event.aggregate_type != first.aggregate_type:
                raise MismatchedEventAggregateTypesError(op=EventStoreOp.SAVE)
            if event.version != original_version + offset + 1:
                raise IncorrectEventVersionError(op=EventStoreOp.SAVE)
        stream = self.streams.setdefault(first.aggregate_id, [])
        if len(stream) != original_version:
            raise EventConflictFromOtherSaveError(op=EventStoreOp.SAVE)
        stream.extend(copy.deepcopy(list(events)))

    def load(self, aggregate_id):
        if aggregate_id not in self.streams:
            raise AggregateNotFoundError(op=EventStoreOp.LOAD, aggregate_id=aggregate_id)
        return copy.deepcopy(self.streams[aggregate_id])

    def replace(self, event):
        stream = self.streams.get(event.aggregate_id)
        if stream is None:
            raise AggregateNotFoundError(op=EventStoreOp.REPLACE)
        for index, stored in enumerate(stream):
            if stored.version == event.version:
                stream[index] = copy.deepcopy(event)
                return
        raise EventNotFoundError(op=EventStoreOp.REPLACE)

    def rename_event(self, from_type, to_type):
        for stream in self.streams.values():
            stream[:] = [
                dataclasses.replace(e, event_type=to_type) if e.event_type == from_type else e
                for e in stream
            ]


class FakeSnapshotStore(FakeStore):
    def __init__(self):
        super().__init__()
        self.snapshots = {}

    def save_snapshot(self, aggregate_id, snapshot):
        if not snapshot.aggregate_type:
            raise EventStoreError("aggregate type is empty", op=EventStoreOp.SAVE_SNAPSHOT)
        if snapshot.state is None:
            raise EventStoreError("snapshots state is nil", op=EventStoreOp.SAVE_SNAPSHOT)
        self.snapshots[aggregate_id] = copy.deepcopy(snapshot)

    def load_snapshot(self, aggregate_id):
        return copy.deepcopy(self.snapshots.get(aggregate_id))


def test_acceptance_passes_and_returns_saved_events():
    store = FakeStore()
    saved = acceptance_test(store)
    assert [e.version for e in saved] == [1, 2, 3, 4, 5, 6, 1]
    assert saved[0].data == MockEventData("event1")
    assert saved[1].metadata == {"meta": "data", "num": 42.0}
    assert len(store.streams) == 2


def test_mock_event_data_is_registered():
    saved = acceptance_test(FakeStore())
    assert create_event_data(saved[0].event_type) == MockEventData()


def test_acceptance_fails_when_empty_save_accepted():
    class Lenient(FakeStore):
        def save(self, events, original_version):
            if events:
                super().save(events, original_version)

    store = Lenient()
    with pytest.raises(AssertionError):
        acceptance_test(store)
    assert store.streams == {}


def test_acceptance_fails_when_metadata_lost():
    class Forgetful(FakeStore):
        def load(self, aggregate_id):
            return [dataclasses.replace(e, metadata={}) for e in super().load(aggregate_id)]

    store = Forgetful()
    with pytest.raises(AssertionError):
        acceptance_test(store)
    assert len(store.streams) == 2


def test_acceptance_fails_with_wrong_error_kind():
    class WrongKind(FakeStore):
        def load(self, aggregate_id):
            if aggregate_id not in self.streams:
                raise EventNotFoundError()
            return super().load(aggregate_id)

    store = WrongKind()
    with pytest.raises(AssertionError):
        acceptance_test(store)
    assert len(store.streams) == 2


def test_snapshot_acceptance_keeps_last_snapshot():
    store = FakeSnapshotStore()
    snapshot_acceptance_test(store)
    assert len(store.snapshots) == 1
    (snapshot,) = store.snapshots.values()
    assert snapshot.version == 2
    assert snapshot.state.data == "this is new incredible data"


def test_snapshot_acceptance_fails_on_stale_snapshot():
    class Stale(FakeSnapshotStore):
        def save_snapshot(self, aggregate_id, snapshot):
            if aggregate_id not in self.snapshots:
                super().save_snapshot(aggregate_id, snapshot)

    store = Stale()
    with pytest.raises(AssertionError):
        snapshot_acceptance_test(store)
    assert [s.version for s in store.snapshots.values()] == [1]


def test_snapshot_acceptance_ignores_store_without_snapshots():
    store = FakeStore()
    assert snapshot_acceptance_test(store) is None
    assert store.streams == {}


def test_maintenance_acceptance_renames_events():
    store = FakeStore()
    maintenance_acceptance_test(store, store)
    types = [e.event_type for stream in store.streams.values() for e in stream]
    assert "old_event_type" not in types
    assert types.count("new_event_type") == 2
    replaced = [
        e for stream in store.streams.values() for e in stream
        if e.data == MockEventData("event2_mod")
    ]
    assert [e.version for e in replaced] == [2]


def test_maintenance_fails_when_rename_does_nothing():
    class NoRename(FakeStore):
        def rename_event(self, from_type, to_type):
            return None

    store = NoRename()
    with pytest.raises(AssertionError):
        maintenance_acceptance_test(store, store)
    types = [e.event_type for stream in store.streams.values() for e in stream]
    assert types.count("old_event_type") == 2


def test_maintenance_fails_when_missing_aggregate_accepted():
    class Lenient(FakeStore):
        def replace(self, event):
            if event.aggregate_id in self.streams:
                super().replace(event)

    store = Lenient()
    with pytest.raises(AssertionError):
        maintenance_acceptance_test(store, store)
    assert len(store.streams) == 1


def test_benchmark_saves_each_iteration():
    store = FakeStore()
    elapsed = benchmark(store, 5)
    assert elapsed >= 0
    (stream,) = store.streams.values()
    assert [e.version for e in stream] == [1, 2, 3, 4, 5]


def test_benchmark_rejects_negative_iterations():
    with pytest.raises(ValueError):
        benchmark(FakeStore(), -1)