"""Acceptance checks and a benchmark that every event store should pass."""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Sequence

from horizonstore.errors import (
    AggregateNotFoundError,
    EventNotFoundError,
    EventStoreError,
    IncorrectEventVersionError,
    MismatchedEventAggregateIDsError,
    MismatchedEventAggregateTypesError,
    MissingEventsError,
)
from horizonstore.event import (
    Event,
    Snapshot,
    compare_events,
    register_event_data,
    register_snapshot_data,
)

_EVENT_TYPE = "Event"
_EVENT_OTHER_TYPE = "EventOther"
_AGGREGATE_TYPE = "Aggregate"
_SNAPSHOT_AGGREGATE_TYPE = "test"
_TIMESTAMP = datetime(2009, 11, 10, 23, 0, tzinfo=timezone.utc)


@dataclass
class MockEventData:
    """Event data used by the acceptance checks."""

    content: str = ""


@dataclass
class _SnapshotTestData:
    data: str = ""


register_event_data(_EVENT_TYPE, MockEventData)


def _has_kind(exc: BaseException, kind: type[BaseException]) -> bool:
    if isinstance(exc, EventStoreError):
        return exc.matches(kind)
    return isinstance(exc, kind)


@contextmanager
def _expect_error(
    kind: type[BaseException], what: str, store_error: bool = True
) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        if store_error and not isinstance(exc, EventStoreError):
            raise AssertionError(
                f"{what}: there should be an event store error, got {exc!r}"
            ) from exc
        if not _has_kind(exc, kind):
            raise AssertionError(
                f"{what}: there should be a {kind.__name__}, got {exc!r}"
            ) from exc
    else:
        raise AssertionError(f"{what}: there should be a {kind.__name__}")


def _event(
    event_type: str,
    data: Any,
    aggregate_id: uuid.UUID,
    version: int,
    aggregate_type: str = _AGGREGATE_TYPE,
    **kwargs: Any,
) -> Event:
    return Event(event_type, data, _TIMESTAMP, aggregate_type, aggregate_id, version, **kwargs)


def _events_to_string(events: Sequence[Event]) -> str:
    return ", ".join(
        f"{e.aggregate_type}:{e.event_type} ({e.aggregate_id}@{e.version})"
        for e in events
    )


def _check_loaded(loaded: Sequence[Event], expected: Sequence[Event]) -> None:
    if len(loaded) != len(expected):
        raise AssertionError(
            f"incorrect number of loaded events: {len(loaded)}"
            f" ({_events_to_string(loaded)})"
        )
    for number, (event, wanted) in enumerate(zip(loaded, expected), start=1):
        differences = compare_events(
            event, wanted, ignore_version=True, ignore_position_metadata=True
        )
        if differences:
            raise AssertionError(f"the event was incorrect: {'; '.join(differences)}")
        if event.version != number:
            raise AssertionError(
                f"the event version should be correct: {event} {event.version}"
            )


def acceptance_test(store: Any) -> list[Event]:
    """Check the saving and loading of an event store; return the saved events."""
    saved: list[Event] = []

    with _expect_error(MissingEventsError, "saving no events"):
        store.save([], 0)

    aggregate_id = uuid.uuid4()
    event1 = _event(_EVENT_TYPE, MockEventData("event1"), aggregate_id, 1)
    store.save([event1], 0)
    saved.append(event1)

    with _expect_error(IncorrectEventVersionError, "saving the same event twice"):
        store.save([event1], 1)

    event2 = _event(
        _EVENT_TYPE,
        MockEventData("event2"),
        aggregate_id,
        2,
        metadata={"meta": "data", "num": 42.0},
    )
    store.save([event2], 1)
    saved.append(event2)

    event3 = _event(_EVENT_OTHER_TYPE, None, aggregate_id, 3)
    store.save([event3], 2)
    saved.append(event3)

    event4, event5, event6 = (
        _event(_EVENT_OTHER_TYPE, None, aggregate_id, version) for version in (4, 5, 6)
    )
    store.save([event4, event5, event6], 3)
    saved.extend([event4, event5, event6])

    same_id = _event(_EVENT_OTHER_TYPE, None, aggregate_id, 7)
    other_id = _event(_EVENT_OTHER_TYPE, None, uuid.uuid4(), 8)
    with _expect_error(MismatchedEventAggregateIDsError, "saving mixed aggregate IDs"):
        store.save([same_id, other_id], 6)

    same_type = _event(_EVENT_OTHER_TYPE, None, aggregate_id, 7)
    other_type = _event(
        _EVENT_OTHER_TYPE, None, aggregate_id, 8, aggregate_type="OtherAggregate"
    )
    with _expect_error(
        MismatchedEventAggregateTypesError, "saving mixed aggregate types"
    ):
        store.save([same_type, other_type], 6)

    other_aggregate_id = uuid.uuid4()
    event7 = _event(_EVENT_TYPE, MockEventData("event7"), other_aggregate_id, 1)
    store.save([event7], 0)
    saved.append(event7)

    with _expect_error(AggregateNotFoundError, "loading a missing aggregate"):
        store.load(uuid.uuid4())

    _check_loaded(
        store.load(aggregate_id), [event1, event2, event3, event4, event5, event6]
    )
    _check_loaded(store.load(other_aggregate_id), [event7])

    return saved


def _check_snapshot(loaded: Snapshot | None, expected: Snapshot) -> None:
    if loaded is None:
        raise AssertionError("the snapshot should be loaded")
    if loaded.version != expected.version:
        raise AssertionError(
            f"incorrect snapshot version: {loaded.version} (should be {expected.version})"
        )
    if loaded.aggregate_type != expected.aggregate_type:
        raise AssertionError(
            f"incorrect snapshot aggregate type: {loaded.aggregate_type!r}"
            f" (should be {expected.aggregate_type!r})"
        )
    if loaded.state != expected.state:
        raise AssertionError(
            f"incorrect snapshot state: {loaded.state!r} (should be {expected.state!r})"
        )


def snapshot_acceptance_test(store: Any) -> None:
    """Check snapshot saving and loading, if the store supports snapshots."""
    if not (
        callable(getattr(store, "save_snapshot", None))
        and callable(getattr(store, "load_snapshot", None))
    ):
        return

    aggregate_id = uuid.uuid4()

    with _expect_error(EventStoreError, "saving an empty snapshot"):
        store.save_snapshot(aggregate_id, Snapshot())

    with _expect_error(EventStoreError, "saving a snapshot without state"):
        store.save_snapshot(
            aggregate_id, Snapshot(aggregate_type=_SNAPSHOT_AGGREGATE_TYPE)
        )

    register_snapshot_data(_SNAPSHOT_AGGREGATE_TYPE, lambda _id: _SnapshotTestData())

    snapshot = Snapshot(
        version=1,
        aggregate_type=_SNAPSHOT_AGGREGATE_TYPE,
        timestamp=datetime.now(timezone.utc),
        state=_SnapshotTestData("this is incredible data"),
    )
    store.save_snapshot(aggregate_id, snapshot)

    if store.load_snapshot(uuid.uuid4()) is not None:
        raise AssertionError("snapshot should be None, it does not exist")

    _check_snapshot(store.load_snapshot(aggregate_id), snapshot)

    snapshot = Snapshot(
        version=snapshot.version + 1,
        aggregate_type=_SNAPSHOT_AGGREGATE_TYPE,
        timestamp=datetime.now(timezone.utc),
        state=_SnapshotTestData("this is new incredible data"),
    )
    store.save_snapshot(aggregate_id, snapshot)

    _check_snapshot(store.load_snapshot(aggregate_id), snapshot)


def _check_renamed(loaded: Sequence[Event], expected: Event) -> None:
    if len(loaded) != 1:
        raise AssertionError("there should be one event")
    differences = compare_events(loaded[0], expected, ignore_position_metadata=True)
    if differences:
        raise AssertionError(f"the event was incorrect: {'; '.join(differences)}")


def maintenance_acceptance_test(store: Any, maintenance: Any) -> None:
    """Check the replacing and renaming of stored events."""
    aggregate_id = uuid.uuid4()
    event1, event2, event3 = (
        _event(_EVENT_TYPE, MockEventData("event1"), aggregate_id, version)
        for version in (1, 2, 3)
    )
    store.save([event1, event2, event3], 0)

    without_aggregate = _event(_EVENT_TYPE, MockEventData("event"), uuid.uuid4(), 1)
    with _expect_error(
        AggregateNotFoundError, "replacing in a missing aggregate", store_error=False
    ):
        maintenance.replace(without_aggregate)

    invalid_version = _event(_EVENT_TYPE, MockEventData("event20"), aggregate_id, 20)
    with _expect_error(EventNotFoundError, "replacing a missing event version"):
        maintenance.replace(invalid_version)

    event2_mod = _event(_EVENT_TYPE, MockEventData("event2_mod"), aggregate_id, 2)
    maintenance.replace(event2_mod)

    _check_loaded(store.load(aggregate_id), [event1, event2_mod, event3])

    old_event_type = "old_event_type"
    first_id = uuid.uuid4()
    store.save([_event(old_event_type, None, first_id, 1)], 0)
    second_id = uuid.uuid4()
    store.save([_event(old_event_type, None, second_id, 1)], 0)

    new_event_type = "new_event_type"
    maintenance.rename_event(old_event_type, new_event_type)

    _check_renamed(store.load(first_id), _event(new_event_type, None, first_id, 1))
    _check_renamed(store.load(second_id), _event(new_event_type, None, second_id, 1))


def benchmark(store: Any, iterations: int) -> float:
    """Save and reload one event at a time; return the elapsed seconds."""
    if iterations < 0:
        raise ValueError("iterations must not be negative")
    aggregate_id = uuid.uuid4()
    start = time.perf_counter()
    for version in range(iterations):
        event = Event(
            _EVENT_TYPE,
            MockEventData("event1"),
            datetime.now(timezone.utc),
            _AGGREGATE_TYPE,
            aggregate_id,
            version + 1,
        )
        store.save([event], version)
        store.load(aggregate_id)
    return time.perf_counter() - start