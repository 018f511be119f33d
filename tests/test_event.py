import dataclasses
import uuid
from datetime import datetime, timezone

import pytest

from horizonstore.errors import EventDataNotRegisteredError
from horizonstore.event import (
    Event,
    EventHandler,
    Snapshot,
    compare_events,
    create_event_data,
    create_snapshot_data,
    register_event_data,
    register_snapshot_data,
    unregister_event_data,
)

TIMESTAMP = datetime(2009, 11, 10, 23, 0, tzinfo=timezone.utc)


@dataclasses.dataclass
class Payload:
    content: str = ""


@pytest.fixture
def event_type():
    name = f"type-{uuid.uuid4()}"
    register_event_data(name, Payload)
    yield name
    unregister_event_data(name)


def make_event(**changes):
    base = Event(
        "Event",
        Payload("event1"),
        TIMESTAMP,
        "Aggregate",
        uuid.UUID(int=1),
        1,
        {"meta": "data"},
    )
    return dataclasses.replace(base, **changes)


def test_metadata_is_copied():
    metadata = {"meta": "data"}
    event = Event("Event", None, TIMESTAMP, metadata=metadata)
    metadata["num"] = 42.0
    assert event.metadata == {"meta": "data"}


def test_default_metadata_is_empty_and_separate():
    first = Event("Event", None, TIMESTAMP)
    second = Event("Event", None, TIMESTAMP)
    assert first.metadata == {}
    assert first.metadata is not second.metadata


def test_event_is_frozen():
    event = make_event()
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.version = 2
    assert event.version == 1


def test_compare_equal_events():
    assert compare_events(make_event(), make_event()) == []


@pytest.mark.parametrize(
    "changes",
    [
        {"event_type": "Other"},
        {"data": Payload("event2")},
        {"data": None},
        {"timestamp": datetime(2010, 1, 1, tzinfo=timezone.utc)},
        {"aggregate_type": "OtherAggregate"},
        {"aggregate_id": uuid.UUID(int=2)},
        {"metadata": {}},
    ],
)
def test_compare_finds_difference(changes):
    differences = compare_events(make_event(**changes), make_event())
    assert len(differences) == 1


def test_compare_version():
    assert len(compare_events(make_event(version=3), make_event())) == 1
    assert compare_events(make_event(version=3), make_event(), ignore_version=True) == []


def test_compare_position_metadata():
    positioned = make_event(metadata={"meta": "data", "position": 12})
    assert len(compare_events(positioned, make_event())) == 1
    assert compare_events(positioned, make_event(), ignore_position_metadata=True) == []


def test_create_registered_event_data(event_type):
    first = create_event_data(event_type)
    second = create_event_data(event_type)
    assert first == Payload()
    assert first is not second


def test_duplicate_registration_rejected(event_type):
    with pytest.raises(ValueError):
        register_event_data(event_type, Payload)


def test_empty_registration_rejected():
    with pytest.raises(ValueError):
        register_event_data("", Payload)


def test_unregistered_data_raises():
    name = f"type-{uuid.uuid4()}"
    register_event_data(name, Payload)
    unregister_event_data(name)
    with pytest.raises(EventDataNotRegisteredError):
        create_event_data(name)


def test_unregister_unknown_rejected():
    with pytest.raises(ValueError):
        unregister_event_data(f"type-{uuid.uuid4()}")


def test_snapshot_data_factory_gets_id():
    name = f"agg-{uuid.uuid4()}"
    register_snapshot_data(name, lambda aggregate_id: {"id": aggregate_id})
    aggregate_id = uuid.uuid4()
    assert create_snapshot_data(aggregate_id, name) == {"id": aggregate_id}


def test_snapshot_data_can_be_replaced():
    name = f"agg-{uuid.uuid4()}"
    register_snapshot_data(name, lambda _id: "old")
    register_snapshot_data(name, lambda _id: "new")
    assert create_snapshot_data(uuid.uuid4(), name) == "new"


def test_unknown_snapshot_data_raises():
    with pytest.raises(EventDataNotRegisteredError):
        create_snapshot_data(uuid.uuid4(), f"agg-{uuid.uuid4()}")


def test_snapshot_fields_are_mutable():
    snapshot = Snapshot(version=1, aggregate_type="test")
    snapshot.version += 1
    assert snapshot.version == 2
    assert snapshot.state is None


def test_event_handler_is_abstract():
    with pytest.raises(TypeError):
        EventHandler()


def test_event_handler_subclass_handles():
    class Collector(EventHandler):
        def __init__(self):
            self.events = []

        def handle_event(self, event):
            self.events.append(event)

    collector = Collector()
    event = make_event()
    collector.handle_event(event)
    assert collector.events == [event]