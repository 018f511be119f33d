# horizonstore

Event stores for event-sourced applications. An event store keeps the ordered
stream of events for each aggregate. It rejects writes that would break that
order, and it hands saved events on to an optional event handler, such as an
event bus.

Backends:

- `MemoryEventStore` (`horizonstore.memory`) keeps everything in process
  memory. It is meant for tests and experiments.
- `RecordingEventStore` (`horizonstore.recorder`) wraps any other store. While
  recording is on, it records every event saved through it, together with
  whether the save succeeded.
- `MongoEventStore` (`horizonstore.mongodb`) stores one MongoDB document per
  aggregate, with the events held inside it.

## Installation

```
pip install horizonstore
```

`MongoEventStore` uses `pymongo`.

## Events

An `Event` (`horizonstore.event`) is a frozen dataclass. It holds:

- an event type
- optional data
- a timestamp
- the aggregate type, id and version it belongs to
- a metadata dict

Event data types are registered by event type. A store uses the registration
to build a fresh data object whenever it copies or loads an event that carries
data:

```python
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from horizonstore.event import Event, register_event_data


@dataclass
class ItemAdded:
    name: str = ""


register_event_data("ItemAdded", ItemAdded)

cart_id = uuid.uuid4()
event = Event(
    event_type="ItemAdded",
    data=ItemAdded(name="book"),
    timestamp=datetime.now(timezone.utc),
    aggregate_type="Cart",
    aggregate_id=cart_id,
    version=1,
)
```

Registering the same event type twice raises `ValueError`. To remove a
registration, call `unregister_event_data`. When no factory is registered for
a type, `create_event_data` raises `EventDataNotRegisteredError`.

Snapshot state types are registered per aggregate type with
`register_snapshot_data(aggregate_type, factory)`. The factory receives the
aggregate id. `create_snapshot_data(aggregate_id, aggregate_type)` calls the
registered factory.

`compare_events(first, second, ignore_version=False, ignore_position_metadata=False)`
returns a list of readable differences between two events. The list is empty
when the events match.

## Saving and loading

`save(events, original_version)` appends events to one aggregate. The rules:

- The first event must have version `original_version + 1`, and each
  following event the next number.
- All events in one call must belong to the same aggregate id and type.
- Saving with `original_version` 0 starts the aggregate's stream.

```python
from horizonstore.memory import MemoryEventStore

store = MemoryEventStore()
store.save([event], 0)

events = store.load(cart_id)        # every event, in version order
later = store.load_from(cart_id, 2) # events from version 2 on
store.close()
```

Failures are raised as `EventStoreError` from `horizonstore.errors`. The
specific subclass gives the cause:

- `MissingEventsError`
- `MismatchedEventAggregateIDsError`
- `MismatchedEventAggregateTypesError`
- `IncorrectEventVersionError`
- `EventConflictFromOtherSaveError`
- `AggregateNotFoundError`
- `EventNotFoundError`

Each error carries `op` (an `EventStoreOp`), `aggregate_type`,
`aggregate_id`, `aggregate_version` and `events`. It also carries `err` when
it wraps another exception. `matches(kind)` tells whether the error, or any
error in its chain of causes, is of the given kind.

If the event handler fails after a save, the store raises `EventHandlerError`,
which holds the failing `event` and the original `err`.

```python
from horizonstore.errors import EventStoreError, IncorrectEventVersionError

try:
    store.save([event], 1)
except EventStoreError as err:
    if err.matches(IncorrectEventVersionError):
        ...
```

## Event handlers

Subclass `EventHandler` and implement `handle_event(event)`. The store calls
it for every saved event, for example to publish events on a bus:

```python
from horizonstore.event import EventHandler
from horizonstore.memory import MemoryEventStore


class Printer(EventHandler):
    def handle_event(self, event):
        print(event.event_type, event.version)


store = MemoryEventStore(event_handler=Printer())
```

`MongoEventStore` also takes `event_handler_in_tx`. That handler runs inside a
MongoDB transaction together with the write, which suits an outbox, and it
needs a server that supports transactions. A store has either an
`event_handler` or an `event_handler_in_tx`, not both. Passing both raises
`ValueError`.

## Maintenance

`MemoryEventStore` and `MongoEventStore` provide:

- `replace(event)` overwrites the stored event with the same aggregate and
  version. It raises `AggregateNotFoundError` or `EventNotFoundError` when
  there is nothing to replace.
- `rename_event(from_type, to_type)` changes the event type of stored events
  of one type.

`MongoEventStore.clear()` drops its collection.

## Recording

```python
from horizonstore.memory import MemoryEventStore
from horizonstore.recorder import RecordingEventStore

store = RecordingEventStore(MemoryEventStore())
store.start_recording()
store.save([event], 0)
store.stop_recording()

store.successful_events()   # events that were saved
store.failed_events()       # events whose save raised
store.pending_events()      # events still being saved
store.full_recording()      # every EventRecord with its status and error
store.reset_trace()
```

`RecordingEventStore(None)` raises `ValueError`. Methods the wrapper does not
define itself, such as `load_from` or `replace`, are passed through to the
wrapped store. Each `EventRecord` has an `event`, a `status` (a
`RecordStatus`: `PENDING`, `SUCCEEDED` or `FAILED`) and `err`.

## MongoDB

```python
from horizonstore.mongodb import MongoEventStore

store = MongoEventStore.from_uri("mongodb://localhost:27017", "app")
```

`from_uri` connects with majority write and read concern and primary read
preference, and the store owns that client. You can also pass a
`pymongo.MongoClient` that you created yourself to the constructor. The store
pings the server when it is created and raises `ConnectionError` if the server
cannot be reached. It does not close a client it was given unless
`owns_client=True` is passed.

Events are kept in the collection named by `collection_name`, which defaults
to `events`. An empty name raises `ValueError`. Event data is stored as a
document, so it must be a mapping, a dataclass or an object with attributes.
On load, the data is rebuilt from the type registered for its event type.

`horizonstore.mongodb_v2_records` holds record types for a layout that stores
one document per event and snapshots separately:

- `StoredEvent` converts between `Event` and a BSON document keyed by a global
  position, with `from_event`, `to_document`, `from_document` and `to_event`.
- `StreamRecord` describes one aggregate's stream.
- `SnapshotRecord` holds a snapshot's raw bytes, with `compress` and
  `decompress` (gzip).
- `snapshot_to_json` and `snapshot_from_json` encode and decode a `Snapshot`.

## What this package does not do

The package has no event store that uses the per-event layout of
`horizonstore.mongodb_v2_records`. None of its stores saves or loads
snapshots: the snapshot records and JSON helpers are building blocks only. The
package provides no command-line tool.

## Checking a custom store

`horizonstore.acceptance` holds the checks that `MemoryEventStore` and
`RecordingEventStore` pass. Each check raises `AssertionError` on the first
failure. Run them against your own implementation:

```python
from horizonstore.acceptance import acceptance_test, maintenance_acceptance_test

saved = acceptance_test(MyStore())
store = MyStore()
maintenance_acceptance_test(store, store)
```

Other helpers in the module:

- `snapshot_acceptance_test(store)` checks `save_snapshot` and
  `load_snapshot`, and returns without checking when the store has neither.
- `benchmark(store, iterations)` runs save-and-load cycles and returns the
  elapsed seconds.

Importing `horizonstore.acceptance` registers the event type `"Event"` with
its `MockEventData`.

## Development

```
pip install -e ".[test]"
pytest
```