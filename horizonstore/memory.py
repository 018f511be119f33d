"""An event store that keeps every event in memory."""

from __future__ import annotations

import copy
import dataclasses
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

from horizonstore.errors import (
    AggregateNotFoundError,
    EventConflictFromOtherSaveError,
    EventHandlerError,
    EventNotFoundError,
    EventStoreError,
    EventStoreOp,
    IncorrectEventVersionError,
    MismatchedEventAggregateIDsError,
    MismatchedEventAggregateTypesError,
    MissingEventsError,
)
from horizonstore.event import Event, EventHandler, create_event_data


@dataclass
class _AggregateRecord:
    aggregate_id: uuid.UUID | None
    version: int
    events: list[Event] = field(default_factory=list)


def _copy_data(event: Event) -> Any:
    fresh = create_event_data(event.event_type)
    try:
        vars(fresh).update(copy.deepcopy(vars(event.data)))
    except TypeError:
        return copy.deepcopy(event.data)
    return fresh


def _copy_event(event: Event) -> Event:
    """Duplicate an event, with fresh data of its registered type."""
    data = None if event.data is None else _copy_data(event)
    return dataclasses.replace(event, data=data, metadata=dict(event.metadata))


class MemoryEventStore:
    """An event store that is not persisted; useful for tests and experiments."""

    def __init__(self, event_handler: EventHandler | None = None) -> None:
        self._db: dict[uuid.UUID | None, _AggregateRecord] = {}
        self._lock = threading.RLock()
        self._event_handler = event_handler

    def save(self, events: Sequence[Event], original_version: int) -> None:
        """Append events to their aggregate, then pass them to the event handler."""
        events = list(events)
        self._save(events, original_version)

        if self._event_handler is not None:
            for event in events:
                try:
                    self._event_handler.handle_event(event)
                except Exception as exc:
                    raise EventHandlerError(exc, event) from exc

    def _save(self, events: list[Event], original_version: int) -> None:
        with self._lock:
            if not events:
                raise MissingEventsError(op=EventStoreOp.SAVE)

            aggregate_id = events[0].aggregate_id
            aggregate_type = events[0].aggregate_type
            context = dict(
                op=EventStoreOp.SAVE,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                aggregate_version=original_version,
                events=events,
            )

            stored: list[Event] = []
            for offset, event in enumerate(events, start=1):
                if event.aggregate_id != aggregate_id:
                    raise MismatchedEventAggregateIDsError(**context)
                if event.aggregate_type != aggregate_type:
                    raise MismatchedEventAggregateTypesError(**context)
                if event.version != original_version + offset:
                    raise IncorrectEventVersionError(**context)
                try:
                    stored.append(_copy_event(event))
                except Exception as exc:
                    raise EventStoreError("could not copy event", err=exc, **context) from exc

            if original_version == 0:
                self._db[aggregate_id] = _AggregateRecord(
                    aggregate_id, len(stored), stored
                )
                return

            aggregate = self._db.get(aggregate_id)
            if aggregate is None:
                return
            if aggregate.version != original_version:
                raise EventConflictFromOtherSaveError(**context)
            aggregate.version += len(stored)
            aggregate.events.extend(stored)

    def load(self, aggregate_id: uuid.UUID) -> list[Event]:
        """Load all events of an aggregate."""
        return self.load_from(aggregate_id, 1)

    def load_from(self, aggregate_id: uuid.UUID, version: int) -> list[Event]:
        """Load the events of an aggregate from a version onwards."""
        with self._lock:
            aggregate = self._db.get(aggregate_id)
            if aggregate is None:
                raise AggregateNotFoundError(
                    op=EventStoreOp.LOAD, aggregate_id=aggregate_id
                )
            loaded: list[Event] = []
            for event in aggregate.events:
                if event.version < version:
                    continue
                try:
                    loaded.append(_copy_event(event))
                except Exception as exc:
                    raise EventStoreError(
                        "could not copy event",
                        err=exc,
                        op=EventStoreOp.LOAD,
                        aggregate_type=event.aggregate_type,
                        aggregate_id=aggregate_id,
                        aggregate_version=event.version,
                        events=loaded,
                    ) from exc
            return loaded

    def replace(self, event: Event) -> None:
        """Replace the stored event that has the same aggregate and version."""
        aggregate_id = event.aggregate_id
        context = dict(
            op=EventStoreOp.REPLACE, aggregate_id=aggregate_id, events=[event]
        )
        with self._lock:
            aggregate = self._db.get(aggregate_id)
            if aggregate is None:
                raise AggregateNotFoundError(**context)

            try:
                stored = _copy_event(event)
            except Exception as exc:
                raise EventStoreError("could not copy event", err=exc, **context) from exc

            index = next(
                (
                    position
                    for position, existing in enumerate(aggregate.events)
                    if existing.version == event.version
                ),
                None,
            )
            if index is None:
                raise EventNotFoundError(**context)
            aggregate.events[index] = stored

    def rename_event(self, from_type: str, to_type: str) -> None:
        """Change the type of every stored event of one type to another."""
        with self._lock:
            for aggregate in self._db.values():
                aggregate.events = [
                    dataclasses.replace(event, event_type=to_type)
                    if event.event_type == from_type
                    else event
                    for event in aggregate.events
                ]

    def close(self) -> None:
        """Release the store; nothing to do for memory."""