"""An event store wrapper that records the events saved through it."""

from __future__ import annotations

import enum
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Sequence

from horizonstore.event import Event


class RecordStatus(enum.Enum):
    """The status of a recorded event."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class EventRecord:
    """A recorded event with the outcome of its save."""

    event: Event
    status: RecordStatus = RecordStatus.PENDING
    err: BaseException | None = None


class RecordingEventStore:
    """Wraps an event store and records saved events while recording is on."""

    def __init__(self, store: Any) -> None:
        if store is None:
            raise ValueError("missing event store")
        self._store = store
        self._recording = False
        self._records: list[EventRecord] = []
        self._lock = threading.RLock()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._store, name)

    def save(self, events: Sequence[Event], original_version: int) -> None:
        """Save through the wrapped store, recording the events if recording."""
        with self._lock:
            recording = self._recording
        if not recording:
            self._store.save(events, original_version)
            return

        # Record before saving to keep the order of events saved by handlers.
        records = [EventRecord(event) for event in events]
        with self._lock:
            self._records.extend(records)

        try:
            self._store.save(events, original_version)
        except Exception as exc:
            with self._lock:
                for record in records:
                    record.status = RecordStatus.FAILED
                    record.err = exc
            raise

        with self._lock:
            for record in records:
                record.status = RecordStatus.SUCCEEDED

    def load(self, aggregate_id: uuid.UUID) -> list[Event]:
        """Load the events of an aggregate from the wrapped store."""
        return self._store.load(aggregate_id)

    def close(self) -> None:
        """Close the wrapped store."""
        self._store.close()

    def start_recording(self) -> None:
        """Start recording saved events."""
        with self._lock:
            self._recording = True

    def stop_recording(self) -> None:
        """Stop recording saved events."""
        with self._lock:
            self._recording = False

    def full_recording(self) -> list[EventRecord]:
        """Every record made while recording, with its status."""
        with self._lock:
            return list(self._records)

    def _events_by_status(self, status: RecordStatus) -> list[Event]:
        with self._lock:
            return [r.event for r in self._records if r.status is status]

    def pending_events(self) -> list[Event]:
        """The recorded events whose save has not finished."""
        return self._events_by_status(RecordStatus.PENDING)

    def successful_events(self) -> list[Event]:
        """The recorded events that were saved."""
        return self._events_by_status(RecordStatus.SUCCEEDED)

    def failed_events(self) -> list[Event]:
        """The recorded events whose save failed."""
        return self._events_by_status(RecordStatus.FAILED)

    def reset_trace(self) -> None:
        """Forget all records."""
        with self._lock:
            self._records = []