"""Stored forms of events, streams and snapshots for the MongoDB v2 event store."""

from __future__ import annotations

import dataclasses
import gzip
import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from horizonstore.errors import EventStoreError, EventStoreOp
from horizonstore.event import Event, Snapshot, create_event_data
from horizonstore.mongodb import _decode_uuid, _encode_uuid, _marshal, _unmarshal


@dataclass
class SnapshotRecord:
    """A snapshot as stored: its JSON form, optionally gzip compressed."""

    aggregate_id: uuid.UUID | None = None
    raw_data: bytes = b""
    timestamp: datetime | None = None
    version: int = 0
    aggregate_type: str = ""

    def compress(self) -> None:
        """Replace the raw data with its gzip compressed form."""
        self.raw_data = gzip.compress(self.raw_data)

    def decompress(self) -> None:
        """Replace gzip compressed raw data with its uncompressed form."""
        self.raw_data = gzip.decompress(self.raw_data)


@dataclass
class StreamRecord:
    """A stream of events, usually the events of one aggregate."""

    id: uuid.UUID | None
    position: int
    aggregate_type: str
    version: int
    updated_at: datetime | None


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class StoredEvent:
    """An event as stored, keyed by its global position."""

    event_type: str
    timestamp: datetime | None
    aggregate_type: str
    aggregate_id: uuid.UUID | None
    version: int
    position: int = 0
    raw_data: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: Event) -> "StoredEvent":
        """Build the stored form of an event, marshalling its data."""
        raw_data = None
        if event.data is not None:
            try:
                raw_data = _marshal(event.data)
            except Exception as exc:
                raise EventStoreError("could not marshal event data", err=exc) from exc
        return cls(
            event_type=event.event_type,
            timestamp=event.timestamp,
            aggregate_type=event.aggregate_type,
            aggregate_id=event.aggregate_id,
            version=event.version,
            raw_data=raw_data,
            metadata=dict(event.metadata or {}),
        )

    def to_document(self) -> dict[str, Any]:
        """The BSON document for this event."""
        document: dict[str, Any] = {
            "_id": self.position,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": _encode_uuid(self.aggregate_id),
            "version": self.version,
            "metadata": dict(self.metadata),
        }
        if self.raw_data:
            document["data"] = dict(self.raw_data)
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "StoredEvent":
        """Read a stored event from its BSON document."""
        raw = document.get("data")
        return cls(
            event_type=document["event_type"],
            timestamp=_as_utc(document.get("timestamp")),
            aggregate_type=document.get("aggregate_type", ""),
            aggregate_id=_decode_uuid(document.get("aggregate_id")),
            version=document["version"],
            position=document.get("_id", 0),
            raw_data=dict(raw) if raw else None,
            metadata=dict(document.get("metadata") or {}),
        )

    def to_event(self) -> Event:
        """Build the event, creating its data from the registered type."""
        data = None
        if self.raw_data:
            context = dict(
                op=EventStoreOp.LOAD,
                aggregate_type=self.aggregate_type,
                aggregate_id=self.aggregate_id,
                aggregate_version=self.version,
            )
            try:
                data = create_event_data(self.event_type)
            except Exception as exc:
                raise EventStoreError(
                    "could not create event data", err=exc, **context
                ) from exc
            try:
                data = _unmarshal(self.raw_data, data)
            except Exception as exc:
                raise EventStoreError(
                    "could not unmarshal event data", err=exc, **context
                ) from exc
        return Event(
            self.event_type,
            data,
            self.timestamp,
            self.aggregate_type,
            self.aggregate_id,
            self.version,
            dict(self.metadata),
        )


def _plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return dict(value)
    if hasattr(value, "__dict__"):
        return dict(vars(value))
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    plain = _plain(value)
    if plain is value:
        raise TypeError(f"cannot encode {type(value).__name__} as JSON")
    return plain


def snapshot_to_json(snapshot: Snapshot) -> bytes:
    """Encode a snapshot as JSON."""
    document = {
        "version": snapshot.version,
        "aggregate_type": snapshot.aggregate_type,
        "timestamp": snapshot.timestamp.isoformat() if snapshot.timestamp else None,
        "state": _plain(snapshot.state),
    }
    return json.dumps(document, default=_json_default).encode("utf-8")


def snapshot_from_json(raw: bytes | str, state: Any) -> Snapshot:
    """Decode a snapshot from JSON, filling ``state`` with the stored state."""
    document = json.loads(raw)
    if not isinstance(document, dict):
        raise ValueError("snapshot JSON must be an object")
    timestamp = document.get("timestamp")
    stored_state = document.get("state")
    if state is not None and isinstance(stored_state, Mapping):
        stored_state = _unmarshal(stored_state, state)
    elif stored_state is None:
        stored_state = state
    return Snapshot(
        version=document.get("version", 0),
        aggregate_type=document.get("aggregate_type", ""),
        timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        state=stored_state,
    )