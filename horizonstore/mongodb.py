"""An event store keeping one MongoDB document per aggregate, holding its events."""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Sequence

import bson
from bson.binary import Binary, UuidRepresentation
from bson.codec_options import CodecOptions
from pymongo import MongoClient
from pymongo.errors import PyMongoError

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

_CODEC_OPTIONS = CodecOptions(
    tz_aware=True, uuid_representation=UuidRepresentation.STANDARD
)


def _encode_uuid(value: uuid.UUID | None) -> Any:
    return None if value is None else Binary.from_uuid(value)


def _decode_uuid(value: Any) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    if isinstance(value, Binary):
        return value.as_uuid()
    return uuid.UUID(str(value))


def _marshal(data: Any) -> dict[str, Any]:
    """Turn event data into a BSON-encodable document."""
    if isinstance(data, Mapping):
        document = dict(data)
    elif dataclasses.is_dataclass(data) and not isinstance(data, type):
        document = dataclasses.asdict(data)
    elif hasattr(data, "__dict__"):
        document = dict(vars(data))
    else:
        raise TypeError(f"cannot marshal event data of type {type(data).__name__}")
    bson.encode(document, codec_options=_CODEC_OPTIONS)
    return document


def _unmarshal(raw: Mapping[str, Any], target: Any) -> Any:
    """Fill freshly created event data from a stored document."""
    if isinstance(target, dict):
        target.update(raw)
        return target
    if dataclasses.is_dataclass(target) and not isinstance(target, type):
        names = {f.name for f in dataclasses.fields(target) if f.init}
        return dataclasses.replace(
            target, **{key: value for key, value in raw.items() if key in names}
        )
    for key, value in raw.items():
        setattr(target, key, value)
    return target


def _to_record(event: Event) -> dict[str, Any]:
    """Build the stored form of an event."""
    record: dict[str, Any] = {
        "event_type": event.event_type,
        "timestamp": event.timestamp,
        "aggregate_type": event.aggregate_type,
        "_id": _encode_uuid(event.aggregate_id),
        "version": event.version,
        "metadata": dict(event.metadata),
    }
    if event.data is not None:
        record["data"] = _marshal(event.data)
    return record


class MongoEventStore:
    """An event store using one MongoDB collection, one document per aggregate."""

    def __init__(
        self,
        client: Any,
        db_name: str,
        event_handler: EventHandler | None = None,
        event_handler_in_tx: EventHandler | None = None,
        collection_name: str = "events",
        owns_client: bool = False,
    ) -> None:
        if client is None:
            raise ValueError("missing DB client")
        if event_handler is not None and event_handler_in_tx is not None:
            raise ValueError(
                "error while applying option: another event handler is already set"
            )
        if not collection_name:
            raise ValueError("error while applying option: missing collection name")

        self._client = client
        self._owns_client = owns_client
        self._db = client[db_name]
        self._aggregates = self._db[collection_name]
        self._event_handler_after_save = event_handler
        self._event_handler_in_tx = event_handler_in_tx

        try:
            client.admin.command("ping")
        except PyMongoError as exc:
            raise ConnectionError(f"could not connect to MongoDB: {exc}") from exc

    @classmethod
    def from_uri(cls, uri: str, db_name: str, **kwargs: Any) -> "MongoEventStore":
        """Connect to MongoDB at ``uri`` and create a store owning the client."""
        kwargs.pop("owns_client", None)
        try:
            client = MongoClient(
                uri,
                w="majority",
                readConcernLevel="majority",
                readPreference="primary",
                uuidRepresentation="standard",
                tz_aware=True,
            )
        except PyMongoError as exc:
            raise ConnectionError(f"could not connect to DB: {exc}") from exc
        try:
            return cls(client, db_name, owns_client=True, **kwargs)
        except Exception:
            client.close()
            raise

    def save(self, events: Sequence[Event], original_version: int) -> None:
        """Append events to their aggregate and pass them to the event handlers."""
        events = list(events)
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

        records: list[dict[str, Any]] = []
        for offset, event in enumerate(events, start=1):
            if event.aggregate_id != aggregate_id:
                raise MismatchedEventAggregateIDsError(**context)
            if event.aggregate_type != aggregate_type:
                raise MismatchedEventAggregateTypesError(**context)
            if event.version != original_version + offset:
                raise IncorrectEventVersionError(**context)
            try:
                records.append(_to_record(event))
            except Exception as exc:
                raise EventStoreError("could not copy event", err=exc, **context) from exc

        if self._event_handler_in_tx is not None:
            handler = self._event_handler_in_tx

            def transaction(session: Any) -> None:
                self._write(aggregate_id, records, original_version, context, session)
                for event in events:
                    try:
                        handler.handle_event(event)
                    except Exception as exc:
                        raise EventStoreError(
                            "could not handle event in transaction", err=exc, **context
                        ) from exc

            try:
                session = self._client.start_session()
            except PyMongoError as exc:
                raise EventStoreError(
                    "could not start transaction", err=exc, **context
                ) from exc
            try:
                with session:
                    session.with_transaction(transaction)
            except PyMongoError as exc:
                raise EventStoreError("could not save events", err=exc, **context) from exc
        else:
            self._write(aggregate_id, records, original_version, context, None)

        if self._event_handler_after_save is not None:
            for event in events:
                try:
                    self._event_handler_after_save.handle_event(event)
                except Exception as exc:
                    raise EventHandlerError(exc, event) from exc

    def _write(
        self,
        aggregate_id: uuid.UUID | None,
        records: list[dict[str, Any]],
        original_version: int,
        context: dict[str, Any],
        session: Any,
    ) -> None:
        key = _encode_uuid(aggregate_id)
        if original_version == 0:
            try:
                self._aggregates.insert_one(
                    {"_id": key, "version": len(records), "events": records},
                    session=session,
                )
            except PyMongoError as exc:
                raise EventStoreError(
                    "could not insert events (new)", err=exc, **context
                ) from exc
            return

        # Only append if the aggregate is unchanged since it was loaded.
        try:
            result = self._aggregates.update_one(
                {"_id": key, "version": original_version},
                {
                    "$push": {"events": {"$each": records}},
                    "$inc": {"version": len(records)},
                },
                session=session,
            )
        except PyMongoError as exc:
            raise EventStoreError(
                "could not insert events (update)", err=exc, **context
            ) from exc
        if result.matched_count == 0:
            raise EventConflictFromOtherSaveError(**context)

    def load(self, aggregate_id: uuid.UUID) -> list[Event]:
        """Load all events of an aggregate."""
        return self.load_from(aggregate_id, 1)

    def load_from(self, aggregate_id: uuid.UUID, version: int) -> list[Event]:
        """Load the events of an aggregate from a version onwards."""
        try:
            document = self._aggregates.find_one({"_id": _encode_uuid(aggregate_id)})
        except PyMongoError as exc:
            raise EventStoreError(
                "could not load aggregate",
                err=exc,
                op=EventStoreOp.LOAD,
                aggregate_id=aggregate_id,
            ) from exc
        if document is None:
            raise AggregateNotFoundError(op=EventStoreOp.LOAD, aggregate_id=aggregate_id)

        loaded: list[Event] = []
        for record in document.get("events", []):
            if record["version"] < version:
                continue
            loaded.append(self._from_record(aggregate_id, record, loaded))
        return loaded

    @staticmethod
    def _from_record(
        aggregate_id: uuid.UUID, record: Mapping[str, Any], loaded: list[Event]
    ) -> Event:
        event_type = record["event_type"]
        context = dict(
            op=EventStoreOp.LOAD,
            aggregate_type=record.get("aggregate_type", ""),
            aggregate_id=aggregate_id,
            aggregate_version=record["version"],
            events=loaded,
        )
        data = None
        raw = record.get("data")
        if raw is not None:
            try:
                data = create_event_data(event_type)
            except Exception as exc:
                raise EventStoreError(
                    "could not create event data", err=exc, **context
                ) from exc
            try:
                data = _unmarshal(raw, data)
            except Exception as exc:
                raise EventStoreError(
                    "could not unmarshal event data", err=exc, **context
                ) from exc

        timestamp = record.get("timestamp")
        if isinstance(timestamp, datetime) and timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return Event(
            event_type,
            data,
            timestamp,
            record.get("aggregate_type", ""),
            _decode_uuid(record.get("_id")),
            record["version"],
            record.get("metadata") or {},
        )

    def replace(self, event: Event) -> None:
        """Replace the stored event that has the same aggregate and version."""
        aggregate_id = event.aggregate_id
        key = _encode_uuid(aggregate_id)
        context = dict(
            op=EventStoreOp.REPLACE,
            aggregate_type=event.aggregate_type,
            aggregate_id=aggregate_id,
            aggregate_version=event.version,
            events=[event],
        )

        # A missed update could mean a missing aggregate or a missing event.
        try:
            count = self._aggregates.count_documents({"_id": key})
        except PyMongoError as exc:
            raise EventStoreError(
                "could not check aggregate existence", err=exc, **context
            ) from exc
        if count == 0:
            raise AggregateNotFoundError(**context)

        try:
            record = _to_record(event)
        except Exception as exc:
            raise EventStoreError(
                "could not marshal event data", err=exc, **context
            ) from exc

        try:
            result = self._aggregates.update_one(
                {"_id": key, "events.version": event.version},
                {"$set": {"events.$": record}},
            )
        except PyMongoError as exc:
            raise EventStoreError("could not replace event", err=exc, **context) from exc
        if result.matched_count == 0:
            raise EventNotFoundError(**context)

    def rename_event(self, from_type: str, to_type: str) -> None:
        """Change the type of stored events of one type to another."""
        try:
            self._aggregates.update_many(
                {"events.event_type": from_type},
                {"$set": {"events.$.event_type": to_type}},
            )
        except PyMongoError as exc:
            raise EventStoreError(
                f"could not update events of type '{from_type}'",
                err=exc,
                op=EventStoreOp.RENAME,
            ) from exc

    def clear(self) -> None:
        """Remove every stored aggregate."""
        try:
            self._aggregates.drop()
        except PyMongoError as exc:
            raise EventStoreError(
                "could not clear events", err=exc, op=EventStoreOp.RENAME
            ) from exc

    def close(self) -> None:
        """Close the client, unless it was handed in from outside."""
        if self._owns_client:
            self._client.close()