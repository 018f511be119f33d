"""Exceptions raised by event stores and the handlers they call."""

from __future__ import annotations

import enum
import uuid
from typing import Any, Iterable


class EventStoreOp(str, enum.Enum):
    """The event store operation during which an error happened."""

    SAVE = "save"
    LOAD = "load"
    REPLACE = "replace"
    RENAME = "rename"
    LOAD_SNAPSHOT = "load_snapshot"
    SAVE_SNAPSHOT = "save_snapshot"

    def __str__(self) -> str:
        return self.value


class EventStoreError(Exception):
    """An error from an event store, with the context it happened in."""

    default_message = "event store error"

    def __init__(
        self,
        message: str | None = None,
        *,
        err: BaseException | None = None,
        op: EventStoreOp | None = None,
        aggregate_type: str = "",
        aggregate_id: uuid.UUID | None = None,
        aggregate_version: int = 0,
        events: Iterable[Any] = (),
    ) -> None:
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)
        self.err = err
        self.op = op
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        self.aggregate_version = aggregate_version
        self.events = list(events)
        if err is not None:
            self.__cause__ = err

    def __str__(self) -> str:
        text = self.message
        if self.err is not None:
            text = f"{text}: {self.err}"
        if self.op is not None:
            text = f"{self.op.value}: {text}"
        if self.aggregate_id is not None:
            text += (
                f" ({self.aggregate_type} {self.aggregate_id},"
                f" v{self.aggregate_version})"
            )
        return f"event store: {text}"

    def matches(self, kind: type[BaseException] | tuple[type[BaseException], ...]) -> bool:
        """Tell whether this error, or any error it wraps, is of ``kind``."""
        seen: set[int] = set()
        exc: BaseException | None = self
        while exc is not None and id(exc) not in seen:
            if isinstance(exc, kind):
                return True
            seen.add(id(exc))
            exc = exc.__cause__
        return False


class EventHandlerError(Exception):
    """An error from an event handler called while saving an event."""

    def __init__(self, err: BaseException, event: Any) -> None:
        super().__init__(str(err))
        self.err = err
        self.event = event
        self.__cause__ = err

    def __str__(self) -> str:
        event_type = getattr(self.event, "event_type", "")
        return f"could not handle event ({event_type}): {self.err}"


class MissingEventsError(EventStoreError):
    """A save was attempted without any events."""

    default_message = "missing events"


class MismatchedEventAggregateIDsError(EventStoreError):
    """Events saved together belong to different aggregates."""

    default_message = "mismatched event aggregate IDs"


class MismatchedEventAggregateTypesError(EventStoreError):
    """Events saved together have different aggregate types."""

    default_message = "mismatched event aggregate types"


class IncorrectEventVersionError(EventStoreError):
    """An event does not follow the version it is saved after."""

    default_message = "mismatching event version"


class EventConflictFromOtherSaveError(EventStoreError):
    """The aggregate was changed by another save since it was loaded."""

    default_message = "event conflict from other save"


class AggregateNotFoundError(EventStoreError):
    """No events are stored for the aggregate."""

    default_message = "aggregate not found"


class EventNotFoundError(EventStoreError):
    """No event with the requested version is stored."""

    default_message = "event not found"


class EventDataNotRegisteredError(LookupError):
    """No data factory is registered for the requested type."""