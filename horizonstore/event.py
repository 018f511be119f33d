"""Events, snapshots, handlers and the registries of their data types."""

from __future__ import annotations

import abc
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from horizonstore.errors import EventDataNotRegisteredError


@dataclass(frozen=True)
class Event:
    """Something that happened to an aggregate."""

    event_type: str
    data: Any
    timestamp: datetime
    aggregate_type: str = ""
    aggregate_id: uuid.UUID | None = None
    version: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", dict(self.metadata or {}))

    def __str__(self) -> str:
        return f"{self.event_type}@{self.version}"


@dataclass
class Snapshot:
    """The state of an aggregate at a version."""

    version: int = 0
    aggregate_type: str = ""
    timestamp: datetime | None = None
    state: Any = None


class EventHandler(abc.ABC):
    """Something that handles events, such as an event bus or an outbox."""

    @abc.abstractmethod
    def handle_event(self, event: Event) -> None:
        """Handle one event; raise to signal failure."""


_registry_lock = threading.Lock()
_event_data_factories: dict[str, Callable[[], Any]] = {}
_snapshot_data_factories: dict[str, Callable[[uuid.UUID], Any]] = {}


def register_event_data(event_type: str, factory: Callable[[], Any]) -> None:
    """Register the factory that creates empty data for an event type."""
    if not event_type:
        raise ValueError("attempt to register empty event type")
    with _registry_lock:
        if event_type in _event_data_factories:
            raise ValueError(f"registering duplicate types for {event_type!r}")
        _event_data_factories[event_type] = factory


def unregister_event_data(event_type: str) -> None:
    """Remove the data factory of an event type."""
    if not event_type:
        raise ValueError("attempt to unregister empty event type")
    with _registry_lock:
        if event_type not in _event_data_factories:
            raise ValueError(f"unregister of non-registered type {event_type!r}")
        del _event_data_factories[event_type]


def create_event_data(event_type: str) -> Any:
    """Create empty data for an event type."""
    with _registry_lock:
        factory = _event_data_factories.get(event_type)
    if factory is None:
        raise EventDataNotRegisteredError(
            f"event data not registered for {event_type!r}"
        )
    return factory()


def register_snapshot_data(
    aggregate_type: str, factory: Callable[[uuid.UUID], Any]
) -> None:
    """Register the factory that creates empty snapshot state for an aggregate type."""
    if not aggregate_type:
        raise ValueError("attempt to register empty aggregate type")
    with _registry_lock:
        _snapshot_data_factories[aggregate_type] = factory


def create_snapshot_data(aggregate_id: uuid.UUID, aggregate_type: str) -> Any:
    """Create empty snapshot state for an aggregate."""
    with _registry_lock:
        factory = _snapshot_data_factories.get(aggregate_type)
    if factory is None:
        raise EventDataNotRegisteredError(
            f"snapshot data not registered for {aggregate_type!r}"
        )
    return factory(aggregate_id)


def compare_events(
    first: Event,
    second: Event,
    ignore_version: bool = False,
    ignore_position_metadata: bool = False,
) -> list[str]:
    """List the differences between two events; empty when they are equal."""
    differences = []
    for name in ("event_type", "data", "timestamp", "aggregate_type", "aggregate_id"):
        ours, theirs = getattr(first, name), getattr(second, name)
        if ours != theirs:
            differences.append(f"incorrect {name}: {ours!r} (should be {theirs!r})")
    if not ignore_version and first.version != second.version:
        differences.append(
            f"incorrect version: {first.version} (should be {second.version})"
        )
    ours_meta, theirs_meta = dict(first.metadata), dict(second.metadata)
    if ignore_position_metadata:
        ours_meta.pop("position", None)
        theirs_meta.pop("position", None)
    if ours_meta != theirs_meta:
        differences.append(
            f"incorrect metadata: {ours_meta!r} (should be {theirs_meta!r})"
        )
    return differences