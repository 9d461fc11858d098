"""In-memory event log backing the audit trail.

The log is a plain emitter subscriber:

    log = EventLog(correlation_id=period.correlation_id)
    emitter.on_correlation(period.correlation_id, log)

It keeps events in emission order and supports filtering by category,
type and correlation id. Nothing is persisted; the cycle is single-session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator
from uuid import UUID

from payroll_cycle.events.types import DomainEvent, EventCategory


@dataclass(frozen=True)
class StoredEvent:
    """A recorded event in serialized form."""

    event_id: UUID
    event_type: str
    category: str
    correlation_id: UUID
    actor_id: str | None
    timestamp: datetime
    payload: dict[str, Any]
    version: int

    @classmethod
    def from_event(cls, event: DomainEvent) -> StoredEvent:
        """Create stored event from domain event."""
        return cls(
            event_id=event.metadata.event_id,
            event_type=event.event_type,
            category=event.category.value,
            correlation_id=event.metadata.correlation_id,
            actor_id=event.metadata.actor_id,
            timestamp=event.metadata.timestamp,
            payload=event.to_dict(),
            version=event.metadata.version,
        )


class EventLog:
    """Append-only, in-memory record of emitted events.

    Appends are idempotent on event_id. A log bound to a correlation id
    ignores events from other periods or batches sharing the same emitter.
    """

    def __init__(self, correlation_id: UUID | None = None) -> None:
        self.correlation_id = correlation_id
        self._events: list[DomainEvent] = []
        self._seen: set[UUID] = set()

    def __call__(self, event: DomainEvent) -> None:
        if self.correlation_id is not None and event.metadata.correlation_id != self.correlation_id:
            return
        self.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[DomainEvent]:
        return iter(list(self._events))

    def append(self, event: DomainEvent) -> bool:
        """Append event. Returns False if it was already recorded."""
        event_id = event.metadata.event_id
        if event_id in self._seen:
            return False
        self._seen.add(event_id)
        self._events.append(event)
        return True

    def query(
        self,
        *,
        category: EventCategory | None = None,
        event_types: list[str] | None = None,
        correlation_id: UUID | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[DomainEvent]:
        """Filter recorded events, oldest first."""
        results: list[DomainEvent] = []
        for event in self._events:
            if category is not None and event.category != category:
                continue
            if event_types and event.event_type not in event_types:
                continue
            if correlation_id is not None and event.metadata.correlation_id != correlation_id:
                continue
            if since is not None and event.metadata.timestamp < since:
                continue
            results.append(event)
            if limit is not None and len(results) >= limit:
                break
        return results

    def types(self) -> list[str]:
        """Event type names in emission order."""
        return [event.event_type for event in self._events]

    def export(self) -> list[StoredEvent]:
        """Serialized copy of every recorded event."""
        return [StoredEvent.from_event(event) for event in self._events]
