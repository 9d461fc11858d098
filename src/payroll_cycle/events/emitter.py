"""Event emitter for publishing domain events.

One emitter is usually shared by every pay period and batch a host keeps
alive (the API registry does this), so subscriptions can be narrowed three
ways:

- by event type (`on`)
- by category (`on_category`)
- by correlation id (`on_correlation`), so a period's or batch's audit log
  only hears its own events

Handler failures are isolated: they are logged, collected and returned,
never raised into the operation that emitted the event. Multi-step
operations can hold their events in a batch that is discarded on error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from uuid import UUID

from payroll_cycle.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class HandlerRegistration:
    """One subscription. An unset filter matches everything."""

    handler: EventHandler
    event_types: frozenset[str] | None = None
    categories: frozenset[EventCategory] | None = None
    correlation_id: UUID | None = None

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.categories is not None and event.category not in self.categories:
            return False
        if self.correlation_id is not None and event.metadata.correlation_id != self.correlation_id:
            return False
        return True


def _as_set(value: Any) -> frozenset:
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(value)
    return frozenset([value])


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()

        emitter.on(PaymentCompleted, update_progress_bar)
        emitter.on_category(EventCategory.APPROVAL, notify_cfo)
        emitter.on_correlation(batch.correlation_id, batch_log)

        emitter.emit(event)

        # All-or-nothing delivery
        with emitter.batch() as batch:
            batch.add(event1)
            batch.add(event2)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._batching = False
        self._batch: list[DomainEvent] = []

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def on(
        self,
        event_type: type[DomainEvent] | Iterable[type[DomainEvent]],
        handler: EventHandler,
    ) -> HandlerRegistration:
        """Register handler for specific event type(s)."""
        types = frozenset(t.__name__ for t in _as_set(event_type))
        return self._register(HandlerRegistration(handler, event_types=types))

    def on_category(
        self,
        category: EventCategory | Iterable[EventCategory],
        handler: EventHandler,
    ) -> HandlerRegistration:
        """Register handler for event category(ies)."""
        return self._register(HandlerRegistration(handler, categories=_as_set(category)))

    def on_correlation(
        self,
        correlation_id: UUID,
        handler: EventHandler,
        *,
        categories: EventCategory | Iterable[EventCategory] | None = None,
    ) -> HandlerRegistration:
        """Register handler for the events of one period or batch."""
        return self._register(HandlerRegistration(
            handler,
            categories=_as_set(categories) if categories is not None else None,
            correlation_id=correlation_id,
        ))

    def on_all(self, handler: EventHandler) -> HandlerRegistration:
        """Register handler for all events."""
        return self._register(HandlerRegistration(handler))

    def off(self, handler: EventHandler | HandlerRegistration) -> int:
        """Unregister a handler, or a single registration. Returns how many were removed."""
        before = len(self._handlers)
        if isinstance(handler, HandlerRegistration):
            self._handlers = [reg for reg in self._handlers if reg is not handler]
        else:
            self._handlers = [reg for reg in self._handlers if reg.handler is not handler]
        return before - len(self._handlers)

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        if self._batching:
            self._batch.append(event)
            return []
        return self._dispatch(event)

    def batch(self) -> EventBatch:
        """Hold events until the context exits, then deliver them together.

        If the block raises, the held events are discarded.
        """
        return EventBatch(self)

    def _register(self, registration: HandlerRegistration) -> HandlerRegistration:
        self._handlers.append(registration)
        return registration

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        for reg in list(self._handlers):
            if not reg.matches(event):
                continue
            try:
                reg.handler(event)
            except Exception as e:
                logger.exception(
                    "Handler %r failed for %s (correlation %s)",
                    reg.handler,
                    event.event_type,
                    event.metadata.correlation_id,
                )
                errors.append(e)
        return errors

    def _start_batch(self) -> None:
        if self._batching:
            raise RuntimeError("Event batches do not nest")
        self._batching = True
        self._batch = []

    def _end_batch(self) -> list[Exception]:
        events = self._batch
        self._batching = False
        self._batch = []

        errors: list[Exception] = []
        for event in events:
            errors.extend(self._dispatch(event))
        return errors

    def _discard_batch(self) -> None:
        if self._batch:
            logger.info("Discarded %d held event(s)", len(self._batch))
        self._batching = False
        self._batch = []


class EventBatch:
    """Context manager returned by EventEmitter.batch()."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._start_batch()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self._errors = self._emitter._end_batch()
        else:
            self._emitter._discard_batch()

    def add(self, event: DomainEvent) -> None:
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Handler errors, available after the context exits."""
        return self._errors
