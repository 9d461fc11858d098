"""Exception engine: per-payee conditions that block a batch.

An exception is active until it is resolved or snoozed. The two flags are
terminal and mutually exclusive. The batch may leave the exceptions stage
only when nothing is active; severity affects display order only.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from typing import Iterable
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    DomainEvent,
    EventMetadata,
    ExceptionOverridden,
    ExceptionRaised,
    ExceptionResolved,
    ExceptionSnoozed,
)
from payroll_cycle.models import ExceptionType, OverrideInfo, PayrollException, Severity
from payroll_cycle.services.config import ExceptionConfig
from payroll_cycle.services.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from payroll_cycle.services.scheduling import Clock, SystemClock

logger = logging.getLogger(__name__)


def _state_of(exc: PayrollException) -> str:
    if exc.resolved:
        return "resolved"
    if exc.snoozed:
        return "snoozed"
    return "active"


class ExceptionEngine:
    """Holds the batch's exceptions and enforces their lifecycle."""

    def __init__(
        self,
        exceptions: Iterable[PayrollException] = (),
        *,
        config: ExceptionConfig | None = None,
        admin_role: str = "admin",
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self._exceptions: list[PayrollException] = []
        for exc in exceptions:
            if exc.resolved and exc.snoozed:
                raise ValueError(f"Exception {exc.id} cannot be both resolved and snoozed")
            if any(existing.id == exc.id for existing in self._exceptions):
                raise ValueError(f"Duplicate exception id {exc.id}")
            self._exceptions.append(exc)
        self._config = config or ExceptionConfig()
        self._admin_role = admin_role
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._seq = itertools.count(1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def exceptions(self) -> tuple[PayrollException, ...]:
        return tuple(self._exceptions)

    def get(self, exception_id: str) -> PayrollException:
        return self._exceptions[self._index(exception_id)]

    def active(self) -> list[PayrollException]:
        return [e for e in self._exceptions if e.active]

    def snoozed(self) -> list[PayrollException]:
        return [e for e in self._exceptions if e.snoozed]

    def resolved(self) -> list[PayrollException]:
        return [e for e in self._exceptions if e.resolved]

    def sorted_active(self) -> list[PayrollException]:
        """Active exceptions, most severe first. Stable within a severity."""
        return sorted(self.active(), key=lambda e: self._config.rank(e.severity.value))

    def blocking_active(self) -> list[PayrollException]:
        return [e for e in self._exceptions if e.active and e.is_blocking]

    def for_contractor(self, contractor_id: str) -> list[PayrollException]:
        return [e for e in self._exceptions if e.contractor_id == contractor_id]

    @property
    def active_count(self) -> int:
        return len(self.active())

    @property
    def is_clear(self) -> bool:
        """True when nothing blocks the move to approval."""
        return self.active_count == 0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def resolve(self, exception_id: str, *, actor_id: str | None = None) -> PayrollException:
        """Mark an active exception resolved."""
        index = self._require_active(exception_id, "resolve exception")
        updated = replace(self._exceptions[index], resolved=True)
        self._exceptions[index] = updated
        logger.info("Exception %s resolved (%d still active)", exception_id, self.active_count)
        self._emit(ExceptionResolved(
            metadata=self._metadata(actor_id),
            exception_id=exception_id,
            contractor_id=updated.contractor_id,
            remaining_active=self.active_count,
        ))
        return updated

    def snooze(self, exception_id: str, *, actor_id: str | None = None) -> PayrollException:
        """Defer an active exception to the next cycle."""
        index = self._require_active(exception_id, "snooze exception")
        updated = replace(self._exceptions[index], snoozed=True)
        self._exceptions[index] = updated
        logger.info("Exception %s snoozed (%d still active)", exception_id, self.active_count)
        self._emit(ExceptionSnoozed(
            metadata=self._metadata(actor_id),
            exception_id=exception_id,
            contractor_id=updated.contractor_id,
            remaining_active=self.active_count,
        ))
        return updated

    def override(
        self,
        exception_id: str,
        justification: str,
        *,
        actor_role: str,
        actor_id: str | None = None,
    ) -> PayrollException:
        """Resolve a blocking exception on an admin's authority.

        Records who overrode it, when, and the written justification.
        """
        if actor_role != self._admin_role:
            logger.warning("Rejected override of %s by role %s", exception_id, actor_role)
            raise PermissionDeniedError("override exception", actor_role, self._admin_role)
        if not justification or not justification.strip():
            raise ValidationError("A justification is required to override", field="justification")
        index = self._require_active(exception_id, "override exception")

        info = OverrideInfo(
            overridden_by=actor_id or actor_role,
            overridden_at=self._clock.now(),
            justification=justification.strip(),
        )
        updated = replace(self._exceptions[index], resolved=True, override_info=info)
        self._exceptions[index] = updated
        logger.info("Exception %s overridden by %s", exception_id, info.overridden_by)
        self._emit(ExceptionOverridden(
            metadata=self._metadata(actor_id, actor_type="admin"),
            exception_id=exception_id,
            contractor_id=updated.contractor_id,
            overridden_by=info.overridden_by,
            justification=info.justification,
            remaining_active=self.active_count,
        ))
        return updated

    def raise_exception(
        self,
        contractor_id: str,
        exception_type: ExceptionType | str,
        severity: Severity | str,
        *,
        contractor_name: str = "",
        description: str = "",
        is_blocking: bool = True,
    ) -> PayrollException:
        """Record a new active exception for a payee."""
        try:
            exc_type = ExceptionType(exception_type)
            exc_severity = Severity(severity)
        except ValueError as e:
            raise ValidationError(str(e), field="type")

        exception = PayrollException(
            id=self._next_id(),
            contractor_id=contractor_id,
            type=exc_type,
            severity=exc_severity,
            contractor_name=contractor_name,
            description=description,
            is_blocking=is_blocking,
        )
        self._exceptions.append(exception)
        logger.info(
            "Exception %s raised for %s: %s (%s)",
            exception.id,
            contractor_id,
            exc_type.value,
            exc_severity.value,
        )
        self._emit(ExceptionRaised(
            metadata=self._metadata(None),
            exception_id=exception.id,
            contractor_id=contractor_id,
            exception_type=exc_type.value,
            severity=exc_severity.value,
        ))
        return exception

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index(self, exception_id: str) -> int:
        for i, exc in enumerate(self._exceptions):
            if exc.id == exception_id:
                return i
        raise NotFoundError("exception", exception_id)

    def _require_active(self, exception_id: str, operation: str) -> int:
        index = self._index(exception_id)
        exc = self._exceptions[index]
        if not exc.active:
            logger.warning("Rejected %s for %s: already %s", operation, exception_id, _state_of(exc))
            raise InvalidStateError(operation, _state_of(exc), "exception is no longer active")
        return index

    def _next_id(self) -> str:
        taken = {e.id for e in self._exceptions}
        while True:
            candidate = f"exc-{next(self._seq)}"
            if candidate not in taken:
                return candidate

    def _metadata(self, actor_id: str | None, actor_type: str = "admin") -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self._correlation_id,
            actor_id=actor_id,
            actor_type=actor_type if actor_id else "system",
            timestamp=self._clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        if self._emitter:
            self._emitter.emit(event)
