"""Approval gate: elevated sign-off for high-cost batches.

Approval is required when the employer cost of employees in the batch
(net pay plus employer taxes) exceeds the configured threshold.
Contractor pay never counts toward it.

Normal timeline: requested → viewed → approved. An approver may decline
from requested or viewed, which resets the timeline. Admin override sets
approved directly and is the only way to skip request and view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    ApprovalDeclined,
    ApprovalOverridden,
    ApprovalRequested,
    ApprovalViewed,
    BatchApproved,
    DomainEvent,
    EventMetadata,
)
from payroll_cycle.models import (
    ApprovalAction,
    ApprovalState,
    ApprovalStatus,
    ContractorPayment,
)
from payroll_cycle.services.config import ApprovalConfig
from payroll_cycle.services.errors import (
    InvalidStateError,
    PermissionDeniedError,
    ValidationError,
)
from payroll_cycle.services.scheduling import AsyncioScheduler, Clock, Scheduler, SystemClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalRequirement:
    """Cost base for the approval decision."""

    employee_total_cost: Decimal
    contractor_total: Decimal
    threshold: Decimal
    employee_count: int
    contractor_count: int

    @property
    def required(self) -> bool:
        """Strictly greater than the threshold."""
        return self.employee_total_cost > self.threshold

    @property
    def excess(self) -> Decimal:
        """How far employee cost is above the threshold (0 if not)."""
        if self.employee_total_cost > self.threshold:
            return self.employee_total_cost - self.threshold
        return Decimal("0")


def compute_requirement(
    payments: Iterable[ContractorPayment],
    threshold: Decimal,
) -> ApprovalRequirement:
    """Partition payments and total employer cost over employees only."""
    employees = [p for p in payments if p.is_employee]
    contractors = [p for p in payments if not p.is_employee]
    return ApprovalRequirement(
        employee_total_cost=sum((p.employer_cost for p in employees), Decimal("0")),
        contractor_total=sum((p.net_pay for p in contractors), Decimal("0")),
        threshold=threshold,
        employee_count=len(employees),
        contractor_count=len(contractors),
    )


class ApprovalGate:
    """Tracks the approval timeline for one batch."""

    def __init__(
        self,
        batch_id: str,
        payments: Iterable[ContractorPayment],
        *,
        config: ApprovalConfig | None = None,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.batch_id = batch_id
        self._config = config or ApprovalConfig()
        self._clock = clock or SystemClock()
        self._scheduler = scheduler or AsyncioScheduler()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._requirement = compute_requirement(payments, self._config.threshold)
        self._state = ApprovalState()
        self._declined_note: str | None = None
        self._approved_cost: Decimal | None = None
        self._history: list[ApprovalAction] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def requirement(self) -> ApprovalRequirement:
        return self._requirement

    @property
    def requires_approval(self) -> bool:
        return self._requirement.required

    @property
    def state(self) -> ApprovalState:
        return self._state

    @property
    def history(self) -> tuple[ApprovalAction, ...]:
        return tuple(self._history)

    @property
    def declined_note(self) -> str | None:
        return self._declined_note

    @property
    def status(self) -> ApprovalStatus:
        state = self._state
        if state.approved is not None:
            return ApprovalStatus.OVERRIDDEN if state.overridden else ApprovalStatus.APPROVED
        if state.viewed is not None:
            return ApprovalStatus.VIEWED
        if state.requested is not None:
            return ApprovalStatus.REQUESTED
        if not self.requires_approval:
            return ApprovalStatus.NOT_REQUIRED
        if state.declined is not None:
            return ApprovalStatus.DECLINED
        return ApprovalStatus.PENDING

    @property
    def is_cleared(self) -> bool:
        """Execution may proceed: approved by either path, or not required."""
        return self._state.approved is not None or not self.requires_approval

    def update_payments(self, payments: Iterable[ContractorPayment]) -> ApprovalRequirement:
        """Recompute the cost base after the payee set changes.

        An approval only covers the employee cost it was granted for. If
        the cost grows past that and approval is still required, the
        approval is withdrawn and the timeline starts over.
        """
        self._requirement = compute_requirement(payments, self._config.threshold)
        if (
            self._state.approved is not None
            and self._approved_cost is not None
            and self._requirement.required
            and self._requirement.employee_total_cost > self._approved_cost
        ):
            logger.warning(
                "Approval for batch %s withdrawn: employee cost rose from %s to %s",
                self.batch_id,
                self._approved_cost,
                self._requirement.employee_total_cost,
            )
            self._state = ApprovalState()
            self._approved_cost = None
            self._record("reset", "system", self._clock.now(), "employee cost increased")
        return self._requirement

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    async def request_approval(self, *, actor_id: str | None = None) -> ApprovalState:
        """Send the batch for approval and wait for the approver to open it.

        The wait is a scheduler sleep standing in for the approver. Viewed
        is set only if this request is still the current one; an override,
        decline or newer request in the meantime leaves it alone.
        """
        request = self.send_request(actor_id=actor_id)
        await self._scheduler.sleep(self._config.viewed_delay_seconds)
        if self._state is request:
            self.mark_viewed()
        return self._state

    def send_request(self, *, actor_id: str | None = None) -> ApprovalState:
        """Set requested. Legal from pending or after a decline."""
        status = self.status
        if status not in (ApprovalStatus.PENDING, ApprovalStatus.DECLINED):
            self._reject("request approval", status)
        now = self._clock.now()
        self._state = ApprovalState(requested=now)
        self._declined_note = None
        self._record("requested", "admin", now)
        logger.info(
            "Approval requested for batch %s (employee cost %s > %s)",
            self.batch_id,
            self._requirement.employee_total_cost,
            self._requirement.threshold,
        )
        self._emit(ApprovalRequested(
            metadata=self._metadata(actor_id, "admin"),
            batch_id=self.batch_id,
            employee_total_cost=self._requirement.employee_total_cost,
            threshold=self._requirement.threshold,
        ))
        return self._state

    def mark_viewed(self, *, actor_id: str | None = None) -> ApprovalState:
        """The approver opened the request."""
        status = self.status
        if status != ApprovalStatus.REQUESTED:
            self._reject("mark viewed", status)
        now = self._clock.now()
        self._state = replace(self._state, viewed=now)
        self._record("viewed", self._config.approver_role, now)
        logger.info("Approval request for batch %s viewed", self.batch_id)
        self._emit(ApprovalViewed(
            metadata=self._metadata(actor_id, "approver"),
            batch_id=self.batch_id,
        ))
        return self._state

    def approve(
        self,
        *,
        role: str,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> ApprovalState:
        """Approve through the normal timeline. Requires viewed."""
        if role != self._config.approver_role:
            logger.warning("Rejected approve for batch %s by role %s", self.batch_id, role)
            raise PermissionDeniedError("approve batch", role, self._config.approver_role)
        status = self.status
        if status != ApprovalStatus.VIEWED:
            self._reject("approve", status)
        now = self._clock.now()
        self._state = replace(self._state, approved=now)
        self._approved_cost = self._requirement.employee_total_cost
        self._record("approved", role, now, note)
        logger.info("Batch %s approved by %s", self.batch_id, role)
        self._emit(BatchApproved(
            metadata=self._metadata(actor_id, "approver"),
            batch_id=self.batch_id,
            role=role,
            note=note,
        ))
        return self._state

    def decline(
        self,
        note: str,
        *,
        role: str,
        actor_id: str | None = None,
    ) -> ApprovalState:
        """Decline from requested or viewed. The timeline starts over."""
        if role != self._config.approver_role:
            logger.warning("Rejected decline for batch %s by role %s", self.batch_id, role)
            raise PermissionDeniedError("decline batch", role, self._config.approver_role)
        if not note or not note.strip():
            raise ValidationError("A note is required to decline", field="note")
        status = self.status
        if status not in (ApprovalStatus.REQUESTED, ApprovalStatus.VIEWED):
            self._reject("decline", status)
        now = self._clock.now()
        self._state = ApprovalState(declined=now)
        self._declined_note = note.strip()
        self._record("declined", role, now, self._declined_note)
        logger.info("Batch %s declined by %s", self.batch_id, role)
        self._emit(ApprovalDeclined(
            metadata=self._metadata(actor_id, "approver"),
            batch_id=self.batch_id,
            role=role,
            note=self._declined_note,
        ))
        return self._state

    def admin_override(
        self,
        *,
        actor_role: str,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> ApprovalState:
        """Set approved directly, bypassing request and view."""
        if actor_role != self._config.admin_role:
            logger.warning("Rejected approval override for batch %s by role %s", self.batch_id, actor_role)
            raise PermissionDeniedError("override approval", actor_role, self._config.admin_role)
        status = self.status
        if self._state.approved is not None:
            self._reject("override approval", status)
        now = self._clock.now()
        self._state = replace(self._state, approved=now, overridden=True)
        self._approved_cost = self._requirement.employee_total_cost
        self._record("overridden", actor_role, now, note)
        logger.info("Approval for batch %s overridden by %s", self.batch_id, actor_role)
        self._emit(ApprovalOverridden(
            metadata=self._metadata(actor_id, "admin"),
            batch_id=self.batch_id,
            role=actor_role,
            note=note,
        ))
        return self._state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject(self, operation: str, status: ApprovalStatus) -> None:
        logger.warning("Rejected %s for batch %s: approval is %s", operation, self.batch_id, status.value)
        raise InvalidStateError(operation, status.value)

    def _record(self, action: str, role: str, at: datetime, note: str | None = None) -> None:
        self._history.append(ApprovalAction(action=action, role=role, at=at, note=note))

    def _metadata(self, actor_id: str | None, actor_type: str) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self._correlation_id,
            actor_id=actor_id,
            actor_type=actor_type,
            timestamp=self._clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        if self._emitter:
            self._emitter.emit(event)
