"""Pay period confirmation window.

Tracks the window state (NONE → OPEN → CLOSED → PAID), the `confirmed`
flag and the submission status the employee sees:

    draft → submitted → approved
                      ↘ rejected → submitted (fix and resubmit)

Confirming submits; withdrawing the confirmation returns to draft. Every
ledger mutation checks this object first.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    ConfirmationWithdrawn,
    DomainEvent,
    EventMetadata,
    PayConfirmed,
    PeriodPaid,
    SubmissionApproved,
    SubmissionRejected,
    SubmissionResubmitted,
    WindowClosed,
    WindowOpened,
)
from payroll_cycle.models import PayrollStatus, WindowState
from payroll_cycle.services.errors import InvalidStateError, ValidationError
from payroll_cycle.services.scheduling import Clock, SystemClock
from payroll_cycle.services.state_machine import WindowStateMachine

logger = logging.getLogger(__name__)


class PayPeriodWindow:
    """Window controller for a single pay period.

    Instances are never reused across periods; a new period gets a new
    window starting in NONE.
    """

    def __init__(
        self,
        period_id: str,
        *,
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.period_id = period_id
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._state = WindowState.NONE
        self._confirmed = False
        self._status = PayrollStatus.DRAFT
        self._submitted_at: datetime | None = None
        self._approved_at: datetime | None = None
        self._rejection_reason: str | None = None

    @property
    def state(self) -> WindowState:
        return self._state

    @property
    def confirmed(self) -> bool:
        return self._confirmed

    @property
    def is_open(self) -> bool:
        return self._state == WindowState.OPEN

    @property
    def payroll_status(self) -> PayrollStatus:
        return self._status

    @property
    def submitted_at(self) -> datetime | None:
        return self._submitted_at

    @property
    def approved_at(self) -> datetime | None:
        return self._approved_at

    @property
    def rejection_reason(self) -> str | None:
        return self._rejection_reason

    def open(self) -> WindowState:
        """NONE → OPEN: the cycle begins."""
        self._transition(WindowState.OPEN)
        self._emit(WindowOpened(metadata=self._metadata(), period_id=self.period_id))
        return self._state

    def close(self) -> WindowState:
        """OPEN → CLOSED: the submission deadline is reached."""
        self._transition(WindowState.CLOSED)
        self._emit(WindowClosed(
            metadata=self._metadata(),
            period_id=self.period_id,
            confirmed=self._confirmed,
        ))
        return self._state

    def mark_paid(self) -> WindowState:
        """CLOSED → PAID: payout executed."""
        self._transition(WindowState.PAID)
        self._emit(PeriodPaid(metadata=self._metadata(), period_id=self.period_id))
        return self._state

    def require_open(self, operation: str) -> None:
        """Raise InvalidStateError unless the window is OPEN."""
        if not WindowStateMachine.can_mutate(self._state):
            logger.warning(
                "Rejected %s for period %s: window is %s",
                operation,
                self.period_id,
                self._state.value,
            )
            raise InvalidStateError(operation, self._state.value, "window is not open")

    def confirm(self, *, with_changes: bool = True, actor_id: str | None = None) -> bool:
        """Set confirmed and submit. Repeating it while OPEN is harmless.

        A rejected submission goes back through `resubmit` instead.
        """
        self.require_open("confirm pay")
        if self._status == PayrollStatus.REJECTED:
            self._reject_status("confirm pay", "a rejected submission is fixed and resubmitted")
        self._confirmed = True
        self._submit()
        logger.info("Pay confirmed for period %s", self.period_id)
        self._emit(PayConfirmed(
            metadata=self._metadata(actor_id=actor_id, actor_type="user"),
            period_id=self.period_id,
            with_changes=with_changes,
        ))
        return self._confirmed

    def withdraw_confirmation(self, *, actor_id: str | None = None) -> bool:
        """Reset confirmed so the employee can keep editing."""
        self.require_open("withdraw confirmation")
        if not self._confirmed:
            logger.warning("Rejected withdraw confirmation for period %s: not confirmed", self.period_id)
            raise InvalidStateError(
                "withdraw confirmation", self._state.value, "pay is not confirmed"
            )
        self._confirmed = False
        self._status = PayrollStatus.DRAFT
        self._submitted_at = None
        self._approved_at = None
        logger.info("Confirmation withdrawn for period %s", self.period_id)
        self._emit(ConfirmationWithdrawn(
            metadata=self._metadata(actor_id=actor_id, actor_type="user"),
            period_id=self.period_id,
        ))
        return self._confirmed

    def approve_submission(self, *, actor_id: str | None = None) -> PayrollStatus:
        """submitted → approved. Allowed until the period is paid."""
        self._require_reviewable("approve submission")
        if self._status != PayrollStatus.SUBMITTED:
            self._reject_status("approve submission")
        self._status = PayrollStatus.APPROVED
        self._approved_at = self._clock.now()
        logger.info("Submission for period %s approved", self.period_id)
        self._emit(SubmissionApproved(
            metadata=self._metadata(actor_id=actor_id, actor_type="admin"),
            period_id=self.period_id,
        ))
        return self._status

    def reject_submission(self, reason: str, *, actor_id: str | None = None) -> PayrollStatus:
        """submitted → rejected. The employee needs the window open to fix it."""
        self.require_open("reject submission")
        if self._status != PayrollStatus.SUBMITTED:
            self._reject_status("reject submission")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject a submission", field="reason")
        self._status = PayrollStatus.REJECTED
        self._confirmed = False
        self._rejection_reason = reason.strip()
        logger.info("Submission for period %s rejected", self.period_id)
        self._emit(SubmissionRejected(
            metadata=self._metadata(actor_id=actor_id, actor_type="admin"),
            period_id=self.period_id,
            reason=self._rejection_reason,
        ))
        return self._status

    def resubmit(self, *, actor_id: str | None = None) -> PayrollStatus:
        """rejected → submitted, confirming again."""
        self.require_open("fix and resubmit")
        if self._status != PayrollStatus.REJECTED:
            self._reject_status("fix and resubmit")
        self._confirmed = True
        self._rejection_reason = None
        self._submit()
        logger.info("Submission for period %s resubmitted", self.period_id)
        self._emit(SubmissionResubmitted(
            metadata=self._metadata(actor_id=actor_id, actor_type="user"),
            period_id=self.period_id,
        ))
        return self._status

    def reopen_review(self) -> PayrollStatus:
        """A new request after approval puts the submission back to submitted."""
        if self._status == PayrollStatus.APPROVED:
            self._submit()
            logger.info("Submission for period %s back under review after a new request", self.period_id)
        return self._status

    def _submit(self) -> None:
        self._status = PayrollStatus.SUBMITTED
        self._submitted_at = self._clock.now()
        self._approved_at = None

    def _require_reviewable(self, operation: str) -> None:
        if not WindowStateMachine.can_review(self._state):
            logger.warning("Rejected %s for period %s: window is %s", operation, self.period_id, self._state.value)
            raise InvalidStateError(operation, self._state.value, "submissions can no longer be reviewed")

    def _reject_status(self, operation: str, reason: str | None = None) -> None:
        logger.warning(
            "Rejected %s for period %s: submission is %s",
            operation,
            self.period_id,
            self._status.value,
        )
        raise InvalidStateError(operation, self._status.value, reason)

    def _transition(self, to_state: WindowState) -> None:
        from_state = self._state
        try:
            WindowStateMachine.validate_transition(from_state, to_state)
        except InvalidStateError:
            logger.warning(
                "Rejected window transition %s → %s for period %s",
                from_state.value,
                to_state.value,
                self.period_id,
            )
            raise
        self._state = to_state
        logger.info(
            "Window for period %s moved %s → %s",
            self.period_id,
            from_state.value,
            to_state.value,
        )

    def _metadata(self, actor_id: str | None = None, actor_type: str = "system") -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self._correlation_id,
            actor_id=actor_id,
            actor_type=actor_type,
            timestamp=self._clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        if self._emitter:
            self._emitter.emit(event)
