"""PayPeriodCycle facade: the employee side of one pay period.

The cycle is the single owner of a period's window and submission ledger.
Callers use its typed commands and read-only queries and never reach into
the stores directly. Every call takes the cycle's re-entrant lock, so one
instance can be shared by the request handlers of a threaded host.

Usage:
    cycle = PayPeriodCycle(period)
    cycle.open_window()
    cycle.add_leave_request(LeaveInput(LeaveType.ANNUAL, start, end, Decimal("2")))
    cycle.confirm_pay()
    cycle.approve_submission()
    cycle.close_window()
    cycle.mark_paid()

    following = cycle.next_period(next_pay_period)
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.store import EventLog
from payroll_cycle.models import (
    Adjustment,
    AdjustmentInput,
    LeaveInput,
    LeaveRequest,
    LedgerSnapshot,
    PayPeriod,
    PayrollStatus,
    SubmissionStatus,
    WindowState,
)
from payroll_cycle.services.config import CycleConfig
from payroll_cycle.services.errors import ValidationError
from payroll_cycle.services.scheduling import Clock, SystemClock
from payroll_cycle.services.submission_ledger import SubmissionLedger
from payroll_cycle.services.window_controller import PayPeriodWindow

logger = logging.getLogger(__name__)


class PayPeriodCycle:
    """Command/query owner for one pay period."""

    def __init__(
        self,
        period: PayPeriod,
        *,
        config: CycleConfig | None = None,
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        if period.end_date < period.start_date:
            raise ValidationError("Period end date must not be before start date", field="end_date")
        if not period.start_date <= period.cutoff <= period.end_date:
            raise ValidationError("Cutoff date must fall inside the period", field="cutoff_date")
        self.period = period
        self.config = config or CycleConfig()
        self.correlation_id = correlation_id or uuid4()
        self._clock = clock or SystemClock()
        self.emitter = event_emitter or EventEmitter()
        self.event_log = EventLog(correlation_id=self.correlation_id)
        self.emitter.on_correlation(self.correlation_id, self.event_log)
        self._lock = threading.RLock()

        self._window = PayPeriodWindow(
            period.id,
            clock=self._clock,
            event_emitter=self.emitter,
            correlation_id=self.correlation_id,
        )
        self._ledger = SubmissionLedger(
            period,
            self._window,
            config=self.config.submissions,
            clock=self._clock,
            event_emitter=self.emitter,
            correlation_id=self.correlation_id,
        )

    # ------------------------------------------------------------------
    # Window commands
    # ------------------------------------------------------------------

    def open_window(self) -> WindowState:
        with self._lock:
            return self._window.open()

    def close_window(self) -> WindowState:
        with self._lock:
            return self._window.close()

    def mark_paid(self) -> WindowState:
        with self._lock:
            return self._window.mark_paid()

    # ------------------------------------------------------------------
    # Employee commands
    # ------------------------------------------------------------------

    def add_adjustment(self, data: AdjustmentInput, *, actor_id: str | None = None) -> Adjustment:
        with self._lock:
            adjustment = self._ledger.add_adjustment(data, actor_id=actor_id)
            self._after_new_request(adjustment.status)
            return adjustment

    def add_leave_request(self, data: LeaveInput, *, actor_id: str | None = None) -> LeaveRequest:
        with self._lock:
            request = self._ledger.add_leave_request(data, actor_id=actor_id)
            self._after_new_request(request.status)
            return request

    def resubmit_adjustment(
        self,
        rejected_id: str,
        data: AdjustmentInput,
        *,
        actor_id: str | None = None,
    ) -> Adjustment:
        """Replace an Admin rejected adjustment with a corrected one."""
        with self._lock:
            adjustment = self._ledger.resubmit_adjustment(rejected_id, data, actor_id=actor_id)
            self._after_new_request(adjustment.status)
            return adjustment

    def resubmit_leave_request(
        self,
        rejected_id: str,
        data: LeaveInput,
        *,
        actor_id: str | None = None,
    ) -> LeaveRequest:
        with self._lock:
            request = self._ledger.resubmit_leave_request(rejected_id, data, actor_id=actor_id)
            self._after_new_request(request.status)
            return request

    def withdraw_adjustment(self, adjustment_id: str, *, actor_id: str | None = None) -> Adjustment:
        with self._lock:
            return self._ledger.withdraw_adjustment(adjustment_id, actor_id=actor_id)

    def withdraw_leave_request(self, leave_request_id: str, *, actor_id: str | None = None) -> LeaveRequest:
        with self._lock:
            return self._ledger.withdraw_leave_request(leave_request_id, actor_id=actor_id)

    def confirm_pay(self, *, actor_id: str | None = None) -> bool:
        """Confirm this period's pay, with whatever the ledger holds."""
        with self._lock:
            return self._window.confirm(
                with_changes=not self._ledger.snapshot().is_empty,
                actor_id=actor_id,
            )

    def submit_no_changes(self, *, actor_id: str | None = None) -> bool:
        """Fast path for a month with nothing to report. Same transition as confirm_pay."""
        with self._lock:
            return self._window.confirm(with_changes=False, actor_id=actor_id)

    def withdraw_confirmation(self, *, actor_id: str | None = None) -> bool:
        with self._lock:
            return self._window.withdraw_confirmation(actor_id=actor_id)

    def fix_and_resubmit(self, *, actor_id: str | None = None) -> PayrollStatus:
        """Send a rejected submission back for review."""
        with self._lock:
            return self._window.resubmit(actor_id=actor_id)

    # ------------------------------------------------------------------
    # Admin review
    # ------------------------------------------------------------------

    def review_adjustment(
        self,
        adjustment_id: str,
        *,
        approve: bool,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> Adjustment:
        with self._lock:
            return self._ledger.review_adjustment(
                adjustment_id, approve=approve, reason=reason, actor_id=actor_id
            )

    def review_leave_request(
        self,
        leave_request_id: str,
        *,
        approve: bool,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LeaveRequest:
        with self._lock:
            return self._ledger.review_leave_request(
                leave_request_id, approve=approve, reason=reason, actor_id=actor_id
            )

    def approve_pending(self, *, actor_id: str | None = None) -> int:
        with self._lock:
            return self._ledger.approve_pending(actor_id=actor_id)

    def approve_submission(self, *, actor_id: str | None = None) -> PayrollStatus:
        """Approve the submission. Nothing stays Pending once it is approved."""
        with self._lock:
            status = self._window.approve_submission(actor_id=actor_id)
            self._ledger.approve_pending(actor_id=actor_id)
            return status

    def reject_submission(self, reason: str, *, actor_id: str | None = None) -> PayrollStatus:
        with self._lock:
            return self._window.reject_submission(reason, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def window_state(self) -> WindowState:
        with self._lock:
            return self._window.state

    @property
    def is_window_open(self) -> bool:
        with self._lock:
            return self._window.is_open

    @property
    def confirmed(self) -> bool:
        with self._lock:
            return self._window.confirmed

    @property
    def payroll_status(self) -> PayrollStatus:
        with self._lock:
            return self._window.payroll_status

    @property
    def submitted_at(self) -> datetime | None:
        with self._lock:
            return self._window.submitted_at

    @property
    def approved_at(self) -> datetime | None:
        with self._lock:
            return self._window.approved_at

    @property
    def rejection_reason(self) -> str | None:
        with self._lock:
            return self._window.rejection_reason

    @property
    def adjustments(self) -> tuple[Adjustment, ...]:
        with self._lock:
            return self._ledger.adjustments

    @property
    def leave_requests(self) -> tuple[LeaveRequest, ...]:
        with self._lock:
            return self._ledger.leave_requests

    def get_adjustment(self, adjustment_id: str) -> Adjustment:
        with self._lock:
            return self._ledger.get_adjustment(adjustment_id)

    def get_leave_request(self, leave_request_id: str) -> LeaveRequest:
        with self._lock:
            return self._ledger.get_leave_request(leave_request_id)

    def leave_this_period(self) -> list[LeaveRequest]:
        with self._lock:
            return self._ledger.leave_this_period()

    def leave_upcoming(self) -> list[LeaveRequest]:
        with self._lock:
            return self._ledger.leave_upcoming()

    def pending_total(self) -> Decimal:
        with self._lock:
            return self._ledger.pending_total()

    @property
    def resubmitted_rejection_ids(self) -> tuple[str, ...]:
        with self._lock:
            return self._ledger.resubmitted_rejection_ids

    def rejections_needing_attention(self) -> list[Adjustment | LeaveRequest]:
        with self._lock:
            return self._ledger.rejections_needing_attention()

    @property
    def cutoff_date(self) -> date:
        return self.period.cutoff

    def days_until_close(self) -> int:
        """Whole days from today to the cutoff, 0 once it has passed."""
        return max((self.period.cutoff - self._clock.today()).days, 0)

    def is_cutoff_soon(self) -> bool:
        """The window is open and the cutoff is within the warning range."""
        with self._lock:
            if not self._window.is_open:
                return False
            return self.days_until_close() <= self.config.submissions.cutoff_warning_days

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return self._ledger.snapshot()

    def _after_new_request(self, status: SubmissionStatus) -> None:
        if status == SubmissionStatus.PENDING:
            self._window.reopen_review()

    # ------------------------------------------------------------------
    # Rollover
    # ------------------------------------------------------------------

    def next_period(self, period: PayPeriod, *, correlation_id: UUID | None = None) -> PayPeriodCycle:
        """Start a brand-new cycle for the following period.

        This cycle is left as it is. Submissions that were queued for the
        next cycle move into the new ledger as Pending.
        """
        with self._lock:
            if period.id == self.period.id:
                raise ValidationError("Next period must have a different id", field="id")
            if period.start_date <= self.period.end_date:
                raise ValidationError("Next period must start after this one ends", field="start_date")

            following = PayPeriodCycle(
                period,
                config=self.config,
                clock=self._clock,
                event_emitter=self.emitter,
                correlation_id=correlation_id,
            )
            queued_adjustments = [
                a for a in self._ledger.adjustments
                if a.status == SubmissionStatus.QUEUED_FOR_NEXT_CYCLE
            ]
            queued_leave = [
                lr for lr in self._ledger.leave_requests
                if lr.status == SubmissionStatus.QUEUED_FOR_NEXT_CYCLE
            ]
            following._ledger.carry_over(queued_adjustments, queued_leave)
            logger.info("Period %s follows %s", period.id, self.period.id)
            return following
