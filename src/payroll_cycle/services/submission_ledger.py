"""Submission ledger: adjustments and leave requests for one pay period.

The ledger is insertion-ordered. It consults the period's window before
every mutation and validates input fully before touching state, so a
rejected call never leaves a partial change behind.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    AdjustmentSubmitted,
    DomainEvent,
    EventMetadata,
    LeaveRequested,
    RejectionResubmitted,
    SubmissionReviewed,
    SubmissionWithdrawn,
)
from payroll_cycle.models import (
    Adjustment,
    AdjustmentInput,
    AdjustmentType,
    LeaveInput,
    LeaveRequest,
    LeaveType,
    LedgerSnapshot,
    PayPeriod,
    SubmissionStatus,
)
from payroll_cycle.services.config import SubmissionConfig
from payroll_cycle.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from payroll_cycle.services.scheduling import Clock, SystemClock
from payroll_cycle.services.state_machine import WindowStateMachine
from payroll_cycle.services.window_controller import PayPeriodWindow

logger = logging.getLogger(__name__)

ADJUSTMENT = "adjustment"
LEAVE_REQUEST = "leave_request"


def _as_decimal(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"'{value}' is not a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"'{value}' is not a number", field=field)
    return result


class SubmissionLedger:
    """Per-period store of employee submissions."""

    def __init__(
        self,
        period: PayPeriod,
        window: PayPeriodWindow,
        *,
        config: SubmissionConfig | None = None,
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.period = period
        self._window = window
        self._config = config or SubmissionConfig()
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._adjustments: list[Adjustment] = []
        self._leave_requests: list[LeaveRequest] = []
        self._adjustment_seq = itertools.count(1)
        self._leave_seq = itertools.count(1)
        self._resubmitted: list[str] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def adjustments(self) -> tuple[Adjustment, ...]:
        return tuple(self._adjustments)

    @property
    def leave_requests(self) -> tuple[LeaveRequest, ...]:
        return tuple(self._leave_requests)

    def get_adjustment(self, adjustment_id: str) -> Adjustment:
        return self._adjustments[self._index(self._adjustments, adjustment_id, ADJUSTMENT)]

    def get_leave_request(self, leave_request_id: str) -> LeaveRequest:
        return self._leave_requests[
            self._index(self._leave_requests, leave_request_id, LEAVE_REQUEST)
        ]

    def leave_this_period(self) -> list[LeaveRequest]:
        """Leave requests whose dates overlap the pay period."""
        return [
            lr for lr in self._leave_requests
            if self.period.overlaps(lr.start_date, lr.end_date)
        ]

    def leave_upcoming(self) -> list[LeaveRequest]:
        """Leave requests that start after the pay period ends."""
        return [
            lr for lr in self._leave_requests
            if lr.start_date > self.period.end_date
        ]

    def pending_total(self) -> Decimal:
        """Sum of amounts on pending adjustments (Overtime has none)."""
        return sum(
            (
                adj.amount for adj in self._adjustments
                if adj.status == SubmissionStatus.PENDING and adj.amount is not None
            ),
            Decimal("0"),
        )

    def has_pending(self) -> bool:
        return any(
            item.status == SubmissionStatus.PENDING
            for item in (*self._adjustments, *self._leave_requests)
        )

    @property
    def resubmitted_rejection_ids(self) -> tuple[str, ...]:
        """Rejected entries that already have a replacement."""
        return tuple(self._resubmitted)

    def rejections_needing_attention(self) -> list[Adjustment | LeaveRequest]:
        """Admin rejected entries the employee has not resubmitted yet."""
        return [
            item for item in (*self._adjustments, *self._leave_requests)
            if item.status == SubmissionStatus.ADMIN_REJECTED and item.id not in self._resubmitted
        ]

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            period=self.period,
            window_state=self._window.state,
            confirmed=self._window.confirmed,
            adjustments=self.adjustments,
            leave_requests=self.leave_requests,
            payroll_status=self._window.payroll_status,
        )

    # ------------------------------------------------------------------
    # Employee commands
    # ------------------------------------------------------------------

    def add_adjustment(self, data: AdjustmentInput, *, actor_id: str | None = None) -> Adjustment:
        """Append a new adjustment. Duplicates of the same type are allowed."""
        status = self._status_for_new("add adjustment")
        adjustment_type = self._parse_adjustment_type(data.type)
        amount = _as_decimal(data.amount, "amount")
        hours = _as_decimal(data.hours, "hours")

        if adjustment_type == AdjustmentType.OVERTIME:
            if hours is None or hours <= 0:
                raise ValidationError("Overtime requires positive hours", field="hours")
            if amount is not None:
                raise ValidationError("Overtime is hours-based and takes no amount", field="amount")
        else:
            if amount is None:
                raise ValidationError(f"{adjustment_type.value} requires an amount", field="amount")
            if amount <= 0:
                raise ValidationError("Amount must be positive", field="amount")

        label = (data.label or "").strip() or adjustment_type.value
        adjustment = Adjustment(
            id=f"adj-{next(self._adjustment_seq)}",
            type=adjustment_type,
            label=label,
            amount=amount,
            description=data.description,
            status=status,
            submitted_at=self._clock.now(),
            hours=hours,
            receipt_ref=data.receipt_ref,
            category=data.category,
            incurred_on=data.incurred_on,
            tags=tuple(data.tags),
        )
        self._adjustments.append(adjustment)

        logger.info(
            "Adjustment %s (%s) added to period %s as %s",
            adjustment.id,
            adjustment_type.value,
            self.period.id,
            status.value,
        )
        self._emit(AdjustmentSubmitted(
            metadata=self._metadata(actor_id, "user"),
            period_id=self.period.id,
            adjustment_id=adjustment.id,
            adjustment_type=adjustment_type.value,
            amount=amount,
            status=status.value,
        ))
        return adjustment

    def add_leave_request(self, data: LeaveInput, *, actor_id: str | None = None) -> LeaveRequest:
        """Append a new leave request."""
        status = self._status_for_new("add leave request")
        leave_type = self._parse_leave_type(data.leave_type)
        total_days = _as_decimal(data.total_days, "total_days")

        if data.start_date is None or data.end_date is None:
            raise ValidationError("Start and end dates are required", field="start_date")
        if data.end_date < data.start_date:
            raise ValidationError("End date must not be before start date", field="end_date")
        if total_days is None or total_days < self._config.leave_day_increment:
            raise ValidationError(
                f"Total days must be at least {self._config.leave_day_increment}",
                field="total_days",
            )
        if total_days % self._config.leave_day_increment != 0:
            raise ValidationError(
                f"Total days must be a multiple of {self._config.leave_day_increment}",
                field="total_days",
            )

        request = LeaveRequest(
            id=f"leave-{next(self._leave_seq)}",
            leave_type=leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            status=status,
            submitted_at=self._clock.now(),
            reason=data.reason,
        )
        self._leave_requests.append(request)

        logger.info(
            "Leave request %s (%s, %s days) added to period %s as %s",
            request.id,
            leave_type.value,
            total_days,
            self.period.id,
            status.value,
        )
        self._emit(LeaveRequested(
            metadata=self._metadata(actor_id, "user"),
            period_id=self.period.id,
            leave_request_id=request.id,
            leave_type=leave_type.value,
            start_date=request.start_date,
            end_date=request.end_date,
            total_days=total_days,
            status=status.value,
        ))
        return request

    def withdraw_adjustment(self, adjustment_id: str, *, actor_id: str | None = None) -> Adjustment:
        """Remove a pending adjustment while the window is open."""
        index = self._index(self._adjustments, adjustment_id, ADJUSTMENT)
        self._check_withdrawable(self._adjustments[index].status, "withdraw adjustment")
        removed = self._adjustments.pop(index)
        self._after_withdraw(removed.id, ADJUSTMENT, actor_id)
        return removed

    def withdraw_leave_request(self, leave_request_id: str, *, actor_id: str | None = None) -> LeaveRequest:
        """Remove a pending leave request while the window is open."""
        index = self._index(self._leave_requests, leave_request_id, LEAVE_REQUEST)
        self._check_withdrawable(self._leave_requests[index].status, "withdraw leave request")
        removed = self._leave_requests.pop(index)
        self._after_withdraw(removed.id, LEAVE_REQUEST, actor_id)
        return removed

    def resubmit_adjustment(
        self,
        rejected_id: str,
        data: AdjustmentInput,
        *,
        actor_id: str | None = None,
    ) -> Adjustment:
        """File a replacement for an Admin rejected adjustment.

        The rejected entry stays in the ledger for the record and stops
        counting as needing attention.
        """
        rejected = self.get_adjustment(rejected_id)
        self._check_resubmittable(rejected.id, rejected.status, "resubmit adjustment")
        replacement = self.add_adjustment(data, actor_id=actor_id)
        self._after_resubmit(rejected.id, replacement.id, ADJUSTMENT, actor_id)
        return replacement

    def resubmit_leave_request(
        self,
        rejected_id: str,
        data: LeaveInput,
        *,
        actor_id: str | None = None,
    ) -> LeaveRequest:
        """File a replacement for an Admin rejected leave request."""
        rejected = self.get_leave_request(rejected_id)
        self._check_resubmittable(rejected.id, rejected.status, "resubmit leave request")
        replacement = self.add_leave_request(data, actor_id=actor_id)
        self._after_resubmit(rejected.id, replacement.id, LEAVE_REQUEST, actor_id)
        return replacement

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
        """Move a pending adjustment to Admin approved or Admin rejected."""
        index = self._index(self._adjustments, adjustment_id, ADJUSTMENT)
        new_status, rejection_reason = self._check_review(
            self._adjustments[index].status, approve, reason, "review adjustment"
        )
        reviewed = replace(
            self._adjustments[index], status=new_status, rejection_reason=rejection_reason
        )
        self._adjustments[index] = reviewed
        self._after_review(reviewed.id, ADJUSTMENT, new_status, rejection_reason, actor_id)
        return reviewed

    def review_leave_request(
        self,
        leave_request_id: str,
        *,
        approve: bool,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LeaveRequest:
        """Move a pending leave request to Admin approved or Admin rejected."""
        index = self._index(self._leave_requests, leave_request_id, LEAVE_REQUEST)
        new_status, rejection_reason = self._check_review(
            self._leave_requests[index].status, approve, reason, "review leave request"
        )
        reviewed = replace(
            self._leave_requests[index], status=new_status, rejection_reason=rejection_reason
        )
        self._leave_requests[index] = reviewed
        self._after_review(reviewed.id, LEAVE_REQUEST, new_status, rejection_reason, actor_id)
        return reviewed

    def approve_pending(self, *, actor_id: str | None = None) -> int:
        """Approve every pending submission at once. Returns how many changed."""
        self._check_review_window("approve pending")

        changed: list[tuple[str, str]] = []
        for i, adj in enumerate(self._adjustments):
            if adj.status == SubmissionStatus.PENDING:
                self._adjustments[i] = replace(adj, status=SubmissionStatus.ADMIN_APPROVED)
                changed.append((adj.id, ADJUSTMENT))
        for i, lr in enumerate(self._leave_requests):
            if lr.status == SubmissionStatus.PENDING:
                self._leave_requests[i] = replace(lr, status=SubmissionStatus.ADMIN_APPROVED)
                changed.append((lr.id, LEAVE_REQUEST))

        logger.info("Approved %d pending submissions in period %s", len(changed), self.period.id)
        if self._emitter:
            with self._emitter.batch() as batch:
                for submission_id, kind in changed:
                    batch.add(SubmissionReviewed(
                        metadata=self._metadata(actor_id, "admin"),
                        period_id=self.period.id,
                        submission_id=submission_id,
                        kind=kind,
                        new_status=SubmissionStatus.ADMIN_APPROVED.value,
                        rejection_reason=None,
                    ))
        return len(changed)

    def carry_over(
        self,
        adjustments: Iterable[Adjustment],
        leave_requests: Iterable[LeaveRequest],
    ) -> int:
        """Seed a fresh ledger with submissions queued in the previous period.

        Carried entries get new ids and start again as Pending.
        """
        if self._adjustments or self._leave_requests:
            raise InvalidStateError("carry over submissions", self._window.state.value, "ledger is not empty")

        carried = 0
        for adj in adjustments:
            moved = replace(adj, id=f"adj-{next(self._adjustment_seq)}", status=SubmissionStatus.PENDING)
            self._adjustments.append(moved)
            self._emit(AdjustmentSubmitted(
                metadata=self._metadata(None, "system"),
                period_id=self.period.id,
                adjustment_id=moved.id,
                adjustment_type=moved.type.value,
                amount=moved.amount,
                status=moved.status.value,
            ))
            carried += 1
        for lr in leave_requests:
            moved_lr = replace(lr, id=f"leave-{next(self._leave_seq)}", status=SubmissionStatus.PENDING)
            self._leave_requests.append(moved_lr)
            self._emit(LeaveRequested(
                metadata=self._metadata(None, "system"),
                period_id=self.period.id,
                leave_request_id=moved_lr.id,
                leave_type=moved_lr.leave_type.value,
                start_date=moved_lr.start_date,
                end_date=moved_lr.end_date,
                total_days=moved_lr.total_days,
                status=moved_lr.status.value,
            ))
            carried += 1

        if carried:
            logger.info("Carried %d queued submissions into period %s", carried, self.period.id)
        return carried

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _status_for_new(self, operation: str) -> SubmissionStatus:
        state = self._window.state
        if WindowStateMachine.can_mutate(state):
            return SubmissionStatus.PENDING
        if self._config.queue_late_submissions and WindowStateMachine.can_queue(state):
            return SubmissionStatus.QUEUED_FOR_NEXT_CYCLE
        logger.warning("Rejected %s for period %s: window is %s", operation, self.period.id, state.value)
        raise InvalidStateError(operation, state.value, "window is not open")

    def _check_withdrawable(self, status: SubmissionStatus, operation: str) -> None:
        self._window.require_open(operation)
        if status != SubmissionStatus.PENDING:
            logger.warning("Rejected %s in period %s: status is %s", operation, self.period.id, status.value)
            raise InvalidStateError(operation, status.value, "only pending submissions can be withdrawn")

    def _after_withdraw(self, submission_id: str, kind: str, actor_id: str | None) -> None:
        logger.info("Withdrew %s %s from period %s", kind, submission_id, self.period.id)
        self._emit(SubmissionWithdrawn(
            metadata=self._metadata(actor_id, "user"),
            period_id=self.period.id,
            submission_id=submission_id,
            kind=kind,
        ))

    def _check_resubmittable(self, submission_id: str, status: SubmissionStatus, operation: str) -> None:
        self._window.require_open(operation)
        if status != SubmissionStatus.ADMIN_REJECTED:
            logger.warning("Rejected %s in period %s: status is %s", operation, self.period.id, status.value)
            raise InvalidStateError(operation, status.value, "only rejected submissions can be resubmitted")
        if submission_id in self._resubmitted:
            raise InvalidStateError(operation, status.value, f"{submission_id} was already resubmitted")

    def _after_resubmit(self, rejected_id: str, replacement_id: str, kind: str, actor_id: str | None) -> None:
        self._resubmitted.append(rejected_id)
        logger.info(
            "Rejected %s %s in period %s replaced by %s",
            kind,
            rejected_id,
            self.period.id,
            replacement_id,
        )
        self._emit(RejectionResubmitted(
            metadata=self._metadata(actor_id, "user"),
            period_id=self.period.id,
            rejected_id=rejected_id,
            replacement_id=replacement_id,
            kind=kind,
        ))

    def _check_review_window(self, operation: str) -> None:
        state = self._window.state
        if not WindowStateMachine.can_review(state):
            logger.warning("Rejected %s for period %s: window is %s", operation, self.period.id, state.value)
            raise InvalidStateError(operation, state.value, "submissions can no longer be reviewed")

    def _check_review(
        self,
        status: SubmissionStatus,
        approve: bool,
        reason: str | None,
        operation: str,
    ) -> tuple[SubmissionStatus, str | None]:
        self._check_review_window(operation)
        if status != SubmissionStatus.PENDING:
            raise InvalidStateError(operation, status.value, "only pending submissions can be reviewed")
        if approve:
            return SubmissionStatus.ADMIN_APPROVED, None
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject a submission", field="reason")
        return SubmissionStatus.ADMIN_REJECTED, reason.strip()

    def _after_review(
        self,
        submission_id: str,
        kind: str,
        new_status: SubmissionStatus,
        rejection_reason: str | None,
        actor_id: str | None,
    ) -> None:
        logger.info("%s %s in period %s is now %s", kind, submission_id, self.period.id, new_status.value)
        self._emit(SubmissionReviewed(
            metadata=self._metadata(actor_id, "admin"),
            period_id=self.period.id,
            submission_id=submission_id,
            kind=kind,
            new_status=new_status.value,
            rejection_reason=rejection_reason,
        ))

    @staticmethod
    def _index(items: list[Any], item_id: str, kind: str) -> int:
        for i, item in enumerate(items):
            if item.id == item_id:
                return i
        raise NotFoundError(kind, item_id)

    @staticmethod
    def _parse_adjustment_type(value: AdjustmentType | str) -> AdjustmentType:
        try:
            return AdjustmentType(value)
        except ValueError:
            raise ValidationError(f"Unknown adjustment type '{value}'", field="type")

    @staticmethod
    def _parse_leave_type(value: LeaveType | str) -> LeaveType:
        try:
            return LeaveType(value)
        except ValueError:
            raise ValidationError(f"Unknown leave type '{value}'", field="leave_type")

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
