"""Employee-side data model: pay periods, adjustments and leave requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class WindowState(str, Enum):
    """Pay period confirmation window states."""

    NONE = "NONE"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PAID = "PAID"


class SubmissionStatus(str, Enum):
    """Lifecycle status shared by adjustments and leave requests."""

    PENDING = "Pending"
    ADMIN_APPROVED = "Admin approved"
    ADMIN_REJECTED = "Admin rejected"
    QUEUED_FOR_NEXT_CYCLE = "Queued for next cycle"


class PayrollStatus(str, Enum):
    """Where the employee's submission for the period stands."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class AdjustmentType(str, Enum):
    """Kinds of non-leave pay change."""

    EXPENSE = "Expense"
    OVERTIME = "Overtime"
    BONUS = "Bonus"
    CORRECTION = "Correction"


class LeaveType(str, Enum):
    """Kinds of leave."""

    ANNUAL = "Annual leave"
    SICK = "Sick leave"
    UNPAID = "Unpaid leave"
    OTHER = "Other"


@dataclass(frozen=True)
class PayPeriod:
    """A pay period. Immutable once created."""

    id: str
    label: str
    start_date: date
    end_date: date
    cutoff_date: date | None = None

    @property
    def cutoff(self) -> date:
        """Last day to submit. Falls back to the period end."""
        return self.cutoff_date or self.end_date

    def overlaps(self, start: date, end: date) -> bool:
        """Whether [start, end] intersects this period."""
        return start <= self.end_date and end >= self.start_date


@dataclass(frozen=True)
class AdjustmentInput:
    """Caller-supplied fields for a new adjustment."""

    type: AdjustmentType | str
    amount: Decimal | None = None
    label: str | None = None
    description: str = ""
    hours: Decimal | None = None
    receipt_ref: str | None = None
    category: str | None = None
    incurred_on: date | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Adjustment:
    """An employee-submitted pay change attached to a pay period."""

    id: str
    type: AdjustmentType
    label: str
    amount: Decimal | None
    description: str
    status: SubmissionStatus
    submitted_at: datetime
    hours: Decimal | None = None
    receipt_ref: str | None = None
    category: str | None = None
    incurred_on: date | None = None
    tags: tuple[str, ...] = ()
    rejection_reason: str | None = None


@dataclass(frozen=True)
class LeaveInput:
    """Caller-supplied fields for a new leave request."""

    leave_type: LeaveType | str
    start_date: date
    end_date: date
    total_days: Decimal
    reason: str | None = None


@dataclass(frozen=True)
class LeaveRequest:
    """An employee leave request attached to a pay period."""

    id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Decimal
    status: SubmissionStatus
    submitted_at: datetime
    reason: str | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class LedgerSnapshot:
    """Read-only view of a submission ledger."""

    period: PayPeriod
    window_state: WindowState
    confirmed: bool
    adjustments: tuple[Adjustment, ...] = field(default_factory=tuple)
    leave_requests: tuple[LeaveRequest, ...] = field(default_factory=tuple)
    payroll_status: PayrollStatus = PayrollStatus.DRAFT

    @property
    def is_empty(self) -> bool:
        return not self.adjustments and not self.leave_requests
