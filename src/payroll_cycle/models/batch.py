"""Admin-side data model: payments, exceptions, approvals and receipts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class EmploymentType(str, Enum):
    """Worker classification."""

    EMPLOYEE = "employee"
    CONTRACTOR = "contractor"


class ExceptionType(str, Enum):
    """Conditions that block a payee from being paid."""

    MISSING_BANK = "missing-bank"
    HOLIDAY_RAILS = "holiday-rails"
    DOC_EXPIRY = "doc-expiry"
    OVER_THRESHOLD = "over-threshold"


class Severity(str, Enum):
    """Exception severity. Informational and display order only."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ApprovalStatus(str, Enum):
    """Display status of the approval timeline."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    REQUESTED = "requested"
    VIEWED = "viewed"
    APPROVED = "approved"
    OVERRIDDEN = "overridden"
    DECLINED = "declined"


class ItemStatus(str, Enum):
    """Per-payment execution progress."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class ReceiptStatus(str, Enum):
    """Settlement status of an executed payment."""

    PAID = "Paid"
    IN_TRANSIT = "InTransit"


class BatchStage(str, Enum):
    """Ordered stages of the admin batch pipeline."""

    REVIEW_FX = "review_fx"
    EXCEPTIONS = "exceptions"
    APPROVAL = "approval"
    EXECUTION = "execution"
    RECONCILIATION = "reconciliation"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ContractorPayment:
    """One payee line in a payroll batch."""

    id: str
    name: str
    country: str
    currency: str
    net_pay: Decimal
    est_fees: Decimal
    fx_rate: Decimal
    employment_type: EmploymentType
    employer_taxes: Decimal | None = None

    def __post_init__(self) -> None:
        if self.employment_type == EmploymentType.CONTRACTOR and self.employer_taxes is not None:
            raise ValueError("employer_taxes is only defined for employees")

    @property
    def is_employee(self) -> bool:
        return self.employment_type == EmploymentType.EMPLOYEE

    @property
    def employer_cost(self) -> Decimal:
        """Net pay plus employer taxes (employees only)."""
        return self.net_pay + (self.employer_taxes or Decimal("0"))


@dataclass(frozen=True)
class OverrideInfo:
    """Who overrode a blocking exception and why."""

    overridden_by: str
    overridden_at: datetime
    justification: str


@dataclass(frozen=True)
class PayrollException:
    """A per-payee condition blocking the batch."""

    id: str
    contractor_id: str
    type: ExceptionType
    severity: Severity
    resolved: bool = False
    snoozed: bool = False
    contractor_name: str = ""
    description: str = ""
    is_blocking: bool = True
    override_info: OverrideInfo | None = None

    @property
    def active(self) -> bool:
        return not self.resolved and not self.snoozed


@dataclass(frozen=True)
class ApprovalAction:
    """One row of the approval history."""

    action: str
    role: str
    at: datetime
    note: str | None = None


@dataclass(frozen=True)
class ApprovalState:
    """Approval timeline. Later stages imply earlier ones except on override."""

    requested: datetime | None = None
    viewed: datetime | None = None
    approved: datetime | None = None
    declined: datetime | None = None
    overridden: bool = False


@dataclass(frozen=True)
class PaymentProgress:
    """Execution progress of one payment."""

    payment_id: str
    name: str
    status: ItemStatus
    attempts: int = 0
    error: str | None = None


@dataclass(frozen=True)
class PaymentReceipt:
    """Settlement record for one executed payment."""

    payee_id: str
    payee_name: str
    amount: Decimal
    currency: str
    status: ReceiptStatus
    rail: str
    reference: str
    fx_rate: Decimal
    fx_spread: Decimal
    fx_fee: Decimal
    processing_fee: Decimal
    eta: str
    paid_at: datetime | None = None


@dataclass(frozen=True)
class BatchTotals:
    """Aggregate figures for a batch."""

    gross: Decimal
    fees: Decimal
    employer_costs: Decimal
    employee_count: int
    contractor_count: int
    by_currency: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class RescheduleRequest:
    """Caller-supplied reschedule parameters."""

    payee_id: str
    new_date: date
    reason: str
    notify: bool = True
