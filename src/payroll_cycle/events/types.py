"""Domain event types for payroll cycle operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for the audit log

Operations return their result and emit an event; notifying people
(toasts, emails, contractor notices) is a subscriber concern.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    WINDOW = "window"
    SUBMISSION = "submission"
    EXCEPTION = "exception"
    APPROVAL = "approval"
    EXECUTION = "execution"
    RECONCILIATION = "reconciliation"
    BATCH = "batch"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links related events (one period or one batch)
    causation_id: UUID | None
    actor_id: str | None
    actor_type: str  # 'user', 'admin', 'approver', 'system'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        causation_id: UUID | None = None,
        actor_id: str | None = None,
        actor_type: str = "system",
        source_service: str = "payroll_cycle",
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            causation_id=causation_id,
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Window Events
# =============================================================================


@dataclass(frozen=True)
class WindowOpened(DomainEvent):
    """Submission window opened for a pay period."""

    period_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class WindowClosed(DomainEvent):
    """Submission deadline reached."""

    period_id: str
    confirmed: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class PeriodPaid(DomainEvent):
    """Payout executed. No further ledger mutation is legal."""

    period_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class PayConfirmed(DomainEvent):
    """Employee confirmed their pay for the period."""

    period_id: str
    with_changes: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class ConfirmationWithdrawn(DomainEvent):
    """Employee withdrew an earlier confirmation."""

    period_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class SubmissionApproved(DomainEvent):
    """The company approved the employee's submission for the period."""

    period_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class SubmissionRejected(DomainEvent):
    """The company sent the submission back with a reason."""

    period_id: str
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


@dataclass(frozen=True)
class SubmissionResubmitted(DomainEvent):
    """Employee fixed a rejected submission and sent it again."""

    period_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.WINDOW


# =============================================================================
# Submission Events
# =============================================================================


@dataclass(frozen=True)
class AdjustmentSubmitted(DomainEvent):
    """An adjustment was added to the ledger."""

    period_id: str
    adjustment_id: str
    adjustment_type: str
    amount: Decimal | None
    status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBMISSION


@dataclass(frozen=True)
class LeaveRequested(DomainEvent):
    """A leave request was added to the ledger."""

    period_id: str
    leave_request_id: str
    leave_type: str
    start_date: date
    end_date: date
    total_days: Decimal
    status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBMISSION


@dataclass(frozen=True)
class SubmissionWithdrawn(DomainEvent):
    """A pending submission was removed from the ledger."""

    period_id: str
    submission_id: str
    kind: str  # adjustment, leave_request

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBMISSION


@dataclass(frozen=True)
class SubmissionReviewed(DomainEvent):
    """An admin approved or rejected a submission."""

    period_id: str
    submission_id: str
    kind: str
    new_status: str
    rejection_reason: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBMISSION


@dataclass(frozen=True)
class RejectionResubmitted(DomainEvent):
    """A replacement was filed for a submission the admin rejected."""

    period_id: str
    rejected_id: str
    replacement_id: str
    kind: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBMISSION


# =============================================================================
# Exception Events
# =============================================================================


@dataclass(frozen=True)
class ExceptionRaised(DomainEvent):
    """A new blocking condition was recorded for a payee."""

    exception_id: str
    contractor_id: str
    exception_type: str
    severity: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXCEPTION


@dataclass(frozen=True)
class ExceptionResolved(DomainEvent):
    """An exception was resolved."""

    exception_id: str
    contractor_id: str
    remaining_active: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXCEPTION


@dataclass(frozen=True)
class ExceptionSnoozed(DomainEvent):
    """An exception was deferred to the next cycle."""

    exception_id: str
    contractor_id: str
    remaining_active: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXCEPTION


@dataclass(frozen=True)
class ExceptionOverridden(DomainEvent):
    """An admin overrode a blocking exception."""

    exception_id: str
    contractor_id: str
    overridden_by: str
    justification: str
    remaining_active: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXCEPTION


# =============================================================================
# Approval Events
# =============================================================================


@dataclass(frozen=True)
class ApprovalRequested(DomainEvent):
    """Batch sent for elevated approval."""

    batch_id: str
    employee_total_cost: Decimal
    threshold: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class ApprovalViewed(DomainEvent):
    """Approver opened the request."""

    batch_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class BatchApproved(DomainEvent):
    """Approver approved the batch through the normal timeline."""

    batch_id: str
    role: str
    note: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class ApprovalDeclined(DomainEvent):
    """Approver declined the batch."""

    batch_id: str
    role: str
    note: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class ApprovalOverridden(DomainEvent):
    """Admin set approval directly, bypassing request and view."""

    batch_id: str
    role: str
    note: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


# =============================================================================
# Execution Events
# =============================================================================


@dataclass(frozen=True)
class ExecutionStarted(DomainEvent):
    """Sequential execution of a batch began."""

    batch_id: str
    cohort: str
    payment_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class PaymentProcessing(DomainEvent):
    """A payment moved to processing."""

    batch_id: str
    payment_id: str
    position: int
    attempt: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class PaymentCompleted(DomainEvent):
    """A payment completed."""

    batch_id: str
    payment_id: str
    position: int
    attempts: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class PaymentFailedEvent(DomainEvent):
    """A payment failed and will not be retried."""

    batch_id: str
    payment_id: str
    position: int
    attempts: int
    failure_reason: str
    failure_code: str | None
    is_retryable: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class PaymentRetryScheduled(DomainEvent):
    """A transient failure will be retried."""

    batch_id: str
    payment_id: str
    attempt: int
    failure_reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


@dataclass(frozen=True)
class ExecutionFinished(DomainEvent):
    """Sequential execution ended (all items terminal or cancelled)."""

    batch_id: str
    completed: int
    failed: int
    not_started: int
    cancelled: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.EXECUTION


# =============================================================================
# Reconciliation Events
# =============================================================================


@dataclass(frozen=True)
class ReceiptRecorded(DomainEvent):
    """A payment receipt was recorded."""

    batch_id: str
    payee_id: str
    amount: Decimal
    currency: str
    status: str
    rail: str
    reference: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


@dataclass(frozen=True)
class PayoutRescheduled(DomainEvent):
    """The ETA of an in-transit payout moved."""

    batch_id: str
    payee_id: str
    previous_eta: str
    new_eta: str
    reason: str
    notify: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


@dataclass(frozen=True)
class ReceiptSettled(DomainEvent):
    """An in-transit payout was confirmed paid."""

    batch_id: str
    payee_id: str
    paid_at: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


@dataclass(frozen=True)
class ReconciliationExported(DomainEvent):
    """Receipts were exported for accounting."""

    batch_id: str
    row_count: int
    export_format: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


# =============================================================================
# Batch Events
# =============================================================================


@dataclass(frozen=True)
class BatchStageAdvanced(DomainEvent):
    """The batch pipeline moved to its next stage."""

    batch_id: str
    from_stage: str
    to_stage: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


@dataclass(frozen=True)
class FxRatesLocked(DomainEvent):
    """FX quotes were locked for the batch."""

    batch_id: str
    locked_until: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


@dataclass(frozen=True)
class FxQuoteRefreshed(DomainEvent):
    """FX quotes were refreshed; any lock is released."""

    batch_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


@dataclass(frozen=True)
class PayeeSnoozed(DomainEvent):
    """A payee was excluded from this cycle."""

    batch_id: str
    payee_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


@dataclass(frozen=True)
class PayeeRestored(DomainEvent):
    """A snoozed payee was returned to the batch."""

    batch_id: str
    payee_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


@dataclass(frozen=True)
class BatchCompleted(DomainEvent):
    """The payroll cycle was marked complete and locked."""

    batch_id: str
    forced: bool
    justification: str | None
    unresolved_exceptions: int
    failed_payments: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH
