"""Payroll cycle domain events package.

This package provides:
- Typed domain events for every cycle operation
- Event emitter for publishing events to subscribers
- In-memory event log backing the audit trail
"""

from payroll_cycle.events.types import (
    # Base
    DomainEvent,
    EventMetadata,
    EventCategory,
    # Window Events
    WindowOpened,
    WindowClosed,
    PeriodPaid,
    PayConfirmed,
    ConfirmationWithdrawn,
    SubmissionApproved,
    SubmissionRejected,
    SubmissionResubmitted,
    # Submission Events
    AdjustmentSubmitted,
    LeaveRequested,
    SubmissionWithdrawn,
    SubmissionReviewed,
    RejectionResubmitted,
    # Exception Events
    ExceptionRaised,
    ExceptionResolved,
    ExceptionSnoozed,
    ExceptionOverridden,
    # Approval Events
    ApprovalRequested,
    ApprovalViewed,
    BatchApproved,
    ApprovalDeclined,
    ApprovalOverridden,
    # Execution Events
    ExecutionStarted,
    PaymentProcessing,
    PaymentCompleted,
    PaymentFailedEvent,
    PaymentRetryScheduled,
    ExecutionFinished,
    # Reconciliation Events
    ReceiptRecorded,
    PayoutRescheduled,
    ReceiptSettled,
    ReconciliationExported,
    # Batch Events
    BatchStageAdvanced,
    FxRatesLocked,
    FxQuoteRefreshed,
    PayeeSnoozed,
    PayeeRestored,
    BatchCompleted,
)
from payroll_cycle.events.emitter import (
    EventBatch,
    EventEmitter,
    EventHandler,
)
from payroll_cycle.events.store import (
    EventLog,
    StoredEvent,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    # Window
    "WindowOpened",
    "WindowClosed",
    "PeriodPaid",
    "PayConfirmed",
    "ConfirmationWithdrawn",
    "SubmissionApproved",
    "SubmissionRejected",
    "SubmissionResubmitted",
    # Submission
    "AdjustmentSubmitted",
    "LeaveRequested",
    "SubmissionWithdrawn",
    "SubmissionReviewed",
    "RejectionResubmitted",
    # Exception
    "ExceptionRaised",
    "ExceptionResolved",
    "ExceptionSnoozed",
    "ExceptionOverridden",
    # Approval
    "ApprovalRequested",
    "ApprovalViewed",
    "BatchApproved",
    "ApprovalDeclined",
    "ApprovalOverridden",
    # Execution
    "ExecutionStarted",
    "PaymentProcessing",
    "PaymentCompleted",
    "PaymentFailedEvent",
    "PaymentRetryScheduled",
    "ExecutionFinished",
    # Reconciliation
    "ReceiptRecorded",
    "PayoutRescheduled",
    "ReceiptSettled",
    "ReconciliationExported",
    # Batch
    "BatchStageAdvanced",
    "FxRatesLocked",
    "FxQuoteRefreshed",
    "PayeeSnoozed",
    "PayeeRestored",
    "BatchCompleted",
    # Emitter
    "EventBatch",
    "EventEmitter",
    "EventHandler",
    # Log
    "EventLog",
    "StoredEvent",
]
