"""Payroll cycle data model."""

from payroll_cycle.models.batch import (
    ApprovalAction,
    ApprovalState,
    ApprovalStatus,
    BatchStage,
    BatchTotals,
    ContractorPayment,
    EmploymentType,
    ExceptionType,
    ItemStatus,
    OverrideInfo,
    PaymentProgress,
    PaymentReceipt,
    PayrollException,
    ReceiptStatus,
    RescheduleRequest,
    Severity,
)
from payroll_cycle.models.submissions import (
    Adjustment,
    AdjustmentInput,
    AdjustmentType,
    LeaveInput,
    LeaveRequest,
    LeaveType,
    LedgerSnapshot,
    PayPeriod,
    PayrollStatus,
    SubmissionStatus,
    WindowState,
)

__all__ = [
    # Employee side
    "Adjustment",
    "AdjustmentInput",
    "AdjustmentType",
    "LeaveInput",
    "LeaveRequest",
    "LeaveType",
    "LedgerSnapshot",
    "PayPeriod",
    "PayrollStatus",
    "SubmissionStatus",
    "WindowState",
    # Admin side
    "ApprovalAction",
    "ApprovalState",
    "ApprovalStatus",
    "BatchStage",
    "BatchTotals",
    "ContractorPayment",
    "EmploymentType",
    "ExceptionType",
    "ItemStatus",
    "OverrideInfo",
    "PaymentProgress",
    "PaymentReceipt",
    "PayrollException",
    "ReceiptStatus",
    "RescheduleRequest",
    "Severity",
]
