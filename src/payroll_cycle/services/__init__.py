"""Payroll cycle services.

This package contains:
- Pay period window state machine and controller
- Submission ledger (adjustments and leave requests)
- Exception engine and approval gate
- Sequential execution and reconciliation ledger
- PayPeriodCycle and PayrollBatch owner facades
"""

from payroll_cycle.services.approval_gate import ApprovalGate, ApprovalRequirement, compute_requirement
from payroll_cycle.services.batch import PayrollBatch, StageCheck, UnresolvedIssues
from payroll_cycle.services.config import (
    ApprovalConfig,
    CycleConfig,
    ExceptionConfig,
    ExecutionConfig,
    FxConfig,
    RailConfig,
    RailRoute,
    ReconciliationConfig,
    SubmissionConfig,
)
from payroll_cycle.services.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PaymentFailure,
    PayrollCycleError,
    PermissionDeniedError,
    TerminalFailure,
    TransientFailure,
    ValidationError,
)
from payroll_cycle.services.exception_engine import ExceptionEngine
from payroll_cycle.services.execution_sequencer import (
    CancellationToken,
    Cohort,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionSequencer,
    FlakyRail,
    PaymentRail,
    RailResult,
    SimulatedRail,
)
from payroll_cycle.services.period_cycle import PayPeriodCycle
from payroll_cycle.services.reconciliation import (
    CSV_COLUMNS,
    ReconciliationLedger,
    ReconciliationSummary,
)
from payroll_cycle.services.scheduling import (
    AsyncioScheduler,
    Clock,
    FixedClock,
    ImmediateScheduler,
    ManualScheduler,
    Scheduler,
    SystemClock,
)
from payroll_cycle.services.state_machine import WindowStateMachine
from payroll_cycle.services.submission_ledger import SubmissionLedger
from payroll_cycle.services.window_controller import PayPeriodWindow

__all__ = [
    # Facades
    "PayPeriodCycle",
    "PayrollBatch",
    "StageCheck",
    "UnresolvedIssues",
    # Employee side
    "PayPeriodWindow",
    "SubmissionLedger",
    "WindowStateMachine",
    # Admin side
    "ApprovalGate",
    "ApprovalRequirement",
    "compute_requirement",
    "ExceptionEngine",
    "CancellationToken",
    "Cohort",
    "ExecutionOutcome",
    "ExecutionResult",
    "ExecutionSequencer",
    "FlakyRail",
    "PaymentRail",
    "RailResult",
    "SimulatedRail",
    "CSV_COLUMNS",
    "ReconciliationLedger",
    "ReconciliationSummary",
    # Config
    "ApprovalConfig",
    "CycleConfig",
    "ExceptionConfig",
    "ExecutionConfig",
    "FxConfig",
    "RailConfig",
    "RailRoute",
    "ReconciliationConfig",
    "SubmissionConfig",
    # Errors
    "InvalidStateError",
    "InvalidTransitionError",
    "NotFoundError",
    "PaymentFailure",
    "PayrollCycleError",
    "PermissionDeniedError",
    "TerminalFailure",
    "TransientFailure",
    "ValidationError",
    # Time
    "AsyncioScheduler",
    "Clock",
    "FixedClock",
    "ImmediateScheduler",
    "ManualScheduler",
    "Scheduler",
    "SystemClock",
]
