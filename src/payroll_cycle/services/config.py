"""Payroll cycle policy configuration.

Policy values (approval threshold, severity order, execution latency,
rail table) are explicit configuration, never literals in service code.

Pattern:
    config = CycleConfig(
        approval=ApprovalConfig(threshold=Decimal("50000")),
        execution=ExecutionConfig(min_delay_ms=800, max_delay_ms=1500),
    )
    batch = PayrollBatch(batch_id="nov-2025", payments=payments, config=config)

Rules:
    1. Immutable after creation (frozen dataclasses).
    2. Validated on construction; nonsense values raise ValueError.
    3. Each facade instance carries its own config. No globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class SubmissionConfig:
    """
    Employee submission behavior.

    Attributes:
        queue_late_submissions: If True, submissions made while the window
            is CLOSED are accepted as "Queued for next cycle". If False they
            are rejected. Default False.
        leave_day_increment: Smallest unit for leave totals. Default 0.5.
        cutoff_warning_days: The cutoff counts as "soon" when this many days
            or fewer remain. Default 3.
    """

    queue_late_submissions: bool = False
    leave_day_increment: Decimal = Decimal("0.5")
    cutoff_warning_days: int = 3

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.leave_day_increment <= 0:
            raise ValueError("leave_day_increment must be positive")
        if self.cutoff_warning_days < 0:
            raise ValueError("cutoff_warning_days must not be negative")


@dataclass(frozen=True)
class ApprovalConfig:
    """
    Approval gate configuration.

    Attributes:
        threshold: Employee cost above which elevated approval is required.
            Default 50,000 in the reference currency.
        approver_role: Role that approves through the normal timeline.
        admin_role: Role allowed to override approval and exceptions.
        viewed_delay_seconds: Simulated delay before the approver opens a
            request.
    """

    threshold: Decimal = Decimal("50000")
    approver_role: str = "CFO"
    admin_role: str = "admin"
    viewed_delay_seconds: float = 1.5

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.threshold < 0:
            raise ValueError("threshold cannot be negative")
        if self.viewed_delay_seconds < 0:
            raise ValueError("viewed_delay_seconds cannot be negative")
        if not self.admin_role:
            raise ValueError("admin_role is required")


@dataclass(frozen=True)
class ExceptionConfig:
    """
    Exception engine configuration.

    Attributes:
        severity_order: Display order of severities, most urgent first.
    """

    severity_order: tuple[str, ...] = ("high", "medium", "low")

    def __post_init__(self) -> None:
        """Validate configuration."""
        if set(self.severity_order) != {"high", "medium", "low"}:
            raise ValueError("severity_order must be a permutation of high, medium, low")

    def rank(self, severity: str) -> int:
        """Sort key for a severity value."""
        return self.severity_order.index(severity)


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Execution sequencer configuration.

    Attributes:
        min_delay_ms: Lower bound of simulated per-payment latency.
        max_delay_ms: Upper bound of simulated per-payment latency.
        auto_retry: If True, transient rail failures are retried.
        max_attempts: Total attempts per payment when auto_retry is on.
    """

    min_delay_ms: int = 800
    max_delay_ms: int = 1500
    auto_retry: bool = True
    max_attempts: int = 3

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.min_delay_ms < 0:
            raise ValueError("min_delay_ms cannot be negative")
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True)
class FxConfig:
    """
    FX review configuration.

    Attributes:
        lock_minutes: How long a locked FX quote stays valid.
    """

    lock_minutes: int = 15

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.lock_minutes < 1:
            raise ValueError("lock_minutes must be at least 1")


@dataclass(frozen=True)
class RailRoute:
    """How payments in one currency are routed and settled."""

    rail: str
    settles_immediately: bool
    eta: str
    fx_spread: Decimal


DEFAULT_RAIL_ROUTES: dict[str, RailRoute] = {
    "EUR": RailRoute("SEPA", True, "1-2 business days", Decimal("0.005")),
    "NOK": RailRoute("Local", False, "Same day", Decimal("0.008")),
    "PHP": RailRoute("SWIFT", False, "3-5 business days", Decimal("0.012")),
}


@dataclass(frozen=True)
class RailConfig:
    """
    Per-currency rail routing.

    Attributes:
        routes: Currency code to RailRoute.
        fallback: Route used for currencies without an explicit entry.
    """

    routes: dict[str, RailRoute] = field(default_factory=lambda: dict(DEFAULT_RAIL_ROUTES))
    fallback: RailRoute = RailRoute("SWIFT", False, "3-5 business days", Decimal("0.012"))

    def route_for(self, currency: str) -> RailRoute:
        """Get the route for a currency."""
        return self.routes.get(currency.upper(), self.fallback)


@dataclass(frozen=True)
class ReconciliationConfig:
    """
    Reconciliation configuration.

    Attributes:
        reschedule_reasons: Accepted reasons for moving a payout date.
        allow_past_dates: If True, reschedule accepts dates before today.
    """

    reschedule_reasons: tuple[str, ...] = ("holiday", "bank-delay")
    allow_past_dates: bool = False


@dataclass(frozen=True)
class CycleConfig:
    """
    Complete payroll cycle configuration.

    Example:
        config = CycleConfig(
            approval=ApprovalConfig(threshold=Decimal("75000")),
            execution=ExecutionConfig(auto_retry=False),
        )
    """

    submissions: SubmissionConfig = field(default_factory=SubmissionConfig)
    approval: ApprovalConfig = field(default_factory=ApprovalConfig)
    exceptions: ExceptionConfig = field(default_factory=ExceptionConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    fx: FxConfig = field(default_factory=FxConfig)
    rails: RailConfig = field(default_factory=RailConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
