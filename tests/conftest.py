"""Pytest fixtures for payroll cycle tests."""

from __future__ import annotations

import random
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from payroll_cycle.events import EventEmitter
from payroll_cycle.models import (
    ContractorPayment,
    EmploymentType,
    ExceptionType,
    PayPeriod,
    PayrollException,
    Severity,
)
from payroll_cycle.services import (
    CycleConfig,
    ExecutionConfig,
    FixedClock,
    ImmediateScheduler,
    ManualScheduler,
    PayPeriodCycle,
    PayPeriodWindow,
    PayrollBatch,
    SubmissionConfig,
    SubmissionLedger,
)

NOW = datetime(2025, 11, 20, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned inside the November 2025 period."""
    return FixedClock(NOW)


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def period() -> PayPeriod:
    return PayPeriod(
        id="2025-11",
        label="November 2025",
        start_date=date(2025, 11, 1),
        end_date=date(2025, 11, 30),
    )


@pytest.fixture
def next_period() -> PayPeriod:
    return PayPeriod(
        id="2025-12",
        label="December 2025",
        start_date=date(2025, 12, 1),
        end_date=date(2025, 12, 31),
    )


@pytest.fixture
def window(clock, emitter, period) -> PayPeriodWindow:
    return PayPeriodWindow(period.id, clock=clock, event_emitter=emitter)


@pytest.fixture
def ledger(window, clock, emitter, period) -> SubmissionLedger:
    return SubmissionLedger(period, window, clock=clock, event_emitter=emitter)


@pytest.fixture
def queueing_config() -> CycleConfig:
    return CycleConfig(submissions=SubmissionConfig(queue_late_submissions=True))


@pytest.fixture
def make_cycle(clock, period):
    """Factory for a PayPeriodCycle sharing the test clock."""

    def _make(config: CycleConfig | None = None, *, open_window: bool = True) -> PayPeriodCycle:
        cycle = PayPeriodCycle(period, config=config, clock=clock)
        if open_window:
            cycle.open_window()
        return cycle

    return _make


@pytest.fixture
def cycle(make_cycle) -> PayPeriodCycle:
    """Cycle with its window already open."""
    return make_cycle()


@pytest.fixture
def payments() -> list[ContractorPayment]:
    """Two employees (30K + 25K employer cost) and three contractors."""
    return [
        ContractorPayment(
            id="emp-1",
            name="Marta Lind",
            country="Norway",
            currency="NOK",
            net_pay=Decimal("26000"),
            est_fees=Decimal("120"),
            fx_rate=Decimal("0.094"),
            employment_type=EmploymentType.EMPLOYEE,
            employer_taxes=Decimal("4000"),
        ),
        ContractorPayment(
            id="emp-2",
            name="Paolo Reyes",
            country="Philippines",
            currency="PHP",
            net_pay=Decimal("22000"),
            est_fees=Decimal("90"),
            fx_rate=Decimal("0.018"),
            employment_type=EmploymentType.EMPLOYEE,
            employer_taxes=Decimal("3000"),
        ),
        ContractorPayment(
            id="ctr-1",
            name="Sofie Becker",
            country="Germany",
            currency="EUR",
            net_pay=Decimal("5200"),
            est_fees=Decimal("25"),
            fx_rate=Decimal("1.08"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
        ContractorPayment(
            id="ctr-2",
            name="Jonas Berg",
            country="Norway",
            currency="NOK",
            net_pay=Decimal("48000"),
            est_fees=Decimal("60"),
            fx_rate=Decimal("0.094"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
        ContractorPayment(
            id="ctr-3",
            name="Ana Cruz",
            country="Philippines",
            currency="PHP",
            net_pay=Decimal("180000"),
            est_fees=Decimal("45"),
            fx_rate=Decimal("0.018"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
    ]


@pytest.fixture
def contractors_only(payments) -> list[ContractorPayment]:
    return [p for p in payments if not p.is_employee]


@pytest.fixture
def exceptions() -> list[PayrollException]:
    """Two blocking exceptions of different severity plus one informational."""
    return [
        PayrollException(
            id="exc-1",
            contractor_id="ctr-1",
            type=ExceptionType.DOC_EXPIRY,
            severity=Severity.LOW,
            contractor_name="Sofie Becker",
            description="Contractor agreement expires in 14 days",
        ),
        PayrollException(
            id="exc-2",
            contractor_id="ctr-3",
            type=ExceptionType.MISSING_BANK,
            severity=Severity.HIGH,
            contractor_name="Ana Cruz",
            description="Bank account details missing",
        ),
        PayrollException(
            id="exc-3",
            contractor_id="ctr-2",
            type=ExceptionType.HOLIDAY_RAILS,
            severity=Severity.MEDIUM,
            contractor_name="Jonas Berg",
            description="Local rail closed on payout date",
            is_blocking=False,
        ),
    ]


@pytest.fixture
def fast_config() -> CycleConfig:
    """Default policy with a tight latency range."""
    return CycleConfig(execution=ExecutionConfig(min_delay_ms=1, max_delay_ms=5))


@pytest.fixture
def make_batch(clock, fast_config):
    """Factory for a PayrollBatch wired to deterministic time."""

    def _make(
        payments: list[ContractorPayment],
        *,
        exceptions: list[PayrollException] | None = None,
        config: CycleConfig | None = None,
        scheduler=None,
        rail=None,
        batch_id: str = "nov-2025",
        event_emitter=None,
    ) -> PayrollBatch:
        return PayrollBatch(
            batch_id,
            payments,
            exceptions=exceptions or [],
            config=config or fast_config,
            clock=clock,
            scheduler=scheduler or ImmediateScheduler(),
            rail=rail,
            rng=random.Random(42),
            event_emitter=event_emitter,
        )

    return _make


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def drive_to_execution():
    """Lock FX, clear exceptions and approval, and advance into execution."""

    async def _drive(batch: PayrollBatch) -> None:
        batch.lock_fx_rates()
        batch.advance()
        for exc in batch.exceptions.active():
            batch.resolve_exception(exc.id)
        batch.advance()
        if batch.requires_approval:
            await batch.request_approval()
            batch.approve(role="CFO")
        batch.advance()

    return _drive
