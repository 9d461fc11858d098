"""Execution sequencer: pays a batch one payment at a time.

Processing is strictly sequential. Item N+1 moves to processing only after
item N has reached a terminal status, so completion order always equals
input order and at most one item is ever processing.

Per-item latency is drawn from a seeded random.Random within the
configured range and awaited on an injected Scheduler. Tests pause a run
at that await to observe it.

If the awaiting task is cancelled during the latency wait, the item has
not reached the rail yet and goes back to pending. Once the rail has the
payment, the call is shielded and its answer is recorded before the
cancellation propagates. Either way a later execute() resumes cleanly.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Protocol, runtime_checkable
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    DomainEvent,
    EventMetadata,
    ExecutionFinished,
    ExecutionStarted,
    PaymentCompleted,
    PaymentFailedEvent,
    PaymentProcessing,
    PaymentRetryScheduled,
)
from payroll_cycle.models import ContractorPayment, ItemStatus, PaymentProgress
from payroll_cycle.services.config import ExecutionConfig
from payroll_cycle.services.errors import (
    InvalidStateError,
    PaymentFailure,
    TerminalFailure,
    TransientFailure,
    ValidationError,
)
from payroll_cycle.services.scheduling import AsyncioScheduler, Clock, Scheduler, SystemClock

logger = logging.getLogger(__name__)


class Cohort(str, Enum):
    """Which payees an execution run covers."""

    ALL = "all"
    EMPLOYEES = "employees"
    CONTRACTORS = "contractors"

    def includes(self, payment: ContractorPayment) -> bool:
        if self == Cohort.ALL:
            return True
        if self == Cohort.EMPLOYEES:
            return payment.is_employee
        return not payment.is_employee


@dataclass(frozen=True)
class RailResult:
    """Successful hand-off of one payment to a rail."""

    payment_id: str
    provider_reference: str | None = None


@runtime_checkable
class PaymentRail(Protocol):
    """Anything that can move money for one payment.

    Raise TransientFailure for soft errors worth retrying and
    TerminalFailure for errors that never will succeed.
    """

    async def pay(self, payment: ContractorPayment) -> RailResult:
        ...


class SimulatedRail:
    """Rail that accepts every payment."""

    async def pay(self, payment: ContractorPayment) -> RailResult:
        return RailResult(payment_id=payment.id)


class FlakyRail:
    """Rail that fails a share of payments, for demos and drills.

    Failures are transient unless `terminal_ids` names the payment, in
    which case it fails permanently.
    """

    def __init__(
        self,
        failure_rate: float,
        *,
        rng: random.Random | None = None,
        terminal_ids: Iterable[str] = (),
    ):
        if not 0 <= failure_rate <= 1:
            raise ValueError("failure_rate must be between 0 and 1")
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._terminal_ids = set(terminal_ids)

    async def pay(self, payment: ContractorPayment) -> RailResult:
        if payment.id in self._terminal_ids:
            raise TerminalFailure("Account rejected by receiving bank", code="ACCOUNT_INVALID")
        if self._rng.random() < self.failure_rate:
            raise TransientFailure("Bank connection timed out", code="TIMEOUT")
        return RailResult(payment_id=payment.id)


class CancellationToken:
    """Stops a run before its next item starts. The in-flight item finishes."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(frozen=True)
class ExecutionOutcome:
    """Final state of one payment after a run."""

    payment_id: str
    name: str
    status: ItemStatus
    attempts: int
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one execute() call."""

    batch_id: str
    cohort: Cohort
    outcomes: tuple[ExecutionOutcome, ...]
    cancelled: bool = False

    @property
    def completed(self) -> list[str]:
        return [o.payment_id for o in self.outcomes if o.status == ItemStatus.COMPLETE]

    @property
    def failed(self) -> list[str]:
        return [o.payment_id for o in self.outcomes if o.status == ItemStatus.FAILED]

    @property
    def not_started(self) -> list[str]:
        return [o.payment_id for o in self.outcomes if o.status == ItemStatus.PENDING]

    @property
    def all_complete(self) -> bool:
        return all(o.status == ItemStatus.COMPLETE for o in self.outcomes)


class ExecutionSequencer:
    """Sequential payer for a batch's payments."""

    def __init__(
        self,
        batch_id: str,
        payments: Iterable[ContractorPayment],
        *,
        config: ExecutionConfig | None = None,
        rail: PaymentRail | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.batch_id = batch_id
        self._payments = list(payments)
        ids = [p.id for p in self._payments]
        if len(ids) != len(set(ids)):
            raise ValueError("Payment ids must be unique within a batch")
        self._config = config or ExecutionConfig()
        self._rail = rail or SimulatedRail()
        self._scheduler = scheduler or AsyncioScheduler()
        self._rng = rng or random.Random()
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._progress: dict[str, PaymentProgress] = {
            p.id: PaymentProgress(payment_id=p.id, name=p.name, status=ItemStatus.PENDING)
            for p in self._payments
        }
        self._error_codes: dict[str, str | None] = {}
        self._running = False
        self._log: list[ExecutionOutcome] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def payments(self) -> tuple[ContractorPayment, ...]:
        return tuple(self._payments)

    def progress(self) -> tuple[PaymentProgress, ...]:
        """Immutable snapshot in input order. Safe at any observation point."""
        return tuple(self._progress[p.id] for p in self._payments)

    def status_of(self, payment_id: str) -> ItemStatus:
        return self._progress[payment_id].status

    def counts(self) -> dict[ItemStatus, int]:
        counts = {status: 0 for status in ItemStatus}
        for item in self._progress.values():
            counts[item.status] += 1
        return counts

    @property
    def running(self) -> bool:
        return self._running

    @property
    def finished(self) -> bool:
        """Every payment has reached complete or failed."""
        return not self._running and all(
            item.status in (ItemStatus.COMPLETE, ItemStatus.FAILED)
            for item in self._progress.values()
        )

    @property
    def execution_log(self) -> tuple[ExecutionOutcome, ...]:
        """Outcomes of every item processed so far, in processing order."""
        return tuple(self._log)

    def completed_payments(self) -> list[ContractorPayment]:
        return [p for p in self._payments if self._progress[p.id].status == ItemStatus.COMPLETE]

    def failed_payments(self) -> list[ContractorPayment]:
        return [p for p in self._payments if self._progress[p.id].status == ItemStatus.FAILED]

    def pending_total(self) -> Decimal:
        return sum(
            (p.net_pay for p in self._payments if self._progress[p.id].status == ItemStatus.PENDING),
            Decimal("0"),
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        cohort: Cohort | str = Cohort.ALL,
        *,
        cancel_token: CancellationToken | None = None,
        on_outcome: Callable[[ExecutionOutcome], None] | None = None,
        actor_id: str | None = None,
    ) -> ExecutionResult:
        """Pay every pending payment in the cohort, in input order.

        on_outcome is called as each item reaches complete or failed, so
        callers see finished items even if the run is later cancelled.

        A cancelled run can be resumed by calling execute again; it picks
        up the items still pending.
        """
        try:
            cohort = Cohort(cohort)
        except ValueError:
            raise ValidationError(f"Unknown cohort '{cohort}'", field="cohort")
        if self._running:
            logger.warning("Rejected execute for batch %s: already running", self.batch_id)
            raise InvalidStateError("execute batch", "running")
        if self.finished:
            logger.warning("Rejected execute for batch %s: already finished", self.batch_id)
            raise InvalidStateError("execute batch", "finished", "every payment is terminal")

        selected = [
            p for p in self._payments
            if cohort.includes(p) and self._progress[p.id].status == ItemStatus.PENDING
        ]

        self._running = True
        cancelled = False
        logger.info(
            "Executing %d payments for batch %s (cohort %s)",
            len(selected),
            self.batch_id,
            cohort.value,
        )
        self._emit(ExecutionStarted(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            cohort=cohort.value,
            payment_count=len(selected),
        ))

        outcomes: list[ExecutionOutcome] = []
        try:
            for position, payment in enumerate(selected, start=1):
                if cancel_token is not None and cancel_token.cancelled:
                    cancelled = True
                    logger.info(
                        "Execution of batch %s cancelled before %s",
                        self.batch_id,
                        payment.id,
                    )
                    break
                outcomes.append(await self._process(payment, position, on_outcome))
        except asyncio.CancelledError:
            logger.warning(
                "Execution of batch %s interrupted after %d of %d payment(s)",
                self.batch_id,
                len(outcomes),
                len(selected),
            )
            raise
        finally:
            self._running = False

        for payment in selected[len(outcomes):]:
            outcomes.append(self._outcome(payment))

        result = ExecutionResult(
            batch_id=self.batch_id,
            cohort=cohort,
            outcomes=tuple(outcomes),
            cancelled=cancelled,
        )
        logger.info(
            "Execution of batch %s ended: %d complete, %d failed, %d not started",
            self.batch_id,
            len(result.completed),
            len(result.failed),
            len(result.not_started),
        )
        self._emit(ExecutionFinished(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            completed=len(result.completed),
            failed=len(result.failed),
            not_started=len(result.not_started),
            cancelled=cancelled,
        ))
        return result

    async def _process(
        self,
        payment: ContractorPayment,
        position: int,
        on_outcome: Callable[[ExecutionOutcome], None] | None,
    ) -> ExecutionOutcome:
        attempts = 0
        while True:
            attempts += 1
            self._set(payment.id, status=ItemStatus.PROCESSING, attempts=attempts, error=None)
            self._emit(PaymentProcessing(
                metadata=self._metadata(),
                batch_id=self.batch_id,
                payment_id=payment.id,
                position=position,
                attempt=attempts,
            ))

            try:
                await self._scheduler.sleep(self._next_delay())
            except asyncio.CancelledError:
                self._set(payment.id, status=ItemStatus.PENDING, attempts=attempts - 1)
                logger.warning("Payment %s returned to pending: execution interrupted", payment.id)
                raise

            interrupted = False
            call = asyncio.ensure_future(self._call_rail(payment))
            try:
                failure = await asyncio.shield(call)
            except asyncio.CancelledError:
                # the rail already has the payment
                interrupted = True
                failure = await call

            if failure is not None and self._should_retry(failure, attempts):
                if interrupted:
                    self._set(payment.id, status=ItemStatus.PENDING, error=str(failure))
                    logger.warning("Payment %s returned to pending: execution interrupted", payment.id)
                    raise asyncio.CancelledError()
                logger.warning(
                    "Payment %s attempt %d failed (%s); retrying",
                    payment.id,
                    attempts,
                    failure,
                )
                self._emit(PaymentRetryScheduled(
                    metadata=self._metadata(),
                    batch_id=self.batch_id,
                    payment_id=payment.id,
                    attempt=attempts + 1,
                    failure_reason=str(failure),
                ))
                continue

            if failure is not None:
                self._fail(payment, position, attempts, failure)
            else:
                self._complete(payment, position, attempts)

            outcome = self._outcome(payment)
            self._log.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)
            if interrupted:
                raise asyncio.CancelledError()
            return outcome

    async def _call_rail(self, payment: ContractorPayment) -> PaymentFailure | None:
        try:
            await self._rail.pay(payment)
        except PaymentFailure as failure:
            return failure
        return None

    def _should_retry(self, failure: PaymentFailure, attempts: int) -> bool:
        return failure.retryable and self._config.auto_retry and attempts < self._config.max_attempts

    def _fail(self, payment: ContractorPayment, position: int, attempts: int, failure: PaymentFailure) -> None:
        self._set(payment.id, status=ItemStatus.FAILED, error=str(failure))
        self._error_codes[payment.id] = failure.code
        logger.warning(
            "Payment %s failed after %d attempt(s): %s",
            payment.id,
            attempts,
            failure,
        )
        self._emit(PaymentFailedEvent(
            metadata=self._metadata(),
            batch_id=self.batch_id,
            payment_id=payment.id,
            position=position,
            attempts=attempts,
            failure_reason=str(failure),
            failure_code=failure.code,
            is_retryable=failure.retryable,
        ))

    def _complete(self, payment: ContractorPayment, position: int, attempts: int) -> None:
        self._set(payment.id, status=ItemStatus.COMPLETE)
        logger.info("Payment %s complete (%d/%s)", payment.id, position, self.batch_id)
        self._emit(PaymentCompleted(
            metadata=self._metadata(),
            batch_id=self.batch_id,
            payment_id=payment.id,
            position=position,
            attempts=attempts,
        ))

    def _next_delay(self) -> float:
        ms = self._rng.randint(self._config.min_delay_ms, self._config.max_delay_ms)
        return ms / 1000

    def _set(self, payment_id: str, **changes: object) -> None:
        self._progress[payment_id] = replace(self._progress[payment_id], **changes)

    def _outcome(self, payment: ContractorPayment) -> ExecutionOutcome:
        item = self._progress[payment.id]
        return ExecutionOutcome(
            payment_id=payment.id,
            name=payment.name,
            status=item.status,
            attempts=item.attempts,
            error=item.error,
            error_code=self._error_codes.get(payment.id),
        )

    def _metadata(self, actor_id: str | None = None) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self._correlation_id,
            actor_id=actor_id,
            actor_type="admin" if actor_id else "system",
            timestamp=self._clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        if self._emitter:
            self._emitter.emit(event)
