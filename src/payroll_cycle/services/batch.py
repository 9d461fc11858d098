"""PayrollBatch facade: the admin-side pipeline for one payroll batch.

This facade is the single owner of batch state. It wires the exception
engine, approval gate, execution sequencer and reconciliation ledger
together and enforces the stage order:

    review_fx → exceptions → approval → execution → reconciliation → completed

Usage:
    batch = PayrollBatch("nov-2025", payments, exceptions=exceptions)

    batch.lock_fx_rates()
    batch.advance()                      # → exceptions
    batch.resolve_exception("exc-1")
    batch.advance()                      # → approval
    await batch.request_approval()
    batch.approve(role="CFO")
    batch.advance()                      # → execution
    result = await batch.execute_batch()
    batch.advance()                      # → reconciliation
    csv_text = batch.export_csv()
    batch.complete()

Each stage must reach its clearing condition before advance() moves on.
Rejected calls raise and leave the batch untouched.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.store import EventLog
from payroll_cycle.events.types import (
    BatchCompleted,
    BatchStageAdvanced,
    DomainEvent,
    EventMetadata,
    FxQuoteRefreshed,
    FxRatesLocked,
    PayeeRestored,
    PayeeSnoozed,
)
from payroll_cycle.models import (
    ApprovalState,
    BatchStage,
    BatchTotals,
    ContractorPayment,
    ExceptionType,
    ItemStatus,
    PaymentProgress,
    PaymentReceipt,
    PayrollException,
    Severity,
)
from payroll_cycle.services.approval_gate import ApprovalGate
from payroll_cycle.services.config import CycleConfig
from payroll_cycle.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from payroll_cycle.services.exception_engine import ExceptionEngine
from payroll_cycle.services.execution_sequencer import (
    CancellationToken,
    Cohort,
    ExecutionOutcome,
    ExecutionResult,
    ExecutionSequencer,
    PaymentRail,
)
from payroll_cycle.services.reconciliation import ReconciliationLedger
from payroll_cycle.services.scheduling import AsyncioScheduler, Clock, Scheduler, SystemClock

logger = logging.getLogger(__name__)

STAGE_ORDER: list[BatchStage] = [
    BatchStage.REVIEW_FX,
    BatchStage.EXCEPTIONS,
    BatchStage.APPROVAL,
    BatchStage.EXECUTION,
    BatchStage.RECONCILIATION,
    BatchStage.COMPLETED,
]

PRE_EXECUTION_STAGES = {BatchStage.REVIEW_FX, BatchStage.EXCEPTIONS, BatchStage.APPROVAL}


@dataclass
class StageCheck:
    """Result of evaluating a stage's clearing condition."""

    stage: BatchStage
    reasons: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """Check if the stage may be left."""
        return not self.reasons


@dataclass(frozen=True)
class UnresolvedIssues:
    """What still needs attention before a clean completion."""

    blocking_exceptions: int
    failed_payments: int

    @property
    def count(self) -> int:
        return self.blocking_exceptions + self.failed_payments


class PayrollBatch:
    """Single owner of one batch's pipeline state."""

    def __init__(
        self,
        batch_id: str,
        payments: Iterable[ContractorPayment],
        *,
        exceptions: Iterable[PayrollException] = (),
        config: CycleConfig | None = None,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        rail: PaymentRail | None = None,
        rng: random.Random | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.batch_id = batch_id
        self.config = config or CycleConfig()
        self.correlation_id = correlation_id or uuid4()
        self._clock = clock or SystemClock()
        self._scheduler = scheduler or AsyncioScheduler()
        self._rail = rail
        self._rng = rng
        self.emitter = event_emitter or EventEmitter()
        self.event_log = EventLog(correlation_id=self.correlation_id)
        self.emitter.on_correlation(self.correlation_id, self.event_log)

        self._payments = list(payments)
        ids = [p.id for p in self._payments]
        if len(ids) != len(set(ids)):
            raise ValueError("Payment ids must be unique within a batch")
        self._snoozed: set[str] = set()

        self._stage = BatchStage.REVIEW_FX
        self._fx_locked_until: datetime | None = None
        self._completion: BatchCompleted | None = None
        self._payout_exception_ids: set[str] = set()

        shared = dict(
            clock=self._clock,
            event_emitter=self.emitter,
            correlation_id=self.correlation_id,
        )
        self.exceptions = ExceptionEngine(
            exceptions,
            config=self.config.exceptions,
            admin_role=self.config.approval.admin_role,
            **shared,
        )
        self.approval = ApprovalGate(
            batch_id,
            self.payments,
            config=self.config.approval,
            scheduler=self._scheduler,
            **shared,
        )
        self.reconciliation = ReconciliationLedger(
            batch_id,
            rails=self.config.rails,
            config=self.config.reconciliation,
            **shared,
        )
        self._sequencer: ExecutionSequencer | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def stage(self) -> BatchStage:
        return self._stage

    @property
    def payments(self) -> list[ContractorPayment]:
        """Payees included in this batch, in input order."""
        return [p for p in self._payments if p.id not in self._snoozed]

    @property
    def snoozed_payees(self) -> list[ContractorPayment]:
        return [p for p in self._payments if p.id in self._snoozed]

    def get_payment(self, payment_id: str) -> ContractorPayment:
        for p in self._payments:
            if p.id == payment_id:
                return p
        raise NotFoundError("payment", payment_id)

    @property
    def fx_locked(self) -> bool:
        return self._fx_locked_until is not None and self._clock.now() < self._fx_locked_until

    @property
    def fx_locked_until(self) -> datetime | None:
        return self._fx_locked_until if self.fx_locked else None

    def fx_time_remaining(self) -> timedelta:
        if not self.fx_locked:
            return timedelta(0)
        return self._fx_locked_until - self._clock.now()

    @property
    def requires_approval(self) -> bool:
        return self.approval.requires_approval

    @property
    def approval_state(self) -> ApprovalState:
        return self.approval.state

    @property
    def sequencer(self) -> ExecutionSequencer | None:
        return self._sequencer

    @property
    def is_completed(self) -> bool:
        return self._stage == BatchStage.COMPLETED

    @property
    def completion(self) -> BatchCompleted | None:
        return self._completion

    def progress(self) -> tuple[PaymentProgress, ...]:
        """Per-payment execution progress, in input order."""
        if self._sequencer is not None:
            return self._sequencer.progress()
        return tuple(
            PaymentProgress(payment_id=p.id, name=p.name, status=ItemStatus.PENDING)
            for p in self.payments
        )

    @property
    def receipts(self) -> tuple[PaymentReceipt, ...]:
        return self.reconciliation.receipts

    def totals(self) -> BatchTotals:
        payments = self.payments
        by_currency: dict[str, Decimal] = {}
        for p in payments:
            by_currency[p.currency] = by_currency.get(p.currency, Decimal("0")) + p.net_pay
        return BatchTotals(
            gross=sum((p.net_pay for p in payments), Decimal("0")),
            fees=sum((p.est_fees for p in payments), Decimal("0")),
            employer_costs=sum(
                (p.employer_taxes or Decimal("0") for p in payments if p.is_employee),
                Decimal("0"),
            ),
            employee_count=sum(1 for p in payments if p.is_employee),
            contractor_count=sum(1 for p in payments if not p.is_employee),
            by_currency=by_currency,
        )

    def unresolved_issues(self) -> UnresolvedIssues:
        failed = len(self._sequencer.failed_payments()) if self._sequencer else 0
        return UnresolvedIssues(
            blocking_exceptions=len(self.exceptions.blocking_active()),
            failed_payments=failed,
        )

    def check(self, stage: BatchStage | None = None) -> StageCheck:
        """Evaluate the clearing condition of a stage (default: current)."""
        stage = stage or self._stage
        result = StageCheck(stage=stage)

        if stage == BatchStage.REVIEW_FX:
            if self._fx_locked_until is None:
                result.reasons.append("FX rates are not locked")
            elif not self.fx_locked:
                result.reasons.append("FX rate lock has expired")
        elif stage == BatchStage.EXCEPTIONS:
            active = self.exceptions.active_count
            if active:
                result.reasons.append(f"{active} exception(s) still active")
        elif stage == BatchStage.APPROVAL:
            if not self.approval.is_cleared:
                result.reasons.append(
                    f"Approval required (status {self.approval.status.value})"
                )
        elif stage == BatchStage.EXECUTION:
            if self._sequencer is None or not self._sequencer.finished:
                result.reasons.append("Execution has not finished")
        elif stage == BatchStage.COMPLETED:
            result.reasons.append("Batch is completed")

        return result

    # ------------------------------------------------------------------
    # Stage control
    # ------------------------------------------------------------------

    def advance(self, *, actor_id: str | None = None) -> BatchStage:
        """Move one stage forward if the current stage has cleared.

        From reconciliation this is a plain complete() without force.
        """
        if self._stage == BatchStage.RECONCILIATION:
            self.complete(actor_id=actor_id)
            return self._stage

        check = self.check()
        if not check.passed:
            logger.warning(
                "Rejected advance of batch %s from %s: %s",
                self.batch_id,
                self._stage.value,
                "; ".join(check.reasons),
            )
            raise InvalidStateError(
                f"advance from {self._stage.value}",
                self._stage.value,
                "; ".join(check.reasons),
            )

        from_stage = self._stage
        to_stage = STAGE_ORDER[STAGE_ORDER.index(from_stage) + 1]
        if to_stage == BatchStage.EXECUTION:
            self._sequencer = ExecutionSequencer(
                self.batch_id,
                self.payments,
                config=self.config.execution,
                rail=self._rail,
                scheduler=self._scheduler,
                rng=self._rng,
                clock=self._clock,
                event_emitter=self.emitter,
                correlation_id=self.correlation_id,
            )
        self._stage = to_stage

        logger.info("Batch %s advanced %s → %s", self.batch_id, from_stage.value, to_stage.value)
        self._emit(BatchStageAdvanced(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            from_stage=from_stage.value,
            to_stage=to_stage.value,
        ))
        return self._stage

    # ------------------------------------------------------------------
    # FX review
    # ------------------------------------------------------------------

    def lock_fx_rates(self, *, actor_id: str | None = None) -> datetime:
        """Lock current FX quotes for the configured window."""
        self._require_stage("lock FX rates", {BatchStage.REVIEW_FX})
        self._fx_locked_until = self._clock.now() + timedelta(minutes=self.config.fx.lock_minutes)
        logger.info("FX rates for batch %s locked until %s", self.batch_id, self._fx_locked_until)
        self._emit(FxRatesLocked(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            locked_until=self._fx_locked_until,
        ))
        return self._fx_locked_until

    def refresh_quote(self, *, actor_id: str | None = None) -> None:
        """Fetch fresh quotes. Any existing lock is released."""
        self._require_stage("refresh FX quote", {BatchStage.REVIEW_FX})
        self._fx_locked_until = None
        logger.info("FX quotes for batch %s refreshed", self.batch_id)
        self._emit(FxQuoteRefreshed(metadata=self._metadata(actor_id), batch_id=self.batch_id))

    # ------------------------------------------------------------------
    # Payees
    # ------------------------------------------------------------------

    def snooze_payee(self, payment_id: str, *, actor_id: str | None = None) -> ContractorPayment:
        """Exclude a payee from this cycle."""
        self._require_stage("snooze payee", PRE_EXECUTION_STAGES)
        payment = self.get_payment(payment_id)
        if payment_id in self._snoozed:
            raise InvalidStateError("snooze payee", "snoozed", f"{payment_id} is already snoozed")
        self._snoozed.add(payment_id)
        self.approval.update_payments(self.payments)
        logger.info("Payee %s snoozed in batch %s", payment_id, self.batch_id)
        self._emit(PayeeSnoozed(metadata=self._metadata(actor_id), batch_id=self.batch_id, payee_id=payment_id))
        return payment

    def restore_payee(self, payment_id: str, *, actor_id: str | None = None) -> ContractorPayment:
        """Return a snoozed payee to the batch."""
        self._require_stage("restore payee", PRE_EXECUTION_STAGES)
        payment = self.get_payment(payment_id)
        if payment_id not in self._snoozed:
            raise InvalidStateError("restore payee", "included", f"{payment_id} is not snoozed")
        self._snoozed.discard(payment_id)
        self.approval.update_payments(self.payments)
        logger.info("Payee %s restored in batch %s", payment_id, self.batch_id)
        self._emit(PayeeRestored(metadata=self._metadata(actor_id), batch_id=self.batch_id, payee_id=payment_id))
        return payment

    # ------------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------------

    def resolve_exception(self, exception_id: str, *, actor_id: str | None = None) -> PayrollException:
        self._require_not_completed("resolve exception")
        return self.exceptions.resolve(exception_id, actor_id=actor_id)

    def snooze_exception(self, exception_id: str, *, actor_id: str | None = None) -> PayrollException:
        self._require_not_completed("snooze exception")
        return self.exceptions.snooze(exception_id, actor_id=actor_id)

    def override_exception(
        self,
        exception_id: str,
        justification: str,
        *,
        actor_role: str,
        actor_id: str | None = None,
    ) -> PayrollException:
        self._require_not_completed("override exception")
        return self.exceptions.override(
            exception_id, justification, actor_role=actor_role, actor_id=actor_id
        )

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def request_approval(self, *, actor_id: str | None = None) -> ApprovalState:
        self._require_stage("request approval", {BatchStage.APPROVAL})
        return await self.approval.request_approval(actor_id=actor_id)

    def mark_approval_viewed(self, *, actor_id: str | None = None) -> ApprovalState:
        self._require_stage("mark approval viewed", {BatchStage.APPROVAL})
        return self.approval.mark_viewed(actor_id=actor_id)

    def approve(
        self,
        *,
        role: str,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> ApprovalState:
        self._require_stage("approve", {BatchStage.APPROVAL})
        return self.approval.approve(role=role, note=note, actor_id=actor_id)

    def decline(self, note: str, *, role: str, actor_id: str | None = None) -> ApprovalState:
        self._require_stage("decline", {BatchStage.APPROVAL})
        return self.approval.decline(note, role=role, actor_id=actor_id)

    def admin_override(
        self,
        *,
        actor_role: str,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> ApprovalState:
        self._require_stage("override approval", {BatchStage.APPROVAL})
        return self.approval.admin_override(actor_role=actor_role, note=note, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_batch(
        self,
        cohort: Cohort | str = Cohort.ALL,
        *,
        cancel_token: CancellationToken | None = None,
        actor_id: str | None = None,
    ) -> ExecutionResult:
        """Pay the batch sequentially and record receipts.

        A receipt is recorded as each payment completes, so a run that is
        interrupted keeps the receipts of everything already paid.

        Re-checks the exception and approval gates before starting. A
        payout that fails terminally is surfaced as a new high-severity
        missing-bank exception, which must be dealt with before a clean
        completion.
        """
        self._require_stage("execute batch", {BatchStage.EXECUTION})
        blocking = [
            e for e in self.exceptions.active()
            if e.id not in self._payout_exception_ids
        ]
        if blocking:
            logger.warning("Rejected execute for batch %s: %d active exceptions", self.batch_id, len(blocking))
            raise InvalidStateError("execute batch", self._stage.value, f"{len(blocking)} exception(s) still active")
        if not self.approval.is_cleared:
            logger.warning("Rejected execute for batch %s: approval not cleared", self.batch_id)
            raise InvalidStateError("execute batch", self._stage.value, "approval has not been granted")

        assert self._sequencer is not None
        return await self._sequencer.execute(
            cohort,
            cancel_token=cancel_token,
            on_outcome=self._record_outcome,
            actor_id=actor_id,
        )

    def _record_outcome(self, outcome: ExecutionOutcome) -> None:
        payment = self.get_payment(outcome.payment_id)
        if outcome.status == ItemStatus.COMPLETE:
            self.reconciliation.record(payment)
        elif outcome.status == ItemStatus.FAILED:
            raised = self.exceptions.raise_exception(
                payment.id,
                ExceptionType.MISSING_BANK,
                Severity.HIGH,
                contractor_name=payment.name,
                description=f"Payout failed: {outcome.error}",
            )
            self._payout_exception_ids.add(raised.id)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reschedule(
        self,
        payee_id: str,
        new_date: date,
        reason: str,
        *,
        notify: bool = True,
        actor_id: str | None = None,
    ) -> PaymentReceipt:
        self._require_not_completed("reschedule payout")
        return self.reconciliation.reschedule(
            payee_id, new_date, reason, notify=notify, actor_id=actor_id
        )

    def mark_settled(self, payee_id: str) -> PaymentReceipt:
        return self.reconciliation.mark_settled(payee_id)

    def export_csv(self) -> str:
        return self.reconciliation.export_csv()

    def complete(
        self,
        *,
        force: bool = False,
        justification: str | None = None,
        actor_id: str | None = None,
    ) -> BatchCompleted:
        """Mark the cycle complete and lock it.

        With unresolved issues (blocking exceptions or failed payments)
        completion needs force=True and a written justification.
        """
        self._require_stage("complete batch", {BatchStage.RECONCILIATION})
        issues = self.unresolved_issues()
        if issues.count:
            if not force:
                logger.warning(
                    "Rejected completion of batch %s: %d unresolved issue(s)",
                    self.batch_id,
                    issues.count,
                )
                raise InvalidStateError(
                    "complete batch",
                    self._stage.value,
                    f"{issues.count} unresolved issue(s); force with a justification",
                )
            if not justification or not justification.strip():
                raise ValidationError("A justification is required to force completion", field="justification")

        forced = bool(issues.count)
        event = BatchCompleted(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            forced=forced,
            justification=justification.strip() if forced and justification else None,
            unresolved_exceptions=issues.blocking_exceptions,
            failed_payments=issues.failed_payments,
        )
        from_stage = self._stage
        self._stage = BatchStage.COMPLETED
        self._completion = event
        logger.info("Batch %s completed (forced=%s)", self.batch_id, forced)
        self._emit(BatchStageAdvanced(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            from_stage=from_stage.value,
            to_stage=BatchStage.COMPLETED.value,
        ))
        self._emit(event)
        return event

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_stage(self, operation: str, allowed: set[BatchStage]) -> None:
        if self._stage not in allowed:
            logger.warning(
                "Rejected %s for batch %s in stage %s",
                operation,
                self.batch_id,
                self._stage.value,
            )
            raise InvalidStateError(operation, self._stage.value)

    def _require_not_completed(self, operation: str) -> None:
        if self._stage == BatchStage.COMPLETED:
            logger.warning("Rejected %s for completed batch %s", operation, self.batch_id)
            raise InvalidStateError(operation, self._stage.value, "batch is locked")

    def _metadata(self, actor_id: str | None = None) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=self.correlation_id,
            actor_id=actor_id,
            actor_type="admin" if actor_id else "system",
            timestamp=self._clock.now(),
        )

    def _emit(self, event: DomainEvent) -> None:
        self.emitter.emit(event)
