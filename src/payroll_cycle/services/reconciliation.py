"""Reconciliation ledger: one receipt per executed payment.

Receipts are created at execution time from the rail table. After that the
only mutable fields are the ETA (reschedule) and the settlement status
(InTransit → Paid when the bank confirms).
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from payroll_cycle.events.emitter import EventEmitter
from payroll_cycle.events.types import (
    DomainEvent,
    EventMetadata,
    PayoutRescheduled,
    ReceiptRecorded,
    ReceiptSettled,
    ReconciliationExported,
)
from payroll_cycle.models import (
    ContractorPayment,
    PaymentReceipt,
    ReceiptStatus,
    RescheduleRequest,
)
from payroll_cycle.services.config import RailConfig, ReconciliationConfig
from payroll_cycle.services.errors import InvalidStateError, NotFoundError, ValidationError
from payroll_cycle.services.scheduling import Clock, SystemClock

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

CSV_COLUMNS = (
    "payee",
    "amount",
    "currency",
    "status",
    "rail",
    "reference",
    "paid_at",
    "fx_rate",
    "fx_fee",
    "processing_fee",
)


def _plain(value: Decimal) -> str:
    """Decimal as a plain string, never in exponent form."""
    return format(value, "f")


@dataclass(frozen=True)
class ReconciliationSummary:
    """Counts and totals across receipts."""

    reconciled: int
    pending: int
    total_by_currency: dict[str, Decimal] = field(default_factory=dict)
    fx_fees: Decimal = Decimal("0")
    processing_fees: Decimal = Decimal("0")

    @property
    def total(self) -> int:
        return self.reconciled + self.pending


class ReconciliationLedger:
    """Receipts for one batch, in execution order."""

    def __init__(
        self,
        batch_id: str,
        *,
        rails: RailConfig | None = None,
        config: ReconciliationConfig | None = None,
        clock: Clock | None = None,
        event_emitter: EventEmitter | None = None,
        correlation_id: UUID | None = None,
    ):
        self.batch_id = batch_id
        self._rails = rails or RailConfig()
        self._config = config or ReconciliationConfig()
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._correlation_id = correlation_id
        self._receipts: list[PaymentReceipt] = []
        self._rail_seq: Counter[str] = Counter()

    @property
    def receipts(self) -> tuple[PaymentReceipt, ...]:
        return tuple(self._receipts)

    def __len__(self) -> int:
        return len(self._receipts)

    def get(self, payee_id: str) -> PaymentReceipt:
        return self._receipts[self._index(payee_id)]

    def record(
        self,
        payment: ContractorPayment,
        *,
        provider_reference: str | None = None,
    ) -> PaymentReceipt:
        """Create the receipt for a completed payment."""
        if any(r.payee_id == payment.id for r in self._receipts):
            raise InvalidStateError("record receipt", "recorded", f"payee {payment.id} already has a receipt")

        route = self._rails.route_for(payment.currency)
        now = self._clock.now()
        self._rail_seq[route.rail] += 1
        reference = provider_reference or f"{route.rail}-{now.year}-{self._rail_seq[route.rail]:03d}"
        status = ReceiptStatus.PAID if route.settles_immediately else ReceiptStatus.IN_TRANSIT

        receipt = PaymentReceipt(
            payee_id=payment.id,
            payee_name=payment.name,
            amount=payment.net_pay,
            currency=payment.currency,
            status=status,
            rail=route.rail,
            reference=reference,
            fx_rate=payment.fx_rate,
            fx_spread=route.fx_spread,
            fx_fee=(payment.net_pay * route.fx_spread).quantize(CENTS, rounding=ROUND_HALF_UP),
            processing_fee=payment.est_fees,
            eta=route.eta,
            paid_at=now if status == ReceiptStatus.PAID else None,
        )
        self._receipts.append(receipt)

        logger.info(
            "Receipt %s recorded for %s: %s %s via %s (%s)",
            reference,
            payment.id,
            payment.net_pay,
            payment.currency,
            route.rail,
            status.value,
        )
        self._emit(ReceiptRecorded(
            metadata=self._metadata(),
            batch_id=self.batch_id,
            payee_id=payment.id,
            amount=receipt.amount,
            currency=receipt.currency,
            status=status.value,
            rail=route.rail,
            reference=reference,
        ))
        return receipt

    def reschedule(
        self,
        payee_id: str,
        new_date: date,
        reason: str,
        *,
        notify: bool = True,
        actor_id: str | None = None,
    ) -> PaymentReceipt:
        """Move the ETA of an in-transit payout. Nothing else changes."""
        if reason not in self._config.reschedule_reasons:
            raise ValidationError(
                f"Reason must be one of: {', '.join(self._config.reschedule_reasons)}",
                field="reason",
            )
        if isinstance(new_date, datetime) or not isinstance(new_date, date):
            raise ValidationError("New date must be a calendar date", field="new_date")
        today = self._clock.today()
        if new_date < today and not self._config.allow_past_dates:
            raise ValidationError(f"New date {new_date} is before today ({today})", field="new_date")

        index = self._index(payee_id)
        receipt = self._receipts[index]
        if receipt.status != ReceiptStatus.IN_TRANSIT:
            logger.warning("Rejected reschedule for %s: receipt is %s", payee_id, receipt.status.value)
            raise InvalidStateError("reschedule payout", receipt.status.value, "payout already settled")

        updated = replace(receipt, eta=new_date.isoformat())
        self._receipts[index] = updated
        logger.info(
            "Payout for %s rescheduled %s → %s (%s)",
            payee_id,
            receipt.eta,
            updated.eta,
            reason,
        )
        self._emit(PayoutRescheduled(
            metadata=self._metadata(actor_id),
            batch_id=self.batch_id,
            payee_id=payee_id,
            previous_eta=receipt.eta,
            new_eta=updated.eta,
            reason=reason,
            notify=notify,
        ))
        return updated

    def apply(self, request: RescheduleRequest, *, actor_id: str | None = None) -> PaymentReceipt:
        """Reschedule from a request object."""
        return self.reschedule(
            request.payee_id,
            request.new_date,
            request.reason,
            notify=request.notify,
            actor_id=actor_id,
        )

    def mark_settled(self, payee_id: str) -> PaymentReceipt:
        """Bank confirmed an in-transit payout."""
        index = self._index(payee_id)
        receipt = self._receipts[index]
        if receipt.status != ReceiptStatus.IN_TRANSIT:
            raise InvalidStateError("mark settled", receipt.status.value, "payout already settled")

        now = self._clock.now()
        updated = replace(receipt, status=ReceiptStatus.PAID, paid_at=now)
        self._receipts[index] = updated
        logger.info("Payout for %s settled", payee_id)
        self._emit(ReceiptSettled(
            metadata=self._metadata(),
            batch_id=self.batch_id,
            payee_id=payee_id,
            paid_at=now,
        ))
        return updated

    def summary(self) -> ReconciliationSummary:
        totals: dict[str, Decimal] = {}
        for r in self._receipts:
            totals[r.currency] = totals.get(r.currency, Decimal("0")) + r.amount
        return ReconciliationSummary(
            reconciled=sum(1 for r in self._receipts if r.status == ReceiptStatus.PAID),
            pending=sum(1 for r in self._receipts if r.status == ReceiptStatus.IN_TRANSIT),
            total_by_currency=totals,
            fx_fees=sum((r.fx_fee for r in self._receipts), Decimal("0")),
            processing_fees=sum((r.processing_fee for r in self._receipts), Decimal("0")),
        )

    def export_rows(self) -> list[list[str]]:
        """Receipt rows in CSV column order, without the header."""
        return [
            [
                r.payee_id,
                _plain(r.amount),
                r.currency,
                r.status.value,
                r.rail,
                r.reference,
                r.paid_at.isoformat() if r.paid_at else "",
                _plain(r.fx_rate),
                _plain(r.fx_fee),
                _plain(r.processing_fee),
            ]
            for r in self._receipts
        ]

    def export_csv(self) -> str:
        """Export every receipt as CSV for accounting.

        Returns CSV content as a string: one header row, then one row per
        receipt in insertion order.
        """
        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow(CSV_COLUMNS)
        rows = self.export_rows()
        writer.writerows(rows)

        logger.info("Exported %d receipts for batch %s", len(rows), self.batch_id)
        self._emit(ReconciliationExported(
            metadata=self._metadata(),
            batch_id=self.batch_id,
            row_count=len(rows),
            export_format="csv",
        ))
        return output.getvalue()

    def _index(self, payee_id: str) -> int:
        for i, r in enumerate(self._receipts):
            if r.payee_id == payee_id:
                return i
        raise NotFoundError("receipt", payee_id)

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
