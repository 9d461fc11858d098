"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from payroll_cycle.models import (
    AdjustmentInput,
    AdjustmentType,
    ApprovalStatus,
    BatchStage,
    ContractorPayment,
    EmploymentType,
    ExceptionType,
    ItemStatus,
    LeaveInput,
    LeaveType,
    PayPeriod,
    PayrollException,
    PayrollStatus,
    ReceiptStatus,
    Severity,
    SubmissionStatus,
    WindowState,
)
from payroll_cycle.services import PayPeriodCycle, PayrollBatch


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Pay period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for starting a new pay period."""

    id: str = Field(min_length=1)
    label: str
    start_date: date
    end_date: date
    cutoff_date: date | None = None

    def to_period(self) -> PayPeriod:
        return PayPeriod(
            id=self.id,
            label=self.label,
            start_date=self.start_date,
            end_date=self.end_date,
            cutoff_date=self.cutoff_date,
        )


class AdjustmentCreate(BaseModel):
    """Schema for submitting an adjustment."""

    type: AdjustmentType
    amount: Decimal | None = None
    label: str | None = None
    description: str = ""
    hours: Decimal | None = None
    receipt_ref: str | None = None
    category: str | None = None
    incurred_on: date | None = None
    tags: list[str] = Field(default_factory=list)

    def to_input(self) -> AdjustmentInput:
        return AdjustmentInput(
            type=self.type,
            amount=self.amount,
            label=self.label,
            description=self.description,
            hours=self.hours,
            receipt_ref=self.receipt_ref,
            category=self.category,
            incurred_on=self.incurred_on,
            tags=tuple(self.tags),
        )


class LeaveRequestCreate(BaseModel):
    """Schema for submitting a leave request."""

    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Decimal
    reason: str | None = None

    def to_input(self) -> LeaveInput:
        return LeaveInput(
            leave_type=self.leave_type,
            start_date=self.start_date,
            end_date=self.end_date,
            total_days=self.total_days,
            reason=self.reason,
        )


class ReviewRequest(BaseModel):
    """Admin decision on a pending submission."""

    approve: bool
    reason: str | None = None


class RejectSubmissionRequest(BaseModel):
    """Admin sends the period's submission back."""

    reason: str = Field(min_length=1)


class AdjustmentResponse(BaseModel):
    """Schema for adjustment response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: AdjustmentType
    label: str
    amount: Decimal | None
    description: str
    status: SubmissionStatus
    submitted_at: datetime
    hours: Decimal | None = None
    receipt_ref: str | None = None
    category: str | None = None
    incurred_on: date | None = None
    tags: list[str] = Field(default_factory=list)
    rejection_reason: str | None = None


class LeaveRequestResponse(BaseModel):
    """Schema for leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: Decimal
    status: SubmissionStatus
    submitted_at: datetime
    reason: str | None = None
    rejection_reason: str | None = None


class PeriodResponse(BaseModel):
    """Schema for a pay period and its ledger."""

    id: str
    label: str
    start_date: date
    end_date: date
    window_state: WindowState
    is_window_open: bool
    confirmed: bool
    payroll_status: PayrollStatus
    submitted_at: datetime | None
    approved_at: datetime | None
    rejection_reason: str | None
    cutoff_date: date
    days_until_close: int
    is_cutoff_soon: bool
    adjustments: list[AdjustmentResponse]
    leave_requests: list[LeaveRequestResponse]
    leave_this_period: list[str]
    leave_upcoming: list[str]
    pending_total: Decimal
    needs_attention: list[str]
    resubmitted_rejection_ids: list[str]

    @classmethod
    def from_cycle(cls, cycle: PayPeriodCycle) -> PeriodResponse:
        snapshot = cycle.snapshot()
        return cls(
            id=cycle.period.id,
            label=cycle.period.label,
            start_date=cycle.period.start_date,
            end_date=cycle.period.end_date,
            window_state=snapshot.window_state,
            is_window_open=snapshot.window_state == WindowState.OPEN,
            confirmed=snapshot.confirmed,
            payroll_status=snapshot.payroll_status,
            submitted_at=cycle.submitted_at,
            approved_at=cycle.approved_at,
            rejection_reason=cycle.rejection_reason,
            cutoff_date=cycle.cutoff_date,
            days_until_close=cycle.days_until_close(),
            is_cutoff_soon=cycle.is_cutoff_soon(),
            adjustments=[AdjustmentResponse.model_validate(a) for a in snapshot.adjustments],
            leave_requests=[LeaveRequestResponse.model_validate(lr) for lr in snapshot.leave_requests],
            leave_this_period=[lr.id for lr in cycle.leave_this_period()],
            leave_upcoming=[lr.id for lr in cycle.leave_upcoming()],
            pending_total=cycle.pending_total(),
            needs_attention=[item.id for item in cycle.rejections_needing_attention()],
            resubmitted_rejection_ids=list(cycle.resubmitted_rejection_ids),
        )


# ============================================================================
# Batch schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """One payee line in a new batch."""

    id: str = Field(min_length=1)
    name: str
    country: str
    currency: str = Field(min_length=3, max_length=3)
    net_pay: Decimal = Field(ge=0)
    est_fees: Decimal = Field(default=Decimal("0"), ge=0)
    fx_rate: Decimal = Field(default=Decimal("1"), gt=0)
    employment_type: EmploymentType
    employer_taxes: Decimal | None = Field(default=None, ge=0)

    def to_payment(self) -> ContractorPayment:
        return ContractorPayment(
            id=self.id,
            name=self.name,
            country=self.country,
            currency=self.currency.upper(),
            net_pay=self.net_pay,
            est_fees=self.est_fees,
            fx_rate=self.fx_rate,
            employment_type=self.employment_type,
            employer_taxes=self.employer_taxes,
        )


class ExceptionCreate(BaseModel):
    """A known blocking condition supplied with a new batch."""

    id: str = Field(min_length=1)
    contractor_id: str
    type: ExceptionType
    severity: Severity
    contractor_name: str = ""
    description: str = ""
    is_blocking: bool = True

    def to_exception(self) -> PayrollException:
        return PayrollException(
            id=self.id,
            contractor_id=self.contractor_id,
            type=self.type,
            severity=self.severity,
            contractor_name=self.contractor_name,
            description=self.description,
            is_blocking=self.is_blocking,
        )


class BatchCreate(BaseModel):
    """Schema for creating a batch."""

    id: str = Field(min_length=1)
    payments: list[PaymentCreate]
    exceptions: list[ExceptionCreate] = Field(default_factory=list)


class JustificationRequest(BaseModel):
    """Written reason for an override."""

    justification: str = Field(min_length=1)


class ApprovalNoteRequest(BaseModel):
    """Optional note on an approval action."""

    note: str | None = None


class ExecuteRequest(BaseModel):
    """Which payees to execute."""

    cohort: str = "all"


class RescheduleBody(BaseModel):
    """New payout date for an in-transit receipt."""

    new_date: date
    reason: str
    notify: bool = True


class CompleteRequest(BaseModel):
    """Mark the cycle complete."""

    force: bool = False
    justification: str | None = None


class OverrideInfoResponse(BaseModel):
    """Who overrode an exception."""

    model_config = ConfigDict(from_attributes=True)

    overridden_by: str
    overridden_at: datetime
    justification: str


class ExceptionResponse(BaseModel):
    """Schema for exception response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    contractor_id: str
    type: ExceptionType
    severity: Severity
    resolved: bool
    snoozed: bool
    contractor_name: str
    description: str
    is_blocking: bool
    override_info: OverrideInfoResponse | None = None


class ApprovalResponse(BaseModel):
    """Approval timeline."""

    status: ApprovalStatus
    requires_approval: bool
    employee_total_cost: Decimal
    threshold: Decimal
    requested: datetime | None = None
    viewed: datetime | None = None
    approved: datetime | None = None
    declined: datetime | None = None
    overridden: bool = False


class ProgressResponse(BaseModel):
    """Per-payment execution progress."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: str
    name: str
    status: ItemStatus
    attempts: int
    error: str | None = None


class ReceiptResponse(BaseModel):
    """Schema for payment receipt response."""

    model_config = ConfigDict(from_attributes=True)

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


class TotalsResponse(BaseModel):
    """Aggregate batch figures."""

    model_config = ConfigDict(from_attributes=True)

    gross: Decimal
    fees: Decimal
    employer_costs: Decimal
    employee_count: int
    contractor_count: int
    by_currency: dict[str, Decimal]


class BatchResponse(BaseModel):
    """Schema for batch state."""

    id: str
    stage: BatchStage
    fx_locked: bool
    fx_locked_until: datetime | None = None
    active_exceptions: int
    exceptions: list[ExceptionResponse]
    approval: ApprovalResponse
    progress: list[ProgressResponse]
    receipts: list[ReceiptResponse]
    totals: TotalsResponse
    snoozed_payees: list[str]

    @classmethod
    def from_batch(cls, batch: PayrollBatch) -> BatchResponse:
        state = batch.approval.state
        requirement = batch.approval.requirement
        return cls(
            id=batch.batch_id,
            stage=batch.stage,
            fx_locked=batch.fx_locked,
            fx_locked_until=batch.fx_locked_until,
            active_exceptions=batch.exceptions.active_count,
            exceptions=[ExceptionResponse.model_validate(e) for e in batch.exceptions.exceptions],
            approval=ApprovalResponse(
                status=batch.approval.status,
                requires_approval=batch.requires_approval,
                employee_total_cost=requirement.employee_total_cost,
                threshold=requirement.threshold,
                requested=state.requested,
                viewed=state.viewed,
                approved=state.approved,
                declined=state.declined,
                overridden=state.overridden,
            ),
            progress=[ProgressResponse.model_validate(p) for p in batch.progress()],
            receipts=[ReceiptResponse.model_validate(r) for r in batch.receipts],
            totals=TotalsResponse.model_validate(batch.totals()),
            snoozed_payees=[p.id for p in batch.snoozed_payees],
        )


class ExecutionResponse(BaseModel):
    """Outcome of an execution run."""

    cancelled: bool
    completed: list[str]
    failed: list[str]
    not_started: list[str]
    batch: BatchResponse
