"""Payroll batch API endpoints (admin side)."""

from typing import Annotated, Literal

from fastapi import APIRouter, Path, Response, status

from payroll_cycle.api.dependencies import ActorId, ActorRole, Registry
from payroll_cycle.api.schemas import (
    ApprovalNoteRequest,
    BatchCreate,
    BatchResponse,
    CompleteRequest,
    ErrorResponse,
    ExceptionResponse,
    ExecuteRequest,
    ExecutionResponse,
    JustificationRequest,
    ReceiptResponse,
    RescheduleBody,
)
from payroll_cycle.services import ValidationError

router = APIRouter(prefix="/batches", tags=["batches"])

BatchId = Annotated[str, Path()]

_NOT_FOUND_OR_CONFLICT = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


# ============================================================================
# Batch CRUD
# ============================================================================


@router.post(
    "",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_batch(registry: Registry, payload: BatchCreate) -> BatchResponse:
    """Create a batch in the FX review stage."""
    try:
        payments = [p.to_payment() for p in payload.payments]
    except ValueError as e:
        raise ValidationError(str(e), field="payments") from e
    batch = registry.create_batch(
        payload.id,
        payments,
        [e.to_exception() for e in payload.exceptions],
    )
    return BatchResponse.from_batch(batch)


@router.get(
    "/{batch_id}",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_batch(registry: Registry, batch_id: BatchId) -> BatchResponse:
    """Get a batch with its exceptions, approval, progress and receipts."""
    return BatchResponse.from_batch(registry.get_batch(batch_id))


@router.post(
    "/{batch_id}/advance",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def advance_batch(registry: Registry, actor_id: ActorId, batch_id: BatchId) -> BatchResponse:
    """Move to the next stage once the current one has cleared."""
    batch = registry.get_batch(batch_id)
    batch.advance(actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/complete",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def complete_batch(
    registry: Registry,
    actor_id: ActorId,
    batch_id: BatchId,
    payload: CompleteRequest,
) -> BatchResponse:
    """Mark the cycle complete, forcing past unresolved issues if asked."""
    batch = registry.get_batch(batch_id)
    batch.complete(force=payload.force, justification=payload.justification, actor_id=actor_id)
    return BatchResponse.from_batch(batch)


# ============================================================================
# FX review and payees
# ============================================================================


@router.post(
    "/{batch_id}/fx/lock",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def lock_fx_rates(registry: Registry, actor_id: ActorId, batch_id: BatchId) -> BatchResponse:
    batch = registry.get_batch(batch_id)
    batch.lock_fx_rates(actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/fx/refresh",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def refresh_fx_quote(registry: Registry, actor_id: ActorId, batch_id: BatchId) -> BatchResponse:
    batch = registry.get_batch(batch_id)
    batch.refresh_quote(actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/payees/{payee_id}/{action}",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def change_payee(
    registry: Registry,
    actor_id: ActorId,
    batch_id: BatchId,
    payee_id: Annotated[str, Path()],
    action: Literal["snooze", "restore"],
) -> BatchResponse:
    """Exclude a payee from this cycle, or bring them back."""
    batch = registry.get_batch(batch_id)
    if action == "snooze":
        batch.snooze_payee(payee_id, actor_id=actor_id)
    else:
        batch.restore_payee(payee_id, actor_id=actor_id)
    return BatchResponse.from_batch(batch)


# ============================================================================
# Exceptions
# ============================================================================


@router.post(
    "/{batch_id}/exceptions/{exception_id}/override",
    response_model=ExceptionResponse,
    responses={403: {"model": ErrorResponse}, **_NOT_FOUND_OR_CONFLICT},
)
async def override_exception(
    registry: Registry,
    actor_role: ActorRole,
    actor_id: ActorId,
    batch_id: BatchId,
    exception_id: Annotated[str, Path()],
    payload: JustificationRequest,
) -> ExceptionResponse:
    """Admin-only override with a written justification."""
    batch = registry.get_batch(batch_id)
    updated = batch.override_exception(
        exception_id,
        payload.justification,
        actor_role=actor_role or "anonymous",
        actor_id=actor_id,
    )
    return ExceptionResponse.model_validate(updated)


@router.post(
    "/{batch_id}/exceptions/{exception_id}/{action}",
    response_model=ExceptionResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def handle_exception(
    registry: Registry,
    actor_id: ActorId,
    batch_id: BatchId,
    exception_id: Annotated[str, Path()],
    action: Literal["resolve", "snooze"],
) -> ExceptionResponse:
    """Resolve or snooze an active exception."""
    batch = registry.get_batch(batch_id)
    if action == "resolve":
        updated = batch.resolve_exception(exception_id, actor_id=actor_id)
    else:
        updated = batch.snooze_exception(exception_id, actor_id=actor_id)
    return ExceptionResponse.model_validate(updated)


# ============================================================================
# Approval
# ============================================================================


@router.post(
    "/{batch_id}/approval/request",
    response_model=BatchResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def request_approval(registry: Registry, actor_id: ActorId, batch_id: BatchId) -> BatchResponse:
    """Send the approval request and wait for the approver to view it."""
    batch = registry.get_batch(batch_id)
    await batch.request_approval(actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/approval/approve",
    response_model=BatchResponse,
    responses={403: {"model": ErrorResponse}, **_NOT_FOUND_OR_CONFLICT},
)
async def approve_batch(
    registry: Registry,
    actor_role: ActorRole,
    actor_id: ActorId,
    batch_id: BatchId,
    payload: ApprovalNoteRequest,
) -> BatchResponse:
    batch = registry.get_batch(batch_id)
    batch.approve(role=actor_role or "anonymous", note=payload.note, actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/approval/decline",
    response_model=BatchResponse,
    responses={403: {"model": ErrorResponse}, **_NOT_FOUND_OR_CONFLICT},
)
async def decline_batch(
    registry: Registry,
    actor_role: ActorRole,
    actor_id: ActorId,
    batch_id: BatchId,
    payload: ApprovalNoteRequest,
) -> BatchResponse:
    batch = registry.get_batch(batch_id)
    batch.decline(payload.note or "", role=actor_role or "anonymous", actor_id=actor_id)
    return BatchResponse.from_batch(batch)


@router.post(
    "/{batch_id}/approval/override",
    response_model=BatchResponse,
    responses={403: {"model": ErrorResponse}, **_NOT_FOUND_OR_CONFLICT},
)
async def override_approval(
    registry: Registry,
    actor_role: ActorRole,
    actor_id: ActorId,
    batch_id: BatchId,
    payload: ApprovalNoteRequest,
) -> BatchResponse:
    """Admin approves directly, bypassing request and view."""
    batch = registry.get_batch(batch_id)
    batch.admin_override(actor_role=actor_role or "anonymous", note=payload.note, actor_id=actor_id)
    return BatchResponse.from_batch(batch)


# ============================================================================
# Execution and reconciliation
# ============================================================================


@router.post(
    "/{batch_id}/execute",
    response_model=ExecutionResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def execute_batch(
    registry: Registry,
    actor_id: ActorId,
    batch_id: BatchId,
    payload: ExecuteRequest,
) -> ExecutionResponse:
    """Pay the selected cohort one payment at a time."""
    batch = registry.get_batch(batch_id)
    result = await batch.execute_batch(payload.cohort, actor_id=actor_id)
    return ExecutionResponse(
        cancelled=result.cancelled,
        completed=result.completed,
        failed=result.failed,
        not_started=result.not_started,
        batch=BatchResponse.from_batch(batch),
    )


@router.post(
    "/{batch_id}/receipts/{payee_id}/reschedule",
    response_model=ReceiptResponse,
    responses=_NOT_FOUND_OR_CONFLICT,
)
async def reschedule_payout(
    registry: Registry,
    actor_id: ActorId,
    batch_id: BatchId,
    payee_id: Annotated[str, Path()],
    payload: RescheduleBody,
) -> ReceiptResponse:
    """Move an in-transit payout to a new date."""
    batch = registry.get_batch(batch_id)
    receipt = batch.reschedule(
        payee_id,
        payload.new_date,
        payload.reason,
        notify=payload.notify,
        actor_id=actor_id,
    )
    return ReceiptResponse.model_validate(receipt)


@router.get(
    "/{batch_id}/receipts.csv",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}, 404: {"model": ErrorResponse}},
)
async def export_receipts(registry: Registry, batch_id: BatchId) -> Response:
    """Download the reconciliation export."""
    batch = registry.get_batch(batch_id)
    return Response(
        content=batch.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{batch_id}-receipts.csv"'},
    )
