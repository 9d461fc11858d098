"""Pay period API endpoints (employee side)."""

from typing import Annotated, Literal

from fastapi import APIRouter, Path, status

from payroll_cycle.api.dependencies import ActorId, Registry
from payroll_cycle.api.schemas import (
    AdjustmentCreate,
    AdjustmentResponse,
    ErrorResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    PeriodCreate,
    PeriodResponse,
    RejectSubmissionRequest,
    ReviewRequest,
)

router = APIRouter(prefix="/periods", tags=["periods"])

PeriodId = Annotated[str, Path()]


# ============================================================================
# Pay Period lifecycle
# ============================================================================


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_period(registry: Registry, payload: PeriodCreate) -> PeriodResponse:
    """Start tracking a pay period. Its window begins closed to input."""
    cycle = registry.start_period(payload.to_period())
    return PeriodResponse.from_cycle(cycle)


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(registry: Registry, period_id: PeriodId) -> PeriodResponse:
    """Get a pay period and its submissions."""
    return PeriodResponse.from_cycle(registry.get_cycle(period_id))


@router.post(
    "/{period_id}/window/{action}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def transition_window(
    registry: Registry,
    period_id: PeriodId,
    action: Literal["open", "close", "paid"],
) -> PeriodResponse:
    """Move the confirmation window forward (open, close, paid)."""
    cycle = registry.get_cycle(period_id)
    if action == "open":
        cycle.open_window()
    elif action == "close":
        cycle.close_window()
    else:
        cycle.mark_paid()
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/confirm",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def confirm_pay(registry: Registry, actor_id: ActorId, period_id: PeriodId) -> PeriodResponse:
    """Confirm pay for the period."""
    cycle = registry.get_cycle(period_id)
    cycle.confirm_pay(actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/submit-no-changes",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_no_changes(registry: Registry, actor_id: ActorId, period_id: PeriodId) -> PeriodResponse:
    """Confirm pay without any changes."""
    cycle = registry.get_cycle(period_id)
    cycle.submit_no_changes(actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/withdraw-confirmation",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def withdraw_confirmation(registry: Registry, actor_id: ActorId, period_id: PeriodId) -> PeriodResponse:
    cycle = registry.get_cycle(period_id)
    cycle.withdraw_confirmation(actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/fix-and-resubmit",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def fix_and_resubmit(registry: Registry, actor_id: ActorId, period_id: PeriodId) -> PeriodResponse:
    """Send a rejected submission back for review."""
    cycle = registry.get_cycle(period_id)
    cycle.fix_and_resubmit(actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/submission/approve",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_submission(registry: Registry, actor_id: ActorId, period_id: PeriodId) -> PeriodResponse:
    cycle = registry.get_cycle(period_id)
    cycle.approve_submission(actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


@router.post(
    "/{period_id}/submission/reject",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_submission(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    payload: RejectSubmissionRequest,
) -> PeriodResponse:
    cycle = registry.get_cycle(period_id)
    cycle.reject_submission(payload.reason, actor_id=actor_id)
    return PeriodResponse.from_cycle(cycle)


# ============================================================================
# Adjustments
# ============================================================================


@router.post(
    "/{period_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def add_adjustment(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    payload: AdjustmentCreate,
) -> AdjustmentResponse:
    """Submit an expense, overtime, bonus or correction."""
    cycle = registry.get_cycle(period_id)
    adjustment = cycle.add_adjustment(payload.to_input(), actor_id=actor_id)
    return AdjustmentResponse.model_validate(adjustment)


@router.delete(
    "/{period_id}/adjustments/{adjustment_id}",
    response_model=AdjustmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def withdraw_adjustment(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    adjustment_id: Annotated[str, Path()],
) -> AdjustmentResponse:
    """Withdraw a pending adjustment while the window is open."""
    cycle = registry.get_cycle(period_id)
    removed = cycle.withdraw_adjustment(adjustment_id, actor_id=actor_id)
    return AdjustmentResponse.model_validate(removed)


@router.post(
    "/{period_id}/adjustments/{adjustment_id}/review",
    response_model=AdjustmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def review_adjustment(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    adjustment_id: Annotated[str, Path()],
    payload: ReviewRequest,
) -> AdjustmentResponse:
    cycle = registry.get_cycle(period_id)
    reviewed = cycle.review_adjustment(
        adjustment_id, approve=payload.approve, reason=payload.reason, actor_id=actor_id
    )
    return AdjustmentResponse.model_validate(reviewed)


@router.post(
    "/{period_id}/adjustments/{adjustment_id}/resubmit",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resubmit_adjustment(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    adjustment_id: Annotated[str, Path()],
    payload: AdjustmentCreate,
) -> AdjustmentResponse:
    """File a corrected adjustment in place of a rejected one."""
    cycle = registry.get_cycle(period_id)
    replacement = cycle.resubmit_adjustment(adjustment_id, payload.to_input(), actor_id=actor_id)
    return AdjustmentResponse.model_validate(replacement)


# ============================================================================
# Leave requests
# ============================================================================


@router.post(
    "/{period_id}/leave-requests",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def add_leave_request(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    payload: LeaveRequestCreate,
) -> LeaveRequestResponse:
    """Submit a leave request."""
    cycle = registry.get_cycle(period_id)
    leave = cycle.add_leave_request(payload.to_input(), actor_id=actor_id)
    return LeaveRequestResponse.model_validate(leave)


@router.delete(
    "/{period_id}/leave-requests/{leave_request_id}",
    response_model=LeaveRequestResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def withdraw_leave_request(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    leave_request_id: Annotated[str, Path()],
) -> LeaveRequestResponse:
    cycle = registry.get_cycle(period_id)
    removed = cycle.withdraw_leave_request(leave_request_id, actor_id=actor_id)
    return LeaveRequestResponse.model_validate(removed)


@router.post(
    "/{period_id}/leave-requests/{leave_request_id}/review",
    response_model=LeaveRequestResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def review_leave_request(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    leave_request_id: Annotated[str, Path()],
    payload: ReviewRequest,
) -> LeaveRequestResponse:
    cycle = registry.get_cycle(period_id)
    reviewed = cycle.review_leave_request(
        leave_request_id, approve=payload.approve, reason=payload.reason, actor_id=actor_id
    )
    return LeaveRequestResponse.model_validate(reviewed)


@router.post(
    "/{period_id}/leave-requests/{leave_request_id}/resubmit",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resubmit_leave_request(
    registry: Registry,
    actor_id: ActorId,
    period_id: PeriodId,
    leave_request_id: Annotated[str, Path()],
    payload: LeaveRequestCreate,
) -> LeaveRequestResponse:
    cycle = registry.get_cycle(period_id)
    replacement = cycle.resubmit_leave_request(leave_request_id, payload.to_input(), actor_id=actor_id)
    return LeaveRequestResponse.model_validate(replacement)
