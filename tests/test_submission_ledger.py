"""Tests for the submission ledger.

Tests verify:
1. Adjustments and leave requests validate before touching state
2. Mutations are rejected outside the open window
3. Withdraw and review follow the status lifecycle
   and rejected entries can be replaced once
4. Leave is partitioned into this period and upcoming
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_cycle.events import (
    AdjustmentSubmitted,
    RejectionResubmitted,
    SubmissionReviewed,
    SubmissionWithdrawn,
)
from payroll_cycle.models import (
    AdjustmentInput,
    AdjustmentType,
    LeaveInput,
    LeaveType,
    PayrollStatus,
    SubmissionStatus,
)
from payroll_cycle.services import (
    InvalidStateError,
    NotFoundError,
    SubmissionConfig,
    SubmissionLedger,
    ValidationError,
)


def expense(amount="120.50", **kwargs) -> AdjustmentInput:
    return AdjustmentInput(type=AdjustmentType.EXPENSE, amount=Decimal(amount), **kwargs)


def leave(start, end, days, leave_type=LeaveType.ANNUAL) -> LeaveInput:
    return LeaveInput(leave_type=leave_type, start_date=start, end_date=end, total_days=Decimal(days))


class TestAddAdjustment:
    """Test adjustment submission."""

    def test_adds_pending_adjustment(self, window, ledger, clock):
        window.open()
        adj = ledger.add_adjustment(expense(description="Client dinner", category="Meals"))

        assert adj.id == "adj-1"
        assert adj.status == SubmissionStatus.PENDING
        assert adj.amount == Decimal("120.50")
        assert adj.label == "Expense"
        assert adj.category == "Meals"
        assert adj.submitted_at == clock.now()
        assert ledger.adjustments == (adj,)

    def test_ids_are_unique_and_ordered(self, window, ledger):
        window.open()
        first = ledger.add_adjustment(expense())
        second = ledger.add_adjustment(expense())

        assert first.id != second.id
        assert [a.id for a in ledger.adjustments] == [first.id, second.id]

    def test_duplicate_submissions_allowed(self, window, ledger):
        """Two identical bonuses are two entries."""
        window.open()
        data = AdjustmentInput(type="Bonus", amount=Decimal("500"))
        ledger.add_adjustment(data)
        ledger.add_adjustment(data)
        assert len(ledger.adjustments) == 2

    def test_custom_label_kept(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense(label="  Taxi to airport  "))
        assert adj.label == "Taxi to airport"

    def test_overtime_takes_hours(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(AdjustmentInput(type=AdjustmentType.OVERTIME, hours=Decimal("6")))
        assert adj.hours == Decimal("6")
        assert adj.amount is None

    def test_overtime_without_hours_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_adjustment(AdjustmentInput(type=AdjustmentType.OVERTIME))
        assert exc_info.value.field == "hours"
        assert ledger.adjustments == ()

    def test_overtime_with_amount_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError):
            ledger.add_adjustment(
                AdjustmentInput(type=AdjustmentType.OVERTIME, hours=Decimal("2"), amount=Decimal("80"))
            )

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount_rejected(self, window, ledger, amount):
        window.open()
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_adjustment(expense(amount))
        assert exc_info.value.field == "amount"
        assert ledger.adjustments == ()

    def test_missing_amount_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError):
            ledger.add_adjustment(AdjustmentInput(type=AdjustmentType.CORRECTION))

    def test_non_numeric_amount_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError):
            ledger.add_adjustment(AdjustmentInput(type=AdjustmentType.BONUS, amount="lots"))

    def test_unknown_type_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_adjustment(AdjustmentInput(type="Commission", amount=Decimal("10")))
        assert exc_info.value.field == "type"

    def test_rejected_before_window_opens(self, ledger):
        with pytest.raises(InvalidStateError) as exc_info:
            ledger.add_adjustment(expense())
        assert exc_info.value.current_state == "NONE"

    def test_rejected_after_close_by_default(self, window, ledger):
        window.open()
        window.close()
        with pytest.raises(InvalidStateError):
            ledger.add_adjustment(expense())
        assert ledger.adjustments == ()

    def test_queued_after_close_when_enabled(self, window, clock, period):
        ledger = SubmissionLedger(
            period, window, config=SubmissionConfig(queue_late_submissions=True), clock=clock
        )
        window.open()
        window.close()

        adj = ledger.add_adjustment(expense())
        assert adj.status == SubmissionStatus.QUEUED_FOR_NEXT_CYCLE

    def test_never_queued_after_paid(self, window, clock, period):
        ledger = SubmissionLedger(
            period, window, config=SubmissionConfig(queue_late_submissions=True), clock=clock
        )
        window.open()
        window.close()
        window.mark_paid()

        with pytest.raises(InvalidStateError):
            ledger.add_adjustment(expense())

    def test_emits_submitted_event(self, window, ledger, emitter):
        seen = []
        emitter.on(AdjustmentSubmitted, seen.append)
        window.open()
        adj = ledger.add_adjustment(expense())

        assert len(seen) == 1
        assert seen[0].adjustment_id == adj.id
        assert seen[0].status == "Pending"


class TestAddLeaveRequest:
    """Test leave submission."""

    def test_adds_pending_leave(self, window, ledger):
        window.open()
        lr = ledger.add_leave_request(leave(date(2025, 11, 24), date(2025, 11, 25), "2"))

        assert lr.id == "leave-1"
        assert lr.status == SubmissionStatus.PENDING
        assert lr.total_days == Decimal("2")

    def test_half_day_accepted(self, window, ledger):
        window.open()
        lr = ledger.add_leave_request(leave(date(2025, 11, 24), date(2025, 11, 24), "0.5"))
        assert lr.total_days == Decimal("0.5")

    def test_end_before_start_rejected(self, window, ledger):
        window.open()
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_leave_request(leave(date(2025, 11, 25), date(2025, 11, 24), "1"))
        assert exc_info.value.field == "end_date"

    @pytest.mark.parametrize("days", ["0", "0.25", "1.3"])
    def test_days_must_be_half_day_multiples(self, window, ledger, days):
        window.open()
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_leave_request(leave(date(2025, 11, 24), date(2025, 11, 25), days))
        assert exc_info.value.field == "total_days"
        assert ledger.leave_requests == ()

    def test_partitions_this_period_and_upcoming(self, window, ledger):
        window.open()
        inside = ledger.add_leave_request(leave(date(2025, 11, 10), date(2025, 11, 11), "2"))
        straddling = ledger.add_leave_request(leave(date(2025, 11, 28), date(2025, 12, 2), "3"))
        later = ledger.add_leave_request(leave(date(2025, 12, 15), date(2025, 12, 19), "5"))

        assert [lr.id for lr in ledger.leave_this_period()] == [inside.id, straddling.id]
        assert [lr.id for lr in ledger.leave_upcoming()] == [later.id]


class TestWithdraw:
    """Test withdrawing pending submissions."""

    def test_withdraw_removes_adjustment(self, window, ledger, emitter):
        seen = []
        emitter.on(SubmissionWithdrawn, seen.append)
        window.open()
        adj = ledger.add_adjustment(expense())

        removed = ledger.withdraw_adjustment(adj.id)

        assert removed == adj
        assert ledger.adjustments == ()
        assert seen[0].submission_id == adj.id
        assert seen[0].kind == "adjustment"

    def test_withdraw_leave(self, window, ledger):
        window.open()
        lr = ledger.add_leave_request(leave(date(2025, 11, 3), date(2025, 11, 3), "1"))
        ledger.withdraw_leave_request(lr.id)
        assert ledger.leave_requests == ()

    def test_withdraw_unknown_id(self, window, ledger):
        window.open()
        with pytest.raises(NotFoundError):
            ledger.withdraw_adjustment("adj-99")

    def test_withdraw_after_close_rejected(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        window.close()

        with pytest.raises(InvalidStateError):
            ledger.withdraw_adjustment(adj.id)
        assert ledger.adjustments == (adj,)

    def test_withdraw_reviewed_rejected(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=True)

        with pytest.raises(InvalidStateError) as exc_info:
            ledger.withdraw_adjustment(adj.id)
        assert exc_info.value.current_state == "Admin approved"

    def test_ids_not_reused_after_withdraw(self, window, ledger):
        window.open()
        first = ledger.add_adjustment(expense())
        ledger.withdraw_adjustment(first.id)
        second = ledger.add_adjustment(expense())
        assert second.id != first.id


class TestReview:
    """Test admin review of submissions."""

    def test_approve(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        reviewed = ledger.review_adjustment(adj.id, approve=True)

        assert reviewed.status == SubmissionStatus.ADMIN_APPROVED
        assert ledger.get_adjustment(adj.id).status == SubmissionStatus.ADMIN_APPROVED

    def test_reject_requires_reason(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())

        with pytest.raises(ValidationError):
            ledger.review_adjustment(adj.id, approve=False, reason="  ")
        assert ledger.get_adjustment(adj.id).status == SubmissionStatus.PENDING

        reviewed = ledger.review_adjustment(adj.id, approve=False, reason="No receipt attached")
        assert reviewed.status == SubmissionStatus.ADMIN_REJECTED
        assert reviewed.rejection_reason == "No receipt attached"

    def test_review_allowed_after_close(self, window, ledger):
        window.open()
        lr = ledger.add_leave_request(leave(date(2025, 11, 3), date(2025, 11, 4), "2"))
        window.close()

        reviewed = ledger.review_leave_request(lr.id, approve=True)
        assert reviewed.status == SubmissionStatus.ADMIN_APPROVED

    def test_review_twice_rejected(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=True)

        with pytest.raises(InvalidStateError):
            ledger.review_adjustment(adj.id, approve=False, reason="Changed my mind")

    def test_review_after_paid_rejected(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        window.close()
        window.mark_paid()

        with pytest.raises(InvalidStateError):
            ledger.review_adjustment(adj.id, approve=True)

    def test_approve_pending_bulk(self, window, ledger, emitter):
        seen = []
        emitter.on(SubmissionReviewed, seen.append)
        window.open()
        a1 = ledger.add_adjustment(expense())
        a2 = ledger.add_adjustment(expense("40"))
        ledger.review_adjustment(a2.id, approve=False, reason="Duplicate")
        ledger.add_leave_request(leave(date(2025, 11, 3), date(2025, 11, 3), "1"))

        changed = ledger.approve_pending()

        assert changed == 2
        assert ledger.get_adjustment(a1.id).status == SubmissionStatus.ADMIN_APPROVED
        assert ledger.get_adjustment(a2.id).status == SubmissionStatus.ADMIN_REJECTED
        assert all(lr.status == SubmissionStatus.ADMIN_APPROVED for lr in ledger.leave_requests)
        # one for the rejection, two from the bulk approval
        assert len(seen) == 3


class TestResubmitRejection:
    """Test replacing Admin rejected submissions."""

    def test_replacement_clears_attention(self, window, ledger, emitter):
        seen = []
        emitter.on(RejectionResubmitted, seen.append)
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=False, reason="No receipt attached")
        assert ledger.rejections_needing_attention() == [ledger.get_adjustment(adj.id)]

        replacement = ledger.resubmit_adjustment(adj.id, expense(receipt_ref="rcpt-9"))

        assert replacement.id != adj.id
        assert replacement.status == SubmissionStatus.PENDING
        assert ledger.get_adjustment(adj.id).status == SubmissionStatus.ADMIN_REJECTED
        assert ledger.resubmitted_rejection_ids == (adj.id,)
        assert ledger.rejections_needing_attention() == []
        assert seen[0].rejected_id == adj.id
        assert seen[0].replacement_id == replacement.id

    def test_leave_replacement(self, window, ledger):
        window.open()
        lr = ledger.add_leave_request(leave(date(2025, 11, 3), date(2025, 11, 4), "2"))
        ledger.review_leave_request(lr.id, approve=False, reason="Team offsite")

        replacement = ledger.resubmit_leave_request(lr.id, leave(date(2025, 11, 10), date(2025, 11, 11), "2"))

        assert replacement.start_date == date(2025, 11, 10)
        assert ledger.resubmitted_rejection_ids == (lr.id,)

    def test_only_once(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=False, reason="Wrong amount")
        ledger.resubmit_adjustment(adj.id, expense("99"))

        with pytest.raises(InvalidStateError):
            ledger.resubmit_adjustment(adj.id, expense("98"))
        assert len(ledger.adjustments) == 2

    def test_pending_entry_cannot_be_resubmitted(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())

        with pytest.raises(InvalidStateError):
            ledger.resubmit_adjustment(adj.id, expense("10"))
        assert ledger.resubmitted_rejection_ids == ()

    def test_needs_open_window(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=False, reason="Wrong amount")
        window.close()

        with pytest.raises(InvalidStateError):
            ledger.resubmit_adjustment(adj.id, expense("99"))
        assert len(ledger.rejections_needing_attention()) == 1

    def test_invalid_replacement_leaves_rejection_open(self, window, ledger):
        window.open()
        adj = ledger.add_adjustment(expense())
        ledger.review_adjustment(adj.id, approve=False, reason="Wrong amount")

        with pytest.raises(ValidationError):
            ledger.resubmit_adjustment(adj.id, expense("-5"))
        assert ledger.resubmitted_rejection_ids == ()
        assert len(ledger.adjustments) == 1


class TestQueries:
    """Test ledger queries."""

    def test_pending_total_ignores_overtime_and_reviewed(self, window, ledger):
        window.open()
        ledger.add_adjustment(expense("100"))
        ledger.add_adjustment(AdjustmentInput(type=AdjustmentType.OVERTIME, hours=Decimal("3")))
        approved = ledger.add_adjustment(expense("50"))
        ledger.review_adjustment(approved.id, approve=True)

        assert ledger.pending_total() == Decimal("100")
        assert ledger.has_pending() is True

    def test_snapshot(self, window, ledger):
        window.open()
        ledger.add_adjustment(expense())
        window.confirm()

        snapshot = ledger.snapshot()
        assert snapshot.window_state.value == "OPEN"
        assert snapshot.confirmed is True
        assert len(snapshot.adjustments) == 1
        assert snapshot.is_empty is False
        assert snapshot.payroll_status == PayrollStatus.SUBMITTED

    def test_get_unknown_leave(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_leave_request("leave-1")
