"""Tests for the PayPeriodCycle facade."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_cycle.models import (
    AdjustmentInput,
    AdjustmentType,
    LeaveInput,
    LeaveType,
    PayPeriod,
    PayrollStatus,
    SubmissionStatus,
    WindowState,
)
from payroll_cycle.services import (
    CycleConfig,
    InvalidStateError,
    PayPeriodCycle,
    SubmissionConfig,
    ValidationError,
)


def bonus(amount="250") -> AdjustmentInput:
    return AdjustmentInput(type=AdjustmentType.BONUS, amount=Decimal(amount))


class TestPayPeriodCycle:
    """Test the employee-side facade."""

    def test_new_cycle_window_is_none(self, make_cycle):
        cycle = make_cycle(open_window=False)
        assert cycle.window_state == WindowState.NONE
        assert cycle.is_window_open is False
        assert cycle.adjustments == ()

    def test_period_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            PayPeriodCycle(PayPeriod("bad", "Bad", date(2025, 11, 30), date(2025, 11, 1)))

    def test_full_employee_flow(self, cycle):
        adj = cycle.add_adjustment(bonus())
        lr = cycle.add_leave_request(
            LeaveInput(LeaveType.SICK, date(2025, 11, 12), date(2025, 11, 12), Decimal("1"))
        )
        cycle.confirm_pay()
        cycle.close_window()
        cycle.review_adjustment(adj.id, approve=True)
        cycle.review_leave_request(lr.id, approve=False, reason="Overlaps a company event")
        cycle.mark_paid()

        assert cycle.window_state == WindowState.PAID
        assert cycle.confirmed is True
        assert cycle.get_adjustment(adj.id).status == SubmissionStatus.ADMIN_APPROVED
        assert cycle.get_leave_request(lr.id).status == SubmissionStatus.ADMIN_REJECTED

    def test_confirm_with_changes_reflects_ledger(self, cycle):
        cycle.confirm_pay()
        cycle.add_adjustment(bonus())
        cycle.confirm_pay()

        confirmations = [e for e in cycle.event_log if e.event_type == "PayConfirmed"]
        assert [e.with_changes for e in confirmations] == [False, True]

    def test_submit_no_changes_with_entries_present(self, cycle):
        cycle.add_adjustment(bonus())
        assert cycle.submit_no_changes() is True
        assert cycle.confirmed is True

        confirmation = [e for e in cycle.event_log if e.event_type == "PayConfirmed"][-1]
        assert confirmation.with_changes is False

    def test_withdraw_confirmation_then_edit(self, cycle):
        cycle.confirm_pay()
        cycle.withdraw_confirmation()
        adj = cycle.add_adjustment(bonus())

        assert cycle.confirmed is False
        assert cycle.adjustments == (adj,)

    def test_edits_rejected_after_close(self, cycle):
        adj = cycle.add_adjustment(bonus())
        cycle.close_window()

        with pytest.raises(InvalidStateError):
            cycle.withdraw_adjustment(adj.id)
        with pytest.raises(InvalidStateError):
            cycle.confirm_pay()
        assert cycle.adjustments == (adj,)

    def test_pending_total_and_snapshot(self, cycle):
        cycle.add_adjustment(bonus("100"))
        cycle.add_adjustment(bonus("50.25"))

        assert cycle.pending_total() == Decimal("150.25")
        assert len(cycle.snapshot().adjustments) == 2

    def test_leave_partitions(self, cycle):
        cycle.add_leave_request(
            LeaveInput(LeaveType.ANNUAL, date(2025, 11, 3), date(2025, 11, 4), Decimal("2"))
        )
        cycle.add_leave_request(
            LeaveInput(LeaveType.ANNUAL, date(2026, 1, 5), date(2026, 1, 9), Decimal("5"))
        )

        assert len(cycle.leave_this_period()) == 1
        assert len(cycle.leave_upcoming()) == 1

    def test_event_log_scoped_to_cycle(self, cycle):
        cycle.add_adjustment(bonus())
        types = [e.event_type for e in cycle.event_log]
        assert types == ["WindowOpened", "AdjustmentSubmitted"]
        assert all(e.metadata.correlation_id == cycle.correlation_id for e in cycle.event_log)


class TestSubmissionLifecycle:
    """Test draft, submitted, approved and rejected as the employee sees them."""

    def test_confirm_then_approve(self, cycle, clock):
        pending = cycle.add_adjustment(bonus())
        cycle.confirm_pay()
        submitted_at = cycle.submitted_at
        clock.advance(hours=4)

        assert cycle.approve_submission() == PayrollStatus.APPROVED
        assert cycle.approved_at == clock.now()
        assert cycle.submitted_at == submitted_at
        # nothing stays Pending once the submission is approved
        assert cycle.get_adjustment(pending.id).status == SubmissionStatus.ADMIN_APPROVED

    def test_new_request_after_approval_needs_review_again(self, cycle):
        cycle.submit_no_changes()
        cycle.approve_submission()

        cycle.add_leave_request(
            LeaveInput(LeaveType.SICK, date(2025, 11, 24), date(2025, 11, 24), Decimal("1"))
        )

        assert cycle.payroll_status == PayrollStatus.SUBMITTED
        assert cycle.approved_at is None

    def test_fix_and_resubmit(self, cycle):
        adj = cycle.add_adjustment(bonus("900"))
        cycle.confirm_pay()
        cycle.review_adjustment(adj.id, approve=False, reason="Bonus was 600")
        cycle.reject_submission("Please correct the bonus")

        assert cycle.payroll_status == PayrollStatus.REJECTED
        assert cycle.confirmed is False
        assert [item.id for item in cycle.rejections_needing_attention()] == [adj.id]

        fixed = cycle.resubmit_adjustment(adj.id, bonus("600"))
        assert cycle.payroll_status == PayrollStatus.REJECTED
        assert cycle.fix_and_resubmit() == PayrollStatus.SUBMITTED

        assert cycle.confirmed is True
        assert cycle.rejection_reason is None
        assert cycle.resubmitted_rejection_ids == (adj.id,)
        assert cycle.rejections_needing_attention() == []
        assert cycle.pending_total() == Decimal("600")
        assert fixed in cycle.adjustments
        assert cycle.snapshot().payroll_status == PayrollStatus.SUBMITTED

    def test_withdraw_returns_to_draft(self, cycle):
        cycle.confirm_pay()
        cycle.withdraw_confirmation()
        assert cycle.payroll_status == PayrollStatus.DRAFT
        assert cycle.submitted_at is None

    def test_fix_and_resubmit_without_rejection(self, cycle):
        cycle.confirm_pay()
        with pytest.raises(InvalidStateError):
            cycle.fix_and_resubmit()
        assert cycle.payroll_status == PayrollStatus.SUBMITTED

    def test_approve_before_submission_rejected(self, cycle):
        adj = cycle.add_adjustment(bonus())
        with pytest.raises(InvalidStateError):
            cycle.approve_submission()
        assert cycle.get_adjustment(adj.id).status == SubmissionStatus.PENDING


class TestCutoff:
    """Test cutoff projections against the injected clock."""

    def mid_month(self, cutoff):
        return PayPeriod("2025-11", "November 2025", date(2025, 11, 1), date(2025, 11, 30), cutoff)

    def test_defaults_to_period_end(self, cycle):
        assert cycle.cutoff_date == date(2025, 11, 30)
        assert cycle.days_until_close() == 10
        assert cycle.is_cutoff_soon() is False

    def test_soon_within_warning_days(self, clock):
        cycle = PayPeriodCycle(self.mid_month(date(2025, 11, 23)), clock=clock)
        cycle.open_window()

        assert cycle.cutoff_date == date(2025, 11, 23)
        assert cycle.days_until_close() == 3
        assert cycle.is_cutoff_soon() is True

    def test_follows_the_clock(self, clock):
        config = CycleConfig(submissions=SubmissionConfig(cutoff_warning_days=1))
        cycle = PayPeriodCycle(self.mid_month(date(2025, 11, 23)), config=config, clock=clock)
        cycle.open_window()
        assert cycle.is_cutoff_soon() is False

        clock.advance(days=2)
        assert cycle.days_until_close() == 1
        assert cycle.is_cutoff_soon() is True

        clock.advance(days=5)
        assert cycle.days_until_close() == 0

    def test_not_soon_unless_window_open(self, clock):
        cycle = PayPeriodCycle(self.mid_month(date(2025, 11, 21)), clock=clock)
        assert cycle.is_cutoff_soon() is False
        cycle.open_window()
        assert cycle.is_cutoff_soon() is True
        cycle.close_window()
        assert cycle.is_cutoff_soon() is False

    def test_cutoff_outside_period_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            PayPeriodCycle(self.mid_month(date(2025, 12, 2)))
        assert exc_info.value.field == "cutoff_date"


class TestNextPeriod:
    """Test rollover into the following period."""

    def test_next_period_starts_fresh(self, cycle, next_period):
        cycle.add_adjustment(bonus())
        cycle.confirm_pay()

        following = cycle.next_period(next_period)

        assert following.period == next_period
        assert following.window_state == WindowState.NONE
        assert following.confirmed is False
        assert following.adjustments == ()
        assert following.correlation_id != cycle.correlation_id
        # previous cycle is untouched
        assert cycle.window_state == WindowState.OPEN
        assert len(cycle.adjustments) == 1

    def test_queued_submissions_carried_over(self, make_cycle, queueing_config, next_period):
        cycle = make_cycle(queueing_config)
        on_time = cycle.add_adjustment(bonus())
        cycle.close_window()
        late = cycle.add_adjustment(bonus("75"))
        late_leave = cycle.add_leave_request(
            LeaveInput(LeaveType.ANNUAL, date(2025, 12, 22), date(2025, 12, 23), Decimal("2"))
        )
        assert late.status == SubmissionStatus.QUEUED_FOR_NEXT_CYCLE
        assert late_leave.status == SubmissionStatus.QUEUED_FOR_NEXT_CYCLE

        following = cycle.next_period(next_period)

        assert [a.amount for a in following.adjustments] == [Decimal("75")]
        assert following.adjustments[0].status == SubmissionStatus.PENDING
        assert following.leave_requests[0].status == SubmissionStatus.PENDING
        assert on_time.amount not in [a.amount for a in following.adjustments]

    def test_same_period_id_rejected(self, cycle, period):
        with pytest.raises(ValidationError):
            cycle.next_period(period)

    def test_overlapping_period_rejected(self, cycle):
        overlapping = PayPeriod("2025-11b", "Late November", date(2025, 11, 16), date(2025, 12, 15))
        with pytest.raises(ValidationError) as exc_info:
            cycle.next_period(overlapping)
        assert exc_info.value.field == "start_date"
