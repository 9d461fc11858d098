"""Tests for the execution sequencer.

Tests verify:
1. Payments are processed strictly one at a time, in input order
2. Transient failures are retried, terminal failures are not
3. Cancellation stops before the next item and the run can resume
4. Cohort runs only touch the selected payees
"""

import asyncio
import random

import pytest

from payroll_cycle.events import PaymentCompleted, PaymentProcessing
from payroll_cycle.models import ItemStatus
from payroll_cycle.services import (
    CancellationToken,
    Cohort,
    ExecutionConfig,
    ExecutionSequencer,
    FlakyRail,
    ImmediateScheduler,
    InvalidStateError,
    ValidationError,
)


@pytest.fixture
def make_sequencer(payments, clock, emitter):
    def _make(*, scheduler=None, rail=None, config=None, items=None) -> ExecutionSequencer:
        return ExecutionSequencer(
            "nov-2025",
            payments if items is None else items,
            config=config or ExecutionConfig(min_delay_ms=800, max_delay_ms=1500),
            rail=rail,
            scheduler=scheduler or ImmediateScheduler(),
            rng=random.Random(7),
            clock=clock,
            event_emitter=emitter,
        )

    return _make


class TestSequentialExecution:
    """Test ordering and the single-processing invariant."""

    async def test_pays_everyone_in_order(self, make_sequencer, payments, emitter):
        completed = []
        emitter.on(PaymentCompleted, lambda e: completed.append(e.payment_id))
        seq = make_sequencer()

        result = await seq.execute()

        assert result.all_complete is True
        assert result.completed == [p.id for p in payments]
        assert completed == [p.id for p in payments]
        assert seq.finished is True
        assert [o.payment_id for o in seq.execution_log] == [p.id for p in payments]

    async def test_delays_drawn_from_configured_range(self, make_sequencer, payments):
        scheduler = ImmediateScheduler()
        seq = make_sequencer(scheduler=scheduler)
        await seq.execute()

        assert len(scheduler.requested) == len(payments)
        assert all(0.8 <= delay <= 1.5 for delay in scheduler.requested)

    async def test_same_seed_same_delays(self, make_sequencer):
        first, second = ImmediateScheduler(), ImmediateScheduler()
        await make_sequencer(scheduler=first).execute()
        await make_sequencer(scheduler=second).execute()
        assert first.requested == second.requested

    async def test_mid_run_observation(self, make_sequencer, payments, manual_scheduler):
        seq = make_sequencer(scheduler=manual_scheduler)
        task = asyncio.create_task(seq.execute())

        for index, payment in enumerate(payments):
            await manual_scheduler.wait_for_sleepers(1)
            statuses = [item.status for item in seq.progress()]

            assert statuses.count(ItemStatus.PROCESSING) == 1
            assert seq.status_of(payment.id) == ItemStatus.PROCESSING
            assert statuses[:index] == [ItemStatus.COMPLETE] * index
            assert statuses[index + 1:] == [ItemStatus.PENDING] * (len(payments) - index - 1)
            assert sum(seq.counts().values()) == len(payments)
            assert seq.running is True

            manual_scheduler.release()

        result = await task
        assert result.all_complete is True
        assert seq.running is False

    async def test_execute_while_running_rejected(self, make_sequencer, manual_scheduler):
        seq = make_sequencer(scheduler=manual_scheduler)
        task = asyncio.create_task(seq.execute())
        await manual_scheduler.wait_for_sleepers(1)

        with pytest.raises(InvalidStateError) as exc_info:
            await seq.execute()
        assert exc_info.value.current_state == "running"

        while not task.done():
            manual_scheduler.release_all()
            await asyncio.sleep(0)
        assert (await task).all_complete is True

    async def test_execute_after_finish_rejected(self, make_sequencer):
        seq = make_sequencer()
        await seq.execute()

        with pytest.raises(InvalidStateError) as exc_info:
            await seq.execute()
        assert exc_info.value.current_state == "finished"

    async def test_empty_batch_is_finished(self, make_sequencer):
        seq = make_sequencer(items=[])
        assert seq.finished is True
        with pytest.raises(InvalidStateError):
            await seq.execute()

    def test_duplicate_payment_ids_rejected(self, make_sequencer, payments):
        with pytest.raises(ValueError):
            make_sequencer(items=[payments[0], payments[0]])


class TestFailures:
    """Test retry and failure handling."""

    async def test_transient_failure_retried_until_limit(self, make_sequencer, payments):
        seq = make_sequencer(rail=FlakyRail(1.0, rng=random.Random(1)))

        result = await seq.execute()

        assert result.failed == [p.id for p in payments]
        assert all(o.attempts == 3 for o in result.outcomes)
        assert all(o.error_code == "TIMEOUT" for o in result.outcomes)

    async def test_no_retry_when_disabled(self, make_sequencer):
        seq = make_sequencer(
            rail=FlakyRail(1.0, rng=random.Random(1)),
            config=ExecutionConfig(min_delay_ms=1, max_delay_ms=2, auto_retry=False),
        )
        result = await seq.execute()
        assert all(o.attempts == 1 for o in result.outcomes)

    async def test_terminal_failure_not_retried(self, make_sequencer, emitter):
        processing = []
        emitter.on(PaymentProcessing, lambda e: processing.append(e.payment_id))
        seq = make_sequencer(rail=FlakyRail(0.0, terminal_ids=["ctr-3"]))

        result = await seq.execute()

        assert result.failed == ["ctr-3"]
        assert result.completed == ["emp-1", "emp-2", "ctr-1", "ctr-2"]
        failed = [o for o in result.outcomes if o.payment_id == "ctr-3"][0]
        assert failed.attempts == 1
        assert failed.error_code == "ACCOUNT_INVALID"
        assert processing.count("ctr-3") == 1
        assert seq.finished is True

    async def test_failure_does_not_stop_later_items(self, make_sequencer):
        seq = make_sequencer(rail=FlakyRail(0.0, terminal_ids=["emp-1"]))
        result = await seq.execute()

        assert result.failed == ["emp-1"]
        assert len(result.completed) == 4

    def test_flaky_rail_rate_validated(self):
        with pytest.raises(ValueError):
            FlakyRail(1.5)


class TestCancellationAndCohorts:
    """Test stopping, resuming and partial runs."""

    async def test_cancel_then_resume(self, make_sequencer, payments, manual_scheduler):
        seq = make_sequencer(scheduler=manual_scheduler)
        token = CancellationToken()
        task = asyncio.create_task(seq.execute(cancel_token=token))

        await manual_scheduler.wait_for_sleepers(1)
        token.cancel()
        manual_scheduler.release()
        result = await task

        assert result.cancelled is True
        assert result.completed == ["emp-1"]
        assert result.not_started == [p.id for p in payments[1:]]
        assert seq.finished is False

        resume = asyncio.create_task(seq.execute())
        while not resume.done():
            manual_scheduler.release_all()
            await asyncio.sleep(0)
        resumed = await resume

        assert resumed.completed == [p.id for p in payments[1:]]
        assert seq.finished is True
        assert [o.payment_id for o in seq.execution_log] == [p.id for p in payments]

    async def test_task_cancelled_during_delay(self, make_sequencer, payments, manual_scheduler):
        seq = make_sequencer(scheduler=manual_scheduler)
        finished = []
        task = asyncio.create_task(seq.execute(on_outcome=finished.append))

        await manual_scheduler.wait_for_sleepers(1)
        manual_scheduler.release()
        await manual_scheduler.wait_for_sleepers(1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert seq.status_of("emp-1") == ItemStatus.COMPLETE
        assert seq.status_of("emp-2") == ItemStatus.PENDING
        assert seq.counts()[ItemStatus.PROCESSING] == 0
        assert seq.running is False
        assert manual_scheduler.pending == 0
        assert [o.payment_id for o in finished] == ["emp-1"]

        resume = asyncio.create_task(seq.execute(on_outcome=finished.append))
        while not resume.done():
            manual_scheduler.release_all()
            await asyncio.sleep(0)
        resumed = await resume

        assert resumed.completed == [p.id for p in payments[1:]]
        assert seq.finished is True
        assert [o.payment_id for o in finished] == [p.id for p in payments]

    async def test_outcome_hook_sees_failures(self, make_sequencer):
        seen = []
        seq = make_sequencer(rail=FlakyRail(0.0, terminal_ids=["ctr-2"]))

        await seq.execute(on_outcome=seen.append)

        assert [(o.payment_id, o.status) for o in seen if o.status == ItemStatus.FAILED] == [
            ("ctr-2", ItemStatus.FAILED)
        ]
        assert len(seen) == 5

    async def test_cancel_before_start(self, make_sequencer, payments):
        token = CancellationToken()
        token.cancel()
        result = await make_sequencer().execute(cancel_token=token)

        assert result.cancelled is True
        assert result.not_started == [p.id for p in payments]

    async def test_employee_cohort_first(self, make_sequencer):
        seq = make_sequencer()

        employees = await seq.execute(Cohort.EMPLOYEES)
        assert employees.completed == ["emp-1", "emp-2"]
        assert seq.status_of("ctr-1") == ItemStatus.PENDING
        assert seq.finished is False

        contractors = await seq.execute("contractors")
        assert contractors.completed == ["ctr-1", "ctr-2", "ctr-3"]
        assert seq.finished is True

    async def test_unknown_cohort_rejected(self, make_sequencer):
        with pytest.raises(ValidationError) as exc_info:
            await make_sequencer().execute("freelancers")
        assert exc_info.value.field == "cohort"

    async def test_pending_total(self, make_sequencer, payments):
        seq = make_sequencer()
        before = seq.pending_total()
        await seq.execute(Cohort.EMPLOYEES)

        assert before == sum(p.net_pay for p in payments)
        assert seq.pending_total() == before - payments[0].net_pay - payments[1].net_pay
