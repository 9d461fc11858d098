"""Payroll cycle command line interface.

Provides operational tools for:
- Running a demo batch end to end
- Printing the effective configuration

Usage:
    python -m payroll_cycle.cli simulate --seed 7 --fast
    python -m payroll_cycle.cli simulate --failure-rate 0.3 --events
    python -m payroll_cycle.cli config
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import random
import sys
from datetime import date
from decimal import Decimal
from typing import Callable

from payroll_cycle.config import Settings, get_settings
from payroll_cycle.models import (
    AdjustmentInput,
    AdjustmentType,
    ContractorPayment,
    EmploymentType,
    ExceptionType,
    PayPeriod,
    PayrollException,
    Severity,
)
from payroll_cycle.services import (
    AsyncioScheduler,
    FlakyRail,
    ImmediateScheduler,
    PayPeriodCycle,
    PayrollBatch,
    SimulatedRail,
)

logger = logging.getLogger(__name__)


def demo_payments() -> list[ContractorPayment]:
    """Two employees and three contractors across EUR, NOK and PHP."""
    return [
        ContractorPayment(
            id="emp-1", name="Marta Lind", country="Norway", currency="NOK",
            net_pay=Decimal("26000"), est_fees=Decimal("120"), fx_rate=Decimal("0.094"),
            employment_type=EmploymentType.EMPLOYEE, employer_taxes=Decimal("4000"),
        ),
        ContractorPayment(
            id="emp-2", name="Paolo Reyes", country="Philippines", currency="PHP",
            net_pay=Decimal("22000"), est_fees=Decimal("90"), fx_rate=Decimal("0.018"),
            employment_type=EmploymentType.EMPLOYEE, employer_taxes=Decimal("3000"),
        ),
        ContractorPayment(
            id="ctr-1", name="Sofie Becker", country="Germany", currency="EUR",
            net_pay=Decimal("5200"), est_fees=Decimal("25"), fx_rate=Decimal("1.08"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
        ContractorPayment(
            id="ctr-2", name="Jonas Berg", country="Norway", currency="NOK",
            net_pay=Decimal("48000"), est_fees=Decimal("60"), fx_rate=Decimal("0.094"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
        ContractorPayment(
            id="ctr-3", name="Ana Cruz", country="Philippines", currency="PHP",
            net_pay=Decimal("180000"), est_fees=Decimal("45"), fx_rate=Decimal("0.018"),
            employment_type=EmploymentType.CONTRACTOR,
        ),
    ]


def demo_exceptions() -> list[PayrollException]:
    return [
        PayrollException(
            id="exc-1", contractor_id="ctr-3", type=ExceptionType.MISSING_BANK,
            severity=Severity.HIGH, contractor_name="Ana Cruz",
            description="Bank account details missing",
        ),
        PayrollException(
            id="exc-2", contractor_id="ctr-1", type=ExceptionType.DOC_EXPIRY,
            severity=Severity.LOW, contractor_name="Sofie Becker",
            description="Contractor agreement expires in 14 days", is_blocking=False,
        ),
    ]


class PayrollCycleCli:
    """Payroll cycle command line interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_cycle.cli",
            description="Payroll cycle operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # simulate command
        simulate = subparsers.add_parser(
            "simulate",
            help="Run a demo pay period and batch end to end",
        )
        simulate.add_argument(
            "--seed",
            type=int,
            help="Seed for execution latency and rail failures",
        )
        simulate.add_argument(
            "--fast",
            action="store_true",
            help="Skip simulated delays",
        )
        simulate.add_argument(
            "--failure-rate",
            type=float,
            default=0.0,
            help="Share of rail calls that time out (default: 0)",
        )
        simulate.add_argument(
            "--events",
            action="store_true",
            help="Print the batch event log after the CSV export",
        )

        # config command
        subparsers.add_parser(
            "config",
            help="Print the effective configuration as JSON",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(
            level=self.settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "simulate": self._cmd_simulate,
            "config": self._cmd_config,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_config(self, args: argparse.Namespace) -> int:
        """Print effective configuration."""
        payload = {
            "settings": dataclasses.asdict(self.settings),
            "policy": dataclasses.asdict(self.settings.cycle_config()),
        }
        print(json.dumps(payload, indent=2, default=str))
        return 0

    def _cmd_simulate(self, args: argparse.Namespace) -> int:
        """Run the demo cycle."""
        if not 0 <= args.failure_rate <= 1:
            print("ERROR: --failure-rate must be between 0 and 1", file=sys.stderr)
            return 1
        return asyncio.run(self._simulate(args))

    async def _simulate(self, args: argparse.Namespace) -> int:
        config = self.settings.cycle_config()
        rng = random.Random(args.seed)
        scheduler = ImmediateScheduler() if args.fast else AsyncioScheduler()
        rail = FlakyRail(args.failure_rate, rng=rng) if args.failure_rate else SimulatedRail()

        # Employee side
        cycle = PayPeriodCycle(
            PayPeriod(id="2025-11", label="November 2025", start_date=date(2025, 11, 1), end_date=date(2025, 11, 30)),
            config=config,
        )
        cycle.open_window()
        cycle.add_adjustment(AdjustmentInput(type=AdjustmentType.EXPENSE, amount=Decimal("84.50"), description="Team lunch"))
        cycle.confirm_pay()
        cycle.close_window()
        cycle.approve_pending()
        print(f"Period {cycle.period.label}: window {cycle.window_state.value}, "
              f"{len(cycle.adjustments)} adjustment(s) approved")

        # Admin side
        batch = PayrollBatch(
            "nov-2025",
            demo_payments(),
            exceptions=demo_exceptions(),
            config=config,
            scheduler=scheduler,
            rail=rail,
            rng=rng,
        )
        batch.lock_fx_rates()
        batch.advance()
        for exc in batch.exceptions.sorted_active():
            if exc.is_blocking:
                batch.resolve_exception(exc.id)
            else:
                batch.snooze_exception(exc.id)
        batch.advance()

        if batch.requires_approval:
            print(f"Employee cost {batch.approval.requirement.employee_total_cost} "
                  f"exceeds {batch.approval.requirement.threshold}; requesting approval")
            await batch.request_approval()
            batch.approve(role=config.approval.approver_role, note="Reviewed")
        batch.advance()

        result = await batch.execute_batch()
        print(f"Executed: {len(result.completed)} paid, {len(result.failed)} failed")
        batch.advance()
        cycle.mark_paid()

        print()
        print(batch.export_csv(), end="")

        issues = batch.unresolved_issues()
        if issues.count:
            batch.complete(force=True, justification="Failed payouts carried to follow-up")
        else:
            batch.complete()
        print()
        print(f"Batch {batch.batch_id}: {batch.stage.value} "
              f"(forced={batch.completion.forced if batch.completion else False})")

        if args.events:
            print()
            for stored in batch.event_log.export():
                print(f"  {stored.timestamp.isoformat()} | {stored.event_type}")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = PayrollCycleCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
