"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

import logging
import random
from typing import Annotated

from fastapi import Depends, Header, Request

from payroll_cycle.events import EventEmitter
from payroll_cycle.models import ContractorPayment, PayPeriod, PayrollException
from payroll_cycle.services import (
    AsyncioScheduler,
    Clock,
    CycleConfig,
    NotFoundError,
    PaymentRail,
    PayPeriodCycle,
    PayrollBatch,
    Scheduler,
    SystemClock,
    ValidationError,
)

logger = logging.getLogger(__name__)


class CycleRegistry:
    """In-memory owner of every pay period cycle and batch served by the API."""

    def __init__(
        self,
        config: CycleConfig | None = None,
        *,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        rail: PaymentRail | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or CycleConfig()
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.rail = rail
        self.rng = rng
        self.emitter = EventEmitter()
        self.cycles: dict[str, PayPeriodCycle] = {}
        self.batches: dict[str, PayrollBatch] = {}

    def start_period(self, period: PayPeriod) -> PayPeriodCycle:
        if period.id in self.cycles:
            raise ValidationError(f"Pay period '{period.id}' already exists", field="id")
        cycle = PayPeriodCycle(
            period,
            config=self.config,
            clock=self.clock,
            event_emitter=self.emitter,
        )
        self.cycles[period.id] = cycle
        logger.info("Registered pay period %s", period.id)
        return cycle

    def create_batch(
        self,
        batch_id: str,
        payments: list[ContractorPayment],
        exceptions: list[PayrollException],
    ) -> PayrollBatch:
        if batch_id in self.batches:
            raise ValidationError(f"Batch '{batch_id}' already exists", field="id")
        try:
            batch = PayrollBatch(
                batch_id,
                payments,
                exceptions=exceptions,
                config=self.config,
                clock=self.clock,
                scheduler=self.scheduler,
                rail=self.rail,
                rng=self.rng,
                event_emitter=self.emitter,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self.batches[batch_id] = batch
        logger.info("Registered batch %s with %d payment(s)", batch_id, len(payments))
        return batch

    def get_cycle(self, period_id: str) -> PayPeriodCycle:
        try:
            return self.cycles[period_id]
        except KeyError:
            raise NotFoundError("pay period", period_id) from None

    def get_batch(self, batch_id: str) -> PayrollBatch:
        try:
            return self.batches[batch_id]
        except KeyError:
            raise NotFoundError("batch", batch_id) from None


def get_registry(request: Request) -> CycleRegistry:
    """Get the registry attached to the running application."""
    return request.app.state.registry


async def get_actor_role(
    x_actor_role: Annotated[str | None, Header()] = None
) -> str | None:
    """Extract the caller's role from header."""
    return x_actor_role or None


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None
) -> str | None:
    """Extract the caller's id from header."""
    return x_actor_id or None


# Type aliases for cleaner dependency injection
Registry = Annotated[CycleRegistry, Depends(get_registry)]
ActorRole = Annotated[str | None, Depends(get_actor_role)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
