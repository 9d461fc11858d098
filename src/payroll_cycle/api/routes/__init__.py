"""API routes."""

from payroll_cycle.api.routes.batches import router as batches_router
from payroll_cycle.api.routes.health import router as health_router
from payroll_cycle.api.routes.periods import router as periods_router

__all__ = ["batches_router", "health_router", "periods_router"]
