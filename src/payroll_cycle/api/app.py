"""FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_cycle import __version__
from payroll_cycle.api.dependencies import CycleRegistry
from payroll_cycle.api.routes import batches_router, health_router, periods_router
from payroll_cycle.config import settings
from payroll_cycle.services import (
    InvalidStateError,
    NotFoundError,
    PayrollCycleError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(exc: PayrollCycleError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "code": "NOT_FOUND", "context": {"kind": exc.kind, "id": exc.item_id}},
        )
    if isinstance(exc, PermissionDeniedError):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": str(exc), "code": "PERMISSION_DENIED", "context": {"required_role": exc.required_role}},
        )
    if isinstance(exc, ValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message, "code": "VALIDATION_ERROR", "context": {"field": exc.field}},
        )
    if isinstance(exc, InvalidStateError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "code": "INVALID_STATE", "context": {"state": exc.current_state}},
        )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "code": "PAYROLL_CYCLE_ERROR"},
    )


def create_app(registry: CycleRegistry | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Cycle API",
        description="Pay period submissions and the admin payroll batch pipeline",
        version=__version__,
    )
    app.state.registry = registry or CycleRegistry(settings.cycle_config())

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollCycleError)
    async def payroll_cycle_exception_handler(
        request: Request, exc: PayrollCycleError
    ) -> JSONResponse:
        """Map rejected operations to client errors."""
        return _error_response(exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(batches_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
