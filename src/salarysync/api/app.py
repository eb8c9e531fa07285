"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salarysync import __version__
from salarysync.api.routes import (
    approval_router,
    batch_router,
    health_router,
    tax_rate_tables_router,
)
from salarysync.database import create_schema, dispose_db, init_db
from salarysync.errors import (
    AlreadyFinalizedError,
    InvalidPayPeriodError,
    InvalidProfileError,
    InvalidRateTableError,
    NegativeInputError,
    NoActiveRateTableError,
    PayrollError,
    PersistenceConflictError,
    RateTableLockedError,
    RateTableNotFoundError,
    RecordNotFoundError,
)
from salarysync.events import EventEmitter
from salarysync.services.batch_service import BatchPreconditionError
from salarysync.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

# First matching class wins
ERROR_STATUS: list[tuple[type[PayrollError], int]] = [
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (RateTableNotFoundError, status.HTTP_404_NOT_FOUND),
    (NoActiveRateTableError, status.HTTP_404_NOT_FOUND),
    (InvalidPayPeriodError, status.HTTP_400_BAD_REQUEST),
    (BatchPreconditionError, status.HTTP_400_BAD_REQUEST),
    (AlreadyFinalizedError, status.HTTP_409_CONFLICT),
    (PersistenceConflictError, status.HTTP_409_CONFLICT),
    (RateTableLockedError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (InvalidRateTableError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidProfileError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NegativeInputError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def status_for_error(exc: PayrollError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    await create_schema(engine)
    yield
    await dispose_db()


def create_app(emitter: EventEmitter | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SalarySync Payroll Engine API",
        description="Dutch payroll calculation, batch processing and approval workflow",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.emitter = emitter or EventEmitter()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_exception_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to their HTTP status with a stable code."""
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"detail": str(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
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
    app.include_router(batch_router, prefix="/api/v1")
    app.include_router(approval_router, prefix="/api/v1")
    app.include_router(tax_rate_tables_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
