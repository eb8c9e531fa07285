"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salarysync.config import Settings, get_settings
from salarysync.database import init_db
from salarysync.events import EventEmitter
from salarysync.services import (
    ApprovalService,
    BatchProcessor,
    SqlPayrollRepository,
    TaxRateTableService,
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Application-wide session factory."""
    _, factory = init_db()
    return factory


def get_app_settings() -> Settings:
    return get_settings()


def get_event_emitter(request: Request) -> EventEmitter:
    return request.app.state.emitter


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Emitter = Annotated[EventEmitter, Depends(get_event_emitter)]


async def get_db_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract company ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    try:
        return UUID(x_company_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Company-ID format",
        ) from None


async def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    """Acting user, as established by the authenticating gateway."""
    return x_user_id or None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CompanyId = Annotated[UUID, Depends(get_company_id)]
UserId = Annotated[str | None, Depends(get_user_id)]


def get_batch_processor(
    factory: SessionFactory, settings: AppSettings, emitter: Emitter
) -> BatchProcessor:
    return BatchProcessor(SqlPayrollRepository(factory), settings=settings, emitter=emitter)


def get_approval_service(factory: SessionFactory, emitter: Emitter) -> ApprovalService:
    return ApprovalService(factory, emitter=emitter)


def get_rate_table_service(db: DbSession) -> TaxRateTableService:
    return TaxRateTableService(db)


Batches = Annotated[BatchProcessor, Depends(get_batch_processor)]
Approvals = Annotated[ApprovalService, Depends(get_approval_service)]
RateTables = Annotated[TaxRateTableService, Depends(get_rate_table_service)]
