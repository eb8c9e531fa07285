"""Tax rate table administration endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from salarysync.api.dependencies import CompanyId, DbSession, RateTables
from salarysync.api.schemas import (
    ErrorResponse,
    TaxRateTableCreate,
    TaxRateTableResponse,
    TaxRateTableUpdate,
)

router = APIRouter(prefix="/tax-rate-tables", tags=["tax-rate-tables"])


@router.get("", response_model=list[TaxRateTableResponse])
async def list_rate_tables(
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_year: Annotated[int | None, Query()] = None,
) -> list[TaxRateTableResponse]:
    tables = await rate_tables.list_rate_tables(company_id, tax_year)
    return [TaxRateTableResponse.model_validate(t) for t in tables]


@router.get(
    "/active",
    response_model=TaxRateTableResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_active_rate_table(
    company_id: CompanyId,
    rate_tables: RateTables,
    as_of: Annotated[date, Query()],
) -> TaxRateTableResponse:
    """The single active table for the tax year of ``as_of``."""
    table = await rate_tables.get_active_rate_table(company_id, as_of)
    return TaxRateTableResponse.model_validate(table)


@router.post(
    "",
    response_model=TaxRateTableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_rate_table(
    payload: TaxRateTableCreate,
    db: DbSession,
    company_id: CompanyId,
    rate_tables: RateTables,
) -> TaxRateTableResponse:
    values = payload.model_dump(exclude={"is_active"})
    table = await rate_tables.create_rate_table(
        company_id, is_active=payload.is_active, **values
    )
    await db.commit()
    return TaxRateTableResponse.model_validate(table)


@router.get(
    "/{tax_rate_table_id}",
    response_model=TaxRateTableResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_rate_table(
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_rate_table_id: Annotated[UUID, Path()],
) -> TaxRateTableResponse:
    table = await rate_tables.get_rate_table(company_id, tax_rate_table_id)
    return TaxRateTableResponse.model_validate(table)


@router.patch(
    "/{tax_rate_table_id}",
    response_model=TaxRateTableResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_rate_table(
    payload: TaxRateTableUpdate,
    db: DbSession,
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_rate_table_id: Annotated[UUID, Path()],
) -> TaxRateTableResponse:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    table = await rate_tables.update_rate_table(company_id, tax_rate_table_id, **changes)
    await db.commit()
    return TaxRateTableResponse.model_validate(table)


@router.post(
    "/{tax_rate_table_id}/activate",
    response_model=TaxRateTableResponse,
    responses={404: {"model": ErrorResponse}},
)
async def activate_rate_table(
    db: DbSession,
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_rate_table_id: Annotated[UUID, Path()],
) -> TaxRateTableResponse:
    """Activate this table and deactivate the others of its year atomically."""
    table = await rate_tables.activate_rate_table(company_id, tax_rate_table_id)
    await db.commit()
    return TaxRateTableResponse.model_validate(table)


@router.post(
    "/{tax_rate_table_id}/deactivate",
    response_model=TaxRateTableResponse,
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_rate_table(
    db: DbSession,
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_rate_table_id: Annotated[UUID, Path()],
) -> TaxRateTableResponse:
    table = await rate_tables.deactivate_rate_table(company_id, tax_rate_table_id)
    await db.commit()
    return TaxRateTableResponse.model_validate(table)


@router.delete(
    "/{tax_rate_table_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_rate_table(
    db: DbSession,
    company_id: CompanyId,
    rate_tables: RateTables,
    tax_rate_table_id: Annotated[UUID, Path()],
) -> None:
    await rate_tables.delete_rate_table(company_id, tax_rate_table_id)
    await db.commit()
