"""Tax rate table access and administration."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from salarysync.errors import (
    InvalidRateTableError,
    NoActiveRateTableError,
    RateTableLockedError,
    RateTableNotFoundError,
)
from salarysync.models import PayrollRecord, TaxRateTable
from salarysync.models.payroll import LOCKED_STATUSES
from salarysync.models.tax import MAX_FIELDS, RATE_FIELDS

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    RATE_FIELDS + MAX_FIELDS + ("tax_year", "holiday_allowance_rate", "minimum_wage")
)
REQUIRED_FIELDS = EDITABLE_FIELDS - {"holiday_allowance_rate"}
DEFAULT_HOLIDAY_ALLOWANCE_RATE = Decimal("8.00")


class TaxRateTableService:
    """Reads and mutates a company's tax rate tables.

    At most one table is active per company and tax year. Activation
    deactivates the others in the same transaction; the caller owns the
    commit, so the switch becomes visible all at once.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_rate_table(self, company_id: UUID, as_of: date) -> TaxRateTable:
        """The single active table covering ``as_of``.

        Raises NoActiveRateTableError when there is none (or, should the
        exclusivity ever be broken, more than one).
        """
        result = await self.session.execute(
            select(TaxRateTable).where(
                TaxRateTable.company_id == company_id,
                TaxRateTable.tax_year == as_of.year,
                TaxRateTable.is_active.is_(True),
            )
        )
        tables = list(result.scalars().all())
        if not tables:
            raise NoActiveRateTableError(as_of)
        if len(tables) > 1:
            raise NoActiveRateTableError(as_of, f"{len(tables)} tables are active")
        return tables[0]

    async def get_rate_table(self, company_id: UUID, tax_rate_table_id: UUID) -> TaxRateTable:
        result = await self.session.execute(
            select(TaxRateTable).where(
                TaxRateTable.tax_rate_table_id == tax_rate_table_id,
                TaxRateTable.company_id == company_id,
            )
        )
        table = result.scalar_one_or_none()
        if table is None:
            raise RateTableNotFoundError(tax_rate_table_id)
        return table

    async def list_rate_tables(
        self, company_id: UUID, tax_year: int | None = None
    ) -> list[TaxRateTable]:
        query = select(TaxRateTable).where(TaxRateTable.company_id == company_id)
        if tax_year is not None:
            query = query.where(TaxRateTable.tax_year == tax_year)
        result = await self.session.execute(
            query.order_by(TaxRateTable.tax_year.desc(), TaxRateTable.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_rate_table(
        self, company_id: UUID, *, is_active: bool = False, **values: Any
    ) -> TaxRateTable:
        """Create a validated table, activating it when ``is_active`` is set."""
        unknown = set(values) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRateTableError(f"Unknown fields: {', '.join(sorted(unknown))}")
        missing = REQUIRED_FIELDS - set(values)
        if missing:
            raise InvalidRateTableError(f"Missing fields: {', '.join(sorted(missing))}")
        values.setdefault("holiday_allowance_rate", DEFAULT_HOLIDAY_ALLOWANCE_RATE)

        table = TaxRateTable(company_id=company_id, is_active=False, **values)
        table.to_rates().validate()
        self.session.add(table)
        await self.session.flush()

        if is_active:
            await self._activate(table)
        logger.info(
            "Created tax rate table %s for company %s year %s",
            table.tax_rate_table_id,
            company_id,
            table.tax_year,
        )
        return table

    async def update_rate_table(
        self, company_id: UUID, tax_rate_table_id: UUID, **changes: Any
    ) -> TaxRateTable:
        """Change rates or caps of a table no finalized record depends on."""
        unknown = set(changes) - EDITABLE_FIELDS - {"is_active"}
        if unknown:
            raise InvalidRateTableError(f"Unknown fields: {', '.join(sorted(unknown))}")

        table = await self.get_rate_table(company_id, tax_rate_table_id)
        activate = changes.pop("is_active", None)
        if changes:
            await self._ensure_unlocked(table)
            for name, value in changes.items():
                setattr(table, name, value)
            table.to_rates().validate()
            if "tax_year" in changes and table.is_active:
                # Moving an active table to another year re-checks exclusivity there
                await self._activate(table)
            await self.session.flush()

        if activate is True and not table.is_active:
            await self._activate(table)
        elif activate is False and table.is_active:
            table.is_active = False
            await self.session.flush()
        return table

    async def activate_rate_table(self, company_id: UUID, tax_rate_table_id: UUID) -> TaxRateTable:
        table = await self.get_rate_table(company_id, tax_rate_table_id)
        await self._activate(table)
        return table

    async def deactivate_rate_table(
        self, company_id: UUID, tax_rate_table_id: UUID
    ) -> TaxRateTable:
        table = await self.get_rate_table(company_id, tax_rate_table_id)
        table.is_active = False
        await self.session.flush()
        logger.info("Deactivated tax rate table %s", tax_rate_table_id)
        return table

    async def delete_rate_table(self, company_id: UUID, tax_rate_table_id: UUID) -> None:
        """Delete a table that no payroll record refers to."""
        table = await self.get_rate_table(company_id, tax_rate_table_id)
        await self._ensure_unlocked(table)
        referenced = await self.session.scalar(
            select(
                exists().where(PayrollRecord.tax_rate_table_id == table.tax_rate_table_id)
            )
        )
        if referenced:
            raise RateTableLockedError(
                table.tax_rate_table_id, "referenced by payroll records"
            )
        await self.session.delete(table)
        await self.session.flush()
        logger.info("Deleted tax rate table %s", tax_rate_table_id)

    async def is_locked(self, tax_rate_table_id: UUID) -> bool:
        """Whether a finalized or paid record was calculated with this table."""
        locked = await self.session.scalar(
            select(
                exists().where(
                    PayrollRecord.tax_rate_table_id == tax_rate_table_id,
                    PayrollRecord.status.in_(LOCKED_STATUSES),
                )
            )
        )
        return bool(locked)

    async def _ensure_unlocked(self, table: TaxRateTable) -> None:
        if await self.is_locked(table.tax_rate_table_id):
            raise RateTableLockedError(table.tax_rate_table_id)

    async def _activate(self, table: TaxRateTable) -> list[UUID]:
        """Deactivate every other table in scope, then activate ``table``."""
        # Row locks serialize concurrent activations on PostgreSQL
        result = await self.session.execute(
            select(TaxRateTable.tax_rate_table_id)
            .where(
                TaxRateTable.company_id == table.company_id,
                TaxRateTable.tax_year == table.tax_year,
                TaxRateTable.tax_rate_table_id != table.tax_rate_table_id,
                TaxRateTable.is_active.is_(True),
            )
            .with_for_update()
        )
        deactivated = list(result.scalars().all())
        if deactivated:
            await self.session.execute(
                update(TaxRateTable)
                .where(TaxRateTable.tax_rate_table_id.in_(deactivated))
                .values(is_active=False)
            )
        table.is_active = True
        await self.session.flush()
        logger.info(
            "Activated tax rate table %s for year %s (deactivated %d)",
            table.tax_rate_table_id,
            table.tax_year,
            len(deactivated),
        )
        return deactivated
