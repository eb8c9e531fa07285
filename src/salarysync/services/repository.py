"""Persistence boundary used by the batch processor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salarysync.calculators.types import (
    CalculationResult,
    CompensationProfile,
    PayPeriod,
    RateTable,
    round_money,
)
from salarysync.errors import AlreadyFinalizedError, PersistenceConflictError
from salarysync.models import Employee, PayrollRecord
from salarysync.services.rate_table_service import TaxRateTableService
from salarysync.services.state_machine import PayrollStateMachine, PayrollStatus

logger = logging.getLogger(__name__)

RELEASED_STATUSES = tuple(s.value for s in PayrollStateMachine.RELEASED)
LOCKED_STATUSES = tuple(s.value for s in PayrollStateMachine.RESULTS_IMMUTABLE)
REPLACEABLE_STATUSES = tuple(s.value for s in PayrollStateMachine.REPLACEABLE)


@dataclass(frozen=True)
class ReplaceableRecord:
    """A draft for the exact same period that a re-run may overwrite."""

    payroll_record_id: UUID
    version: int


@dataclass
class PeriodSummary:
    """Aggregates over the live payroll records of one pay period."""

    active_employees: int = 0
    processed_employees: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)
    total_gross_pay: Decimal = Decimal("0.00")
    total_net_pay: Decimal = Decimal("0.00")
    total_deductions: Decimal = Decimal("0.00")
    total_employer_costs: Decimal = Decimal("0.00")


@runtime_checkable
class PayrollRepository(Protocol):
    """Outbound interfaces of the batch processor."""

    async def load_active_rate_table(self, company_id: UUID, as_of: date) -> RateTable:
        ...

    async def load_compensation_profile(
        self, company_id: UUID, employee_id: UUID, as_of: date
    ) -> CompensationProfile | None:
        ...

    async def find_blocking_record(
        self, company_id: UUID, employee_id: UUID, period: PayPeriod
    ) -> ReplaceableRecord | None:
        ...

    async def upsert_payroll_record(
        self,
        company_id: UUID,
        result: CalculationResult,
        *,
        status: PayrollStatus,
        engine_version: str,
        tax_rate_table_id: UUID | None,
        batch_id: UUID | None,
        actor: str | None,
    ) -> UUID:
        ...

    async def summarize_period(self, company_id: UUID, period: PayPeriod) -> PeriodSummary:
        ...

    async def delete_draft_records(
        self, company_id: UUID, period: PayPeriod, employee_ids: list[UUID] | None = None
    ) -> int:
        ...


async def check_write_precondition(
    session: AsyncSession,
    company_id: UUID,
    employee_id: UUID,
    period: PayPeriod,
    lock: bool = False,
) -> ReplaceableRecord | None:
    """Check that a calculation may be stored for the employee and period.

    Rejected and cancelled records are ignored. A finalized or paid record
    overlapping the period raises AlreadyFinalizedError; a pending or approved
    one, or a draft for a different overlapping period, raises
    PersistenceConflictError. A draft for exactly this period is returned so
    the caller can replace it.
    """
    query = select(PayrollRecord).where(
        PayrollRecord.company_id == company_id,
        PayrollRecord.employee_id == employee_id,
        PayrollRecord.status.not_in(RELEASED_STATUSES),
        PayrollRecord.period_start <= period.end,
        PayrollRecord.period_end >= period.start,
    )
    if lock:
        query = query.with_for_update()
    records = list((await session.execute(query)).scalars().all())

    for record in records:
        if record.status in LOCKED_STATUSES:
            raise AlreadyFinalizedError(
                f"Employee {employee_id} already has a {record.status} payroll record "
                f"for {record.period_start}..{record.period_end}"
            )

    replaceable: ReplaceableRecord | None = None
    for record in records:
        if record.status not in REPLACEABLE_STATUSES:
            raise PersistenceConflictError(
                f"Employee {employee_id} has a {record.status} payroll record "
                f"for {record.period_start}..{record.period_end}"
            )
        if record.period_start != period.start or record.period_end != period.end:
            raise PersistenceConflictError(
                f"Employee {employee_id} has a draft for the overlapping period "
                f"{record.period_start}..{record.period_end}"
            )
        replaceable = ReplaceableRecord(record.payroll_record_id, record.version)
    return replaceable


def record_values(
    result: CalculationResult,
    engine_version: str,
    tax_rate_table_id: UUID | None,
) -> dict:
    """Column values that freeze a calculation onto a payroll record."""
    return {
        "employee_id": result.employee_id,
        "period_start": result.period_start,
        "period_end": result.period_end,
        "tax_year": result.tax_year,
        "calculation_json": result.to_dict(),
        "calculation_id": result.calculation_id,
        "fingerprint": result.fingerprint,
        "engine_version": engine_version,
        "tax_rate_table_id": tax_rate_table_id,
        "gross_pay": result.gross_pay,
        "net_pay": result.net_pay,
        "total_deductions": result.total_deductions,
        "income_tax": result.income_tax,
        "employee_contributions": result.employee_contributions,
        "employer_contributions": result.employer_contributions,
        "holiday_allowance": result.holiday_allowance_accrued,
        "total_employer_cost": result.total_employer_cost,
    }


class SqlPayrollRepository:
    """PayrollRepository backed by SQLAlchemy.

    Every call runs in its own session and transaction, so concurrent batch
    workers never share a session and each employee's write commits or rolls
    back on its own.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load_active_rate_table(self, company_id: UUID, as_of: date) -> RateTable:
        async with self.session_factory() as session:
            table = await TaxRateTableService(session).get_active_rate_table(company_id, as_of)
            return table.to_rates()

    async def load_compensation_profile(
        self, company_id: UUID, employee_id: UUID, as_of: date
    ) -> CompensationProfile | None:
        """Current compensation terms; profiles are not versioned by date."""
        async with self.session_factory() as session:
            employee = await session.scalar(
                select(Employee).where(
                    Employee.employee_id == employee_id,
                    Employee.company_id == company_id,
                )
            )
            return employee.to_profile() if employee is not None else None

    async def find_blocking_record(
        self, company_id: UUID, employee_id: UUID, period: PayPeriod
    ) -> ReplaceableRecord | None:
        async with self.session_factory() as session:
            return await check_write_precondition(session, company_id, employee_id, period)

    async def upsert_payroll_record(
        self,
        company_id: UUID,
        result: CalculationResult,
        *,
        status: PayrollStatus,
        engine_version: str,
        tax_rate_table_id: UUID | None,
        batch_id: UUID | None,
        actor: str | None,
    ) -> UUID:
        """Store the calculation as a new record or replace a same-period draft."""
        period = PayPeriod(result.period_start, result.period_end)
        values = record_values(result, engine_version, tax_rate_table_id)
        values.update(status=status.value, batch_id=batch_id, created_by=actor)
        if status == PayrollStatus.PENDING:
            values.update(submitted_by=actor, submitted_at=datetime.now(timezone.utc))

        try:
            async with self.session_factory() as session, session.begin():
                existing = await check_write_precondition(
                    session, company_id, result.employee_id, period, lock=True
                )
                if existing is None:
                    record = PayrollRecord(company_id=company_id, version=1, **values)
                    session.add(record)
                    await session.flush()
                    return record.payroll_record_id

                replaced = await session.execute(
                    update(PayrollRecord)
                    .where(
                        PayrollRecord.payroll_record_id == existing.payroll_record_id,
                        PayrollRecord.status.in_(REPLACEABLE_STATUSES),
                        PayrollRecord.version == existing.version,
                    )
                    .values(version=existing.version + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                if replaced.rowcount != 1:
                    raise PersistenceConflictError(
                        f"Draft {existing.payroll_record_id} changed while it was being replaced"
                    )
                logger.debug(
                    "Replaced draft %s for employee %s", existing.payroll_record_id, result.employee_id
                )
                return existing.payroll_record_id
        except IntegrityError as exc:
            raise PersistenceConflictError(
                f"Concurrent write for employee {result.employee_id} and period {period}"
            ) from exc

    async def summarize_period(self, company_id: UUID, period: PayPeriod) -> PeriodSummary:
        async with self.session_factory() as session:
            active = await session.scalar(
                select(func.count())
                .select_from(Employee)
                .where(Employee.company_id == company_id, Employee.is_active.is_(True))
            )
            rows = (
                await session.execute(
                    select(
                        PayrollRecord.status,
                        func.count(),
                        func.coalesce(func.sum(PayrollRecord.gross_pay), 0),
                        func.coalesce(func.sum(PayrollRecord.net_pay), 0),
                        func.coalesce(func.sum(PayrollRecord.total_deductions), 0),
                        func.coalesce(func.sum(PayrollRecord.total_employer_cost), 0),
                    )
                    .where(
                        PayrollRecord.company_id == company_id,
                        PayrollRecord.period_start == period.start,
                        PayrollRecord.period_end == period.end,
                    )
                    .group_by(PayrollRecord.status)
                )
            ).all()

        summary = PeriodSummary(active_employees=active or 0)
        for status, count, gross, net, deductions, cost in rows:
            summary.status_counts[status] = count
            if status in RELEASED_STATUSES:
                continue
            summary.processed_employees += count
            summary.total_gross_pay += round_money(Decimal(str(gross)))
            summary.total_net_pay += round_money(Decimal(str(net)))
            summary.total_deductions += round_money(Decimal(str(deductions)))
            summary.total_employer_costs += round_money(Decimal(str(cost)))
        return summary

    async def delete_draft_records(
        self, company_id: UUID, period: PayPeriod, employee_ids: list[UUID] | None = None
    ) -> int:
        """Delete drafts of the period; records past draft are never touched."""
        statement = delete(PayrollRecord).where(
            PayrollRecord.company_id == company_id,
            PayrollRecord.period_start == period.start,
            PayrollRecord.period_end == period.end,
            PayrollRecord.status == PayrollStatus.DRAFT.value,
        )
        if employee_ids is not None:
            statement = statement.where(PayrollRecord.employee_id.in_(employee_ids))
        async with self.session_factory() as session, session.begin():
            deleted = await session.execute(statement.execution_options(synchronize_session=False))
        return deleted.rowcount
