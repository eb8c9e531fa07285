"""Batch processor - runs the calculator over a selection of employees."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from salarysync.calculators.engine import PayrollCalculator
from salarysync.calculators.types import CalculationResult, PayPeriod, RateTable
from salarysync.config import Settings, get_settings
from salarysync.errors import InvalidPayPeriodError, NoActiveRateTableError, PayrollError
from salarysync.events import EventEmitter, EventMetadata, PayrollBatchCompleted
from salarysync.services.repository import PayrollRepository, PeriodSummary
from salarysync.services.state_machine import InvalidTransitionError, PayrollStatus

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class OutcomeStatus(str, Enum):
    """Per-employee result of a batch."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class BatchPreconditionError(PayrollError):
    """Raised when a batch is rejected before any employee is processed."""

    code = "BATCH_PRECONDITION_FAILED"


@dataclass(frozen=True)
class EmployeeInputs:
    """Variable pay inputs for one employee in one period."""

    hours_worked: Decimal | None = None
    overtime_hours: Decimal = ZERO
    bonuses: Decimal = ZERO


@dataclass
class EmployeeOutcome:
    """What happened to one requested employee."""

    employee_id: UUID
    status: OutcomeStatus
    error: str | None = None
    error_code: str | None = None
    payroll_record_id: UUID | None = None
    calculation: CalculationResult | None = None
    warnings: tuple[str, ...] = ()


@dataclass
class BatchSummary:
    """Totals over the successful outcomes only."""

    total_gross_pay: Decimal = ZERO
    total_net_pay: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_employer_costs: Decimal = ZERO

    @classmethod
    def from_outcomes(cls, outcomes: list[EmployeeOutcome]) -> BatchSummary:
        summary = cls()
        for outcome in outcomes:
            if outcome.status != OutcomeStatus.SUCCESS or outcome.calculation is None:
                continue
            calc = outcome.calculation
            summary.total_gross_pay += calc.gross_pay
            summary.total_net_pay += calc.net_pay
            summary.total_deductions += calc.total_deductions
            summary.total_employer_costs += calc.total_employer_cost
        return summary


@dataclass
class BatchResult:
    """Partial-success report of one batch run."""

    pay_period: PayPeriod
    dry_run: bool
    results: list[EmployeeOutcome]
    summary: BatchSummary
    batch_id: UUID | None = None

    @property
    def total_processed(self) -> int:
        return sum(1 for r in self.results if r.status == OutcomeStatus.SUCCESS)

    @property
    def total_errors(self) -> int:
        return sum(1 for r in self.results if r.status == OutcomeStatus.ERROR)

    @property
    def total_skipped(self) -> int:
        return sum(1 for r in self.results if r.status == OutcomeStatus.SKIPPED)

    @property
    def success(self) -> bool:
        """False only when every attempted employee failed."""
        return self.total_processed > 0 or self.total_errors == 0

    @property
    def http_status(self) -> int:
        if not self.success:
            return 422
        if self.total_errors:
            return 207
        return 200

    @property
    def message(self) -> str:
        verb = "Calculated" if self.dry_run else "Processed"
        msg = f"{verb} {self.total_processed} employee(s)"
        if self.total_errors:
            msg += f", {self.total_errors} error(s)"
        if self.total_skipped:
            msg += f", {self.total_skipped} skipped"
        return msg


@dataclass
class BatchStatus:
    """Progress of a pay period across batch runs."""

    pay_period: PayPeriod
    active_employees: int
    processed_employees: int
    pending_employees: int
    status_counts: dict[str, int] = field(default_factory=dict)
    summary: BatchSummary = field(default_factory=BatchSummary)

    @classmethod
    def from_period_summary(cls, period: PayPeriod, data: PeriodSummary) -> BatchStatus:
        return cls(
            pay_period=period,
            active_employees=data.active_employees,
            processed_employees=data.processed_employees,
            pending_employees=max(0, data.active_employees - data.processed_employees),
            status_counts=dict(data.status_counts),
            summary=BatchSummary(
                total_gross_pay=data.total_gross_pay,
                total_net_pay=data.total_net_pay,
                total_deductions=data.total_deductions,
                total_employer_costs=data.total_employer_costs,
            ),
        )


def build_pay_period(period_start: date | None, period_end: date | None) -> PayPeriod:
    """Validate batch period boundaries, raising InvalidPayPeriodError."""
    if period_start is None or period_end is None:
        raise InvalidPayPeriodError("Pay period start and end are required")
    period = PayPeriod(period_start, period_end)
    if period.spans_tax_years:
        raise InvalidPayPeriodError(
            f"Pay period {period} spans two tax years; split it at 31 December"
        )
    return period


class BatchProcessor:
    """Runs the calculator for many employees of one company and period.

    The active rate table is loaded once, so every employee in a batch is
    calculated under the same snapshot. Employees are processed concurrently
    by at most ``batch_max_workers`` workers; one employee's failure becomes
    that employee's ``error`` outcome and never aborts the batch.
    """

    def __init__(
        self,
        repository: PayrollRepository,
        calculator: PayrollCalculator | None = None,
        settings: Settings | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.repository = repository
        self.settings = settings or get_settings()
        self.calculator = calculator or PayrollCalculator(
            overtime_multiplier=self.settings.overtime_multiplier,
            proration_method=self.settings.proration_method,
            engine_version=self.settings.engine_version,
        )
        self.emitter = emitter

    async def run_batch(
        self,
        company_id: UUID,
        period_start: date | None,
        period_end: date | None,
        employee_ids: list[UUID],
        dry_run: bool = False,
        *,
        inputs: dict[UUID, EmployeeInputs] | None = None,
        include_inactive: bool = False,
        auto_submit: bool | None = None,
        actor: str | None = None,
    ) -> BatchResult:
        """Calculate, and unless ``dry_run`` persist, one record per employee.

        Raises InvalidPayPeriodError, BatchPreconditionError or, when
        auto-submitting without an actor, InvalidTransitionError before any
        employee is processed; everything after that is reported per employee.
        """
        period = build_pay_period(period_start, period_end)
        if not employee_ids:
            raise BatchPreconditionError("No employees selected")

        # Each employee is processed once even if requested twice
        unique_ids = list(dict.fromkeys(employee_ids))
        inputs = inputs or {}
        if auto_submit is None:
            auto_submit = self.settings.batch_auto_submit
        record_status = PayrollStatus.PENDING if auto_submit else PayrollStatus.DRAFT
        if record_status == PayrollStatus.PENDING and not dry_run and not actor:
            raise InvalidTransitionError(
                PayrollStatus.DRAFT, PayrollStatus.PENDING, "submitter identity is required"
            )
        batch_id = None if dry_run else uuid4()

        rate_table = await self._load_rate_table(company_id, period)

        semaphore = asyncio.Semaphore(self.settings.batch_max_workers)

        async def worker(employee_id: UUID) -> EmployeeOutcome:
            async with semaphore:
                return await self._process_employee(
                    company_id,
                    employee_id,
                    period,
                    rate_table,
                    inputs.get(employee_id, EmployeeInputs()),
                    dry_run=dry_run,
                    include_inactive=include_inactive,
                    record_status=record_status,
                    batch_id=batch_id,
                    actor=actor,
                )

        outcomes = list(await asyncio.gather(*(worker(eid) for eid in unique_ids)))
        result = BatchResult(
            pay_period=period,
            dry_run=dry_run,
            results=outcomes,
            summary=BatchSummary.from_outcomes(outcomes),
            batch_id=batch_id,
        )
        logger.info(
            "Batch %s for company %s period %s: %d processed, %d errors, %d skipped (dry_run=%s)",
            batch_id,
            company_id,
            period,
            result.total_processed,
            result.total_errors,
            result.total_skipped,
            dry_run,
        )

        if not dry_run and result.total_processed and self.emitter is not None:
            self.emitter.emit(
                PayrollBatchCompleted(
                    metadata=EventMetadata.create(
                        company_id=company_id, correlation_id=batch_id, actor_id=actor
                    ),
                    batch_id=batch_id,
                    period_start=period.start,
                    period_end=period.end,
                    total_processed=result.total_processed,
                    total_errors=result.total_errors,
                    total_skipped=result.total_skipped,
                    total_gross_pay=result.summary.total_gross_pay,
                    total_net_pay=result.summary.total_net_pay,
                )
            )
        return result

    async def get_batch_status(
        self, company_id: UUID, period_start: date | None, period_end: date | None
    ) -> BatchStatus:
        period = build_pay_period(period_start, period_end)
        data = await self.repository.summarize_period(company_id, period)
        return BatchStatus.from_period_summary(period, data)

    async def rollback_batch(
        self,
        company_id: UUID,
        period_start: date | None,
        period_end: date | None,
        employee_ids: list[UUID] | None = None,
    ) -> int:
        """Delete the period's draft records; submitted records are kept."""
        period = build_pay_period(period_start, period_end)
        deleted = await self.repository.delete_draft_records(company_id, period, employee_ids)
        logger.info("Rolled back %d draft record(s) for company %s period %s", deleted, company_id, period)
        return deleted

    async def _load_rate_table(self, company_id: UUID, period: PayPeriod) -> RateTable | None:
        """Snapshot for the whole batch; None lets each employee report the error."""
        try:
            return await self.repository.load_active_rate_table(company_id, period.start)
        except NoActiveRateTableError as exc:
            logger.warning("Batch for company %s has no rate table: %s", company_id, exc)
            return None

    async def _process_employee(
        self,
        company_id: UUID,
        employee_id: UUID,
        period: PayPeriod,
        rate_table: RateTable | None,
        employee_inputs: EmployeeInputs,
        *,
        dry_run: bool,
        include_inactive: bool,
        record_status: PayrollStatus,
        batch_id: UUID | None,
        actor: str | None,
    ) -> EmployeeOutcome:
        try:
            profile = await self.repository.load_compensation_profile(
                company_id, employee_id, period.end
            )
            if profile is None:
                return EmployeeOutcome(employee_id, OutcomeStatus.SKIPPED, error="Employee not found")
            if not profile.is_active and not include_inactive:
                return EmployeeOutcome(employee_id, OutcomeStatus.SKIPPED, error="Employee is inactive")
            if profile.employment_window(period) is None:
                return EmployeeOutcome(
                    employee_id,
                    OutcomeStatus.SKIPPED,
                    error="Employee is not employed during the pay period",
                )

            calculation = self.calculator.calculate(
                profile,
                rate_table,
                period,
                hours_worked=employee_inputs.hours_worked,
                overtime_hours=employee_inputs.overtime_hours,
                bonuses=employee_inputs.bonuses,
            )

            record_id = None
            if dry_run:
                # Surface conflicts the real run would hit, without writing
                await self.repository.find_blocking_record(company_id, employee_id, period)
            else:
                record_id = await self.repository.upsert_payroll_record(
                    company_id,
                    calculation,
                    status=record_status,
                    engine_version=self.calculator.engine_version,
                    tax_rate_table_id=rate_table.tax_rate_table_id if rate_table else None,
                    batch_id=batch_id,
                    actor=actor,
                )
            return EmployeeOutcome(
                employee_id,
                OutcomeStatus.SUCCESS,
                payroll_record_id=record_id,
                calculation=calculation,
                warnings=calculation.warnings,
            )
        except PayrollError as exc:
            return EmployeeOutcome(
                employee_id, OutcomeStatus.ERROR, error=str(exc), error_code=exc.code
            )
        except Exception:
            logger.exception("Unexpected failure processing employee %s", employee_id)
            return EmployeeOutcome(
                employee_id,
                OutcomeStatus.ERROR,
                error="Unexpected error while processing employee",
                error_code="INTERNAL_ERROR",
            )
