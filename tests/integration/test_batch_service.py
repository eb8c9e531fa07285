"""Tests for the batch processor."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select, update

from salarysync.calculators.types import CalculationResult, CompensationProfile, PayPeriod, RateTable
from salarysync.errors import InvalidPayPeriodError, NoActiveRateTableError
from salarysync.events import PayrollBatchCompleted
from salarysync.models import PayrollRecord
from salarysync.services.batch_service import (
    BatchPreconditionError,
    BatchProcessor,
    EmployeeInputs,
    OutcomeStatus,
)
from salarysync.services.repository import PeriodSummary, SqlPayrollRepository
from salarysync.services.state_machine import InvalidTransitionError, PayrollStatus

from factories import add_employee, add_rate_table, make_profile, make_rate_table, make_settings

pytestmark = pytest.mark.asyncio

JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)


@pytest.fixture
def processor(session_factory, settings, emitter) -> BatchProcessor:
    return BatchProcessor(SqlPayrollRepository(session_factory), settings=settings, emitter=emitter)


async def _records(session_factory, company_id: UUID) -> list[PayrollRecord]:
    async with session_factory() as session:
        result = await session.execute(
            select(PayrollRecord).where(PayrollRecord.company_id == company_id)
        )
        return list(result.scalars().all())


async def _set_status(session_factory, company_id: UUID, status: str) -> None:
    async with session_factory() as session, session.begin():
        await session.execute(
            update(PayrollRecord)
            .where(PayrollRecord.company_id == company_id)
            .values(status=status)
        )


class TestRunBatch:
    async def test_partial_success(self, processor, session, session_factory, company_id):
        await add_rate_table(session, company_id)
        first = await add_employee(session, company_id)
        second = await add_employee(session, company_id, monthly_salary=Decimal("3500.00"))
        # Hourly contract with a monthly salary filled in
        broken = await add_employee(session, company_id, employment_type="hourly")

        result = await processor.run_batch(
            company_id,
            JAN_START,
            JAN_END,
            [first.employee_id, second.employee_id, broken.employee_id],
        )

        assert result.total_processed == 2
        assert result.total_errors == 1
        assert result.success is True
        assert result.http_status == 207
        failed = next(r for r in result.results if r.status == OutcomeStatus.ERROR)
        assert failed.employee_id == broken.employee_id
        assert failed.error_code == "INVALID_PROFILE"
        assert failed.error
        assert result.summary.total_gross_pay == Decimal("7500.00")
        assert len(await _records(session_factory, company_id)) == 2

    async def test_records_are_stored_as_drafts(self, processor, session, session_factory, company_id):
        table = await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], actor="clerk"
        )

        [record] = await _records(session_factory, company_id)
        assert result.http_status == 200
        assert result.results[0].payroll_record_id == record.payroll_record_id
        assert record.status == PayrollStatus.DRAFT.value
        assert record.batch_id == result.batch_id
        assert record.tax_rate_table_id == table.tax_rate_table_id
        assert record.engine_version == "test-1.0.0"
        assert record.created_by == "clerk"
        assert record.net_pay == Decimal("2985.46")
        stored = CalculationResult.from_dict(record.calculation_json)
        assert stored.calculation_id == record.calculation_id

    async def test_auto_submit_creates_pending_records(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)

        await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], auto_submit=True, actor="clerk"
        )

        [record] = await _records(session_factory, company_id)
        assert record.status == PayrollStatus.PENDING.value
        assert record.submitted_by == "clerk"
        assert record.submitted_at is not None

    async def test_auto_submit_requires_actor(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)

        with pytest.raises(InvalidTransitionError, match="submitter identity"):
            await processor.run_batch(
                company_id, JAN_START, JAN_END, [employee.employee_id], auto_submit=True
            )

        assert await _records(session_factory, company_id) == []

    async def test_rerun_replaces_draft(self, processor, session, session_factory, company_id):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        first = await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])

        second = await processor.run_batch(
            company_id,
            JAN_START,
            JAN_END,
            [employee.employee_id],
            inputs={employee.employee_id: EmployeeInputs(bonuses=Decimal("500"))},
        )

        [record] = await _records(session_factory, company_id)
        assert second.results[0].payroll_record_id == first.results[0].payroll_record_id
        assert record.version == 2
        assert record.gross_pay == Decimal("4500.00")
        assert record.batch_id == second.batch_id

    async def test_finalized_record_is_not_overwritten(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])
        await _set_status(session_factory, company_id, "finalized")

        result = await processor.run_batch(
            company_id,
            JAN_START,
            JAN_END,
            [employee.employee_id],
            inputs={employee.employee_id: EmployeeInputs(bonuses=Decimal("500"))},
        )

        assert result.results[0].status == OutcomeStatus.ERROR
        assert result.results[0].error_code == "ALREADY_FINALIZED"
        assert result.http_status == 422
        [record] = await _records(session_factory, company_id)
        assert record.gross_pay == Decimal("4000.00")

    async def test_pending_record_conflicts(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], auto_submit=True, actor="clerk"
        )

        result = await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])

        assert result.results[0].error_code == "PERSISTENCE_CONFLICT"

    async def test_overlapping_period_conflicts(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])

        result = await processor.run_batch(
            company_id, date(2025, 1, 16), date(2025, 2, 15), [employee.employee_id]
        )

        assert result.results[0].error_code == "PERSISTENCE_CONFLICT"

    async def test_rejected_record_frees_the_period(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])
        await _set_status(session_factory, company_id, "rejected")

        result = await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])

        assert result.total_processed == 1
        assert len(await _records(session_factory, company_id)) == 2

    async def test_dry_run_persists_nothing(self, processor, session, session_factory, company_id, emitter):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        events = []
        emitter.on_all(events.append)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], dry_run=True
        )

        assert result.batch_id is None
        assert result.total_processed == 1
        assert result.results[0].payroll_record_id is None
        assert result.results[0].calculation.gross_pay == Decimal("4000.00")
        assert await _records(session_factory, company_id) == []
        assert events == []

    async def test_dry_run_is_repeatable(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)

        first = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], dry_run=True
        )
        second = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], dry_run=True
        )

        assert first.results[0].calculation == second.results[0].calculation
        assert first.summary == second.summary

    async def test_dry_run_reports_finalized_conflict(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        await processor.run_batch(company_id, JAN_START, JAN_END, [employee.employee_id])
        await _set_status(session_factory, company_id, "paid")

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], dry_run=True
        )

        assert result.results[0].error_code == "ALREADY_FINALIZED"

    async def test_without_rate_table_every_employee_fails(self, processor, session, company_id):
        first = await add_employee(session, company_id)
        second = await add_employee(session, company_id)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [first.employee_id, second.employee_id]
        )

        assert result.total_errors == 2
        assert {r.error_code for r in result.results} == {"NO_ACTIVE_RATE_TABLE"}
        assert result.success is False
        assert result.http_status == 422

    async def test_skipped_employees(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        inactive = await add_employee(session, company_id, is_active=False)
        leaver = await add_employee(session, company_id, end_date=date(2024, 12, 31))
        unknown = uuid4()

        result = await processor.run_batch(
            company_id,
            JAN_START,
            JAN_END,
            [inactive.employee_id, leaver.employee_id, unknown],
        )

        assert result.total_skipped == 3
        assert result.total_processed == 0
        assert result.success is True
        errors = {r.employee_id: r.error for r in result.results}
        assert errors[inactive.employee_id] == "Employee is inactive"
        assert errors[unknown] == "Employee not found"

    async def test_include_inactive(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        inactive = await add_employee(session, company_id, is_active=False)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [inactive.employee_id], include_inactive=True
        )

        assert result.total_processed == 1

    async def test_duplicate_ids_are_processed_once(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id, employee.employee_id]
        )

        assert len(result.results) == 1

    async def test_empty_selection(self, processor, company_id):
        with pytest.raises(BatchPreconditionError):
            await processor.run_batch(company_id, JAN_START, JAN_END, [])

    async def test_period_spanning_tax_years(self, processor, company_id):
        with pytest.raises(InvalidPayPeriodError):
            await processor.run_batch(
                company_id, date(2024, 12, 16), date(2025, 1, 15), [uuid4()]
            )

    async def test_missing_period_bound(self, processor, company_id):
        with pytest.raises(InvalidPayPeriodError):
            await processor.run_batch(company_id, None, JAN_END, [uuid4()])

    async def test_completed_event(self, processor, session, company_id, emitter):
        await add_rate_table(session, company_id)
        employee = await add_employee(session, company_id)
        events = []
        emitter.on(PayrollBatchCompleted, events.append)

        result = await processor.run_batch(
            company_id, JAN_START, JAN_END, [employee.employee_id], actor="clerk"
        )

        [event] = events
        assert event.batch_id == result.batch_id
        assert event.total_processed == 1
        assert event.total_gross_pay == Decimal("4000.00")
        assert event.metadata.actor_id == "clerk"


class TestBatchStatusAndRollback:
    async def test_status_counts(self, processor, session, company_id):
        await add_rate_table(session, company_id)
        first = await add_employee(session, company_id)
        second = await add_employee(session, company_id)
        await add_employee(session, company_id)
        await processor.run_batch(
            company_id, JAN_START, JAN_END, [first.employee_id, second.employee_id]
        )

        status = await processor.get_batch_status(company_id, JAN_START, JAN_END)

        assert status.active_employees == 3
        assert status.processed_employees == 2
        assert status.pending_employees == 1
        assert status.status_counts == {"draft": 2}
        assert status.summary.total_gross_pay == Decimal("8000.00")

    async def test_status_totals_are_whole_cents(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        employees = [await add_employee(session, company_id) for _ in range(3)]
        await processor.run_batch(
            company_id, JAN_START, JAN_END, [e.employee_id for e in employees]
        )
        async with session_factory() as s, s.begin():
            for employee, gross in zip(employees, ["0.10", "0.20", "0.20"]):
                await s.execute(
                    update(PayrollRecord)
                    .where(PayrollRecord.employee_id == employee.employee_id)
                    .values(gross_pay=Decimal(gross))
                )

        status = await processor.get_batch_status(company_id, JAN_START, JAN_END)

        assert status.summary.total_gross_pay == Decimal("0.50")
        assert status.summary.total_gross_pay.as_tuple().exponent == -2

    async def test_rollback_deletes_drafts_only(
        self, processor, session, session_factory, company_id
    ):
        await add_rate_table(session, company_id)
        drafted = await add_employee(session, company_id)
        submitted = await add_employee(session, company_id)
        await processor.run_batch(company_id, JAN_START, JAN_END, [drafted.employee_id])
        await processor.run_batch(
            company_id, JAN_START, JAN_END, [submitted.employee_id], auto_submit=True, actor="clerk"
        )

        deleted = await processor.rollback_batch(company_id, JAN_START, JAN_END)

        assert deleted == 1
        [remaining] = await _records(session_factory, company_id)
        assert remaining.employee_id == submitted.employee_id

    async def test_rollback_selected_employees(self, processor, session, session_factory, company_id):
        await add_rate_table(session, company_id)
        first = await add_employee(session, company_id)
        second = await add_employee(session, company_id)
        await processor.run_batch(
            company_id, JAN_START, JAN_END, [first.employee_id, second.employee_id]
        )

        deleted = await processor.rollback_batch(
            company_id, JAN_START, JAN_END, [first.employee_id]
        )

        assert deleted == 1
        [remaining] = await _records(session_factory, company_id)
        assert remaining.employee_id == second.employee_id


class InMemoryRepository:
    """Repository double that records how many workers run at once."""

    def __init__(self, profiles: dict[UUID, CompensationProfile], rate_table: RateTable | None):
        self.profiles = profiles
        self.rate_table = rate_table
        self.records: dict[UUID, CalculationResult] = {}
        self.failing: set[UUID] = set()
        self.active = 0
        self.peak = 0

    async def load_active_rate_table(self, company_id: UUID, as_of: date) -> RateTable:
        if self.rate_table is None:
            raise NoActiveRateTableError(as_of)
        return self.rate_table

    async def load_compensation_profile(self, company_id, employee_id, as_of):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return self.profiles.get(employee_id)

    async def find_blocking_record(self, company_id, employee_id, period):
        return None

    async def upsert_payroll_record(self, company_id, result, **kwargs) -> UUID:
        if result.employee_id in self.failing:
            raise RuntimeError("database went away")
        self.records[result.employee_id] = result
        return uuid4()

    async def summarize_period(self, company_id, period: PayPeriod) -> PeriodSummary:
        return PeriodSummary()

    async def delete_draft_records(self, company_id, period, employee_ids=None) -> int:
        return 0


class TestConcurrency:
    async def test_worker_limit_is_respected(self):
        profiles = {p.employee_id: p for p in (make_profile() for _ in range(10))}
        repository = InMemoryRepository(profiles, make_rate_table())
        processor = BatchProcessor(repository, settings=make_settings(batch_max_workers=3))

        result = await processor.run_batch(uuid4(), JAN_START, JAN_END, list(profiles))

        assert result.total_processed == 10
        assert 1 < repository.peak <= 3
        assert set(repository.records) == set(profiles)

    async def test_results_keep_request_order(self):
        profiles = {p.employee_id: p for p in (make_profile() for _ in range(5))}
        processor = BatchProcessor(
            InMemoryRepository(profiles, make_rate_table()),
            settings=make_settings(batch_max_workers=5),
        )
        ids = list(profiles)

        result = await processor.run_batch(uuid4(), JAN_START, JAN_END, ids)

        assert [r.employee_id for r in result.results] == ids

    async def test_unexpected_error_is_isolated(self):
        profiles = {p.employee_id: p for p in (make_profile() for _ in range(3))}
        repository = InMemoryRepository(profiles, make_rate_table())
        broken = next(iter(profiles))
        repository.failing.add(broken)
        processor = BatchProcessor(repository, settings=make_settings(batch_max_workers=2))

        result = await processor.run_batch(uuid4(), JAN_START, JAN_END, list(profiles))

        assert result.total_processed == 2
        outcome = next(r for r in result.results if r.employee_id == broken)
        assert outcome.error_code == "INTERNAL_ERROR"
        assert result.http_status == 207

