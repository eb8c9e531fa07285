"""Batch calculation endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response

from salarysync.api.dependencies import Batches, CompanyId, UserId
from salarysync.api.schemas import (
    BatchRequest,
    BatchResponse,
    BatchStatusResponse,
    BatchSummaryResponse,
    CalculationResponse,
    EmployeeOutcomeResponse,
    ErrorResponse,
    RollbackResponse,
)
from salarysync.services.batch_service import (
    BatchResult,
    BatchSummary,
    EmployeeInputs,
    EmployeeOutcome,
)

router = APIRouter(prefix="/payroll/batch", tags=["batch"])


def _summary_response(summary: BatchSummary) -> BatchSummaryResponse:
    return BatchSummaryResponse.model_validate(summary)


def _outcome_response(outcome: EmployeeOutcome, include_calculation: bool) -> EmployeeOutcomeResponse:
    calculation = None
    if include_calculation and outcome.calculation is not None:
        calculation = CalculationResponse.model_validate(outcome.calculation.to_dict())
    return EmployeeOutcomeResponse(
        employee_id=outcome.employee_id,
        status=outcome.status.value,
        error=outcome.error,
        error_code=outcome.error_code,
        payroll_record_id=outcome.payroll_record_id,
        warnings=list(outcome.warnings),
        calculation=calculation,
    )


def _batch_response(result: BatchResult, include_calculations: bool) -> BatchResponse:
    return BatchResponse(
        success=result.success,
        message=result.message,
        batch_id=result.batch_id,
        dry_run=result.dry_run,
        period_start=result.pay_period.start,
        period_end=result.pay_period.end,
        total_processed=result.total_processed,
        total_errors=result.total_errors,
        total_skipped=result.total_skipped,
        results=[_outcome_response(o, include_calculations) for o in result.results],
        summary=_summary_response(result.summary),
    )


@router.post(
    "",
    response_model=BatchResponse,
    responses={
        207: {"model": BatchResponse, "description": "Some employees failed"},
        400: {"model": ErrorResponse},
        422: {"model": BatchResponse, "description": "Every attempted employee failed"},
    },
)
async def run_batch(
    payload: BatchRequest,
    response: Response,
    company_id: CompanyId,
    user_id: UserId,
    batches: Batches,
) -> BatchResponse:
    """Calculate (and unless dry_run, store) payroll for the selected employees."""
    inputs = {
        item.employee_id: EmployeeInputs(
            hours_worked=item.hours_worked,
            overtime_hours=item.overtime_hours,
            bonuses=item.bonuses,
        )
        for item in payload.employee_inputs
    }
    result = await batches.run_batch(
        company_id,
        payload.period_start,
        payload.period_end,
        payload.employee_ids,
        payload.dry_run,
        inputs=inputs,
        include_inactive=payload.include_inactive,
        auto_submit=payload.auto_submit,
        actor=user_id,
    )
    response.status_code = result.http_status
    include = payload.include_calculations or payload.dry_run
    return _batch_response(result, include)


@router.get(
    "/status",
    response_model=BatchStatusResponse,
    responses={400: {"model": ErrorResponse}},
)
async def get_batch_status(
    company_id: CompanyId,
    batches: Batches,
    period_start: Annotated[date, Query()],
    period_end: Annotated[date, Query()],
) -> BatchStatusResponse:
    """Progress and totals of a pay period."""
    batch_status = await batches.get_batch_status(company_id, period_start, period_end)
    return BatchStatusResponse(
        period_start=batch_status.pay_period.start,
        period_end=batch_status.pay_period.end,
        active_employees=batch_status.active_employees,
        processed_employees=batch_status.processed_employees,
        pending_employees=batch_status.pending_employees,
        status_counts=batch_status.status_counts,
        summary=_summary_response(batch_status.summary),
    )


@router.delete(
    "",
    response_model=RollbackResponse,
    responses={400: {"model": ErrorResponse}},
)
async def rollback_batch(
    company_id: CompanyId,
    batches: Batches,
    period_start: Annotated[date, Query()],
    period_end: Annotated[date, Query()],
    employee_ids: Annotated[list[UUID] | None, Query()] = None,
) -> RollbackResponse:
    """Delete the period's draft records so the batch can be re-run."""
    deleted = await batches.rollback_batch(company_id, period_start, period_end, employee_ids)
    return RollbackResponse(deleted=deleted)
