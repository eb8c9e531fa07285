"""Approval workflow and payroll record endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response

from salarysync.api.dependencies import Approvals, CompanyId, UserId
from salarysync.api.schemas import (
    ApprovalHistoryResponse,
    ApprovalRequest,
    ApprovalResponse,
    ErrorResponse,
    PayrollRecordListResponse,
    PayrollRecordResponse,
    RecordOutcomeResponse,
)
from salarysync.services.state_machine import PayrollStatus

router = APIRouter(prefix="/payroll", tags=["approval"])


@router.post(
    "/approval",
    response_model=ApprovalResponse,
    responses={
        207: {"model": ApprovalResponse, "description": "Some records failed"},
        422: {"model": ApprovalResponse, "description": "Every record failed"},
    },
)
async def submit_approval_action(
    payload: ApprovalRequest,
    response: Response,
    company_id: CompanyId,
    user_id: UserId,
    approvals: Approvals,
) -> ApprovalResponse:
    """Apply one workflow action to each listed record independently."""
    result = await approvals.apply_action(
        company_id,
        payload.payroll_record_ids,
        payload.action,
        actor=user_id,
        comments=payload.comments,
        reason=payload.rejection_reason,
        payment_reference=payload.payment_reference,
    )
    response.status_code = result.http_status
    return ApprovalResponse(
        message=result.message,
        success=result.failed == 0,
        outcomes=[RecordOutcomeResponse.model_validate(o) for o in result.outcomes],
    )


@router.get("/records", response_model=PayrollRecordListResponse)
async def list_records(
    company_id: CompanyId,
    approvals: Approvals,
    status: Annotated[PayrollStatus | None, Query()] = None,
    period_start: Annotated[date | None, Query()] = None,
    period_end: Annotated[date | None, Query()] = None,
    employee_id: Annotated[UUID | None, Query()] = None,
) -> PayrollRecordListResponse:
    """List payroll records, for reporting."""
    records = await approvals.list_records(
        company_id,
        status=status.value if status else None,
        period_start=period_start,
        period_end=period_end,
        employee_id=employee_id,
    )
    return PayrollRecordListResponse(
        items=[PayrollRecordResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/records/{payroll_record_id}",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_record(
    company_id: CompanyId,
    approvals: Approvals,
    payroll_record_id: Annotated[UUID, Path()],
) -> PayrollRecordResponse:
    record = await approvals.get_record(company_id, payroll_record_id)
    return PayrollRecordResponse.model_validate(record)


@router.get(
    "/records/{payroll_record_id}/history",
    response_model=list[ApprovalHistoryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_record_history(
    company_id: CompanyId,
    approvals: Approvals,
    payroll_record_id: Annotated[UUID, Path()],
) -> list[ApprovalHistoryResponse]:
    """Approval history of a record, oldest first."""
    history = await approvals.get_history(company_id, payroll_record_id)
    return [ApprovalHistoryResponse.model_validate(h) for h in history]
