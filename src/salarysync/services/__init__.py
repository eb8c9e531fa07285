"""Payroll engine services."""

from salarysync.services.approval_service import ApprovalResult, ApprovalService, RecordOutcome
from salarysync.services.batch_service import (
    BatchPreconditionError,
    BatchProcessor,
    BatchResult,
    BatchStatus,
    EmployeeInputs,
    EmployeeOutcome,
    OutcomeStatus,
)
from salarysync.services.rate_table_service import TaxRateTableService
from salarysync.services.repository import PayrollRepository, SqlPayrollRepository
from salarysync.services.state_machine import (
    ApprovalAction,
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
)

__all__ = [
    "ApprovalAction",
    "ApprovalResult",
    "ApprovalService",
    "BatchPreconditionError",
    "BatchProcessor",
    "BatchResult",
    "BatchStatus",
    "EmployeeInputs",
    "EmployeeOutcome",
    "InvalidTransitionError",
    "OutcomeStatus",
    "PayrollRepository",
    "PayrollStateMachine",
    "PayrollStatus",
    "RecordOutcome",
    "SqlPayrollRepository",
    "TaxRateTableService",
]
