"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from salarysync.services.state_machine import ApprovalAction


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""

    detail: str
    code: str


# ============================================================================
# Calculation schemas
# ============================================================================


class BracketLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bracket_index: int
    income_in_bracket: Decimal
    rate: Decimal
    tax_amount: Decimal


class ContributionLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    party: str
    rate: Decimal
    annual_base: Decimal
    amount: Decimal


class CalculationResponse(BaseModel):
    """Full calculation of one employee."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    calculation_id: UUID
    period_start: date
    period_end: date
    tax_year: int
    regular_pay: Decimal
    overtime_pay: Decimal
    bonus_pay: Decimal
    gross_pay: Decimal
    gross_annual_equivalent: Decimal
    tax_bracket_breakdown: list[BracketLineResponse]
    income_tax_before_credits: Decimal
    general_tax_credit: Decimal
    labour_tax_credit: Decimal
    total_tax_credits: Decimal
    income_tax_after_credits: Decimal
    income_tax: Decimal
    contributions: list[ContributionLineResponse]
    employee_contributions: Decimal
    employer_contributions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    holiday_allowance_annual: Decimal
    holiday_allowance_accrued: Decimal
    total_employer_cost: Decimal
    warnings: list[str] = []


# ============================================================================
# Batch schemas
# ============================================================================


class EmployeeInputRequest(BaseModel):
    """Variable inputs for one employee; validated by the calculator."""

    employee_id: UUID
    hours_worked: Decimal | None = None
    overtime_hours: Decimal = Decimal("0")
    bonuses: Decimal = Decimal("0")


class BatchRequest(BaseModel):
    """Run the calculator for a selection of employees."""

    period_start: date
    period_end: date
    employee_ids: list[UUID]
    dry_run: bool = False
    include_inactive: bool = False
    auto_submit: bool | None = None
    include_calculations: bool = False
    employee_inputs: list[EmployeeInputRequest] = []


class EmployeeOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    status: str
    error: str | None = None
    error_code: str | None = None
    payroll_record_id: UUID | None = None
    warnings: list[str] = []
    calculation: CalculationResponse | None = None


class BatchSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_gross_pay: Decimal
    total_net_pay: Decimal
    total_deductions: Decimal
    total_employer_costs: Decimal


class BatchResponse(BaseModel):
    """Partial-success report; check ``results`` even when ``success`` is true."""

    success: bool
    message: str
    batch_id: UUID | None
    dry_run: bool
    period_start: date
    period_end: date
    total_processed: int
    total_errors: int
    total_skipped: int
    results: list[EmployeeOutcomeResponse]
    summary: BatchSummaryResponse


class BatchStatusResponse(BaseModel):
    period_start: date
    period_end: date
    active_employees: int
    processed_employees: int
    pending_employees: int
    status_counts: dict[str, int]
    summary: BatchSummaryResponse


class RollbackResponse(BaseModel):
    deleted: int


# ============================================================================
# Approval schemas
# ============================================================================


class ApprovalRequest(BaseModel):
    """Apply one workflow action to many payroll records."""

    payroll_record_ids: list[UUID] = Field(min_length=1)
    action: ApprovalAction
    comments: str | None = None
    rejection_reason: str | None = None
    payment_reference: str | None = None


class RecordOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    success: bool
    previous_status: str | None = None
    new_status: str | None = None
    error: str | None = None
    error_code: str | None = None


class ApprovalResponse(BaseModel):
    message: str
    success: bool
    outcomes: list[RecordOutcomeResponse]


class PayrollRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    employee_id: UUID
    period_start: date
    period_end: date
    status: str
    version: int
    gross_pay: Decimal
    net_pay: Decimal
    total_deductions: Decimal
    income_tax: Decimal
    employee_contributions: Decimal
    employer_contributions: Decimal
    holiday_allowance: Decimal
    total_employer_cost: Decimal
    calculation_id: UUID
    engine_version: str
    tax_rate_table_id: UUID | None = None
    batch_id: UUID | None = None
    submitted_by: str | None = None
    submitted_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    finalized_at: datetime | None = None
    paid_at: datetime | None = None
    payment_reference: str | None = None
    cancelled_at: datetime | None = None
    comments: str | None = None


class PayrollRecordListResponse(BaseModel):
    items: list[PayrollRecordResponse]
    total: int


class ApprovalHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_approval_history_id: UUID
    action: str
    previous_status: str
    new_status: str
    actor: str | None = None
    comments: str | None = None
    acted_at: datetime


# ============================================================================
# Tax rate table schemas
# ============================================================================


class TaxRateTableCreate(BaseModel):
    """Schema for creating a tax rate table."""

    tax_year: int = Field(ge=1900, le=2999)
    aow_rate: Decimal = Field(ge=0, le=100)
    wlz_rate: Decimal = Field(ge=0, le=100)
    ww_rate: Decimal = Field(ge=0, le=100)
    wia_rate: Decimal = Field(ge=0, le=100)
    zvw_rate: Decimal = Field(ge=0, le=100)
    aow_max: Decimal = Field(ge=0)
    wlz_max: Decimal = Field(ge=0)
    ww_max: Decimal = Field(ge=0)
    wia_max: Decimal = Field(ge=0)
    holiday_allowance_rate: Decimal = Field(default=Decimal("8.00"), ge=0, le=100)
    minimum_wage: Decimal = Field(gt=0)
    is_active: bool = False


class TaxRateTableUpdate(BaseModel):
    """Schema for a partial tax rate table update."""

    tax_year: int | None = Field(default=None, ge=1900, le=2999)
    aow_rate: Decimal | None = Field(default=None, ge=0, le=100)
    wlz_rate: Decimal | None = Field(default=None, ge=0, le=100)
    ww_rate: Decimal | None = Field(default=None, ge=0, le=100)
    wia_rate: Decimal | None = Field(default=None, ge=0, le=100)
    zvw_rate: Decimal | None = Field(default=None, ge=0, le=100)
    aow_max: Decimal | None = Field(default=None, ge=0)
    wlz_max: Decimal | None = Field(default=None, ge=0)
    ww_max: Decimal | None = Field(default=None, ge=0)
    wia_max: Decimal | None = Field(default=None, ge=0)
    holiday_allowance_rate: Decimal | None = Field(default=None, ge=0, le=100)
    minimum_wage: Decimal | None = Field(default=None, gt=0)
    is_active: bool | None = None


class TaxRateTableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tax_rate_table_id: UUID
    tax_year: int
    aow_rate: Decimal
    wlz_rate: Decimal
    ww_rate: Decimal
    wia_rate: Decimal
    zvw_rate: Decimal
    aow_max: Decimal
    wlz_max: Decimal
    ww_max: Decimal
    wia_max: Decimal
    holiday_allowance_rate: Decimal
    minimum_wage: Decimal
    is_active: bool
