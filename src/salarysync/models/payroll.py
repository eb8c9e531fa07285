"""Payroll record, approval history and reversal models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salarysync.errors import ImmutableRecordError
from salarysync.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from salarysync.models.employee import Employee

# Statuses whose amounts can no longer change
LOCKED_STATUSES = ("finalized", "paid")

AMOUNT_FIELDS = (
    "gross_pay",
    "net_pay",
    "total_deductions",
    "income_tax",
    "employee_contributions",
    "employer_contributions",
    "holiday_allowance",
    "total_employer_cost",
)

# Everything the frozen calculation is made of
IMMUTABLE_FIELDS = AMOUNT_FIELDS + (
    "calculation_json",
    "calculation_id",
    "fingerprint",
    "employee_id",
    "period_start",
    "period_end",
    "tax_rate_table_id",
)


class PayrollRecord(Base, UpdatedAtMixin):
    """Persisted calculation for one employee and pay period."""

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Frozen calculation
    calculation_json: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    engine_version: Mapped[str] = mapped_column(String, nullable=False)
    tax_rate_table_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_rate_table.tax_rate_table_id", ondelete="RESTRICT"),
        nullable=True,
    )
    batch_id: Mapped[UUID | None] = mapped_column(nullable=True)

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    income_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    employee_contributions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    employer_contributions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    holiday_allowance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_employer_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Workflow audit
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected', "
            "'finalized', 'paid', 'cancelled')",
            name="payroll_record_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_record_dates_check"),
        CheckConstraint(
            "gross_pay >= 0 AND net_pay >= 0 AND total_deductions >= 0",
            name="payroll_record_amounts_check",
        ),
        # One live record per employee and period
        Index(
            "uq_payroll_record_live",
            "company_id",
            "employee_id",
            "period_start",
            "period_end",
            unique=True,
            postgresql_where=text("status NOT IN ('rejected', 'cancelled')"),
            sqlite_where=text("status NOT IN ('rejected', 'cancelled')"),
        ),
        Index("idx_payroll_record_company_period", "company_id", "period_start", "period_end"),
        Index("idx_payroll_record_employee", "employee_id"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(lazy="raise")
    history: Mapped[list[PayrollApprovalHistory]] = relationship(
        back_populates="payroll_record",
        order_by="PayrollApprovalHistory.created_at",
        lazy="raise",
    )

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES


class PayrollApprovalHistory(Base, TimestampMixin):
    """Append-only log of workflow actions applied to a payroll record."""

    __tablename__ = "payroll_approval_history"

    payroll_approval_history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id", ondelete="RESTRICT"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    previous_status: Mapped[str] = mapped_column(String, nullable=False)
    new_status: Mapped[str] = mapped_column(String, nullable=False)
    actor: Mapped[str | None] = mapped_column(String, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    acted_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (Index("idx_payroll_history_record", "payroll_record_id"),)

    payroll_record: Mapped[PayrollRecord] = relationship(back_populates="history")


class PayrollReversal(Base, TimestampMixin):
    """Value-preserving reversal appended when a paid record is voided."""

    __tablename__ = "payroll_reversal"

    payroll_reversal_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    reversed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reversed_at: Mapped[datetime] = mapped_column(nullable=False)

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_employer_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "gross_pay <= 0 AND net_pay <= 0 AND total_deductions <= 0 "
            "AND total_employer_cost <= 0",
            name="payroll_reversal_negated_check",
        ),
    )


@event.listens_for(PayrollRecord, "before_update")
def _guard_locked_record(mapper, connection, target: PayrollRecord) -> None:
    """Refuse to flush changes to the calculation of a finalized or paid record."""
    state = inspect(target)
    status_history = state.attrs.status.history
    previous_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )
    if previous_status not in LOCKED_STATUSES:
        return
    changed = [name for name in IMMUTABLE_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ImmutableRecordError(
            f"Payroll record {target.payroll_record_id} is {previous_status}; "
            f"cannot modify {', '.join(changed)}"
        )
