"""Employee model and its compensation profile."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from salarysync.calculators.types import CompensationProfile, EmploymentType, TaxTable
from salarysync.models.base import Base, UpdatedAtMixin


class Employee(Base, UpdatedAtMixin):
    """Employee of a company with the terms the calculator needs."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_number: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    employment_type: Mapped[str] = mapped_column(String, nullable=False)
    monthly_salary: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    tax_table: Mapped[str] = mapped_column(String, nullable=False, default=TaxTable.WIT.value)
    working_hours_per_week: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("40")
    )
    working_days_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_dga: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    apply_tax_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_number", name="employee_company_number_unique"),
        CheckConstraint(
            "employment_type IN ('monthly', 'hourly')",
            name="employee_employment_type_check",
        ),
        CheckConstraint("tax_table IN ('wit', 'groen')", name="employee_tax_table_check"),
        CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="employee_dates_check",
        ),
        Index("idx_employee_company", "company_id"),
    )

    def to_profile(self) -> CompensationProfile:
        """Snapshot the compensation terms for a calculation.

        Column values pass through unchanged; an inconsistent salary/rate
        pairing is left for the calculator to reject.
        """
        return CompensationProfile(
            employee_id=self.employee_id,
            employment_type=EmploymentType(self.employment_type),
            monthly_salary=self.monthly_salary,
            hourly_rate=self.hourly_rate,
            tax_table=TaxTable(self.tax_table),
            working_hours_per_week=self.working_hours_per_week,
            working_days_per_week=self.working_days_per_week,
            date_of_birth=self.date_of_birth,
            is_dga=self.is_dga,
            apply_tax_credit=self.apply_tax_credit,
            employment_start=self.start_date,
            employment_end=self.end_date,
            is_active=self.is_active,
        )
