"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from salarysync.errors import InvalidPayPeriodError, InvalidRateTableError

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(amount: Decimal) -> Decimal:
    """Round a currency amount to cents using banker's rounding."""
    return amount.quantize(CENT, rounding=ROUND_HALF_EVEN)


class EmploymentType(str, Enum):
    """How the gross amount of a compensation profile is expressed."""

    MONTHLY = "monthly"
    HOURLY = "hourly"


class TaxTable(str, Enum):
    """Dutch wage tax table variant applied to an employee."""

    WIT = "wit"
    GROEN = "groen"


class ProrationMethod(str, Enum):
    """Day-counting method for partial periods."""

    CALENDAR = "calendar"
    WORKING = "working"


class ContributionParty(str, Enum):
    """Who bears a social insurance contribution."""

    EMPLOYEE = "employee"
    EMPLOYER = "employer"


@dataclass(frozen=True)
class PayPeriod:
    """Inclusive date range a payroll calculation covers."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidPayPeriodError(
                f"Pay period start {self.start} is after end {self.end}"
            )

    @property
    def tax_year(self) -> int:
        return self.start.year

    @property
    def spans_tax_years(self) -> bool:
        return self.start.year != self.end.year

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class CompensationProfile:
    """An employee's compensation terms as of a pay period.

    Exactly one of ``monthly_salary`` or ``hourly_rate`` is populated, matching
    ``employment_type``. The calculator rejects any other pairing.
    """

    employee_id: UUID
    employment_type: EmploymentType
    monthly_salary: Decimal | None = None
    hourly_rate: Decimal | None = None
    tax_table: TaxTable = TaxTable.WIT
    working_hours_per_week: Decimal = Decimal("40")
    working_days_per_week: int = 5
    date_of_birth: date | None = None
    is_dga: bool = False
    apply_tax_credit: bool = True
    employment_start: date | None = None
    employment_end: date | None = None
    is_active: bool = True

    @property
    def gross_amount(self) -> Decimal | None:
        """Salary or hourly rate, whichever the employment type uses."""
        if self.employment_type == EmploymentType.MONTHLY:
            return self.monthly_salary
        return self.hourly_rate

    def employment_window(self, period: PayPeriod) -> tuple[date, date] | None:
        """Part of the pay period the employee was employed, or None."""
        start = period.start
        end = period.end
        if self.employment_start and self.employment_start > start:
            start = self.employment_start
        if self.employment_end and self.employment_end < end:
            end = self.employment_end
        if start > end:
            return None
        return start, end

    def age_on(self, on_date: date) -> int | None:
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        age = on_date.year - dob.year
        if (on_date.month, on_date.day) < (dob.month, dob.day):
            age -= 1
        return age


@dataclass(frozen=True)
class RateTable:
    """Immutable snapshot of a company's tax rate table for one tax year.

    Rates are percentages in [0, 100]; ``*_max`` values are annual ceilings of
    the income a contribution accrues over.
    """

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
    holiday_allowance_rate: Decimal = Decimal("8")
    minimum_wage: Decimal = Decimal("0.01")
    is_active: bool = True
    tax_rate_table_id: UUID | None = None

    @property
    def employee_contribution_rate(self) -> Decimal:
        """Combined percentage withheld from the employee before caps."""
        return self.aow_rate + self.wlz_rate + self.ww_rate + self.wia_rate

    @property
    def total_contribution_rate(self) -> Decimal:
        return self.employee_contribution_rate + self.zvw_rate

    def validate(self) -> None:
        """Raise InvalidRateTableError if any value is out of range."""
        errors: list[str] = []
        for name in ("aow_rate", "wlz_rate", "ww_rate", "wia_rate", "zvw_rate"):
            value = getattr(self, name)
            if value < ZERO or value > HUNDRED:
                errors.append(f"{name} must be between 0 and 100 (got {value})")
        for name in ("aow_max", "wlz_max", "ww_max", "wia_max"):
            value = getattr(self, name)
            if value < ZERO:
                errors.append(f"{name} must not be negative (got {value})")
        if self.holiday_allowance_rate < ZERO or self.holiday_allowance_rate > HUNDRED:
            errors.append(
                "holiday_allowance_rate must be between 0 and 100 "
                f"(got {self.holiday_allowance_rate})"
            )
        if self.minimum_wage <= ZERO:
            errors.append(f"minimum_wage must be positive (got {self.minimum_wage})")
        if self.tax_year < 1900 or self.tax_year > 2999:
            errors.append(f"tax_year {self.tax_year} is out of range")
        if errors:
            raise InvalidRateTableError("; ".join(errors))

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "tax_year": self.tax_year,
            "aow_rate": str(self.aow_rate),
            "wlz_rate": str(self.wlz_rate),
            "ww_rate": str(self.ww_rate),
            "wia_rate": str(self.wia_rate),
            "zvw_rate": str(self.zvw_rate),
            "aow_max": str(self.aow_max),
            "wlz_max": str(self.wlz_max),
            "ww_max": str(self.ww_max),
            "wia_max": str(self.wia_max),
            "holiday_allowance_rate": str(self.holiday_allowance_rate),
            "minimum_wage": str(self.minimum_wage),
        }


@dataclass(frozen=True)
class TaxBracket:
    """Statutory income tax bracket; ``upper`` of None means no ceiling."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal  # As decimal, e.g., 0.3748 for 37.48%


@dataclass(frozen=True)
class BracketLine:
    """Income taxed within one bracket of the progressive breakdown."""

    bracket_index: int
    income_in_bracket: Decimal
    rate: Decimal
    tax_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "bracket_index": self.bracket_index,
            "income_in_bracket": str(self.income_in_bracket),
            "rate": str(self.rate),
            "tax_amount": str(self.tax_amount),
        }


@dataclass(frozen=True)
class ContributionLine:
    """One social insurance contribution for the pay period."""

    code: str
    party: ContributionParty
    rate: Decimal  # percentage
    annual_base: Decimal
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "party": self.party.value,
            "rate": str(self.rate),
            "annual_base": str(self.annual_base),
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class CalculationResult:
    """Output of one employee calculation. All currency values are rounded.

    Annual figures (bracket breakdown, credits, ``income_tax_after_credits``,
    ``holiday_allowance_annual``) are on the annualised gross; the remaining
    amounts are for the pay period.
    """

    employee_id: UUID
    calculation_id: UUID
    fingerprint: str
    period_start: date
    period_end: date
    tax_year: int
    regular_pay: Decimal
    overtime_pay: Decimal
    bonus_pay: Decimal
    gross_pay: Decimal
    gross_annual_equivalent: Decimal
    tax_bracket_breakdown: tuple[BracketLine, ...]
    income_tax_before_credits: Decimal
    general_tax_credit: Decimal
    labour_tax_credit: Decimal
    total_tax_credits: Decimal
    income_tax_after_credits: Decimal
    income_tax: Decimal
    contributions: tuple[ContributionLine, ...]
    employee_contributions: Decimal
    employer_contributions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    holiday_allowance_annual: Decimal
    holiday_allowance_accrued: Decimal
    total_employer_cost: Decimal
    period_months: Decimal
    hours_worked: Decimal | None = None
    overtime_hours: Decimal = ZERO
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dict; decimals travel as strings."""
        return {
            "employee_id": str(self.employee_id),
            "calculation_id": str(self.calculation_id),
            "fingerprint": self.fingerprint,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "tax_year": self.tax_year,
            "regular_pay": str(self.regular_pay),
            "overtime_pay": str(self.overtime_pay),
            "bonus_pay": str(self.bonus_pay),
            "gross_pay": str(self.gross_pay),
            "gross_annual_equivalent": str(self.gross_annual_equivalent),
            "tax_bracket_breakdown": [b.to_dict() for b in self.tax_bracket_breakdown],
            "income_tax_before_credits": str(self.income_tax_before_credits),
            "general_tax_credit": str(self.general_tax_credit),
            "labour_tax_credit": str(self.labour_tax_credit),
            "total_tax_credits": str(self.total_tax_credits),
            "income_tax_after_credits": str(self.income_tax_after_credits),
            "income_tax": str(self.income_tax),
            "contributions": [c.to_dict() for c in self.contributions],
            "employee_contributions": str(self.employee_contributions),
            "employer_contributions": str(self.employer_contributions),
            "total_deductions": str(self.total_deductions),
            "net_pay": str(self.net_pay),
            "holiday_allowance_annual": str(self.holiday_allowance_annual),
            "holiday_allowance_accrued": str(self.holiday_allowance_accrued),
            "total_employer_cost": str(self.total_employer_cost),
            "period_months": str(self.period_months),
            "hours_worked": str(self.hours_worked) if self.hours_worked is not None else None,
            "overtime_hours": str(self.overtime_hours),
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CalculationResult:
        """Rebuild a result frozen by ``to_dict``."""
        return cls(
            employee_id=UUID(data["employee_id"]),
            calculation_id=UUID(data["calculation_id"]),
            fingerprint=data["fingerprint"],
            period_start=date.fromisoformat(data["period_start"]),
            period_end=date.fromisoformat(data["period_end"]),
            tax_year=int(data["tax_year"]),
            regular_pay=Decimal(data["regular_pay"]),
            overtime_pay=Decimal(data["overtime_pay"]),
            bonus_pay=Decimal(data["bonus_pay"]),
            gross_pay=Decimal(data["gross_pay"]),
            gross_annual_equivalent=Decimal(data["gross_annual_equivalent"]),
            tax_bracket_breakdown=tuple(
                BracketLine(
                    bracket_index=int(b["bracket_index"]),
                    income_in_bracket=Decimal(b["income_in_bracket"]),
                    rate=Decimal(b["rate"]),
                    tax_amount=Decimal(b["tax_amount"]),
                )
                for b in data["tax_bracket_breakdown"]
            ),
            income_tax_before_credits=Decimal(data["income_tax_before_credits"]),
            general_tax_credit=Decimal(data["general_tax_credit"]),
            labour_tax_credit=Decimal(data["labour_tax_credit"]),
            total_tax_credits=Decimal(data["total_tax_credits"]),
            income_tax_after_credits=Decimal(data["income_tax_after_credits"]),
            income_tax=Decimal(data["income_tax"]),
            contributions=tuple(
                ContributionLine(
                    code=c["code"],
                    party=ContributionParty(c["party"]),
                    rate=Decimal(c["rate"]),
                    annual_base=Decimal(c["annual_base"]),
                    amount=Decimal(c["amount"]),
                )
                for c in data["contributions"]
            ),
            employee_contributions=Decimal(data["employee_contributions"]),
            employer_contributions=Decimal(data["employer_contributions"]),
            total_deductions=Decimal(data["total_deductions"]),
            net_pay=Decimal(data["net_pay"]),
            holiday_allowance_annual=Decimal(data["holiday_allowance_annual"]),
            holiday_allowance_accrued=Decimal(data["holiday_allowance_accrued"]),
            total_employer_cost=Decimal(data["total_employer_cost"]),
            period_months=Decimal(data["period_months"]),
            hours_worked=(
                Decimal(data["hours_worked"]) if data.get("hours_worked") is not None else None
            ),
            overtime_hours=Decimal(data.get("overtime_hours", "0")),
            warnings=tuple(data.get("warnings", ())),
        )
