"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any
from uuid import UUID

from salarysync.calculators.proration import count_days, month_fraction
from salarysync.calculators.statutory import get_statutory_tables
from salarysync.calculators.tax_calculator import TaxCalculator
from salarysync.calculators.types import (
    HUNDRED,
    ZERO,
    CalculationResult,
    CompensationProfile,
    ContributionParty,
    EmploymentType,
    PayPeriod,
    ProrationMethod,
    RateTable,
    round_money,
)
from salarysync.config import get_settings
from salarysync.errors import (
    InvalidProfileError,
    InvalidRateTableError,
    NegativeInputError,
    NoActiveRateTableError,
)

TWELVE = Decimal("12")
FULL_TIME_HOURS = Decimal("40")
WEEKS_PER_MONTH = Decimal("52") / TWELVE


def _as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class PayrollCalculator:
    """Pure payroll calculation for one employee and pay period.

    Calculation pipeline (stable order):
    1) Validate profile, inputs and rate table
    2) Gross pay for the period (pro-rated salary or hours x rate)
    3) Annualise over the period length in months
    4) Capped social contributions, scaled back to the period
    5) Progressive bracket breakdown on the annual income
    6) Tax credits, floored so tax never goes negative
    7) Holiday allowance on annualised base pay
    8) Net pay and employer cost from the rounded components

    The calculator holds configuration only and performs no I/O, so one
    instance may serve concurrent calculations.
    """

    def __init__(
        self,
        overtime_multiplier: Decimal | None = None,
        proration_method: ProrationMethod | str | None = None,
        engine_version: str | None = None,
    ):
        if overtime_multiplier is None or proration_method is None or engine_version is None:
            settings = get_settings()
            if overtime_multiplier is None:
                overtime_multiplier = settings.overtime_multiplier
            proration_method = proration_method or settings.proration_method
            engine_version = engine_version or settings.engine_version
        self.overtime_multiplier = overtime_multiplier
        self.proration_method = ProrationMethod(proration_method)
        self.engine_version = engine_version

    def calculate(
        self,
        profile: CompensationProfile,
        rate_table: RateTable | None,
        pay_period: PayPeriod,
        hours_worked: Decimal | None = None,
        overtime_hours: Decimal = ZERO,
        bonuses: Decimal = ZERO,
    ) -> CalculationResult:
        """Calculate pay for one employee.

        Raises InvalidProfileError, NegativeInputError, NoActiveRateTableError
        or InvalidRateTableError; never returns a partial result.
        """
        hours = _as_decimal(hours_worked) if hours_worked is not None else None
        overtime = _as_decimal(overtime_hours)
        bonus = _as_decimal(bonuses)

        self._validate_profile(profile)
        self._validate_inputs(hours, overtime, bonus)
        rates = self._require_rate_table(rate_table, pay_period)

        tables = get_statutory_tables(pay_period.tax_year)
        age = profile.age_on(pay_period.end)
        pension_age = age is not None and age >= tables.pension_age
        brackets = tables.brackets_for(pension_age, profile.date_of_birth)
        if rates.employee_contribution_rate + tables.top_rate * HUNDRED > HUNDRED:
            raise InvalidRateTableError(
                "Employee contribution rates plus the top income tax rate exceed 100%"
            )

        warnings: list[str] = []
        tax_calculator = TaxCalculator(tables)

        # Period length in months; always by calendar days so that a full
        # month is exactly one month under either pro-ration method.
        period_months = month_fraction(pay_period.start, pay_period.end)

        # 1) Gross pay
        regular_pay, overtime_pay, effective_hours = self._gross_components(
            profile, pay_period, hours, overtime, warnings
        )
        bonus_pay = bonus
        gross = regular_pay + overtime_pay + bonus_pay

        # 2) Annualise
        gross_annual = gross * TWELVE / period_months
        base_annual = (regular_pay + overtime_pay) * TWELVE / period_months

        # 3) Contributions
        contributions = tax_calculator.calculate_contributions(
            rates, gross_annual, period_months, pension_age, profile.is_dga
        )
        employee_contributions = sum(
            (c.amount for c in contributions if c.party == ContributionParty.EMPLOYEE), ZERO
        )
        employer_contributions = sum(
            (c.amount for c in contributions if c.party == ContributionParty.EMPLOYER), ZERO
        )

        # 4) Brackets and credits on the annual income
        breakdown = tax_calculator.calculate_bracket_breakdown(gross_annual, brackets)
        pre_credit_tax = sum((line.tax_amount for line in breakdown), ZERO)
        general_credit, labour_credit = tax_calculator.calculate_tax_credits(
            gross_annual, profile.tax_table, profile.apply_tax_credit, pension_age
        )
        total_credits = general_credit + labour_credit
        tax_after_credits = max(ZERO, pre_credit_tax - total_credits)

        regular_pay = round_money(regular_pay)
        overtime_pay = round_money(overtime_pay)
        bonus_pay = round_money(bonus_pay)
        gross_pay = regular_pay + overtime_pay + bonus_pay

        income_tax = round_money(tax_after_credits * period_months / TWELVE)
        # Withholding never exceeds what is left after contributions
        income_tax = min(income_tax, max(ZERO, gross_pay - employee_contributions))

        # 5) Holiday allowance
        holiday_annual = base_annual * rates.holiday_allowance_rate / HUNDRED
        holiday_accrued = round_money(holiday_annual * period_months / TWELVE)

        # 6) Net pay and employer cost
        total_deductions = income_tax + employee_contributions
        net_pay = gross_pay - total_deductions
        total_employer_cost = gross_pay + employer_contributions + holiday_accrued

        self._check_minimum_wage(profile, rates, warnings)

        fingerprint = self._compute_inputs_fingerprint(
            profile, rates, pay_period, hours, overtime, bonus
        )
        calculation_id = self._generate_calculation_id(
            profile.employee_id, pay_period, fingerprint
        )

        return CalculationResult(
            employee_id=profile.employee_id,
            calculation_id=calculation_id,
            fingerprint=fingerprint,
            period_start=pay_period.start,
            period_end=pay_period.end,
            tax_year=pay_period.tax_year,
            regular_pay=regular_pay,
            overtime_pay=overtime_pay,
            bonus_pay=bonus_pay,
            gross_pay=gross_pay,
            gross_annual_equivalent=round_money(gross_annual),
            tax_bracket_breakdown=tuple(breakdown),
            income_tax_before_credits=pre_credit_tax,
            general_tax_credit=general_credit,
            labour_tax_credit=labour_credit,
            total_tax_credits=total_credits,
            income_tax_after_credits=tax_after_credits,
            income_tax=income_tax,
            contributions=tuple(contributions),
            employee_contributions=employee_contributions,
            employer_contributions=employer_contributions,
            total_deductions=total_deductions,
            net_pay=net_pay,
            holiday_allowance_annual=round_money(holiday_annual),
            holiday_allowance_accrued=holiday_accrued,
            total_employer_cost=total_employer_cost,
            period_months=period_months,
            hours_worked=effective_hours,
            overtime_hours=overtime,
            warnings=tuple(warnings),
        )

    def _gross_components(
        self,
        profile: CompensationProfile,
        pay_period: PayPeriod,
        hours: Decimal | None,
        overtime: Decimal,
        warnings: list[str],
    ) -> tuple[Decimal, Decimal, Decimal | None]:
        """Return (regular pay, overtime pay, hours paid) before rounding."""
        window = profile.employment_window(pay_period)

        if profile.employment_type == EmploymentType.MONTHLY:
            if overtime > 0:
                warnings.append("Overtime hours are not paid to monthly employees")
            if window is None:
                return ZERO, ZERO, None
            employed_months = month_fraction(
                window[0],
                window[1],
                self.proration_method,
                profile.working_days_per_week,
            )
            return profile.monthly_salary * employed_months, ZERO, None

        rate = profile.hourly_rate
        if hours is None:
            # Contract hours over the employed part of the period
            days = count_days(window[0], window[1]) if window else 0
            hours = profile.working_hours_per_week * Decimal(days) / Decimal(7)
        return hours * rate, overtime * rate * self.overtime_multiplier, hours

    def _validate_profile(self, profile: CompensationProfile) -> None:
        try:
            employment_type = EmploymentType(profile.employment_type)
        except ValueError:
            raise InvalidProfileError(
                f"Unknown employment type {profile.employment_type!r}"
            ) from None

        if employment_type == EmploymentType.MONTHLY:
            if profile.monthly_salary is None:
                raise InvalidProfileError("Monthly employee has no monthly salary")
            if profile.hourly_rate is not None:
                raise InvalidProfileError("Monthly employee must not have an hourly rate")
        else:
            if profile.hourly_rate is None:
                raise InvalidProfileError("Hourly employee has no hourly rate")
            if profile.monthly_salary is not None:
                raise InvalidProfileError("Hourly employee must not have a monthly salary")

        if profile.gross_amount < 0:
            raise InvalidProfileError(f"Gross amount must not be negative (got {profile.gross_amount})")
        if not ZERO < profile.working_hours_per_week <= Decimal("168"):
            raise InvalidProfileError(
                f"Working hours per week must be in (0, 168] (got {profile.working_hours_per_week})"
            )
        if not 1 <= profile.working_days_per_week <= 7:
            raise InvalidProfileError(
                f"Working days per week must be 1-7 (got {profile.working_days_per_week})"
            )
        if (
            profile.employment_start is not None
            and profile.employment_end is not None
            and profile.employment_start > profile.employment_end
        ):
            raise InvalidProfileError("Employment start date is after its end date")

    @staticmethod
    def _validate_inputs(hours: Decimal | None, overtime: Decimal, bonus: Decimal) -> None:
        if hours is not None and hours < 0:
            raise NegativeInputError("hours_worked", hours)
        if overtime < 0:
            raise NegativeInputError("overtime_hours", overtime)
        if bonus < 0:
            raise NegativeInputError("bonuses", bonus)

    @staticmethod
    def _require_rate_table(rate_table: RateTable | None, pay_period: PayPeriod) -> RateTable:
        if rate_table is None:
            raise NoActiveRateTableError(pay_period.start)
        if not rate_table.is_active:
            raise NoActiveRateTableError(pay_period.start, "rate table is not active")
        if rate_table.tax_year != pay_period.tax_year:
            raise NoActiveRateTableError(
                pay_period.start, f"rate table covers tax year {rate_table.tax_year}"
            )
        rate_table.validate()
        return rate_table

    @staticmethod
    def _check_minimum_wage(
        profile: CompensationProfile, rates: RateTable, warnings: list[str]
    ) -> None:
        """Warn when the full-time monthly equivalent is below the minimum wage."""
        if profile.employment_type == EmploymentType.MONTHLY:
            monthly = profile.monthly_salary
        else:
            monthly = profile.hourly_rate * profile.working_hours_per_week * WEEKS_PER_MONTH
        full_time = monthly * FULL_TIME_HOURS / profile.working_hours_per_week
        if full_time < rates.minimum_wage:
            warnings.append(
                f"Full-time monthly equivalent {round_money(full_time)} is below "
                f"the minimum wage {rates.minimum_wage}"
            )

    def _compute_inputs_fingerprint(
        self,
        profile: CompensationProfile,
        rates: RateTable,
        pay_period: PayPeriod,
        hours: Decimal | None,
        overtime: Decimal,
        bonus: Decimal,
    ) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data = {
            "profile": {
                "employment_type": EmploymentType(profile.employment_type).value,
                "monthly_salary": str(profile.monthly_salary),
                "hourly_rate": str(profile.hourly_rate),
                "tax_table": str(getattr(profile.tax_table, "value", profile.tax_table)),
                "working_hours_per_week": str(profile.working_hours_per_week),
                "working_days_per_week": profile.working_days_per_week,
                "date_of_birth": str(profile.date_of_birth),
                "is_dga": profile.is_dga,
                "apply_tax_credit": profile.apply_tax_credit,
                "employment_start": str(profile.employment_start),
                "employment_end": str(profile.employment_end),
            },
            "rates": rates.to_canonical_dict(),
            "period": [pay_period.start.isoformat(), pay_period.end.isoformat()],
            "hours_worked": str(hours),
            "overtime_hours": str(overtime),
            "bonuses": str(bonus),
            "overtime_multiplier": str(self.overtime_multiplier),
            "proration_method": self.proration_method.value,
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def _generate_calculation_id(
        self, employee_id: UUID, pay_period: PayPeriod, inputs_fingerprint: str
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "period": str(pay_period),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])
