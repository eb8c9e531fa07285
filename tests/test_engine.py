"""Tests for the payroll calculation engine."""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from salarysync.calculators.engine import PayrollCalculator
from salarysync.calculators.types import (
    CalculationResult,
    ContributionParty,
    EmploymentType,
    PayPeriod,
    TaxTable,
)
from salarysync.errors import (
    InvalidPayPeriodError,
    InvalidProfileError,
    InvalidRateTableError,
    NegativeInputError,
    NoActiveRateTableError,
)

from factories import make_profile, make_rate_table

JANUARY_2025 = PayPeriod(date(2025, 1, 1), date(2025, 1, 31))


class TestMonthlyEmployee:
    """Full-month calculation for a salaried employee on the white table."""

    def test_gross_and_holiday_allowance(self, calculator: PayrollCalculator):
        result = calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025)

        assert result.gross_pay == Decimal("4000.00")
        assert result.gross_annual_equivalent == Decimal("48000.00")
        assert result.holiday_allowance_annual == Decimal("3840.00")
        assert result.holiday_allowance_accrued == Decimal("320.00")
        assert result.period_months == Decimal("1")

    def test_contributions_are_capped(self, calculator: PayrollCalculator):
        result = calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025)
        lines = {line.code: line for line in result.contributions}

        assert lines["aow"].annual_base == Decimal("38441.00")
        assert lines["aow"].amount == Decimal("573.41")
        assert lines["wlz"].amount == Decimal("309.13")
        assert lines["ww"].annual_base == Decimal("48000.00")
        assert lines["ww"].amount == Decimal("108.00")
        assert lines["wia"].amount == Decimal("24.00")
        assert lines["zvw"].party == ContributionParty.EMPLOYER
        assert lines["zvw"].amount == Decimal("226.00")

        assert result.employee_contributions == Decimal("1014.54")
        assert result.employer_contributions == Decimal("226.00")

    def test_credits_exceed_bracket_tax(self, calculator: PayrollCalculator):
        result = calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025)

        assert [line.tax_amount for line in result.tax_bracket_breakdown] == [
            Decimal("3140.63"),
            Decimal("3582.71"),
        ]
        assert result.income_tax_before_credits == Decimal("6723.34")
        assert result.general_tax_credit == Decimal("1826.33")
        assert result.labour_tax_credit == Decimal("5278.12")
        assert result.income_tax_after_credits == Decimal("0")
        assert result.income_tax == Decimal("0.00")

    def test_net_pay_and_employer_cost(self, calculator: PayrollCalculator):
        result = calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025)

        assert result.total_deductions == Decimal("1014.54")
        assert result.net_pay == Decimal("2985.46")
        assert result.net_pay < result.gross_pay
        assert result.total_employer_cost == Decimal("4546.00")
        assert result.gross_pay == result.net_pay + result.total_deductions

    def test_higher_salary_pays_income_tax(self, calculator: PayrollCalculator):
        profile = make_profile(monthly_salary=Decimal("6000.00"))

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert result.income_tax_before_credits == Decimal("15718.54")
        assert result.general_tax_credit == Decimal("305.45")
        assert result.labour_tax_credit == Decimal("3715.72")
        assert result.income_tax == Decimal("974.78")

    def test_green_table_only_gets_general_credit(self, calculator: PayrollCalculator):
        profile = make_profile(monthly_salary=Decimal("6000.00"), tax_table=TaxTable.GROEN)

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert result.labour_tax_credit == Decimal("0.00")
        assert result.general_tax_credit == Decimal("305.45")
        assert result.income_tax == Decimal("1284.42")

    def test_no_credits_without_tax_credit_opt_in(self, calculator: PayrollCalculator):
        profile = make_profile(apply_tax_credit=False)

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert result.total_tax_credits == Decimal("0.00")
        assert result.income_tax == Decimal("560.28")

    def test_rate_table_totals(self):
        rates = make_rate_table()

        assert rates.employee_contribution_rate == Decimal("30.85")
        assert rates.total_contribution_rate == Decimal("36.50")


class TestHourlyEmployee:
    def test_hours_and_overtime(self, calculator: PayrollCalculator):
        profile = make_profile(
            employment_type=EmploymentType.HOURLY,
            monthly_salary=None,
            hourly_rate=Decimal("25.00"),
        )

        result = calculator.calculate(
            profile,
            make_rate_table(),
            JANUARY_2025,
            hours_worked=Decimal("160"),
            overtime_hours=Decimal("10"),
        )

        assert result.regular_pay == Decimal("4000.00")
        assert result.overtime_pay == Decimal("375.00")
        assert result.gross_pay == Decimal("4375.00")
        assert result.hours_worked == Decimal("160")

    def test_contract_hours_when_hours_not_given(self, calculator: PayrollCalculator):
        profile = make_profile(
            employment_type=EmploymentType.HOURLY,
            monthly_salary=None,
            hourly_rate=Decimal("20.00"),
            working_hours_per_week=Decimal("35"),
        )
        period = PayPeriod(date(2025, 2, 1), date(2025, 2, 28))

        result = calculator.calculate(profile, make_rate_table(), period)

        # 28 days is exactly four contract weeks
        assert result.hours_worked == Decimal("140")
        assert result.regular_pay == Decimal("2800.00")

    def test_holiday_allowance_excludes_bonus(self, calculator: PayrollCalculator):
        with_bonus = calculator.calculate(
            make_profile(), make_rate_table(), JANUARY_2025, bonuses=Decimal("1000")
        )

        assert with_bonus.gross_pay == Decimal("5000.00")
        assert with_bonus.bonus_pay == Decimal("1000.00")
        assert with_bonus.holiday_allowance_accrued == Decimal("320.00")


class TestProration:
    def test_mid_month_start(self, calculator: PayrollCalculator):
        profile = make_profile(employment_start=date(2025, 1, 16))

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert result.gross_pay == Decimal("2064.52")

    def test_half_month_period_annualises_to_full_salary(self, calculator: PayrollCalculator):
        period = PayPeriod(date(2025, 4, 1), date(2025, 4, 15))

        result = calculator.calculate(make_profile(), make_rate_table(), period)

        assert result.period_months == Decimal("0.5")
        assert result.gross_pay == Decimal("2000.00")
        assert result.gross_annual_equivalent == Decimal("48000.00")

    def test_working_day_proration(self):
        calculator = PayrollCalculator(
            overtime_multiplier=Decimal("1.5"),
            proration_method="working",
            engine_version="test-1.0.0",
        )
        # April 2025 has 20 working days: Good Friday and Easter Monday are
        # holidays and King's Day falls on a Saturday
        profile = make_profile(employment_start=date(2025, 4, 14))
        period = PayPeriod(date(2025, 4, 1), date(2025, 4, 30))

        result = calculator.calculate(profile, make_rate_table(), period)

        # 14th-17th, 22nd-25th and 28th-30th: 11 of 20 working days
        assert result.regular_pay == Decimal("2200.00")


class TestWarnings:
    def test_minimum_wage_warning(self, calculator: PayrollCalculator):
        profile = make_profile(monthly_salary=Decimal("1500.00"))

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert any("minimum wage" in w for w in result.warnings)

    def test_part_timer_is_compared_full_time(self, calculator: PayrollCalculator):
        profile = make_profile(
            monthly_salary=Decimal("1200.00"), working_hours_per_week=Decimal("24")
        )

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert result.warnings == ()

    def test_overtime_for_monthly_employee_is_ignored(self, calculator: PayrollCalculator):
        result = calculator.calculate(
            make_profile(), make_rate_table(), JANUARY_2025, overtime_hours=Decimal("5")
        )

        assert result.overtime_pay == Decimal("0.00")
        assert any("Overtime" in w for w in result.warnings)


class TestStatusAdjustments:
    def test_pension_age_pays_no_aow(self, calculator: PayrollCalculator):
        profile = make_profile(date_of_birth=date(1950, 3, 1))

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)
        lines = {line.code: line for line in result.contributions}

        assert lines["aow"].amount == Decimal("0.00")
        assert lines["wlz"].amount == Decimal("309.13")

    def test_dga_pays_no_employee_insurance(self, calculator: PayrollCalculator):
        profile = make_profile(is_dga=True)

        result = calculator.calculate(profile, make_rate_table(), JANUARY_2025)
        lines = {line.code: line for line in result.contributions}

        assert lines["ww"].amount == Decimal("0.00")
        assert lines["wia"].amount == Decimal("0.00")
        assert lines["aow"].amount == Decimal("573.41")


class TestValidation:
    def test_negative_hours(self, calculator: PayrollCalculator):
        profile = make_profile(
            employment_type=EmploymentType.HOURLY, monthly_salary=None, hourly_rate=Decimal("20")
        )
        with pytest.raises(NegativeInputError) as exc_info:
            calculator.calculate(profile, make_rate_table(), JANUARY_2025, hours_worked=Decimal("-1"))
        assert exc_info.value.field_name == "hours_worked"

    def test_negative_bonus(self, calculator: PayrollCalculator):
        with pytest.raises(NegativeInputError):
            calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025, bonuses=Decimal("-0.01"))

    def test_monthly_profile_without_salary(self, calculator: PayrollCalculator):
        with pytest.raises(InvalidProfileError):
            calculator.calculate(make_profile(monthly_salary=None), make_rate_table(), JANUARY_2025)

    def test_monthly_profile_with_hourly_rate(self, calculator: PayrollCalculator):
        profile = make_profile(hourly_rate=Decimal("25"))
        with pytest.raises(InvalidProfileError):
            calculator.calculate(profile, make_rate_table(), JANUARY_2025)

    def test_working_days_out_of_range(self, calculator: PayrollCalculator):
        with pytest.raises(InvalidProfileError):
            calculator.calculate(
                make_profile(working_days_per_week=0), make_rate_table(), JANUARY_2025
            )

    def test_missing_rate_table(self, calculator: PayrollCalculator):
        with pytest.raises(NoActiveRateTableError):
            calculator.calculate(make_profile(), None, JANUARY_2025)

    def test_inactive_rate_table(self, calculator: PayrollCalculator):
        with pytest.raises(NoActiveRateTableError):
            calculator.calculate(make_profile(), make_rate_table(is_active=False), JANUARY_2025)

    def test_rate_table_for_other_year(self, calculator: PayrollCalculator):
        with pytest.raises(NoActiveRateTableError):
            calculator.calculate(make_profile(), make_rate_table(tax_year=2024), JANUARY_2025)

    def test_rate_out_of_range(self, calculator: PayrollCalculator):
        with pytest.raises(InvalidRateTableError):
            calculator.calculate(
                make_profile(), make_rate_table(aow_rate=Decimal("120")), JANUARY_2025
            )

    def test_rates_leaving_no_headroom(self, calculator: PayrollCalculator):
        rates = make_rate_table(aow_rate=Decimal("40"), wlz_rate=Decimal("20"))
        with pytest.raises(InvalidRateTableError):
            calculator.calculate(make_profile(), rates, JANUARY_2025)

    def test_reversed_period(self):
        with pytest.raises(InvalidPayPeriodError):
            PayPeriod(date(2025, 2, 1), date(2025, 1, 1))


class TestDeterminism:
    def test_same_inputs_same_result(self, calculator: PayrollCalculator):
        profile = make_profile()
        first = calculator.calculate(profile, make_rate_table(), JANUARY_2025)
        second = calculator.calculate(profile, make_rate_table(), JANUARY_2025)

        assert first == second
        assert isinstance(first.calculation_id, UUID)
        assert len(first.fingerprint) == 32

    def test_changed_input_changes_calculation_id(self, calculator: PayrollCalculator):
        profile = make_profile()
        base = calculator.calculate(profile, make_rate_table(), JANUARY_2025)
        with_bonus = calculator.calculate(
            profile, make_rate_table(), JANUARY_2025, bonuses=Decimal("1")
        )

        assert base.fingerprint != with_bonus.fingerprint
        assert base.calculation_id != with_bonus.calculation_id

    def test_result_survives_serialisation(self, calculator: PayrollCalculator):
        result = calculator.calculate(make_profile(), make_rate_table(), JANUARY_2025)

        assert CalculationResult.from_dict(result.to_dict()) == result
