"""Tests for brackets, tax credits and contributions."""

from datetime import date
from decimal import Decimal

import pytest

from salarysync.calculators.statutory import TABLES_2024, TABLES_2025, get_statutory_tables
from salarysync.calculators.tax_calculator import TaxCalculator
from salarysync.calculators.types import ContributionParty, TaxBracket, TaxTable
from salarysync.errors import NoActiveRateTableError

from factories import make_rate_table


@pytest.fixture
def tax() -> TaxCalculator:
    return TaxCalculator(TABLES_2025)


class TestBracketBreakdown:
    def test_income_in_first_bracket_only(self, tax: TaxCalculator):
        lines = tax.calculate_bracket_breakdown(Decimal("20000"), TABLES_2025.brackets)

        assert len(lines) == 1
        assert lines[0].bracket_index == 0
        assert lines[0].income_in_bracket == Decimal("20000.00")
        assert lines[0].tax_amount == Decimal("1634.00")

    def test_income_spanning_all_brackets(self, tax: TaxCalculator):
        lines = tax.calculate_bracket_breakdown(Decimal("100000"), TABLES_2025.brackets)

        assert [line.income_in_bracket for line in lines] == [
            Decimal("38441.00"),
            Decimal("38376.00"),
            Decimal("23183.00"),
        ]
        assert sum(line.income_in_bracket for line in lines) == Decimal("100000")
        assert lines[2].rate == Decimal("0.4950")

    def test_zero_income(self, tax: TaxCalculator):
        assert tax.calculate_bracket_breakdown(Decimal("0"), TABLES_2025.brackets) == []

    def test_unsorted_brackets_are_ordered(self, tax: TaxCalculator):
        brackets = (
            TaxBracket(Decimal("10000"), None, Decimal("0.5")),
            TaxBracket(Decimal("0"), Decimal("10000"), Decimal("0.1")),
        )

        lines = tax.calculate_bracket_breakdown(Decimal("15000"), brackets)

        assert [line.tax_amount for line in lines] == [Decimal("1000.00"), Decimal("2500.00")]

    def test_early_cohort_has_wider_first_bracket(self):
        brackets = TABLES_2025.brackets_for(True, date(1940, 5, 1))

        assert brackets[0].upper == Decimal("40502")
        assert TABLES_2025.brackets_for(False, date(1940, 5, 1)) is TABLES_2025.brackets


class TestTaxCredits:
    def test_general_credit_below_phase_out(self, tax: TaxCalculator):
        assert tax.calculate_general_credit(Decimal("25000"), False) == Decimal("3068.00")

    def test_general_credit_phases_out_to_zero(self, tax: TaxCalculator):
        assert tax.calculate_general_credit(Decimal("90000"), False) == Decimal("0.00")

    def test_pension_age_general_credit(self, tax: TaxCalculator):
        assert tax.calculate_general_credit(Decimal("20000"), True) == Decimal("1536.00")

    def test_labour_credit_builds_up(self, tax: TaxCalculator):
        # 980 + 30.030% of (20000 - 12169)
        assert tax.calculate_labour_credit(Decimal("20000"), False) == Decimal("3331.65")

    def test_labour_credit_above_ceiling(self, tax: TaxCalculator):
        assert tax.calculate_labour_credit(Decimal("150000"), False) == Decimal("0.00")

    def test_green_table_has_no_labour_credit(self, tax: TaxCalculator):
        general, labour = tax.calculate_tax_credits(
            Decimal("30000"), TaxTable.GROEN, apply_tax_credit=True, pension_age=False
        )

        assert general > 0
        assert labour == Decimal("0.00")

    def test_credits_can_be_waived(self, tax: TaxCalculator):
        assert tax.calculate_tax_credits(
            Decimal("30000"), TaxTable.WIT, apply_tax_credit=False, pension_age=False
        ) == (Decimal("0.00"), Decimal("0.00"))


class TestContributions:
    def test_contribution_is_capped(self):
        base, amount = TaxCalculator.calculate_contribution(
            Decimal("60000"), Decimal("10"), Decimal("50000"), Decimal("1")
        )

        assert base == Decimal("50000")
        assert amount == Decimal("10") / Decimal("100") * Decimal("50000") / Decimal("12")

    def test_uncapped_contribution(self):
        base, _ = TaxCalculator.calculate_contribution(
            Decimal("60000"), Decimal("5"), None, Decimal("1")
        )

        assert base == Decimal("60000")

    def test_zero_rate_yields_nothing(self):
        assert TaxCalculator.calculate_contribution(
            Decimal("60000"), Decimal("0"), None, Decimal("1")
        ) == (Decimal("0"), Decimal("0"))

    def test_contribution_lines(self, tax: TaxCalculator):
        lines = tax.calculate_contributions(
            make_rate_table(), Decimal("48000"), Decimal("1"), pension_age=False, is_dga=False
        )

        assert [line.code for line in lines] == ["aow", "wlz", "ww", "wia", "zvw"]
        assert [line.party for line in lines].count(ContributionParty.EMPLOYER) == 1

    def test_half_period_halves_amounts(self, tax: TaxCalculator):
        full = tax.calculate_contributions(
            make_rate_table(), Decimal("48000"), Decimal("1"), pension_age=False, is_dga=False
        )
        half = tax.calculate_contributions(
            make_rate_table(), Decimal("48000"), Decimal("0.5"), pension_age=False, is_dga=False
        )

        ww_full = next(line for line in full if line.code == "ww")
        ww_half = next(line for line in half if line.code == "ww")
        assert ww_half.amount * 2 == ww_full.amount


class TestStatutoryTables:
    def test_tables_by_year(self):
        assert get_statutory_tables(2024) is TABLES_2024
        assert get_statutory_tables(2025) is TABLES_2025

    def test_unknown_year(self):
        with pytest.raises(NoActiveRateTableError):
            get_statutory_tables(1999)

    def test_top_rate(self):
        assert TABLES_2025.top_rate == Decimal("0.4950")
