"""Progressive income tax, tax credits and capped social contributions."""

from __future__ import annotations

from decimal import Decimal

from salarysync.calculators.statutory import CreditStep, GeneralCredit, StatutoryTables
from salarysync.calculators.types import (
    HUNDRED,
    ZERO,
    BracketLine,
    ContributionLine,
    ContributionParty,
    RateTable,
    TaxBracket,
    TaxTable,
    round_money,
)

TWELVE = Decimal("12")


class TaxCalculator:
    """Calculates annual tax figures and period contributions.

    Brackets and credits work on annual income; contributions are capped on
    the annualised income and then scaled back to the period length, given in
    months. Nothing here touches the database, so one instance can be shared
    by every concurrent calculation.
    """

    def __init__(self, tables: StatutoryTables):
        self.tables = tables

    def calculate_bracket_breakdown(
        self, annual_income: Decimal, brackets: tuple[TaxBracket, ...]
    ) -> list[BracketLine]:
        """Tax ``annual_income`` cumulatively through the brackets.

        Each line is rounded on its own, so the pre-credit tax is exactly the
        sum of the line amounts.
        """
        lines: list[BracketLine] = []
        if annual_income <= 0:
            return lines

        for index, bracket in enumerate(sorted(brackets, key=lambda b: b.lower)):
            if annual_income <= bracket.lower:
                break
            ceiling = annual_income if bracket.upper is None else min(annual_income, bracket.upper)
            taxable_in_bracket = ceiling - bracket.lower
            if taxable_in_bracket <= 0:
                continue
            lines.append(
                BracketLine(
                    bracket_index=index,
                    income_in_bracket=round_money(taxable_in_bracket),
                    rate=bracket.rate,
                    tax_amount=round_money(taxable_in_bracket * bracket.rate),
                )
            )
        return lines

    def calculate_general_credit(self, annual_income: Decimal, pension_age: bool) -> Decimal:
        """General tax credit (algemene heffingskorting)."""
        credit: GeneralCredit = (
            self.tables.pension_age_general_credit if pension_age else self.tables.general_credit
        )
        if annual_income <= credit.phase_out_start:
            return round_money(credit.maximum)
        reduced = credit.maximum - credit.phase_out_rate * (annual_income - credit.phase_out_start)
        return round_money(max(ZERO, reduced))

    def calculate_labour_credit(self, labour_income: Decimal, pension_age: bool) -> Decimal:
        """Labour tax credit (arbeidskorting)."""
        if labour_income <= 0:
            return round_money(ZERO)
        steps: tuple[CreditStep, ...] = (
            self.tables.pension_age_labour_credit
            if pension_age
            else self.tables.labour_credit
        )
        for step in steps:
            if step.upper is None or labour_income < step.upper:
                credit = step.base + step.rate * (labour_income - step.lower)
                return round_money(max(ZERO, credit))
        return round_money(ZERO)

    def calculate_tax_credits(
        self,
        annual_income: Decimal,
        tax_table: TaxTable,
        apply_tax_credit: bool,
        pension_age: bool,
    ) -> tuple[Decimal, Decimal]:
        """Return (general credit, labour credit) for the employee's table.

        The white table grants both credits. The green table covers income
        that is not from current labour and only grants the general credit.
        """
        if not apply_tax_credit:
            return round_money(ZERO), round_money(ZERO)
        general = self.calculate_general_credit(annual_income, pension_age)
        if tax_table == TaxTable.GROEN:
            return general, round_money(ZERO)
        return general, self.calculate_labour_credit(annual_income, pension_age)

    @staticmethod
    def calculate_contribution(
        annual_income: Decimal,
        rate: Decimal,
        annual_cap: Decimal | None,
        months: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """Return (capped annual base, unrounded period amount).

        ``rate`` is a percentage; a cap of None means the contribution accrues
        over all income.
        """
        if annual_income <= 0 or rate <= 0:
            return ZERO, ZERO
        base = annual_income if annual_cap is None else min(annual_income, annual_cap)
        return base, rate / HUNDRED * base * months / TWELVE

    def calculate_contributions(
        self,
        rates: RateTable,
        annual_income: Decimal,
        months: Decimal,
        pension_age: bool,
        is_dga: bool,
    ) -> list[ContributionLine]:
        """Employee (AOW, WLZ, WW, WIA) and employer (ZVW) contributions.

        No AOW is due from pension age on; a DGA is not insured for WW or WIA.
        """
        specs = (
            ("aow", ContributionParty.EMPLOYEE, ZERO if pension_age else rates.aow_rate, rates.aow_max),
            ("wlz", ContributionParty.EMPLOYEE, rates.wlz_rate, rates.wlz_max),
            ("ww", ContributionParty.EMPLOYEE, ZERO if is_dga else rates.ww_rate, rates.ww_max),
            ("wia", ContributionParty.EMPLOYEE, ZERO if is_dga else rates.wia_rate, rates.wia_max),
            ("zvw", ContributionParty.EMPLOYER, rates.zvw_rate, None),
        )
        lines: list[ContributionLine] = []
        for code, party, rate, cap in specs:
            base, amount = self.calculate_contribution(annual_income, rate, cap, months)
            lines.append(
                ContributionLine(
                    code=code,
                    party=party,
                    rate=rate,
                    annual_base=round_money(base),
                    amount=round_money(amount),
                )
            )
        return lines
