"""Dutch statutory box 1 tables per tax year.

Bracket rates are the income tax portion only. The national insurance premium
that the combined first-bracket rate also contains is levied separately
through the AOW and WLZ contributions of the company rate table, so it is left
out here to avoid charging it twice.

Credit schedules follow the Belastingdienst tables for the year. Each schedule
is a list of steps ``(lower, upper, base, rate)``: for income in
``[lower, upper)`` the credit is ``base + rate * (income - lower)``, where a
negative rate models a phase-out.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from salarysync.calculators.types import TaxBracket
from salarysync.errors import NoActiveRateTableError

D = Decimal

PENSION_AGE = 67

# Born before this date: pension-age first bracket is wider
EARLY_COHORT_CUTOFF = date(1946, 1, 1)


@dataclass(frozen=True)
class CreditStep:
    """One linear segment of a tax credit schedule."""

    lower: Decimal
    upper: Decimal | None
    base: Decimal
    rate: Decimal


@dataclass(frozen=True)
class GeneralCredit:
    """General tax credit with its phase-out above ``phase_out_start``."""

    maximum: Decimal
    phase_out_start: Decimal
    phase_out_rate: Decimal


@dataclass(frozen=True)
class StatutoryTables:
    """All statutory parameters the calculator needs for one tax year."""

    tax_year: int
    brackets: tuple[TaxBracket, ...]
    pension_age_brackets: tuple[TaxBracket, ...]
    early_cohort_brackets: tuple[TaxBracket, ...]
    general_credit: GeneralCredit
    pension_age_general_credit: GeneralCredit
    labour_credit: tuple[CreditStep, ...]
    pension_age_labour_credit: tuple[CreditStep, ...]
    pension_age: int = PENSION_AGE

    def brackets_for(
        self, reached_pension_age: bool, date_of_birth: date | None
    ) -> tuple[TaxBracket, ...]:
        if not reached_pension_age:
            return self.brackets
        if date_of_birth is not None and date_of_birth < EARLY_COHORT_CUTOFF:
            return self.early_cohort_brackets
        return self.pension_age_brackets

    @property
    def top_rate(self) -> Decimal:
        """Highest marginal rate over all bracket variants."""
        return max(
            b.rate
            for variant in (
                self.brackets,
                self.pension_age_brackets,
                self.early_cohort_brackets,
            )
            for b in variant
        )


def _brackets(*rows: tuple[str, str | None, str]) -> tuple[TaxBracket, ...]:
    return tuple(
        TaxBracket(lower=D(lower), upper=D(upper) if upper else None, rate=D(rate))
        for lower, upper, rate in rows
    )


def _steps(*rows: tuple[str, str | None, str, str]) -> tuple[CreditStep, ...]:
    return tuple(
        CreditStep(lower=D(lower), upper=D(upper) if upper else None, base=D(base), rate=D(rate))
        for lower, upper, base, rate in rows
    )


TABLES_2024 = StatutoryTables(
    tax_year=2024,
    brackets=_brackets(
        ("0", "38098", "0.0932"),
        ("38098", "75518", "0.3697"),
        ("75518", None, "0.4950"),
    ),
    pension_age_brackets=_brackets(
        ("0", "38098", "0.0932"),
        ("38098", "75518", "0.3697"),
        ("75518", None, "0.4950"),
    ),
    early_cohort_brackets=_brackets(
        ("0", "40021", "0.0932"),
        ("40021", "75518", "0.3697"),
        ("75518", None, "0.4950"),
    ),
    general_credit=GeneralCredit(
        maximum=D("3362"), phase_out_start=D("24812"), phase_out_rate=D("0.06630")
    ),
    pension_age_general_credit=GeneralCredit(
        maximum=D("1735"), phase_out_start=D("24812"), phase_out_rate=D("0.03421")
    ),
    labour_credit=_steps(
        ("0", "11491", "0", "0.08425"),
        ("11491", "24821", "968", "0.31433"),
        ("24821", "39958", "5158", "0.02471"),
        ("39958", "124935", "5532", "-0.06510"),
        ("124935", None, "0", "0"),
    ),
    pension_age_labour_credit=_steps(
        ("0", "11491", "0", "0.04343"),
        ("11491", "24821", "499", "0.16220"),
        ("24821", "39958", "2661", "0.01275"),
        ("39958", "124935", "2854", "-0.03358"),
        ("124935", None, "0", "0"),
    ),
)

TABLES_2025 = StatutoryTables(
    tax_year=2025,
    brackets=_brackets(
        ("0", "38441", "0.0817"),
        ("38441", "76817", "0.3748"),
        ("76817", None, "0.4950"),
    ),
    pension_age_brackets=_brackets(
        ("0", "38441", "0.0817"),
        ("38441", "76817", "0.3748"),
        ("76817", None, "0.4950"),
    ),
    early_cohort_brackets=_brackets(
        ("0", "40502", "0.0817"),
        ("40502", "76817", "0.3748"),
        ("76817", None, "0.4950"),
    ),
    general_credit=GeneralCredit(
        maximum=D("3068"), phase_out_start=D("28406"), phase_out_rate=D("0.06337")
    ),
    pension_age_general_credit=GeneralCredit(
        maximum=D("1536"), phase_out_start=D("28406"), phase_out_rate=D("0.03170")
    ),
    labour_credit=_steps(
        ("0", "12169", "0", "0.08053"),
        ("12169", "26288", "980", "0.30030"),
        ("26288", "43071", "5220", "0.02258"),
        ("43071", "129078", "5599", "-0.06510"),
        ("129078", None, "0", "0"),
    ),
    pension_age_labour_credit=_steps(
        ("0", "12169", "0", "0.04029"),
        ("12169", "26288", "490", "0.15023"),
        ("26288", "43071", "2611", "0.01130"),
        ("43071", "129078", "2801", "-0.03257"),
        ("129078", None, "0", "0"),
    ),
)

STATUTORY_TABLES: dict[int, StatutoryTables] = {
    TABLES_2024.tax_year: TABLES_2024,
    TABLES_2025.tax_year: TABLES_2025,
}


def get_statutory_tables(tax_year: int) -> StatutoryTables:
    """Statutory parameters for a tax year.

    Raises NoActiveRateTableError for years without published tables.
    """
    try:
        return STATUTORY_TABLES[tax_year]
    except KeyError:
        raise NoActiveRateTableError(
            date(tax_year, 1, 1), "no statutory bracket table for this year"
        ) from None
