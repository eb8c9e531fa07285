"""Payroll calculation engine."""

from salarysync.calculators.engine import PayrollCalculator
from salarysync.calculators.tax_calculator import TaxCalculator
from salarysync.calculators.types import (
    CalculationResult,
    CompensationProfile,
    EmploymentType,
    PayPeriod,
    ProrationMethod,
    RateTable,
    TaxTable,
)

__all__ = [
    "CalculationResult",
    "CompensationProfile",
    "EmploymentType",
    "PayPeriod",
    "PayrollCalculator",
    "ProrationMethod",
    "RateTable",
    "TaxCalculator",
    "TaxTable",
]
