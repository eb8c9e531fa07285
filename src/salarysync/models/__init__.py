"""ORM models."""

from salarysync.models.base import Base
from salarysync.models.employee import Employee
from salarysync.models.payroll import PayrollApprovalHistory, PayrollRecord, PayrollReversal
from salarysync.models.tax import TaxRateTable

__all__ = [
    "Base",
    "Employee",
    "PayrollApprovalHistory",
    "PayrollRecord",
    "PayrollReversal",
    "TaxRateTable",
]
