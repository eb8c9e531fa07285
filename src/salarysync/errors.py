"""Error taxonomy shared by the calculator, batch processor and approval workflow."""

from __future__ import annotations

from datetime import date
from uuid import UUID


class PayrollError(Exception):
    """Base class for all payroll engine errors."""

    code = "PAYROLL_ERROR"


class InvalidProfileError(PayrollError):
    """Raised when a compensation profile is internally inconsistent."""

    code = "INVALID_PROFILE"


class NegativeInputError(PayrollError):
    """Raised when hours, overtime or bonuses are negative."""

    code = "NEGATIVE_INPUT"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"{field_name} must not be negative (got {value})")


class NoActiveRateTableError(PayrollError):
    """Raised when no single active tax rate table covers the requested date."""

    code = "NO_ACTIVE_RATE_TABLE"

    def __init__(self, as_of_date: date, reason: str | None = None):
        self.as_of_date = as_of_date
        self.reason = reason
        msg = f"No active tax rate table for tax year {as_of_date.year}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidRateTableError(PayrollError):
    """Raised when a tax rate table holds values outside their allowed range."""

    code = "INVALID_RATE_TABLE"


class RateTableLockedError(PayrollError):
    """Raised when mutating a rate table already referenced by a finalized record."""

    code = "RATE_TABLE_LOCKED"

    def __init__(self, tax_rate_table_id: UUID, reason: str | None = None):
        self.tax_rate_table_id = tax_rate_table_id
        self.reason = reason or "referenced by finalized or paid payroll records"
        super().__init__(
            f"Tax rate table {tax_rate_table_id} can no longer be changed: {self.reason}"
        )


class RateTableNotFoundError(PayrollError):
    """Raised when a tax rate table does not exist for the company."""

    code = "RATE_TABLE_NOT_FOUND"

    def __init__(self, tax_rate_table_id: UUID):
        self.tax_rate_table_id = tax_rate_table_id
        super().__init__(f"Tax rate table {tax_rate_table_id} not found")


class InvalidPayPeriodError(PayrollError):
    """Raised when a pay period fails batch preconditions."""

    code = "INVALID_PAY_PERIOD"


class AlreadyFinalizedError(PayrollError):
    """Raised when a write would overwrite a finalized or paid payroll record."""

    code = "ALREADY_FINALIZED"


class ImmutableRecordError(AlreadyFinalizedError):
    """Raised on flush when amounts of a finalized or paid record were modified."""

    code = "IMMUTABLE_RECORD"


class PersistenceConflictError(PayrollError):
    """Raised when a write-time precondition fails (concurrent or live record)."""

    code = "PERSISTENCE_CONFLICT"


class RecordNotFoundError(PayrollError):
    """Raised when a payroll record does not exist for the company."""

    code = "RECORD_NOT_FOUND"

    def __init__(self, record_id: UUID):
        self.record_id = record_id
        super().__init__(f"Payroll record {record_id} not found")
