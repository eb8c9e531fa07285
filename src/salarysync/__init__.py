"""Dutch payroll calculation, batch processing and approval engine."""

__version__ = "1.0.0"
