"""Tax rate table model."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, text
from sqlalchemy.orm import Mapped, mapped_column

from salarysync.calculators.types import RateTable
from salarysync.models.base import Base, UpdatedAtMixin

RATE_FIELDS = ("aow_rate", "wlz_rate", "ww_rate", "wia_rate", "zvw_rate")
MAX_FIELDS = ("aow_max", "wlz_max", "ww_max", "wia_max")


class TaxRateTable(Base, UpdatedAtMixin):
    """A company's statutory rates and caps for one tax year."""

    __tablename__ = "tax_rate_table"

    tax_rate_table_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)

    aow_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    wlz_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    ww_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    wia_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    zvw_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    aow_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    wlz_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ww_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    wia_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    holiday_allowance_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("8.00")
    )
    minimum_wage: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("minimum_wage > 0", name="tax_rate_table_minimum_wage_check"),
        # At most one active table per company and tax year
        Index(
            "uq_tax_rate_table_active",
            "company_id",
            "tax_year",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_tax_rate_table_company_year", "company_id", "tax_year"),
    )

    def to_rates(self) -> RateTable:
        """Immutable snapshot handed to the calculator."""
        return RateTable(
            tax_year=self.tax_year,
            aow_rate=Decimal(self.aow_rate),
            wlz_rate=Decimal(self.wlz_rate),
            ww_rate=Decimal(self.ww_rate),
            wia_rate=Decimal(self.wia_rate),
            zvw_rate=Decimal(self.zvw_rate),
            aow_max=Decimal(self.aow_max),
            wlz_max=Decimal(self.wlz_max),
            ww_max=Decimal(self.ww_max),
            wia_max=Decimal(self.wia_max),
            holiday_allowance_rate=Decimal(self.holiday_allowance_rate),
            minimum_wage=Decimal(self.minimum_wage),
            is_active=self.is_active,
            tax_rate_table_id=self.tax_rate_table_id,
        )
