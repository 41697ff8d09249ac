"""
Module: consolidation_kernel.models.exchange_rate
Responsibility: ORM persistence for dated exchange rates by rate type.
Architecture position: Kernel > Models.  May import from db/ only.

Rates are append-only records.  A lookup for a date uses the record with the
greatest effective_date on or before that date (RateSelector).  AVERAGE and
CLOSING records are the designated period-average and period-closing rates
used by currency translation; SPOT rates are used at posting time.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase


class RateType(str, Enum):
    SPOT = "spot"
    AVERAGE = "average"
    CLOSING = "closing"


class ExchangeRate(TrackedBase):
    """One unit of from_currency equals ``rate`` units of to_currency."""

    __tablename__ = "exchange_rates"

    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_exchange_rate_positive"),
        Index(
            "idx_exchange_rate_lookup",
            "from_currency",
            "to_currency",
            "rate_type",
            "effective_date",
        ),
    )

    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    rate_type: Mapped[RateType] = mapped_column(String(10), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ExchangeRate {self.from_currency}/{self.to_currency} "
            f"{self.rate_type} {self.rate} @ {self.effective_date}>"
        )
