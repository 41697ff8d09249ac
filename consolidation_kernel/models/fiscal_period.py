"""
Module: consolidation_kernel.models.fiscal_period
Responsibility: ORM persistence for each company's fiscal periods.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (company_id, period_code) is unique.  A consolidation run names a
      period_code; each member resolves it against its own calendar.
    - Posting is allowed only while a period is OPEN (checked by
      JournalService).  Closing is refused while unposted entries remain
      (checked by PeriodService).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Status of a fiscal period."""

    OPEN = "open"
    CLOSED = "closed"


class FiscalPeriod(TrackedBase):
    """A date range in which a company's entries are recorded."""

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("company_id", "period_code", name="uq_period_company_code"),
        Index("idx_period_dates", "company_id", "start_date", "end_date"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    # e.g. "2026-03"
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(10),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code} {self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date
