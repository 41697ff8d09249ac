"""
Module: consolidation_kernel.models.company
Responsibility: ORM persistence for legal entities that keep their own books.
Architecture position: Kernel > Models.  May import from db/ only.

A company's functional_currency is the currency every posted line is
translated into at posting time; consolidation translates it again into
the group's reporting currency.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase


class Company(TrackedBase):
    """A legal entity with its own ledger and functional currency."""

    __tablename__ = "companies"

    __table_args__ = (
        UniqueConstraint("code", name="uq_company_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    functional_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Company {self.code} ({self.functional_currency})>"
