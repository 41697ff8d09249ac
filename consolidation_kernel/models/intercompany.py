"""
Module: consolidation_kernel.models.intercompany
Responsibility: ORM persistence for intercompany transactions recorded by
    one side of a related-party pair.
Architecture position: Kernel > Models.  May import from db/ only.

Each company records its own view of a transaction (from_company is the
recording side).  The intercompany matcher pairs a record with its mirror
recorded by the counterparty and writes the outcome back into
matching_status / variance_amount.  VARIANCE_APPROVED is set by a user with
a variance_explanation and is never downgraded by the matcher.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString


class IntercompanyTransactionType(str, Enum):
    SALE_PURCHASE = "sale_purchase"
    LOAN = "loan"
    MANAGEMENT_FEE = "management_fee"
    DIVIDEND = "dividend"
    CAPITAL_CONTRIBUTION = "capital_contribution"
    COST_ALLOCATION = "cost_allocation"
    ROYALTY = "royalty"


class MatchingStatus(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    PARTIALLY_MATCHED = "partially_matched"
    VARIANCE_APPROVED = "variance_approved"

    @property
    def requires_elimination(self) -> bool:
        return self in (MatchingStatus.MATCHED, MatchingStatus.VARIANCE_APPROVED)


class IntercompanyTransaction(TrackedBase):
    """One side's record of a transaction with a related company."""

    __tablename__ = "intercompany_transactions"

    __table_args__ = (
        CheckConstraint("from_company_id <> to_company_id", name="ck_ic_distinct_companies"),
        CheckConstraint("amount > 0", name="ck_ic_amount_positive"),
        Index("idx_ic_companies", "from_company_id", "to_company_id"),
        Index("idx_ic_date", "transaction_date"),
    )

    from_company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False
    )
    to_company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False
    )

    transaction_type: Mapped[IntercompanyTransactionType] = mapped_column(
        String(30), nullable=False
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    from_journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )
    to_journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    matching_status: Mapped[MatchingStatus] = mapped_column(
        String(30), default=MatchingStatus.UNMATCHED, nullable=False
    )
    variance_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    variance_explanation: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<IntercompanyTransaction {self.transaction_type} "
            f"{self.amount} {self.currency} {self.matching_status}>"
        )
