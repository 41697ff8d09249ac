"""
Module: consolidation_kernel.models.account
Responsibility: ORM persistence for each company's chart of accounts.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - account_number is unique per company.  Consolidation aligns member
      charts by account_number, so the same number means the same account
      across the group.
    - normal_balance fixes the sign convention used by every balance query
      and by the trial balance aggregator: a positive balance always means
      "on the normal side".

Failure modes:
    - AccountNotFoundError / InactiveAccountError at posting time (raised by
      JournalService, not by this model).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Financial statement classification of an account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def is_balance_sheet(self) -> bool:
        return self in (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)


class NormalBalance(str, Enum):
    """Side on which an account's balance is normally carried."""

    DEBIT = "debit"
    CREDIT = "credit"


class Account(TrackedBase):
    """
    Chart of accounts entry for one company.

    Guarantees:
        - (company_id, account_number) is unique.
        - category is free text used by ByCategory selectors
          (e.g. "CurrentAsset", "IntercompanyReceivable").
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "account_number", name="uq_account_company_number"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_category", "category"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Parent account for hierarchical charts
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.account_number}: {self.name}>"
