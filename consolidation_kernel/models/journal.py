"""
Module: consolidation_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines, the
    only source of posted balances in the system.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Balanced at every state: sum of functional debits == sum of functional
      credits (checked by JournalService on create/update/post; exposed
      here read-side via is_balanced).
    - entry_number is NULL until posting and unique per company
      (uq_journal_company_number); numbers come from SequenceService.
    - reversed_entry_id (set on a reversal, pointing at the original) and
      reversing_entry_id (set on the original, pointing at its reversal) are
      never both set on one row.
    - Posted and Reversed entries are immutable apart from the single
      Posted -> Reversed transition (db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate (company_id, entry_number).
    - ImmutabilityViolationError on UPDATE/DELETE of a posted entry or line.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consolidation_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from consolidation_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED -> REVERSED, with
    PENDING_APPROVAL -> DRAFT on rejection.
    """

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    POSTED = "posted"
    REVERSED = "reversed"


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        Created DRAFT by a user; editable and deletable only while DRAFT.
        entry_number, posted_at and posted_by_id are assigned atomically
        at posting.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("company_id", "entry_number", name="uq_journal_company_number"),
        CheckConstraint(
            "reversed_entry_id IS NULL OR reversing_entry_id IS NULL",
            name="ck_journal_single_reversal_link",
        ),
        Index("idx_journal_company_date", "company_id", "entry_date"),
        Index("idx_journal_status", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    # Accounting date (drives period assignment)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(20),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    # Per-company posting number
    entry_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # On a reversal: the entry it reverses
    reversed_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # On an original: the entry that reversed it
    reversing_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_number",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def total_debits(self) -> Decimal:
        """Sum of functional-currency debits."""
        return sum(
            (line.functional_debit for line in self.lines if line.functional_debit is not None),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        """Sum of functional-currency credits."""
        return sum(
            (line.functional_credit for line in self.lines if line.functional_credit is not None),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalLine(TrackedBase):
    """
    One debit or credit line of a journal entry.

    Guarantees:
        - Exactly one of debit_amount / credit_amount is set, and positive.
        - functional_debit / functional_credit mirror the populated side,
          converted at ``exchange_rate`` into the company's functional
          currency.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit_amount IS NULL) <> (credit_amount IS NULL)",
            name="ck_journal_line_one_side",
        ),
        Index("idx_line_entry", "entry_id"),
        Index("idx_line_account", "account_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Transaction currency
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    debit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    credit_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    # Transaction currency -> functional currency
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18),
        nullable=False,
        default=Decimal("1"),
    )

    functional_debit: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    functional_credit: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")
    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        side = "Dr" if self.debit_amount is not None else "Cr"
        amount = self.debit_amount if self.debit_amount is not None else self.credit_amount
        return f"<JournalLine {side} {amount} {self.currency}>"
