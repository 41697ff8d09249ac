"""
Module: consolidation_kernel.selectors.ledger_selector
Responsibility: Read-only posted balances per account for one company.
    Balances are a derived view over posted journal lines; nothing is stored.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Only POSTED and REVERSED entries contribute.  A reversed entry and its
      reversal are both posted activity and cancel each other out.
    - Amounts are functional-currency Decimals, never floats.
    - Every active account of the company is returned, even with no
      activity, so a member's trial balance lists its whole chart.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from consolidation_kernel.db.types import ZERO
from consolidation_kernel.domain.consolidation import AccountBalance
from consolidation_kernel.models.account import Account, AccountType, NormalBalance
from consolidation_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from consolidation_kernel.selectors.base import BaseSelector

_POSTED_STATUSES = (
    JournalEntryStatus.POSTED.value,
    JournalEntryStatus.REVERSED.value,
)


class LedgerSelector(BaseSelector):
    """
    Posted balance queries.

    Usage:
        balances = LedgerSelector(session).posted_balances(company_id, date(2026, 3, 31))
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def posted_balances(
        self,
        company_id: UUID,
        as_of_date: date | None = None,
        include_inactive: bool = False,
    ) -> list[AccountBalance]:
        """
        Per-account balances of ``company_id`` through ``as_of_date``
        (inclusive), ordered by account number.
        """
        conditions = [
            JournalLine.account_id == Account.id,
            JournalEntry.id == JournalLine.entry_id,
            JournalEntry.company_id == company_id,
            JournalEntry.status.in_(_POSTED_STATUSES),
        ]
        if as_of_date is not None:
            conditions.append(JournalEntry.entry_date <= as_of_date)

        debit_sum = (
            select(func.coalesce(func.sum(JournalLine.functional_debit), 0))
            .where(*conditions)
            .correlate(Account)
            .scalar_subquery()
        )
        credit_sum = (
            select(func.coalesce(func.sum(JournalLine.functional_credit), 0))
            .where(*conditions)
            .correlate(Account)
            .scalar_subquery()
        )

        query = (
            select(Account, debit_sum, credit_sum)
            .where(Account.company_id == company_id)
            .order_by(Account.account_number)
        )
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))

        balances = []
        for account, debits, credits in self.session.execute(query).all():
            balances.append(
                AccountBalance(
                    account_id=account.id,
                    account_number=account.account_number,
                    account_name=account.name,
                    account_type=AccountType(account.account_type),
                    category=account.category,
                    normal_balance=NormalBalance(account.normal_balance),
                    debit_total=Decimal(str(debits or ZERO)),
                    credit_total=Decimal(str(credits or ZERO)),
                )
            )
        return balances

    def total_debits_credits(
        self, company_id: UUID, as_of_date: date | None = None
    ) -> tuple[Decimal, Decimal]:
        """Company-wide posted (debits, credits); equal for a sound ledger."""
        balances = self.posted_balances(company_id, as_of_date, include_inactive=True)
        debits = sum((b.debit_total for b in balances), ZERO)
        credits = sum((b.credit_total for b in balances), ZERO)
        return debits, credits
