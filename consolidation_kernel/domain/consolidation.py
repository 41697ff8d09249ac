"""
Consolidation value objects.

Immutable snapshots of ledger and group data, built by the selectors and
consumed by the pure consolidation engines.  Engines never see ORM rows or
a Session; everything they need arrives as one of these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from consolidation_kernel.domain.account_selector import (
    AccountSelector,
    selector_from_dict,
    selector_to_dict,
)
from consolidation_kernel.models.account import AccountType, NormalBalance
from consolidation_kernel.models.consolidation import ConsolidationMethod, EliminationType
from consolidation_kernel.models.intercompany import (
    IntercompanyTransactionType,
    MatchingStatus,
)

_HUNDRED = Decimal("100")


def signed_balance(net_debit: Decimal, normal_balance: NormalBalance) -> Decimal:
    """Convert debits-minus-credits into a balance signed by normal side."""
    if normal_balance == NormalBalance.DEBIT:
        return net_debit
    return -net_debit


def net_debit_of(balance: Decimal, normal_balance: NormalBalance) -> Decimal:
    """Inverse of signed_balance."""
    if normal_balance == NormalBalance.DEBIT:
        return balance
    return -balance


@dataclass(frozen=True)
class AccountBalance:
    """Functional-currency debit and credit totals of one account."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: AccountType
    category: str | None
    normal_balance: NormalBalance
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net_debit(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def balance(self) -> Decimal:
        """Positive when the account carries its normal balance."""
        return signed_balance(self.net_debit, self.normal_balance)


@dataclass(frozen=True)
class MemberInfo:
    """A group member as seen by the consolidation pipeline."""

    company_id: UUID
    company_code: str
    company_name: str
    functional_currency: str
    ownership_percentage: Decimal
    consolidation_method: ConsolidationMethod
    is_primary_beneficiary: bool | None = None
    has_controlling_financial_interest: bool | None = None

    @property
    def minority_percentage(self) -> Decimal:
        return _HUNDRED - self.ownership_percentage

    @property
    def is_vie_consolidated(self) -> bool:
        return bool(self.is_primary_beneficiary and self.has_controlling_financial_interest)

    @property
    def is_line_by_line(self) -> bool:
        """True when the member's balances roll up account by account."""
        if self.consolidation_method == ConsolidationMethod.FULL_CONSOLIDATION:
            return True
        if self.consolidation_method == ConsolidationMethod.VARIABLE_INTEREST_ENTITY:
            return self.is_vie_consolidated
        return False


@dataclass(frozen=True)
class TriggerCondition:
    """
    Fires when the absolute summed balance of the selected accounts is
    non-zero and at least ``minimum_amount`` (when set).
    """

    description: str
    source_accounts: tuple[AccountSelector, ...]
    minimum_amount: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "source_accounts": [selector_to_dict(s) for s in self.source_accounts],
            "minimum_amount": None if self.minimum_amount is None else str(self.minimum_amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TriggerCondition:
        minimum = data.get("minimum_amount")
        return cls(
            description=data.get("description", ""),
            source_accounts=tuple(selector_from_dict(s) for s in data.get("source_accounts", [])),
            minimum_amount=None if minimum is None else Decimal(str(minimum)),
        )


@dataclass(frozen=True)
class RuleDefinition:
    """Snapshot of an active elimination rule taken at run time."""

    rule_id: UUID
    name: str
    elimination_type: EliminationType
    debit_account_number: str
    credit_account_number: str
    trigger_conditions: tuple[TriggerCondition, ...] = ()
    source_accounts: tuple[AccountSelector, ...] = ()
    target_accounts: tuple[AccountSelector, ...] = ()
    is_automatic: bool = True
    priority: int = 100
    created_at: datetime | None = None

    @property
    def sort_key(self) -> tuple:
        # Timestamps are UTC; SQLite hands them back naive
        created = self.created_at.replace(tzinfo=None) if self.created_at else datetime.min
        return (self.priority, created, str(self.rule_id))


@dataclass(frozen=True)
class IntercompanyRecord:
    """One side of an intercompany transaction."""

    transaction_id: UUID
    from_company_id: UUID
    to_company_id: UUID
    transaction_type: IntercompanyTransactionType
    transaction_date: date
    amount: Decimal
    currency: str
    matching_status: MatchingStatus = MatchingStatus.UNMATCHED
    variance_amount: Decimal | None = None
    variance_explanation: str | None = None


@dataclass(frozen=True)
class GroupInfo:
    group_id: UUID
    code: str
    name: str
    parent_company_id: UUID
    reporting_currency: str
    cta_account_number: str
    nci_account_number: str
    is_active: bool
    members: tuple[MemberInfo, ...] = field(default_factory=tuple)
