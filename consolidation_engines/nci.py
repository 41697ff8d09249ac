"""
Non-controlling interest engine.

For each member consolidated line by line with ownership below 100%, the
minority share of its equity and income lines is attributed to NCI:

    minority_percentage = 100 - ownership_percentage
    line nci            = round_money(minority% x member's contribution)

A member's contribution is its translated aggregated balance on the line,
before eliminations.  ``nci`` on a line is the reduction of that line's
normal balance, matching the elimination sign convention, so

    consolidated = aggregated - elimination - nci

The minority share is then presented on the group's NCI equity line
(credit normal), which receives the total NCI as a negative reduction,
i.e. an increase of its credit balance.  The line-level roundings are
summed, not recomputed, so the NCI line offsets them exactly and the
trial balance stays balanced.

Example: member B, 80% owned, net income 100 on a revenue line.  Revenue
carries nci 20; the NCI line carries nci -20; consolidated revenue is 80
and NCI equity 20.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from consolidation_engines.aggregation import AggregatedTrialBalance
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.db.types import ZERO, round_money
from consolidation_kernel.domain.consolidation import (
    MemberInfo,
    net_debit_of,
    signed_balance,
)
from consolidation_kernel.models.account import AccountType

_HUNDRED = Decimal("100")
_INCOME_TYPES = (AccountType.REVENUE, AccountType.EXPENSE)

NCI_ACCOUNT_NAME = "Non-Controlling Interest"
NCI_CATEGORY = "NonControllingInterest"


@dataclass(frozen=True)
class MemberNCI:
    company_id: UUID
    ownership_percentage: Decimal
    minority_percentage: Decimal
    net_income: Decimal
    equity: Decimal
    net_income_nci: Decimal
    equity_nci: Decimal

    @property
    def total_nci(self) -> Decimal:
        return self.net_income_nci + self.equity_nci

    def to_dict(self) -> dict:
        return {
            "company_id": str(self.company_id),
            "ownership_percentage": str(self.ownership_percentage),
            "minority_percentage": str(self.minority_percentage),
            "net_income": str(self.net_income),
            "equity": str(self.equity),
            "net_income_nci": str(self.net_income_nci),
            "equity_nci": str(self.equity_nci),
            "total_nci": str(self.total_nci),
        }


@dataclass(frozen=True)
class NCIResult:
    members: tuple[MemberNCI, ...]
    line_amounts: dict[str, Decimal]
    nci_account_number: str

    @property
    def total_nci(self) -> Decimal:
        return sum((m.total_nci for m in self.members), ZERO)

    def to_dict(self) -> dict:
        return {
            "nci_account_number": self.nci_account_number,
            "total_nci": str(self.total_nci),
            "members": [m.to_dict() for m in self.members],
            "line_amounts": {k: str(v) for k, v in sorted(self.line_amounts.items())},
        }


@traced_engine("nci", "1.0", fingerprint_fields=("nci_account_number",))
def calculate_nci(
    *,
    trial_balance: AggregatedTrialBalance,
    members: Sequence[MemberInfo],
    nci_account_number: str,
) -> NCIResult:
    """Minority shares per member and per trial balance line."""
    line_amounts: dict[str, Decimal] = {}
    results: list[MemberNCI] = []

    for member in members:
        if not member.is_line_by_line or member.minority_percentage <= ZERO:
            continue
        share = member.minority_percentage / _HUNDRED

        net_income = equity = ZERO
        net_income_nci = equity_nci = ZERO
        for line in trial_balance.lines:
            account_type = AccountType(line.account_type)
            is_income = account_type in _INCOME_TYPES
            if not is_income and account_type != AccountType.EQUITY:
                continue
            contribution = signed_balance(line.contribution(member.company_id), line.normal_balance)
            if contribution == ZERO:
                continue

            nci = round_money(contribution * share)
            line_amounts[line.account_number] = line_amounts.get(line.account_number, ZERO) + nci

            # In credit terms: positive raises equity / net income
            contribution_cr = -net_debit_of(contribution, line.normal_balance)
            nci_cr = -net_debit_of(nci, line.normal_balance)
            if is_income:
                net_income += contribution_cr
                net_income_nci += nci_cr
            else:
                equity += contribution_cr
                equity_nci += nci_cr

        results.append(
            MemberNCI(
                company_id=member.company_id,
                ownership_percentage=member.ownership_percentage,
                minority_percentage=member.minority_percentage,
                net_income=net_income,
                equity=equity,
                net_income_nci=net_income_nci,
                equity_nci=equity_nci,
            )
        )

    result_total = sum((m.total_nci for m in results), ZERO)
    if result_total != ZERO:
        line_amounts[nci_account_number] = line_amounts.get(nci_account_number, ZERO) - result_total

    return NCIResult(
        members=tuple(results),
        line_amounts=line_amounts,
        nci_account_number=nci_account_number,
    )