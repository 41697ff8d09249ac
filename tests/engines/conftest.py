"""
Value builders for the pure engine tests.

Engines take plain value objects, so these tests need no database.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from consolidation_engines.aggregation import AggregatedLine, AggregatedTrialBalance
from consolidation_kernel.domain.consolidation import AccountBalance, MemberInfo
from consolidation_kernel.models.account import AccountType, NormalBalance
from consolidation_kernel.models.consolidation import ConsolidationMethod

# number -> (name, type, normal balance, category)
CHART = {
    "1100": ("Cash", AccountType.ASSET, NormalBalance.DEBIT, "Cash"),
    "1200": ("Intercompany Receivable", AccountType.ASSET, NormalBalance.DEBIT, "IntercompanyReceivable"),
    "1500": ("Investment in Subsidiary", AccountType.ASSET, NormalBalance.DEBIT, "InvestmentInSubsidiary"),
    "2200": ("Intercompany Payable", AccountType.LIABILITY, NormalBalance.CREDIT, "IntercompanyPayable"),
    "3100": ("Common Stock", AccountType.EQUITY, NormalBalance.CREDIT, "ShareCapital"),
    "3200": ("Retained Earnings", AccountType.EQUITY, NormalBalance.CREDIT, "RetainedEarnings"),
    "4100": ("Revenue", AccountType.REVENUE, NormalBalance.CREDIT, "Revenue"),
    "4200": ("Intercompany Revenue", AccountType.REVENUE, NormalBalance.CREDIT, "IntercompanyRevenue"),
    "5100": ("Operating Expense", AccountType.EXPENSE, NormalBalance.DEBIT, "Expense"),
    "5200": ("Intercompany Expense", AccountType.EXPENSE, NormalBalance.DEBIT, "IntercompanyExpense"),
}


def make_balances(amounts: dict[str, str]) -> list[AccountBalance]:
    """Balances from signed net debits: positive debit, negative credit."""
    balances = []
    for number, raw in amounts.items():
        name, account_type, normal, category = CHART[number]
        amount = Decimal(raw)
        balances.append(
            AccountBalance(
                account_id=uuid4(),
                account_number=number,
                account_name=name,
                account_type=account_type,
                category=category,
                normal_balance=normal,
                debit_total=amount if amount > 0 else Decimal("0"),
                credit_total=-amount if amount < 0 else Decimal("0"),
            )
        )
    return balances


def make_member(
    code: str,
    currency: str = "USD",
    ownership: str = "100",
    method: ConsolidationMethod = ConsolidationMethod.FULL_CONSOLIDATION,
    company_id: UUID | None = None,
    **kwargs,
) -> MemberInfo:
    return MemberInfo(
        company_id=company_id or uuid4(),
        company_code=code,
        company_name=f"{code} Inc.",
        functional_currency=currency,
        ownership_percentage=Decimal(ownership),
        consolidation_method=method,
        **kwargs,
    )


@pytest.fixture
def balances():
    return make_balances


@pytest.fixture
def member():
    return make_member


def make_trial_balance(*members: tuple[UUID, dict[str, str]]) -> AggregatedTrialBalance:
    """Aggregated trial balance from (company_id, signed net debits) pairs."""
    contributions: dict[str, dict[UUID, Decimal]] = {}
    for company_id, amounts in members:
        for number, raw in amounts.items():
            contributions.setdefault(number, {})[company_id] = Decimal(raw)
    lines = []
    for number in sorted(contributions):
        name, account_type, normal, category = CHART[number]
        by_company = contributions[number]
        lines.append(
            AggregatedLine(
                account_number=number,
                account_name=name,
                account_type=account_type,
                category=category,
                normal_balance=normal,
                net_debit=sum(by_company.values(), Decimal("0")),
                contributions=tuple(by_company.items()),
            )
        )
    return AggregatedTrialBalance(lines=tuple(lines))


@pytest.fixture
def trial_balance():
    return make_trial_balance
