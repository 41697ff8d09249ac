"""
Trial balance aggregation engine.

Rolls translated member balances up into one group trial balance, one line
per account number.  Charts are aligned across members by account number;
the first member (in input order) that carries a number supplies its name,
type, category and normal balance, and a later member disagreeing on type
or normal balance is reported as a WARNING.

Each member's translation adjustment is added to the group's CTA line
(equity, credit normal), so the aggregated trial balance nets to zero
whenever every member ledger does.

Sign convention:
    Lines carry ``net_debit`` (debits minus credits).  ``balance`` is the
    same amount signed by normal balance.  Totals follow the normal
    balance: debit-normal lines sum into total_debits, credit-normal lines
    into total_credits.  The two totals are equal exactly when the line
    net debits sum to zero.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from consolidation_engines.tracer import traced_engine
from consolidation_engines.translation import MemberTranslation
from consolidation_kernel.db.types import ZERO
from consolidation_kernel.domain.consolidation import signed_balance
from consolidation_kernel.domain.validation import ValidationIssue
from consolidation_kernel.models.account import AccountType, NormalBalance

CTA_ACCOUNT_NAME = "Cumulative Translation Adjustment"
CTA_CATEGORY = "AccumulatedOtherComprehensiveIncome"


@dataclass(frozen=True)
class AggregatedLine:
    account_number: str
    account_name: str
    account_type: AccountType
    category: str | None
    normal_balance: NormalBalance
    net_debit: Decimal
    contributions: tuple[tuple[UUID, Decimal], ...] = ()

    @property
    def balance(self) -> Decimal:
        return signed_balance(self.net_debit, self.normal_balance)

    def contribution(self, company_id: UUID) -> Decimal:
        """This company's net debit on the line."""
        return sum((nd for cid, nd in self.contributions if cid == company_id), ZERO)


def trial_balance_totals(
    lines: Sequence[tuple[NormalBalance, Decimal]],
) -> tuple[Decimal, Decimal]:
    """(total_debits, total_credits) from (normal_balance, balance) pairs."""
    debits = ZERO
    credits = ZERO
    for normal_balance, balance in lines:
        if normal_balance == NormalBalance.DEBIT:
            debits += balance
        else:
            credits += balance
    return debits, credits


@dataclass(frozen=True)
class AggregatedTrialBalance:
    lines: tuple[AggregatedLine, ...]
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def totals(self) -> tuple[Decimal, Decimal]:
        return trial_balance_totals([(line.normal_balance, line.balance) for line in self.lines])

    @property
    def total_debits(self) -> Decimal:
        return self.totals[0]

    @property
    def total_credits(self) -> Decimal:
        return self.totals[1]

    @property
    def is_balanced(self) -> bool:
        debits, credits = self.totals
        return debits == credits

    def line(self, account_number: str) -> AggregatedLine | None:
        for line in self.lines:
            if line.account_number == account_number:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "line_count": len(self.lines),
            "total_debits": str(self.total_debits),
            "total_credits": str(self.total_credits),
            "is_balanced": self.is_balanced,
        }


class _LineBuilder:
    def __init__(self, number, name, account_type, category, normal_balance):
        self.number = number
        self.name = name
        self.account_type = AccountType(account_type)
        self.category = category
        self.normal_balance = NormalBalance(normal_balance)
        self.contributions: dict[UUID, Decimal] = {}

    def add(self, company_id: UUID, net_debit: Decimal) -> None:
        self.contributions[company_id] = self.contributions.get(company_id, ZERO) + net_debit

    def build(self) -> AggregatedLine:
        return AggregatedLine(
            account_number=self.number,
            account_name=self.name,
            account_type=self.account_type,
            category=self.category,
            normal_balance=self.normal_balance,
            net_debit=sum(self.contributions.values(), ZERO),
            contributions=tuple(self.contributions.items()),
        )


@traced_engine("trial_balance_aggregation", "1.0", fingerprint_fields=("cta_account_number",))
def aggregate_balances(
    *,
    translations: Sequence[MemberTranslation],
    cta_account_number: str,
) -> AggregatedTrialBalance:
    """Aggregate translated member balances into one trial balance."""
    builders: dict[str, _LineBuilder] = {}
    issues: list[ValidationIssue] = []

    for member in translations:
        for b in member.balances:
            builder = builders.get(b.account_number)
            if builder is None:
                builder = _LineBuilder(
                    b.account_number,
                    b.account_name,
                    b.account_type,
                    b.category,
                    b.normal_balance,
                )
                builders[b.account_number] = builder
            elif (
                builder.account_type != b.account_type
                or builder.normal_balance != b.normal_balance
            ):
                issues.append(
                    ValidationIssue.warning(
                        "ACCOUNT_ATTRIBUTES_DIFFER",
                        f"Account {b.account_number} is {b.account_type.value}/"
                        f"{b.normal_balance.value} in company {member.company_id} but "
                        f"{builder.account_type.value}/{builder.normal_balance.value} "
                        "elsewhere in the group",
                        entity_reference=b.account_number,
                    )
                )
            builder.add(member.company_id, b.net_debit)

        if member.translation_adjustment != ZERO:
            builder = builders.get(cta_account_number)
            if builder is None:
                builder = _LineBuilder(
                    cta_account_number,
                    CTA_ACCOUNT_NAME,
                    AccountType.EQUITY,
                    CTA_CATEGORY,
                    NormalBalance.CREDIT,
                )
                builders[cta_account_number] = builder
            builder.add(member.company_id, member.translation_adjustment)

    lines = tuple(builders[number].build() for number in sorted(builders))
    result = AggregatedTrialBalance(lines=lines)

    if not result.is_balanced:
        issues.append(
            ValidationIssue.error(
                "AGGREGATED_TB_NOT_BALANCED",
                f"Aggregated trial balance is out of balance: debits "
                f"{result.total_debits} != credits {result.total_credits}",
            )
        )

    return AggregatedTrialBalance(lines=lines, issues=tuple(issues))
