"""
Elimination rule engine.

Applies a group's active elimination rules, in order, to the aggregated
trial balance and produces elimination entries.

Ordering:
    priority ascending, then created_at, then rule id.  The order is total,
    so the same rules always produce the same entries.

Evaluation of one rule:
    1. The debit and credit accounts must exist in the trial balance and
       differ; otherwise the rule is skipped with a WARNING.
    2. Trigger conditions (or, when a rule has none, its source accounts
       as a single condition) are evaluated against the *running*
       balances: aggregated balances less the automatic eliminations of
       earlier rules.  A condition's amount is the absolute value of the
       summed balances of the accounts its selectors pick; it fires when
       that amount is non-zero and at least ``minimum_amount`` (when set).
       Every condition must fire.
    3. The rule's amount is the smallest condition amount.  Intercompany
       types are capped by the matched intercompany amount of their mapped
       transaction types when matched data for those types exists.
    4. Automatic rules apply their entry to the running balances.
       Non-automatic rules produce a pending candidate only.

Sign convention for a line's elimination amount:
    The reduction of the line's normal balance.  Debiting a credit-normal
    account by A eliminates +A; debiting a debit-normal account by A
    eliminates -A; credits are the mirror image.  Every entry debits and
    credits the same amount, so a balanced trial balance stays balanced.

Pure: no I/O, no clock.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from consolidation_engines.aggregation import AggregatedTrialBalance
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.db.types import ZERO, round_money
from consolidation_kernel.domain.account_selector import AccountSelector, selects
from consolidation_kernel.domain.consolidation import (
    RuleDefinition,
    TriggerCondition,
    signed_balance,
)
from consolidation_kernel.domain.validation import ValidationIssue
from consolidation_kernel.models.account import NormalBalance
from consolidation_kernel.models.consolidation import EliminationType
from consolidation_kernel.models.intercompany import IntercompanyTransactionType

IC_TYPE_MAP: dict[EliminationType, tuple[IntercompanyTransactionType, ...]] = {
    EliminationType.IC_RECEIVABLE_PAYABLE: (
        IntercompanyTransactionType.SALE_PURCHASE,
        IntercompanyTransactionType.LOAN,
    ),
    EliminationType.IC_REVENUE_EXPENSE: (
        IntercompanyTransactionType.SALE_PURCHASE,
        IntercompanyTransactionType.MANAGEMENT_FEE,
        IntercompanyTransactionType.ROYALTY,
        IntercompanyTransactionType.COST_ALLOCATION,
    ),
    EliminationType.IC_DIVIDEND: (IntercompanyTransactionType.DIVIDEND,),
    EliminationType.IC_INVESTMENT: (IntercompanyTransactionType.CAPITAL_CONTRIBUTION,),
}

_DESCRIPTIONS = {
    EliminationType.IC_RECEIVABLE_PAYABLE: "Elimination of intercompany receivable/payable",
    EliminationType.IC_REVENUE_EXPENSE: "Elimination of intercompany revenue/expense",
    EliminationType.IC_DIVIDEND: "Elimination of intercompany dividend",
    EliminationType.IC_INVESTMENT: "Elimination of investment in subsidiary",
    EliminationType.UNREALIZED_PROFIT_INVENTORY: "Elimination of unrealized profit in inventory",
    EliminationType.UNREALIZED_PROFIT_FIXED_ASSETS: (
        "Elimination of unrealized profit in fixed assets"
    ),
}


@dataclass(frozen=True)
class EliminationEntry:
    """One two-line elimination: Dr debit_account / Cr credit_account."""

    rule_id: UUID
    rule_name: str
    elimination_type: EliminationType
    description: str
    debit_account_number: str
    credit_account_number: str
    amount: Decimal
    is_automatic: bool
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_name": self.rule_name,
            "elimination_type": self.elimination_type.value,
            "description": self.description,
            "debit_account_number": self.debit_account_number,
            "credit_account_number": self.credit_account_number,
            "amount": str(self.amount),
            "is_automatic": self.is_automatic,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EliminationEntry:
        return cls(
            rule_id=UUID(data["rule_id"]),
            rule_name=data["rule_name"],
            elimination_type=EliminationType(data["elimination_type"]),
            description=data["description"],
            debit_account_number=data["debit_account_number"],
            credit_account_number=data["credit_account_number"],
            amount=Decimal(data["amount"]),
            is_automatic=data["is_automatic"],
            priority=data["priority"],
        )


@dataclass(frozen=True)
class GenerationResult:
    entries: tuple[EliminationEntry, ...] = ()
    pending: tuple[EliminationEntry, ...] = ()
    processed_rule_ids: tuple[UUID, ...] = ()
    skipped_rule_ids: tuple[UUID, ...] = ()
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def total_eliminations(self) -> Decimal:
        return sum((e.amount for e in self.entries), ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_count": len(self.entries),
            "pending_count": len(self.pending),
            "processed_rule_ids": [str(i) for i in self.processed_rule_ids],
            "skipped_rule_ids": [str(i) for i in self.skipped_rule_ids],
            "total_eliminations": str(self.total_eliminations),
        }


def _condition_amount(
    selectors: Sequence[AccountSelector],
    balances: Mapping[str, Decimal],
    categories: Mapping[str, str | None],
) -> Decimal:
    total = ZERO
    for number, balance in balances.items():
        if any(selects(s, number, categories[number]) for s in selectors):
            total += balance
    return abs(total)


def _rule_amount(
    rule: RuleDefinition,
    balances: Mapping[str, Decimal],
    categories: Mapping[str, str | None],
    ic_amounts: Mapping[IntercompanyTransactionType, Decimal] | None,
) -> Decimal:
    """Eliminable amount for ``rule``; zero when it does not trigger."""
    conditions: Sequence[TriggerCondition] = rule.trigger_conditions
    if not conditions:
        conditions = (TriggerCondition("source accounts", rule.source_accounts),)

    amount: Decimal | None = None
    for condition in conditions:
        value = _condition_amount(condition.source_accounts, balances, categories)
        if value == ZERO:
            return ZERO
        if condition.minimum_amount is not None and value < condition.minimum_amount:
            return ZERO
        amount = value if amount is None else min(amount, value)

    mapped = IC_TYPE_MAP.get(rule.elimination_type)
    if mapped and ic_amounts:
        available = [ic_amounts[t] for t in mapped if t in ic_amounts]
        if available:
            amount = min(amount, sum(available, ZERO))

    return round_money(amount)


def _apply(
    balances: dict[str, Decimal],
    normals: Mapping[str, NormalBalance],
    entry: EliminationEntry,
) -> None:
    debit = entry.debit_account_number
    credit = entry.credit_account_number
    balances[debit] += signed_balance(entry.amount, normals[debit])
    balances[credit] += signed_balance(-entry.amount, normals[credit])


@traced_engine("elimination", "1.0", fingerprint_fields=("rules",))
def generate_eliminations(
    *,
    rules: Sequence[RuleDefinition],
    trial_balance: AggregatedTrialBalance,
    ic_amounts: Mapping[IntercompanyTransactionType, Decimal] | None = None,
) -> GenerationResult:
    """Run ``rules`` against ``trial_balance``."""
    balances = {line.account_number: line.balance for line in trial_balance.lines}
    normals = {line.account_number: line.normal_balance for line in trial_balance.lines}
    categories = {line.account_number: line.category for line in trial_balance.lines}

    entries: list[EliminationEntry] = []
    pending: list[EliminationEntry] = []
    processed: list[UUID] = []
    skipped: list[UUID] = []
    issues: list[ValidationIssue] = []

    for rule in sorted(rules, key=lambda r: r.sort_key):
        missing = [
            n for n in (rule.debit_account_number, rule.credit_account_number)
            if n not in balances
        ]
        if missing or rule.debit_account_number == rule.credit_account_number:
            reason = (
                f"accounts {missing} not in the trial balance"
                if missing
                else "debit and credit account are the same"
            )
            issues.append(
                ValidationIssue.warning(
                    "ELIMINATION_RULE_SKIPPED",
                    f"Rule '{rule.name}' skipped: {reason}",
                    entity_reference=str(rule.rule_id),
                )
            )
            skipped.append(rule.rule_id)
            continue
        if not rule.trigger_conditions and not rule.source_accounts:
            issues.append(
                ValidationIssue.warning(
                    "ELIMINATION_RULE_SKIPPED",
                    f"Rule '{rule.name}' skipped: no trigger conditions or source accounts",
                    entity_reference=str(rule.rule_id),
                )
            )
            skipped.append(rule.rule_id)
            continue

        processed.append(rule.rule_id)
        amount = _rule_amount(rule, balances, categories, ic_amounts)
        if amount == ZERO:
            continue

        entry = EliminationEntry(
            rule_id=rule.rule_id,
            rule_name=rule.name,
            elimination_type=rule.elimination_type,
            description=f"{_DESCRIPTIONS[rule.elimination_type]} - {rule.name}",
            debit_account_number=rule.debit_account_number,
            credit_account_number=rule.credit_account_number,
            amount=amount,
            is_automatic=rule.is_automatic,
            priority=rule.priority,
        )
        if rule.is_automatic:
            entries.append(entry)
            _apply(balances, normals, entry)
        else:
            pending.append(entry)

    return GenerationResult(
        entries=tuple(entries),
        pending=tuple(pending),
        processed_rule_ids=tuple(processed),
        skipped_rule_ids=tuple(skipped),
        issues=tuple(issues),
    )


def elimination_amounts(
    entries: Sequence[EliminationEntry],
    normals: Mapping[str, NormalBalance],
) -> dict[str, Decimal]:
    """Per-account reduction of normal balance caused by ``entries``."""
    amounts: dict[str, Decimal] = {}
    for entry in entries:
        debit = entry.debit_account_number
        credit = entry.credit_account_number
        amounts[debit] = amounts.get(debit, ZERO) - signed_balance(entry.amount, normals[debit])
        amounts[credit] = amounts.get(credit, ZERO) - signed_balance(-entry.amount, normals[credit])
    return amounts
