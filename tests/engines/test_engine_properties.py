"""
Property-based tests for the consolidation engines.

Balanced in, balanced out:
- Translation plus aggregation of balanced member ledgers is balanced,
  whatever the rates, because the CTA line absorbs the difference
- Eliminations never unbalance a balanced trial balance
- NCI presentation never unbalances a balanced trial balance

And for matching:
- Every intercompany record ends up in exactly one pair or as unmatched
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from consolidation_engines import (
    aggregate_balances,
    calculate_nci,
    elimination_amounts,
    generate_eliminations,
    match_transactions,
    translate_members,
    trial_balance_totals,
)
from consolidation_kernel.domain.account_selector import ById
from consolidation_kernel.domain.consolidation import (
    IntercompanyRecord,
    RuleDefinition,
    TriggerCondition,
)
from consolidation_kernel.models.account import NormalBalance
from consolidation_kernel.models.consolidation import EliminationType
from consolidation_kernel.models.exchange_rate import RateType
from consolidation_kernel.models.intercompany import IntercompanyTransactionType

FIXTURE_SETTINGS = settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2)
rates = st.decimals(min_value=Decimal("0.0001"), max_value=Decimal("500"), places=4)
ownerships = st.decimals(min_value=Decimal("50.01"), max_value=Decimal("100"), places=2)


def _ledger(equity, revenue, expense) -> dict[str, str]:
    cash = equity + revenue - expense
    return {"1100": str(cash), "3100": str(-equity), "4100": str(-revenue), "5100": str(expense)}


class TestBalancedInBalancedOut:

    @FIXTURE_SETTINGS
    @given(
        ledgers=st.lists(st.tuples(amounts, amounts, amounts), min_size=1, max_size=4),
        closing=rates,
        average=rates,
    )
    def test_translation_and_aggregation(self, member, balances, ledgers, closing, average):
        members = [member(f"M{i}", "EUR" if i % 2 else "USD") for i in range(len(ledgers))]
        translation = translate_members(
            members=members,
            balances_by_company={
                m.company_id: balances(_ledger(*ledger)) for m, ledger in zip(members, ledgers)
            },
            reporting_currency="USD",
            rates={("EUR", RateType.CLOSING): closing, ("EUR", RateType.AVERAGE): average},
            as_of=date(2026, 3, 31),
        )

        tb = aggregate_balances(translations=translation.members, cta_account_number="3900")

        assert tb.is_balanced
        assert tb.issues == ()

    @FIXTURE_SETTINGS
    @given(receivable=amounts, payable=amounts, revenue=amounts, expense=amounts)
    def test_eliminations(self, trial_balance, receivable, payable, revenue, expense):
        p, s = uuid4(), uuid4()
        tb = trial_balance(
            (p, {"1200": str(receivable), "4200": str(-revenue), "1100": str(revenue - receivable)}),
            (s, {"2200": str(-payable), "5200": str(expense), "1100": str(payable - expense)}),
        )
        rules = [
            RuleDefinition(
                rule_id=uuid4(),
                name="IC AR/AP",
                elimination_type=EliminationType.IC_RECEIVABLE_PAYABLE,
                debit_account_number="2200",
                credit_account_number="1200",
                trigger_conditions=(
                    TriggerCondition("receivable", (ById("1200"),)),
                    TriggerCondition("payable", (ById("2200"),)),
                ),
            ),
            RuleDefinition(
                rule_id=uuid4(),
                name="IC revenue/expense",
                elimination_type=EliminationType.IC_REVENUE_EXPENSE,
                debit_account_number="4200",
                credit_account_number="5200",
                trigger_conditions=(
                    TriggerCondition("revenue", (ById("4200"),)),
                    TriggerCondition("expense", (ById("5200"),)),
                ),
            ),
        ]

        result = generate_eliminations(rules=rules, trial_balance=tb)
        reductions = elimination_amounts(
            result.entries, {line.account_number: line.normal_balance for line in tb.lines}
        )

        debits, credits = trial_balance_totals(
            [
                (line.normal_balance, line.balance - reductions.get(line.account_number, Decimal("0")))
                for line in tb.lines
            ]
        )
        assert debits == credits
        assert reductions["1200"] == reductions["2200"] == min(receivable, payable)

    @FIXTURE_SETTINGS
    @given(ledger=st.tuples(amounts, amounts, amounts), ownership=ownerships)
    def test_nci(self, member, trial_balance, ledger, ownership):
        sub = member("S", ownership=str(ownership))
        tb = trial_balance((sub.company_id, _ledger(*ledger)))

        result = calculate_nci(trial_balance=tb, members=[sub], nci_account_number="3950")

        pairs = [
            (line.normal_balance, line.balance - result.line_amounts.get(line.account_number, Decimal("0")))
            for line in tb.lines
        ]
        pairs.append((NormalBalance.CREDIT, -result.line_amounts.get("3950", Decimal("0"))))
        debits, credits = trial_balance_totals(pairs)
        assert debits == credits


class TestMatchingPartition:

    @settings(max_examples=50, deadline=None)
    @given(
        sides=st.lists(
            st.tuples(
                st.booleans(),
                st.sampled_from(["100", "150", "200"]),
                st.integers(min_value=0, max_value=6),
                st.sampled_from(list(IntercompanyTransactionType)[:3]),
            ),
            max_size=12,
        )
    )
    def test_every_record_accounted_once(self, sides):
        a, b = uuid4(), uuid4()
        records = [
            IntercompanyRecord(
                transaction_id=uuid4(),
                from_company_id=a if forward else b,
                to_company_id=b if forward else a,
                transaction_type=transaction_type,
                transaction_date=date(2026, 3, 1) + timedelta(days=day),
                amount=Decimal(amount),
                currency="USD",
            )
            for forward, amount, day, transaction_type in sides
        ]

        result = match_transactions(records=records)

        seen = [p.from_record.transaction_id for p in result.matched_pairs]
        seen += [p.to_record.transaction_id for p in result.matched_pairs]
        seen += [u.record.transaction_id for u in result.unmatched]
        assert sorted(seen) == sorted(r.transaction_id for r in records)
        assert result.total_transactions == len(records)
