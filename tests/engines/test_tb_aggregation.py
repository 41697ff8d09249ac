"""
Tests for trial balance aggregation.

Covers:
- One line per account number with per-member contributions
- Translation adjustments land on the CTA equity line
- Attribute disagreements between member charts are warnings
- Totals and balance checks
"""

from datetime import date
from decimal import Decimal

from consolidation_engines import (
    CTA_ACCOUNT_NAME,
    CTA_CATEGORY,
    aggregate_balances,
    translate_members,
)
from consolidation_engines.translation import MemberTranslation, TranslatedBalance
from consolidation_kernel.models.account import AccountType, NormalBalance
from consolidation_kernel.models.exchange_rate import RateType


def _translate(members, balances_by_company, rates=None):
    return translate_members(
        members=members,
        balances_by_company=balances_by_company,
        reporting_currency="USD",
        rates=rates or {},
        as_of=date(2026, 3, 31),
    ).members


class TestAggregateBalances:
    """Roll-up of member balances."""

    def test_lines_summed_by_account(self, member, balances):
        p, s = member("P"), member("S")
        translations = _translate(
            [p, s],
            {
                p.company_id: balances({"1100": "1000", "3100": "-1000"}),
                s.company_id: balances({"1100": "500", "3100": "-500"}),
            },
        )

        tb = aggregate_balances(translations=translations, cta_account_number="3900")

        cash = tb.line("1100")
        assert cash.net_debit == Decimal("1500")
        assert cash.balance == Decimal("1500")
        assert cash.contribution(s.company_id) == Decimal("500")
        assert tb.line("3100").balance == Decimal("1500")
        assert tb.is_balanced
        assert tb.issues == ()
        assert [line.account_number for line in tb.lines] == ["1100", "3100"]

    def test_cta_line_created_from_translation_adjustment(self, member, balances):
        p, e = member("P"), member("E", "EUR")
        translations = _translate(
            [p, e],
            {
                p.company_id: balances({"1100": "100", "3100": "-100"}),
                e.company_id: balances({"1100": "1000", "3100": "-600", "4100": "-400"}),
            },
            rates={
                ("EUR", RateType.CLOSING): Decimal("1.2"),
                ("EUR", RateType.AVERAGE): Decimal("1.1"),
            },
        )

        tb = aggregate_balances(translations=translations, cta_account_number="3900")

        cta = tb.line("3900")
        assert cta.account_name == CTA_ACCOUNT_NAME
        assert cta.category == CTA_CATEGORY
        assert cta.account_type == AccountType.EQUITY
        assert cta.normal_balance == NormalBalance.CREDIT
        # Net assets at closing exceed equity and income at their rates by 40
        assert cta.balance == Decimal("40.00")
        assert cta.contribution(e.company_id) == Decimal("-40.00")
        assert tb.is_balanced
        assert tb.total_debits == tb.total_credits == Decimal("1300.00")

    def test_no_cta_line_without_adjustment(self, member, balances):
        p = member("P")
        translations = _translate([p], {p.company_id: balances({"1100": "1", "4100": "-1"})})

        tb = aggregate_balances(translations=translations, cta_account_number="3900")

        assert tb.line("3900") is None

    def test_attribute_mismatch_warns(self, member):
        p, s = member("P"), member("S")

        def _member(m, account_type, normal, net_debit):
            return MemberTranslation(
                company_id=m.company_id,
                functional_currency="USD",
                reporting_currency="USD",
                balances=(
                    TranslatedBalance(
                        company_id=m.company_id,
                        account_number="1900",
                        account_name="Suspense",
                        account_type=account_type,
                        category=None,
                        normal_balance=normal,
                        functional_net_debit=net_debit,
                        net_debit=net_debit,
                        rate=Decimal("1"),
                        rate_type=None,
                    ),
                ),
            )

        tb = aggregate_balances(
            translations=[
                _member(p, AccountType.ASSET, NormalBalance.DEBIT, Decimal("10")),
                _member(s, AccountType.LIABILITY, NormalBalance.CREDIT, Decimal("-10")),
            ],
            cta_account_number="3900",
        )

        assert [i.code for i in tb.issues] == ["ACCOUNT_ATTRIBUTES_DIFFER"]
        assert not tb.issues[0].is_error
        # First member's attributes win
        assert tb.line("1900").account_type == AccountType.ASSET

    def test_unbalanced_input_is_error(self, member, balances):
        p = member("P")
        translations = _translate([p], {p.company_id: balances({"1100": "100", "4100": "-90"})})

        tb = aggregate_balances(translations=translations, cta_account_number="3900")

        assert not tb.is_balanced
        assert [i.code for i in tb.issues] == ["AGGREGATED_TB_NOT_BALANCED"]
        assert tb.issues[0].is_error
        assert tb.to_dict()["is_balanced"] is False
