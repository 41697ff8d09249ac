"""
Tests for the currency translation engine.

Covers:
- Balance sheet accounts at the closing rate, income accounts at the average rate
- Translation adjustment closes the translated member trial balance
- Members in the reporting currency pass through unchanged
- Missing rates are errors and are never defaulted to 1
- Rate keys a caller has to resolve
"""

from datetime import date
from decimal import Decimal

from consolidation_engines import rate_type_for, required_rates, translate_members
from consolidation_kernel.models.account import AccountType
from consolidation_kernel.models.exchange_rate import RateType

AS_OF = date(2026, 3, 31)

EUR_RATES = {
    ("EUR", RateType.CLOSING): Decimal("1.2"),
    ("EUR", RateType.AVERAGE): Decimal("1.1"),
}


class TestRateSelection:
    """Which rate applies to which account type."""

    def test_balance_sheet_types_use_closing(self):
        for account_type in (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY):
            assert rate_type_for(account_type) == RateType.CLOSING

    def test_income_types_use_average(self):
        assert rate_type_for(AccountType.REVENUE) == RateType.AVERAGE
        assert rate_type_for(AccountType.EXPENSE) == RateType.AVERAGE

    def test_required_rates_skip_reporting_currency(self, member):
        members = [member("P"), member("E1", "EUR"), member("E2", "EUR"), member("G", "GBP")]

        assert required_rates(members, "USD") == [
            ("EUR", RateType.CLOSING),
            ("EUR", RateType.AVERAGE),
            ("GBP", RateType.CLOSING),
            ("GBP", RateType.AVERAGE),
        ]


class TestTranslateMembers:
    """Translation of member balances into the reporting currency."""

    def test_foreign_member_translated(self, member, balances):
        eur = member("E", "EUR")
        result = translate_members(
            members=[eur],
            balances_by_company={eur.company_id: balances({"1100": "1000", "3100": "-600", "4100": "-400"})},
            reporting_currency="USD",
            rates=EUR_RATES,
            as_of=AS_OF,
        )

        assert not result.has_errors
        translation = result.members[0]
        by_number = {b.account_number: b for b in translation.balances}
        assert by_number["1100"].net_debit == Decimal("1200.00")
        assert by_number["1100"].rate_type == RateType.CLOSING
        assert by_number["3100"].net_debit == Decimal("-720.00")
        assert by_number["4100"].net_debit == Decimal("-440.00")
        assert by_number["4100"].rate_type == RateType.AVERAGE
        assert by_number["4100"].functional_net_debit == Decimal("-400")
        assert translation.closing_rate == Decimal("1.2")
        assert translation.average_rate == Decimal("1.1")

    def test_translation_adjustment_closes_member(self, member, balances):
        eur = member("E", "EUR")
        result = translate_members(
            members=[eur],
            balances_by_company={eur.company_id: balances({"1100": "1000", "3100": "-600", "4100": "-400"})},
            reporting_currency="USD",
            rates=EUR_RATES,
            as_of=AS_OF,
        )

        translation = result.members[0]
        assert translation.translation_adjustment == Decimal("-40.00")
        total = sum(b.net_debit for b in translation.balances) + translation.translation_adjustment
        assert total == Decimal("0")

    def test_amounts_rounded_to_cents(self, member, balances):
        eur = member("E", "EUR")
        rates = {
            ("EUR", RateType.CLOSING): Decimal("1.23456"),
            ("EUR", RateType.AVERAGE): Decimal("1.23456"),
        }
        result = translate_members(
            members=[eur],
            balances_by_company={eur.company_id: balances({"1100": "10", "4100": "-10"})},
            reporting_currency="USD",
            rates=rates,
            as_of=AS_OF,
        )

        cash = result.members[0].balances[0]
        assert cash.net_debit == Decimal("12.35")

    def test_reporting_currency_member_passes_through(self, member, balances):
        usd = member("P")
        result = translate_members(
            members=[usd],
            balances_by_company={usd.company_id: balances({"1100": "50", "4100": "-50"})},
            reporting_currency="USD",
            rates={},
            as_of=AS_OF,
        )

        translation = result.members[0]
        assert not translation.is_translated
        assert translation.translation_adjustment == Decimal("0")
        assert [b.net_debit for b in translation.balances] == [Decimal("50"), Decimal("-50")]
        assert all(b.rate == Decimal("1") for b in translation.balances)

    def test_missing_rate_is_error(self, member, balances):
        usd, gbp = member("P"), member("G", "GBP")
        result = translate_members(
            members=[usd, gbp],
            balances_by_company={
                usd.company_id: balances({"1100": "1", "4100": "-1"}),
                gbp.company_id: balances({"1100": "1", "4100": "-1"}),
            },
            reporting_currency="USD",
            rates={("GBP", RateType.CLOSING): Decimal("1.3"), ("GBP", RateType.AVERAGE): None},
            as_of=AS_OF,
        )

        assert result.has_errors
        assert [i.code for i in result.issues] == ["MISSING_EXCHANGE_RATE"]
        assert "average" in result.issues[0].message
        assert "GBP/USD" in result.issues[0].message
        assert [t.company_id for t in result.members] == [usd.company_id]

    def test_member_without_balances(self, member):
        eur = member("E", "EUR")
        result = translate_members(
            members=[eur],
            balances_by_company={},
            reporting_currency="USD",
            rates=EUR_RATES,
            as_of=AS_OF,
        )

        assert result.members[0].balances == ()
        assert result.members[0].translation_adjustment == Decimal("0")
