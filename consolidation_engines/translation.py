"""
Currency translation engine.

Translates a member's functional-currency balances into the group's
reporting currency:

    Asset, Liability, Equity    period-closing rate  (RateType.CLOSING)
    Revenue, Expense            period-average rate  (RateType.AVERAGE)

Each translated amount is rounded with ``round_money``.  Because balance
sheet and income statement accounts use different rates, the translated
member trial balance no longer nets to zero; the difference is the
member's cumulative translation adjustment (CTA), carried as
``translation_adjustment`` in debits-minus-credits terms so the aggregator
can post it to the group's CTA equity line.

A required rate that is missing yields an ERROR issue naming the currency
pair, rate type and date.  It is never defaulted to 1.

Pure: rates arrive as a mapping resolved by the caller.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.db.types import ZERO, round_money
from consolidation_kernel.domain.consolidation import (
    AccountBalance,
    MemberInfo,
    signed_balance,
)
from consolidation_kernel.domain.validation import ValidationIssue
from consolidation_kernel.models.account import AccountType, NormalBalance
from consolidation_kernel.models.exchange_rate import RateType

_ONE = Decimal("1")

# (from_currency, rate_type) -> rate into the reporting currency, or None
RateTable = Mapping[tuple[str, RateType], Decimal | None]


def rate_type_for(account_type: AccountType) -> RateType:
    if AccountType(account_type).is_balance_sheet:
        return RateType.CLOSING
    return RateType.AVERAGE


@dataclass(frozen=True)
class TranslatedBalance:
    company_id: UUID
    account_number: str
    account_name: str
    account_type: AccountType
    category: str | None
    normal_balance: NormalBalance
    functional_net_debit: Decimal
    net_debit: Decimal
    rate: Decimal
    rate_type: RateType | None

    @property
    def balance(self) -> Decimal:
        return signed_balance(self.net_debit, self.normal_balance)


@dataclass(frozen=True)
class MemberTranslation:
    company_id: UUID
    functional_currency: str
    reporting_currency: str
    balances: tuple[TranslatedBalance, ...]
    closing_rate: Decimal | None = None
    average_rate: Decimal | None = None
    translation_adjustment: Decimal = ZERO

    @property
    def is_translated(self) -> bool:
        return self.functional_currency != self.reporting_currency

    def to_dict(self) -> dict:
        return {
            "company_id": str(self.company_id),
            "functional_currency": self.functional_currency,
            "reporting_currency": self.reporting_currency,
            "closing_rate": None if self.closing_rate is None else str(self.closing_rate),
            "average_rate": None if self.average_rate is None else str(self.average_rate),
            "translation_adjustment": str(self.translation_adjustment),
            "account_count": len(self.balances),
        }


@dataclass(frozen=True)
class TranslationResult:
    members: tuple[MemberTranslation, ...]
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def has_errors(self) -> bool:
        return any(issue.is_error for issue in self.issues)


def required_rates(
    members: Sequence[MemberInfo], reporting_currency: str
) -> list[tuple[str, RateType]]:
    """Rate keys the caller must resolve before calling translate_members."""
    keys: list[tuple[str, RateType]] = []
    for member in members:
        if member.functional_currency == reporting_currency:
            continue
        for rate_type in (RateType.CLOSING, RateType.AVERAGE):
            key = (member.functional_currency, rate_type)
            if key not in keys:
                keys.append(key)
    return keys


def translate_member(
    member: MemberInfo,
    balances: Sequence[AccountBalance],
    reporting_currency: str,
    rates: RateTable,
    as_of: date,
) -> tuple[MemberTranslation | None, list[ValidationIssue]]:
    """Translate one member.  Returns (None, issues) when a rate is missing."""
    if member.functional_currency == reporting_currency:
        translated = tuple(
            TranslatedBalance(
                company_id=member.company_id,
                account_number=b.account_number,
                account_name=b.account_name,
                account_type=b.account_type,
                category=b.category,
                normal_balance=b.normal_balance,
                functional_net_debit=b.net_debit,
                net_debit=b.net_debit,
                rate=_ONE,
                rate_type=None,
            )
            for b in balances
        )
        return (
            MemberTranslation(
                company_id=member.company_id,
                functional_currency=member.functional_currency,
                reporting_currency=reporting_currency,
                balances=translated,
            ),
            [],
        )

    issues: list[ValidationIssue] = []
    resolved: dict[RateType, Decimal] = {}
    for rate_type in (RateType.CLOSING, RateType.AVERAGE):
        rate = rates.get((member.functional_currency, rate_type))
        if rate is None:
            issues.append(
                ValidationIssue.error(
                    "MISSING_EXCHANGE_RATE",
                    f"No {rate_type.value} rate {member.functional_currency}/"
                    f"{reporting_currency} on or before {as_of}",
                    entity_reference=str(member.company_id),
                )
            )
        else:
            resolved[rate_type] = rate
    if issues:
        return None, issues

    translated_balances = []
    total = ZERO
    for b in balances:
        rate_type = rate_type_for(b.account_type)
        rate = resolved[rate_type]
        net_debit = round_money(b.net_debit * rate)
        total += net_debit
        translated_balances.append(
            TranslatedBalance(
                company_id=member.company_id,
                account_number=b.account_number,
                account_name=b.account_name,
                account_type=b.account_type,
                category=b.category,
                normal_balance=b.normal_balance,
                functional_net_debit=b.net_debit,
                net_debit=net_debit,
                rate=rate,
                rate_type=rate_type,
            )
        )

    return (
        MemberTranslation(
            company_id=member.company_id,
            functional_currency=member.functional_currency,
            reporting_currency=reporting_currency,
            balances=tuple(translated_balances),
            closing_rate=resolved[RateType.CLOSING],
            average_rate=resolved[RateType.AVERAGE],
            translation_adjustment=-total,
        ),
        [],
    )


@traced_engine("currency_translation", "1.0", fingerprint_fields=("reporting_currency", "as_of"))
def translate_members(
    *,
    members: Sequence[MemberInfo],
    balances_by_company: Mapping[UUID, Sequence[AccountBalance]],
    reporting_currency: str,
    rates: RateTable,
    as_of: date,
) -> TranslationResult:
    """Translate every member; members with a missing rate are left out."""
    translations: list[MemberTranslation] = []
    issues: list[ValidationIssue] = []
    for member in members:
        translation, member_issues = translate_member(
            member,
            balances_by_company.get(member.company_id, ()),
            reporting_currency,
            rates,
            as_of,
        )
        issues.extend(member_issues)
        if translation is not None:
            translations.append(translation)
    return TranslationResult(members=tuple(translations), issues=tuple(issues))
