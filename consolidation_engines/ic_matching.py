"""
Intercompany matching engine.

Reconciles the two sides of intercompany transactions recorded by group
members.  Company A books the sale to B as (from=A, to=B); B books the
purchase as (from=B, to=A).  Records are grouped by (from, to) and each is
paired with the first unconsumed record of the reversed pair that matches:

    - same transaction type
    - same currency
    - |date difference| <= date_tolerance_days
    - |from.amount - to.amount| <= amount_tolerance_percent% of from.amount

With a zero amount tolerance any non-zero variance is still paired, as a
partial match, so that a mismatch surfaces as a discrepancy rather than as
two unmatched records.

Classification of a pair:

    no variance                                   MATCHED
    variance, a side already VARIANCE_APPROVED    VARIANCE_APPROVED
      with an explanation
    variance otherwise                            PARTIALLY_MATCHED

A record without a counterpart is UNMATCHED; ``missing_side`` names the
side that has no record ("to" when the counterpart's record is missing).

Pure: no I/O, no clock.  The caller persists ``status_updates()``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.db.types import ZERO, round_money
from consolidation_kernel.domain.consolidation import IntercompanyRecord
from consolidation_kernel.domain.validation import ValidationIssue
from consolidation_kernel.models.intercompany import (
    IntercompanyTransactionType,
    MatchingStatus,
)

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class MatchingConfig:
    date_tolerance_days: int = 3
    amount_tolerance_percent: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.date_tolerance_days < 0:
            raise ValueError("date_tolerance_days must be >= 0")
        pct = Decimal(self.amount_tolerance_percent)
        if pct < 0 or pct > 100:
            raise ValueError("amount_tolerance_percent must be within 0..100")
        object.__setattr__(self, "amount_tolerance_percent", pct)

    def to_dict(self) -> dict:
        return {
            "date_tolerance_days": self.date_tolerance_days,
            "amount_tolerance_percent": str(self.amount_tolerance_percent),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> MatchingConfig:
        return cls(
            date_tolerance_days=int(data.get("date_tolerance_days", 3)),
            amount_tolerance_percent=Decimal(str(data.get("amount_tolerance_percent", "0"))),
        )


class DiscrepancyType(str, Enum):
    MISSING_COUNTERPART = "missing_counterpart"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass(frozen=True)
class MatchedPair:
    from_record: IntercompanyRecord
    to_record: IntercompanyRecord
    variance: Decimal | None

    @property
    def is_exact(self) -> bool:
        return self.variance is None

    @property
    def status(self) -> MatchingStatus:
        if self.is_exact:
            return MatchingStatus.MATCHED
        for record in (self.from_record, self.to_record):
            if (
                record.matching_status == MatchingStatus.VARIANCE_APPROVED
                and record.variance_explanation
            ):
                return MatchingStatus.VARIANCE_APPROVED
        return MatchingStatus.PARTIALLY_MATCHED

    @property
    def eliminable_amount(self) -> Decimal:
        """The amount both sides agree on."""
        return min(self.from_record.amount, self.to_record.amount)


@dataclass(frozen=True)
class UnmatchedRecord:
    record: IntercompanyRecord
    missing_side: str
    reason: str = "No matching counterpart transaction found"


@dataclass(frozen=True)
class Discrepancy:
    discrepancy_type: DiscrepancyType
    from_company_id: UUID
    to_company_id: UUID
    transaction_type: IntercompanyTransactionType
    expected_amount: Decimal
    actual_amount: Decimal | None
    variance_amount: Decimal | None
    date_difference: int | None
    description: str
    related_transaction_ids: tuple[UUID, ...]

    def to_dict(self) -> dict:
        return {
            "discrepancy_type": self.discrepancy_type.value,
            "from_company_id": str(self.from_company_id),
            "to_company_id": str(self.to_company_id),
            "transaction_type": self.transaction_type.value,
            "expected_amount": str(self.expected_amount),
            "actual_amount": None if self.actual_amount is None else str(self.actual_amount),
            "variance_amount": None if self.variance_amount is None else str(self.variance_amount),
            "date_difference": self.date_difference,
            "description": self.description,
            "related_transaction_ids": [str(i) for i in self.related_transaction_ids],
        }


@dataclass(frozen=True)
class StatusUpdate:
    transaction_id: UUID
    matching_status: MatchingStatus
    variance_amount: Decimal | None


@dataclass(frozen=True)
class MatchingResult:
    matched_pairs: tuple[MatchedPair, ...] = ()
    unmatched: tuple[UnmatchedRecord, ...] = ()
    discrepancies: tuple[Discrepancy, ...] = ()
    total_transactions: int = 0
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def matched_count(self) -> int:
        return len(self.matched_pairs)

    @property
    def partial_match_count(self) -> int:
        return sum(1 for p in self.matched_pairs if not p.is_exact)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    @property
    def total_variance(self) -> Decimal:
        """Sum of absolute variances over partial matches."""
        return sum((abs(p.variance) for p in self.matched_pairs if p.variance is not None), ZERO)

    def status_updates(self) -> tuple[StatusUpdate, ...]:
        updates: list[StatusUpdate] = []
        for pair in self.matched_pairs:
            status = pair.status
            for record in (pair.from_record, pair.to_record):
                updates.append(StatusUpdate(record.transaction_id, status, pair.variance))
        for item in self.unmatched:
            updates.append(
                StatusUpdate(item.record.transaction_id, MatchingStatus.UNMATCHED, None)
            )
        return tuple(updates)

    def eliminable_pairs(self) -> tuple[MatchedPair, ...]:
        return tuple(p for p in self.matched_pairs if p.status.requires_elimination)

    def to_dict(self) -> dict:
        return {
            "total_transactions": self.total_transactions,
            "matched_count": self.matched_count,
            "partial_match_count": self.partial_match_count,
            "unmatched_count": self.unmatched_count,
            "total_variance": str(self.total_variance),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
        }


def _compare(
    from_record: IntercompanyRecord,
    to_record: IntercompanyRecord,
    config: MatchingConfig,
) -> tuple[bool, Decimal | None]:
    """(matches, variance); variance is None for an exact match."""
    if (
        from_record.from_company_id != to_record.to_company_id
        or from_record.to_company_id != to_record.from_company_id
    ):
        return False, None
    if from_record.transaction_type != to_record.transaction_type:
        return False, None
    date_gap = abs((from_record.transaction_date - to_record.transaction_date).days)
    if date_gap > config.date_tolerance_days:
        return False, None
    if from_record.currency != to_record.currency:
        return False, None

    variance = from_record.amount - to_record.amount
    if variance == ZERO:
        return True, None
    if config.amount_tolerance_percent == ZERO:
        return True, variance

    tolerance = abs(from_record.amount * config.amount_tolerance_percent / _HUNDRED)
    if abs(variance) <= tolerance:
        return True, variance
    return False, None


def _missing_counterpart(record: IntercompanyRecord, missing_side: str) -> Discrepancy:
    return Discrepancy(
        discrepancy_type=DiscrepancyType.MISSING_COUNTERPART,
        from_company_id=record.from_company_id,
        to_company_id=record.to_company_id,
        transaction_type=record.transaction_type,
        expected_amount=record.amount,
        actual_amount=None,
        variance_amount=record.amount,
        date_difference=None,
        description=(
            f"Missing counterpart transaction on the {missing_side} side for "
            f"{record.transaction_type.value} transaction"
        ),
        related_transaction_ids=(record.transaction_id,),
    )


def _amount_mismatch(pair: MatchedPair) -> Discrepancy:
    f, t = pair.from_record, pair.to_record
    return Discrepancy(
        discrepancy_type=DiscrepancyType.AMOUNT_MISMATCH,
        from_company_id=f.from_company_id,
        to_company_id=f.to_company_id,
        transaction_type=f.transaction_type,
        expected_amount=f.amount,
        actual_amount=t.amount,
        variance_amount=pair.variance,
        date_difference=(t.transaction_date - f.transaction_date).days,
        description=f"Amount variance of {pair.variance} {f.currency} between companies",
        related_transaction_ids=(f.transaction_id, t.transaction_id),
    )


@traced_engine("intercompany_matching", "1.0", fingerprint_fields=("records", "config"))
def match_transactions(
    *,
    records: Sequence[IntercompanyRecord],
    config: MatchingConfig = MatchingConfig(),
) -> MatchingResult:
    """Pair intercompany records and report what did not reconcile."""
    if not records:
        return MatchingResult()

    by_pair: dict[tuple[UUID, UUID], list[IntercompanyRecord]] = {}
    for record in records:
        by_pair.setdefault((record.from_company_id, record.to_company_id), []).append(record)

    pairs: list[MatchedPair] = []
    unmatched: list[UnmatchedRecord] = []
    processed: set[UUID] = set()

    for (from_id, to_id), own in by_pair.items():
        reverse = by_pair.get((to_id, from_id), [])
        for candidate in own:
            if candidate.transaction_id in processed:
                continue
            for counterpart in reverse:
                if counterpart.transaction_id in processed:
                    continue
                matches, variance = _compare(candidate, counterpart, config)
                if matches:
                    pairs.append(MatchedPair(candidate, counterpart, variance))
                    processed.add(candidate.transaction_id)
                    processed.add(counterpart.transaction_id)
                    break
            else:
                unmatched.append(UnmatchedRecord(candidate, missing_side="to"))
                processed.add(candidate.transaction_id)

        for counterpart in reverse:
            if counterpart.transaction_id not in processed:
                unmatched.append(UnmatchedRecord(counterpart, missing_side="from"))
                processed.add(counterpart.transaction_id)

    discrepancies = [_missing_counterpart(u.record, u.missing_side) for u in unmatched]
    discrepancies.extend(_amount_mismatch(p) for p in pairs if not p.is_exact)

    issues: list[ValidationIssue] = []
    for u in unmatched:
        issues.append(
            ValidationIssue.warning(
                "IC_UNMATCHED",
                f"{u.record.transaction_type.value} {u.record.amount} {u.record.currency} "
                f"from {u.record.from_company_id} to {u.record.to_company_id} has no "
                f"counterpart on the {u.missing_side} side",
                entity_reference=str(u.record.transaction_id),
            )
        )
    for p in pairs:
        if p.status == MatchingStatus.PARTIALLY_MATCHED:
            issues.append(
                ValidationIssue.warning(
                    "IC_VARIANCE",
                    f"Intercompany variance of {p.variance} {p.from_record.currency} "
                    f"between {p.from_record.from_company_id} and {p.from_record.to_company_id}",
                    entity_reference=str(p.from_record.transaction_id),
                )
            )

    return MatchingResult(
        matched_pairs=tuple(pairs),
        unmatched=tuple(unmatched),
        discrepancies=tuple(discrepancies),
        total_transactions=len(records),
        issues=tuple(issues),
    )


def eliminable_amounts(
    result: MatchingResult,
    reporting_currency: str,
    rates: Mapping[str, Decimal | None] | None = None,
) -> tuple[dict[IntercompanyTransactionType, Decimal], list[ValidationIssue]]:
    """
    Amounts cleared for elimination, per transaction type, in the reporting
    currency.

    ``rates`` maps a transaction currency to its rate into the reporting
    currency.  Pairs in a currency without a rate are left out with a
    WARNING.
    """
    rates = rates or {}
    amounts: dict[IntercompanyTransactionType, Decimal] = {}
    issues: list[ValidationIssue] = []
    for pair in result.eliminable_pairs():
        currency = pair.from_record.currency
        if currency == reporting_currency:
            amount = pair.eliminable_amount
        else:
            rate = rates.get(currency)
            if rate is None:
                issues.append(
                    ValidationIssue.warning(
                        "IC_RATE_MISSING",
                        f"No rate {currency}/{reporting_currency} for matched "
                        f"intercompany pair; left out of elimination caps",
                        entity_reference=str(pair.from_record.transaction_id),
                    )
                )
                continue
            amount = round_money(pair.eliminable_amount * rate)
        ttype = pair.from_record.transaction_type
        amounts[ttype] = amounts.get(ttype, ZERO) + amount
    return amounts, issues
