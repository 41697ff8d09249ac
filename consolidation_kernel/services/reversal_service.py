"""
ReversalService -- reversal of posted journal entries.

Responsibility:
    Creates the mirror entry E' of a POSTED entry E (every line's debit and
    credit swapped, amounts and rates unchanged), posts it with its own
    entry number, and cross-links both entries:

        E'.reversed_entry_id  = E.id
        E.reversing_entry_id  = E'.id
        E.status              = REVERSED

Architecture position:
    Kernel > Services.  Consumes PeriodService and SequenceService through
    JournalService.

Invariants enforced:
    - Only a POSTED entry can be reversed, and only once.
    - A reversal entry cannot itself be reversed: each row carries at most
      one of the two cross-links.
    - The reversal date must fall in an OPEN period of the company.
    - Atomic: E', its number and both cross-links persist together or not
      at all (SAVEPOINT).

Failure modes:
    - JournalEntryNotFoundError, EntryNotPostedError,
      EntryAlreadyReversedError, ClosedPeriodError,
      FiscalPeriodNotFoundError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.exceptions import (
    EntryAlreadyReversedError,
    EntryNotPostedError,
    InvalidEntryError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from consolidation_kernel.services.journal_service import JournalService
from consolidation_kernel.services.period_service import PeriodService

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of a successful reversal."""

    original_entry_id: UUID
    reversal_entry_id: UUID
    reversal_entry_number: int
    reversal_date: date


class ReversalService:
    """
    Reverse posted entries.

    Usage:
        result = ReversalService(session, clock).reverse(entry_id, actor_id)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._journal = JournalService(session, self._clock)
        self._periods = PeriodService(session, self._clock)

    def reverse(
        self,
        entry_id: UUID,
        actor_id: UUID,
        reversal_date: date | None = None,
        description: str | None = None,
    ) -> ReversalResult:
        """
        Reverse ``entry_id``.

        ``reversal_date`` defaults to the original entry date.
        """
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            with self._session.begin_nested():
                original = self._journal.get_for_update(entry_id)
                status = JournalEntryStatus(original.status)

                if original.reversing_entry_id is not None:
                    raise EntryAlreadyReversedError(
                        str(entry_id), str(original.reversing_entry_id)
                    )
                if status != JournalEntryStatus.POSTED:
                    raise EntryNotPostedError(str(entry_id), status.value)
                if original.reversed_entry_id is not None:
                    raise InvalidEntryError("a reversal entry cannot itself be reversed")

                effective = reversal_date or original.entry_date
                self._periods.validate_posting_date(original.company_id, effective)

                now = self._clock.now()
                mirror = JournalEntry(
                    company_id=original.company_id,
                    entry_date=effective,
                    description=description or f"Reversal of entry {original.entry_number}",
                    status=JournalEntryStatus.POSTED,
                    entry_number=self._journal.assign_entry_number(original.company_id),
                    posted_at=now,
                    posted_by_id=actor_id,
                    approved_at=now,
                    approved_by_id=actor_id,
                    reversed_entry_id=original.id,
                    created_by_id=actor_id,
                )
                mirror.lines = [self._swap(line, actor_id) for line in original.lines]
                self._session.add(mirror)
                # The mirror row must exist before the original points at it
                self._session.flush()

                original.status = JournalEntryStatus.REVERSED
                original.reversing_entry_id = mirror.id
                original.updated_by_id = actor_id
                self._session.flush()

            logger.info(
                "journal_entry_reversed",
                extra={
                    "company_id": str(original.company_id),
                    "original_entry_number": original.entry_number,
                    "reversal_entry_id": str(mirror.id),
                    "reversal_entry_number": mirror.entry_number,
                },
            )

        return ReversalResult(
            original_entry_id=original.id,
            reversal_entry_id=mirror.id,
            reversal_entry_number=mirror.entry_number,
            reversal_date=effective,
        )

    @staticmethod
    def _swap(line: JournalLine, actor_id: UUID) -> JournalLine:
        return JournalLine(
            account_id=line.account_id,
            line_number=line.line_number,
            currency=line.currency,
            debit_amount=line.credit_amount,
            credit_amount=line.debit_amount,
            exchange_rate=line.exchange_rate,
            functional_debit=line.functional_credit,
            functional_credit=line.functional_debit,
            memo=line.memo,
            created_by_id=actor_id,
        )
