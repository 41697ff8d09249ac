"""
JournalService -- journal entry lifecycle and posting.

Responsibility:
    Drives an entry through its state machine and is the only writer of
    posted balances:

        DRAFT --submit--> PENDING_APPROVAL --approve--> APPROVED --post--> POSTED
                               |
                               +--reject--> DRAFT

    Only DRAFT entries may be edited or deleted.  Reversal of a POSTED
    entry lives in ReversalService.

Architecture position:
    Kernel > Services.  Uses PeriodService for posting-date validation and
    SequenceService for per-company entry numbers.

Invariants enforced:
    - Double entry: at every state the functional debits equal the
      functional credits, with at least two lines and exactly one of
      debit/credit per line.
    - Posting requires a balanced entry, an OPEN period covering the entry
      date, and active accounts belonging to the entry's company.
    - entry_number is assigned only at posting, from the locked counter
      ``journal_entry:<company_id>``, so concurrent posts for one company
      never share or reorder numbers.
    - Posting is atomic: it runs in a SAVEPOINT; on any failure neither the
      status change nor the consumed number survives.
    - Flush-only: never commits the caller's transaction.

Failure modes:
    - InvalidEntryError, UnbalancedEntryError on create/update/post.
    - InvalidStatusTransitionError for an illegal lifecycle action.
    - EntryNotEditableError on update/delete outside DRAFT.
    - ClosedPeriodError, FiscalPeriodNotFoundError, AccountNotFoundError,
      InactiveAccountError on post.
    - JournalEntryNotFoundError, CompanyNotFoundError.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from consolidation_kernel.db.types import ZERO, round_money, validate_currency
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.exceptions import (
    AccountNotFoundError,
    CompanyNotFoundError,
    EntryNotEditableError,
    InactiveAccountError,
    InvalidEntryError,
    InvalidStatusTransitionError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_kernel.models.account import Account
from consolidation_kernel.models.company import Company
from consolidation_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from consolidation_kernel.models.exchange_rate import RateType
from consolidation_kernel.selectors.rate_selector import RateSelector
from consolidation_kernel.services.base import BaseService
from consolidation_kernel.services.period_service import PeriodService
from consolidation_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")


@dataclass(frozen=True)
class JournalLineInput:
    """
    One requested journal line.

    Exactly one of ``debit`` / ``credit`` must be given.  ``currency``
    defaults to the company's functional currency; ``exchange_rate``
    converts it into the functional currency and, when omitted for a
    foreign-currency line, is looked up as the SPOT rate on the entry date.
    ``functional_amount`` overrides the computed conversion when the source
    system supplies it.
    """

    account_id: UUID
    debit: Decimal | None = None
    credit: Decimal | None = None
    currency: str | None = None
    exchange_rate: Decimal | None = None
    functional_amount: Decimal | None = None
    memo: str | None = None


# Allowed (action -> from-status, to-status) transitions
_TRANSITIONS: dict[str, tuple[JournalEntryStatus, JournalEntryStatus]] = {
    "submit": (JournalEntryStatus.DRAFT, JournalEntryStatus.PENDING_APPROVAL),
    "approve": (JournalEntryStatus.PENDING_APPROVAL, JournalEntryStatus.APPROVED),
    "reject": (JournalEntryStatus.PENDING_APPROVAL, JournalEntryStatus.DRAFT),
    "post": (JournalEntryStatus.APPROVED, JournalEntryStatus.POSTED),
}


def _status(entry: JournalEntry) -> JournalEntryStatus:
    return JournalEntryStatus(entry.status)


class JournalService(BaseService[JournalEntry]):
    """
    Journal entry lifecycle for one session.

    Usage:
        service = JournalService(session, clock)
        entry = service.create_draft(company_id, date(2026, 3, 5), lines, actor_id)
        service.submit(entry.id, actor_id)
        service.approve(entry.id, approver_id)
        service.post(entry.id, approver_id)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._periods = PeriodService(session, self._clock)
        self._sequences = SequenceService(session)
        self._rates = RateSelector(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def get_for_update(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def _company(self, company_id: UUID) -> Company:
        company = self.session.get(Company, company_id)
        if company is None:
            raise CompanyNotFoundError(str(company_id))
        return company

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def create_draft(
        self,
        company_id: UUID,
        entry_date: date,
        lines: Sequence[JournalLineInput],
        actor_id: UUID,
        description: str | None = None,
    ) -> JournalEntry:
        """Create a balanced DRAFT entry."""
        company = self._company(company_id)
        built = self._build_lines(company, entry_date, lines, actor_id)

        entry = JournalEntry(
            company_id=company_id,
            entry_date=entry_date,
            description=description,
            status=JournalEntryStatus.DRAFT,
            created_by_id=actor_id,
        )
        entry.lines = built
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_entry_created",
            extra={
                "entry_id": str(entry.id),
                "company_id": str(company_id),
                "line_count": len(built),
            },
        )
        return entry

    def update_draft(
        self,
        entry_id: UUID,
        actor_id: UUID,
        *,
        lines: Sequence[JournalLineInput] | None = None,
        entry_date: date | None = None,
        description: str | None = None,
    ) -> JournalEntry:
        """Replace the date, description and/or lines of a DRAFT entry."""
        entry = self.get_for_update(entry_id)
        if not entry.is_draft:
            raise EntryNotEditableError(str(entry_id), str(_status(entry).value))

        if lines is not None:
            entry.lines = self._build_lines(
                self._company(entry.company_id), entry_date or entry.entry_date, lines, actor_id
            )
        if entry_date is not None:
            entry.entry_date = entry_date
        if description is not None:
            entry.description = description
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info("journal_entry_updated", extra={"entry_id": str(entry_id)})
        return entry

    def delete_draft(self, entry_id: UUID, actor_id: UUID) -> None:
        entry = self.get_for_update(entry_id)
        if not entry.is_draft:
            raise EntryNotEditableError(str(entry_id), str(_status(entry).value))
        self.session.delete(entry)
        self.session.flush()
        logger.info(
            "journal_entry_deleted",
            extra={"entry_id": str(entry_id), "actor_id": str(actor_id)},
        )

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    def _transition(self, entry: JournalEntry, action: str) -> None:
        expected, target = _TRANSITIONS[action]
        current = _status(entry)
        if current != expected:
            raise InvalidStatusTransitionError(
                f"journal entry {entry.id}", current.value, action
            )
        entry.status = target

    def submit(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        entry = self.get_for_update(entry_id)
        self._assert_balanced(entry.lines)
        self._transition(entry, "submit")
        entry.submitted_at = self._clock.now()
        entry.updated_by_id = actor_id
        entry.rejection_reason = None
        self.session.flush()
        logger.info("journal_entry_submitted", extra={"entry_id": str(entry_id)})
        return entry

    def approve(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        entry = self.get_for_update(entry_id)
        self._transition(entry, "approve")
        entry.approved_at = self._clock.now()
        entry.approved_by_id = actor_id
        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "journal_entry_approved",
            extra={"entry_id": str(entry_id), "actor_id": str(actor_id)},
        )
        return entry

    def reject(self, entry_id: UUID, actor_id: UUID, reason: str | None = None) -> JournalEntry:
        entry = self.get_for_update(entry_id)
        self._transition(entry, "reject")
        entry.submitted_at = None
        entry.rejection_reason = reason
        entry.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "journal_entry_rejected",
            extra={"entry_id": str(entry_id), "reason": reason},
        )
        return entry

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        """
        Post an APPROVED entry and assign its entry number.

        All checks, the number allocation and the status change happen in
        one SAVEPOINT.  Any exception rolls the savepoint back and
        propagates.
        """
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            with self.session.begin_nested():
                entry = self.get_for_update(entry_id)
                current = _status(entry)
                if current != JournalEntryStatus.APPROVED:
                    raise InvalidStatusTransitionError(
                        f"journal entry {entry.id}", current.value, "post"
                    )

                self._assert_balanced(entry.lines)
                self._periods.validate_posting_date(entry.company_id, entry.entry_date)
                self._assert_accounts_postable(entry)

                entry.entry_number = self.assign_entry_number(entry.company_id)
                self._transition(entry, "post")
                entry.posted_at = self._clock.now()
                entry.posted_by_id = actor_id
                entry.updated_by_id = actor_id
                self.session.flush()

            logger.info(
                "journal_entry_posted",
                extra={
                    "company_id": str(entry.company_id),
                    "entry_number": entry.entry_number,
                    "total_debits": entry.total_debits,
                },
            )
        return entry

    def assign_entry_number(self, company_id: UUID) -> int:
        return self._sequences.next_value(
            SequenceService.journal_entry_sequence(company_id)
        )

    # ------------------------------------------------------------------
    # Line construction and checks
    # ------------------------------------------------------------------

    def _build_lines(
        self,
        company: Company,
        entry_date: date,
        lines: Sequence[JournalLineInput],
        actor_id: UUID,
    ) -> list[JournalLine]:
        if len(lines) < 2:
            raise InvalidEntryError("an entry needs at least two lines")

        built: list[JournalLine] = []
        for number, line_input in enumerate(lines, start=1):
            if (line_input.debit is None) == (line_input.credit is None):
                raise InvalidEntryError(
                    f"line {number} must have exactly one of debit or credit"
                )
            amount = line_input.debit if line_input.debit is not None else line_input.credit
            if amount <= ZERO:
                raise InvalidEntryError(f"line {number} amount must be positive")

            account = self.session.get(Account, line_input.account_id)
            if account is None or account.company_id != company.id:
                raise AccountNotFoundError(str(line_input.account_id))

            currency = validate_currency(line_input.currency or company.functional_currency)
            rate = line_input.exchange_rate
            if rate is None:
                rate = self._rates.require(
                    currency, company.functional_currency, entry_date, RateType.SPOT
                )
            if rate <= ZERO:
                raise InvalidEntryError(f"line {number} exchange rate must be positive")
            functional = (
                line_input.functional_amount
                if line_input.functional_amount is not None
                else round_money(amount * rate)
            )

            built.append(
                JournalLine(
                    account_id=line_input.account_id,
                    line_number=number,
                    currency=currency,
                    debit_amount=line_input.debit,
                    credit_amount=line_input.credit,
                    exchange_rate=rate,
                    functional_debit=functional if line_input.debit is not None else None,
                    functional_credit=functional if line_input.credit is not None else None,
                    memo=line_input.memo,
                    created_by_id=actor_id,
                )
            )

        self._assert_balanced(built, company.functional_currency)
        return built

    @staticmethod
    def _assert_balanced(lines: Sequence[JournalLine], currency: str = "functional") -> None:
        if len(lines) < 2:
            raise InvalidEntryError("an entry needs at least two lines")
        debits = sum((line.functional_debit or ZERO for line in lines), ZERO)
        credits = sum((line.functional_credit or ZERO for line in lines), ZERO)
        if debits != credits:
            raise UnbalancedEntryError(str(debits), str(credits), currency)

    def _assert_accounts_postable(self, entry: JournalEntry) -> None:
        for line in entry.lines:
            account = self.session.get(Account, line.account_id)
            if account is None or account.company_id != entry.company_id:
                raise AccountNotFoundError(str(line.account_id))
            if not account.is_active:
                raise InactiveAccountError(str(line.account_id))
