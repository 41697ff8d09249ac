"""
Reversal tests.

Verifies:
- A posted entry is reversed by a new posted mirror entry
- The original becomes REVERSED and points at its reversal
- The net effect of an entry and its reversal on every account is zero
- An entry can be reversed at most once, and reversals are not reversed
- Only posted entries can be reversed
"""

from datetime import date
from decimal import Decimal

import pytest

from consolidation_kernel.exceptions import (
    ClosedPeriodError,
    EntryAlreadyReversedError,
    EntryNotPostedError,
    InvalidEntryError,
)
from consolidation_kernel.models.journal import JournalEntryStatus
from consolidation_kernel.selectors.ledger_selector import LedgerSelector
from consolidation_kernel.services.journal_service import JournalLineInput
from consolidation_kernel.services.reversal_service import ReversalService


@pytest.fixture
def company(make_company, make_period):
    company = make_company("P")
    make_period(company)
    return company


@pytest.fixture
def reversal_service(session, clock):
    return ReversalService(session, clock)


@pytest.fixture
def posted(post_entry, company):
    return post_entry(company, date(2026, 3, 5), {"1100": "125.50", "4100": "-125.50"})


class TestReverse:

    def test_mirror_entry_posted(
        self, reversal_service, journal_service, posted, test_actor_id
    ):
        result = reversal_service.reverse(posted.id, test_actor_id)
        mirror = journal_service.get(result.reversal_entry_id)

        assert JournalEntryStatus(mirror.status) == JournalEntryStatus.POSTED
        assert mirror.reversed_entry_id == posted.id
        assert result.reversal_entry_number == 2
        assert result.reversal_date == date(2026, 3, 5)
        for original_line, mirror_line in zip(posted.lines, mirror.lines):
            assert mirror_line.functional_debit == original_line.functional_credit
            assert mirror_line.functional_credit == original_line.functional_debit

    def test_original_marked_reversed(self, reversal_service, posted, test_actor_id):
        result = reversal_service.reverse(posted.id, test_actor_id)

        assert JournalEntryStatus(posted.status) == JournalEntryStatus.REVERSED
        assert posted.reversing_entry_id == result.reversal_entry_id

    def test_balances_net_to_zero(self, reversal_service, session, company, posted, test_actor_id):
        reversal_service.reverse(posted.id, test_actor_id, reversal_date=date(2026, 3, 20))

        balances = LedgerSelector(session).posted_balances(company.id)
        assert all(b.net_debit == Decimal("0") for b in balances)

    def test_second_reversal_rejected(self, reversal_service, posted, test_actor_id):
        reversal_service.reverse(posted.id, test_actor_id)

        with pytest.raises(EntryAlreadyReversedError):
            reversal_service.reverse(posted.id, test_actor_id)

    def test_reversal_of_reversal_rejected(self, reversal_service, posted, test_actor_id):
        result = reversal_service.reverse(posted.id, test_actor_id)

        with pytest.raises(InvalidEntryError):
            reversal_service.reverse(result.reversal_entry_id, test_actor_id)

    def test_draft_cannot_be_reversed(
        self, reversal_service, journal_service, account_of, company, test_actor_id
    ):
        draft = journal_service.create_draft(
            company.id,
            date(2026, 3, 5),
            [
                JournalLineInput(account_of(company, "1100").id, debit=Decimal("1")),
                JournalLineInput(account_of(company, "4100").id, credit=Decimal("1")),
            ],
            test_actor_id,
        )

        with pytest.raises(EntryNotPostedError):
            reversal_service.reverse(draft.id, test_actor_id)

    def test_reversal_into_closed_period_rejected(
        self, reversal_service, period_service, company, posted, test_actor_id
    ):
        period_service.close_period(company.id, "2026-03", test_actor_id)

        with pytest.raises(ClosedPeriodError):
            reversal_service.reverse(posted.id, test_actor_id)
        assert JournalEntryStatus(posted.status) == JournalEntryStatus.POSTED
