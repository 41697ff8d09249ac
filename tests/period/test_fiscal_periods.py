"""
Fiscal period and sequence tests.

Verifies:
- Periods of one company never overlap
- A period resolves deterministically for a date
- Closing requires every entry dated in the period to be posted
- Sequence values are strictly increasing per sequence name
"""

from datetime import date
from decimal import Decimal

import pytest

from consolidation_kernel.exceptions import (
    FiscalPeriodNotFoundError,
    InvalidStatusTransitionError,
    OpenEntriesInPeriodError,
    PeriodOverlapError,
    ValidationError,
)
from consolidation_kernel.models.fiscal_period import PeriodStatus
from consolidation_kernel.services.journal_service import JournalLineInput
from consolidation_kernel.services.sequence_service import SequenceService


@pytest.fixture
def company(make_company):
    return make_company("P")


class TestPeriodCreation:

    def test_overlapping_period_rejected(self, make_period, company):
        make_period(company)

        with pytest.raises(PeriodOverlapError):
            make_period(company, "2026-03b", date(2026, 3, 15), date(2026, 4, 15))

    def test_same_dates_allowed_for_other_company(self, make_period, make_company, company):
        make_period(company)
        other = make_company("S")

        assert make_period(other).company_id == other.id

    def test_inverted_range_rejected(self, make_period, company):
        with pytest.raises(ValidationError) as exc_info:
            make_period(company, "bad", date(2026, 4, 1), date(2026, 3, 1))

        assert [i.code for i in exc_info.value.issues] == ["PERIOD_DATES_INVERTED"]
        assert exc_info.value.code == "VALIDATION_FAILED"

    def test_every_problem_reported(self, make_period, company):
        with pytest.raises(ValidationError) as exc_info:
            make_period(company, " ", date(2026, 4, 1), date(2026, 3, 1))

        assert [i.code for i in exc_info.value.issues] == [
            "PERIOD_CODE_BLANK",
            "PERIOD_DATES_INVERTED",
        ]

    def test_period_for_date(self, make_period, period_service, company):
        march = make_period(company)
        make_period(company, "2026-04", date(2026, 4, 1), date(2026, 4, 30))

        assert period_service.period_for_date(company.id, date(2026, 3, 31)).id == march.id
        assert period_service.period_for_date(company.id, date(2026, 5, 1)) is None

    def test_get_missing_period_raises(self, period_service, company):
        with pytest.raises(FiscalPeriodNotFoundError):
            period_service.get_period(company.id, "1999-01")


class TestPeriodClose:

    def test_close_period(self, make_period, period_service, company, test_actor_id, clock):
        make_period(company)
        period = period_service.close_period(company.id, "2026-03", test_actor_id)

        assert PeriodStatus(period.status) == PeriodStatus.CLOSED
        assert period.closed_at == clock.now()
        assert not period.is_open

    def test_close_twice_rejected(self, make_period, period_service, company, test_actor_id):
        make_period(company)
        period_service.close_period(company.id, "2026-03", test_actor_id)

        with pytest.raises(InvalidStatusTransitionError):
            period_service.close_period(company.id, "2026-03", test_actor_id)

    def test_unposted_entries_block_close(
        self, make_period, period_service, journal_service, account_of, company, test_actor_id
    ):
        make_period(company)
        journal_service.create_draft(
            company.id,
            date(2026, 3, 9),
            [
                JournalLineInput(account_of(company, "1100").id, debit=Decimal("1")),
                JournalLineInput(account_of(company, "4100").id, credit=Decimal("1")),
            ],
            test_actor_id,
        )

        with pytest.raises(OpenEntriesInPeriodError) as exc_info:
            period_service.close_period(company.id, "2026-03", test_actor_id)
        assert exc_info.value.open_count == 1


class TestSequences:

    def test_values_increase(self, session):
        sequences = SequenceService(session)
        values = [sequences.next_value("test_sequence") for _ in range(3)]

        assert values == [1, 2, 3]
        assert sequences.current_value("test_sequence") == 3

    def test_sequences_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value("a")
        sequences.next_value("a")

        assert sequences.next_value("b") == 1
        assert sequences.current_value("never_used") is None
