"""
Pytest fixtures for the consolidation test suite.

Provides:
- A database session per test, rolled back at teardown
- Structured logging capture
- Factories for companies, charts of accounts, fiscal periods, exchange
  rates, posted journal entries, consolidation groups, elimination rules
  and intercompany transactions

Environment Variables:
- CONSOLIDATION_TEST_DATABASE_URL: database for the suite.  Defaults to an
  in-memory SQLite database.  Tests marked ``postgres`` only run when it
  points at PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from consolidation_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from consolidation_kernel.domain.account_selector import selector_to_dict
from consolidation_kernel.domain.clock import DeterministicClock
from consolidation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from consolidation_kernel.models.account import Account, AccountType, NormalBalance
from consolidation_kernel.models.company import Company
from consolidation_kernel.models.consolidation import (
    ConsolidationGroup,
    ConsolidationMember,
    ConsolidationMethod,
    EliminationRule,
    EliminationType,
)
from consolidation_kernel.models.exchange_rate import ExchangeRate, RateType
from consolidation_kernel.models.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
)
from consolidation_kernel.services.journal_service import JournalLineInput, JournalService
from consolidation_kernel.services.period_service import PeriodService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_TEST_URL = "sqlite:///:memory:"

PERIOD_CODE = "2026-03"
PERIOD_START = date(2026, 3, 1)
PERIOD_END = date(2026, 3, 31)

# (number, name, type, normal balance, category)
STANDARD_CHART = (
    ("1100", "Cash", AccountType.ASSET, NormalBalance.DEBIT, "Cash"),
    ("1200", "Intercompany Receivable", AccountType.ASSET, NormalBalance.DEBIT,
     "IntercompanyReceivable"),
    ("1500", "Investment in Subsidiary", AccountType.ASSET, NormalBalance.DEBIT,
     "InvestmentInSubsidiary"),
    ("2100", "Accounts Payable", AccountType.LIABILITY, NormalBalance.CREDIT, "Payables"),
    ("2200", "Intercompany Payable", AccountType.LIABILITY, NormalBalance.CREDIT,
     "IntercompanyPayable"),
    ("3100", "Common Stock", AccountType.EQUITY, NormalBalance.CREDIT, "ShareCapital"),
    ("3200", "Retained Earnings", AccountType.EQUITY, NormalBalance.CREDIT, "RetainedEarnings"),
    ("4100", "Revenue", AccountType.REVENUE, NormalBalance.CREDIT, "Revenue"),
    ("4200", "Intercompany Revenue", AccountType.REVENUE, NormalBalance.CREDIT,
     "IntercompanyRevenue"),
    ("5100", "Operating Expense", AccountType.EXPENSE, NormalBalance.DEBIT, "Expense"),
    ("5200", "Intercompany Expense", AccountType.EXPENSE, NormalBalance.DEBIT,
     "IntercompanyExpense"),
)


def get_database_url() -> str:
    return os.environ.get("CONSOLIDATION_TEST_DATABASE_URL", DEFAULT_TEST_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if get_database_url().startswith("postgresql"):
        return
    skip = pytest.mark.skip(reason="needs CONSOLIDATION_TEST_DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture consolidation_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.run(...)
            logs = captured_logs()
            assert any(r["message"] == "consolidation_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("consolidation_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create the schema once per session."""
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def session(db_engine, db_tables):
    """
    Session bound to an outer transaction that is rolled back at teardown.

    ``commit()`` inside the code under test only releases a SAVEPOINT, so
    services that commit (the consolidation orchestrator) can be tested
    without leaking rows into the next test.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    sess = Session(bind=connection, join_transaction_mode="create_savepoint")
    yield sess
    sess.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def period_service(session, clock):
    return PeriodService(session, clock)


@pytest.fixture
def journal_service(session, clock):
    return JournalService(session, clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_company(session, test_actor_id):
    """Create a company with the standard chart of accounts."""

    def _make(code: str, functional_currency: str = "USD", with_chart: bool = True) -> Company:
        company = Company(
            code=code,
            name=f"{code} Inc.",
            functional_currency=functional_currency,
            is_active=True,
            created_by_id=test_actor_id,
        )
        session.add(company)
        session.flush()
        if with_chart:
            for number, name, account_type, normal, category in STANDARD_CHART:
                session.add(
                    Account(
                        company_id=company.id,
                        account_number=number,
                        name=name,
                        account_type=account_type,
                        category=category,
                        normal_balance=normal,
                        is_active=True,
                        created_by_id=test_actor_id,
                    )
                )
            session.flush()
        return company

    return _make


@pytest.fixture
def account_of(session):
    """Look up a company's account by number."""

    def _get(company: Company, number: str) -> Account:
        return session.execute(
            select(Account).where(
                Account.company_id == company.id,
                Account.account_number == number,
            )
        ).scalar_one()

    return _get


@pytest.fixture
def make_period(period_service, test_actor_id):
    def _make(
        company: Company,
        code: str = PERIOD_CODE,
        start: date = PERIOD_START,
        end: date = PERIOD_END,
    ):
        return period_service.create_period(company.id, code, start, end, test_actor_id)

    return _make


@pytest.fixture
def add_rate(session, test_actor_id):
    def _add(
        from_currency: str,
        to_currency: str,
        rate: str,
        rate_type: RateType = RateType.SPOT,
        effective_date: date = PERIOD_START,
    ) -> ExchangeRate:
        record = ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=Decimal(rate),
            rate_type=rate_type.value,
            effective_date=effective_date,
            source="test",
            created_by_id=test_actor_id,
        )
        session.add(record)
        session.flush()
        return record

    return _add


@pytest.fixture
def post_entry(journal_service, account_of, test_actor_id):
    """
    Create, approve and post a balanced entry.

    ``amounts`` maps account number to a signed amount: positive debits,
    negative credits.
    """

    def _post(company: Company, entry_date: date, amounts: dict[str, str], **line_kwargs):
        lines = []
        for number, raw in amounts.items():
            amount = Decimal(raw)
            account = account_of(company, number)
            if amount > 0:
                lines.append(JournalLineInput(account.id, debit=amount, **line_kwargs))
            else:
                lines.append(JournalLineInput(account.id, credit=-amount, **line_kwargs))
        entry = journal_service.create_draft(company.id, entry_date, lines, test_actor_id)
        journal_service.submit(entry.id, test_actor_id)
        journal_service.approve(entry.id, test_actor_id)
        return journal_service.post(entry.id, test_actor_id)

    return _post


@pytest.fixture
def make_group(session, test_actor_id):
    """
    Create a consolidation group.

    ``members`` is a list of (company, ownership percentage, method), with
    an optional fourth element of extra ConsolidationMember columns.
    """

    def _make(
        parent: Company,
        members,
        reporting_currency: str = "USD",
        code: str = "GRP",
        is_active: bool = True,
    ) -> ConsolidationGroup:
        group = ConsolidationGroup(
            code=code,
            name=f"{code} Group",
            parent_company_id=parent.id,
            reporting_currency=reporting_currency,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(group)
        session.flush()
        for company, ownership, method, *extra in members:
            session.add(
                ConsolidationMember(
                    group_id=group.id,
                    company_id=company.id,
                    ownership_percentage=Decimal(ownership),
                    consolidation_method=method.value,
                    created_by_id=test_actor_id,
                    **(extra[0] if extra else {}),
                )
            )
        session.flush()
        return group

    return _make


@pytest.fixture
def add_rule(session, test_actor_id):
    def _add(
        group: ConsolidationGroup,
        name: str,
        elimination_type: EliminationType,
        debit_account_number: str,
        credit_account_number: str,
        *,
        source_accounts=(),
        trigger_conditions=(),
        priority: int = 100,
        is_automatic: bool = True,
        is_active: bool = True,
    ) -> EliminationRule:
        rule = EliminationRule(
            group_id=group.id,
            name=name,
            elimination_type=elimination_type.value,
            trigger_conditions=[c.to_dict() for c in trigger_conditions],
            source_accounts=[selector_to_dict(s) for s in source_accounts],
            target_accounts=[],
            debit_account_number=debit_account_number,
            credit_account_number=credit_account_number,
            is_automatic=is_automatic,
            priority=priority,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(rule)
        session.flush()
        return rule

    return _add


@pytest.fixture
def add_ic(session, test_actor_id):
    def _add(
        from_company: Company,
        to_company: Company,
        amount: str,
        transaction_date: date = date(2026, 3, 10),
        transaction_type: IntercompanyTransactionType = IntercompanyTransactionType.SALE_PURCHASE,
        currency: str = "USD",
    ) -> IntercompanyTransaction:
        tx = IntercompanyTransaction(
            from_company_id=from_company.id,
            to_company_id=to_company.id,
            transaction_type=transaction_type.value,
            transaction_date=transaction_date,
            amount=Decimal(amount),
            currency=currency,
            created_by_id=test_actor_id,
        )
        session.add(tx)
        session.flush()
        return tx

    return _add


@pytest.fixture
def two_company_group(
    make_company, make_period, post_entry, make_group, add_rule, add_ic
):
    """
    Parent P (100%) and subsidiary S (80%), both USD, with a 200 intercompany
    sale from P to S booked on both sides and matching elimination rules.

    Aggregated balances:
        1100 Cash                    1800 Dr
        1200 Intercompany Receivable  200 Dr
        2200 Intercompany Payable     200 Cr
        3100 Common Stock            1500 Cr   (S contributes 500)
        4100 Revenue                  300 Cr   (all S)
        4200 Intercompany Revenue     200 Cr
        5200 Intercompany Expense     200 Dr   (all S)
    """
    from consolidation_kernel.domain.account_selector import ById
    from consolidation_kernel.domain.consolidation import TriggerCondition

    parent = make_company("P")
    sub = make_company("S")
    for company in (parent, sub):
        make_period(company)

    post_entry(parent, date(2026, 3, 2), {"1100": "1000", "3100": "-1000"})
    post_entry(parent, date(2026, 3, 10), {"1200": "200", "4200": "-200"})
    post_entry(sub, date(2026, 3, 2), {"1100": "500", "3100": "-500"})
    post_entry(sub, date(2026, 3, 11), {"5200": "200", "2200": "-200"})
    post_entry(sub, date(2026, 3, 15), {"1100": "300", "4100": "-300"})

    group = make_group(
        parent,
        [
            (parent, "100", ConsolidationMethod.FULL_CONSOLIDATION),
            (sub, "80", ConsolidationMethod.FULL_CONSOLIDATION),
        ],
    )
    add_rule(
        group,
        "IC receivable / payable",
        EliminationType.IC_RECEIVABLE_PAYABLE,
        "2200",
        "1200",
        trigger_conditions=(
            TriggerCondition("receivable", (ById("1200"),)),
            TriggerCondition("payable", (ById("2200"),)),
        ),
        priority=10,
    )
    add_rule(
        group,
        "IC revenue / expense",
        EliminationType.IC_REVENUE_EXPENSE,
        "4200",
        "5200",
        trigger_conditions=(
            TriggerCondition("revenue", (ById("4200"),)),
            TriggerCondition("expense", (ById("5200"),)),
        ),
        priority=20,
    )
    add_ic(parent, sub, "200", date(2026, 3, 10))
    add_ic(sub, parent, "200", date(2026, 3, 11))

    return {"parent": parent, "sub": sub, "group": group}
