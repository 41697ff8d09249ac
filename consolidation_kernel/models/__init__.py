"""ORM models for the consolidation kernel."""

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
from consolidation_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from consolidation_kernel.models.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
    MatchingStatus,
)
from consolidation_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)


def import_all_models() -> None:
    """Register every table on ``Base.metadata`` (idempotent).

    SequenceCounter lives beside SequenceService and ConsolidationRunModel in
    the services layer; both are imported here so create_all sees them.
    """
    import consolidation_kernel.services.sequence_service  # noqa: F401
    import consolidation_services.orm  # noqa: F401


__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "Company",
    "ConsolidationGroup",
    "ConsolidationMember",
    "ConsolidationMethod",
    "EliminationRule",
    "EliminationType",
    "ExchangeRate",
    "RateType",
    "FiscalPeriod",
    "PeriodStatus",
    "IntercompanyTransaction",
    "IntercompanyTransactionType",
    "MatchingStatus",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "import_all_models",
]
