"""
Module: consolidation_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    consolidation calculation engines.  This is the import surface for
    consolidation_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import consolidation_kernel value types, enums and rounding helpers
    (and sibling engine modules).  MUST NOT import consolidation_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Rates,
      balances, rules and as-of dates arrive as explicit parameters.
    - Decimal-only arithmetic: monetary amounts are ``Decimal``, rounded
      with ``round_money``.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - ValueError from input validation (ownership percentage, matching
      tolerances).  Data problems are reported as ``ValidationIssue`` values,
      not raised.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine`` (see
    ``consolidation_engines.tracer``), emitting CONSOLIDATION_ENGINE_TRACE
    records with engine name, version, input fingerprint and duration.

Usage:
    from consolidation_engines import translate_members, aggregate_balances
    from consolidation_engines import match_transactions, generate_eliminations
    from consolidation_engines import calculate_nci
"""

from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines")

from consolidation_engines.aggregation import (
    CTA_ACCOUNT_NAME,
    CTA_CATEGORY,
    AggregatedLine,
    AggregatedTrialBalance,
    aggregate_balances,
    trial_balance_totals,
)
from consolidation_engines.consolidation_method import (
    EQUITY_METHOD_THRESHOLD,
    FULL_CONSOLIDATION_THRESHOLD,
    determine_consolidation_method,
    has_significant_influence,
    is_majority_ownership,
)
from consolidation_engines.elimination import (
    IC_TYPE_MAP,
    EliminationEntry,
    GenerationResult,
    elimination_amounts,
    generate_eliminations,
)
from consolidation_engines.ic_matching import (
    Discrepancy,
    DiscrepancyType,
    MatchedPair,
    MatchingConfig,
    MatchingResult,
    StatusUpdate,
    UnmatchedRecord,
    eliminable_amounts,
    match_transactions,
)
from consolidation_engines.nci import (
    NCI_ACCOUNT_NAME,
    NCI_CATEGORY,
    MemberNCI,
    NCIResult,
    calculate_nci,
)
from consolidation_engines.tracer import compute_input_fingerprint, traced_engine
from consolidation_engines.translation import (
    MemberTranslation,
    RateTable,
    TranslatedBalance,
    TranslationResult,
    rate_type_for,
    required_rates,
    translate_member,
    translate_members,
)

__all__ = [
    "CTA_ACCOUNT_NAME",
    "CTA_CATEGORY",
    "EQUITY_METHOD_THRESHOLD",
    "FULL_CONSOLIDATION_THRESHOLD",
    "IC_TYPE_MAP",
    "NCI_ACCOUNT_NAME",
    "NCI_CATEGORY",
    "AggregatedLine",
    "AggregatedTrialBalance",
    "Discrepancy",
    "DiscrepancyType",
    "EliminationEntry",
    "GenerationResult",
    "MatchedPair",
    "MatchingConfig",
    "MatchingResult",
    "MemberNCI",
    "MemberTranslation",
    "NCIResult",
    "RateTable",
    "StatusUpdate",
    "TranslatedBalance",
    "TranslationResult",
    "UnmatchedRecord",
    "aggregate_balances",
    "calculate_nci",
    "compute_input_fingerprint",
    "determine_consolidation_method",
    "eliminable_amounts",
    "elimination_amounts",
    "generate_eliminations",
    "has_significant_influence",
    "is_majority_ownership",
    "match_transactions",
    "rate_type_for",
    "required_rates",
    "trial_balance_totals",
    "traced_engine",
    "translate_member",
    "translate_members",
]
