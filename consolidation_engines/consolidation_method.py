"""
Consolidation method determination.

Voting-interest model with a variable-interest override:

    ownership > 50%             FULL_CONSOLIDATION
    20% <= ownership <= 50%     EQUITY_METHOD
    ownership < 20%             COST_METHOD

A member that is the primary beneficiary of a VIE *and* holds a controlling
financial interest is consolidated regardless of ownership.  With
``track_vie=True`` it is reported as VARIABLE_INTEREST_ENTITY so the
disclosure survives; otherwise as FULL_CONSOLIDATION.
"""

from decimal import Decimal

from consolidation_kernel.models.consolidation import ConsolidationMethod

FULL_CONSOLIDATION_THRESHOLD = Decimal("50")
EQUITY_METHOD_THRESHOLD = Decimal("20")


def _check_percentage(ownership_percentage: Decimal) -> Decimal:
    pct = Decimal(ownership_percentage)
    if pct < 0 or pct > 100:
        raise ValueError(f"Ownership percentage must be within 0..100, got {pct}")
    return pct


def is_majority_ownership(ownership_percentage: Decimal) -> bool:
    return _check_percentage(ownership_percentage) > FULL_CONSOLIDATION_THRESHOLD


def has_significant_influence(ownership_percentage: Decimal) -> bool:
    pct = _check_percentage(ownership_percentage)
    return EQUITY_METHOD_THRESHOLD <= pct <= FULL_CONSOLIDATION_THRESHOLD


def determine_consolidation_method(
    ownership_percentage: Decimal,
    is_primary_beneficiary: bool | None = None,
    has_controlling_financial_interest: bool | None = None,
    track_vie: bool = True,
) -> ConsolidationMethod:
    """Pick the consolidation method for a member."""
    pct = _check_percentage(ownership_percentage)

    if is_primary_beneficiary and has_controlling_financial_interest:
        if track_vie:
            return ConsolidationMethod.VARIABLE_INTEREST_ENTITY
        return ConsolidationMethod.FULL_CONSOLIDATION

    if pct > FULL_CONSOLIDATION_THRESHOLD:
        return ConsolidationMethod.FULL_CONSOLIDATION
    if pct >= EQUITY_METHOD_THRESHOLD:
        return ConsolidationMethod.EQUITY_METHOD
    return ConsolidationMethod.COST_METHOD
