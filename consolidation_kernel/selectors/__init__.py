"""Read-only selectors for the consolidation kernel."""

from consolidation_kernel.selectors.consolidation_selector import ConsolidationSelector
from consolidation_kernel.selectors.ledger_selector import LedgerSelector
from consolidation_kernel.selectors.rate_selector import RateQuote, RateSelector

__all__ = [
    "ConsolidationSelector",
    "LedgerSelector",
    "RateQuote",
    "RateSelector",
]
