"""Services for the consolidation kernel (write side)."""

from consolidation_kernel.services.journal_service import JournalLineInput, JournalService
from consolidation_kernel.services.period_service import PeriodService
from consolidation_kernel.services.reversal_service import ReversalResult, ReversalService
from consolidation_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "JournalLineInput",
    "JournalService",
    "PeriodService",
    "ReversalResult",
    "ReversalService",
    "SequenceCounter",
    "SequenceService",
]
