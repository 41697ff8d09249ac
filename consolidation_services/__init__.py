"""
consolidation_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure consolidation engines
    (consolidation_engines/) with database sessions, selectors and the
    clock.  This is the only layer that persists consolidation runs.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        consolidation_services/ -> consolidation_engines/  (allowed)
        consolidation_services/ -> consolidation_kernel/   (allowed)
        consolidation_engines/  -> consolidation_services/ (FORBIDDEN)

    consolidation_kernel imports ``consolidation_services.orm`` only to
    register the run table and its immutability listeners.
"""

from consolidation_kernel.logging_config import get_logger

logger = get_logger("services")

from consolidation_services._consolidation_types import (
    STEP_ORDER,
    ConsolidatedLineItem,
    ConsolidatedTrialBalance,
    ConsolidationOptions,
    ConsolidationRun,
    ConsolidationStep,
    RunStatus,
    StepStatus,
    StepType,
)
from consolidation_services.consolidation_orchestrator import (
    RECOVERY_MESSAGE,
    ConsolidationRunOrchestrator,
    RunContext,
    StepHandler,
)
from consolidation_services.orm import ConsolidationRunModel

__all__ = [
    "RECOVERY_MESSAGE",
    "STEP_ORDER",
    "ConsolidatedLineItem",
    "ConsolidatedTrialBalance",
    "ConsolidationOptions",
    "ConsolidationRun",
    "ConsolidationRunModel",
    "ConsolidationRunOrchestrator",
    "ConsolidationStep",
    "RunContext",
    "RunStatus",
    "StepHandler",
    "StepStatus",
    "StepType",
]
