"""
consolidation_services._consolidation_types -- Consolidation run DTOs.

Responsibility:
    Frozen dataclasses for the consolidation run lifecycle: run and step
    status, the fixed step sequence, run options, consolidated trial balance
    line items, and the ConsolidationRun read model returned to callers.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    These types live in consolidation_services/ because the orchestrator
    that produces them lives here.  They depend on kernel enums only.

Invariants enforced:
    - All DTOs are frozen; the orchestrator builds new values with
      ``dataclasses.replace`` instead of mutating.
    - STEP_ORDER is the only step sequence.  A run always carries exactly
      one ConsolidationStep per StepType, in STEP_ORDER.
    - ConsolidatedTrialBalance.is_balanced compares totals computed from
      the line items, never a stored flag.

Failure modes:
    - ValueError / KeyError from ``from_dict`` on malformed JSON snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from consolidation_kernel.db.types import ZERO
from consolidation_kernel.domain.validation import ValidationResult
from consolidation_kernel.models.account import AccountType, NormalBalance


class RunStatus(str, Enum):
    """Consolidation run lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


class StepType(str, Enum):
    VALIDATE = "validate"
    TRANSLATE = "translate"
    AGGREGATE = "aggregate"
    MATCH_IC = "match_ic"
    ELIMINATE = "eliminate"
    NCI = "nci"
    GENERATE_TB = "generate_tb"

    @property
    def display_name(self) -> str:
        return _STEP_DISPLAY_NAMES[self]


_STEP_DISPLAY_NAMES = {
    StepType.VALIDATE: "Validate Member Data",
    StepType.TRANSLATE: "Currency Translation",
    StepType.AGGREGATE: "Aggregate Balances",
    StepType.MATCH_IC: "Intercompany Matching",
    StepType.ELIMINATE: "Generate Eliminations",
    StepType.NCI: "Calculate Minority Interest",
    StepType.GENERATE_TB: "Generate Consolidated TB",
}

STEP_ORDER: tuple[StepType, ...] = (
    StepType.VALIDATE,
    StepType.TRANSLATE,
    StepType.AGGREGATE,
    StepType.MATCH_IC,
    StepType.ELIMINATE,
    StepType.NCI,
    StepType.GENERATE_TB,
)


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _dt(value: str | None) -> datetime | None:
    return None if value is None else datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


@dataclass(frozen=True)
class ConsolidationStep:
    """Status record for one pipeline step."""

    step_type: StepType
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.step_type.display_name

    def started(self, at: datetime) -> ConsolidationStep:
        return replace(self, status=StepStatus.IN_PROGRESS, started_at=at)

    def finished(
        self,
        at: datetime,
        status: StepStatus,
        *,
        details: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> ConsolidationStep:
        duration = None
        if self.started_at is not None:
            duration = int((at - self.started_at).total_seconds() * 1000)
        return replace(
            self,
            status=status,
            completed_at=at,
            duration_ms=duration,
            error_message=error_message,
            details=details if details is not None else self.details,
        )

    def skipped(self) -> ConsolidationStep:
        return replace(self, status=StepStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_type": self.step_type.value,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsolidationStep:
        return cls(
            step_type=StepType(data["step_type"]),
            status=StepStatus(data["status"]),
            started_at=_dt(data.get("started_at")),
            completed_at=_dt(data.get("completed_at")),
            duration_ms=data.get("duration_ms"),
            error_message=data.get("error_message"),
            details=data.get("details") or {},
        )


def initial_steps() -> tuple[ConsolidationStep, ...]:
    return tuple(ConsolidationStep(step_type) for step_type in STEP_ORDER)


@dataclass(frozen=True)
class ConsolidationOptions:
    """Per-run switches.  Passed explicitly into every initiate()."""

    skip_validation: bool = False
    continue_on_warnings: bool = True
    include_equity_method_investments: bool = True
    force_regeneration: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "skip_validation": self.skip_validation,
            "continue_on_warnings": self.continue_on_warnings,
            "include_equity_method_investments": self.include_equity_method_investments,
            "force_regeneration": self.force_regeneration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConsolidationOptions:
        data = data or {}
        unknown = set(data) - set(cls().to_dict())
        if unknown:
            raise ValueError(f"Unknown consolidation options: {sorted(unknown)}")
        not_bool = sorted(k for k, v in data.items() if not isinstance(v, bool))
        if not_bool:
            raise ValueError(f"Consolidation options must be true or false: {not_bool}")
        return cls(**data)


@dataclass(frozen=True)
class ConsolidatedLineItem:
    """
    One account of the consolidated trial balance.

    Amounts are signed by normal balance:
        consolidated_balance = aggregated_balance - elimination_amount - nci_amount
    """

    account_number: str
    account_name: str
    account_type: AccountType
    category: str | None
    normal_balance: NormalBalance
    aggregated_balance: Decimal
    elimination_amount: Decimal
    nci_amount: Decimal
    consolidated_balance: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_number": self.account_number,
            "account_name": self.account_name,
            "account_type": self.account_type.value,
            "category": self.category,
            "normal_balance": self.normal_balance.value,
            "aggregated_balance": str(self.aggregated_balance),
            "elimination_amount": str(self.elimination_amount),
            "nci_amount": str(self.nci_amount),
            "consolidated_balance": str(self.consolidated_balance),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsolidatedLineItem:
        return cls(
            account_number=data["account_number"],
            account_name=data["account_name"],
            account_type=AccountType(data["account_type"]),
            category=data.get("category"),
            normal_balance=NormalBalance(data["normal_balance"]),
            aggregated_balance=Decimal(data["aggregated_balance"]),
            elimination_amount=Decimal(data["elimination_amount"]),
            nci_amount=Decimal(data["nci_amount"]),
            consolidated_balance=Decimal(data["consolidated_balance"]),
        )


@dataclass(frozen=True)
class ConsolidatedTrialBalance:
    run_id: UUID
    group_id: UUID
    period_code: str
    as_of_date: date
    reporting_currency: str
    line_items: tuple[ConsolidatedLineItem, ...]
    total_eliminations: Decimal
    total_nci: Decimal
    generated_at: datetime

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (i.consolidated_balance for i in self.line_items
             if i.normal_balance == NormalBalance.DEBIT),
            ZERO,
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (i.consolidated_balance for i in self.line_items
             if i.normal_balance == NormalBalance.CREDIT),
            ZERO,
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def line_item(self, account_number: str) -> ConsolidatedLineItem | None:
        for item in self.line_items:
            if item.account_number == account_number:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "group_id": str(self.group_id),
            "period_code": self.period_code,
            "as_of_date": self.as_of_date.isoformat(),
            "reporting_currency": self.reporting_currency,
            "line_items": [i.to_dict() for i in self.line_items],
            "total_debits": str(self.total_debits),
            "total_credits": str(self.total_credits),
            "total_eliminations": str(self.total_eliminations),
            "total_nci": str(self.total_nci),
            "is_balanced": self.is_balanced,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsolidatedTrialBalance:
        return cls(
            run_id=UUID(data["run_id"]),
            group_id=UUID(data["group_id"]),
            period_code=data["period_code"],
            as_of_date=date.fromisoformat(data["as_of_date"]),
            reporting_currency=data["reporting_currency"],
            line_items=tuple(ConsolidatedLineItem.from_dict(i) for i in data["line_items"]),
            total_eliminations=Decimal(data["total_eliminations"]),
            total_nci=Decimal(data["total_nci"]),
            generated_at=datetime.fromisoformat(data["generated_at"]),
        )


@dataclass(frozen=True)
class ConsolidationRun:
    """Read model of one consolidation run, including every step record."""

    id: UUID
    run_number: int
    group_id: UUID
    period_code: str
    as_of_date: date
    status: RunStatus
    steps: tuple[ConsolidationStep, ...]
    options: ConsolidationOptions
    initiated_by: UUID
    initiated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: int | None = None
    error_message: str | None = None
    validation_result: ValidationResult | None = None
    elimination_entries: tuple[dict[str, Any], ...] = ()
    pending_eliminations: tuple[dict[str, Any], ...] = ()
    consolidated_trial_balance: ConsolidatedTrialBalance | None = None
    cancel_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percent(self) -> int:
        """Share of steps Completed, as a whole percentage. Skipped steps did no work."""
        done = sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)
        return int(done * 100 / len(self.steps)) if self.steps else 0

    @property
    def current_step(self) -> StepType | None:
        for step in self.steps:
            if step.status == StepStatus.IN_PROGRESS:
                return step.step_type
        return None

    def step(self, step_type: StepType) -> ConsolidationStep:
        for s in self.steps:
            if s.step_type == step_type:
                return s
        raise KeyError(step_type)
