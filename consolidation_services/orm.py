"""
SQLAlchemy ORM persistence for consolidation runs.

Responsibility
--------------
``ConsolidationRunModel`` is the single row written per consolidation
attempt.  It embeds the ordered step records, the run options, the
validation issues collected along the way, the generated (and pending)
elimination entries and, once Completed, the consolidated trial balance
snapshot.

Architecture position
---------------------
**Services layer** -- ORM model consumed by
``ConsolidationRunOrchestrator``.  Inherits from ``TrackedBase`` (kernel db
layer).

Invariants enforced
-------------------
* ``run_number`` is unique and comes from the ``consolidation_run``
  sequence.
* At most one Pending / InProgress run per (group_id, period_code): a
  partial unique index backs the orchestrator's conflict check, so two
  concurrent initiations cannot both succeed.
* JSON columns are always assigned a fresh list / dict; in-place mutation
  would not be detected by the unit of work.
* A Completed run is immutable (see ``consolidation_kernel.db.immutability``).
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase, UUIDString

_ACTIVE_RUN_PREDICATE = text("status IN ('pending', 'in_progress')")


class ConsolidationRunModel(TrackedBase):
    """
    Auditable record of one consolidation run.

    Maps to the ``ConsolidationRun`` DTO in
    ``consolidation_services._consolidation_types``.
    """

    __tablename__ = "consolidation_runs"

    __table_args__ = (
        UniqueConstraint("run_number", name="uq_consolidation_run_number"),
        Index(
            "uq_consolidation_run_active",
            "group_id",
            "period_code",
            unique=True,
            sqlite_where=_ACTIVE_RUN_PREDICATE,
            postgresql_where=_ACTIVE_RUN_PREDICATE,
        ),
        Index("idx_consolidation_run_group_period", "group_id", "period_code", "status"),
        Index("idx_consolidation_run_started_at", "status", "started_at"),
    )

    run_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    group_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("consolidation_groups.id"), nullable=False
    )
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)
    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    options: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    initiated_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    validation_result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    elimination_entries: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    pending_eliminations: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    consolidated_trial_balance: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def step_records(self):
        from consolidation_services._consolidation_types import ConsolidationStep

        return tuple(ConsolidationStep.from_dict(s) for s in self.steps)

    def store_steps(self, steps) -> None:
        self.steps = [s.to_dict() for s in steps]

    def replace_step(self, step) -> None:
        """Store ``step`` in place of the record with the same step type."""
        self.store_steps(
            step if s.step_type == step.step_type else s for s in self.step_records()
        )

    def to_dto(self):
        from consolidation_kernel.domain.validation import ValidationResult
        from consolidation_services._consolidation_types import (
            ConsolidatedTrialBalance,
            ConsolidationOptions,
            ConsolidationRun,
            RunStatus,
        )

        return ConsolidationRun(
            id=self.id,
            run_number=self.run_number,
            group_id=self.group_id,
            period_code=self.period_code,
            as_of_date=self.as_of_date,
            status=RunStatus(self.status),
            steps=self.step_records(),
            options=ConsolidationOptions.from_dict(self.options),
            initiated_by=self.initiated_by,
            initiated_at=self.initiated_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            total_duration_ms=self.total_duration_ms,
            error_message=self.error_message,
            validation_result=(
                None if self.validation_result is None
                else ValidationResult.from_dict(self.validation_result)
            ),
            elimination_entries=tuple(self.elimination_entries or ()),
            pending_eliminations=tuple(self.pending_eliminations or ()),
            consolidated_trial_balance=(
                None if self.consolidated_trial_balance is None
                else ConsolidatedTrialBalance.from_dict(self.consolidated_trial_balance)
            ),
            cancel_requested=self.cancel_requested,
        )

    def __repr__(self) -> str:
        return (
            f"<ConsolidationRunModel #{self.run_number} {self.period_code} "
            f"[{self.status}]>"
        )
