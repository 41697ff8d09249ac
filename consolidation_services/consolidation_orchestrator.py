"""
ConsolidationRunOrchestrator -- drives the consolidation pipeline.

Responsibility:
    Creates consolidation runs for a (group, fiscal period), claims and
    executes them through the fixed step sequence

        Validate -> Translate -> Aggregate -> MatchIC -> Eliminate -> NCI
        -> GenerateTB

    and persists every step's status, timing and details on the run row
    before moving on.  Step logic lives in a registry of handlers keyed by
    ``StepType``; each handler reads the working ``RunContext`` filled by
    earlier steps, calls the pure engines, and returns the step's details.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  The only
    layer that combines sessions, the clock and the consolidation engines.

Invariants enforced:
    - Steps run sequentially in STEP_ORDER.  If step k fails, steps before
      it stay Completed, step k is Failed, and every later step is Skipped.
      Completed step records are never erased.
    - At most one Pending / InProgress run per (group, period): checked on
      initiate and backed by a partial unique index.
    - A Completed run blocks a new one unless force_regeneration is set.
      Failed and Cancelled runs never block.
    - Cancellation is cooperative: an InProgress run is only flagged, and
      the loop stops at the next step boundary.
    - A Completed run has a balanced consolidated trial balance.
    - Each step runs inside a SAVEPOINT, so a failing step leaves no
      partial writes (e.g. half-written intercompany statuses).

Failure modes:
    - ConsolidationGroupNotFoundError / FiscalPeriodNotFoundError on initiate.
    - ConsolidationRunInProgressError, ConsolidationRunExistsError (ConflictError).
    - RunNotExecutableError, RunNotCancellableError (BusinessRuleError).
    - ConsolidationRunNotFoundError, ConsolidatedTrialBalanceNotFoundError.
    - Step failures never escape execute(): they are recorded on the run.
      Unexpected exceptions are recorded the same way and re-raised.

Transactions:
    With ``auto_commit=True`` (default) the orchestrator commits at every
    step boundary so progress is visible to other sessions.  With
    ``auto_commit=False`` it only flushes and the caller owns the
    transaction.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from consolidation_engines import (
    NCI_ACCOUNT_NAME,
    NCI_CATEGORY,
    AggregatedTrialBalance,
    GenerationResult,
    MatchingConfig,
    MatchingResult,
    NCIResult,
    TranslationResult,
    aggregate_balances,
    calculate_nci,
    eliminable_amounts,
    elimination_amounts,
    generate_eliminations,
    match_transactions,
    required_rates,
    translate_members,
)
from consolidation_kernel.db.types import ZERO
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.consolidation import GroupInfo, MemberInfo
from consolidation_kernel.domain.validation import ValidationIssue, ValidationResult
from consolidation_kernel.exceptions import (
    ConsolidatedTrialBalanceNotFoundError,
    ConsolidationKernelError,
    ConsolidationRunExistsError,
    ConsolidationRunInProgressError,
    ConsolidationRunNotFoundError,
    RunNotCancellableError,
    RunNotExecutableError,
    StepFailedError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_kernel.models.account import AccountType, NormalBalance
from consolidation_kernel.models.consolidation import ConsolidationMethod
from consolidation_kernel.models.exchange_rate import RateType
from consolidation_kernel.models.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
)
from consolidation_kernel.selectors import (
    ConsolidationSelector,
    LedgerSelector,
    RateSelector,
)
from consolidation_kernel.services.period_service import PeriodService
from consolidation_kernel.services.sequence_service import SequenceService
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
    initial_steps,
)
from consolidation_services.orm import ConsolidationRunModel

logger = get_logger("services.consolidation")

RECOVERY_MESSAGE = "Run interrupted before completion"

_ACTIVE_STATUSES = (RunStatus.PENDING.value, RunStatus.IN_PROGRESS.value)
_OFF_BALANCE_METHODS = (ConsolidationMethod.EQUITY_METHOD, ConsolidationMethod.COST_METHOD)


@dataclass
class RunContext:
    """Working state handed from step to step within one execute() call."""

    run_id: UUID
    actor_id: UUID
    group: GroupInfo
    period_code: str
    as_of_date: date
    period_start: date
    period_end: date
    options: ConsolidationOptions
    started_at: datetime
    issues: list[ValidationIssue] = field(default_factory=list)
    translation: TranslationResult | None = None
    trial_balance: AggregatedTrialBalance | None = None
    matching: MatchingResult | None = None
    ic_amounts: dict[IntercompanyTransactionType, Decimal] = field(default_factory=dict)
    eliminations: GenerationResult | None = None
    nci: NCIResult | None = None
    consolidated: ConsolidatedTrialBalance | None = None

    @property
    def consolidated_members(self) -> tuple[MemberInfo, ...]:
        """Members rolled up line by line."""
        return tuple(m for m in self.group.members if m.is_line_by_line)

    def elapsed_ms(self, now: datetime) -> int:
        return int((now - self.started_at).total_seconds() * 1000)


StepHandler = Callable[[RunContext], dict[str, Any]]


def _require(value, what: str, step_type: StepType):
    if value is None:
        raise StepFailedError(step_type.value, f"{what} is not available")
    return value


def _summarize(errors: list[ValidationIssue]) -> str:
    first = errors[0].message
    if len(errors) == 1:
        return first
    return f"{len(errors)} errors; first: {first}"


class ConsolidationRunOrchestrator:
    """
    Consolidation run lifecycle for one session.

    Usage:
        orchestrator = ConsolidationRunOrchestrator(session, clock)
        run = orchestrator.initiate(group_id, "2026-03", actor_id=user_id)
        run = orchestrator.execute(run.id)
        ctb = orchestrator.get_consolidated_trial_balance(run.id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        matching: MatchingConfig | None = None,
        step_handlers: Mapping[StepType, StepHandler] | None = None,
        auto_commit: bool = True,
        default_options: ConsolidationOptions | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._matching = matching or MatchingConfig()
        self._default_options = default_options or ConsolidationOptions()
        self._auto_commit = auto_commit
        self._consolidation = ConsolidationSelector(session)
        self._ledger = LedgerSelector(session)
        self._rates = RateSelector(session)
        self._periods = PeriodService(session, self._clock)
        self._sequences = SequenceService(session)

        self._handlers: dict[StepType, StepHandler] = {
            StepType.VALIDATE: self._validate,
            StepType.TRANSLATE: self._translate,
            StepType.AGGREGATE: self._aggregate,
            StepType.MATCH_IC: self._match_intercompany,
            StepType.ELIMINATE: self._eliminate,
            StepType.NCI: self._calculate_nci,
            StepType.GENERATE_TB: self._generate_trial_balance,
        }
        if step_handlers:
            self._handlers.update(step_handlers)

    @classmethod
    def from_settings(cls, session: Session, settings, clock: Clock | None = None):
        """Build an orchestrator using the tolerances and default options in ``settings``."""
        return cls(
            session,
            clock=clock,
            matching=settings.matching,
            default_options=settings.default_options,
        )

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()
        else:
            self._session.flush()

    def _load(self, run_id: UUID, lock: bool = False) -> ConsolidationRunModel:
        stmt = select(ConsolidationRunModel).where(ConsolidationRunModel.id == run_id)
        if lock:
            stmt = stmt.with_for_update()
        model = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise ConsolidationRunNotFoundError(str(run_id))
        return model

    def _runs(self, group_id: UUID, period_code: str | None, statuses: tuple[str, ...]):
        stmt = select(ConsolidationRunModel).where(
            ConsolidationRunModel.group_id == group_id,
            ConsolidationRunModel.status.in_(statuses),
        )
        if period_code is not None:
            stmt = stmt.where(ConsolidationRunModel.period_code == period_code)
        return stmt.order_by(ConsolidationRunModel.run_number.desc())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, run_id: UUID) -> ConsolidationRun:
        return self._load(run_id).to_dto()

    def get_consolidated_trial_balance(self, run_id: UUID) -> ConsolidatedTrialBalance:
        run = self.get(run_id)
        if run.status != RunStatus.COMPLETED or run.consolidated_trial_balance is None:
            raise ConsolidatedTrialBalanceNotFoundError(str(run_id), run.status.value)
        return run.consolidated_trial_balance

    def get_latest_completed_run(
        self, group_id: UUID, period_code: str | None = None
    ) -> ConsolidationRun | None:
        model = self._session.execute(
            self._runs(group_id, period_code, (RunStatus.COMPLETED.value,)).limit(1)
        ).scalars().first()
        return model.to_dto() if model is not None else None

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate(
        self,
        group_id: UUID,
        period_code: str,
        as_of_date: date | None = None,
        options: ConsolidationOptions | None = None,
        *,
        actor_id: UUID,
    ) -> ConsolidationRun:
        """
        Create a Pending run for (group, period).

        ``as_of_date`` defaults to the end of the parent company's period.

        Raises:
            ConsolidationGroupNotFoundError, FiscalPeriodNotFoundError.
            ConsolidationRunInProgressError: a Pending / InProgress run exists.
            ConsolidationRunExistsError: a Completed run exists and
                force_regeneration is not set.
        """
        options = options or self._default_options
        with LogContext.bind(group_id=group_id, actor_id=actor_id):
            group = self._consolidation.group(group_id)
            period = self._periods.get_period(group.parent_company_id, period_code)
            as_of = as_of_date or period.end_date

            active = self._session.execute(
                self._runs(group_id, period_code, _ACTIVE_STATUSES).limit(1)
            ).scalars().first()
            if active is not None:
                raise ConsolidationRunInProgressError(str(group_id), period_code, str(active.id))

            if not options.force_regeneration:
                completed = self.get_latest_completed_run(group_id, period_code)
                if completed is not None:
                    raise ConsolidationRunExistsError(
                        str(group_id), period_code, str(completed.id)
                    )

            try:
                with self._session.begin_nested():
                    model = ConsolidationRunModel(
                        run_number=self._sequences.next_value(SequenceService.CONSOLIDATION_RUN),
                        group_id=group_id,
                        period_code=period_code,
                        as_of_date=as_of,
                        status=RunStatus.PENDING.value,
                        options=options.to_dict(),
                        steps=[s.to_dict() for s in initial_steps()],
                        initiated_by=actor_id,
                        initiated_at=self._clock.now(),
                        elimination_entries=[],
                        pending_eliminations=[],
                        created_by_id=actor_id,
                    )
                    self._session.add(model)
                    self._session.flush()
            except IntegrityError:
                raise ConsolidationRunInProgressError(str(group_id), period_code, None) from None

            run = model.to_dto()
            self._commit()

            logger.info(
                "consolidation_run_initiated",
                extra={
                    "run_id": str(run.id),
                    "run_number": run.run_number,
                    "period_code": period_code,
                    "as_of_date": str(as_of),
                    "options": options.to_dict(),
                },
            )
            return run

    def run(
        self,
        group_id: UUID,
        period_code: str,
        as_of_date: date | None = None,
        options: ConsolidationOptions | None = None,
        *,
        actor_id: UUID,
    ) -> ConsolidationRun:
        """initiate() followed by execute()."""
        run = self.initiate(group_id, period_code, as_of_date, options, actor_id=actor_id)
        return self.execute(run.id, actor_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, run_id: UUID, actor_id: UUID | None = None) -> ConsolidationRun:
        """Claim a Pending run and drive it to a terminal status."""
        with LogContext.bind(run_id=run_id, actor_id=actor_id):
            model = self._load(run_id, lock=True)
            status = RunStatus(model.status)
            if status != RunStatus.PENDING:
                raise RunNotExecutableError(str(run_id), status.value)

            group = self._consolidation.group(model.group_id)
            period = self._periods.get_period(group.parent_company_id, model.period_code)
            started = self._clock.now()
            ctx = RunContext(
                run_id=run_id,
                actor_id=actor_id or model.initiated_by,
                group=group,
                period_code=model.period_code,
                as_of_date=model.as_of_date,
                period_start=period.start_date,
                period_end=period.end_date,
                options=ConsolidationOptions.from_dict(model.options),
                started_at=started,
            )

            model.status = RunStatus.IN_PROGRESS.value
            model.started_at = started
            model.updated_by_id = ctx.actor_id
            self._commit()

            with LogContext.bind(group_id=group.group_id):
                logger.info(
                    "consolidation_run_started",
                    extra={"period_code": ctx.period_code, "member_count": len(group.members)},
                )

                for step_type in STEP_ORDER:
                    if self._load(run_id).cancel_requested:
                        return self._finish_cancelled(ctx, step_type)
                    if not self._run_step(ctx, step_type):
                        return self.get(run_id)

                return self._finish_completed(ctx)

    def _run_step(self, ctx: RunContext, step_type: StepType) -> bool:
        model = self._load(ctx.run_id)
        step = model.step_records()[STEP_ORDER.index(step_type)].started(self._clock.now())
        model.replace_step(step)
        self._commit()

        try:
            with self._session.begin_nested():
                details = self._handlers[step_type](ctx) or {}
                self._session.flush()
        except StepFailedError as exc:
            self._finish_failed(ctx, step, exc.step_message)
            return False
        except ConsolidationKernelError as exc:
            self._finish_failed(ctx, step, str(exc))
            return False
        except Exception as exc:
            self._finish_failed(ctx, step, f"{type(exc).__name__}: {exc}")
            raise

        finished = step.finished(self._clock.now(), StepStatus.COMPLETED, details=details)
        model = self._load(ctx.run_id)
        model.replace_step(finished)
        model.validation_result = ValidationResult.of(ctx.issues).to_dict()
        if ctx.eliminations is not None:
            model.elimination_entries = [e.to_dict() for e in ctx.eliminations.entries]
            model.pending_eliminations = [e.to_dict() for e in ctx.eliminations.pending]
        self._commit()

        logger.info(
            "consolidation_step_completed",
            extra={
                "step_type": step_type.value,
                "step_name": step_type.display_name,
                "duration_ms": finished.duration_ms,
            },
        )
        return True

    def _finish_failed(self, ctx: RunContext, step: ConsolidationStep, message: str) -> None:
        now = self._clock.now()
        failed = step.finished(now, StepStatus.FAILED, error_message=message)

        model = self._load(ctx.run_id)
        steps = []
        for s in model.step_records():
            if s.step_type == step.step_type:
                steps.append(failed)
            elif s.status == StepStatus.PENDING:
                steps.append(s.skipped())
            else:
                steps.append(s)
        model.store_steps(steps)
        model.status = RunStatus.FAILED.value
        model.error_message = f"{step.step_type.display_name}: {message}"
        model.completed_at = now
        model.total_duration_ms = ctx.elapsed_ms(now)
        model.validation_result = ValidationResult.of(ctx.issues).to_dict()
        model.updated_by_id = ctx.actor_id
        self._commit()

        logger.error(
            "consolidation_step_failed",
            extra={
                "step_type": step.step_type.value,
                "step_name": step.step_type.display_name,
                "error_message": message,
                "duration_ms": failed.duration_ms,
            },
        )
        logger.warning(
            "consolidation_run_failed",
            extra={"failed_step": step.step_type.value, "error_message": message},
        )

    def _finish_cancelled(self, ctx: RunContext, next_step: StepType) -> ConsolidationRun:
        now = self._clock.now()
        model = self._load(ctx.run_id)
        model.store_steps(
            s.skipped() if s.status == StepStatus.PENDING else s for s in model.step_records()
        )
        model.status = RunStatus.CANCELLED.value
        model.error_message = f"Cancelled before {next_step.display_name}"
        model.completed_at = now
        model.total_duration_ms = ctx.elapsed_ms(now)
        model.updated_by_id = ctx.actor_id
        run = model.to_dto()
        self._commit()

        logger.info("consolidation_run_cancelled", extra={"next_step": next_step.value})
        return run

    def _finish_completed(self, ctx: RunContext) -> ConsolidationRun:
        consolidated = _require(ctx.consolidated, "consolidated trial balance", StepType.GENERATE_TB)
        now = self._clock.now()
        model = self._load(ctx.run_id)
        model.status = RunStatus.COMPLETED.value
        model.completed_at = now
        model.total_duration_ms = ctx.elapsed_ms(now)
        model.consolidated_trial_balance = consolidated.to_dict()
        model.updated_by_id = ctx.actor_id
        run = model.to_dto()
        self._commit()

        logger.info(
            "consolidation_run_completed",
            extra={
                "total_duration_ms": run.total_duration_ms,
                "line_count": len(consolidated.line_items),
                "total_debits": consolidated.total_debits,
                "total_credits": consolidated.total_credits,
                "total_eliminations": consolidated.total_eliminations,
                "total_nci": consolidated.total_nci,
            },
        )
        return run

    # ------------------------------------------------------------------
    # Cancellation and recovery
    # ------------------------------------------------------------------

    def cancel(self, run_id: UUID, actor_id: UUID) -> ConsolidationRun:
        """
        Cancel a Pending run now, or flag an InProgress run so it stops at
        the next step boundary.

        Raises:
            RunNotCancellableError: the run is already terminal.
        """
        with LogContext.bind(run_id=run_id, actor_id=actor_id):
            model = self._load(run_id, lock=True)
            status = RunStatus(model.status)
            if status.is_terminal:
                raise RunNotCancellableError(str(run_id), status.value)

            if status == RunStatus.PENDING:
                model.status = RunStatus.CANCELLED.value
                model.completed_at = self._clock.now()
                model.error_message = "Cancelled before execution"
                model.store_steps(s.skipped() for s in model.step_records())
                event = "consolidation_run_cancelled"
            else:
                model.cancel_requested = True
                event = "consolidation_run_cancel_requested"
            model.updated_by_id = actor_id
            run = model.to_dto()
            self._commit()

            logger.info(event, extra={"previous_status": status.value})
            return run

    request_cancel = cancel

    def recover_stale_runs(
        self, older_than: timedelta, actor_id: UUID
    ) -> list[ConsolidationRun]:
        """
        Mark InProgress runs started before now - ``older_than`` as Failed.

        The interrupted step is marked Failed, steps not yet started are
        Skipped, and completed step records are kept.  Runs are never
        resumed; a new run can be initiated for the same period.
        """
        now = self._clock.now()
        cutoff = now - older_than
        stale = self._session.execute(
            select(ConsolidationRunModel)
            .where(
                ConsolidationRunModel.status == RunStatus.IN_PROGRESS.value,
                ConsolidationRunModel.started_at < cutoff,
            )
            .order_by(ConsolidationRunModel.run_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        recovered = []
        for model in stale:
            steps = []
            for s in model.step_records():
                if s.status == StepStatus.IN_PROGRESS:
                    s = s.finished(now, StepStatus.FAILED, error_message=RECOVERY_MESSAGE)
                elif s.status == StepStatus.PENDING:
                    s = s.skipped()
                steps.append(s)
            model.store_steps(steps)
            model.status = RunStatus.FAILED.value
            model.error_message = RECOVERY_MESSAGE
            model.completed_at = now
            model.updated_by_id = actor_id
            recovered.append(model.to_dto())
            logger.warning(
                "consolidation_run_recovered",
                extra={
                    "run_id": str(model.id),
                    "group_id": str(model.group_id),
                    "period_code": model.period_code,
                },
            )
        self._commit()
        return recovered

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    def _gate(
        self,
        ctx: RunContext,
        step_type: StepType,
        issues,
        *,
        skippable: bool = True,
    ) -> list[ValidationIssue]:
        """
        Record ``issues`` on the run and fail the step on errors.

        Warnings count as errors when continue_on_warnings is off.  With
        skip_validation, errors of a skippable step are recorded and the
        run continues on degraded data.
        """
        issues = list(issues)
        if not ctx.options.continue_on_warnings:
            issues = [i.escalated() for i in issues]
        ctx.issues.extend(issues)
        errors = [i for i in issues if i.is_error]
        if errors and not (skippable and ctx.options.skip_validation):
            raise StepFailedError(step_type.value, _summarize(errors), errors)
        return issues

    def _validate(self, ctx: RunContext) -> dict[str, Any]:
        group = ctx.group
        issues: list[ValidationIssue] = []
        if not group.is_active:
            issues.append(
                ValidationIssue.error(
                    "GROUP_INACTIVE", f"Consolidation group {group.code} is inactive"
                )
            )
        if not group.members:
            issues.append(
                ValidationIssue.error("NO_MEMBERS", f"Consolidation group {group.code} has no members")
            )

        for member in group.members:
            ref = str(member.company_id)
            if member.consolidation_method in _OFF_BALANCE_METHODS:
                message = (
                    f"{member.company_code} is accounted for under "
                    f"{member.consolidation_method.value} and is excluded from "
                    "line-by-line aggregation"
                )
                if ctx.options.include_equity_method_investments:
                    issues.append(ValidationIssue.warning("EQUITY_METHOD_MEMBER", message, ref))
                else:
                    issues.append(ValidationIssue.error("EQUITY_METHOD_MEMBER", message, ref))
                continue
            if not member.is_line_by_line:
                issues.append(
                    ValidationIssue.warning(
                        "VIE_EXCLUDED",
                        f"{member.company_code} is a variable interest entity without "
                        "primary beneficiary control and is excluded",
                        ref,
                    )
                )
                continue

            period = self._periods.find_period(member.company_id, ctx.period_code)
            if period is None:
                issues.append(
                    ValidationIssue.error(
                        "MEMBER_PERIOD_NOT_FOUND",
                        f"{member.company_code} has no fiscal period {ctx.period_code}",
                        ref,
                    )
                )
            elif period.is_open:
                issues.append(
                    ValidationIssue.warning(
                        "PERIOD_NOT_CLOSED",
                        f"{member.company_code} period {ctx.period_code} is still open",
                        ref,
                    )
                )

            debits, credits = self._ledger.total_debits_credits(member.company_id, ctx.as_of_date)
            if debits != credits:
                issues.append(
                    ValidationIssue.error(
                        "MEMBER_TB_NOT_BALANCED",
                        f"{member.company_code} trial balance is out of balance: "
                        f"debits {debits} != credits {credits}",
                        ref,
                    )
                )

        recorded = self._gate(ctx, StepType.VALIDATE, issues)
        return ValidationResult.of(recorded).to_dict()

    def _translate(self, ctx: RunContext) -> dict[str, Any]:
        members = ctx.consolidated_members
        reporting = ctx.group.reporting_currency

        rates = {
            (currency, rate_type): self._rates.rate(currency, reporting, ctx.as_of_date, rate_type)
            for currency, rate_type in required_rates(members, reporting)
        }
        balances = {
            m.company_id: self._ledger.posted_balances(
                m.company_id, ctx.as_of_date, include_inactive=True
            )
            for m in members
        }

        result = translate_members(
            members=members,
            balances_by_company=balances,
            reporting_currency=reporting,
            rates=rates,
            as_of=ctx.as_of_date,
        )
        self._gate(ctx, StepType.TRANSLATE, result.issues, skippable=False)
        ctx.translation = result
        return {
            "reporting_currency": reporting,
            "members": [t.to_dict() for t in result.members],
        }

    def _aggregate(self, ctx: RunContext) -> dict[str, Any]:
        translation = _require(ctx.translation, "translation result", StepType.AGGREGATE)
        trial_balance = aggregate_balances(
            translations=translation.members,
            cta_account_number=ctx.group.cta_account_number,
        )
        self._gate(ctx, StepType.AGGREGATE, trial_balance.issues)
        ctx.trial_balance = trial_balance
        return trial_balance.to_dict()

    def _match_intercompany(self, ctx: RunContext) -> dict[str, Any]:
        records = self._consolidation.ic_transactions(
            ctx.group.group_id, ctx.period_start, ctx.period_end
        )
        result = match_transactions(records=records, config=self._matching)

        for update in result.status_updates():
            tx = self._session.get(IntercompanyTransaction, update.transaction_id)
            tx.matching_status = update.matching_status.value
            tx.variance_amount = update.variance_amount
            tx.updated_by_id = ctx.actor_id

        reporting = ctx.group.reporting_currency
        currencies = sorted({p.from_record.currency for p in result.eliminable_pairs()} - {reporting})
        rates = {
            c: self._rates.rate(c, reporting, ctx.as_of_date, RateType.CLOSING) for c in currencies
        }
        amounts, rate_issues = eliminable_amounts(result, reporting, rates)

        self._gate(ctx, StepType.MATCH_IC, list(result.issues) + rate_issues)
        ctx.matching = result
        ctx.ic_amounts = amounts

        details = result.to_dict()
        details["eliminable_amounts"] = {t.value: str(a) for t, a in sorted(amounts.items())}
        return details

    def _eliminate(self, ctx: RunContext) -> dict[str, Any]:
        trial_balance = _require(ctx.trial_balance, "aggregated trial balance", StepType.ELIMINATE)
        rules = self._consolidation.active_rules(ctx.group.group_id)
        result = generate_eliminations(
            rules=rules,
            trial_balance=trial_balance,
            ic_amounts=ctx.ic_amounts or None,
        )
        self._gate(ctx, StepType.ELIMINATE, result.issues)
        ctx.eliminations = result
        return result.to_dict()

    def _calculate_nci(self, ctx: RunContext) -> dict[str, Any]:
        trial_balance = _require(ctx.trial_balance, "aggregated trial balance", StepType.NCI)
        result = calculate_nci(
            trial_balance=trial_balance,
            members=ctx.consolidated_members,
            nci_account_number=ctx.group.nci_account_number,
        )
        ctx.nci = result
        return result.to_dict()

    def _generate_trial_balance(self, ctx: RunContext) -> dict[str, Any]:
        step = StepType.GENERATE_TB
        trial_balance = _require(ctx.trial_balance, "aggregated trial balance", step)
        eliminations = _require(ctx.eliminations, "elimination result", step)
        nci = _require(ctx.nci, "NCI result", step)

        normals = {line.account_number: line.normal_balance for line in trial_balance.lines}
        elimination = elimination_amounts(eliminations.entries, normals)

        items = []
        for line in trial_balance.lines:
            eliminated = elimination.get(line.account_number, ZERO)
            minority = nci.line_amounts.get(line.account_number, ZERO)
            items.append(
                ConsolidatedLineItem(
                    account_number=line.account_number,
                    account_name=line.account_name,
                    account_type=line.account_type,
                    category=line.category,
                    normal_balance=line.normal_balance,
                    aggregated_balance=line.balance,
                    elimination_amount=eliminated,
                    nci_amount=minority,
                    consolidated_balance=line.balance - eliminated - minority,
                )
            )

        nci_number = ctx.group.nci_account_number
        nci_total = nci.line_amounts.get(nci_number, ZERO)
        if nci_total != ZERO and trial_balance.line(nci_number) is None:
            items.append(
                ConsolidatedLineItem(
                    account_number=nci_number,
                    account_name=NCI_ACCOUNT_NAME,
                    account_type=AccountType.EQUITY,
                    category=NCI_CATEGORY,
                    normal_balance=NormalBalance.CREDIT,
                    aggregated_balance=ZERO,
                    elimination_amount=ZERO,
                    nci_amount=nci_total,
                    consolidated_balance=-nci_total,
                )
            )
        items.sort(key=lambda i: i.account_number)

        consolidated = ConsolidatedTrialBalance(
            run_id=ctx.run_id,
            group_id=ctx.group.group_id,
            period_code=ctx.period_code,
            as_of_date=ctx.as_of_date,
            reporting_currency=ctx.group.reporting_currency,
            line_items=tuple(items),
            total_eliminations=eliminations.total_eliminations,
            total_nci=nci.total_nci,
            generated_at=self._clock.now(),
        )
        if not consolidated.is_balanced:
            issue = ValidationIssue.error(
                "CONSOLIDATED_TB_NOT_BALANCED",
                f"Consolidated trial balance is out of balance: debits "
                f"{consolidated.total_debits} != credits {consolidated.total_credits}",
            )
            ctx.issues.append(issue)
            raise StepFailedError(step.value, issue.message, [issue])

        ctx.consolidated = consolidated
        return {
            "line_count": len(items),
            "total_debits": str(consolidated.total_debits),
            "total_credits": str(consolidated.total_credits),
            "total_eliminations": str(consolidated.total_eliminations),
            "total_nci": str(consolidated.total_nci),
            "is_balanced": consolidated.is_balanced,
        }
