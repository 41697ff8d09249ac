"""
PeriodService -- fiscal period lifecycle and posting-date validation.

Responsibility:
    Creates and closes each company's fiscal periods and answers the
    posting question "is this date inside an open period?".

Architecture position:
    Kernel > Services.  Called by JournalService / ReversalService at
    posting time and by the consolidation Validate step.

Invariants enforced:
    - A company's periods never overlap.
    - No posting into a CLOSED period.
    - A period cannot close while Draft, PendingApproval or Approved
      entries are dated inside it.
    - Flush-only: never commits.

Failure modes:
    - FiscalPeriodNotFoundError: no period with the code / covering the date.
    - ClosedPeriodError: posting date falls in a closed period.
    - PeriodOverlapError, OpenEntriesInPeriodError,
      InvalidStatusTransitionError (closing a closed period).
    - ValidationError: blank code or inverted date range on create.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.validation import ValidationIssue
from consolidation_kernel.exceptions import (
    ClosedPeriodError,
    FiscalPeriodNotFoundError,
    InvalidStatusTransitionError,
    OpenEntriesInPeriodError,
    PeriodOverlapError,
    ValidationError,
)
from consolidation_kernel.logging_config import get_logger
from consolidation_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from consolidation_kernel.models.journal import JournalEntry, JournalEntryStatus
from consolidation_kernel.services.base import BaseService

logger = get_logger("services.period")

_UNPOSTED_STATUSES = (
    JournalEntryStatus.DRAFT.value,
    JournalEntryStatus.PENDING_APPROVAL.value,
    JournalEntryStatus.APPROVED.value,
)


class PeriodService(BaseService[FiscalPeriod]):
    """Fiscal period lifecycle for one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_period(
        self,
        company_id: UUID,
        period_code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriod:
        """
        Create an OPEN period.

        Raises:
            ValidationError: blank period code or start_date after end_date.
            PeriodOverlapError: date range overlaps an existing period.
        """
        issues = []
        if not period_code.strip():
            issues.append(
                ValidationIssue.error("PERIOD_CODE_BLANK", "Period code must not be blank")
            )
        if start_date > end_date:
            issues.append(
                ValidationIssue.error(
                    "PERIOD_DATES_INVERTED",
                    f"start_date ({start_date}) cannot be after end_date ({end_date})",
                    period_code,
                )
            )
        if issues:
            raise ValidationError(issues)

        overlapping = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise PeriodOverlapError(period_code, overlapping.period_code)

        period = FiscalPeriod(
            company_id=company_id,
            period_code=period_code,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "company_id": str(company_id),
                "period_code": period_code,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return period

    def get_period(self, company_id: UUID, period_code: str) -> FiscalPeriod:
        period = self.find_period(company_id, period_code)
        if period is None:
            raise FiscalPeriodNotFoundError(period_code)
        return period

    def find_period(self, company_id: UUID, period_code: str) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.period_code == period_code,
            )
        ).scalar_one_or_none()

    def period_for_date(self, company_id: UUID, effective_date: date) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.start_date <= effective_date,
                FiscalPeriod.end_date >= effective_date,
            )
        ).scalar_one_or_none()

    def validate_posting_date(self, company_id: UUID, effective_date: date) -> FiscalPeriod:
        """
        Return the open period covering ``effective_date``.

        Raises:
            FiscalPeriodNotFoundError: no period covers the date.
            ClosedPeriodError: the covering period is closed.
        """
        period = self.period_for_date(company_id, effective_date)
        if period is None:
            raise FiscalPeriodNotFoundError(str(effective_date))
        if not period.is_open:
            logger.warning(
                "posting_to_closed_period_rejected",
                extra={
                    "company_id": str(company_id),
                    "period_code": period.period_code,
                    "effective_date": str(effective_date),
                },
            )
            raise ClosedPeriodError(period.period_code, str(effective_date))
        return period

    def close_period(self, company_id: UUID, period_code: str, actor_id: UUID) -> FiscalPeriod:
        """
        Close an OPEN period.

        The period row is locked so two concurrent closes serialize.

        Raises:
            FiscalPeriodNotFoundError, InvalidStatusTransitionError,
            OpenEntriesInPeriodError.
        """
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.period_code == period_code,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise FiscalPeriodNotFoundError(period_code)
        if not period.is_open:
            raise InvalidStatusTransitionError(
                f"period {period_code}", str(period.status), "close"
            )

        open_count = self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.company_id == company_id,
                JournalEntry.entry_date >= period.start_date,
                JournalEntry.entry_date <= period.end_date,
                JournalEntry.status.in_(_UNPOSTED_STATUSES),
            )
        ).scalar_one()
        if open_count:
            raise OpenEntriesInPeriodError(period_code, open_count)

        period.status = PeriodStatus.CLOSED
        period.closed_at = self._clock.now()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"company_id": str(company_id), "period_code": period_code},
        )
        return period
