"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers per named sequence.  Journal
    entries use one sequence per company (``journal_entry:<company_id>``);
    consolidation runs use ``consolidation_run``.

Architecture position:
    Kernel > Services.  Called by JournalService at posting time and by the
    consolidation orchestrator when a run is initiated.

Invariants enforced:
    - The locked counter row is the only source of the next value.
      Aggregate MAX(entry_number) + 1 is never used: two concurrent posts
      would both read the same maximum.
    - SELECT ... FOR UPDATE serializes allocations for one sequence on
      PostgreSQL.  On SQLite the database write lock taken by the UPDATE
      serializes them instead.
    - The increment is part of the caller's transaction.  If the caller
      rolls back (including a SAVEPOINT rollback), the number is returned
      to the pool, so numbers are never reused and never skipped.

Failure modes:
    - IntegrityError on a concurrent first-use insert of the same counter is
      absorbed by a savepoint rollback and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from consolidation_kernel.db.base import Base
from consolidation_kernel.exceptions import SequenceConflictError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named sequence and its last allocated value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Transactional sequence numbers.

    Usage:
        number = SequenceService(session).next_value(
            SequenceService.journal_entry_sequence(company_id)
        )
    """

    CONSOLIDATION_RUN = "consolidation_run"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def journal_entry_sequence(company_id) -> str:
        return f"journal_entry:{company_id}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it, and return the new
        value.  The value is consumed only if the caller's transaction
        commits.

        Returns:
            An integer > 0, strictly greater than any value previously
            committed for ``sequence_name``.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise SequenceConflictError(sequence_name) from None

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
