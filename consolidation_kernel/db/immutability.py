"""
ORM-level immutability enforcement.

Posted journal entries and completed consolidation runs are audit records:
they may be superseded (reversed, regenerated) but never edited.  This
module registers SQLAlchemy mapper events that fire before an UPDATE or
DELETE reaches the database and raise ImmutabilityViolationError when the
row is protected.

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

PROTECTED ENTITIES

Entity                | When immutable                    | Allowed change
----------------------|-----------------------------------|-----------------------------------
JournalEntry          | status POSTED or REVERSED         | POSTED -> REVERSED with
                      |                                   | reversing_entry_id set, once
JournalLine           | parent entry POSTED or REVERSED   | none
ConsolidationRunModel | status COMPLETED                  | none

updated_at / updated_by_id are audit metadata and may always change.

Usage:
    from consolidation_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() does this
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from consolidation_kernel.exceptions import ImmutabilityViolationError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_LOCKED_ENTRY_STATUSES = frozenset({"posted", "reversed"})


def _previous_value(target, attr_name: str):
    """Value of ``attr_name`` as loaded from the database."""
    hist = get_history(target, attr_name)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, attr_name)


def _status_str(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_journal_entry_update(mapper, connection, target):
    previous = _status_str(_previous_value(target, "status"))
    if previous not in _LOCKED_ENTRY_STATUSES:
        return

    changed = set(_changed_fields(target))
    if not changed:
        return

    is_reversal_link = (
        previous == "posted"
        and _status_str(target.status) == "reversed"
        and changed <= {"status", "reversing_entry_id"}
        and target.reversing_entry_id is not None
    )
    if is_reversal_link:
        return

    raise _blocked(
        "JournalEntry",
        target.id,
        "UPDATE",
        f"Cannot modify {sorted(changed)} on {previous} journal entry",
    )


def _check_journal_entry_delete(mapper, connection, target):
    status = _status_str(_previous_value(target, "status"))
    if status in _LOCKED_ENTRY_STATUSES:
        raise _blocked("JournalEntry", target.id, "DELETE", f"{status} entries cannot be deleted")


def _check_journal_line_change(operation: str):
    def _check(mapper, connection, target):
        entry = target.entry
        if entry is None:
            return
        status = _status_str(_previous_value(entry, "status"))
        if status in _LOCKED_ENTRY_STATUSES:
            raise _blocked(
                "JournalLine",
                target.id,
                operation,
                f"Lines of a {status} journal entry cannot change",
            )

    return _check


_check_journal_line_update = _check_journal_line_change("UPDATE")
_check_journal_line_delete = _check_journal_line_change("DELETE")


def _check_consolidation_run_update(mapper, connection, target):
    previous = _status_str(_previous_value(target, "status"))
    if previous != "completed":
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "ConsolidationRun",
            target.id,
            "UPDATE",
            f"Completed runs are immutable (attempted {sorted(changed)})",
        )


def _check_consolidation_run_delete(mapper, connection, target):
    if _status_str(_previous_value(target, "status")) == "completed":
        raise _blocked("ConsolidationRun", target.id, "DELETE", "Completed runs cannot be deleted")


def _listeners():
    from consolidation_kernel.models.journal import JournalEntry, JournalLine
    from consolidation_services.orm import ConsolidationRunModel

    return (
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (ConsolidationRunModel, "before_update", _check_consolidation_run_update),
        (ConsolidationRunModel, "before_delete", _check_consolidation_run_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
