"""
Typed Exception Hierarchy for the Consolidation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the API layer, the run orchestrator, tests) must react to failures
by TYPE and by machine-readable CODE, never by parsing message strings.
Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Has a class-level ``code`` attribute (machine-readable, API-safe)
  3. Carries structured data as attributes (not just a message string)

Example:
    try:
        orchestrator.initiate(group_id, "2026-03", as_of, options, actor_id)
    except ConsolidationRunInProgressError as e:
        return {"error": e.code, "existing_run_id": e.existing_run_id}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConsolidationKernelError (base)
    |
    +-- ValidationError                 (carries ValidationIssue list)
    |
    +-- BusinessRuleError
    |   +-- InvalidEntryError
    |   +-- UnbalancedEntryError
    |   +-- InvalidStatusTransitionError
    |   +-- EntryNotEditableError
    |   +-- ClosedPeriodError
    |   +-- PeriodOverlapError
    |   +-- OpenEntriesInPeriodError
    |   +-- AccountNotFoundError
    |   +-- InactiveAccountError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyReversedError
    |   +-- MissingExchangeRateError
    |   +-- RunNotCancellableError
    |   +-- RunNotExecutableError
    |
    +-- ConflictError
    |   +-- ConsolidationRunInProgressError
    |   +-- ConsolidationRunExistsError
    |   +-- SequenceConflictError
    |
    +-- NotFoundError
    |   +-- JournalEntryNotFoundError
    |   +-- CompanyNotFoundError
    |   +-- ConsolidationGroupNotFoundError
    |   +-- FiscalPeriodNotFoundError
    |   +-- ConsolidationRunNotFoundError
    |   +-- ConsolidatedTrialBalanceNotFoundError
    |
    +-- StepFailedError                 (raised inside a pipeline step)
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                           | When Raised
----------------|--------------------------------|-----------------------------------
Validation      | VALIDATION_FAILED              | One or more Error-severity issues
----------------|--------------------------------|-----------------------------------
Business rule   | INVALID_ENTRY                  | < 2 lines, bad debit/credit shape
                | UNBALANCED_ENTRY               | Functional debits != credits
                | INVALID_STATUS_TRANSITION      | e.g. post a Draft entry
                | ENTRY_NOT_EDITABLE             | Edit/delete outside Draft
                | CLOSED_PERIOD                  | Posting into a closed period
                | PERIOD_OVERLAP                 | Period dates overlap another
                | OPEN_ENTRIES_IN_PERIOD         | Closing a period with open drafts
                | ACCOUNT_NOT_FOUND              | Line references unknown account
                | ACCOUNT_INACTIVE               | Line references inactive account
                | ENTRY_NOT_POSTED               | Reversing a non-posted entry
                | ENTRY_ALREADY_REVERSED         | Entry was already reversed
                | EXCHANGE_RATE_NOT_FOUND        | No rate for pair/date/type
                | RUN_NOT_CANCELLABLE            | Cancel of a terminal run
                | RUN_NOT_EXECUTABLE             | Execute of a non-Pending run
----------------|--------------------------------|-----------------------------------
Conflict        | CONSOLIDATION_RUN_IN_PROGRESS  | Pending/InProgress run exists
                | CONSOLIDATION_RUN_EXISTS       | Completed run exists, no force
                | SEQUENCE_CONFLICT              | Counter allocation collided
----------------|--------------------------------|-----------------------------------
Not found       | JOURNAL_ENTRY_NOT_FOUND        |
                | COMPANY_NOT_FOUND              |
                | CONSOLIDATION_GROUP_NOT_FOUND  |
                | FISCAL_PERIOD_NOT_FOUND        |
                | CONSOLIDATION_RUN_NOT_FOUND    |
                | CONSOLIDATED_TB_NOT_FOUND      | Run has no trial balance yet
----------------|--------------------------------|-----------------------------------
Pipeline        | STEP_FAILED                    | A run step could not complete
Immutability    | IMMUTABILITY_VIOLATION         | Posted entry / completed run edit

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError, so they can be
   caught as a group without swallowing programming errors.

2. ``code`` is a class attribute: static per type, readable without an
   instance, and stable for API documentation.

3. Categories (BusinessRule / Conflict / NotFound) map one-to-one onto the
   API layer's response classes (422 / 409 / 404).
===============================================================================
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class ConsolidationKernelError(Exception):
    """
    Base exception for all consolidation kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "CONSOLIDATION_KERNEL_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(ConsolidationKernelError):
    """
    Structural problems found while validating input data.

    ``issues`` is a tuple of ``ValidationIssue`` (severity, code, message,
    entity_reference).
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, issues: Sequence[Any], message: str | None = None):
        self.issues = tuple(issues)
        super().__init__(
            message or f"Validation failed with {len(self.issues)} issue(s)"
        )


# =============================================================================
# Business rules
# =============================================================================


class BusinessRuleError(ConsolidationKernelError):
    """Base exception for rejected business operations."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InvalidEntryError(BusinessRuleError):
    """Journal entry is structurally invalid (line count, line shape)."""

    code: str = "INVALID_ENTRY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid journal entry: {reason}")


class UnbalancedEntryError(BusinessRuleError):
    """Functional-currency debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}"
        )


class InvalidStatusTransitionError(BusinessRuleError):
    """Requested lifecycle transition is not allowed from current status."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_id: str, current_status: str, action: str):
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_id}: status is {current_status}"
        )


class EntryNotEditableError(BusinessRuleError):
    """Only Draft entries may be edited or deleted."""

    code: str = "ENTRY_NOT_EDITABLE"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Journal entry {journal_entry_id} is {status}; only Draft entries "
            f"can be edited or deleted"
        )


class ClosedPeriodError(BusinessRuleError):
    """Attempt to post into a closed fiscal period."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_code: str, effective_date: str):
        self.period_code = period_code
        self.effective_date = effective_date
        super().__init__(
            f"Cannot post to closed period {period_code} (date: {effective_date})"
        )


class PeriodOverlapError(BusinessRuleError):
    """New period overlaps an existing period of the same company."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_period_code: str, existing_period_code: str):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        super().__init__(
            f"Period {new_period_code} overlaps existing period {existing_period_code}"
        )


class OpenEntriesInPeriodError(BusinessRuleError):
    """Period cannot close while unposted entries fall inside it."""

    code: str = "OPEN_ENTRIES_IN_PERIOD"

    def __init__(self, period_code: str, open_count: int):
        self.period_code = period_code
        self.open_count = open_count
        super().__init__(
            f"Cannot close period {period_code}: {open_count} unposted entries"
        )


class AccountNotFoundError(BusinessRuleError):
    """Journal line references an account that does not exist for the company."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class InactiveAccountError(BusinessRuleError):
    """Journal line references a deactivated account."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is inactive: {account_id}")


class EntryNotPostedError(BusinessRuleError):
    """Only posted entries can be reversed."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Cannot reverse journal entry {journal_entry_id}: "
            f"status is {status}, must be Posted"
        )


class EntryAlreadyReversedError(BusinessRuleError):
    """Entry already carries a reversing entry."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, journal_entry_id: str, reversing_entry_id: str):
        self.journal_entry_id = journal_entry_id
        self.reversing_entry_id = reversing_entry_id
        super().__init__(
            f"Journal entry {journal_entry_id} already reversed by "
            f"{reversing_entry_id}"
        )


class MissingExchangeRateError(BusinessRuleError):
    """No exchange rate exists for the currency pair at the requested date."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str, as_of: str, rate_type: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        self.rate_type = rate_type
        super().__init__(
            f"No {rate_type} rate {from_currency}->{to_currency} on or before {as_of}"
        )


class RunNotCancellableError(BusinessRuleError):
    """Run is already terminal."""

    code: str = "RUN_NOT_CANCELLABLE"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Consolidation run {run_id} cannot be cancelled: {status}")


class RunNotExecutableError(BusinessRuleError):
    """Only Pending runs can be claimed for execution."""

    code: str = "RUN_NOT_EXECUTABLE"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Consolidation run {run_id} is {status}, expected Pending")


# =============================================================================
# Conflicts
# =============================================================================


class ConflictError(ConsolidationKernelError):
    """Base exception for state conflicts (duplicate in-flight work, stale data)."""

    code: str = "CONFLICT"


class ConsolidationRunInProgressError(ConflictError):
    """A Pending or InProgress run already exists for (group, period)."""

    code: str = "CONSOLIDATION_RUN_IN_PROGRESS"

    def __init__(self, group_id: str, period_code: str, existing_run_id: str | None):
        self.group_id = group_id
        self.period_code = period_code
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Consolidation run already in progress for group {group_id}, "
            f"period {period_code}: {existing_run_id}"
        )


class ConsolidationRunExistsError(ConflictError):
    """A Completed run exists and force_regeneration was not requested."""

    code: str = "CONSOLIDATION_RUN_EXISTS"

    def __init__(self, group_id: str, period_code: str, existing_run_id: str):
        self.group_id = group_id
        self.period_code = period_code
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Completed consolidation run {existing_run_id} exists for group "
            f"{group_id}, period {period_code}; use force_regeneration"
        )


class SequenceConflictError(ConflictError):
    """Sequence counter could not be allocated."""

    code: str = "SEQUENCE_CONFLICT"

    def __init__(self, sequence_name: str):
        self.sequence_name = sequence_name
        super().__init__(f"Could not allocate next value for sequence {sequence_name}")


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(ConsolidationKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class JournalEntryNotFoundError(NotFoundError):
    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry not found: {journal_entry_id}")


class CompanyNotFoundError(NotFoundError):
    code: str = "COMPANY_NOT_FOUND"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


class ConsolidationGroupNotFoundError(NotFoundError):
    code: str = "CONSOLIDATION_GROUP_NOT_FOUND"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Consolidation group not found: {group_id}")


class FiscalPeriodNotFoundError(NotFoundError):
    """No fiscal period with the given code, or none covering a date."""

    code: str = "FISCAL_PERIOD_NOT_FOUND"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Fiscal period not found: {period_ref}")


class ConsolidationRunNotFoundError(NotFoundError):
    code: str = "CONSOLIDATION_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Consolidation run not found: {run_id}")


class ConsolidatedTrialBalanceNotFoundError(NotFoundError):
    """Run exists but has not produced a trial balance (not Completed)."""

    code: str = "CONSOLIDATED_TB_NOT_FOUND"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(
            f"Consolidated trial balance not available for run {run_id} ({status})"
        )


# =============================================================================
# Pipeline
# =============================================================================


class StepFailedError(ConsolidationKernelError):
    """
    A consolidation pipeline step could not complete.

    Raised by step handlers and caught by the orchestrator loop, which
    records ``message`` on the step and ``issues`` on the run.
    """

    code: str = "STEP_FAILED"

    def __init__(self, step_type: str, message: str, issues: Sequence[Any] = ()):
        self.step_type = step_type
        self.step_message = message
        self.issues = tuple(issues)
        super().__init__(f"Step {step_type} failed: {message}")


# =============================================================================
# Immutability
# =============================================================================


class ImmutabilityViolationError(ConsolidationKernelError):
    """Attempt to modify a posted entry or a completed consolidation run."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
