"""
Validation issues shared by the journal ledger and the consolidation pipeline.

Pure value types with no I/O.  A ``ValidationIssue`` is the unit every
validating step reports in; a ``ValidationResult`` is their ordered
collection.  Severity ERROR blocks progress unless the caller explicitly
accepts degraded output; WARNING never blocks on its own.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found while validating data."""

    severity: Severity
    code: str
    message: str
    entity_reference: str | None = None

    @classmethod
    def error(cls, code: str, message: str, entity_reference: str | None = None) -> ValidationIssue:
        return cls(Severity.ERROR, code, message, entity_reference)

    @classmethod
    def warning(cls, code: str, message: str, entity_reference: str | None = None) -> ValidationIssue:
        return cls(Severity.WARNING, code, message, entity_reference)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def escalated(self) -> ValidationIssue:
        """Same issue at ERROR severity."""
        return ValidationIssue(Severity.ERROR, self.code, self.message, self.entity_reference)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "entity_reference": self.entity_reference,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationIssue:
        return cls(
            severity=Severity(data["severity"]),
            code=data["code"],
            message=data["message"],
            entity_reference=data.get("entity_reference"),
        )


@dataclass(frozen=True)
class ValidationResult:
    """Ordered collection of issues.  Valid when no issue is an ERROR."""

    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, issues: Iterable[ValidationIssue]) -> ValidationResult:
        return cls(tuple(issues))

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.is_error)

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if not i.is_error)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "issues": [i.to_dict() for i in self.issues],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationResult:
        return cls(tuple(ValidationIssue.from_dict(i) for i in data.get("issues", ())))
