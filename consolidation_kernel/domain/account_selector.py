"""
AccountSelector -- which accounts an elimination rule looks at.

A closed sum type of three variants:

    ById(account_number)      one account
    ByRange(start, end)       inclusive range of account numbers
    ByCategory(category)      every account carrying the category

Consumers dispatch with ``match`` over the three classes; ``AccountSelector``
is the type alias, not a base class.  Selectors persist as small JSON
documents ``{"kind": "by_id" | "by_range" | "by_category", ...}``.

Account numbers compare as strings.  Charts are expected to use fixed-width
numbers ("1000".."1999"), for which string order equals numeric order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias


@dataclass(frozen=True)
class ById:
    account_number: str


@dataclass(frozen=True)
class ByRange:
    start: str
    end: str

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Invalid account range {self.start}..{self.end}")

    def contains(self, account_number: str) -> bool:
        return self.start <= account_number <= self.end


@dataclass(frozen=True)
class ByCategory:
    category: str


AccountSelector: TypeAlias = ById | ByRange | ByCategory


def selects(selector: AccountSelector, account_number: str, category: str | None) -> bool:
    """True if ``selector`` picks the account with this number and category."""
    match selector:
        case ById(account_number=wanted):
            return account_number == wanted
        case ByRange():
            return selector.contains(account_number)
        case ByCategory(category=wanted):
            return category is not None and category == wanted
        case _:
            raise TypeError(f"Unknown account selector: {selector!r}")


def selector_to_dict(selector: AccountSelector) -> dict[str, Any]:
    match selector:
        case ById(account_number=number):
            return {"kind": "by_id", "account_number": number}
        case ByRange(start=start, end=end):
            return {"kind": "by_range", "start": start, "end": end}
        case ByCategory(category=category):
            return {"kind": "by_category", "category": category}
        case _:
            raise TypeError(f"Unknown account selector: {selector!r}")


def selector_from_dict(data: dict[str, Any]) -> AccountSelector:
    match data.get("kind"):
        case "by_id":
            return ById(data["account_number"])
        case "by_range":
            return ByRange(data["start"], data["end"])
        case "by_category":
            return ByCategory(data["category"])
        case other:
            raise ValueError(f"Unknown account selector kind: {other!r}")
