"""
Module: consolidation_kernel.models.consolidation
Responsibility: ORM persistence for consolidation groups, their members, and
    the group's elimination rules.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A company appears at most once per group (uq_member_group_company).
    - ownership_percentage lies in [0, 100].
    - Elimination rule priority is a non-negative integer; lower runs first.
      Rules sharing a priority run in created_at order, then by id.
    - Deactivating a rule (is_active = False) only affects runs started
      afterwards; completed runs keep the entries they generated in their
      own snapshot.

Selectors and trigger conditions are stored as JSON documents produced by
``consolidation_kernel.domain.account_selector``.
"""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consolidation_kernel.db.base import TrackedBase, UUIDString


class ConsolidationMethod(str, Enum):
    FULL_CONSOLIDATION = "full_consolidation"
    EQUITY_METHOD = "equity_method"
    COST_METHOD = "cost_method"
    VARIABLE_INTEREST_ENTITY = "variable_interest_entity"


class EliminationType(str, Enum):
    IC_RECEIVABLE_PAYABLE = "intercompany_receivable_payable"
    IC_REVENUE_EXPENSE = "intercompany_revenue_expense"
    IC_DIVIDEND = "intercompany_dividend"
    IC_INVESTMENT = "intercompany_investment"
    UNREALIZED_PROFIT_INVENTORY = "unrealized_profit_inventory"
    UNREALIZED_PROFIT_FIXED_ASSETS = "unrealized_profit_fixed_assets"


class ConsolidationGroup(TrackedBase):
    """
    A parent company and the entities rolled up into its reports.

    cta_account_number and nci_account_number name the equity lines that
    carry translation differences and the non-controlling interest in the
    consolidated trial balance.
    """

    __tablename__ = "consolidation_groups"

    __table_args__ = (
        UniqueConstraint("code", name="uq_consolidation_group_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    parent_company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    reporting_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    cta_account_number: Mapped[str] = mapped_column(
        String(20), nullable=False, default="3900"
    )
    nci_account_number: Mapped[str] = mapped_column(
        String(20), nullable=False, default="3950"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    members: Mapped[list["ConsolidationMember"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ConsolidationGroup {self.code} ({self.reporting_currency})>"


class ConsolidationMember(TrackedBase):
    """
    Membership of a company in a group.

    VIE determination is optional: both flags stay NULL until assessed.
    """

    __tablename__ = "consolidation_members"

    __table_args__ = (
        UniqueConstraint("group_id", "company_id", name="uq_member_group_company"),
        CheckConstraint(
            "ownership_percentage >= 0 AND ownership_percentage <= 100",
            name="ck_member_ownership_range",
        ),
    )

    group_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_groups.id"),
        nullable=False,
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    ownership_percentage: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    consolidation_method: Mapped[ConsolidationMethod] = mapped_column(
        String(30),
        nullable=False,
    )

    is_primary_beneficiary: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    has_controlling_financial_interest: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True
    )

    group: Mapped["ConsolidationGroup"] = relationship(back_populates="members")

    def __repr__(self) -> str:
        return (
            f"<ConsolidationMember {self.company_id} "
            f"{self.ownership_percentage}% {self.consolidation_method}>"
        )


class EliminationRule(TrackedBase):
    """
    A configured elimination for a consolidation group.

    trigger_conditions: list of {"description", "source_accounts": [selector],
    "minimum_amount": str | None}.  source_accounts / target_accounts: lists
    of selector documents.  debit/credit accounts are group chart account
    numbers.
    """

    __tablename__ = "elimination_rules"

    __table_args__ = (
        CheckConstraint("priority >= 0", name="ck_elimination_rule_priority"),
        Index("idx_elimination_rule_group", "group_id", "is_active", "priority"),
    )

    group_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_groups.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    elimination_type: Mapped[EliminationType] = mapped_column(String(50), nullable=False)

    trigger_conditions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    source_accounts: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    target_accounts: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    debit_account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    credit_account_number: Mapped[str] = mapped_column(String(20), nullable=False)

    is_automatic: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<EliminationRule {self.name} p={self.priority} active={self.is_active}>"
