"""
Module: consolidation_kernel.selectors.consolidation_selector
Responsibility: Read-only access to consolidation groups, their members,
    elimination rules and intercompany transactions, returned as frozen
    snapshots from domain/consolidation.py.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - active_rules() returns only is_active rules, ordered by priority
      ascending, then created_at, then id.  The ordering is total, so two
      runs over the same rules always apply them in the same order.
    - ic_transactions() returns only transactions whose two companies are
      both members of the group and whose date falls inside the range.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from consolidation_kernel.domain.account_selector import selector_from_dict
from consolidation_kernel.domain.consolidation import (
    GroupInfo,
    IntercompanyRecord,
    MemberInfo,
    RuleDefinition,
    TriggerCondition,
)
from consolidation_kernel.exceptions import ConsolidationGroupNotFoundError
from consolidation_kernel.models.company import Company
from consolidation_kernel.models.consolidation import (
    ConsolidationGroup,
    ConsolidationMember,
    ConsolidationMethod,
    EliminationRule,
    EliminationType,
)
from consolidation_kernel.models.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
    MatchingStatus,
)
from consolidation_kernel.selectors.base import BaseSelector


def rule_definition(rule: EliminationRule) -> RuleDefinition:
    """Snapshot an EliminationRule row."""
    return RuleDefinition(
        rule_id=rule.id,
        name=rule.name,
        elimination_type=EliminationType(rule.elimination_type),
        debit_account_number=rule.debit_account_number,
        credit_account_number=rule.credit_account_number,
        trigger_conditions=tuple(
            TriggerCondition.from_dict(c) for c in (rule.trigger_conditions or [])
        ),
        source_accounts=tuple(selector_from_dict(s) for s in (rule.source_accounts or [])),
        target_accounts=tuple(selector_from_dict(s) for s in (rule.target_accounts or [])),
        is_automatic=rule.is_automatic,
        priority=rule.priority,
        created_at=rule.created_at,
    )


class ConsolidationSelector(BaseSelector):
    """Group, member, rule and intercompany queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def group(self, group_id: UUID) -> GroupInfo:
        group = self.session.get(ConsolidationGroup, group_id)
        if group is None:
            raise ConsolidationGroupNotFoundError(str(group_id))
        return GroupInfo(
            group_id=group.id,
            code=group.code,
            name=group.name,
            parent_company_id=group.parent_company_id,
            reporting_currency=group.reporting_currency,
            cta_account_number=group.cta_account_number,
            nci_account_number=group.nci_account_number,
            is_active=group.is_active,
            members=tuple(self.members(group_id)),
        )

    def members(self, group_id: UUID) -> list[MemberInfo]:
        rows = self.session.execute(
            select(ConsolidationMember, Company)
            .join(Company, Company.id == ConsolidationMember.company_id)
            .where(ConsolidationMember.group_id == group_id)
            .order_by(Company.code)
        ).all()
        return [
            MemberInfo(
                company_id=company.id,
                company_code=company.code,
                company_name=company.name,
                functional_currency=company.functional_currency,
                ownership_percentage=Decimal(member.ownership_percentage),
                consolidation_method=ConsolidationMethod(member.consolidation_method),
                is_primary_beneficiary=member.is_primary_beneficiary,
                has_controlling_financial_interest=member.has_controlling_financial_interest,
            )
            for member, company in rows
        ]

    def active_rules(self, group_id: UUID) -> list[RuleDefinition]:
        rules = self.session.execute(
            select(EliminationRule)
            .where(
                EliminationRule.group_id == group_id,
                EliminationRule.is_active.is_(True),
            )
            .order_by(
                EliminationRule.priority,
                EliminationRule.created_at,
                EliminationRule.id,
            )
        ).scalars().all()
        return [rule_definition(rule) for rule in rules]

    def ic_transactions(
        self,
        group_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[IntercompanyRecord]:
        member_ids = select(ConsolidationMember.company_id).where(
            ConsolidationMember.group_id == group_id
        )
        rows = self.session.execute(
            select(IntercompanyTransaction)
            .where(
                IntercompanyTransaction.from_company_id.in_(member_ids),
                IntercompanyTransaction.to_company_id.in_(member_ids),
                IntercompanyTransaction.transaction_date >= start_date,
                IntercompanyTransaction.transaction_date <= end_date,
            )
            .order_by(
                IntercompanyTransaction.transaction_date,
                IntercompanyTransaction.created_at,
                IntercompanyTransaction.id,
            )
        ).scalars().all()
        return [
            IntercompanyRecord(
                transaction_id=tx.id,
                from_company_id=tx.from_company_id,
                to_company_id=tx.to_company_id,
                transaction_type=IntercompanyTransactionType(tx.transaction_type),
                transaction_date=tx.transaction_date,
                amount=Decimal(tx.amount),
                currency=tx.currency,
                matching_status=MatchingStatus(tx.matching_status),
                variance_amount=None if tx.variance_amount is None else Decimal(tx.variance_amount),
                variance_explanation=tx.variance_explanation,
            )
            for tx in rows
        ]
