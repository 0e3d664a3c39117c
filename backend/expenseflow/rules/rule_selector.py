"""Approval rule selection.

A rule applies to an expense when it is active, its amount band contains the
expense amount (in company base currency, both bounds inclusive, no upper
bound when ``max_amount`` is null) and its category scope contains the
expense category. Among applicable rules the one with the largest
``min_amount`` wins; equal ``min_amount`` is broken by ascending rule id so
selection never depends on storage order.
"""
import logging
import uuid
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from expenseflow.models.approval_rule import ApprovalRule

logger = logging.getLogger(__name__)


def rule_applies(rule: ApprovalRule, category_id: uuid.UUID, amount: Decimal) -> bool:
    if not rule.is_active:
        return False
    if Decimal(str(rule.min_amount)) > amount:
        return False
    if rule.max_amount is not None and Decimal(str(rule.max_amount)) < amount:
        return False
    return rule.category_scope.matches(category_id)


def _specificity_key(rule: ApprovalRule) -> tuple[Decimal, str]:
    # Sorted descending on min_amount, so negate it; id ascending
    return (-Decimal(str(rule.min_amount)), str(rule.id))


def pick_rule(
    rules: Iterable[ApprovalRule],
    category_id: uuid.UUID,
    amount: Decimal,
) -> ApprovalRule | None:
    """Return the most specific applicable rule, or None."""
    applicable = [r for r in rules if rule_applies(r, category_id, amount)]
    if not applicable:
        return None
    return min(applicable, key=_specificity_key)


def find_candidate_rules(
    db: Session,
    company_id: uuid.UUID,
    category_id: uuid.UUID,
    amount: Decimal,
) -> list[ApprovalRule]:
    """Active company rules whose amount band and category scope match."""
    stmt = select(ApprovalRule).where(
        ApprovalRule.company_id == company_id,
        ApprovalRule.is_active.is_(True),
        ApprovalRule.min_amount <= amount,
        or_(ApprovalRule.max_amount.is_(None), ApprovalRule.max_amount >= amount),
        or_(
            ApprovalRule.category_ids.is_(None),
            func.cardinality(ApprovalRule.category_ids) == 0,
            ApprovalRule.category_ids.any(category_id),
        ),
    )
    return list(db.execute(stmt).scalars().all())


def select_rule(
    db: Session,
    company_id: uuid.UUID,
    category_id: uuid.UUID,
    amount_in_base_currency: Decimal,
) -> ApprovalRule | None:
    """Find the single approval rule governing an expense, or None to auto-approve."""
    amount = Decimal(str(amount_in_base_currency))
    candidates = find_candidate_rules(db, company_id, category_id, amount)
    rule = pick_rule(candidates, category_id, amount)

    if rule is None:
        logger.info(
            "select_rule: no rule for company=%s category=%s amount=%s",
            company_id, category_id, amount,
        )
    else:
        logger.info(
            "select_rule: company=%s category=%s amount=%s -> rule=%s (%d candidates)",
            company_id, category_id, amount, rule.id, len(candidates),
        )
    return rule
