"""Approval rule administration endpoints (ADMIN).

Rules are never deleted; DELETE deactivates.
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expenseflow.core.deps import get_current_user, require_role
from expenseflow.db.session import get_session
from expenseflow.models.approval_rule import ApprovalRule, ApproverAssignment
from expenseflow.models.user import APPROVER_ROLES, User, UserRole
from expenseflow.schemas.approval_rule import (
    ApprovalRuleIn,
    ApprovalRuleOut,
    ApprovalRuleUpdate,
    ApproverOut,
)

router = APIRouter()


async def _active_assignments(
    db: AsyncSession, rule_ids: list[uuid.UUID]
) -> dict[uuid.UUID, list[ApproverAssignment]]:
    grouped: dict[uuid.UUID, list[ApproverAssignment]] = {rule_id: [] for rule_id in rule_ids}
    if not rule_ids:
        return grouped
    result = await db.execute(
        select(ApproverAssignment)
        .where(
            ApproverAssignment.approval_rule_id.in_(rule_ids),
            ApproverAssignment.is_active.is_(True),
        )
        .order_by(ApproverAssignment.order)
    )
    for assignment in result.scalars().all():
        grouped.setdefault(assignment.approval_rule_id, []).append(assignment)
    return grouped


def _rule_out(rule: ApprovalRule, assignments: list[ApproverAssignment]) -> ApprovalRuleOut:
    out = ApprovalRuleOut.model_validate(rule)
    out.approvers = [ApproverOut.model_validate(a) for a in assignments]
    return out


async def _get_company_rule(db: AsyncSession, rule_id: uuid.UUID, company_id: uuid.UUID) -> ApprovalRule:
    result = await db.execute(
        select(ApprovalRule).where(
            ApprovalRule.id == rule_id,
            ApprovalRule.company_id == company_id,
        )
    )
    rule = result.scalars().first()
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found.")
    return rule


# ─── Read ───

@router.get(
    "",
    response_model=list[ApprovalRuleOut],
    summary="List active approval rules of the current company",
)
async def list_rules(
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    result = await db.execute(
        select(ApprovalRule)
        .where(
            ApprovalRule.company_id == current_user.company_id,
            ApprovalRule.is_active.is_(True),
        )
        .order_by(ApprovalRule.min_amount, ApprovalRule.name)
    )
    rules = list(result.scalars().all())
    assignments = await _active_assignments(db, [r.id for r in rules])
    return [_rule_out(r, assignments.get(r.id, [])) for r in rules]


@router.get(
    "/{rule_id}",
    response_model=ApprovalRuleOut,
    summary="Get one approval rule with its approvers",
)
async def get_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    rule = await _get_company_rule(db, rule_id, current_user.company_id)
    assignments = await _active_assignments(db, [rule.id])
    return _rule_out(rule, assignments[rule.id])


# ─── Write ───

@router.post(
    "",
    response_model=ApprovalRuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval rule with its ordered approvers (ADMIN)",
)
async def create_rule(
    body: ApprovalRuleIn,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(UserRole.ADMIN.value))],
):
    approver_ids = [a.user_id for a in body.approvers]
    result = await db.execute(
        select(User.id).where(
            User.id.in_(approver_ids),
            User.company_id == current_user.company_id,
            User.role.in_(APPROVER_ROLES),
            User.is_active.is_(True),
        )
    )
    valid_ids = set(result.scalars().all())
    invalid = [str(uid) for uid in approver_ids if uid not in valid_ids]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Approvers must be active managers or admins of this company: {', '.join(invalid)}",
        )

    rule = ApprovalRule(
        company_id=current_user.company_id,
        name=body.name,
        min_amount=body.min_amount,
        max_amount=body.max_amount,
        category_ids=body.category_ids or None,
        approval_type=body.approval_type.value,
        is_active=True,
    )
    db.add(rule)
    await db.flush()

    assignments = [
        ApproverAssignment(approval_rule_id=rule.id, user_id=user_id, order=order, is_active=True)
        for user_id, order in body.ordered_approvers()
    ]
    db.add_all(assignments)
    await db.commit()
    await db.refresh(rule)
    return _rule_out(rule, sorted(assignments, key=lambda a: a.order))


@router.put(
    "/{rule_id}",
    response_model=ApprovalRuleOut,
    summary="Update an approval rule (ADMIN)",
)
async def update_rule(
    rule_id: uuid.UUID,
    body: ApprovalRuleUpdate,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(UserRole.ADMIN.value))],
):
    rule = await _get_company_rule(db, rule_id, current_user.company_id)

    changes = body.model_dump(exclude_unset=True)
    if "approval_type" in changes:
        changes["approval_type"] = changes["approval_type"].value
    if "category_ids" in changes:
        changes["category_ids"] = changes["category_ids"] or None

    min_amount = changes.get("min_amount", rule.min_amount)
    max_amount = changes.get("max_amount", rule.max_amount)
    if max_amount is not None and max_amount < min_amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="max_amount must be greater than or equal to min_amount.",
        )

    for field, value in changes.items():
        setattr(rule, field, value)

    await db.commit()
    await db.refresh(rule)
    assignments = await _active_assignments(db, [rule.id])
    return _rule_out(rule, assignments[rule.id])


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate an approval rule (ADMIN)",
)
async def deactivate_rule(
    rule_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_session)],
    current_user: Annotated[User, Depends(require_role(UserRole.ADMIN.value))],
):
    rule = await _get_company_rule(db, rule_id, current_user.company_id)
    rule.is_active = False
    await db.commit()
