"""Approval workflow API endpoints.

  GET  /approvals/pending                 — pending logs for the current approver
  POST /approvals/{log_id}/approve
  POST /approvals/{log_id}/reject
  GET  /approvals/history/{expense_id}    — every log of an expense

Domain errors raised by the services are mapped to HTTP responses by the
handler registered in ``expenseflow.main``.
"""
import logging
import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from expenseflow.core.config import settings
from expenseflow.core.deps import get_current_user, require_role
from expenseflow.core.limiter import limiter
from expenseflow.db.session import get_sync_session
from expenseflow.models.user import APPROVER_ROLES, UserRole
from expenseflow.schemas.approval import (
    ApprovalActionResponse,
    ApprovalDecisionRequest,
    ApprovalHistoryResponse,
    ApprovalLogOut,
    PendingApprovalListResponse,
    PendingApprovalOut,
)
from expenseflow.schemas.expense import ExpenseOut
from expenseflow.services import approval as approval_svc
from expenseflow.services.approval_logs import find_log
from expenseflow.services.expenses import get_expense

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Pending queue ───

@router.get(
    "/pending",
    response_model=PendingApprovalListResponse,
    summary="List pending approval logs for the current approver",
)
def list_pending_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_sync_session),
    current_user=Depends(require_role(*APPROVER_ROLES)),
):
    limit = min(limit, settings.APPROVALS_PAGE_SIZE_MAX)
    rows, total = approval_svc.get_pending_approvals(db, current_user.id, page=page, limit=limit)

    items: list[PendingApprovalOut] = []
    for log, expense in rows:
        out = PendingApprovalOut.model_validate(log)
        out.expense_title = expense.title
        out.expense_owner_id = expense.user_id
        out.amount = expense.amount
        out.currency = expense.currency
        out.amount_in_base_currency = expense.amount_in_base_currency
        items.append(out)

    total_pages = math.ceil(total / limit) if total else 0
    return PendingApprovalListResponse(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


# ─── Approve / reject ───

def _decide(
    db: Session,
    log_id: uuid.UUID,
    approver_id: uuid.UUID,
    decision: str,
    comments: str | None,
) -> ApprovalActionResponse:
    expense = approval_svc.act(db, log_id, approver_id, decision, comments)
    log = find_log(db, log_id)
    return ApprovalActionResponse(
        expense=ExpenseOut.model_validate(expense),
        approval_log=ApprovalLogOut.model_validate(log),
    )


@router.post(
    "/{log_id}/approve",
    response_model=ApprovalActionResponse,
    summary="Approve an expense through one of your pending approval logs",
)
@limiter.limit(settings.APPROVAL_RATE_LIMIT)
def approve_log(
    request: Request,
    log_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    db: Session = Depends(get_sync_session),
    current_user=Depends(require_role(*APPROVER_ROLES)),
):
    return _decide(db, log_id, current_user.id, "approve", body.comments)


@router.post(
    "/{log_id}/reject",
    response_model=ApprovalActionResponse,
    summary="Reject an expense through one of your pending approval logs",
)
@limiter.limit(settings.APPROVAL_RATE_LIMIT)
def reject_log(
    request: Request,
    log_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    db: Session = Depends(get_sync_session),
    current_user=Depends(require_role(*APPROVER_ROLES)),
):
    return _decide(db, log_id, current_user.id, "reject", body.comments)


# ─── History ───

@router.get(
    "/history/{expense_id}",
    response_model=ApprovalHistoryResponse,
    summary="Approval history of an expense",
)
def approval_history(
    expense_id: uuid.UUID,
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    expense = get_expense(db, expense_id)
    if expense is None or str(expense.company_id) != str(current_user.company_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")

    # Employees may only read their own expenses
    if current_user.role == UserRole.EMPLOYEE.value and str(expense.user_id) != str(current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions.")

    logs = approval_svc.get_approval_history(db, expense_id)
    return ApprovalHistoryResponse(
        expense_id=expense_id,
        items=[ApprovalLogOut.model_validate(log) for log in logs],
    )
