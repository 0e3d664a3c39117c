"""Expense drafting, submission and approval progress endpoints."""
import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from expenseflow.core.config import settings
from expenseflow.core.deps import get_current_user
from expenseflow.db.session import get_sync_session
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.models.user import UserRole
from expenseflow.schemas.approval import ApprovalStatusOut
from expenseflow.schemas.expense import ExpenseIn, ExpenseListResponse, ExpenseOut
from expenseflow.services import approval as approval_svc
from expenseflow.services.expenses import create_expense, get_expense, list_expenses
from expenseflow.services.submission import submit

router = APIRouter()


def _visible_expense(db: Session, expense_id: uuid.UUID, current_user) -> Expense:
    """Employees see only their own expenses; nobody sees another company's."""
    expense = get_expense(db, expense_id)
    if expense is None or str(expense.company_id) != str(current_user.company_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found.")
    if current_user.role == UserRole.EMPLOYEE.value and str(expense.user_id) != str(current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions.")
    return expense


# ─── Drafts ───

@router.post(
    "",
    response_model=ExpenseOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft expense for the current user",
)
def create_draft_expense(
    body: ExpenseIn,
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    expense = create_expense(
        db,
        company_id=current_user.company_id,
        owner_id=current_user.id,
        category_id=body.category_id,
        title=body.title,
        amount=body.amount,
        currency=body.currency,
        expense_date=body.expense_date,
        description=body.description,
    )
    return ExpenseOut.model_validate(expense)


@router.get(
    "",
    response_model=ExpenseListResponse,
    summary="List expenses (employees see their own)",
)
def list_company_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    expense_status: ExpenseStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    limit = min(limit, settings.APPROVALS_PAGE_SIZE_MAX)
    owner_id = current_user.id if current_user.role == UserRole.EMPLOYEE.value else None
    expenses, total = list_expenses(
        db, current_user.company_id, owner_id=owner_id, status=expense_status, page=page, limit=limit,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return ExpenseListResponse(
        items=[ExpenseOut.model_validate(e) for e in expenses],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


@router.get(
    "/{expense_id}",
    response_model=ExpenseOut,
    summary="Get one expense",
)
def get_one_expense(
    expense_id: uuid.UUID,
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    return ExpenseOut.model_validate(_visible_expense(db, expense_id, current_user))


# ─── Workflow ───

@router.post(
    "/{expense_id}/submit",
    response_model=ExpenseOut,
    summary="Submit a draft expense for approval",
)
def submit_expense(
    expense_id: uuid.UUID,
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    expense = submit(db, expense_id, current_user.id)
    return ExpenseOut.model_validate(expense)


@router.get(
    "/{expense_id}/approval-status",
    response_model=ApprovalStatusOut,
    summary="Approval progress summary for an expense",
)
def expense_approval_status(
    expense_id: uuid.UUID,
    db: Session = Depends(get_sync_session),
    current_user=Depends(get_current_user),
):
    expense = _visible_expense(db, expense_id, current_user)
    summary = approval_svc.get_approval_status(db, expense_id)
    return ApprovalStatusOut(expense_id=expense_id, expense_status=expense.status, **summary)
