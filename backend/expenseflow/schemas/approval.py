"""Pydantic schemas for approval workflow API endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from expenseflow.schemas.expense import ExpenseOut


# ─── Approval log output ───

class ApprovalLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    expense_id: uuid.UUID
    approval_rule_id: uuid.UUID
    approver_id: uuid.UUID
    order: int
    status: str
    comments: str | None
    approved_at: datetime | None
    rejected_at: datetime | None
    created_at: datetime


class PendingApprovalOut(ApprovalLogOut):
    # Expense summary fields (populated by the API layer)
    expense_title: str | None = None
    expense_owner_id: uuid.UUID | None = None
    amount: Decimal | None = None
    currency: str | None = None
    amount_in_base_currency: Decimal | None = None


# ─── Decision request body ───

class ApprovalDecisionRequest(BaseModel):
    comments: str | None = Field(default=None, max_length=500)


# ─── List responses ───

class PendingApprovalListResponse(BaseModel):
    items: list[PendingApprovalOut]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class ApprovalHistoryResponse(BaseModel):
    expense_id: uuid.UUID
    items: list[ApprovalLogOut]


class ApprovalStatusOut(BaseModel):
    expense_id: uuid.UUID
    expense_status: str
    total_approvers: int
    completed_approvals: int
    approved: int
    rejected: int
    pending_approvals: int
    is_completed: bool


# ─── Decision response ───

class ApprovalActionResponse(BaseModel):
    expense: ExpenseOut
    approval_log: ApprovalLogOut
