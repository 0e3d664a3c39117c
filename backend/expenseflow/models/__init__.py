from expenseflow.models.company import Company, Category
from expenseflow.models.user import User, UserRole
from expenseflow.models.approval_rule import (
    ApprovalRule, ApproverAssignment, ApprovalType,
    AllCategories, SpecificCategories, CategoryScope,
)
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.models.approval import ExpenseApprovalLog, ApprovalStatus, ApprovalDecision
from expenseflow.models.audit import AuditLog

__all__ = [
    "Company", "Category",
    "User", "UserRole",
    "ApprovalRule", "ApproverAssignment", "ApprovalType",
    "AllCategories", "SpecificCategories", "CategoryScope",
    "Expense", "ExpenseStatus",
    "ExpenseApprovalLog", "ApprovalStatus", "ApprovalDecision",
    "AuditLog",
]
