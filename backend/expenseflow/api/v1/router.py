from fastapi import APIRouter

from expenseflow.api.v1 import approvals, expenses, rules

api_router = APIRouter()

api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(rules.router, prefix="/rules", tags=["approval-rules"])
