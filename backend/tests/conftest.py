"""Shared fixtures for the approval workflow tests.

``workflow_store`` swaps the storage helpers used by the submission and
approval services for an in-memory store, so the full submit → approve /
reject flow runs through the real service code without a database. The
conditional-update helpers keep their real semantics: a write only lands when
the row is still in the expected status.
"""
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from expenseflow.models.approval import ApprovalStatus
from expenseflow.models.approval_rule import ApprovalRule, ApprovalType, ApproverAssignment
from expenseflow.models.company import Company
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.services.approval_logs import REJECTED_BY_ANOTHER_APPROVER


class WorkflowStore:
    def __init__(self):
        self.companies: dict[uuid.UUID, Company] = {}
        self.expenses: dict[uuid.UUID, Expense] = {}
        self.rules: dict[uuid.UUID, ApprovalRule] = {}
        self.assignments: dict[uuid.UUID, list[ApproverAssignment]] = {}
        self.logs: dict[uuid.UUID, object] = {}
        self.inactive_categories: set[uuid.UUID] = set()
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    # ─── Builders ───

    def add_company(self, base_currency: str = "USD") -> Company:
        company = Company(id=uuid.uuid4(), name="Acme", base_currency=base_currency, country="US")
        self.companies[company.id] = company
        return company

    def add_rule(
        self,
        company: Company,
        approvers: list[uuid.UUID],
        approval_type: ApprovalType = ApprovalType.SEQUENTIAL,
        min_amount: str = "0",
        max_amount: str | None = None,
        category_ids: list[uuid.UUID] | None = None,
        orders: list[int] | None = None,
    ) -> ApprovalRule:
        rule = ApprovalRule(
            id=uuid.uuid4(),
            company_id=company.id,
            name=f"{approval_type.value} rule",
            min_amount=Decimal(min_amount),
            max_amount=Decimal(max_amount) if max_amount is not None else None,
            category_ids=category_ids,
            approval_type=approval_type.value,
            is_active=True,
        )
        self.rules[rule.id] = rule
        orders = orders or list(range(1, len(approvers) + 1))
        self.assignments[rule.id] = [
            ApproverAssignment(
                id=uuid.uuid4(),
                approval_rule_id=rule.id,
                user_id=user_id,
                order=order,
                is_active=True,
            )
            for user_id, order in zip(approvers, orders)
        ]
        return rule

    def add_expense(
        self,
        company: Company,
        owner_id: uuid.UUID,
        amount: str = "100.00",
        currency: str = "USD",
        category_id: uuid.UUID | None = None,
    ) -> Expense:
        expense = Expense(
            id=uuid.uuid4(),
            company_id=company.id,
            user_id=owner_id,
            category_id=category_id or uuid.uuid4(),
            title="Client dinner",
            amount=Decimal(amount),
            currency=currency,
            expense_date=date(2025, 12, 1),
            status=ExpenseStatus.DRAFT.value,
            version=1,
        )
        self.expenses[expense.id] = expense
        return expense

    def logs_for(self, expense: Expense) -> list:
        return sorted(
            (log for log in self.logs.values() if log.expense_id == expense.id),
            key=lambda log: log.order,
        )

    def log_for(self, expense: Expense, approver_id: uuid.UUID):
        return next(log for log in self.logs_for(expense) if log.approver_id == approver_id)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    # ─── Storage helpers ───

    def lock_expense(self, db, expense_id):
        return self.expenses.get(expense_id)

    def get_company(self, db, company_id):
        return self.companies.get(company_id)

    def category_exists(self, db, category_id, company_id):
        return category_id not in self.inactive_categories

    def find_candidate_rules(self, db, company_id, category_id, amount):
        return [r for r in self.rules.values() if r.company_id == company_id]

    def list_active_assignments(self, db, rule_id):
        active = [a for a in self.assignments.get(rule_id, []) if a.is_active]
        return sorted(active, key=lambda a: a.order)

    def insert_batch(self, db, logs):
        for log in logs:
            log.id = uuid.uuid4()
            log.created_at = self._tick()
            self.logs[log.id] = log

    def find_log(self, db, log_id):
        return self.logs.get(log_id)

    def find_pending(self, db, log_id, approver_id):
        log = self.logs.get(log_id)
        if log is None or log.approver_id != approver_id or log.status != ApprovalStatus.PENDING.value:
            return None
        return log

    def find_by_expense(self, db, expense_id):
        return sorted(
            (log for log in self.logs.values() if log.expense_id == expense_id),
            key=lambda log: (log.order, log.created_at),
        )

    def get_rule(self, db, rule_id):
        return self.rules.get(rule_id)

    def resolve_pending_log(self, db, log, status, comments, now=None):
        if log.status != ApprovalStatus.PENDING.value:
            return False
        log.status = status.value
        log.comments = comments
        if status is ApprovalStatus.APPROVED:
            log.approved_at = self._tick()
        else:
            log.rejected_at = self._tick()
        return True

    def update_pending_to_rejected(
        self, db, expense_id, excluding_log_id, comment=REJECTED_BY_ANOTHER_APPROVER, now=None
    ):
        swept = 0
        for log in self.find_by_expense(db, expense_id):
            if log.id != excluding_log_id and log.status == ApprovalStatus.PENDING.value:
                log.status = ApprovalStatus.REJECTED.value
                log.comments = comment
                log.rejected_at = now
                swept += 1
        return swept

    def update_expense_status(self, db, expense, new_status, expected_status, **fields):
        if expense.status != expected_status.value:
            return False
        expense.status = new_status.value
        expense.version += 1
        for field, value in fields.items():
            setattr(expense, field, value)
        return True


@pytest.fixture
def workflow_store():
    store = WorkflowStore()
    targets = {
        "expenseflow.services.submission.lock_expense": store.lock_expense,
        "expenseflow.services.submission.get_company": store.get_company,
        "expenseflow.services.submission.category_exists": store.category_exists,
        "expenseflow.services.submission.list_active_assignments": store.list_active_assignments,
        "expenseflow.services.submission.update_expense_status": store.update_expense_status,
        "expenseflow.rules.rule_selector.find_candidate_rules": store.find_candidate_rules,
        "expenseflow.services.approval_logs.insert_batch": store.insert_batch,
        "expenseflow.services.approval.find_log": store.find_log,
        "expenseflow.services.approval.find_pending": store.find_pending,
        "expenseflow.services.approval.lock_expense": store.lock_expense,
        "expenseflow.services.approval.find_by_expense": store.find_by_expense,
        "expenseflow.services.approval.resolve_pending_log": store.resolve_pending_log,
        "expenseflow.services.approval.update_pending_to_rejected": store.update_pending_to_rejected,
        "expenseflow.services.approval.update_expense_status": store.update_expense_status,
        "expenseflow.services.approval._get_rule": store.get_rule,
    }
    patchers = [patch(target, side_effect=fn) for target, fn in targets.items()]
    patchers.append(patch("expenseflow.services.submission.audit_svc"))
    patchers.append(patch("expenseflow.services.approval.audit_svc"))
    for p in patchers:
        p.start()
    try:
        yield store
    finally:
        for p in reversed(patchers):
            p.stop()


@pytest.fixture
def db():
    return MagicMock()
