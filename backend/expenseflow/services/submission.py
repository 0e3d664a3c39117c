"""Expense submission: currency normalization, rule selection, log creation.

All of it runs in one transaction. A failure at any step rolls back and the
expense stays DRAFT with no exchange rate, rule or logs written.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from expenseflow.core.exceptions import InvalidInput, InvalidState, NotFound
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.rules.rule_selector import select_rule
from expenseflow.services import audit as audit_svc
from expenseflow.services import fx
from expenseflow.services.approval_logs import list_active_assignments, materialize_approval_logs
from expenseflow.services.expenses import (
    category_exists,
    get_company,
    lock_expense,
    update_expense_status,
)

logger = logging.getLogger(__name__)


def submit(
    db: Session,
    expense_id: uuid.UUID,
    actor_id: uuid.UUID,
    provider: fx.ExchangeRateProvider | None = None,
) -> Expense:
    """Submit a DRAFT expense owned by ``actor_id``.

    Returns the expense, either SUBMITTED with its approval logs created, or
    APPROVED directly when no rule applies or the rule has no active approvers.

    Raises:
        NotFound: expense missing or owned by someone else; company missing.
        InvalidState: expense is not DRAFT.
        InvalidInput: the expense category is not an active category of the company.
        ConversionError: the amount could not be converted to base currency.
    """
    try:
        expense = _submit(db, expense_id, actor_id, provider)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return expense


def _submit(
    db: Session,
    expense_id: uuid.UUID,
    actor_id: uuid.UUID,
    provider: fx.ExchangeRateProvider | None,
) -> Expense:
    expense = lock_expense(db, expense_id)
    if expense is None or str(expense.user_id) != str(actor_id):
        raise NotFound(f"Expense {expense_id} not found.")
    if expense.status != ExpenseStatus.DRAFT:
        raise InvalidState(
            f"Expense {expense_id} is already {expense.status}; only draft expenses can be submitted.",
            details={"status": expense.status},
        )

    company = get_company(db, expense.company_id)
    if company is None:
        raise NotFound(f"Company {expense.company_id} not found.")
    if not category_exists(db, expense.category_id, expense.company_id):
        raise InvalidInput(
            f"Category {expense.category_id} is not an active category of this company.",
            details={"category_id": str(expense.category_id)},
        )

    amount = Decimal(str(expense.amount))
    if expense.currency.upper() == company.base_currency.upper():
        exchange_rate = Decimal("1")
        amount_in_base = amount
    else:
        amount_in_base = fx.convert(amount, expense.currency, company.base_currency, provider=provider)
        exchange_rate = amount_in_base / amount

    rule = select_rule(db, expense.company_id, expense.category_id, amount_in_base)
    assignments = list_active_assignments(db, rule.id) if rule is not None else []

    now = datetime.now(timezone.utc)
    before = {"status": expense.status}

    if rule is not None and assignments:
        transitioned = update_expense_status(
            db, expense, ExpenseStatus.SUBMITTED, ExpenseStatus.DRAFT,
            submitted_at=now,
            exchange_rate=exchange_rate,
            amount_in_base_currency=amount_in_base,
            approval_rule_id=rule.id,
        )
        if not transitioned:
            raise InvalidState(f"Expense {expense_id} changed while it was being submitted.")
        logs = materialize_approval_logs(db, expense.id, rule, assignments)
        action = "expense_submitted"
        notes = f"Routed to rule '{rule.name}' ({rule.approval_type}) with {len(logs)} approver(s)"
    else:
        transitioned = update_expense_status(
            db, expense, ExpenseStatus.APPROVED, ExpenseStatus.DRAFT,
            submitted_at=now,
            approved_at=now,
            exchange_rate=exchange_rate,
            amount_in_base_currency=amount_in_base,
            approval_rule_id=None,
        )
        if not transitioned:
            raise InvalidState(f"Expense {expense_id} changed while it was being submitted.")
        action = "expense_auto_approved"
        notes = (
            "No applicable approval rule" if rule is None
            else f"Rule '{rule.name}' has no active approvers"
        )

    audit_svc.log(
        db=db,
        action=action,
        entity_type="expense",
        entity_id=expense.id,
        actor_id=actor_id,
        before=before,
        after={
            "status": expense.status,
            "currency": expense.currency,
            "base_currency": company.base_currency,
            "exchange_rate": exchange_rate,
            "amount_in_base_currency": amount_in_base,
            "approval_rule_id": expense.approval_rule_id,
        },
        notes=notes,
    )

    logger.info(
        "submit: expense=%s status=%s amount_in_base=%s %s rule=%s",
        expense.id, expense.status, amount_in_base, company.base_currency,
        expense.approval_rule_id,
    )
    return expense
