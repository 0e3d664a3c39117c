"""Expense, company and category lookups plus versioned status writes."""
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from expenseflow.models.company import Category, Company
from expenseflow.core.exceptions import InvalidInput
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.services import audit as audit_svc

logger = logging.getLogger(__name__)


def get_company(db: Session, company_id: uuid.UUID) -> Company | None:
    return db.execute(select(Company).where(Company.id == company_id)).scalars().first()


def category_exists(db: Session, category_id: uuid.UUID, company_id: uuid.UUID) -> bool:
    stmt = select(Category.id).where(
        Category.id == category_id,
        Category.company_id == company_id,
        Category.is_active.is_(True),
    )
    return db.execute(stmt).first() is not None


def get_expense(db: Session, expense_id: uuid.UUID) -> Expense | None:
    return db.execute(select(Expense).where(Expense.id == expense_id)).scalars().first()


def lock_expense(db: Session, expense_id: uuid.UUID) -> Expense | None:
    """Load the expense with a row lock held until the transaction ends.

    Every submit/approve/reject on one expense goes through here first, which
    serializes them per expense.
    """
    stmt = (
        select(Expense)
        .where(Expense.id == expense_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalars().first()


def update_expense_status(
    db: Session,
    expense: Expense,
    new_status: ExpenseStatus,
    expected_status: ExpenseStatus,
    **fields: Any,
) -> bool:
    """Conditionally move ``expense`` from ``expected_status`` to ``new_status``.

    The UPDATE matches on both the expected status and the version the caller
    read, and bumps the version. Returns False (writing nothing) when another
    transaction got there first.
    """
    values = {"status": new_status.value, "version": expense.version + 1, **fields}
    result = db.execute(
        update(Expense)
        .where(
            Expense.id == expense.id,
            Expense.status == expected_status.value,
            Expense.version == expense.version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "update_expense_status: expense=%s %s->%s lost the race (version=%s)",
            expense.id, expected_status.value, new_status.value, expense.version,
        )
        return False

    for field, value in values.items():
        setattr(expense, field, value)
    return True


# ─── Drafts and listing ───

def create_expense(
    db: Session,
    company_id: uuid.UUID,
    owner_id: uuid.UUID,
    category_id: uuid.UUID,
    title: str,
    amount: Decimal,
    currency: str,
    expense_date: date,
    description: str | None = None,
) -> Expense:
    """Create a DRAFT expense for ``owner_id`` and commit it.

    Raises InvalidInput when the category is not an active category of the company.
    """
    try:
        if not category_exists(db, category_id, company_id):
            raise InvalidInput(
                f"Category {category_id} is not an active category of this company.",
                details={"category_id": str(category_id)},
            )
        expense = Expense(
            company_id=company_id,
            user_id=owner_id,
            category_id=category_id,
            title=title,
            description=description,
            amount=amount,
            currency=currency,
            expense_date=expense_date,
            status=ExpenseStatus.DRAFT.value,
            version=1,
        )
        db.add(expense)
        db.flush()
        audit_svc.log(
            db=db,
            action="expense_created",
            entity_type="expense",
            entity_id=expense.id,
            actor_id=owner_id,
            after={"status": expense.status, "amount": expense.amount, "currency": expense.currency},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("create_expense: expense=%s owner=%s %s %s", expense.id, owner_id, amount, expense.currency)
    return expense


def list_expenses(
    db: Session,
    company_id: uuid.UUID,
    owner_id: uuid.UUID | None = None,
    status: ExpenseStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Expense], int]:
    """One page of the company's expenses, newest first, plus the total count.

    ``owner_id`` narrows the listing to one employee's expenses.
    """
    filters = [Expense.company_id == company_id]
    if owner_id is not None:
        filters.append(Expense.user_id == owner_id)
    if status is not None:
        filters.append(Expense.status == status.value)

    stmt = (
        select(Expense)
        .where(*filters)
        .order_by(Expense.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    expenses = list(db.execute(stmt).scalars().all())
    total = db.execute(select(func.count()).select_from(Expense).where(*filters)).scalar_one()
    return expenses, total
