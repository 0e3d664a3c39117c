"""Seed script — creates a demo company, categories, users, approval rules and draft expenses.

Idempotent: checks for existing records before inserting.
Run: python scripts/seed.py   (from backend/, with DATABASE_URL set)
"""
import asyncio
import os
import sys
from datetime import date, timedelta
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from expenseflow.core.config import settings
from expenseflow.models.approval_rule import ApprovalRule, ApprovalType, ApproverAssignment
from expenseflow.models.company import Category, Company
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.models.user import User, UserRole

TODAY = date.today()


# ─── Upsert helpers ───────────────────────────────────────────────────────────

async def _upsert_company(db: AsyncSession, name: str, base_currency: str, country: str) -> Company:
    result = await db.execute(select(Company).where(Company.name == name))
    company = result.scalars().first()
    if company:
        print(f"  [skip] Company {name}")
        return company
    company = Company(name=name, base_currency=base_currency, country=country)
    db.add(company)
    await db.flush()
    print(f"  [new]  Company {name} ({base_currency})")
    return company


async def _upsert_category(db: AsyncSession, company: Company, name: str) -> Category:
    result = await db.execute(
        select(Category).where(Category.company_id == company.id, Category.name == name)
    )
    category = result.scalars().first()
    if category:
        print(f"  [skip] Category {name}")
        return category
    category = Category(company_id=company.id, name=name, is_active=True)
    db.add(category)
    await db.flush()
    print(f"  [new]  Category {name}")
    return category


async def _upsert_user(
    db: AsyncSession, company: Company, email: str, name: str, role: UserRole,
    manager: User | None = None,
) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(
        company_id=company.id, email=email, name=name, role=role.value,
        manager_id=manager.id if manager else None, is_active=True,
    )
    db.add(user)
    await db.flush()
    print(f"  [new]  User {email} ({role.value})")
    return user


async def _upsert_rule(
    db: AsyncSession, company: Company, name: str, min_amount: str, max_amount: str | None,
    approval_type: ApprovalType, approvers: list[User], categories: list[Category] | None = None,
) -> ApprovalRule:
    result = await db.execute(
        select(ApprovalRule).where(ApprovalRule.company_id == company.id, ApprovalRule.name == name)
    )
    rule = result.scalars().first()
    if rule:
        print(f"  [skip] Rule {name}")
        return rule
    rule = ApprovalRule(
        company_id=company.id,
        name=name,
        min_amount=Decimal(min_amount),
        max_amount=Decimal(max_amount) if max_amount is not None else None,
        category_ids=[c.id for c in categories] if categories else None,
        approval_type=approval_type.value,
        is_active=True,
    )
    db.add(rule)
    await db.flush()
    db.add_all([
        ApproverAssignment(approval_rule_id=rule.id, user_id=user.id, order=position, is_active=True)
        for position, user in enumerate(approvers, start=1)
    ])
    await db.flush()
    print(f"  [new]  Rule {name} ({approval_type.value}, {len(approvers)} approver(s))")
    return rule


async def _upsert_draft(
    db: AsyncSession, company: Company, owner: User, category: Category,
    title: str, amount: str, currency: str, days_ago: int,
) -> Expense:
    result = await db.execute(
        select(Expense).where(Expense.user_id == owner.id, Expense.title == title)
    )
    expense = result.scalars().first()
    if expense:
        print(f"  [skip] Expense {title}")
        return expense
    expense = Expense(
        company_id=company.id, user_id=owner.id, category_id=category.id,
        title=title, amount=Decimal(amount), currency=currency,
        expense_date=TODAY - timedelta(days=days_ago),
        status=ExpenseStatus.DRAFT.value,
    )
    db.add(expense)
    await db.flush()
    print(f"  [new]  Expense {title} ({amount} {currency})")
    return expense


# ─── Main ─────────────────────────────────────────────────────────────────────

async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async with SessionLocal() as db:
        print("\n── Company ──")
        company = await _upsert_company(db, "Acme Corp", "USD", "United States")
        await db.commit()

        print("\n── Categories ──")
        travel = await _upsert_category(db, company, "Travel")
        meals = await _upsert_category(db, company, "Meals")
        equipment = await _upsert_category(db, company, "Equipment")
        await db.commit()

        print("\n── Users ──")
        admin = await _upsert_user(db, company, "admin@example.com", "Ada Admin", UserRole.ADMIN)
        alice = await _upsert_user(db, company, "alice@example.com", "Alice Manager", UserRole.MANAGER)
        bob = await _upsert_user(db, company, "bob@example.com", "Bob Director", UserRole.MANAGER)
        carol = await _upsert_user(db, company, "carol@example.com", "Carol Finance", UserRole.MANAGER)
        emp = await _upsert_user(
            db, company, "employee@example.com", "Eve Employee", UserRole.EMPLOYEE, manager=alice,
        )
        await db.commit()

        print("\n── Approval Rules ──")
        await _upsert_rule(db, company, "Everyday spend", "0", "999.99", ApprovalType.SEQUENTIAL, [alice])
        await _upsert_rule(db, company, "Large spend", "1000", None, ApprovalType.SEQUENTIAL, [alice, bob])
        await _upsert_rule(
            db, company, "Equipment board", "2500", None, ApprovalType.PARALLEL,
            [alice, bob, carol], categories=[equipment],
        )
        await db.commit()

        print("\n── Draft Expenses ──")
        await _upsert_draft(db, company, emp, meals, "Team lunch", "45.00", "USD", 2)
        await _upsert_draft(db, company, emp, travel, "Conference flight", "1200.00", "EUR", 10)
        await _upsert_draft(db, company, emp, equipment, "Workstation", "3100.00", "USD", 5)
        await db.commit()

    await engine.dispose()
    print("\n✓ Seed complete.")
    print(f"  X-User-Id for requests: admin={admin.id}")
    print(f"                          alice={alice.id} bob={bob.id} carol={carol.id}")
    print(f"                          employee={emp.id}")


if __name__ == "__main__":
    asyncio.run(seed())
