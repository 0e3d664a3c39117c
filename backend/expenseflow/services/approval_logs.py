"""Approval log persistence and materialization.

Logs for an expense are written once, as a batch, inside the submission
transaction. Afterwards only their status moves, and only out of PENDING.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from expenseflow.models.approval import ApprovalStatus, ExpenseApprovalLog
from expenseflow.models.approval_rule import ApprovalRule, ApproverAssignment

logger = logging.getLogger(__name__)

REJECTED_BY_ANOTHER_APPROVER = "Rejected by another approver"


# ─── Assignments ───

def list_active_assignments(db: Session, rule_id: uuid.UUID) -> list[ApproverAssignment]:
    """Active approver assignments of a rule, ascending by order."""
    stmt = (
        select(ApproverAssignment)
        .where(
            ApproverAssignment.approval_rule_id == rule_id,
            ApproverAssignment.is_active.is_(True),
        )
        .order_by(ApproverAssignment.order.asc(), ApproverAssignment.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


# ─── Materialize ───

def materialize_approval_logs(
    db: Session,
    expense_id: uuid.UUID,
    rule: ApprovalRule,
    assignments: list[ApproverAssignment] | None = None,
) -> list[ExpenseApprovalLog]:
    """Create one PENDING log per active assignment of ``rule``.

    Flushes but does not commit; the caller's transaction decides whether the
    whole batch becomes visible. Returns an empty list when the rule has no
    active approvers.
    """
    if assignments is None:
        assignments = list_active_assignments(db, rule.id)

    logs = [
        ExpenseApprovalLog(
            expense_id=expense_id,
            approval_rule_id=rule.id,
            approver_id=assignment.user_id,
            order=assignment.order,
            status=ApprovalStatus.PENDING.value,
        )
        for assignment in sorted(assignments, key=lambda a: a.order)
    ]
    if logs:
        insert_batch(db, logs)

    logger.info(
        "materialize_approval_logs: expense=%s rule=%s logs=%d",
        expense_id, rule.id, len(logs),
    )
    return logs


def insert_batch(db: Session, logs: list[ExpenseApprovalLog]) -> None:
    db.add_all(logs)
    db.flush()


# ─── Queries ───

def find_by_expense(db: Session, expense_id: uuid.UUID) -> list[ExpenseApprovalLog]:
    stmt = (
        select(ExpenseApprovalLog)
        .where(ExpenseApprovalLog.expense_id == expense_id)
        .order_by(ExpenseApprovalLog.order.asc(), ExpenseApprovalLog.created_at.asc())
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def find_log(db: Session, log_id: uuid.UUID) -> ExpenseApprovalLog | None:
    return db.execute(select(ExpenseApprovalLog).where(ExpenseApprovalLog.id == log_id)).scalars().first()


def find_pending(db: Session, log_id: uuid.UUID, approver_id: uuid.UUID) -> ExpenseApprovalLog | None:
    """The approver's log if it is still PENDING, row-locked and freshly loaded."""
    stmt = (
        select(ExpenseApprovalLog)
        .where(
            ExpenseApprovalLog.id == log_id,
            ExpenseApprovalLog.approver_id == approver_id,
            ExpenseApprovalLog.status == ApprovalStatus.PENDING.value,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalars().first()


# ─── Conditional updates ───

def resolve_pending_log(
    db: Session,
    log: ExpenseApprovalLog,
    status: ApprovalStatus,
    comments: str | None,
    now: datetime | None = None,
) -> bool:
    """Move ``log`` out of PENDING. Returns False when it was no longer PENDING."""
    now = now or datetime.now(timezone.utc)
    values = {"status": status.value, "comments": comments}
    if status is ApprovalStatus.APPROVED:
        values["approved_at"] = now
    else:
        values["rejected_at"] = now

    result = db.execute(
        update(ExpenseApprovalLog)
        .where(
            ExpenseApprovalLog.id == log.id,
            ExpenseApprovalLog.status == ApprovalStatus.PENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    for field, value in values.items():
        setattr(log, field, value)
    return True


def update_pending_to_rejected(
    db: Session,
    expense_id: uuid.UUID,
    excluding_log_id: uuid.UUID,
    comment: str = REJECTED_BY_ANOTHER_APPROVER,
    now: datetime | None = None,
) -> int:
    """Sweep every other still-PENDING log of the expense to REJECTED.

    Already APPROVED logs are left untouched. Returns the number of logs swept.
    """
    now = now or datetime.now(timezone.utc)
    result = db.execute(
        update(ExpenseApprovalLog)
        .where(
            ExpenseApprovalLog.expense_id == expense_id,
            ExpenseApprovalLog.id != excluding_log_id,
            ExpenseApprovalLog.status == ApprovalStatus.PENDING.value,
        )
        .values(
            status=ApprovalStatus.REJECTED.value,
            comments=comment,
            rejected_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
