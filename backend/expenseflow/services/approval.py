"""Approval action handling and completion transitions.

All functions accept a sync SQLAlchemy Session. ``act`` owns its transaction:
it commits on success and rolls back on any failure.

Per-expense serialization: every action first takes a row lock on the
expense, and every status write is a conditional UPDATE on the expected
current status (and, for expenses, the version read under the lock). Of two
racing "last approvals" exactly one performs the APPROVED transition; a
concurrent approve and reject resolve to REJECTED because the sweep only
touches logs that are still PENDING.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from expenseflow.core.exceptions import (
    AlreadyProcessed,
    InvalidInput,
    InvalidState,
    InvariantViolation,
    NotFound,
)
from expenseflow.models.approval import ApprovalDecision, ApprovalStatus, ExpenseApprovalLog
from expenseflow.models.approval_rule import ApprovalRule
from expenseflow.models.expense import Expense, ExpenseStatus
from expenseflow.rules.completion import CompletionDecision, CompletionOutcome, evaluate_completion
from expenseflow.services import audit as audit_svc
from expenseflow.services.approval_logs import (
    find_by_expense,
    find_log,
    find_pending,
    resolve_pending_log,
    update_pending_to_rejected,
)
from expenseflow.services.expenses import lock_expense, update_expense_status

logger = logging.getLogger(__name__)


# ─── Approve / reject ───

def act(
    db: Session,
    log_id: uuid.UUID,
    approver_id: uuid.UUID,
    decision: ApprovalDecision | str,
    comments: str | None = None,
) -> Expense:
    """Apply an approver's decision to their pending approval log.

    Args:
        db: Sync SQLAlchemy session.
        log_id: ExpenseApprovalLog to act on.
        approver_id: Acting user; must be the log's assigned approver.
        decision: "approve" or "reject".
        comments: Free text; required for a rejection (becomes the reason).

    Returns:
        The expense after the decision (SUBMITTED, APPROVED or REJECTED).

    Raises:
        NotFound: no such log assigned to ``approver_id``.
        AlreadyProcessed: the log is no longer PENDING.
        InvalidState: the expense is not awaiting approval.
        InvalidInput: unknown decision, or rejection without a reason.
    """
    try:
        expense = _act(db, log_id, approver_id, decision, comments)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Approval decision: log=%s approver=%s decision=%s expense=%s status=%s",
        log_id, approver_id, decision, expense.id, expense.status,
    )
    return expense


def approve(db: Session, log_id: uuid.UUID, approver_id: uuid.UUID, comments: str | None = None) -> Expense:
    return act(db, log_id, approver_id, ApprovalDecision.APPROVE, comments)


def reject(db: Session, log_id: uuid.UUID, approver_id: uuid.UUID, comments: str | None = None) -> Expense:
    return act(db, log_id, approver_id, ApprovalDecision.REJECT, comments)


def _act(
    db: Session,
    log_id: uuid.UUID,
    approver_id: uuid.UUID,
    decision: ApprovalDecision | str,
    comments: str | None,
) -> Expense:
    try:
        decision = ApprovalDecision(decision)
    except ValueError as exc:
        raise InvalidInput(f"Invalid decision {decision!r}. Must be 'approve' or 'reject'.") from exc

    log = find_log(db, log_id)
    if log is None or str(log.approver_id) != str(approver_id):
        raise NotFound(f"Approval log {log_id} not found for this approver.")

    expense = lock_expense(db, log.expense_id)
    if expense is None:
        raise NotFound(f"Expense {log.expense_id} not found.")

    # Re-read under the expense lock; a concurrent action may have resolved it
    pending = find_pending(db, log_id, approver_id)
    if pending is None:
        raise AlreadyProcessed(f"Approval log {log_id} was already processed.")
    log = pending
    if expense.status != ExpenseStatus.SUBMITTED:
        raise InvalidState(
            f"Expense {expense.id} is {expense.status}, not awaiting approval.",
            details={"status": expense.status},
        )

    comments = comments.strip() if comments else None
    if decision is ApprovalDecision.REJECT:
        if not comments:
            raise InvalidInput("Rejection reason is required.")
        _reject(db, expense, log, approver_id, comments)
    else:
        _approve(db, expense, log, approver_id, comments)
    return expense


def _approve(
    db: Session,
    expense: Expense,
    log: ExpenseApprovalLog,
    approver_id: uuid.UUID,
    comments: str | None,
) -> None:
    now = datetime.now(timezone.utc)
    if not resolve_pending_log(db, log, ApprovalStatus.APPROVED, comments, now):
        raise AlreadyProcessed(f"Approval log {log.id} was resolved concurrently.")

    audit_svc.log(
        db=db,
        action="approval_log_approved",
        entity_type="approval_log",
        entity_id=log.id,
        actor_id=approver_id,
        before={"status": ApprovalStatus.PENDING.value},
        after={"status": log.status, "order": log.order, "expense_id": expense.id},
        notes=comments,
    )

    evaluate_expense(db, expense, actor_id=approver_id)


def _reject(
    db: Session,
    expense: Expense,
    log: ExpenseApprovalLog,
    approver_id: uuid.UUID,
    reason: str,
) -> None:
    now = datetime.now(timezone.utc)
    if not resolve_pending_log(db, log, ApprovalStatus.REJECTED, reason, now):
        raise AlreadyProcessed(f"Approval log {log.id} was resolved concurrently.")

    # One rejection rejects the whole expense, whatever the policy
    before = {"status": expense.status}
    if not update_expense_status(
        db, expense, ExpenseStatus.REJECTED, ExpenseStatus.SUBMITTED,
        rejected_at=now,
        rejection_reason=reason,
    ):
        raise InvalidState(f"Expense {expense.id} changed while it was being rejected.")

    swept = update_pending_to_rejected(db, expense.id, log.id, now=now)

    audit_svc.log(
        db=db,
        action="expense_rejected",
        entity_type="expense",
        entity_id=expense.id,
        actor_id=approver_id,
        before=before,
        after={
            "status": expense.status,
            "rejected_log_id": log.id,
            "swept_pending_logs": swept,
        },
        notes=reason,
    )


# ─── Completion ───

def evaluate(db: Session, expense_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> CompletionDecision | None:
    """Lock the expense and run completion evaluation inside the caller's transaction."""
    expense = lock_expense(db, expense_id)
    if expense is None:
        raise NotFound(f"Expense {expense_id} not found.")
    return evaluate_expense(db, expense, actor_id=actor_id)


def evaluate_expense(
    db: Session,
    expense: Expense,
    actor_id: uuid.UUID | None = None,
) -> CompletionDecision | None:
    """Re-derive completion from the expense's full log set; approve if complete.

    ``expense`` must already be locked by the caller. Structural
    inconsistencies are logged and leave the expense untouched (returns None).
    """
    if expense.status != ExpenseStatus.SUBMITTED:
        logger.info("evaluate: expense=%s is %s, nothing to evaluate", expense.id, expense.status)
        return None

    rule = _get_rule(db, expense.approval_rule_id)
    logs = find_by_expense(db, expense.id)
    try:
        if rule is None:
            raise InvariantViolation(
                f"Submitted expense {expense.id} references missing rule {expense.approval_rule_id}."
            )
        decision = evaluate_completion(logs, rule.approval_type)
    except InvariantViolation as exc:
        logger.error("evaluate: expense=%s invariant violated: %s", expense.id, exc.message)
        return None

    if decision.outcome is CompletionOutcome.OUT_OF_ORDER:
        logger.warning("evaluate: expense=%s %s", expense.id, decision.reason)
    else:
        logger.info("evaluate: expense=%s %s (%s)", expense.id, decision.outcome.value, decision.reason)

    if not decision.is_complete:
        return decision

    now = datetime.now(timezone.utc)
    if update_expense_status(
        db, expense, ExpenseStatus.APPROVED, ExpenseStatus.SUBMITTED, approved_at=now,
    ):
        audit_svc.log(
            db=db,
            action="expense_approved",
            entity_type="expense",
            entity_id=expense.id,
            actor_id=actor_id,
            before={"status": ExpenseStatus.SUBMITTED.value},
            after={"status": expense.status, "approval_type": rule.approval_type},
            notes=decision.reason,
        )
    return decision


def _get_rule(db: Session, rule_id: uuid.UUID | None) -> ApprovalRule | None:
    if rule_id is None:
        return None
    return db.execute(select(ApprovalRule).where(ApprovalRule.id == rule_id)).scalars().first()


# ─── Queries ───

def get_pending_approvals(
    db: Session,
    approver_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[tuple[ExpenseApprovalLog, Expense]], int]:
    """Return one page of the approver's PENDING logs (oldest first) and the total count."""
    filters = (
        ExpenseApprovalLog.approver_id == approver_id,
        ExpenseApprovalLog.status == ApprovalStatus.PENDING.value,
    )
    stmt = (
        select(ExpenseApprovalLog, Expense)
        .join(Expense, Expense.id == ExpenseApprovalLog.expense_id)
        .where(*filters)
        .order_by(ExpenseApprovalLog.created_at.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = [(row[0], row[1]) for row in db.execute(stmt).all()]
    total = db.execute(
        select(func.count()).select_from(ExpenseApprovalLog).where(*filters)
    ).scalar_one()
    return rows, total


def get_approval_history(db: Session, expense_id: uuid.UUID) -> list[ExpenseApprovalLog]:
    """All approval logs of an expense, by order then creation time."""
    return find_by_expense(db, expense_id)


def get_approval_status(db: Session, expense_id: uuid.UUID) -> dict:
    """Summarize approval progress for an expense."""
    logs = find_by_expense(db, expense_id)
    total = len(logs)
    pending = sum(1 for log in logs if log.status == ApprovalStatus.PENDING)
    approved = sum(1 for log in logs if log.status == ApprovalStatus.APPROVED)
    rejected = sum(1 for log in logs if log.status == ApprovalStatus.REJECTED)
    return {
        "total_approvers": total,
        "completed_approvals": approved + rejected,
        "approved": approved,
        "rejected": rejected,
        "pending_approvals": pending,
        "is_completed": pending == 0 and total > 0,
    }
