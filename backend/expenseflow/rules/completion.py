"""Completion evaluation for an expense's approval logs.

Pure functions only: the decision is re-derived from the full log set on
every call, never from a running counter, so it cannot drift from the rows.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, Sequence

from expenseflow.core.exceptions import InvariantViolation
from expenseflow.models.approval import ApprovalStatus
from expenseflow.models.approval_rule import ApprovalType

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class LogLike(Protocol):
    order: int
    status: str
    approved_at: datetime | None


class CompletionOutcome(str, enum.Enum):
    COMPLETE = "complete"
    WAITING = "waiting"
    OUT_OF_ORDER = "out_of_order"  # sequential: a later approver acted before an earlier one
    REJECTED = "rejected"


@dataclass(frozen=True)
class CompletionDecision:
    outcome: CompletionOutcome
    reason: str

    @property
    def is_complete(self) -> bool:
        return self.outcome is CompletionOutcome.COMPLETE


def evaluate_completion(
    logs: Sequence[LogLike],
    approval_type: ApprovalType | str,
) -> CompletionDecision:
    """Decide whether a set of approval logs completes the expense's approval.

    Raises:
        InvariantViolation: the log set cannot belong to a submitted expense
            that just received an approval (empty, no approved log, or an
            unknown policy).
    """
    if not logs:
        raise InvariantViolation("Completion evaluated on an expense with no approval logs.")

    try:
        policy = ApprovalType(approval_type)
    except ValueError as exc:
        raise InvariantViolation(f"Unknown approval type {approval_type!r}.") from exc

    rejected = [log for log in logs if log.status == ApprovalStatus.REJECTED]
    if rejected:
        return CompletionDecision(
            CompletionOutcome.REJECTED, f"{len(rejected)} approval log(s) rejected"
        )

    if policy is ApprovalType.SEQUENTIAL:
        return _evaluate_sequential(logs)
    return _evaluate_parallel(logs)


def _evaluate_sequential(logs: Sequence[LogLike]) -> CompletionDecision:
    approved = [log for log in logs if log.status == ApprovalStatus.APPROVED]
    if not approved:
        raise InvariantViolation("Sequential evaluation found no approved log.")

    latest = max(approved, key=lambda log: (log.approved_at or _EPOCH, log.order))
    k = latest.order

    earlier_open = [log for log in logs if log.order < k and log.status != ApprovalStatus.APPROVED]
    if earlier_open:
        return CompletionDecision(
            CompletionOutcome.OUT_OF_ORDER,
            f"order {k} approved while order(s) "
            f"{sorted(log.order for log in earlier_open)} still open",
        )

    # A peer sharing order k still blocks completion
    later_pending = [log for log in logs if log.order >= k and log.status == ApprovalStatus.PENDING]
    if later_pending:
        return CompletionDecision(
            CompletionOutcome.WAITING,
            f"waiting on order {min(log.order for log in later_pending)}",
        )

    return CompletionDecision(CompletionOutcome.COMPLETE, f"sequential chain complete at order {k}")


def _evaluate_parallel(logs: Sequence[LogLike]) -> CompletionDecision:
    # Unanimity over the whole set; ``order`` must not influence this branch.
    pending = sum(1 for log in logs if log.status != ApprovalStatus.APPROVED)
    if pending:
        return CompletionDecision(
            CompletionOutcome.WAITING, f"{pending} of {len(logs)} approvals outstanding"
        )
    return CompletionDecision(CompletionOutcome.COMPLETE, f"all {len(logs)} approvers approved")
