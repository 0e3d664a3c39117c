import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from expenseflow.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ExpenseApprovalLog(Base, UUIDMixin, TimestampMixin):
    """One approver's task on one submitted expense."""

    __tablename__ = "expense_approval_logs"
    __table_args__ = (
        Index("ix_expense_approval_logs_expense_order", "expense_id", "order"),
        Index("ix_expense_approval_logs_approver_status", "approver_id", "status"),
    )

    expense_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("expenses.id"), nullable=False, index=True
    )
    approval_rule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_rules.id"), nullable=False, index=True
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)  # copied from the assignment at submission
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )  # pending, approved, rejected
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
