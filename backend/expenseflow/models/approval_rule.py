"""Approval rules and the ordered approver assignments attached to them."""
import enum
import uuid
from dataclasses import dataclass

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expenseflow.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalType(str, enum.Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


# ─── Category scope ───

@dataclass(frozen=True)
class AllCategories:
    """Rule applies regardless of the expense category."""

    def matches(self, category_id: uuid.UUID) -> bool:
        return True


@dataclass(frozen=True)
class SpecificCategories:
    """Rule applies only to the listed categories."""

    category_ids: frozenset[uuid.UUID]

    def matches(self, category_id: uuid.UUID) -> bool:
        return category_id in self.category_ids


CategoryScope = AllCategories | SpecificCategories


class ApprovalRule(Base, UUIDMixin, TimestampMixin):
    """Amount band (base currency) + category scope → approvers and completion policy."""

    __tablename__ = "approval_rules"
    __table_args__ = (
        CheckConstraint("max_amount IS NULL OR max_amount >= min_amount", name="amount_band"),
        CheckConstraint("approval_type IN ('sequential', 'parallel')", name="approval_type"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_amount: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    max_amount: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)  # null = unbounded
    category_ids: Mapped[list[uuid.UUID] | None] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=True
    )  # null or empty = all categories
    approval_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalType.SEQUENTIAL.value
    )  # sequential, parallel
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    assignments: Mapped[list["ApproverAssignment"]] = relationship(
        "ApproverAssignment",
        back_populates="rule",
        order_by="ApproverAssignment.order",
    )

    @property
    def category_scope(self) -> CategoryScope:
        if not self.category_ids:
            return AllCategories()
        return SpecificCategories(frozenset(self.category_ids))


class ApproverAssignment(Base, UUIDMixin, TimestampMixin):
    """One approver on a rule.

    ``order`` is the precedence key for SEQUENTIAL rules. For PARALLEL rules it
    only fixes the order logs are created and displayed in; completion
    decisions must never read it.
    """

    __tablename__ = "approver_assignments"
    __table_args__ = (
        UniqueConstraint("approval_rule_id", "user_id"),
        CheckConstraint('"order" >= 1', name="order_positive"),
    )

    approval_rule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_rules.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)  # >= 1
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    rule: Mapped["ApprovalRule"] = relationship("ApprovalRule", back_populates="assignments")
