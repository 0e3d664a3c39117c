"""Pydantic schemas for approval rules and their approver assignments."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from expenseflow.models.approval_rule import ApprovalType


# ─── Approvers ───

class ApproverIn(BaseModel):
    user_id: uuid.UUID
    order: int | None = Field(default=None, ge=1)  # defaults to list position


class ApproverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    order: int
    is_active: bool


# ─── Rules ───

class ApprovalRuleIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    min_amount: Decimal = Field(ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    category_ids: list[uuid.UUID] = Field(default_factory=list)  # empty = all categories
    approval_type: ApprovalType = ApprovalType.SEQUENTIAL
    approvers: list[ApproverIn] = Field(min_length=1)

    @model_validator(mode="after")
    def _check(self) -> "ApprovalRuleIn":
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise ValueError("max_amount must be greater than or equal to min_amount")
        user_ids = [a.user_id for a in self.approvers]
        if len(set(user_ids)) != len(user_ids):
            raise ValueError("each approver may appear only once per rule")
        orders = [order for _, order in self.ordered_approvers()]
        if len(set(orders)) != len(orders):
            raise ValueError(f"approver orders must be unique, got {orders}")
        return self

    def ordered_approvers(self) -> list[tuple[uuid.UUID, int]]:
        """(user_id, order) pairs; a missing order falls back to the list position."""
        return [
            (approver.user_id, approver.order or position)
            for position, approver in enumerate(self.approvers, start=1)
        ]


class ApprovalRuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    category_ids: list[uuid.UUID] | None = None
    approval_type: ApprovalType | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _reject_nulls(self) -> "ApprovalRuleUpdate":
        nulled = sorted(
            field for field in ("name", "min_amount", "approval_type", "is_active")
            if field in self.model_fields_set and getattr(self, field) is None
        )
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


class ApprovalRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    min_amount: Decimal
    max_amount: Decimal | None
    category_ids: list[uuid.UUID] | None
    approval_type: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    approvers: list[ApproverOut] = Field(default_factory=list)
