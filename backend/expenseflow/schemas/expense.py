"""Pydantic schemas for expense requests and responses."""
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseIn(BaseModel):
    category_id: uuid.UUID
    title: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")
    expense_date: date

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("expense_date")
    @classmethod
    def _not_in_future(cls, value: date) -> date:
        if value > datetime.now(timezone.utc).date():
            raise ValueError("expense_date cannot be in the future")
        return value


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID
    category_id: uuid.UUID
    title: str
    description: str | None
    amount: Decimal
    currency: str
    exchange_rate: Decimal | None
    amount_in_base_currency: Decimal | None
    expense_date: date
    status: str
    approval_rule_id: uuid.UUID | None
    submitted_at: datetime | None
    approved_at: datetime | None
    rejected_at: datetime | None
    rejection_reason: str | None


class ExpenseListResponse(BaseModel):
    items: list[ExpenseOut]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
