import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import CategoryType, IntervalUnit
from periods import month_key

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class TransactionIn(BaseModel):
    amount_cents: int
    description: str = Field(..., min_length=1, max_length=200)
    date: date
    category_id: int
    is_recurring: bool = False


class BulkDeleteIn(BaseModel):
    ids: list[int] = Field(..., min_length=1, max_length=100)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, max_length=16)
    budget_limit_cents: Optional[int] = Field(default=None, ge=0)


class CategoryUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[CategoryType] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, max_length=16)
    budget_limit_cents: Optional[int] = Field(default=None, ge=0)


class BudgetIn(BaseModel):
    category_id: int
    limit_cents: int = Field(..., gt=0)
    month: date

    @field_validator("month")
    @classmethod
    def _normalize_month(cls, value: date) -> date:
        return month_key(value)


class BudgetUpdateIn(BaseModel):
    limit_cents: Optional[int] = Field(default=None, gt=0)


class CopyBudgetsIn(BaseModel):
    target_month: date

    @field_validator("target_month")
    @classmethod
    def _normalize_month(cls, value: date) -> date:
        return month_key(value)


class UserUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    target_cents: int = Field(..., gt=0)
    current_cents: int = Field(default=0, ge=0)
    deadline: Optional[dt.date] = None
    color: str = Field(default="#10b981", pattern=HEX_COLOR_PATTERN)


class SavingsGoalUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    target_cents: Optional[int] = Field(default=None, gt=0)
    current_cents: Optional[int] = Field(default=None, ge=0)
    deadline: Optional[dt.date] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class ContributionIn(BaseModel):
    amount_cents: int


class RecurringTransactionIn(BaseModel):
    amount_cents: int
    description: str = Field(..., min_length=1, max_length=200)
    category_id: int
    interval_unit: IntervalUnit
    interval_count: int = Field(default=1, gt=0)
    anchor_date: dt.date
    next_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    active: bool = True


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    email: Optional[str]
    name: Optional[str]


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType
    color: str
    icon: Optional[str]
    budget_limit_cents: Optional[int]


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    description: str
    date: date
    category_id: int
    is_recurring: bool
    recurring_id: Optional[int]
    created_at: datetime
    category: CategoryOut


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    month: date
    limit_cents: int
    spent_cents: int
    category: CategoryOut


class SavingsGoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    target_cents: int
    current_cents: int
    deadline: Optional[dt.date]
    color: str


class RecurringTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    description: str
    category_id: int
    interval_unit: IntervalUnit
    interval_count: int
    anchor_date: dt.date
    next_date: dt.date
    end_date: Optional[dt.date]
    active: bool
