import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import CategoryType, TransactionType


def _round_amount(value: object) -> object:
    if isinstance(value, float):
        return int(round(value))
    return value


def _clean_note(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class WalletIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class WalletUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class SavingsBucketIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class SavingsBucketUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[CategoryType] = None


class TransactionIn(BaseModel):
    type: TransactionType
    amount: int = Field(..., gt=0)
    date: date
    note: Optional[str] = Field(default=None, max_length=500)
    wallet_id: int = Field(..., gt=0)
    category_id: Optional[int] = Field(default=None, gt=0)
    savings_bucket_id: Optional[int] = Field(default=None, gt=0)

    round_amount = field_validator("amount", mode="before")(_round_amount)
    clean_note = field_validator("note")(_clean_note)

    @model_validator(mode="after")
    def expense_needs_category(self) -> "TransactionIn":
        if self.type == TransactionType.expense and self.category_id is None:
            raise ValueError("Category ID is required for expense transactions")
        return self


class TransactionUpdate(BaseModel):
    """Partial update; only fields present in the payload are applied."""

    type: Optional[TransactionType] = None
    amount: Optional[int] = Field(default=None, gt=0)
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=500)
    wallet_id: Optional[int] = Field(default=None, gt=0)
    category_id: Optional[int] = Field(default=None, gt=0)
    savings_bucket_id: Optional[int] = Field(default=None, gt=0)

    round_amount = field_validator("amount", mode="before")(_round_amount)
    clean_note = field_validator("note")(_clean_note)

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class TransferIn(BaseModel):
    from_wallet_id: int
    to_wallet_id: int
    amount: int
    date: date
    note: Optional[str] = Field(default=None, max_length=500)

    round_amount = field_validator("amount", mode="before")(_round_amount)
    clean_note = field_validator("note")(_clean_note)


class BudgetIn(BaseModel):
    month: date
    category_id: int = Field(..., gt=0)
    limit_amount: int = Field(..., ge=0)

    round_amount = field_validator("limit_amount", mode="before")(_round_amount)

    @field_validator("month")
    @classmethod
    def first_of_month(cls, value: date) -> date:
        if value.day != 1:
            raise ValueError("month must be the first day of a month")
        return value


class BudgetUpdate(BaseModel):
    limit_amount: int = Field(..., ge=0)

    round_amount = field_validator("limit_amount", mode="before")(_round_amount)


class BudgetCopyIn(BaseModel):
    from_month: date
    to_month: date

    @field_validator("from_month", "to_month")
    @classmethod
    def first_of_month(cls, value: date) -> date:
        if value.day != 1:
            raise ValueError("month must be the first day of a month")
        return value


class WalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class WalletWithBalance(WalletOut):
    balance: int


class SavingsBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class SavingsBucketWithBalance(SavingsBucketOut):
    balance: int


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType
    created_at: datetime
    updated_at: datetime


class CategoryWithSpent(CategoryOut):
    spent: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: int
    date: date
    note: Optional[str]
    wallet_id: int
    category_id: Optional[int]
    transfer_id: Optional[str]
    savings_bucket_id: Optional[int]
    created_at: datetime
    updated_at: datetime


class TransferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    from_transaction: TransactionOut
    to_transaction: TransactionOut


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    month: date
    category_id: int
    limit_amount: int
    created_at: datetime
    updated_at: datetime


class BudgetWithActual(BudgetOut):
    category_name: str
    actual_spent: int
    remaining: int


class CategorySpending(BaseModel):
    category_id: int
    category_name: str
    total: int


class SpendingShare(CategorySpending):
    percentage: float


class PeriodOut(BaseModel):
    start_date: date
    end_date: date


class DashboardTotals(BaseModel):
    income: int
    expenses: int
    net: int
    net_worth: int


class DashboardMetrics(BaseModel):
    money_left_to_spend: int
    savings_rate: float


class WalletBalance(BaseModel):
    id: int
    name: str
    balance: int


class DashboardBreakdown(BaseModel):
    spending_by_category: list[SpendingShare]
    wallet_balances: list[WalletBalance]


class DashboardSummary(BaseModel):
    period: PeriodOut
    totals: DashboardTotals
    metrics: DashboardMetrics
    breakdown: DashboardBreakdown


class SpendingReport(BaseModel):
    period: PeriodOut
    total_spending: int
    category_count: int
    categories: list[SpendingShare]
