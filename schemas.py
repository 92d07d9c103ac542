import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import RecurringFrequency, TransactionType
from periods import MONTH_PATTERN


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field("#6B7280", max_length=9)
    icon: str = Field("", max_length=16)


class CategoryUpdateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., max_length=9)
    icon: str = Field(..., max_length=16)


class TransactionIn(BaseModel):
    amount: float = Field(..., ge=0)
    type: TransactionType
    category_id: int
    date: dt.date
    description: str = Field("", max_length=200)
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_end_date: Optional[dt.date] = None


class TransactionUpdateIn(BaseModel):
    amount: float = Field(..., ge=0)
    category_id: int
    date: dt.date
    description: str = Field("", max_length=200)
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_end_date: Optional[dt.date] = None


class BudgetIn(BaseModel):
    category_id: Optional[int] = None
    amount: float = Field(..., ge=0)
    month: str = Field(..., pattern=MONTH_PATTERN)
    apply_to_future_months: Optional[bool] = None


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount: float = Field(..., gt=0)
    target_date: dt.date
    description: str = Field("", max_length=500)


class SavingsGoalProgressIn(BaseModel):
    amount: float


class PreferencesIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dark_mode: Optional[bool] = None
    currency: Optional[str] = Field(default=None, min_length=1, max_length=8)
    default_view: Optional[str] = Field(default=None, min_length=1, max_length=40)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    color: str
    icon: str
    is_default: bool


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    type: TransactionType
    category_id: Optional[int]
    category: Optional[CategoryOut]
    date: dt.date
    description: str
    is_recurring: bool
    recurring_frequency: Optional[RecurringFrequency]
    recurring_end_date: Optional[dt.date]


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: Optional[int]
    category: Optional[CategoryOut]
    amount: float
    month: str
    spent: float
    remaining: float
    percentage: float
    is_recurring: bool


class SavingsGoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    target_amount: float
    current_amount: float
    target_date: dt.date
    description: str
    is_completed: bool


class PreferencesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dark_mode: bool
    currency: str
    default_view: str


class CategoryAmountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: Optional[int]
    category: Optional[CategoryOut]
    amount: float
    count: int
    percentage: float


class MonthTotalsOut(BaseModel):
    month: str
    income: float
    expenses: float
    balance: float


class YearTotalsOut(BaseModel):
    year: int
    income: float
    expenses: float
    balance: float


class MonthlySummaryOut(BaseModel):
    month: str
    income: float
    expenses: float
    balance: float
    transaction_count: int
    breakdown: list[CategoryAmountOut]


class YearlySummaryOut(BaseModel):
    year: int
    income: float
    expenses: float
    balance: float
    transaction_count: int
    breakdown: list[MonthTotalsOut]


class AllTimeSummaryOut(BaseModel):
    income: float
    expenses: float
    balance: float
    transaction_count: int
    breakdown: list[YearTotalsOut]
