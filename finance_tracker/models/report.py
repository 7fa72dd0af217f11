"""
Report Result Models

Plain data returned by the report executor. Expense figures in the
monthly summary keep their sign (negative); per-category totals and
evolution buckets report expenses as positive magnitudes for charting.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field


class MonthlySummary(BaseModel):
    """Totals for one calendar month."""

    year: int
    month: int = Field(..., ge=1, le=12)
    total_income: Decimal = Decimal("0")
    card_expense: Decimal = Field(
        default=Decimal("0"),
        description="Sum of credit card expenses (negative)"
    )
    cash_expense: Decimal = Field(
        default=Decimal("0"),
        description="Sum of every other expense (negative)"
    )
    transaction_count: int = 0

    @computed_field
    @property
    def total_expense(self) -> Decimal:
        return self.card_expense + self.cash_expense

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.total_income + self.total_expense


class CategoryTotal(BaseModel):
    """Spending in one category."""

    category_id: str
    name: str
    total: Decimal = Field(..., description="Absolute amount spent")
    transaction_count: int = 0


class EvolutionPoint(BaseModel):
    """One bucket (day or month) of the income/expense evolution."""

    period_start: date
    label: str
    income: Decimal = Decimal("0")
    expense: Decimal = Field(
        default=Decimal("0"),
        description="Absolute amount spent in the bucket"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Running balance up to and including the bucket"
    )
