"""
Report Models for BizLedger

Flat, display-ready rows for the Excel finance report. Names are
already resolved so the workbook writer never needs storage.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from bizledger.models.finance import AccountType, TransactionDirection


class TransactionRow(BaseModel):
    occurred_at: date
    direction: TransactionDirection
    amount: Decimal
    category: str
    account: str
    note: str = ""


class AccountRow(BaseModel):
    name: str
    type: AccountType
    balance: Decimal
    currency: str


class CategoryTotal(BaseModel):
    """Expense total of one category within the report."""
    category: str
    total: Decimal
    count: int
    average: Decimal
    percentage: float


class BudgetRow(BaseModel):
    category: str
    limit_amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: int
    period_start: date
    period_end: date


class FinanceSummary(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    transaction_count: int = 0
    category_count: int = 0


class FinanceReportData(BaseModel):
    period_label: str = "All time"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    summary: FinanceSummary = Field(default_factory=FinanceSummary)
    accounts: list[AccountRow] = Field(default_factory=list)
    transactions: list[TransactionRow] = Field(default_factory=list)
    categories: list[CategoryTotal] = Field(default_factory=list)
    budgets: list[BudgetRow] = Field(default_factory=list)
