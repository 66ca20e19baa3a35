"""
Finance Models for BizLedger

These models define the strict schemas for accounts, categories,
transactions and budgets. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Carry the owning company on every record

DESIGN DECISION: Amounts are Decimal in major currency units and are
always positive. The transaction direction carries the sign, so a refund
never turns into a negative expense.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionDirection(str, Enum):
    """Which way money moved."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class AccountType(str, Enum):
    """Kinds of money accounts a company keeps."""
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    BANK_ACCOUNT = "bank_account"


class CategoryKind(str, Enum):
    """
    Which transactions a category may be applied to.

    BOTH is used for categories such as "Corrections" that appear
    on either side of the ledger.
    """
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


class BudgetStatus(str, Enum):
    """Usage band of a budget."""
    ON_TRACK = "on_track"   # below 80%
    AT_RISK = "at_risk"     # 80% up to 100%
    EXCEEDED = "exceeded"   # 100% and above


# =============================================================================
# CORE FINANCE MODELS
# =============================================================================

class Account(BaseModel):
    """A money account (cash desk, card, bank account)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType = AccountType.BANK_ACCOUNT
    balance: Decimal = Field(default=Decimal("0"), decimal_places=2)
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    archived: bool = False

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Category(BaseModel):
    """A transaction category, owned by one company."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    kind: CategoryKind = CategoryKind.EXPENSE


class Transaction(BaseModel):
    """
    A single money movement.

    Transactions are the raw material of every finance report:
    budgets, spending alerts and the Excel export are all computed
    from them and never stored separately.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    account_id: UUID
    category_id: Optional[UUID] = None
    direction: TransactionDirection
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Amount in major currency units, always positive"
    )
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    occurred_at: date
    counterparty: Optional[str] = Field(default=None, max_length=200)
    note: Optional[str] = Field(default=None, max_length=1000)
    import_batch_id: Optional[UUID] = Field(
        default=None,
        description="Set on transactions created by one CSV import"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def month_key(self) -> str:
        """Calendar month of the transaction as YYYY-MM."""
        return self.occurred_at.strftime("%Y-%m")


class Budget(BaseModel):
    """
    A spending limit for one category over a date period.

    spent_amount is derived from transactions and is only written by
    the budget service when usage is recomputed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    category_id: UUID
    name: Optional[str] = Field(default=None, max_length=200)
    limit_amount: Decimal = Field(..., gt=0, decimal_places=2)
    spent_amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    period_start: date
    period_end: date

    @model_validator(mode='after')
    def validate_period(self) -> 'Budget':
        """Validate date relationships."""
        if self.period_end < self.period_start:
            raise ValueError("Budget period end cannot be before start")
        return self

    def covers(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


class BudgetUsage(BaseModel):
    """Computed usage of one budget."""

    budget_id: UUID
    category_id: UUID
    limit_amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float = Field(ge=0)
    status: BudgetStatus


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'future_date', 'potential_duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation of one candidate transaction.

    Stage 1: Schema validation (required values present and positive)
    Stage 2: Semantic validation (dates, amounts, duplicates)
    """

    row_number: Optional[int] = Field(
        default=None,
        description="Source CSV row, when the candidate came from an import"
    )
    validated_at: datetime = Field(default_factory=datetime.utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_duplicate(self) -> bool:
        return any(i.issue_type == "potential_duplicate" for i in self.issues)
