"""
Notification Models

Alerts are computed, not stored: every time the budget monitor runs it
rebuilds them from the current transactions. Each alert carries a
recommendation the UI can show as-is.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AlertSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_ORDER = {
    AlertSeverity.HIGH: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.LOW: 2,
}


class BudgetAlertType(str, Enum):
    WARNING = "budget_warning"
    CRITICAL = "budget_critical"
    EXCEEDED = "budget_exceeded"


class SpendingAlertType(str, Enum):
    OVERSPENDING = "overspending"
    UNUSUAL_CATEGORY = "unusual_category"
    HIGH_FREQUENCY = "high_frequency"
    LARGE_TRANSACTION = "large_transaction"


class BudgetAlert(BaseModel):
    budget_id: UUID
    category_id: UUID
    category_name: str
    type: BudgetAlertType
    severity: AlertSeverity
    percentage: int = Field(ge=0, description="Rounded usage percent")
    spent: Decimal
    limit_amount: Decimal
    message: str
    recommendation: str


class SpendingAlert(BaseModel):
    type: SpendingAlertType
    severity: AlertSeverity
    category_name: str
    message: str
    recommendation: str
    current_amount: Decimal = Decimal("0")
    average_amount: Decimal = Decimal("0")
    difference_percent: float = 0.0
    transaction_id: Optional[UUID] = None


class BudgetForecast(BaseModel):
    budget_id: UUID
    daily_rate: Decimal
    days_until_depleted: Optional[int] = Field(
        default=None,
        description="None when the budget is already depleted or nothing is being spent"
    )
    projected_spent: Decimal
    projected_overspend: Decimal = Decimal("0")


class BudgetsSummary(BaseModel):
    total_budgets: int = 0
    on_track: int = 0
    at_risk: int = 0
    exceeded: int = 0
    total_limit: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
