"""Budget aggregation package."""

from bizledger.services.budgets.service import (
    BudgetService,
    budget_status,
    calculate_budget_usage,
    forecast_budget,
    summarize_usage,
)

__all__ = [
    "BudgetService",
    "budget_status",
    "calculate_budget_usage",
    "forecast_budget",
    "summarize_usage",
]
