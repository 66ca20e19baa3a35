"""
Budget Usage Aggregation

DESIGN DECISION: A budget's spent amount is always derived from the
transactions, never incremented in place. Recomputing from scratch means
a re-import, a deleted transaction or a recategorization can never leave
a budget drifting from the ledger.

The pure functions at module level do the arithmetic on already-fetched
rows; BudgetService loads rows from storage and persists the results.
"""

import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from bizledger.config import get_settings
from bizledger.config.settings import AppSettings
from bizledger.models.finance import (
    Budget,
    BudgetStatus,
    BudgetUsage,
    Transaction,
    TransactionDirection,
)
from bizledger.models.notification import (
    SEVERITY_ORDER,
    AlertSeverity,
    BudgetAlert,
    BudgetAlertType,
    BudgetForecast,
    BudgetsSummary,
)
from bizledger.services.storage import LedgerStorageInterface, NotFoundError

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
CENTS = Decimal("0.01")


def budget_status(percentage: float) -> BudgetStatus:
    if percentage >= 100:
        return BudgetStatus.EXCEEDED
    if percentage >= 80:
        return BudgetStatus.AT_RISK
    return BudgetStatus.ON_TRACK


def round_percent(percentage: float) -> int:
    """Round half up, so 79.5% reads as 80% like on a printed report."""
    return int(Decimal(str(percentage)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_budget_usage(budget: Budget, transactions: Iterable[Transaction]) -> BudgetUsage:
    """
    Sum the expenses that count against a budget.

    Only expense transactions of the budget's company and category whose
    date falls inside the budget period are counted.
    """
    spent = sum(
        (
            abs(tx.amount)
            for tx in transactions
            if tx.direction == TransactionDirection.EXPENSE
            and tx.company_id == budget.company_id
            and tx.category_id == budget.category_id
            and budget.covers(tx.occurred_at)
        ),
        Decimal("0"),
    )
    percentage = float(spent / budget.limit_amount * 100) if budget.limit_amount else 0.0

    return BudgetUsage(
        budget_id=budget.id,
        category_id=budget.category_id,
        limit_amount=budget.limit_amount,
        spent=spent,
        remaining=budget.limit_amount - spent,
        percentage=percentage,
        status=budget_status(percentage),
    )


def build_budget_alert(
    budget: Budget,
    usage: BudgetUsage,
    category_name: str,
    settings: AppSettings,
) -> Optional[BudgetAlert]:
    """
    Alert for one budget, or None while usage is below the warning band.

    Bands compare the exact percentage; the rounded one is only for display.
    """
    exact = usage.percentage
    percentage = round_percent(exact)

    if exact >= settings.budget_overspent_percent:
        alert_type, severity = BudgetAlertType.EXCEEDED, AlertSeverity.HIGH
        message = f"Budget '{category_name}' overspent: {percentage}% used"
    elif exact >= settings.budget_exceeded_percent:
        alert_type, severity = BudgetAlertType.EXCEEDED, AlertSeverity.HIGH
        message = f"Budget '{category_name}' exhausted: {percentage}% used"
    elif exact >= settings.budget_critical_percent:
        alert_type, severity = BudgetAlertType.CRITICAL, AlertSeverity.MEDIUM
        message = f"Budget '{category_name}' almost used up: {percentage}%"
    elif exact >= settings.budget_warning_percent:
        alert_type, severity = BudgetAlertType.WARNING, AlertSeverity.LOW
        message = f"Half of budget '{category_name}' is used: {percentage}%"
    else:
        return None

    return BudgetAlert(
        budget_id=budget.id,
        category_id=budget.category_id,
        category_name=category_name,
        type=alert_type,
        severity=severity,
        percentage=percentage,
        spent=usage.spent,
        limit_amount=usage.limit_amount,
        message=message,
        recommendation=budget_recommendation(exact, usage.remaining, settings),
    )


def budget_recommendation(percentage: float, remaining: Decimal, settings: AppSettings) -> str:
    if percentage >= settings.budget_overspent_percent:
        return "Critical overspend. Revise spending in this category or raise the budget."
    if percentage >= settings.budget_exceeded_percent:
        return "Budget exhausted. Avoid further spending in this category until the period ends."
    if percentage >= settings.budget_critical_percent:
        return f"{remaining:,.2f} left. Plan the remaining spending carefully."
    return "Spending is within the normal range."


def sort_alerts(alerts: list[BudgetAlert]) -> list[BudgetAlert]:
    """High severity first, then the most used budgets."""
    return sorted(alerts, key=lambda a: (SEVERITY_ORDER[a.severity], -a.percentage))


def forecast_budget(budget: Budget, usage: BudgetUsage, today: date) -> Optional[BudgetForecast]:
    """
    Project spending to the end of the budget period at the current daily rate.

    Returns None when nothing has been spent yet.
    """
    if usage.spent <= 0:
        return None

    days_elapsed = max(1, (today - budget.period_start).days)
    days_remaining = max(0, (budget.period_end - today).days)
    daily_rate = usage.spent / days_elapsed

    days_until_depleted = None
    if usage.remaining > 0:
        days_until_depleted = math.floor(usage.remaining / daily_rate)

    projected = usage.spent + daily_rate * days_remaining
    return BudgetForecast(
        budget_id=budget.id,
        daily_rate=daily_rate.quantize(CENTS),
        days_until_depleted=days_until_depleted,
        projected_spent=projected.quantize(CENTS),
        projected_overspend=max(Decimal("0"), projected - budget.limit_amount).quantize(CENTS),
    )


def summarize_usage(usages: Iterable[BudgetUsage]) -> BudgetsSummary:
    summary = BudgetsSummary()
    for usage in usages:
        summary.total_budgets += 1
        summary.total_limit += usage.limit_amount
        summary.total_spent += usage.spent
        if usage.status == BudgetStatus.EXCEEDED:
            summary.exceeded += 1
        elif usage.status == BudgetStatus.AT_RISK:
            summary.at_risk += 1
        else:
            summary.on_track += 1
    return summary


class BudgetService:
    """Budget recompute, alerts, forecasts and summaries for one storage backend."""

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = ledger_storage
        self._settings = settings or get_settings().app

    async def _usage(self, budget: Budget) -> BudgetUsage:
        transactions = await self._storage.list_transactions(
            budget.company_id,
            date_from=budget.period_start,
            date_to=budget.period_end,
            category_id=budget.category_id,
            direction=TransactionDirection.EXPENSE,
        )
        return calculate_budget_usage(budget, transactions)

    async def recompute_budget(self, company_id: UUID, budget_id: UUID) -> BudgetUsage:
        """
        Recompute and persist a budget's spent amount.

        Raises:
            NotFoundError: If the company has no such budget
        """
        budget = await self._storage.get_budget(company_id, budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")

        usage = await self._usage(budget)
        if budget.spent_amount != usage.spent:
            budget.spent_amount = usage.spent
            await self._storage.update_budget(budget)

        logger.info(
            "budget_recomputed",
            company_id=str(company_id),
            budget_id=str(budget_id),
            spent=str(usage.spent),
            percentage=round(usage.percentage, 2),
        )
        return usage

    async def recompute_all(
        self,
        company_id: UUID,
        category_ids: Optional[Iterable[UUID]] = None,
    ) -> list[BudgetUsage]:
        """Recompute every budget, or only those of the given categories."""
        wanted = set(category_ids) if category_ids is not None else None
        usages = []
        for budget in await self._storage.list_budgets(company_id):
            if wanted is not None and budget.category_id not in wanted:
                continue
            usages.append(await self.recompute_budget(company_id, budget.id))
        return usages

    async def _active_budgets(self, company_id: UUID, today: date) -> list[Budget]:
        return [b for b in await self._storage.list_budgets(company_id) if b.covers(today)]

    async def detect_budget_alerts(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> list[BudgetAlert]:
        """Alerts for the budgets whose period contains today."""
        today = today or date.today()
        names = {
            c.id: c.name for c in await self._storage.list_categories(company_id)
        }

        alerts = []
        for budget in await self._active_budgets(company_id, today):
            usage = await self._usage(budget)
            alert = build_budget_alert(
                budget,
                usage,
                names.get(budget.category_id, UNCATEGORIZED),
                self._settings,
            )
            if alert is not None:
                alerts.append(alert)
        return sort_alerts(alerts)

    async def forecast_depletion(
        self,
        company_id: UUID,
        budget_id: UUID,
        today: Optional[date] = None,
    ) -> Optional[BudgetForecast]:
        budget = await self._storage.get_budget(company_id, budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")
        return forecast_budget(budget, await self._usage(budget), today or date.today())

    async def get_budgets_summary(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> BudgetsSummary:
        today = today or date.today()
        return summarize_usage([
            await self._usage(b) for b in await self._active_budgets(company_id, today)
        ])

    async def list_usage(
        self,
        company_id: UUID,
        today: Optional[date] = None,
    ) -> list[tuple[Budget, BudgetUsage]]:
        """Active budgets with their current usage, for display."""
        today = today or date.today()
        return [
            (b, await self._usage(b)) for b in await self._active_budgets(company_id, today)
        ]
