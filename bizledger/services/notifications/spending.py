"""
Spending Anomaly Detection

Compares the current month's expenses with the previous months and
flags four patterns:

- overspending: a category's monthly total far above its history
- large_transaction: a single payment far above the typical payment
- high_frequency: many more payments in a category than usual
- unusual_category: money spent in a category never used before

"Far above" means more than mean + k * stddev, using the population
standard deviation of the monthly history. Categories need at least two
months of history before overspending or frequency can be judged.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from statistics import mean, pstdev
from typing import Iterable, Optional
from uuid import UUID

import structlog

from bizledger.config import get_settings
from bizledger.config.settings import AppSettings
from bizledger.models.finance import Category, Transaction, TransactionDirection
from bizledger.models.notification import (
    SEVERITY_ORDER,
    AlertSeverity,
    SpendingAlert,
    SpendingAlertType,
)
from bizledger.services.storage import LedgerStorageInterface

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"

MAX_LARGE_TRANSACTION_ALERTS = 3
MAX_FREQUENCY_ALERTS = 2
MAX_UNUSUAL_CATEGORY_ALERTS = 2


def _stddev(values: list[float]) -> float:
    return pstdev(values) if len(values) >= 2 else 0.0


def _months_back(day: date, months: int) -> date:
    """First day of the month `months` before the month of `day`."""
    index = day.year * 12 + (day.month - 1) - months
    return date(index // 12, index % 12 + 1, 1)


def _overspending_recommendation(category: str, diff_percent: float) -> str:
    if diff_percent > 80:
        return (
            f"Critical overspend. Check the budget for '{category}' "
            "and consider cutting spending."
        )
    if diff_percent > 50:
        return f"Significant overspend. Review spending in '{category}'."
    return f"Moderate overspend. Keep an eye on spending in '{category}'."


def _split(
    transactions: Iterable[Transaction],
    today: date,
    history_months: int,
) -> tuple[list[Transaction], list[Transaction]]:
    month_start = today.replace(day=1)
    window_start = _months_back(today, history_months)
    current, history = [], []
    for tx in transactions:
        if tx.direction != TransactionDirection.EXPENSE:
            continue
        if month_start <= tx.occurred_at <= today:
            current.append(tx)
        elif window_start <= tx.occurred_at < month_start:
            history.append(tx)
    return current, history


def _detect_overspending(
    current: list[Transaction],
    history: list[Transaction],
    name_of,
    min_diff_percent: float,
) -> list[SpendingAlert]:
    current_totals: dict[str, float] = defaultdict(float)
    for tx in current:
        current_totals[name_of(tx)] += float(abs(tx.amount))

    monthly: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for tx in history:
        monthly[name_of(tx)][tx.month_key] += float(abs(tx.amount))

    alerts = []
    for category, months in monthly.items():
        values = list(months.values())
        if len(values) < 2:
            continue
        average = mean(values)
        spent = current_totals.get(category, 0.0)
        diff_percent = (spent - average) / average * 100 if average > 0 else 0.0
        diff_percent = round(diff_percent, 1)

        if spent > average + 2 * _stddev(values) and diff_percent > min_diff_percent:
            severity = (
                AlertSeverity.HIGH if diff_percent > 80
                else AlertSeverity.MEDIUM if diff_percent > 50
                else AlertSeverity.LOW
            )
            alerts.append(SpendingAlert(
                type=SpendingAlertType.OVERSPENDING,
                severity=severity,
                category_name=category,
                message=f"Spending on '{category}' is {diff_percent:.0f}% above usual",
                recommendation=_overspending_recommendation(category, diff_percent),
                current_amount=Decimal(str(round(spent, 2))),
                average_amount=Decimal(str(round(average, 2))),
                difference_percent=diff_percent,
            ))

    alerts.sort(key=lambda a: a.difference_percent, reverse=True)
    return alerts


def _detect_large_transactions(
    current: list[Transaction],
    history: list[Transaction],
    name_of,
    min_amount: float,
) -> list[SpendingAlert]:
    amounts = [float(abs(tx.amount)) for tx in history]
    if not amounts:
        return []
    average = mean(amounts)
    threshold = average + 3 * _stddev(amounts)

    alerts = []
    for tx in current:
        amount = float(abs(tx.amount))
        if amount > threshold and amount > min_amount:
            category = name_of(tx)
            diff_percent = (amount - average) / average * 100 if average > 0 else 0.0
            alerts.append(SpendingAlert(
                type=SpendingAlertType.LARGE_TRANSACTION,
                severity=AlertSeverity.HIGH if amount > average * 5 else AlertSeverity.MEDIUM,
                category_name=category,
                message=f"Unusually large payment in '{category}': {amount:,.2f}",
                recommendation="Check whether this purchase was planned",
                current_amount=abs(tx.amount),
                average_amount=Decimal(str(round(average, 2))),
                difference_percent=round(diff_percent),
                transaction_id=tx.id,
            ))
    return alerts[:MAX_LARGE_TRANSACTION_ALERTS]


def _detect_high_frequency(
    current: list[Transaction],
    history: list[Transaction],
    name_of,
) -> list[SpendingAlert]:
    current_counts: dict[str, int] = defaultdict(int)
    for tx in current:
        current_counts[name_of(tx)] += 1

    monthly_counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for tx in history:
        monthly_counts[name_of(tx)][tx.month_key] += 1

    alerts = []
    for category, count in current_counts.items():
        history_counts = list(monthly_counts.get(category, {}).values())
        if len(history_counts) < 2:
            continue
        average = mean(history_counts)
        if count > average + 2 * _stddev(history_counts) and count > average * 1.5:
            diff_percent = (count - average) / average * 100 if average > 0 else 0.0
            alerts.append(SpendingAlert(
                type=SpendingAlertType.HIGH_FREQUENCY,
                severity=AlertSeverity.HIGH if diff_percent > 100 else AlertSeverity.MEDIUM,
                category_name=category,
                message=(
                    f"More payments than usual in '{category}': "
                    f"{count} this month (usually {round(average)})"
                ),
                recommendation="Watch how often purchases are made in this category",
                difference_percent=round(diff_percent),
            ))
    return alerts[:MAX_FREQUENCY_ALERTS]


def _detect_unusual_categories(
    current: list[Transaction],
    history: list[Transaction],
    name_of,
    min_amount: float,
) -> list[SpendingAlert]:
    known = {name_of(tx) for tx in history}
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for tx in current:
        category = name_of(tx)
        if category not in known:
            totals[category] += abs(tx.amount)

    alerts = []
    for category, amount in totals.items():
        if amount > Decimal(str(min_amount)):
            alerts.append(SpendingAlert(
                type=SpendingAlertType.UNUSUAL_CATEGORY,
                severity=AlertSeverity.MEDIUM if amount > 500 else AlertSeverity.LOW,
                category_name=category,
                message=f"New spending category: '{category}' ({amount:,.2f})",
                recommendation="Check whether this new expense category is needed",
                current_amount=amount,
            ))
    return alerts[:MAX_UNUSUAL_CATEGORY_ALERTS]


def detect_spending_anomalies(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    today: Optional[date] = None,
    settings: Optional[AppSettings] = None,
) -> list[SpendingAlert]:
    """
    Detect spending anomalies in one company's transactions.

    Args:
        transactions: The company's transactions; non-expenses are ignored
        categories: The company's categories, for display names
        today: Reference date; its month is the "current month"
        settings: Thresholds, defaults to the application settings

    Returns:
        Alerts sorted by severity, high first
    """
    today = today or date.today()
    settings = settings or get_settings().app
    names = {c.id: c.name for c in categories}

    def name_of(tx: Transaction) -> str:
        if tx.category_id is None:
            return UNCATEGORIZED
        return names.get(tx.category_id, UNCATEGORIZED)

    current, history = _split(transactions, today, settings.anomaly_history_months)
    if not current and not history:
        return []

    alerts = []
    alerts.extend(_detect_overspending(
        current, history, name_of, settings.anomaly_min_diff_percent
    ))
    alerts.extend(_detect_large_transactions(
        current, history, name_of, settings.large_transaction_min_amount
    ))
    alerts.extend(_detect_high_frequency(current, history, name_of))
    alerts.extend(_detect_unusual_categories(
        current, history, name_of, settings.unusual_category_min_amount
    ))

    # Stable sort keeps each detector's own ordering within a severity
    return sorted(alerts, key=lambda a: SEVERITY_ORDER[a.severity])


class SpendingMonitor:
    """Loads a company's recent expenses and runs the anomaly detectors."""

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = ledger_storage
        self._settings = settings or get_settings().app

    async def detect(self, company_id: UUID, today: Optional[date] = None) -> list[SpendingAlert]:
        today = today or date.today()
        transactions = await self._storage.list_transactions(
            company_id,
            date_from=_months_back(today, self._settings.anomaly_history_months),
            date_to=today,
            direction=TransactionDirection.EXPENSE,
        )
        categories = await self._storage.list_categories(company_id)
        alerts = detect_spending_anomalies(transactions, categories, today, self._settings)
        logger.info("spending_anomalies_detected", company_id=str(company_id), count=len(alerts))
        return alerts
